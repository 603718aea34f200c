"""Enable/disable state machine for recording.

    uninitialized -> active <-> disabled

Transitions run their side effect around the flag flip: ``on_enabled``
fires after recording resumes, ``on_disabling`` fires before it stops, so
the ``disabled`` audit entry is the last line written.
"""

from __future__ import annotations

from enum import Enum
from typing import Callable, Optional


class EngineState(str, Enum):
    UNINITIALIZED = "uninitialized"
    ACTIVE = "active"
    DISABLED = "disabled"


class ControlState:
    def __init__(
        self,
        enabled: bool = True,
        on_enabled: Optional[Callable[[], None]] = None,
        on_disabling: Optional[Callable[[], None]] = None,
    ) -> None:
        self._enabled = enabled
        self.state = EngineState.UNINITIALIZED
        self.on_enabled = on_enabled
        self.on_disabling = on_disabling

    @property
    def enabled(self) -> bool:
        return self._enabled

    def is_enabled(self) -> bool:
        return self._enabled

    def start(self, enabled: bool) -> EngineState:
        """Leave UNINITIALIZED at session start without transition side effects."""
        self._enabled = enabled
        self.state = EngineState.ACTIVE if enabled else EngineState.DISABLED
        return self.state

    def enable(self) -> bool:
        """Returns True if this call changed the state."""
        if self._enabled:
            if self.state == EngineState.UNINITIALIZED:
                self.state = EngineState.ACTIVE
            return False
        self._enabled = True
        self.state = EngineState.ACTIVE
        if self.on_enabled is not None:
            self.on_enabled()
        return True

    def disable(self) -> bool:
        if not self._enabled:
            if self.state == EngineState.UNINITIALIZED:
                self.state = EngineState.DISABLED
            return False
        if self.on_disabling is not None:
            self.on_disabling()
        self._enabled = False
        self.state = EngineState.DISABLED
        return True
