"""Fire-and-forget audit log writer. Guarantee: never raises.

Each agent appends structured events to its own append-only
``agents/{agent}/audit.jsonl``. If a write fails, the failure is reported
on the module logger and the calling handler is completely unaffected.

Usage:
    writer = AuditWriter(config.audit_file, agent="scout1")
    writer.turn = 3
    writer.record(AuditEventKind.TOOL_CALL, tool="bash", tool_call_id="tc-1")
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Callable, Optional, Union

from .models import AuditEntry, AuditEventKind

logger = logging.getLogger(__name__)


class AuditWriter:
    def __init__(
        self,
        path: Union[Path, str],
        agent: str,
        gate: Optional[Callable[[], bool]] = None,
    ) -> None:
        self.path = Path(path)
        self.agent = agent
        self.turn = 0
        self._gate = gate

    @property
    def active(self) -> bool:
        return self._gate is None or bool(self._gate())

    def record(self, kind: Union[AuditEventKind, str], **fields: Any) -> bool:
        """Append one entry. Returns False if suppressed or the write failed.

        ``fields`` must not reuse the envelope keys (ts, event, agent, turn);
        any such key is dropped in favor of the envelope value.
        """
        if not self.active:
            return False
        try:
            payload = {k: v for k, v in fields.items() if k not in AuditEntry.model_fields}
            entry = AuditEntry(event=AuditEventKind(kind), agent=self.agent, turn=self.turn, **payload)
            line = json.dumps(entry.model_dump(), separators=(",", ":"), default=str)
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line + "\n")
            return True
        except Exception as exc:
            logger.warning("shadow-git: could not write audit entry %s to %s: %s", kind, self.path, exc)
            return False


def read_audit_log(path: Union[Path, str], offset: int = 0) -> tuple[list[dict], int]:
    """Read complete entries from ``path`` starting at byte ``offset``.

    Returns (entries, new_offset). A trailing line without a newline is an
    append still in progress; it is left for the next read. Corrupt lines
    are skipped. An offset beyond the end of the file restarts at zero.
    """
    path = Path(path)
    if not path.exists():
        return [], offset

    entries: list[dict] = []
    try:
        with open(path, "rb") as f:
            f.seek(0, 2)
            if offset > f.tell():
                offset = 0
            f.seek(offset)
            data = f.read()
    except OSError as exc:
        logger.warning("Error reading audit log %s: %s", path, exc)
        return [], offset

    complete, sep, _partial = data.rpartition(b"\n")
    if not sep:
        return [], offset

    for raw in complete.split(b"\n"):
        raw = raw.strip()
        if not raw:
            continue
        try:
            entry = json.loads(raw.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError):
            continue
        if isinstance(entry, dict):
            entries.append(entry)

    return entries, offset + len(complete) + 1
