"""Fail-open helpers. Nothing recorded here may ever fail the observed agent.

Every infrastructure operation (subprocess call, file write) goes through
``best_effort``; every public engine handler is wrapped with ``fail_open``.
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class Outcome(Generic[T]):
    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None


def describe(exc: BaseException) -> str:
    text = str(exc).strip()
    return f"{type(exc).__name__}: {text}" if text else type(exc).__name__


async def best_effort(
    action: Callable[[], Awaitable[T]],
    on_error: Optional[Callable[[str], Any]] = None,
    label: str = "operation",
) -> Outcome[T]:
    """Await ``action``; convert any exception into a failed Outcome.

    ``on_error`` receives the failure detail (typically to record an audit
    entry). A failure inside ``on_error`` is logged and dropped.
    """
    try:
        return Outcome(ok=True, value=await action())
    except Exception as exc:
        detail = describe(exc)
        logger.debug("%s failed: %s", label, detail)
        if on_error is not None:
            try:
                on_error(detail)
            except Exception as report_exc:
                logger.warning("Could not report %s failure: %s", label, report_exc)
        return Outcome(ok=False, error=detail)


def fail_open(default: Any = None):
    """Decorate an async handler so it never raises into the host."""

    def decorator(fn):
        @functools.wraps(fn)
        async def wrapper(*args, **kwargs):
            try:
                return await fn(*args, **kwargs)
            except Exception:
                logger.exception("shadow-git handler %s failed", fn.__name__)
                return default

        return wrapper

    return decorator
