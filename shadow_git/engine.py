"""Shadow-git engine: wires agent lifecycle events to the recorders.

One ``ShadowGitEngine`` lives in each agent process. The host awaits one
handler at a time, so audit lines and commits never interleave within a
process. Every handler is fail-open: it records what it can and returns
normally whatever happens.

    engine = create_engine()          # None when not configured
    if engine:
        await engine.on_session_start()
        await engine.dispatch("turn_start", {"turnIndex": 1})
"""

from __future__ import annotations

import logging
import os
from typing import Any, Mapping, Optional, Protocol

from .audit import AuditWriter
from .checkpoint import CheckpointRepository
from .config import ShadowGitConfig, kill_switch_engaged
from .control import ControlState
from .executor import Executor, SubprocessExecutor
from .models import AuditEventKind, EngineCounters
from .patches import PatchCapturer
from .safety import fail_open

logger = logging.getLogger(__name__)

BRIEF_MAX_LEN = 40
DEFAULT_HISTORY = 10


class StatusSurface(Protocol):
    def set_status(self, text: str) -> None: ...


class LoggingStatusSurface:
    """Default status surface: the line goes to the log."""

    def set_status(self, text: str) -> None:
        logger.info("%s", text)


def summarize_tool_input(tool_name: str, tool_input: Optional[Mapping[str, Any]], tool_call_id: str = "") -> str:
    """One-line brief of what a tool call touched."""
    tool_input = tool_input or {}
    if tool_name in ("write", "edit", "read"):
        return str(tool_input.get("path") or tool_input.get("file_path") or "")
    if tool_name == "bash":
        cmd = str(tool_input.get("command") or "")
        return cmd[:BRIEF_MAX_LEN] + "..." if len(cmd) > BRIEF_MAX_LEN else cmd
    return tool_call_id


def _tool_count_label(count: int) -> str:
    if count == 0:
        return "no tools"
    if count == 1:
        return "1 tool"
    return f"{count} tools"


def _pick(payload: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in payload and payload[key] is not None:
            return payload[key]
    return default


class ShadowGitEngine:
    def __init__(
        self,
        config: ShadowGitConfig,
        executor: Optional[Executor] = None,
        status: Optional[StatusSurface] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.config = config
        self.executor = executor or SubprocessExecutor()
        self.status_surface = status or LoggingStatusSurface()
        self._environ = environ
        self.counters = EngineCounters()
        self.control = ControlState(
            enabled=not config.kill_switch,
            on_enabled=lambda: self.audit.record(AuditEventKind.ENABLED),
            on_disabling=lambda: self.audit.record(AuditEventKind.DISABLED),
        )
        self.audit = AuditWriter(config.audit_file, config.agent_name, gate=self.control.is_enabled)
        self.checkpoints = CheckpointRepository(config, self.executor, self.audit, self.counters)
        self.patches = PatchCapturer(config, self.executor, self.audit, self.counters)

    @property
    def enabled(self) -> bool:
        return self.control.enabled

    @property
    def turn(self) -> int:
        return self.audit.turn

    def _tag(self, kind: str) -> str:
        return f"[{self.config.agent_name}:{kind}]"

    def status_line(self) -> str:
        line = (
            f"shadow-git: {'on' if self.enabled else 'off'} | turn {self.turn} "
            f"| {self.counters.commits} commits"
        )
        if self.counters.commit_failures:
            line += f" | {self.counters.commit_failures} failed"
        return line

    def _refresh_status(self) -> None:
        try:
            self.status_surface.set_status(self.status_line())
        except Exception as exc:
            logger.warning("Status surface update failed: %s", exc)

    # ── Lifecycle handlers ────────────────────────────────────────────────

    @fail_open()
    async def on_session_start(self) -> None:
        self.control.start(not kill_switch_engaged(self._environ))
        if self.enabled:
            await self.checkpoints.ensure_repository()
            self.audit.record(AuditEventKind.SESSION_START)
            await self.checkpoints.commit(f"{self._tag('start')} session began")
        self._refresh_status()

    @fail_open()
    async def on_session_shutdown(self) -> None:
        self.audit.record(AuditEventKind.SESSION_SHUTDOWN, counters=self.counters.model_dump())
        self._refresh_status()

    @fail_open()
    async def on_agent_end(self, message_count: int = 0) -> None:
        # No commit here: agent_end fires before the final turn_end commit.
        self.audit.record(
            AuditEventKind.AGENT_END,
            message_count=message_count,
            counters=self.counters.model_dump(),
        )

    @fail_open()
    async def on_turn_start(self, turn_index: int) -> None:
        self.audit.turn = turn_index
        self.counters.turns += 1
        self.audit.record(AuditEventKind.TURN_START)

    @fail_open()
    async def on_turn_end(self, turn_index: int, tool_result_count: int = 0) -> None:
        self.audit.turn = turn_index
        self.audit.record(AuditEventKind.TURN_END, tool_result_count=tool_result_count)
        if self.enabled:
            await self.checkpoints.commit(
                f"{self._tag('turn')} turn {turn_index} complete ({_tool_count_label(tool_result_count)})"
            )
        self._refresh_status()

    @fail_open()
    async def on_tool_call(self, tool_name: str, tool_call_id: str, tool_input: Optional[Mapping[str, Any]] = None) -> None:
        self.counters.tool_calls += 1
        self.audit.record(
            AuditEventKind.TOOL_CALL,
            tool=tool_name,
            tool_call_id=tool_call_id,
            input=dict(tool_input or {}),
        )

    @fail_open()
    async def on_tool_result(
        self,
        tool_name: str,
        tool_call_id: str,
        tool_input: Optional[Mapping[str, Any]] = None,
        is_error: bool = False,
    ) -> None:
        if is_error:
            self.counters.tool_errors += 1
        self.audit.record(
            AuditEventKind.TOOL_RESULT,
            tool=tool_name,
            tool_call_id=tool_call_id,
            error=bool(is_error),
            brief=summarize_tool_input(tool_name, tool_input, tool_call_id),
        )
        if self.enabled:
            await self.patches.handle_tool_result(tool_name, tool_input)

    @fail_open()
    async def dispatch(self, event: str, payload: Optional[Mapping[str, Any]] = None) -> None:
        """Route a host event by name. Accepts snake_case or camelCase keys."""
        p = payload or {}
        if event == "session_start":
            await self.on_session_start()
        elif event == "session_shutdown":
            await self.on_session_shutdown()
        elif event == "agent_end":
            messages = _pick(p, "messages", default=None)
            count = _pick(p, "message_count", "messageCount", default=len(messages) if messages is not None else 0)
            await self.on_agent_end(int(count))
        elif event == "turn_start":
            await self.on_turn_start(int(_pick(p, "turn_index", "turnIndex", default=self.turn)))
        elif event == "turn_end":
            results = _pick(p, "tool_results", "toolResults", default=None)
            count = _pick(
                p, "tool_result_count", "toolResultCount",
                default=len(results) if results is not None else 0,
            )
            await self.on_turn_end(int(_pick(p, "turn_index", "turnIndex", default=self.turn)), int(count))
        elif event == "tool_call":
            await self.on_tool_call(
                str(_pick(p, "tool_name", "toolName", default="")),
                str(_pick(p, "tool_call_id", "toolCallId", default="")),
                _pick(p, "input", default={}),
            )
        elif event == "tool_result":
            await self.on_tool_result(
                str(_pick(p, "tool_name", "toolName", default="")),
                str(_pick(p, "tool_call_id", "toolCallId", default="")),
                _pick(p, "input", default={}),
                bool(_pick(p, "is_error", "isError", default=False)),
            )
        else:
            logger.debug("Ignoring unknown lifecycle event %r", event)

    # ── Operator commands ─────────────────────────────────────────────────

    @fail_open(default="shadow-git: status unavailable")
    async def status(self) -> str:
        c = self.counters
        lines = [
            f"shadow-git: {'enabled' if self.enabled else 'disabled'} ({self.control.state.value})",
            f"agent: {self.config.agent_name}",
            f"agent dir: {self.config.agent_dir}",
            f"audit log: {self.config.audit_file}",
            f"patches: {self.config.patch_dir}",
        ]
        if self.config.target_repos:
            lines.append(f"target repos: {', '.join(self.config.target_repos)}")
        if self.config.target_branch:
            lines.append(f"target branch: {self.config.target_branch}")
        lines.append(
            f"turns: {c.turns} | tool calls: {c.tool_calls} | commits: {c.commits} "
            f"| commit failures: {c.commit_failures} | patches: {c.patches_captured}"
        )
        return "\n".join(lines)

    @fail_open(default="shadow-git: enable failed")
    async def enable(self) -> str:
        changed = self.control.enable()
        self._refresh_status()
        return "shadow-git enabled" if changed else "shadow-git already enabled"

    @fail_open(default="shadow-git: disable failed")
    async def disable(self) -> str:
        changed = self.control.disable()
        self._refresh_status()
        return "shadow-git disabled" if changed else "shadow-git already disabled"

    @fail_open(default="shadow-git: history unavailable")
    async def history(self, limit: int = DEFAULT_HISTORY) -> str:
        commits = await self.checkpoints.history(limit)
        if not commits:
            return "(no checkpoint commits)"
        return "\n".join(f"{c.sha} {c.message}" for c in commits)

    @fail_open(default="shadow-git: stats unavailable")
    async def stats(self) -> str:
        return "\n".join(f"{key}: {value}" for key, value in self.counters.model_dump().items())

    @fail_open(default="shadow-git: command failed")
    async def run_command(self, name: str, argument: str = "") -> str:
        name = (name or "").strip().lower()
        if name == "status":
            return await self.status()
        if name == "enable":
            return await self.enable()
        if name == "disable":
            return await self.disable()
        if name == "history":
            try:
                limit = int(argument) if argument.strip() else DEFAULT_HISTORY
            except ValueError:
                return f"usage: history [count] (got {argument!r})"
            return await self.history(limit)
        if name == "stats":
            return await self.stats()
        return "usage: status | enable | disable | history [count] | stats"


def create_engine(
    environ: Optional[Mapping[str, str]] = None,
    executor: Optional[Executor] = None,
    status: Optional[StatusSurface] = None,
) -> Optional[ShadowGitEngine]:
    """Build an engine from the environment, or None if not configured."""
    config = ShadowGitConfig.from_env(os.environ if environ is None else environ)
    if config is None:
        return None
    return ShadowGitEngine(config, executor=executor, status=status, environ=environ)
