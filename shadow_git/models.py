"""Pydantic models for audit entries, counters, and git/patch results."""

from __future__ import annotations

import time
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


def now_ms() -> int:
    return int(time.time() * 1000)


class AuditEventKind(str, Enum):
    SESSION_START = "session_start"
    SESSION_SHUTDOWN = "session_shutdown"
    AGENT_END = "agent_end"
    TURN_START = "turn_start"
    TURN_END = "turn_end"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    GIT_INIT = "git_init"
    GIT_INIT_ERROR = "git_init_error"
    COMMIT_ERROR = "commit_error"
    PATCH_CAPTURED = "patch_captured"
    PATCH_ERROR = "patch_error"
    ENABLED = "enabled"
    DISABLED = "disabled"


class AuditEntry(BaseModel):
    """One line of audit.jsonl. Payload fields ride along as extras."""

    model_config = ConfigDict(extra="allow", use_enum_values=True, frozen=True)

    ts: int = Field(default_factory=now_ms)
    event: AuditEventKind
    agent: str
    turn: int = 0


class EngineCounters(BaseModel):
    """Ground-truth counters for one agent process."""

    commits: int = 0
    commit_failures: int = 0
    tool_calls: int = 0
    tool_errors: int = 0
    turns: int = 0
    patches_captured: int = 0


class ExecResult(BaseModel):
    stdout: str = ""
    stderr: str = ""
    exit_code: int = 0

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class PathKind(str, Enum):
    WORKSPACE = "workspace"
    TARGET_REPO = "target_repo"
    UNKNOWN_TARGET = "unknown_target"


class PathClassification(BaseModel):
    kind: PathKind
    path: str
    repo: Optional[str] = None  # configured target repo path, TARGET_REPO only

    @property
    def is_external(self) -> bool:
        return self.kind != PathKind.WORKSPACE


class PatchRecord(BaseModel):
    file: str
    patch: str
    repo: str
    tool: str
    turn: int
    seq: int


class CommitInfo(BaseModel):
    sha: str
    message: str


class AgentStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    DONE = "done"
    FINISHED = "finished"


class AgentSummary(BaseModel):
    agent: str
    status: AgentStatus = AgentStatus.PENDING
    turns: int = 0
    tool_calls: int = 0
    tool_errors: int = 0
    patches_captured: int = 0
    commit_errors: int = 0
    elapsed_ms: int = 0
    top_tools: list[tuple[str, int]] = Field(default_factory=list)
    last_event: Optional[str] = None


class WorkspaceSummary(BaseModel):
    workspace_root: str
    generated_at: int = Field(default_factory=now_ms)
    agents: list[AgentSummary] = Field(default_factory=list)

    @property
    def totals(self) -> dict:
        return {
            "active": sum(1 for a in self.agents if a.status == AgentStatus.ACTIVE),
            "done": sum(1 for a in self.agents if a.status in (AgentStatus.DONE, AgentStatus.FINISHED)),
            "turns": sum(a.turns for a in self.agents),
            "tool_calls": sum(a.tool_calls for a in self.agents),
            "tool_errors": sum(a.tool_errors for a in self.agents),
        }
