"""Shadow-git: audit log and per-agent git checkpoints for coding agents.

Each agent process appends lifecycle events to ``agents/{agent}/audit.jsonl``
and commits its directory to its own repository at every turn boundary.
Edits to external target repositories are captured as patch files. No part
of it is allowed to fail or block the agent being recorded.
"""

from .config import ShadowGitConfig
from .engine import ShadowGitEngine, create_engine
from .models import AuditEventKind, EngineCounters

__all__ = [
    "AuditEventKind",
    "EngineCounters",
    "ShadowGitConfig",
    "ShadowGitEngine",
    "create_engine",
]
