"""Environment-based configuration for one recorded agent process.

Read once at process start. The only later environment read is the
kill-switch re-check at session start (see ``kill_switch_engaged``).

Environment:
    PI_WORKSPACE_ROOT      Root of the shared workspace (required)
    PI_AGENT_NAME          Name of this agent (required)
    PI_TARGET_REPOS        Comma-separated target repo paths (optional)
    PI_TARGET_BRANCH       Branch the agent works on in the targets (optional)
    PI_SHADOW_GIT_DISABLED Kill-switch: 1/true/yes/on disables recording
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

logger = logging.getLogger(__name__)

ENV_WORKSPACE_ROOT = "PI_WORKSPACE_ROOT"
ENV_AGENT_NAME = "PI_AGENT_NAME"
ENV_TARGET_REPOS = "PI_TARGET_REPOS"
ENV_TARGET_BRANCH = "PI_TARGET_BRANCH"
ENV_KILL_SWITCH = "PI_SHADOW_GIT_DISABLED"

AUDIT_FILENAME = "audit.jsonl"

_TRUTHY = {"1", "true", "yes", "on"}


def parse_flag(value: Optional[str]) -> bool:
    """Interpret a boolean-like environment string."""
    return (value or "").strip().lower() in _TRUTHY


def kill_switch_engaged(environ: Optional[Mapping[str, str]] = None) -> bool:
    env = os.environ if environ is None else environ
    return parse_flag(env.get(ENV_KILL_SWITCH))


class ShadowGitConfig(BaseModel):
    """Immutable session configuration plus derived paths."""

    model_config = ConfigDict(frozen=True)

    workspace_root: Path
    agent_name: str
    target_repos: tuple[str, ...] = ()
    target_branch: Optional[str] = None
    kill_switch: bool = False

    @field_validator("agent_name")
    @classmethod
    def _single_path_component(cls, value: str) -> str:
        value = value.strip()
        if not value or value in (".", "..") or "/" in value or "\\" in value:
            raise ValueError(f"agent name must be a single path component: {value!r}")
        return value

    @field_validator("target_branch")
    @classmethod
    def _blank_branch_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            return None
        return value

    @property
    def agent_dir(self) -> Path:
        return self.workspace_root / "agents" / self.agent_name

    @property
    def audit_file(self) -> Path:
        return self.agent_dir / AUDIT_FILENAME

    @property
    def patch_dir(self) -> Path:
        return self.workspace_root / "target-patches"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> Optional["ShadowGitConfig"]:
        """Build the config from the environment.

        Returns None when a required setting is missing or invalid, which
        callers treat as "not configured": recording becomes a silent no-op.
        """
        env = os.environ if environ is None else environ
        workspace_root = (env.get(ENV_WORKSPACE_ROOT) or "").strip()
        agent_name = (env.get(ENV_AGENT_NAME) or "").strip()
        if not workspace_root or not agent_name:
            logger.debug("shadow-git not configured (%s / %s unset)", ENV_WORKSPACE_ROOT, ENV_AGENT_NAME)
            return None

        raw_repos = env.get(ENV_TARGET_REPOS, "")
        target_repos = tuple(p.strip() for p in raw_repos.split(",") if p.strip())

        try:
            return cls(
                workspace_root=Path(workspace_root).expanduser(),
                agent_name=agent_name,
                target_repos=target_repos,
                target_branch=env.get(ENV_TARGET_BRANCH),
                kill_switch=parse_flag(env.get(ENV_KILL_SWITCH)),
            )
        except ValidationError as exc:
            logger.warning("Ignoring invalid shadow-git configuration: %s", exc)
            return None
