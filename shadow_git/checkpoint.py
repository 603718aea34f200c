"""Per-agent checkpoint repository.

Each agent owns a git repository rooted at its own directory
(``agents/{agent}/.git``). No two agents share one and the workspace-root
repository is never touched, so parallel agents cannot contend on an
index lock. Commits are issued directly, with no queue.

Cadence: one commit per turn boundary, plus the ``agent initialized``
commit on creation and the ``session began`` commit at session start.
Tool calls and ``agent_end`` never commit.
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path

from .audit import AuditWriter
from .config import AUDIT_FILENAME, ShadowGitConfig
from .executor import Executor, run_git
from .models import AuditEventKind, CommitInfo, EngineCounters
from .safety import best_effort

logger = logging.getLogger(__name__)

COMMITTER_NAME = "shadow-git"
COMMITTER_EMAIL = "shadow-git@localhost"


class RepoState(str, Enum):
    UNKNOWN = "unknown"
    READY = "ready"
    UNAVAILABLE = "unavailable"


class CheckpointRepository:
    def __init__(
        self,
        config: ShadowGitConfig,
        executor: Executor,
        audit: AuditWriter,
        counters: EngineCounters,
    ) -> None:
        self.config = config
        self.executor = executor
        self.audit = audit
        self.counters = counters
        self.state = RepoState.UNKNOWN

    @property
    def path(self) -> Path:
        return self.config.agent_dir

    def _git_args(self, *args: str) -> list[str]:
        return [
            "-C", str(self.path),
            "-c", f"user.name={COMMITTER_NAME}",
            "-c", f"user.email={COMMITTER_EMAIL}",
            "-c", "commit.gpgsign=false",
            *args,
        ]

    async def _git(self, *args: str):
        return await run_git(self.executor, self._git_args(*args))

    async def ensure_repository(self) -> bool:
        """Create the agent repository if missing. Idempotent, never raises.

        On failure the manager becomes UNAVAILABLE for the rest of the
        process and later commits are silent no-ops.
        """
        if self.state == RepoState.READY:
            return True
        if self.state == RepoState.UNAVAILABLE:
            return False

        def _report(detail: str) -> None:
            self.audit.record(AuditEventKind.GIT_INIT_ERROR, path=str(self.path), error=detail)

        if (self.path / ".git").exists():
            outcome = await best_effort(self._adopt_existing, on_error=_report, label="git reuse")
            self.state = RepoState.READY if outcome.ok else RepoState.UNAVAILABLE
            return outcome.ok

        outcome = await best_effort(self._initialize, on_error=_report, label="git init")
        if not outcome.ok:
            self.state = RepoState.UNAVAILABLE
            return False

        self.state = RepoState.READY
        self.counters.commits += 1
        self.audit.record(AuditEventKind.GIT_INIT, path=str(self.path))
        logger.info("Initialized checkpoint repository at %s", self.path)
        return True

    async def _initialize(self) -> None:
        self.path.mkdir(parents=True, exist_ok=True)
        await self._git("init", "-q")
        self._exclude_audit_log()
        # Only the exclusion rule; existing agent files land in the first turn commit.
        await self._git("add", "--", ".gitignore")
        await self._git("commit", "-q", "--allow-empty", "-m", f"[{self.config.agent_name}:init] agent initialized")

    async def _adopt_existing(self) -> None:
        """Reuse a repository created elsewhere; never reinitialize it.

        The audit log must stay out of the index even if the repository
        predates the exclusion rule or an earlier init was interrupted.
        """
        self._exclude_audit_log()
        await self._git("rm", "--cached", "--ignore-unmatch", "-q", "--", AUDIT_FILENAME)

    def _exclude_audit_log(self) -> None:
        gitignore = self.path / ".gitignore"
        existing = gitignore.read_text(encoding="utf-8") if gitignore.exists() else ""
        if AUDIT_FILENAME in (line.strip() for line in existing.splitlines()):
            return
        if existing and not existing.endswith("\n"):
            existing += "\n"
        gitignore.write_text(existing + AUDIT_FILENAME + "\n", encoding="utf-8")

    def format_message(self, message: str) -> str:
        if self.config.target_branch:
            return f"{message} [target: {self.config.target_branch}]"
        return message

    async def commit(self, message: str) -> bool:
        """Stage everything in the agent directory and commit (empty allowed).

        Failures bump ``commit_failures`` and record ``commit_error``; the
        caller neither retries nor propagates.
        """
        if self.state == RepoState.UNKNOWN:
            await self.ensure_repository()
        if self.state == RepoState.UNAVAILABLE:
            return True

        full_message = self.format_message(message)

        async def _stage_and_commit() -> None:
            await self._git("add", "-A")
            await self._git("commit", "-q", "--allow-empty", "-m", full_message)

        def _report(detail: str) -> None:
            self.counters.commit_failures += 1
            self.audit.record(AuditEventKind.COMMIT_ERROR, message=full_message, error=detail)

        outcome = await best_effort(_stage_and_commit, on_error=_report, label="checkpoint commit")
        if outcome.ok:
            self.counters.commits += 1
        return outcome.ok

    async def history(self, limit: int = 10) -> list[CommitInfo]:
        """Most recent checkpoint commits, newest first."""
        if not (self.path / ".git").exists():
            return []

        async def _log():
            return await self._git("log", f"-n{max(1, int(limit))}", "--format=%h%x09%s")

        outcome = await best_effort(_log, label="git log")
        if not outcome.ok:
            return []
        commits = []
        for line in outcome.value.stdout.splitlines():
            sha, _, message = line.partition("\t")
            if sha:
                commits.append(CommitInfo(sha=sha, message=message))
        return commits

    async def tracked_files(self) -> list[str]:
        if not (self.path / ".git").exists():
            return []

        async def _ls():
            return await self._git("ls-files")

        outcome = await best_effort(_ls, label="git ls-files")
        if not outcome.ok:
            return []
        return [line for line in outcome.value.stdout.splitlines() if line]
