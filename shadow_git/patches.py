"""Target-patch capture: records agent edits to repositories outside the workspace.

Checkpoint commits only cover the agent directory. When an agent writes or
edits a file in an external target repository, the change is captured as a
standalone diff against that repository's HEAD:

    {patch_dir}/{repo_short_name}/turn-{NNN}-{tool}-{seq}.patch

The patch directory is shared by all agents. Files are created exclusively
and the per-process sequence advances past any name already taken, so
concurrent agents never overwrite each other's patches.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Mapping, Optional

from .audit import AuditWriter
from .config import ShadowGitConfig
from .executor import Executor, run_git
from .models import AuditEventKind, EngineCounters, PatchRecord, PathClassification, PathKind
from .safety import best_effort

logger = logging.getLogger(__name__)

UNKNOWN_REPO_NAME = "target"
PATCH_TOOLS = ("write", "edit")

# Upper bound on sequence numbers probed when another process holds a name.
_MAX_NAME_PROBES = 1000


def resolve_path(path: str) -> Path:
    """Absolute, normalized form of ``path`` (relative to the process cwd)."""
    p = Path(path).expanduser()
    if not p.is_absolute():
        p = Path.cwd() / p
    return Path(os.path.realpath(p))


def _contains(root: Path, path: Path) -> bool:
    return path == root or root in path.parents


def path_from_input(tool_input: Optional[Mapping[str, Any]]) -> Optional[str]:
    if not tool_input:
        return None
    value = tool_input.get("path") or tool_input.get("file_path")
    return str(value) if value else None


class PatchCapturer:
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
        self._seq = 0

    def classify(self, path: str) -> Optional[PathClassification]:
        """Attribute ``path`` to the workspace, a target repo, or nothing.

        With no target repos configured, anything outside the workspace is
        an unknown target and gets captured. With targets configured, an
        unmatched path is treated as internal (None).
        """
        absolute = resolve_path(path)
        if _contains(resolve_path(str(self.config.workspace_root)), absolute):
            return PathClassification(kind=PathKind.WORKSPACE, path=str(absolute))

        for repo in self.config.target_repos:
            if _contains(resolve_path(repo), absolute):
                return PathClassification(kind=PathKind.TARGET_REPO, path=str(absolute), repo=repo)

        if not self.config.target_repos:
            return PathClassification(kind=PathKind.UNKNOWN_TARGET, path=str(absolute))

        return None

    @staticmethod
    def repo_short_name(classification: PathClassification) -> str:
        if classification.kind == PathKind.TARGET_REPO and classification.repo:
            return resolve_path(classification.repo).name or "repo"
        return UNKNOWN_REPO_NAME

    def _diff_cwd(self, classification: PathClassification) -> Path:
        if classification.kind == PathKind.TARGET_REPO and classification.repo:
            return resolve_path(classification.repo)
        return Path(classification.path).parent

    async def _inside_work_tree(self, cwd: Path) -> bool:
        if not cwd.is_dir():
            return False
        result = await self.executor.exec("git", ["-C", str(cwd), "rev-parse", "--is-inside-work-tree"])
        # prints "false" inside a .git directory
        return result.ok and result.stdout.strip() != "false"

    async def capture(
        self,
        classification: PathClassification,
        tool_name: str,
    ) -> Optional[PatchRecord]:
        """Diff the edited file against HEAD and persist a non-empty patch.

        Returns the record, or None for an empty diff or a failure (which is
        recorded as ``patch_error``). A write outside any git work tree with
        no configured target is skipped silently. Never raises.
        """
        if not classification.is_external:
            return None

        file_path = classification.path
        turn = self.audit.turn
        cwd = self._diff_cwd(classification)

        async def _diff_and_write() -> Optional[PatchRecord]:
            if classification.kind == PathKind.UNKNOWN_TARGET and not await self._inside_work_tree(cwd):
                return None
            result = await run_git(self.executor, ["-C", str(cwd), "diff", "HEAD", "--", file_path])
            if not result.stdout.strip():
                return None
            return self._write_patch(classification, tool_name, turn, result.stdout)

        def _report(detail: str) -> None:
            self.audit.record(AuditEventKind.PATCH_ERROR, file=file_path, tool=tool_name, error=detail)

        outcome = await best_effort(_diff_and_write, on_error=_report, label="patch capture")
        record = outcome.value
        if record is None:
            return None

        self.counters.patches_captured += 1
        self.audit.record(AuditEventKind.PATCH_CAPTURED, file=file_path, patch=record.patch, repo=record.repo)
        logger.debug("Captured patch %s", record.patch)
        return record

    def _write_patch(self, classification: PathClassification, tool_name: str, turn: int, diff: str) -> PatchRecord:
        repo_name = self.repo_short_name(classification)
        subdir = self.config.patch_dir / repo_name
        subdir.mkdir(parents=True, exist_ok=True)
        safe_tool = tool_name.replace("/", "_") or "tool"

        for _ in range(_MAX_NAME_PROBES):
            self._seq += 1
            target = subdir / f"turn-{turn:03d}-{safe_tool}-{self._seq}.patch"
            try:
                with open(target, "x", encoding="utf-8") as f:
                    f.write(diff)
            except FileExistsError:
                continue
            return PatchRecord(
                file=classification.path,
                patch=str(target),
                repo=repo_name,
                tool=tool_name,
                turn=turn,
                seq=self._seq,
            )
        raise FileExistsError(f"no free patch name in {subdir} for turn {turn}")

    async def handle_tool_result(self, tool_name: str, tool_input: Optional[Mapping[str, Any]]) -> Optional[PatchRecord]:
        """Run classify -> capture for a write/edit tool result."""
        if tool_name not in PATCH_TOOLS:
            return None
        path = path_from_input(tool_input)
        if not path:
            return None
        classification = self.classify(path)
        if classification is None or not classification.is_external:
            return None
        return await self.capture(classification, tool_name)
