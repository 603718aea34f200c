"""Shared fixtures: throwaway workspaces, configs, and a scriptable executor."""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path

import pytest

from shadow_git.config import ShadowGitConfig
from shadow_git.models import ExecResult

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")

GIT_IDENTITY = ["-c", "user.name=test", "-c", "user.email=test@example.com", "-c", "commit.gpgsign=false"]


def git(cwd: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", *GIT_IDENTITY, *args],
        cwd=str(cwd),
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout


def init_repo(path: Path, files: dict | None = None) -> Path:
    """Create a git repo at ``path`` with one commit containing ``files``."""
    path.mkdir(parents=True, exist_ok=True)
    git(path, "init", "-q")
    for name, content in (files or {}).items():
        (path / name).parent.mkdir(parents=True, exist_ok=True)
        (path / name).write_text(content)
    git(path, "add", "-A")
    git(path, "commit", "-q", "--allow-empty", "-m", "init")
    return path


def commit_count(path: Path) -> int:
    return int(git(path, "rev-list", "--count", "HEAD").strip())


class FakeExecutor:
    """Records every call; fails any call whose args contain ``fail_on``."""

    def __init__(self, fail_on: str | None = None, stdout: str = "", exit_code: int = 1) -> None:
        self.calls: list[tuple[str, list[str]]] = []
        self.fail_on = fail_on
        self.stdout = stdout
        self.exit_code = exit_code

    async def exec(self, command, args, cwd=None):
        self.calls.append((command, list(args)))
        if self.fail_on is not None and self.fail_on in args:
            return ExecResult(stderr=f"fatal: {self.fail_on} refused", exit_code=self.exit_code)
        return ExecResult(stdout=self.stdout)

    def subcommands(self) -> list[str]:
        """The git subcommand of each call (first arg after the -C/-c options)."""
        names = []
        for _, args in self.calls:
            i = 0
            while i < len(args) and args[i] in ("-C", "-c"):
                i += 2
            names.append(args[i] if i < len(args) else "")
        return names


@pytest.fixture
def workspace(tmp_path):
    """A version-controlled workspace root with an empty agents/ directory."""
    root = tmp_path / "ws"
    (root / "agents").mkdir(parents=True)
    return root


@pytest.fixture
def git_workspace(workspace):
    init_repo(workspace, {"README.md": "workspace\n"})
    return workspace


@pytest.fixture
def make_config(workspace):
    def _make(agent: str = "scout1", **kwargs) -> ShadowGitConfig:
        return ShadowGitConfig(workspace_root=workspace, agent_name=agent, **kwargs)

    return _make
