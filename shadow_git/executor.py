"""Subprocess capability used for every git invocation.

Hosts may inject their own ``Executor``; the default runs ``subprocess.run``
in the event loop's default thread pool so the loop is never blocked.
"""

from __future__ import annotations

import asyncio
import functools
import subprocess
from pathlib import Path
from typing import Optional, Protocol, Sequence, Union

from .models import ExecResult

PathLike = Union[str, Path]


class ShadowGitError(RuntimeError):
    """Base error for recording infrastructure. Never leaves a component."""


class GitCommandError(ShadowGitError):
    def __init__(self, args: Sequence[str], result: ExecResult) -> None:
        self.args_used = list(args)
        self.exit_code = result.exit_code
        self.stderr = result.stderr.strip()
        detail = self.stderr or result.stdout.strip() or "no output"
        if len(detail) > 500:
            detail = detail[:500] + "..."
        super().__init__(f"git {' '.join(self.args_used)} exited {self.exit_code}: {detail}")


class Executor(Protocol):
    async def exec(self, command: str, args: Sequence[str], cwd: Optional[PathLike] = None) -> ExecResult: ...


class SubprocessExecutor:
    """Runs commands with ``subprocess.run`` off the event loop."""

    def __init__(self, timeout: Optional[float] = None) -> None:
        self.timeout = timeout

    async def exec(self, command: str, args: Sequence[str], cwd: Optional[PathLike] = None) -> ExecResult:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(self._run, command, list(args), cwd))

    def _run(self, command: str, args: list[str], cwd: Optional[PathLike]) -> ExecResult:
        result = subprocess.run(
            [command, *args],
            capture_output=True,
            text=True,
            timeout=self.timeout,
            cwd=str(cwd) if cwd is not None else None,
        )
        return ExecResult(stdout=result.stdout, stderr=result.stderr, exit_code=result.returncode)


async def run_git(executor: Executor, args: Sequence[str], cwd: Optional[PathLike] = None) -> ExecResult:
    """Run git and raise ``GitCommandError`` on a non-zero exit."""
    result = await executor.exec("git", list(args), cwd=cwd)
    if not result.ok:
        raise GitCommandError(args, result)
    return result
