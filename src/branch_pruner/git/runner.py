"""Async runner for the git CLI."""

from __future__ import annotations

import asyncio
import json
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Mapping

from .utils import sanitize_environment


class GitRunnerError(RuntimeError):
    """Base class for git runner errors."""


class GitNotFoundError(GitRunnerError):
    """Raised when the git executable cannot be located."""


class GitTimeoutError(GitRunnerError):
    """Raised when a git command does not finish within its timeout."""


@dataclass(slots=True)
class GitExecutionResult:
    """Holds the outcome of a git invocation."""

    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def message(self) -> str:
        """Best available human-readable error text."""

        return self.stderr.strip() or self.stdout.strip() or f"git exited with code {self.returncode}"


class GitRunner:
    """Execute git commands asynchronously against a repository path."""

    def __init__(self, executable: Path | None = None) -> None:
        self._executable_path = self._resolve_executable(executable)

    @staticmethod
    def _resolve_executable(explicit: Path | None) -> Path:
        if explicit is not None:
            candidate = Path(explicit)
            if candidate.exists() and candidate.is_file():
                return candidate
            raise GitNotFoundError(f"git executable not found at {candidate}")

        binary = shutil.which("git")
        if binary is None:
            raise GitNotFoundError("git executable not found on PATH")
        return Path(binary)

    @property
    def executable(self) -> Path:
        return self._executable_path

    async def version(self) -> GitExecutionResult:
        return await self._invoke("--version")

    async def run(
        self,
        repository: Path,
        *args: str,
        timeout: float | None = None,
    ) -> GitExecutionResult:
        """Run ``git -C <repository> <args>``."""

        return await self._invoke("-C", str(repository), *args, timeout=timeout)

    async def _invoke(self, *args: str, timeout: float | None = None) -> GitExecutionResult:
        cmd = [str(self._executable_path), *args]
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=sanitize_environment(),
            )
        except FileNotFoundError as exc:
            raise GitNotFoundError(f"git executable not found at {self._executable_path}") from exc

        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(process.communicate(), timeout)
        except asyncio.TimeoutError as exc:
            process.kill()
            await process.wait()
            raise GitTimeoutError(f"git {' '.join(args)} timed out after {timeout}s") from exc

        stdout = stdout_bytes.decode("utf-8", errors="replace")
        stderr = stderr_bytes.decode("utf-8", errors="replace")
        return GitExecutionResult(args=tuple(cmd), returncode=process.returncode, stdout=stdout, stderr=stderr)


class FakeGitRunner(GitRunner):
    """Test double that simulates git responses.

    ``routes`` maps the git arguments (without the ``-C <path>`` prefix) to a
    canned result; unmatched calls consume ``responses`` in order and default
    to an empty successful result.
    """

    def __init__(  # type: ignore[override]
        self,
        responses: Iterable[GitExecutionResult] | None = None,
        *,
        routes: Mapping[tuple[str, ...], GitExecutionResult] | None = None,
    ) -> None:
        self._responses = list(responses or [])
        self._routes = dict(routes or {})
        self._invocations: list[tuple[str, ...]] = []
        self._executable_path = Path("/tmp/fake-git")

    async def _invoke(self, *args: str, timeout: float | None = None) -> GitExecutionResult:  # type: ignore[override]
        self._invocations.append(tuple(args))
        key = tuple(args[2:]) if args[:1] == ("-C",) else tuple(args)
        if key in self._routes:
            return self._routes[key]
        if self._responses:
            return self._responses.pop(0)
        return GitExecutionResult(args=tuple(args), returncode=0, stdout="", stderr="")

    @property
    def invocations(self) -> list[tuple[str, ...]]:
        return self._invocations


def serialize_result(result: GitExecutionResult) -> str:
    """Serialize a command result for debug logging."""

    return json.dumps(
        {
            "args": list(result.args),
            "returncode": result.returncode,
            "stdout": result.stdout,
            "stderr": result.stderr,
        }
    )
