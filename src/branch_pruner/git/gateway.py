"""Per-repository access to branch and remote-tracking metadata."""

from __future__ import annotations

import logging
import re
from pathlib import Path

from ..errors import DeletionError, NetworkOrGitError
from ..models import LocalBranchListing
from .runner import GitExecutionResult, GitRunner, GitRunnerError, serialize_result

logger = logging.getLogger(__name__)

_LOCAL_PREFIX = "refs/heads/"
_REMOTE_PREFIX = "refs/remotes/"
# `git config --get` exits with 1 when the key is not set.
_CONFIG_KEY_MISSING = 1


class GitGateway:
    """Thin wrapper over git commands scoped to one repository.

    The gateway holds no state between calls; every method shells out to git
    and parses the output fresh.
    """

    def __init__(
        self,
        repository_path: Path,
        runner: GitRunner,
        *,
        fetch_timeout: float | None = None,
    ) -> None:
        self._path = Path(repository_path)
        self._runner = runner
        self._fetch_timeout = fetch_timeout

    @property
    def repository_path(self) -> Path:
        return self._path

    async def _git(self, *args: str, timeout: float | None = None) -> GitExecutionResult:
        try:
            return await self._runner.run(self._path, *args, timeout=timeout)
        except GitRunnerError as exc:
            raise NetworkOrGitError(str(exc)) from exc

    async def _checked(self, *args: str, timeout: float | None = None) -> GitExecutionResult:
        result = await self._git(*args, timeout=timeout)
        if not result.ok:
            logger.debug("git command failed", extra={"result": serialize_result(result)})
            raise NetworkOrGitError(f"git {' '.join(args)} failed in {self._path}: {result.message}")
        return result

    async def fetch_prune(self) -> None:
        """Fetch and drop remote-tracking refs for branches deleted upstream."""

        await self._checked("fetch", "--prune", timeout=self._fetch_timeout)

    async def list_local_branches(self) -> LocalBranchListing:
        result = await self._checked(
            "for-each-ref", "--format=%(HEAD)%09%(refname)", _LOCAL_PREFIX.rstrip("/")
        )
        names: list[str] = []
        current: str | None = None
        for line in result.stdout.splitlines():
            marker, _, ref = line.partition("\t")
            if not ref.startswith(_LOCAL_PREFIX):
                continue
            name = ref[len(_LOCAL_PREFIX) :]
            names.append(name)
            if marker.strip() == "*":
                current = name
        return LocalBranchListing(all=tuple(names), current=current)

    async def list_remote_tracking_branches(self) -> list[str]:
        """Return ``<remote>/<branch>`` names, skipping symbolic refs such as ``origin/HEAD``."""

        result = await self._checked(
            "for-each-ref", "--format=%(refname)%09%(symref)", _REMOTE_PREFIX.rstrip("/")
        )
        branches: list[str] = []
        for line in result.stdout.splitlines():
            ref, _, symref = line.partition("\t")
            if symref.strip() or not ref.startswith(_REMOTE_PREFIX):
                continue
            branches.append(ref[len(_REMOTE_PREFIX) :])
        return branches

    async def list_remotes(self) -> list[str]:
        result = await self._checked("remote")
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    async def get_branch_upstream_remote(self, branch_name: str) -> str | None:
        """Return ``branch.<name>.remote`` or None when it was never configured."""

        result = await self._git("config", "--get", f"branch.{branch_name}.remote")
        if result.returncode == _CONFIG_KEY_MISSING:
            return None
        if not result.ok:
            raise NetworkOrGitError(
                f"Unable to read upstream for '{branch_name}' in {self._path}: {result.message}"
            )
        return result.stdout.strip() or None

    async def has_origin_reference_in_reflog(self, branch_name: str) -> bool:
        """Best-effort check for reflog entries naming both ``origin`` and the branch.

        Each reflog entry is matched on its reflog subject and commit subject
        together; both terms must appear in the same entry. Any git failure is
        reported as no match.
        """

        try:
            result = await self._git("reflog", "show", "--all", "--format=%gs%x09%s", "--")
        except NetworkOrGitError as exc:
            logger.debug("Reflog unavailable", extra={"repository": str(self._path), "error": str(exc)})
            return False
        if not result.ok:
            return False

        branch_pattern = re.compile(rf"(?<![\w.-]){re.escape(branch_name)}(?![\w./-])")
        for entry in result.stdout.splitlines():
            if "origin" in entry and branch_pattern.search(entry):
                return True
        return False

    async def delete_local_branch(self, branch_name: str, *, force: bool = True) -> None:
        """Delete a local branch; ``force`` ignores merge status."""

        flag = "-D" if force else "-d"
        try:
            result = await self._git("branch", flag, "--", branch_name)
        except NetworkOrGitError as exc:
            raise DeletionError(branch_name, str(exc)) from exc
        if not result.ok:
            raise DeletionError(branch_name, result.message)


__all__ = ["GitGateway"]
