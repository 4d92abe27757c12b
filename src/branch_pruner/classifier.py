"""Stale branch classification."""

from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path
from typing import Callable, Iterable, Protocol

from .config import PruneOptions
from .errors import NetworkOrGitError
from .models import (
    LocalBranch,
    LocalBranchListing,
    RemoteTrackingBranch,
    Repository,
    StaleBranchRecord,
    StaleConfidence,
)

logger = logging.getLogger(__name__)


class GatewayProtocol(Protocol):
    """Protocol for the repository metadata operations the classifier relies on."""

    async def fetch_prune(self) -> None:
        ...

    async def list_local_branches(self) -> LocalBranchListing:
        ...

    async def list_remote_tracking_branches(self) -> list[str]:
        ...

    async def list_remotes(self) -> list[str]:
        ...

    async def get_branch_upstream_remote(self, branch_name: str) -> str | None:
        ...

    async def has_origin_reference_in_reflog(self, branch_name: str) -> bool:
        ...

    async def delete_local_branch(self, branch_name: str, *, force: bool = True) -> None:
        ...


GatewayFactory = Callable[[Path], GatewayProtocol]


class StaleBranchClassifier:
    """Decide which local branches of a repository are stale.

    A branch is stale when no remote-tracking branch with the same short name
    exists and either it has an upstream remote configured (authoritative) or
    the reflog mentions it together with ``origin`` (weak fallback).
    """

    def __init__(self, gateway_factory: GatewayFactory) -> None:
        self._gateway_factory = gateway_factory

    async def classify(
        self,
        repository: Repository,
        options: PruneOptions | None = None,
    ) -> list[StaleBranchRecord]:
        """Return the stale branches of ``repository``.

        Fetch failures are logged and classification continues on the local
        remote-tracking data. Listing failures raise ``NetworkOrGitError``.
        """

        options = options or PruneOptions()
        gateway = self._gateway_factory(repository.path)
        log_extra = {"repository": repository.name}

        try:
            await gateway.fetch_prune()
        except NetworkOrGitError as exc:
            logger.warning(
                "Fetch with prune failed; using local remote-tracking data",
                extra={**log_extra, "error": str(exc)},
            )

        listing = await gateway.list_local_branches()
        remote_short_names = await self._remote_short_names(gateway, options.remote_name, repository)
        protected = set(options.protected_branches)

        records: list[StaleBranchRecord] = []
        for branch in listing.branches():
            branch_name = branch.name
            if branch.is_current or branch_name in protected:
                continue
            if branch_name in remote_short_names:
                continue

            branch = await self._with_upstream(gateway, repository, branch)
            confidence = await self._stale_confidence(gateway, branch)
            if confidence is None:
                logger.debug("Local-only branch left alone", extra={**log_extra, "branch": branch_name})
                continue

            logger.info(
                "Stale branch found",
                extra={**log_extra, "branch": branch_name, "confidence": confidence.value},
            )
            records.append(
                StaleBranchRecord(
                    branch_name=branch_name,
                    repository_path=repository.path,
                    repository_name=repository.name,
                    confidence=confidence,
                )
            )
        return records

    async def recheck(
        self,
        gateway: GatewayProtocol,
        repository: Repository,
        records: Iterable[StaleBranchRecord],
        remote_name: str = "origin",
    ) -> dict[str, str]:
        """Map each record that is no longer stale to the reason it is kept.

        Uses the refs as they are now, without fetching, so a branch that was
        pushed again or checked out after the scan is not deleted.
        """

        listing = await gateway.list_local_branches()
        remote_short_names = await self._remote_short_names(gateway, remote_name, repository)
        local = set(listing.all)

        reasons: dict[str, str] = {}
        for record in records:
            if record.branch_name not in local:
                reasons[record.branch_name] = "branch no longer exists"
            elif record.branch_name == listing.current:
                reasons[record.branch_name] = "branch is checked out"
            elif record.branch_name in remote_short_names:
                reasons[record.branch_name] = "remote branch exists again"
        return reasons

    async def _remote_short_names(
        self,
        gateway: GatewayProtocol,
        remote_name: str,
        repository: Repository,
    ) -> set[str]:
        remote_refs = await gateway.list_remote_tracking_branches()
        remotes = {remote_name}
        try:
            remotes.update(await gateway.list_remotes())
        except NetworkOrGitError as exc:
            logger.debug(
                "Unable to list remotes",
                extra={"repository": repository.name, "error": str(exc)},
            )
        return {RemoteTrackingBranch.parse(ref, remotes).branch_short_name for ref in remote_refs}

    @staticmethod
    async def _with_upstream(
        gateway: GatewayProtocol,
        repository: Repository,
        branch: LocalBranch,
    ) -> LocalBranch:
        try:
            upstream = await gateway.get_branch_upstream_remote(branch.name)
        except NetworkOrGitError as exc:
            logger.warning(
                "Unable to read upstream configuration",
                extra={"repository": repository.name, "branch": branch.name, "error": str(exc)},
            )
            return branch
        upstream = upstream.strip() if upstream else None
        return replace(branch, upstream_remote=upstream or None)

    @staticmethod
    async def _stale_confidence(gateway: GatewayProtocol, branch: LocalBranch) -> StaleConfidence | None:
        if branch.upstream_remote:
            return StaleConfidence.UPSTREAM
        if await gateway.has_origin_reference_in_reflog(branch.name):
            return StaleConfidence.REFLOG
        return None


__all__ = ["GatewayFactory", "GatewayProtocol", "StaleBranchClassifier"]
