"""Batch pruning of stale branches across repositories."""

from __future__ import annotations

import inspect
import logging
from pathlib import Path
from typing import Awaitable, Callable, Union

from .classifier import GatewayFactory, GatewayProtocol, StaleBranchClassifier
from .config import PruneOptions, PrunerSettings, get_settings
from .errors import DeletionError, NetworkOrGitError, PruneInProgressError
from .git import GitGateway, GitRunner
from .locator import discover_workspace_repositories, resolve_active_repository
from .models import (
    BranchFailure,
    OutcomeStatus,
    PruneOutcome,
    PruneState,
    Repository,
    RepositoryScan,
    ScanResult,
    Scope,
    StaleBranchRecord,
)

logger = logging.getLogger(__name__)

ConfirmCallback = Callable[[ScanResult], Union[bool, Awaitable[bool]]]

_ACTIVE_STATES = {PruneState.DISCOVERING, PruneState.ANALYZING, PruneState.DELETING}


class CancellationToken:
    """Cooperative cancellation flag checked between units of work."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class BranchPruner:
    """Coordinate discovery, classification and deletion of stale branches.

    Repositories and branches are processed one at a time. ``cancel()`` is
    observed before each repository is analysed and before each branch is
    deleted; work already finished is kept in the returned result.
    """

    def __init__(
        self,
        *,
        settings: PrunerSettings | None = None,
        runner: GitRunner | None = None,
        gateway_factory: GatewayFactory | None = None,
        classifier: StaleBranchClassifier | None = None,
    ) -> None:
        self._settings = settings
        if gateway_factory is None:
            effective = self._effective_settings()
            git_runner = runner or GitRunner(Path(effective.git_path) if effective.git_path else None)
            fetch_timeout = effective.fetch_timeout

            def gateway_factory(path: Path) -> GatewayProtocol:
                return GitGateway(path, git_runner, fetch_timeout=fetch_timeout)

        self._gateway_factory = gateway_factory
        self._classifier = classifier or StaleBranchClassifier(gateway_factory)
        self._state = PruneState.IDLE
        self._token: CancellationToken | None = None
        self._confirming = False

    def _effective_settings(self) -> PrunerSettings:
        if self._settings is None:
            self._settings = get_settings()
        return self._settings

    @property
    def state(self) -> PruneState:
        return self._state

    @property
    def busy(self) -> bool:
        return self._confirming or self._state in _ACTIVE_STATES

    def cancel(self) -> None:
        """Request cancellation of the active run."""

        if self._token is not None:
            self._token.cancel()
            logger.info("Cancellation requested", extra={"state": self._state.value})

    def _transition(self, state: PruneState) -> None:
        logger.debug("Prune state change", extra={"from_state": self._state.value, "state": state.value})
        self._state = state

    def _begin(self) -> CancellationToken:
        if self.busy:
            raise PruneInProgressError(f"A prune run is already {self._state.value}")
        self._token = CancellationToken()
        self._transition(PruneState.IDLE)
        return self._token

    def _resolve_options(self, options: PruneOptions | None) -> PruneOptions:
        if options is not None:
            return options
        return self._effective_settings().to_options()

    @staticmethod
    def _resolve_scope(scope: Scope | str | None, options: PruneOptions) -> Scope:
        if scope is None:
            return Scope.ALL if options.prune_all_workspace_repos else Scope.ACTIVE
        return Scope(scope)

    async def scan_repositories(
        self,
        scope: Scope | str | None = None,
        *,
        options: PruneOptions | None = None,
        active_path: Path | str | None = None,
    ) -> ScanResult:
        """Fetch, prune remote-tracking refs and classify; never deletes."""

        options = self._resolve_options(options)
        token = self._begin()
        scan = await self._scan(self._resolve_scope(scope, options), options, active_path, token)
        self._settle_after_scan(scan)
        return scan

    async def prune_confirmed(self, scan_result: ScanResult, confirmation_granted: bool) -> PruneOutcome:
        """Delete the branches of ``scan_result`` if the caller confirmed it."""

        token = self._begin()
        return await self._prune(scan_result, confirmation_granted, token)

    async def run(
        self,
        scope: Scope | str | None = None,
        *,
        options: PruneOptions | None = None,
        active_path: Path | str | None = None,
        confirm: ConfirmCallback | None = None,
    ) -> PruneOutcome:
        """Scan, ask ``confirm`` for approval, then delete."""

        options = self._resolve_options(options)
        token = self._begin()
        scan = await self._scan(self._resolve_scope(scope, options), options, active_path, token)
        self._settle_after_scan(scan)
        if scan.cancelled or scan.is_empty or scan.identify_only:
            return await self._prune(scan, False, token)

        granted = False
        if confirm is not None:
            # The run still owns the token while the caller decides.
            self._confirming = True
            try:
                answer = confirm(scan)
                if inspect.isawaitable(answer):
                    answer = await answer
            finally:
                self._confirming = False
            granted = bool(answer)
        return await self._prune(scan, granted, token)

    def _settle_after_scan(self, scan: ScanResult) -> None:
        if scan.cancelled:
            self._transition(PruneState.CANCELLED)
        elif scan.is_empty or scan.identify_only:
            self._transition(PruneState.DONE)
        else:
            self._transition(PruneState.AWAITING_CONFIRMATION)

    async def _scan(
        self,
        scope: Scope,
        options: PruneOptions,
        active_path: Path | str | None,
        token: CancellationToken,
    ) -> ScanResult:
        scan = ScanResult(scope=scope, identify_only=options.identify_only, remote_name=options.remote_name)

        self._transition(PruneState.DISCOVERING)
        repositories = self._discover(scope, options, active_path)
        logger.info(
            "Repositories resolved",
            extra={"scope": scope.value, "count": len(repositories)},
        )
        if token.cancelled:
            scan.cancelled = True
            scan.pending = list(repositories)
            return scan

        self._transition(PruneState.ANALYZING)
        for index, repository in enumerate(repositories):
            if token.cancelled:
                scan.cancelled = True
                scan.pending = list(repositories[index:])
                logger.info(
                    "Analysis cancelled",
                    extra={"analyzed": index, "pending": len(scan.pending)},
                )
                break
            scan.repositories.append(await self._analyze(repository, options))

        logger.info(
            "Scan finished",
            extra={"stale_count": scan.total_count, "cancelled": scan.cancelled},
        )
        return scan

    def _discover(
        self,
        scope: Scope,
        options: PruneOptions,
        active_path: Path | str | None,
    ) -> list[Repository]:
        if scope is Scope.ALL:
            return discover_workspace_repositories(options.workspace_roots)
        repository = resolve_active_repository(active_path, options.workspace_roots)
        return [repository] if repository is not None else []

    async def _analyze(self, repository: Repository, options: PruneOptions) -> RepositoryScan:
        try:
            records = await self._classifier.classify(repository, options)
        except NetworkOrGitError as exc:
            logger.warning(
                "Unable to analyse repository",
                extra={"repository": repository.name, "error": str(exc)},
            )
            return RepositoryScan(repository=repository, error=str(exc))
        return RepositoryScan(repository=repository, stale_branches=records)

    async def _prune(
        self,
        scan: ScanResult,
        confirmation_granted: bool,
        token: CancellationToken,
    ) -> PruneOutcome:
        records = scan.records
        if scan.cancelled:
            self._transition(PruneState.CANCELLED)
            return PruneOutcome(status=OutcomeStatus.CANCELLED, scan=scan, skipped=records)
        if not records:
            self._transition(PruneState.DONE)
            return PruneOutcome(status=OutcomeStatus.NOTHING_FOUND, scan=scan)
        if scan.identify_only:
            self._transition(PruneState.DONE)
            return PruneOutcome(status=OutcomeStatus.IDENTIFIED, scan=scan)
        if not confirmation_granted:
            logger.info("Deletion not confirmed", extra={"stale_count": len(records)})
            self._transition(PruneState.DONE)
            return PruneOutcome(status=OutcomeStatus.DECLINED, scan=scan, skipped=records)

        self._transition(PruneState.DELETING)
        outcome = PruneOutcome(status=OutcomeStatus.COMPLETED, scan=scan)
        gateways: dict[Path, GatewayProtocol] = {}
        kept: dict[Path, dict[str, str]] = {}
        for index, record in enumerate(records):
            if token.cancelled:
                outcome.status = OutcomeStatus.CANCELLED
                outcome.skipped.extend(records[index:])
                break
            gateway = gateways.get(record.repository_path)
            if gateway is None:
                gateway = gateways[record.repository_path] = self._gateway_factory(record.repository_path)
                kept[record.repository_path] = await self._recheck(gateway, scan, record.repository_path)
            reason = kept[record.repository_path].get(record.branch_name)
            if reason is not None:
                logger.info(
                    "Branch kept",
                    extra={"repository": record.repository_name, "branch": record.branch_name, "reason": reason},
                )
                outcome.skipped.append(record)
                continue
            outcome.attempted = True
            await self._delete(gateway, record, outcome)

        self._transition(
            PruneState.CANCELLED if outcome.status is OutcomeStatus.CANCELLED else PruneState.DONE
        )
        logger.info(
            "Pruning finished",
            extra={
                "status": outcome.status.value,
                "deleted": outcome.deleted_count,
                "failed": outcome.failed_count,
                "skipped": len(outcome.skipped),
            },
        )
        return outcome

    async def _recheck(self, gateway: GatewayProtocol, scan: ScanResult, path: Path) -> dict[str, str]:
        records = [record for record in scan.records if record.repository_path == path]
        repository = Repository(path=path, name=records[0].repository_name)
        try:
            return await self._classifier.recheck(gateway, repository, records, scan.remote_name)
        except NetworkOrGitError as exc:
            logger.warning(
                "Unable to recheck branches before deletion",
                extra={"repository": repository.name, "error": str(exc)},
            )
            return {record.branch_name: f"unable to recheck: {exc}" for record in records}

    @staticmethod
    async def _delete(gateway: GatewayProtocol, record: StaleBranchRecord, outcome: PruneOutcome) -> None:
        extra = {"repository": record.repository_name, "branch": record.branch_name}
        try:
            await gateway.delete_local_branch(record.branch_name, force=True)
        except DeletionError as exc:
            logger.warning("Failed to delete branch", extra={**extra, "error": exc.reason})
            outcome.failed.append(BranchFailure(record=record, reason=exc.reason))
            return
        logger.info("Deleted branch", extra=extra)
        outcome.deleted.append(record)


__all__ = ["BranchPruner", "CancellationToken", "ConfirmCallback"]
