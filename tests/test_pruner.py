from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

import pytest

from branch_pruner.config import PruneOptions
from branch_pruner.errors import DeletionError, NetworkOrGitError, PruneInProgressError
from branch_pruner.models import (
    LocalBranchListing,
    OutcomeStatus,
    PruneState,
    Repository,
    Scope,
)
from branch_pruner.pruner import BranchPruner


@dataclass
class RepoState:
    local: list[str]
    current: str | None = "main"
    remote: list[str] = field(default_factory=lambda: ["origin/main"])
    upstream: dict[str, str] = field(default_factory=dict)
    list_error: bool = False
    delete_failures: set[str] = field(default_factory=set)
    deleted: list[str] = field(default_factory=list)
    on_list: Callable[[], None] | None = None
    on_delete: Callable[[str], None] | None = None


class StubGateway:
    def __init__(self, state: RepoState) -> None:
        self.state = state

    async def fetch_prune(self) -> None:
        return None

    async def list_local_branches(self) -> LocalBranchListing:
        if self.state.on_list is not None:
            self.state.on_list()
        if self.state.list_error:
            raise NetworkOrGitError("fatal: not a git repository")
        remaining = [name for name in self.state.local if name not in self.state.deleted]
        return LocalBranchListing(all=tuple(remaining), current=self.state.current)

    async def list_remote_tracking_branches(self) -> list[str]:
        return list(self.state.remote)

    async def list_remotes(self) -> list[str]:
        return ["origin"]

    async def get_branch_upstream_remote(self, branch_name: str) -> str | None:
        return self.state.upstream.get(branch_name)

    async def has_origin_reference_in_reflog(self, branch_name: str) -> bool:
        return False

    async def delete_local_branch(self, branch_name: str, *, force: bool = True) -> None:
        assert force
        if self.state.on_delete is not None:
            self.state.on_delete(branch_name)
        if branch_name in self.state.delete_failures:
            raise DeletionError(branch_name, "cannot lock ref")
        self.state.deleted.append(branch_name)


def make_repo(base: Path, name: str) -> Path:
    path = base / name
    (path / ".git").mkdir(parents=True)
    return path.resolve()


def build_pruner(states: dict[Path, RepoState]) -> BranchPruner:
    return BranchPruner(gateway_factory=lambda path: StubGateway(states[Path(path)]))


def stale_state(*branches: str, **kwargs) -> RepoState:
    return RepoState(
        local=["main", *branches],
        upstream={branch: "origin" for branch in branches},
        **kwargs,
    )


def test_run_deletes_confirmed_stale_branches(tmp_path: Path) -> None:
    repo = make_repo(tmp_path, "app")
    state = RepoState(
        local=["main", "feature-a", "feature-b"],
        upstream={"feature-a": "origin"},
    )
    pruner = build_pruner({repo: state})
    shown: list[int] = []

    def confirm(scan) -> bool:
        shown.append(scan.total_count)
        return True

    outcome = asyncio.run(
        pruner.run(Scope.ACTIVE, options=PruneOptions(), active_path=repo / "src" / "app.py", confirm=confirm)
    )

    assert shown == [1]
    assert outcome.status is OutcomeStatus.COMPLETED
    assert [record.branch_name for record in outcome.deleted] == ["feature-a"]
    assert state.deleted == ["feature-a"]
    assert pruner.state is PruneState.DONE


def test_deletion_failure_is_isolated(tmp_path: Path) -> None:
    repo = make_repo(tmp_path, "app")
    state = stale_state("one", "two", "three", delete_failures={"two"})
    pruner = build_pruner({repo: state})
    options = PruneOptions()

    scan = asyncio.run(pruner.scan_repositories("active", options=options, active_path=repo))
    outcome = asyncio.run(pruner.prune_confirmed(scan, True))

    assert outcome.status is OutcomeStatus.COMPLETED
    assert [record.branch_name for record in outcome.deleted] == ["one", "three"]
    assert [failure.record.branch_name for failure in outcome.failed] == ["two"]
    assert outcome.failed[0].reason == "cannot lock ref"
    assert outcome.attempted


def test_cancel_after_first_repository(tmp_path: Path) -> None:
    repos = [make_repo(tmp_path, name) for name in ("alpha", "beta", "gamma")]
    states = {path: stale_state(f"{path.name}-old") for path in repos}
    pruner = build_pruner(states)
    states[repos[0]].on_list = pruner.cancel
    options = PruneOptions(workspace_roots=tuple(repos))

    outcome = asyncio.run(pruner.run("all", options=options, confirm=lambda scan: True))

    scan = outcome.scan
    assert scan is not None and scan.cancelled
    assert [item.repository.name for item in scan.repositories] == ["alpha"]
    assert [record.branch_name for record in scan.records] == ["alpha-old"]
    assert [repository.name for repository in scan.pending] == ["beta", "gamma"]
    assert outcome.status is OutcomeStatus.CANCELLED
    assert outcome.attempted is False
    for path in repos[1:]:
        assert outcome.attempted_for(Repository.from_path(path)) is False
    assert all(not state.deleted for state in states.values())
    assert pruner.state is PruneState.CANCELLED


def test_cancel_during_deletion_keeps_completed_work(tmp_path: Path) -> None:
    repo = make_repo(tmp_path, "app")
    state = stale_state("one", "two", "three")
    pruner = build_pruner({repo: state})
    state.on_delete = lambda name: pruner.cancel() if name == "one" else None

    outcome = asyncio.run(pruner.run(options=PruneOptions(), active_path=repo, confirm=lambda scan: True))

    assert outcome.status is OutcomeStatus.CANCELLED
    assert [record.branch_name for record in outcome.deleted] == ["one"]
    assert [record.branch_name for record in outcome.skipped] == ["two", "three"]
    assert outcome.attempted


def test_identify_only_never_deletes(tmp_path: Path) -> None:
    repo = make_repo(tmp_path, "app")
    state = stale_state("feature-a")
    pruner = build_pruner({repo: state})
    options = PruneOptions(identify_only=True)

    scan = asyncio.run(pruner.scan_repositories(options=options, active_path=repo))
    outcome = asyncio.run(pruner.prune_confirmed(scan, True))
    run_outcome = asyncio.run(pruner.run(options=options, active_path=repo, confirm=lambda scan: True))

    assert [record.branch_name for record in scan.records] == ["feature-a"]
    assert outcome.status is OutcomeStatus.IDENTIFIED
    assert run_outcome.status is OutcomeStatus.IDENTIFIED
    assert state.deleted == []


def test_declined_confirmation_deletes_nothing(tmp_path: Path) -> None:
    repo = make_repo(tmp_path, "app")
    state = stale_state("feature-a")
    pruner = build_pruner({repo: state})

    async def confirm(scan) -> bool:
        return False

    outcome = asyncio.run(pruner.run(options=PruneOptions(), active_path=repo, confirm=confirm))

    assert outcome.status is OutcomeStatus.DECLINED
    assert [record.branch_name for record in outcome.skipped] == ["feature-a"]
    assert not outcome.attempted
    assert state.deleted == []


def test_no_repositories_is_an_empty_outcome(tmp_path: Path) -> None:
    pruner = build_pruner({})
    options = PruneOptions(workspace_roots=(tmp_path,))

    outcome = asyncio.run(pruner.run("all", options=options, confirm=lambda scan: True))

    assert outcome.status is OutcomeStatus.NOTHING_FOUND
    assert outcome.scan is not None and outcome.scan.repositories == []


def test_scan_is_idempotent(tmp_path: Path) -> None:
    repos = [make_repo(tmp_path, name) for name in ("alpha", "beta")]
    states = {repos[0]: stale_state("x", "y"), repos[1]: stale_state()}
    pruner = build_pruner(states)
    options = PruneOptions(prune_all_workspace_repos=True, workspace_roots=tuple(repos))

    first = asyncio.run(pruner.scan_repositories(options=options))
    second = asyncio.run(pruner.scan_repositories(options=options))

    assert first.scope is Scope.ALL
    assert first == second
    assert first.total_count == 2
    assert pruner.state is PruneState.AWAITING_CONFIRMATION


def test_unreadable_repository_does_not_stop_the_scan(tmp_path: Path) -> None:
    repos = [make_repo(tmp_path, name) for name in ("broken", "ok")]
    states = {repos[0]: RepoState(local=[], list_error=True), repos[1]: stale_state("old")}
    pruner = build_pruner(states)
    options = PruneOptions(workspace_roots=tuple(repos))

    scan = asyncio.run(pruner.scan_repositories("all", options=options))

    assert scan.repositories[0].error == "fatal: not a git repository"
    assert [record.branch_name for record in scan.records] == ["old"]


def test_workspace_scope_deduplicates_nested_roots(tmp_path: Path) -> None:
    repo = make_repo(tmp_path, "app")
    (repo / "pkg").mkdir()
    pruner = build_pruner({repo: stale_state("old")})
    options = PruneOptions(workspace_roots=(repo, repo / "pkg"))

    scan = asyncio.run(pruner.scan_repositories("all", options=options))

    assert len(scan.repositories) == 1
    assert scan.by_repository() == {"app": scan.records}


def test_active_scope_falls_back_to_first_workspace_root(tmp_path: Path) -> None:
    first = make_repo(tmp_path, "first")
    second = make_repo(tmp_path, "second")
    pruner = build_pruner({first: stale_state("a"), second: stale_state("b")})
    options = PruneOptions(workspace_roots=(first, second))

    scan = asyncio.run(pruner.scan_repositories(options=options))

    assert scan.scope is Scope.ACTIVE
    assert [record.branch_name for record in scan.records] == ["a"]


def test_cancel_without_active_run_is_harmless() -> None:
    pruner = build_pruner({})
    pruner.cancel()

    assert pruner.state is PruneState.IDLE
    assert not pruner.busy


def test_overlapping_run_is_rejected(tmp_path: Path) -> None:
    repo = make_repo(tmp_path, "app")
    state = stale_state("old")
    pruner = build_pruner({repo: state})
    pruner._state = PruneState.DELETING

    with pytest.raises(PruneInProgressError):
        asyncio.run(pruner.run(options=PruneOptions(), active_path=repo, confirm=lambda scan: True))

    assert state.deleted == []


def test_cancel_while_awaiting_confirmation_reaches_the_run(tmp_path: Path) -> None:
    repo = make_repo(tmp_path, "app")
    state = stale_state("old")
    pruner = build_pruner({repo: state})
    rejected: list[PruneState] = []

    async def confirm(scan) -> bool:
        assert pruner.busy
        try:
            await pruner.scan_repositories(options=PruneOptions(), active_path=repo)
        except PruneInProgressError:
            rejected.append(pruner.state)
        pruner.cancel()
        return True

    outcome = asyncio.run(pruner.run(options=PruneOptions(), active_path=repo, confirm=confirm))

    assert rejected == [PruneState.AWAITING_CONFIRMATION]
    assert outcome.status is OutcomeStatus.CANCELLED
    assert [record.branch_name for record in outcome.skipped] == ["old"]
    assert state.deleted == []
    assert not pruner.busy


def test_branch_checked_out_after_scan_is_kept(tmp_path: Path) -> None:
    repo = make_repo(tmp_path, "app")
    state = stale_state("one", "two")
    pruner = build_pruner({repo: state})

    scan = asyncio.run(pruner.scan_repositories(options=PruneOptions(), active_path=repo))
    state.current = "one"
    outcome = asyncio.run(pruner.prune_confirmed(scan, True))

    assert [record.branch_name for record in outcome.deleted] == ["two"]
    assert [record.branch_name for record in outcome.skipped] == ["one"]
    assert state.deleted == ["two"]


def test_remote_branch_restored_after_scan_is_kept(tmp_path: Path) -> None:
    repo = make_repo(tmp_path, "app")
    state = stale_state("one", "two")
    pruner = build_pruner({repo: state})

    scan = asyncio.run(pruner.scan_repositories(options=PruneOptions(), active_path=repo))
    state.remote.append("origin/two")
    outcome = asyncio.run(pruner.prune_confirmed(scan, True))

    assert state.deleted == ["one"]
    assert [record.branch_name for record in outcome.skipped] == ["two"]
    assert outcome.status is OutcomeStatus.COMPLETED


def test_unreadable_repository_at_deletion_time_deletes_nothing(tmp_path: Path) -> None:
    repo = make_repo(tmp_path, "app")
    state = stale_state("one")
    pruner = build_pruner({repo: state})

    scan = asyncio.run(pruner.scan_repositories(options=PruneOptions(), active_path=repo))
    state.list_error = True
    outcome = asyncio.run(pruner.prune_confirmed(scan, True))

    assert state.deleted == []
    assert [record.branch_name for record in outcome.skipped] == ["one"]
    assert not outcome.attempted
