"""Value objects produced and consumed during a single scan or prune run."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Iterable


class Scope(str, Enum):
    """Which repositories a run covers."""

    ACTIVE = "active"
    ALL = "all"


class StaleConfidence(str, Enum):
    """Which signal classified a branch as stale."""

    UPSTREAM = "upstream"
    REFLOG = "reflog"


class PruneState(str, Enum):
    IDLE = "idle"
    DISCOVERING = "discovering"
    ANALYZING = "analyzing"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    DELETING = "deleting"
    DONE = "done"
    CANCELLED = "cancelled"


class OutcomeStatus(str, Enum):
    NOTHING_FOUND = "nothing_found"
    IDENTIFIED = "identified"
    DECLINED = "declined"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


@dataclass(frozen=True, slots=True)
class Repository:
    """A git working tree identified by its root directory."""

    path: Path
    name: str

    @classmethod
    def from_path(cls, path: Path | str) -> "Repository":
        resolved = Path(path).expanduser().resolve()
        return cls(path=resolved, name=resolved.name or str(resolved))


@dataclass(frozen=True, slots=True)
class LocalBranch:
    name: str
    is_current: bool = False
    upstream_remote: str | None = None


@dataclass(frozen=True, slots=True)
class LocalBranchListing:
    """Every local branch name plus the checked-out one (None when detached)."""

    all: tuple[str, ...]
    current: str | None = None

    def branches(self) -> list[LocalBranch]:
        return [LocalBranch(name=name, is_current=name == self.current) for name in self.all]


@dataclass(frozen=True, slots=True)
class RemoteTrackingBranch:
    remote_name: str
    branch_short_name: str

    @classmethod
    def parse(cls, ref: str, remotes: Iterable[str] = ()) -> "RemoteTrackingBranch":
        """Split ``<remote>/<branch>`` using the longest matching known remote.

        Remote names may themselves contain slashes, so the known remotes are
        tried before falling back to the first path segment.
        """

        for remote in sorted(set(remotes), key=len, reverse=True):
            prefix = f"{remote}/"
            if remote and ref.startswith(prefix):
                return cls(remote_name=remote, branch_short_name=ref[len(prefix) :])
        remote, sep, short_name = ref.partition("/")
        if not sep:
            return cls(remote_name="", branch_short_name=ref)
        return cls(remote_name=remote, branch_short_name=short_name)

    def __str__(self) -> str:
        return f"{self.remote_name}/{self.branch_short_name}"


@dataclass(frozen=True, slots=True)
class StaleBranchRecord:
    branch_name: str
    repository_path: Path
    repository_name: str
    confidence: StaleConfidence = StaleConfidence.UPSTREAM

    @property
    def ambiguous(self) -> bool:
        return self.confidence is StaleConfidence.REFLOG

    def to_dict(self) -> dict[str, Any]:
        return {
            "branch": self.branch_name,
            "repository_path": str(self.repository_path),
            "repository": self.repository_name,
            "confidence": self.confidence.value,
        }


@dataclass(slots=True)
class RepositoryScan:
    """Findings for one repository; ``error`` is set when it could not be listed."""

    repository: Repository
    stale_branches: list[StaleBranchRecord] = field(default_factory=list)
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "repository": self.repository.name,
            "path": str(self.repository.path),
            "stale_branches": [record.to_dict() for record in self.stale_branches],
            "error": self.error,
        }


@dataclass(slots=True)
class ScanResult:
    """Stale branches grouped by repository for one scan."""

    scope: Scope
    identify_only: bool = False
    remote_name: str = "origin"
    repositories: list[RepositoryScan] = field(default_factory=list)
    pending: list[Repository] = field(default_factory=list)
    cancelled: bool = False

    @property
    def records(self) -> list[StaleBranchRecord]:
        return [record for scan in self.repositories for record in scan.stale_branches]

    @property
    def total_count(self) -> int:
        return sum(len(scan.stale_branches) for scan in self.repositories)

    @property
    def is_empty(self) -> bool:
        return self.total_count == 0

    def by_repository(self) -> dict[str, list[StaleBranchRecord]]:
        grouped: dict[str, list[StaleBranchRecord]] = {}
        for scan in self.repositories:
            if scan.stale_branches:
                grouped.setdefault(scan.repository.name, []).extend(scan.stale_branches)
        return grouped

    def to_dict(self) -> dict[str, Any]:
        return {
            "scope": self.scope.value,
            "identify_only": self.identify_only,
            "remote": self.remote_name,
            "cancelled": self.cancelled,
            "total_count": self.total_count,
            "repositories": [scan.to_dict() for scan in self.repositories],
            "pending": [str(repository.path) for repository in self.pending],
        }


@dataclass(frozen=True, slots=True)
class BranchFailure:
    record: StaleBranchRecord
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {**self.record.to_dict(), "reason": self.reason}


@dataclass(slots=True)
class PruneOutcome:
    """Result of a prune run.

    ``attempted`` reports whether any deletion was issued; ``skipped`` holds
    records that were never tried: the run was cancelled, the confirmation
    was declined, or the branch was no longer stale when rechecked.
    """

    status: OutcomeStatus
    scan: ScanResult | None = None
    deleted: list[StaleBranchRecord] = field(default_factory=list)
    failed: list[BranchFailure] = field(default_factory=list)
    skipped: list[StaleBranchRecord] = field(default_factory=list)
    attempted: bool = False

    @property
    def deleted_count(self) -> int:
        return len(self.deleted)

    @property
    def failed_count(self) -> int:
        return len(self.failed)

    def attempted_for(self, repository: Repository) -> bool:
        """Return True when a deletion was tried in ``repository``."""

        tried = [record.repository_path for record in self.deleted]
        tried.extend(failure.record.repository_path for failure in self.failed)
        return repository.path in tried

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "attempted": self.attempted,
            "deleted": [record.to_dict() for record in self.deleted],
            "failed": [failure.to_dict() for failure in self.failed],
            "skipped": [record.to_dict() for record in self.skipped],
            "scan": self.scan.to_dict() if self.scan is not None else None,
        }


__all__ = [
    "BranchFailure",
    "LocalBranch",
    "LocalBranchListing",
    "OutcomeStatus",
    "PruneOutcome",
    "PruneState",
    "RemoteTrackingBranch",
    "Repository",
    "RepositoryScan",
    "ScanResult",
    "Scope",
    "StaleBranchRecord",
    "StaleConfidence",
]
