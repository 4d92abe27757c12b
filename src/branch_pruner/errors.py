"""Error kinds raised by the branch pruner."""

from __future__ import annotations


class BranchPrunerError(RuntimeError):
    """Base class for branch pruner errors."""


class NetworkOrGitError(BranchPrunerError):
    """Raised when fetching or reading repository metadata fails."""


class DeletionError(BranchPrunerError):
    """Raised when a single local branch could not be deleted."""

    def __init__(self, branch_name: str, reason: str) -> None:
        super().__init__(f"Failed to delete branch '{branch_name}': {reason}")
        self.branch_name = branch_name
        self.reason = reason


class PruneInProgressError(BranchPrunerError):
    """Raised when a run is requested while another one is still active."""


__all__ = [
    "BranchPrunerError",
    "DeletionError",
    "NetworkOrGitError",
    "PruneInProgressError",
]
