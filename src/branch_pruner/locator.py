"""Locate git repositories enclosing a path."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

from .models import Repository

logger = logging.getLogger(__name__)

GIT_MARKER = ".git"


def discover_repository(start_path: Path | str) -> Repository | None:
    """Walk up from ``start_path`` to the nearest directory holding a ``.git`` entry.

    The marker may be a directory or a file (linked worktrees and submodules
    use a ``.git`` file). Returns None once the filesystem root has been
    checked without a match.
    """

    current = Path(start_path).expanduser().resolve()
    while True:
        if (current / GIT_MARKER).exists():
            return Repository.from_path(current)
        parent = current.parent
        if parent == current:
            return None
        current = parent


def discover_workspace_repositories(root_paths: Iterable[Path | str]) -> list[Repository]:
    """Return the repositories enclosing each root, deduplicated, in input order."""

    repositories: list[Repository] = []
    seen: set[Path] = set()
    for root in root_paths:
        repository = discover_repository(root)
        if repository is None:
            logger.debug("No git repository encloses workspace root", extra={"root": str(root)})
            continue
        if repository.path in seen:
            continue
        seen.add(repository.path)
        repositories.append(repository)
    return repositories


def resolve_active_repository(
    active_path: Path | str | None,
    root_paths: Iterable[Path | str] = (),
) -> Repository | None:
    """Find the repository for the active file or directory.

    Without an active path the first workspace root is used instead.
    """

    if active_path is None:
        for root in root_paths:
            return discover_repository(root)
        return None

    candidate = Path(active_path).expanduser()
    start = candidate if candidate.is_dir() else candidate.parent
    return discover_repository(start)


__all__ = ["discover_repository", "discover_workspace_repositories", "resolve_active_repository"]
