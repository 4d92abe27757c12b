"""Workspace definition loading."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from .config import PruneOptions


class WorkspaceLoadError(RuntimeError):
    """Raised when a workspace file cannot be parsed or validated."""


class WorkspaceDefinition(BaseModel):
    """A named set of workspace roots plus option overrides."""

    name: str = Field(default="workspace", description="Display name for the workspace.")
    roots: list[Path] = Field(
        default_factory=list,
        description="Directories searched for enclosing git repositories.",
    )
    options: dict[str, Any] = Field(
        default_factory=dict,
        description="Overrides for any prune option except the workspace roots.",
    )

    @field_validator("roots", mode="before")
    @classmethod
    def _ensure_list(cls, value: Any):  # type: ignore[override]
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        if isinstance(value, (list, tuple)):
            return list(value)
        raise TypeError("Workspace roots must be a path or a sequence of paths")

    @field_validator("options")
    @classmethod
    def _known_options(cls, value: dict[str, Any]) -> dict[str, Any]:
        allowed = set(PruneOptions.model_fields) - {"workspace_roots"}
        unknown = sorted(set(value) - allowed)
        if unknown:
            raise ValueError(f"Unknown workspace options: {', '.join(unknown)}")
        return value


class WorkspaceLoader:
    """Loads workspace definitions from YAML files on disk."""

    def load(self, path: Path | str) -> WorkspaceDefinition:
        """Load one workspace file, resolving relative roots against its directory."""

        source = Path(path).expanduser()
        try:
            document = yaml.safe_load(source.read_text(encoding="utf-8"))
        except OSError as exc:
            raise WorkspaceLoadError(f"Unable to read workspace file {source}: {exc}") from exc
        except yaml.YAMLError as exc:
            raise WorkspaceLoadError(f"Failed to parse YAML in {source}: {exc}") from exc

        if document is None:
            document = {}
        if not isinstance(document, dict):
            raise WorkspaceLoadError(f"Workspace file {source} must contain a mapping")

        try:
            workspace = WorkspaceDefinition.model_validate(document)
            # Validate overrides eagerly so a bad file fails at load time.
            PruneOptions(**workspace.options)
        except ValidationError as exc:
            raise WorkspaceLoadError(f"Workspace validation error in {source}: {exc}") from exc

        base = source.resolve().parent
        workspace.roots = [
            (root.expanduser() if root.expanduser().is_absolute() else base / root).resolve()
            for root in workspace.roots
        ]
        return workspace


def load_workspace(path: Path | str) -> WorkspaceDefinition:
    """Convenience wrapper for loading a workspace file."""

    return WorkspaceLoader().load(path)


__all__ = ["WorkspaceDefinition", "WorkspaceLoadError", "WorkspaceLoader", "load_workspace"]
