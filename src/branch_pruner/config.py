"""Configuration management for the branch pruner."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

if TYPE_CHECKING:  # pragma: no cover
    from .workspace import WorkspaceDefinition

ALWAYS_PROTECTED = ("main", "master")
MIN_AUTO_SCAN_INTERVAL = 15


def _merge_protected(value: Any) -> tuple[str, ...]:
    if value is None or value == "":
        names: list[str] = []
    elif isinstance(value, str):
        names = [part.strip() for part in value.split(",")]
    elif isinstance(value, (list, tuple, set, frozenset)):
        names = [str(item).strip() for item in value]
    else:
        raise TypeError("protected branches must be a list of names or a comma-separated string")
    merged = list(ALWAYS_PROTECTED)
    for name in names:
        if name and name not in merged:
            merged.append(name)
    return tuple(merged)


def _parse_paths(value: Any) -> tuple[Path, ...]:
    if value is None or value == "":
        return ()
    if isinstance(value, (list, tuple)):
        return tuple(Path(str(item)) for item in value)
    if isinstance(value, str):
        parts = [part.strip() for part in value.split(os.pathsep) if part.strip()]
        return tuple(Path(part) for part in parts)
    raise TypeError("workspace roots must be a list of paths or a path-separated string")


def _validate_interval(value: int) -> int:
    if value < 0:
        raise ValueError("auto_scan_interval must not be negative")
    if 0 < value < MIN_AUTO_SCAN_INTERVAL:
        raise ValueError(
            f"auto_scan_interval must be 0 (disabled) or at least {MIN_AUTO_SCAN_INTERVAL} minutes"
        )
    return value


class PruneOptions(BaseModel):
    """Immutable snapshot of the options a single run is executed with."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    prune_all_workspace_repos: bool = False
    identify_only: bool = False
    auto_scan_interval: int = 60
    show_notifications: bool = True
    remote_name: str = "origin"
    protected_branches: tuple[str, ...] = ALWAYS_PROTECTED
    workspace_roots: tuple[Path, ...] = ()

    @field_validator("protected_branches", mode="before")
    @classmethod
    def _protected(cls, value: Any) -> tuple[str, ...]:
        return _merge_protected(value)

    @field_validator("workspace_roots", mode="before")
    @classmethod
    def _roots(cls, value: Any) -> tuple[Path, ...]:
        return _parse_paths(value)

    @field_validator("auto_scan_interval")
    @classmethod
    def _interval(cls, value: int) -> int:
        return _validate_interval(value)

    @field_validator("remote_name")
    @classmethod
    def _remote(cls, value: str) -> str:
        normalized = value.strip().strip("/")
        if not normalized:
            raise ValueError("remote_name must not be empty")
        return normalized


class PrunerSettings(BaseSettings):
    """Runtime configuration sourced from environment variables and optional .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    git_path: str | None = Field(default=None, validation_alias="GIT_PATH")
    workspace_roots: Annotated[tuple[Path, ...], NoDecode] = Field(
        default=(), validation_alias="BRANCH_PRUNER_WORKSPACE_ROOTS"
    )
    workspace_file: Path | None = Field(default=None, validation_alias="BRANCH_PRUNER_WORKSPACE_FILE")
    prune_all_workspace_repos: bool = Field(default=False, validation_alias="BRANCH_PRUNER_PRUNE_ALL")
    identify_only: bool = Field(default=False, validation_alias="BRANCH_PRUNER_IDENTIFY_ONLY")
    auto_scan_interval: int = Field(default=60, validation_alias="BRANCH_PRUNER_AUTO_SCAN_INTERVAL")
    show_notifications: bool = Field(default=True, validation_alias="BRANCH_PRUNER_SHOW_NOTIFICATIONS")
    remote_name: str = Field(default="origin", validation_alias="BRANCH_PRUNER_REMOTE")
    protected_branches: Annotated[tuple[str, ...], NoDecode] = Field(
        default=ALWAYS_PROTECTED, validation_alias="BRANCH_PRUNER_PROTECTED_BRANCHES"
    )
    fetch_timeout: float = Field(default=60.0, validation_alias="BRANCH_PRUNER_FETCH_TIMEOUT")
    log_level: str = Field(default="INFO", validation_alias="BRANCH_PRUNER_LOG_LEVEL")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "BRANCH_PRUNER_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("workspace_roots", mode="before")
    @classmethod
    def _parse_workspace_roots(cls, value):
        return _parse_paths(value)

    @field_validator("protected_branches", mode="before")
    @classmethod
    def _parse_protected_branches(cls, value):
        return _merge_protected(value)

    @field_validator("auto_scan_interval")
    @classmethod
    def _validate_auto_scan_interval(cls, value: int) -> int:
        return _validate_interval(value)

    @field_validator("fetch_timeout")
    @classmethod
    def _validate_fetch_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("BRANCH_PRUNER_FETCH_TIMEOUT must be > 0")
        return value

    def to_options(self, workspace: "WorkspaceDefinition | None" = None) -> PruneOptions:
        """Freeze the current settings into a per-run options snapshot.

        A workspace definition contributes its roots and overrides any option
        it sets explicitly.
        """

        values: dict[str, Any] = {
            "prune_all_workspace_repos": self.prune_all_workspace_repos,
            "identify_only": self.identify_only,
            "auto_scan_interval": self.auto_scan_interval,
            "show_notifications": self.show_notifications,
            "remote_name": self.remote_name,
            "protected_branches": self.protected_branches,
            "workspace_roots": tuple(path.expanduser().resolve() for path in self.workspace_roots),
        }
        if workspace is not None:
            values.update(workspace.options)
            if workspace.roots:
                values["workspace_roots"] = tuple(workspace.roots)
        return PruneOptions(**values)


@lru_cache(maxsize=1)
def get_settings() -> PrunerSettings:
    """Return cached settings instance."""

    settings = PrunerSettings()
    settings.workspace_roots = tuple(path.expanduser().resolve() for path in settings.workspace_roots)
    if settings.workspace_file is not None:
        settings.workspace_file = settings.workspace_file.expanduser().resolve()
    return settings


__all__ = ["ALWAYS_PROTECTED", "PruneOptions", "PrunerSettings", "get_settings"]
