"""Tool registration for the branch pruner MCP server."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Literal
from uuid import uuid4

from fastmcp import Context, FastMCP

from ..config import PruneOptions, PrunerSettings
from ..errors import PruneInProgressError
from ..models import ScanResult
from ..pruner import BranchPruner
from ..workspace import WorkspaceLoader


@dataclass(slots=True)
class ToolHandles:
    scan_stale_branches: Any
    prune_stale_branches: Any
    cancel_prune: Any
    scans_state: dict[str, ScanResult]
    outcomes: list[dict[str, Any]]


def register_tools(
    server: FastMCP,
    *,
    settings: PrunerSettings,
    pruner: BranchPruner,
    workspace_loader: WorkspaceLoader | None = None,
) -> ToolHandles:
    """Register the scan, prune and cancel tools on the server."""

    scans_state: dict[str, ScanResult] = {}
    outcomes: list[dict[str, Any]] = []
    loader = workspace_loader or WorkspaceLoader()

    def _require_idle() -> None:
        if pruner.busy:
            raise PruneInProgressError(
                f"A prune run is already in progress (state: {pruner.state.value})"
            )

    def _options(workspace_file: str | None) -> PruneOptions:
        source = Path(workspace_file) if workspace_file else settings.workspace_file
        workspace = loader.load(source) if source is not None else None
        return settings.to_options(workspace)

    async def _scan_stale_branches(
        scope: Literal["active", "all"] | None = None,
        active_path: str | None = None,
        workspace_file: str | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Fetch with prune and list stale local branches without deleting anything."""

        _require_idle()
        options = _options(workspace_file)
        scan = await pruner.scan_repositories(scope, options=options, active_path=active_path)

        scan_id = uuid4().hex
        # Only the latest scan may be pruned; earlier ones are superseded.
        scans_state.clear()
        scans_state[scan_id] = scan

        _emit_log(
            context,
            "info",
            "Scanned for stale branches",
            extra={"scan_id": scan_id, "stale_count": scan.total_count, "cancelled": scan.cancelled},
        )
        return {
            "scan_id": scan_id,
            "scanned_at": datetime.now(timezone.utc).isoformat(),
            **scan.to_dict(),
        }

    async def _prune_stale_branches(
        scan_id: str,
        confirmation_granted: bool = False,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Delete the branches found by a previous scan once the user confirmed them."""

        _require_idle()
        if scan_id not in scans_state:
            raise ValueError(f"Scan '{scan_id}' not found or superseded by a newer scan")

        scan = scans_state.pop(scan_id)
        outcome = await pruner.prune_confirmed(scan, confirmation_granted)
        payload = {
            "scan_id": scan_id,
            "completed_at": datetime.now(timezone.utc).isoformat(),
            **outcome.to_dict(),
        }
        outcomes.append(payload)

        _emit_log(
            context,
            "warning" if outcome.failed else "info",
            "Prune finished",
            extra={
                "scan_id": scan_id,
                "status": outcome.status.value,
                "deleted": outcome.deleted_count,
                "failed": outcome.failed_count,
            },
        )
        return payload

    def _cancel_prune(context: Context | None = None) -> dict[str, Any]:
        """Ask the running scan or prune to stop at the next repository or branch."""

        was_busy = pruner.busy
        pruner.cancel()
        _emit_log(
            context,
            "warning",
            "Cancellation requested",
            extra={"state": pruner.state.value, "was_busy": was_busy},
        )
        return {"cancelled": was_busy, "state": pruner.state.value}

    tool_scan = server.tool(
        name="scan_stale_branches",
        description=(
            "Fetch with --prune and list local branches whose upstream branch was deleted. "
            "Use scope 'active' with an active_path, or 'all' for every workspace repository. "
            "Returns a scan_id to pass to prune_stale_branches."
        ),
    )(_scan_stale_branches)

    tool_prune = server.tool(
        name="prune_stale_branches",
        description=(
            "Force-delete the branches listed by a scan. Only deletes when "
            "confirmation_granted is true; show the branch list to the user first."
        ),
        annotations={
            "safety": {
                "level": "caution",
                "notes": "Deletes local branches; unpushed commits on them are lost",
            }
        },
    )(_prune_stale_branches)

    tool_cancel = server.tool(
        name="cancel_prune",
        description="Cancel the scan or prune currently in progress.",
    )(_cancel_prune)

    return ToolHandles(
        scan_stale_branches=tool_scan,
        prune_stale_branches=tool_prune,
        cancel_prune=tool_cancel,
        scans_state=scans_state,
        outcomes=outcomes,
    )


__all__ = ["register_tools", "ToolHandles"]

logger = logging.getLogger(__name__)


def _emit_log(
    context: Context | None,
    level: str,
    message: str,
    *,
    extra: dict[str, Any] | None = None,
) -> None:
    """Best-effort logging that prefers the MCP context logger when available."""

    payload = extra or {}

    if context is not None:
        ctx_logger = getattr(context, "logger", None)
        if ctx_logger is not None:
            log_method = getattr(ctx_logger, level, None)
            if callable(log_method):
                log_method(message, extra=payload)
                return

    fallback = getattr(logger, level, logger.info)
    fallback(message, extra=payload)
