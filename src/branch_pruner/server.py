"""FastMCP server bootstrap for the branch pruner."""

import asyncio
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from fastmcp import Context, FastMCP

from . import __version__
from .config import PrunerSettings, get_settings
from .errors import NetworkOrGitError
from .git import GitNotFoundError, GitRunner
from .pruner import BranchPruner
from .tools import register_tools


def configure_logging(level: str) -> None:
    """Configure root logging for the branch pruner server."""

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


def _run_sync(coro):
    """Execute an async coroutine on a dedicated event loop."""

    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _git_unavailable(reason: str):
    """Gateway factory used when git is missing; every repository reports the error."""

    def factory(path: Path):
        raise NetworkOrGitError(f"git unavailable: {reason}")

    return factory


def create_server(
    settings: Optional[PrunerSettings] = None,
    pruner: BranchPruner | None = None,
) -> FastMCP:
    """Instantiate the FastMCP server with the pruning tools registered."""

    settings = settings or get_settings()

    git_metadata = {
        "available": False,
        "version": None,
        "error": None,
    }

    if pruner is None:
        try:
            runner = GitRunner(Path(settings.git_path) if settings.git_path else None)
        except GitNotFoundError as exc:
            git_metadata["error"] = str(exc)
            pruner = BranchPruner(settings=settings, gateway_factory=_git_unavailable(str(exc)))
        else:
            git_metadata["available"] = True
            version_result = _run_sync(runner.version())
            if version_result.ok:
                git_metadata["version"] = version_result.stdout.strip()
            else:
                git_metadata["error"] = version_result.message
            pruner = BranchPruner(settings=settings, runner=runner)
    else:
        git_metadata["available"] = True

    server = FastMCP(
        name="Branch Pruner",
        version=__version__,
        instructions=(
            "Branch Pruner finds local git branches whose remote branch has been deleted. "
            "Call scan_stale_branches first, show the branches to the user, and only call "
            "prune_stale_branches with confirmation_granted=true after they agree."
        ),
    )

    handles = register_tools(server, settings=settings, pruner=pruner)

    @server.resource(
        "resource://branch-pruner/status",
        name="branch_pruner_status",
        title="Branch Pruner Status",
        description="Provides the current state of the branch pruner and recent outcomes.",
        mime_type="application/json",
        tags={"status", "health"},
    )
    def status_resource(context: Context) -> str:
        """Return a JSON string summarizing basic runtime state."""

        options = settings.to_options()
        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "server_version": __version__,
            "log_level": settings.log_level,
            "git": {"path": settings.git_path, **git_metadata},
            "state": pruner.state.value,
            "options": options.model_dump(mode="json"),
            "pending_scans": sorted(handles.scans_state),
            "recent_outcomes": [
                {
                    "scan_id": outcome["scan_id"],
                    "status": outcome["status"],
                    "deleted": len(outcome["deleted"]),
                    "failed": len(outcome["failed"]),
                    "completed_at": outcome["completed_at"],
                }
                for outcome in handles.outcomes[-5:]
            ],
            "request_id": getattr(context, "request_id", None),
        }
        return json.dumps(payload)

    setattr(server, "pruner", pruner)
    setattr(server, "git_metadata", git_metadata)
    setattr(server, "tool_handles", handles)
    return server


def main() -> None:
    """Entry point for running the branch pruner MCP server via CLI."""

    settings = get_settings()
    configure_logging(settings.log_level)

    server = create_server(settings)
    logging.getLogger(__name__).info(
        "Launching branch pruner MCP server",
        extra={
            "version": __version__,
            "log_level": settings.log_level,
            "git_version": getattr(server, "git_metadata", {}).get("version"),
        },
    )
    server.run()


if __name__ == "__main__":
    main()
