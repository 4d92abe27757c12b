"""Command-line front end for scanning and pruning stale branches."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
import time
from pathlib import Path

from branch_pruner.config import PruneOptions, PrunerSettings
from branch_pruner.git import GitNotFoundError
from branch_pruner.models import OutcomeStatus, ScanResult
from branch_pruner.pruner import BranchPruner
from branch_pruner.workspace import WorkspaceLoadError, load_workspace


def load_pruner(settings: PrunerSettings) -> BranchPruner:
    try:
        return BranchPruner(settings=settings)
    except GitNotFoundError as exc:
        print(f"git unavailable: {exc}")
        raise SystemExit(1)


def load_options(settings: PrunerSettings, args: argparse.Namespace) -> PruneOptions:
    source = getattr(args, "workspace", None) or settings.workspace_file
    if source is None:
        return settings.to_options()
    try:
        return settings.to_options(load_workspace(Path(source)))
    except WorkspaceLoadError as exc:
        print(f"Invalid workspace: {exc}")
        raise SystemExit(1)


def _scope(args: argparse.Namespace) -> str | None:
    return "all" if getattr(args, "all", False) else None


def _active_path(args: argparse.Namespace, options: PruneOptions) -> Path | None:
    if args.active_path:
        return Path(args.active_path)
    # Without workspace roots the current directory is the active context.
    return None if options.workspace_roots else Path.cwd()


def _print_scan(scan: ScanResult) -> None:
    for repository_scan in scan.repositories:
        if repository_scan.error:
            print(f"{repository_scan.repository.name}: error: {repository_scan.error}")
    for record in scan.records:
        marker = " (reflog)" if record.ambiguous else ""
        print(f"{record.repository_name}: {record.branch_name}{marker}")
    if scan.cancelled:
        print(f"Scan cancelled; {len(scan.pending)} repositories not analysed")


def notification_text(scan: ScanResult) -> str:
    total = scan.total_count
    repo_list = ", ".join(
        f"{name} ({len(records)} branch{'es' if len(records) > 1 else ''})"
        for name, records in scan.by_repository().items()
    )
    return f"Found {total} stale local branch{'es' if total > 1 else ''} in: {repo_list}"


def cmd_scan(args: argparse.Namespace) -> None:
    settings = PrunerSettings()
    options = load_options(settings, args)
    pruner = load_pruner(settings)
    scan = asyncio.run(
        pruner.scan_repositories(_scope(args), options=options, active_path=_active_path(args, options))
    )
    if args.json:
        print(json.dumps(scan.to_dict(), indent=2))
        return
    if not scan.repositories and not scan.pending:
        print("No git repositories found")
        return
    if scan.is_empty:
        print("No stale branches found")
        return
    _print_scan(scan)


def _confirm(scan: ScanResult) -> bool:
    print(f"Found {scan.total_count} local stale branch(es). Delete them?")
    _print_scan(scan)
    answer = input("Delete these branches? [y/N] ")
    return answer.strip().lower() in {"y", "yes"}


def cmd_prune(args: argparse.Namespace) -> None:
    settings = PrunerSettings()
    options = load_options(settings, args)
    pruner = load_pruner(settings)

    async def _run():
        scan = await pruner.scan_repositories(_scope(args), options=options, active_path=_active_path(args, options))
        granted = False
        if not scan.is_empty and not scan.identify_only and not scan.cancelled:
            granted = args.yes or _confirm(scan)
        return await pruner.prune_confirmed(scan, granted)

    outcome = asyncio.run(_run())
    if args.json:
        print(json.dumps(outcome.to_dict(), indent=2))
    elif outcome.status is OutcomeStatus.NOTHING_FOUND:
        print("No stale branches found")
    elif outcome.status is OutcomeStatus.IDENTIFIED:
        print("Identify only: the following stale branches were found")
        _print_scan(outcome.scan)
    elif outcome.status is OutcomeStatus.DECLINED:
        print("Nothing deleted")
    else:
        for record in outcome.deleted:
            print(f"Deleted branch: {record.repository_name}/{record.branch_name}")
        for failure in outcome.failed:
            print(f"Failed to delete {failure.record.repository_name}/{failure.record.branch_name}: {failure.reason}")
        if outcome.status is OutcomeStatus.CANCELLED:
            print(f"Cancelled; {len(outcome.skipped)} branch(es) left untouched")
        elif outcome.skipped:
            print(f"Kept {len(outcome.skipped)} branch(es) that are no longer stale")
        print(f"Deleted {outcome.deleted_count} stale branch(es)")

    if outcome.failed:
        raise SystemExit(1)


def cmd_watch(args: argparse.Namespace) -> None:
    settings = PrunerSettings()
    options = load_options(settings, args)
    if options.auto_scan_interval == 0:
        print("Auto-scan is disabled (auto_scan_interval = 0)", file=sys.stderr)
        raise SystemExit(2)

    pruner = load_pruner(settings)
    iteration = 0
    while args.iterations is None or iteration < args.iterations:
        if iteration:
            time.sleep(options.auto_scan_interval * 60)
        iteration += 1
        scan = asyncio.run(
            pruner.scan_repositories(_scope(args), options=options, active_path=_active_path(args, options))
        )
        if not scan.is_empty and options.show_notifications:
            print(notification_text(scan), flush=True)


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--all", action="store_true", help="Scan every workspace repository")
    parser.add_argument("--active-path", help="File or directory inside the active repository")
    parser.add_argument("--workspace", help="Workspace YAML file with roots and option overrides")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Find and prune local branches whose remote is gone")
    sub = parser.add_subparsers(dest="cmd")

    p_scan = sub.add_parser("scan", help="List stale branches without deleting them")
    _add_common(p_scan)
    p_scan.add_argument("--json", action="store_true", help="Output JSON")
    p_scan.set_defaults(func=cmd_scan)

    p_prune = sub.add_parser("prune", help="Delete stale branches after confirmation")
    _add_common(p_prune)
    p_prune.add_argument("--yes", action="store_true", help="Skip the interactive confirmation")
    p_prune.add_argument("--json", action="store_true", help="Output JSON")
    p_prune.set_defaults(func=cmd_prune)

    p_watch = sub.add_parser("watch", help="Scan periodically and report stale branches")
    _add_common(p_watch)
    p_watch.add_argument(
        "--iterations",
        type=int,
        default=None,
        help="Stop after N scans (default: run until interrupted)",
    )
    p_watch.set_defaults(func=cmd_watch)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return
    args.func(args)


if __name__ == "__main__":
    main()
