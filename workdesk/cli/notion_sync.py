"""Notion sync command line.

Usage:
    workdesk-notion-sync push [--force]
    workdesk-notion-sync pull
    workdesk-notion-sync preview [--force]
    workdesk-notion-sync status
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import TYPE_CHECKING

from workdesk.adapters.notion.sync import NotionSyncService, PageIdMap, SyncPrerequisiteError
from workdesk.config import load_config
from workdesk.core.logging_utils import setup_logging
from workdesk.db.session import DatabaseSessionManager
from workdesk.infrastructure.persistence.sqlite.repositories.record_store import (
    SqliteLocalStore,
    SqlitePageIdMapStore,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from workdesk.adapters.notion.models import SyncReport

logger = logging.getLogger("workdesk.notion_sync")


def _print_report(report: SyncReport) -> None:
    print(f"\n=== Notion {report.direction} summary ===")
    for kind, stats in report.kinds.items():
        print(
            f"  {kind:<14} {stats.synced} synced, {stats.unchanged} unchanged, "
            f"{stats.skipped} skipped, {stats.failed} failed"
        )
    print(f"Duration: {report.duration_seconds:.1f}s")
    if report.errors:
        print(f"\nErrors ({len(report.errors)}):")
        for err in report.errors[:10]:
            print(f"  - {err}")
        if len(report.errors) > 10:
            print(f"  ... and {len(report.errors) - 10} more")
        if report.retryable_errors:
            print(f"{len(report.retryable_errors)} of them may succeed on a retry.")


async def run_command(args: argparse.Namespace) -> int:
    """Run one sync command.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    cfg = load_config()
    setup_logging(
        cfg.runtime.log_level, json_logs=cfg.runtime.log_json, log_file=cfg.runtime.log_file
    )

    db = DatabaseSessionManager(cfg.runtime.db_path)
    db.migrate()
    store = SqliteLocalStore(db)
    page_map = PageIdMap(SqlitePageIdMapStore(db))
    service = NotionSyncService(cfg, store, page_map)

    try:
        if args.command == "status":
            status = await service.status()
            print("\n=== Notion sync status ===")
            print(f"Configured: {'yes' if status['configured'] else 'no'}")
            if status["root_page_id"]:
                print(f"Root page: {status['root_page_id']}")
            for kind, counts in status["kinds"].items():
                print(
                    f"  {kind:<14} {counts['local']} local, {counts['mapped']} mapped, "
                    f"{counts['pending']} pending"
                )
            return 0

        if args.command == "preview":
            preview = await service.preview(force=args.force)
            print("\n=== Notion push preview (DRY RUN) ===")
            print(f"Would write: {len(preview['would_write'])} pages")
            print(f"Unchanged: {preview['unchanged']}")
            for item in preview["would_write"][:20]:
                print(f"  - [{item['kind']}] {item['title'][:50]} ({item['reason']})")
            if len(preview["would_write"]) > 20:
                print(f"  ... and {len(preview['would_write']) - 20} more")
            return 0

        if args.command == "push":
            report = await service.push(force=args.force)
        else:
            report = await service.pull()
    except SyncPrerequisiteError as exc:
        logger.error("notion_sync_prerequisite_failed", extra={"error": str(exc)})
        print(f"\nERROR: {exc}")
        return 1
    finally:
        db.close()

    _print_report(report)
    return 0 if report.success else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="workdesk-notion-sync", description="Mirror the local workdesk store to Notion"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    push = sub.add_parser("push", help="Write new and changed records to Notion")
    push.add_argument("--force", action="store_true", help="Rewrite every page")

    sub.add_parser("pull", help="Rebuild local records from Notion")

    preview = sub.add_parser("preview", help="Show what push would write")
    preview.add_argument("--force", action="store_true", help="Preview a forced push")

    sub.add_parser("status", help="Show local and mapped record counts")
    return parser


def main(argv: Sequence[str] | None = None) -> None:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    try:
        exit_code = asyncio.run(run_command(args))
    except RuntimeError as exc:
        # Configuration errors surface from load_config
        print(f"\nERROR: {exc}")
        exit_code = 1
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
