"""Command line entrypoint.

Run with:
  - ocesync sync
  - ocesync sync --every 15   (re-sync every 15 minutes)
Settings come from OCESYNC_* environment variables and .env; flags override them.
"""
from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import timedelta
from typing import List, Optional

from ocesync.config import Settings, load_settings
from ocesync.connectors.scheduler import ConnectorScheduler
from ocesync.log import setup_logging
from ocesync.sync import ContentSync, SyncReport


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="ocesync", description="Sync a content channel to local nodes")
    sub = parser.add_subparsers(dest="command", required=True)

    sync = sub.add_parser("sync", help="Run a synchronization")
    sync.add_argument("--server", help="Content server base URL")
    sync.add_argument("--channel", help="Publishing channel token")
    sync.add_argument("--preview", action="store_true", default=None, help="Use preview content")
    sync.add_argument("--renditions", choices=["all", "custom", "none"], help="Renditions to download")
    sync.add_argument("--static", action="store_true", default=None, help="Download binaries to the public dir")
    sync.add_argument("--debug", action="store_true", default=None, help="Dump raw JSON to the debug dir")
    sync.add_argument("--log-level", help="Logging level (default from settings)")
    sync.add_argument("--every", type=int, metavar="MINUTES", help="Re-run the sync periodically")
    return parser.parse_args(argv)


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    if args.server:
        settings.server.content_server = args.server
    if args.channel:
        settings.server.channel_token = args.channel
    if args.preview is not None:
        settings.server.preview = args.preview
    if args.renditions:
        settings.media.renditions = args.renditions
    if args.static is not None:
        settings.media.static_asset_download = args.static
    if args.debug is not None:
        settings.app.debug = args.debug
    if args.log_level:
        settings.app.log_level = args.log_level
    return settings


def print_report(report: SyncReport) -> None:
    if not report.ok:
        print(f"Sync failed: {report.error}", file=sys.stderr)
        return
    print(
        f"{report.items} items ({report.assets} digital assets): "
        f"{report.downloaded} downloaded, {report.reused} reused, {report.failed} failed; "
        f"{report.nodes} nodes, {report.links} links -> {report.manifest}"
    )


async def run_forever(connector: ContentSync, minutes: int) -> None:
    scheduler = ConnectorScheduler()
    scheduler.schedule_sync(connector, interval=timedelta(minutes=minutes), job_id="ocesync", run_immediately=True)
    scheduler.start()
    try:
        await asyncio.Event().wait()
    finally:
        scheduler.shutdown(wait=False)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    settings = apply_overrides(load_settings(), args)
    setup_logging(settings.app.log_level)
    connector = ContentSync(settings)

    if args.every:
        try:
            asyncio.run(run_forever(connector, args.every))
        except KeyboardInterrupt:
            pass
        return 0

    report = asyncio.run(connector.sync())
    print_report(report)
    return 0 if report.ok else 1


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
