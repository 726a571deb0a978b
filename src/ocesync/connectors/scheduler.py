"""APScheduler-based scheduler for periodic connector syncing.

Re-running a sync is cheap: unchanged binaries are served from the media
cache, so only new or modified assets are downloaded.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ocesync.connectors.base_connector import BaseConnector

logger = logging.getLogger(__name__)


class ConnectorScheduler:
    """Schedules periodic runs of a connector's sync method using AsyncIOScheduler."""

    def __init__(self, scheduler: Optional[AsyncIOScheduler] = None) -> None:
        self._scheduler = scheduler or AsyncIOScheduler()
        self._started = False

    @property
    def running(self) -> bool:
        return self._started

    def start(self) -> None:
        """Start the underlying scheduler if not already started."""
        if not self._started:
            self._scheduler.start(paused=False)
            self._started = True

    def shutdown(self, *, wait: bool = True) -> None:
        """Shut down the scheduler."""
        if self._started:
            self._scheduler.shutdown(wait=wait)
            self._started = False

    def schedule_sync(
        self,
        connector: BaseConnector,
        *,
        interval: timedelta = timedelta(minutes=15),
        job_id: Optional[str] = None,
        replace_existing: bool = True,
        run_immediately: bool = False,
    ) -> None:
        """Schedule periodic execution of `connector.sync()`.

        Parameters
        ----------
        connector: BaseConnector
            The connector instance to run.
        interval: timedelta
            How often to run the sync job (default 15 minutes).
        job_id: Optional[str]
            Explicit job id to allow replacing/canceling.
        replace_existing: bool
            If True, replace any existing job with the same id.
        run_immediately: bool
            If True, the first run fires as soon as the scheduler starts.
        """

        async def _job() -> None:
            logger.info("Scheduled sync starting")
            await connector.sync()

        trigger = IntervalTrigger(seconds=int(interval.total_seconds()))
        kwargs: Dict[str, Any] = {}
        if run_immediately:
            kwargs["next_run_time"] = datetime.now(timezone.utc)
        self._scheduler.add_job(
            _job,
            trigger=trigger,
            id=job_id,
            replace_existing=replace_existing,
            max_instances=1,
            coalesce=True,
            **kwargs,
        )
