from __future__ import annotations

import logging
from datetime import datetime
from typing import Awaitable, Callable
from zoneinfo import ZoneInfo

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from subtrack.core.errors import NotSupportedError
from subtrack.engine.reminders import (
    DIGEST_PREFIX,
    MONTHLY_REPORT_NOTICE,
    TRIGGER_PREFIX,
    WEEKLY_INSIGHT_NOTICE,
    Notice,
    ReminderTrigger,
)
from subtrack.engine.service import SubscriptionService

logger = logging.getLogger(__name__)

ReminderSender = Callable[[Notice], Awaitable[None]]

RESYNC_JOB_ID = "reminder_resync"


class ApschedulerNotifier:
    """
    Local trigger store on top of an APScheduler scheduler.

    Each reminder is a one-shot DateTrigger job whose id is the trigger id,
    so scheduling the same subscription twice replaces the earlier job.
    Without a sender there is nothing to deliver through and the notifier
    reports itself unavailable.
    """

    def __init__(self, scheduler: AsyncIOScheduler, sender: ReminderSender | None) -> None:
        self.scheduler = scheduler
        self.sender = sender

    @property
    def available(self) -> bool:
        return self.sender is not None

    async def _deliver(self, notice: Notice) -> None:
        # The executor only awaits real coroutine functions, not async callables
        if self.sender is None:
            logger.warning("Dropping %s: no delivery channel", notice.trigger_id)
            return
        await self.sender(notice)

    def _add(self, notice: Notice, trigger: DateTrigger | CronTrigger) -> None:
        if self.sender is None:
            raise NotSupportedError("No reminder delivery channel configured")

        # Pending jobs of a scheduler that is not running yet are not deduplicated by id
        self.cancel(notice.trigger_id)
        self.scheduler.add_job(
            self._deliver,
            trigger,
            args=[notice],
            id=notice.trigger_id,
            name=notice.title,
            replace_existing=True,
            misfire_grace_time=3600,
        )

    def schedule(self, trigger: ReminderTrigger) -> None:
        self._add(trigger, DateTrigger(run_date=trigger.fire_at))

    def schedule_digests(self, timezone: ZoneInfo) -> list[str]:
        """
        Repeating insight notices: Mondays at 09:00 and the 1st of each
        month at 10:00, local time.
        """
        self._add(WEEKLY_INSIGHT_NOTICE, CronTrigger(day_of_week="mon", hour=9, minute=0, timezone=timezone))
        self._add(MONTHLY_REPORT_NOTICE, CronTrigger(day=1, hour=10, minute=0, timezone=timezone))
        return self.digests()

    def cancel(self, trigger_id: str) -> None:
        try:
            self.scheduler.remove_job(trigger_id)
        except JobLookupError:
            pass

    def cancel_all(self) -> None:
        """Drop every payment reminder. Digest jobs are left alone."""
        for job_id in self.scheduled():
            self.cancel(job_id)

    def scheduled(self) -> list[str]:
        return [job.id for job in self.scheduler.get_jobs() if job.id.startswith(TRIGGER_PREFIX)]

    def digests(self) -> list[str]:
        return [job.id for job in self.scheduler.get_jobs() if job.id.startswith(DIGEST_PREFIX)]


class ReminderSyncService:
    """
    Periodically rebuilds local reminders from the backend.
    """

    def __init__(
        self,
        service: SubscriptionService,
        scheduler: AsyncIOScheduler,
        *,
        notifier: ApschedulerNotifier | None = None,
        interval_minutes: int = 60,
        timezone: str = "Africa/Lagos",
    ) -> None:
        self.service = service
        self.scheduler = scheduler
        self.notifier = notifier
        self.interval_minutes = interval_minutes
        self.timezone = ZoneInfo(timezone)

    async def start(self) -> None:
        """
        Start the scheduler, resync now and then every `interval_minutes`.

        When a notifier with a delivery channel is given, the weekly insight
        and monthly report notices are scheduled as well.
        """
        self.scheduler.add_job(
            self.resync,
            IntervalTrigger(minutes=self.interval_minutes),
            id=RESYNC_JOB_ID,
            name="Reminder resync",
            replace_existing=True,
            next_run_time=datetime.now(self.timezone),
        )
        if self.notifier is not None and self.notifier.available:
            self.notifier.schedule_digests(self.timezone)
        self.scheduler.start()
        logger.info("Reminder sync started (every %d min)", self.interval_minutes)

    async def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Reminder sync stopped")

    async def resync(self) -> int:
        result = await self.service.refresh_reminders(datetime.now(self.timezone))
        if not result.ok:
            logger.warning("Reminder resync skipped: %s", result.message)
            return 0
        return result.value or 0
