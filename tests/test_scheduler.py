from __future__ import annotations

import asyncio
from datetime import date, datetime, timedelta
from unittest.mock import AsyncMock
from zoneinfo import ZoneInfo

import httpx
import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from subtrack.bot.notifier import TelegramReminderSender
from subtrack.bot.scheduler import RESYNC_JOB_ID, ApschedulerNotifier, ReminderSyncService
from subtrack.core.errors import NotSupportedError
from subtrack.db.api import SubaApiClient
from subtrack.engine.reminders import (
    MONTHLY_REPORT_NOTICE,
    WEEKLY_INSIGHT_NOTICE,
    ReminderScheduler,
    ReminderTrigger,
    trigger_id_for,
)
from subtrack.engine.service import SubscriptionService

LAGOS = ZoneInfo("Africa/Lagos")


def _trigger(sub_id: str, days: int = 5) -> ReminderTrigger:
    return ReminderTrigger(
        trigger_id=trigger_id_for(sub_id),
        subscription_id=sub_id,
        fire_at=datetime.now(LAGOS) + timedelta(days=days),
        title="Payment Reminder",
        body="due soon",
    )


async def _deliver(trigger: ReminderTrigger) -> None:
    return None


@pytest.fixture
def scheduler() -> AsyncIOScheduler:
    return AsyncIOScheduler(timezone=LAGOS)


class TestApschedulerNotifier:
    def test_schedule_replaces_by_id(self, scheduler):
        notifier = ApschedulerNotifier(scheduler, _deliver)
        notifier.schedule(_trigger("1", days=5))
        notifier.schedule(_trigger("1", days=6))
        notifier.schedule(_trigger("2"))

        assert sorted(notifier.scheduled()) == [trigger_id_for("1"), trigger_id_for("2")]

    def test_cancel_and_cancel_all_leave_other_jobs(self, scheduler):
        scheduler.add_job(_deliver, "interval", minutes=5, id="unrelated", args=[None])
        notifier = ApschedulerNotifier(scheduler, _deliver)
        notifier.schedule(_trigger("1"))
        notifier.schedule(_trigger("2"))

        notifier.cancel(trigger_id_for("1"))
        notifier.cancel(trigger_id_for("404"))
        assert notifier.scheduled() == [trigger_id_for("2")]

        notifier.cancel_all()
        assert notifier.scheduled() == []
        assert [job.id for job in scheduler.get_jobs()] == ["unrelated"]

    def test_without_sender_is_unavailable(self, scheduler, make_sub, preferences):
        notifier = ApschedulerNotifier(scheduler, None)
        assert notifier.available is False
        with pytest.raises(NotSupportedError):
            notifier.schedule(_trigger("1"))

        count = ReminderScheduler(notifier, preferences).schedule_all([make_sub(days_out=10)], datetime.now(LAGOS))
        assert count == 0

    def test_schedule_all_through_apscheduler_is_idempotent(self, scheduler, make_sub, preferences):
        notifier = ApschedulerNotifier(scheduler, _deliver)
        reminders = ReminderScheduler(notifier, preferences)
        now = datetime(2024, 6, 15, 8, 0, tzinfo=LAGOS)
        subs = [make_sub(days_out=10), make_sub(days_out=20)]

        assert reminders.schedule_all(subs, now) == 2
        assert reminders.schedule_all(subs, now) == 2
        assert len(notifier.scheduled()) == 2

    async def test_fired_reminder_reaches_telegram(self):
        bot = AsyncMock()
        scheduler = AsyncIOScheduler(timezone=LAGOS)
        notifier = ApschedulerNotifier(scheduler, TelegramReminderSender(bot, 555))
        scheduler.start()
        try:
            soon = datetime.now(LAGOS) + timedelta(seconds=0.3)
            notifier.schedule(_trigger("5").model_copy(update={"fire_at": soon}))
            await asyncio.sleep(1.5)
        finally:
            scheduler.shutdown(wait=False)

        bot.send_message.assert_awaited_once()
        kwargs = bot.send_message.await_args.kwargs
        assert kwargs["chat_id"] == 555
        assert "due soon" in kwargs["text"]


class TestDigests:
    def test_weekly_and_monthly_cron_jobs(self, scheduler):
        notifier = ApschedulerNotifier(scheduler, _deliver)
        notifier.schedule_digests(LAGOS)
        ids = notifier.schedule_digests(LAGOS)

        assert sorted(ids) == sorted([WEEKLY_INSIGHT_NOTICE.trigger_id, MONTHLY_REPORT_NOTICE.trigger_id])
        assert len(scheduler.get_jobs()) == 2

        saturday_noon = datetime(2024, 6, 15, 12, 0, tzinfo=LAGOS)
        weekly = scheduler.get_job(WEEKLY_INSIGHT_NOTICE.trigger_id)
        monthly = scheduler.get_job(MONTHLY_REPORT_NOTICE.trigger_id)
        assert weekly.trigger.get_next_fire_time(None, saturday_noon) == datetime(2024, 6, 17, 9, 0, tzinfo=LAGOS)
        assert monthly.trigger.get_next_fire_time(None, saturday_noon) == datetime(2024, 7, 1, 10, 0, tzinfo=LAGOS)
        assert weekly.args[0].payload == {"type": "weekly_insight"}
        assert monthly.args[0].payload == {"type": "monthly_report"}

    def test_reminder_reset_keeps_digests(self, scheduler, make_sub, preferences):
        notifier = ApschedulerNotifier(scheduler, _deliver)
        notifier.schedule_digests(LAGOS)
        reminders = ReminderScheduler(notifier, preferences)

        reminders.schedule_all([make_sub(days_out=10)], datetime(2024, 6, 15, 8, 0, tzinfo=LAGOS))
        reminders.schedule_all([], datetime(2024, 6, 15, 8, 0, tzinfo=LAGOS))

        assert notifier.scheduled() == []
        assert len(notifier.digests()) == 2

    def test_digests_need_a_sender(self, scheduler):
        with pytest.raises(NotSupportedError):
            ApschedulerNotifier(scheduler, None).schedule_digests(LAGOS)


class TestReminderSyncService:
    async def test_start_resync_stop(self, settings, preferences):
        row = {
            "id": "9",
            "name": "Spotify",
            "amount": "1300",
            "next_billing_date": (date.today() + timedelta(days=30)).isoformat(),
        }
        client = SubaApiClient(settings, transport=httpx.MockTransport(lambda r: httpx.Response(200, json=[row])))
        scheduler = AsyncIOScheduler(timezone=LAGOS)
        notifier = ApschedulerNotifier(scheduler, _deliver)
        sync = ReminderSyncService(
            SubscriptionService(client, ReminderScheduler(notifier, preferences)),
            scheduler,
            notifier=notifier,
            interval_minutes=15,
            timezone="Africa/Lagos",
        )

        await sync.start()
        try:
            assert scheduler.get_job(RESYNC_JOB_ID) is not None
            assert len(notifier.digests()) == 2
            assert await sync.resync() == 1
            assert notifier.scheduled() == [trigger_id_for("9")]
        finally:
            await sync.stop()
            await client.close()

        assert not scheduler.running

    async def test_resync_failure_returns_zero(self, settings, preferences):
        client = SubaApiClient(settings, transport=httpx.MockTransport(lambda r: httpx.Response(500, json={})))
        scheduler = AsyncIOScheduler(timezone=LAGOS)
        sync = ReminderSyncService(
            SubscriptionService(client, ReminderScheduler(ApschedulerNotifier(scheduler, _deliver), preferences)),
            scheduler,
        )
        assert await sync.resync() == 0
        await client.close()
