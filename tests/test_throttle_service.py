import pytest
from datetime import datetime, timedelta
from unittest.mock import patch

import pytz

from cafe_inventory.models.alerts import NotificationThrottle, NotificationType
from cafe_inventory.services.throttle_service import LowStockAlertThrottle

CRITICAL = NotificationType.LOW_STOCK_CRITICAL
LOW = NotificationType.LOW_STOCK_LOW


def utc(day, hour, minute=0):
    return pytz.utc.localize(datetime(2024, 3, day, hour, minute))


@pytest.fixture
def throttle():
    return LowStockAlertThrottle(tz_name="UTC", hour=8, minute=0, window_minutes=120)


class TestWindow:

    def test_inside_and_outside_window(self, throttle):
        assert throttle.is_notification_time(utc(1, 8))
        assert throttle.is_notification_time(utc(1, 9, 59))
        assert not throttle.is_notification_time(utc(1, 10))
        assert not throttle.is_notification_time(utc(1, 7, 59))

    def test_window_in_local_timezone(self):
        manila = LowStockAlertThrottle(tz_name="Asia/Manila", hour=8, minute=0, window_minutes=60)
        # 08:30 in Manila is 00:30 UTC
        assert manila.is_notification_time(utc(1, 0, 30))
        assert not manila.is_notification_time(utc(1, 8, 30))

    def test_naive_datetimes_are_treated_as_utc(self, throttle):
        assert throttle.is_notification_time(datetime(2024, 3, 1, 8, 30))

    def test_time_until_next_window(self, throttle):
        assert throttle.time_until_next_window(utc(1, 6)) == timedelta(hours=2)
        assert throttle.time_until_next_window(utc(1, 9)) == timedelta(hours=23)


class TestThrottle:

    @pytest.mark.asyncio
    async def test_no_record_allows_sending(self, db, throttle):
        assert await throttle.can_send_notification(CRITICAL, utc(1, 8))
        assert await throttle.should_send_notification(CRITICAL, utc(1, 8, 30))

    @pytest.mark.asyncio
    async def test_outside_window_blocks(self, db, throttle):
        assert not await throttle.should_send_notification(CRITICAL, utc(1, 14))

    @pytest.mark.asyncio
    async def test_critical_interval_is_a_day(self, db, throttle):
        await throttle.update_last_sent_time(CRITICAL, utc(1, 8))

        assert not await throttle.should_send_notification(CRITICAL, utc(1, 9))
        assert await throttle.should_send_notification(CRITICAL, utc(2, 9))

    @pytest.mark.asyncio
    async def test_low_interval_is_three_days(self, db, throttle):
        await throttle.update_last_sent_time(LOW, utc(1, 8))

        assert not await throttle.should_send_notification(LOW, utc(2, 8, 30))
        assert not await throttle.should_send_notification(LOW, utc(3, 8, 30))
        assert await throttle.should_send_notification(LOW, utc(4, 8, 30))

    @pytest.mark.asyncio
    async def test_types_are_throttled_independently(self, db, throttle):
        await throttle.update_last_sent_time(CRITICAL, utc(1, 8))

        assert await throttle.should_send_notification(LOW, utc(1, 8, 30))

    @pytest.mark.asyncio
    async def test_update_is_an_upsert(self, db, throttle):
        await throttle.update_last_sent_time(CRITICAL, utc(1, 8))
        await throttle.update_last_sent_time(CRITICAL, utc(2, 8))

        records = await NotificationThrottle.filter(notification_type=CRITICAL)
        assert len(records) == 1
        assert records[0].last_sent_at == utc(2, 8)

    @pytest.mark.asyncio
    async def test_read_error_allows_sending(self, db, throttle):
        with patch(
            "cafe_inventory.services.throttle_service.NotificationThrottle.get_or_none",
            side_effect=ConnectionError("db down"),
        ):
            assert await throttle.can_send_notification(CRITICAL, utc(1, 8))

    @pytest.mark.asyncio
    async def test_clock_used_when_no_time_given(self, db):
        throttle = LowStockAlertThrottle(tz_name="UTC", hour=8, window_minutes=60, clock=lambda: utc(5, 8, 15))

        assert await throttle.should_send_notification(CRITICAL)
        await throttle.update_last_sent_time(CRITICAL)
        assert not await throttle.should_send_notification(CRITICAL)


class TestFallback:

    @pytest.mark.asyncio
    async def test_fallback_after_missed_window(self, db, throttle):
        assert await throttle.should_send_fallback(CRITICAL, utc(1, 11))

    @pytest.mark.asyncio
    async def test_fallback_waits_for_window_to_close(self, db, throttle):
        assert not await throttle.should_send_fallback(CRITICAL, utc(1, 9))

    @pytest.mark.asyncio
    async def test_no_fallback_when_window_already_sent(self, db, throttle):
        await throttle.update_last_sent_time(CRITICAL, utc(1, 8, 5))

        assert not await throttle.should_send_fallback(CRITICAL, utc(1, 11))

    @pytest.mark.asyncio
    async def test_throttling_status(self, db, throttle):
        await throttle.update_last_sent_time(LOW, utc(1, 8))

        status = await throttle.get_throttling_status(utc(2, 10))

        assert status[LOW.value]["hours_since_last_sent"] == 26
        assert status[LOW.value]["can_send"] is False
        assert status["is_notification_time"] is False
