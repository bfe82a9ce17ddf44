"""
Throttling for low-stock notifications.

A type may fire only inside the daily notification window (local time) AND
once its minimum interval has passed since the last send: 24 hours for
``low_stock_critical``, 3 days for ``low_stock_low``. An hourly fallback check
(``should_send_fallback``) catches a window missed because the process was
down when it opened.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional, Union

import pytz
from tortoise import timezone

from cafe_inventory.core.config import (
    CRITICAL_INTERVAL_HOURS,
    LOW_STOCK_INTERVAL_DAYS,
    NOTIFICATION_HOUR,
    NOTIFICATION_MINUTE,
    NOTIFICATION_TIMEZONE,
    NOTIFICATION_WINDOW_MINUTES,
)
from cafe_inventory.models.alerts import NotificationThrottle, NotificationType

log = logging.getLogger("throttle_service")


class LowStockAlertThrottle:

    def __init__(
        self,
        tz_name: str = NOTIFICATION_TIMEZONE,
        hour: int = NOTIFICATION_HOUR,
        minute: int = NOTIFICATION_MINUTE,
        window_minutes: int = NOTIFICATION_WINDOW_MINUTES,
        critical_interval: timedelta = timedelta(hours=CRITICAL_INTERVAL_HOURS),
        low_interval: timedelta = timedelta(days=LOW_STOCK_INTERVAL_DAYS),
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.tz = pytz.timezone(tz_name)
        self.hour = hour
        self.minute = minute
        self.window = timedelta(minutes=window_minutes)
        self.intervals = {
            NotificationType.LOW_STOCK_CRITICAL: critical_interval,
            NotificationType.LOW_STOCK_LOW: low_interval,
        }
        self.clock = clock or timezone.now

    # ----------- Time window -----------

    def window_start(self, now: Optional[datetime] = None) -> datetime:
        """Start of today's notification window, in local time."""
        local = self._local(now)
        naive = datetime(local.year, local.month, local.day, self.hour, self.minute)
        return self.tz.localize(naive)

    def is_notification_time(self, now: Optional[datetime] = None) -> bool:
        local = self._local(now)
        start = self.window_start(local)
        return start <= local < start + self.window

    def time_until_next_window(self, now: Optional[datetime] = None) -> timedelta:
        local = self._local(now)
        start = self.window_start(local)
        if local >= start:
            start = self.tz.localize(
                datetime(local.year, local.month, local.day, self.hour, self.minute) + timedelta(days=1)
            )
        return start - local

    # ----------- Interval -----------

    async def can_send_notification(self, notification_type: Union[str, NotificationType], now: Optional[datetime] = None) -> bool:
        """Interval check alone. No record means nothing was ever sent: allowed."""
        kind = NotificationType(notification_type)
        now = self._aware(now)
        try:
            record = await NotificationThrottle.get_or_none(notification_type=kind)
        except Exception as e:
            # On error, allow sending to avoid missing critical notifications
            log.error(f"Error checking notification throttling for {kind.value}: {e}")
            return True

        if record is None:
            return True
        return now - record.last_sent_at >= self.intervals[kind]

    async def should_send_notification(self, notification_type: Union[str, NotificationType], now: Optional[datetime] = None) -> bool:
        """Time-of-day gate AND minimum interval."""
        now = self._aware(now)
        if not self.is_notification_time(now):
            return False
        return await self.can_send_notification(notification_type, now)

    async def should_send_fallback(self, notification_type: Union[str, NotificationType], now: Optional[datetime] = None) -> bool:
        """
        Catch-up gate for the hourly fallback run: today's window has closed,
        nothing of this type went out since it opened, and the interval allows it.
        """
        kind = NotificationType(notification_type)
        now = self._aware(now)
        start = self.window_start(now)
        if self._local(now) < start + self.window:
            return False

        record = await NotificationThrottle.get_or_none(notification_type=kind)
        if record is not None and record.last_sent_at >= start:
            return False
        return await self.can_send_notification(kind, now)

    async def update_last_sent_time(self, notification_type: Union[str, NotificationType], now: Optional[datetime] = None) -> None:
        kind = NotificationType(notification_type)
        now = self._aware(now)
        try:
            await NotificationThrottle.update_or_create(
                defaults={"last_sent_at": now}, notification_type=kind
            )
            log.info(f"Updated last sent time for {kind.value} notifications")
        except Exception as e:
            log.error(f"Error updating notification throttling for {kind.value}: {e}")

    async def get_throttling_status(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = self._aware(now)
        status = {}
        for record in await NotificationThrottle.all().order_by("notification_type"):
            kind = NotificationType(record.notification_type)
            elapsed = now - record.last_sent_at
            status[kind.value] = {
                "last_sent_at": record.last_sent_at.isoformat(),
                "hours_since_last_sent": int(elapsed.total_seconds() // 3600),
                "days_since_last_sent": elapsed.days,
                "can_send": elapsed >= self.intervals[kind],
            }
        status["is_notification_time"] = self.is_notification_time(now)
        return status

    def _aware(self, now: Optional[datetime]) -> datetime:
        now = now or self.clock()
        if now.tzinfo is None:
            now = pytz.utc.localize(now)
        return now

    def _local(self, now: Optional[datetime]) -> datetime:
        return self._aware(now).astimezone(self.tz)
