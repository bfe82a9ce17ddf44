"""
Relays ``outbox_events`` rows to the real-time layer.

Events are written by :class:`~cafe_inventory.events.sinks.OutboxEventSink`
after a stock change commits. The relay hands each unpublished row to a
publisher, marks it published, and purges published rows past retention.
"""
import asyncio
import logging
from datetime import timedelta
from typing import Awaitable, Callable, Optional

from tortoise import timezone

from cafe_inventory.core.config import (
    OUTBOX_BATCH_SIZE,
    OUTBOX_MAX_ATTEMPTS,
    OUTBOX_POLL_INTERVAL,
    OUTBOX_RETENTION_DAYS,
)
from cafe_inventory.models.outbox import OutboxEvent

log = logging.getLogger("outbox_relay")

Publisher = Callable[[OutboxEvent], Awaitable[None]]
PURGE_EVERY = timedelta(hours=1)


async def log_publisher(event: OutboxEvent) -> None:
    """Default publisher when no socket layer is attached."""
    log.info(f"Relaying {event.event_type} for {event.aggregate_type} {event.aggregate_id}")


class OutboxRelay:

    def __init__(
        self,
        publisher: Optional[Publisher] = None,
        poll_interval: float = OUTBOX_POLL_INTERVAL,
        max_attempts: int = OUTBOX_MAX_ATTEMPTS,
        batch_size: int = OUTBOX_BATCH_SIZE,
        retention_days: int = OUTBOX_RETENTION_DAYS,
    ):
        self.publisher = publisher or log_publisher
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self.batch_size = batch_size
        self.retention_days = retention_days
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None

    async def relay_pending(self) -> int:
        """Publishes one batch of unpublished events, oldest first. Returns how many went out."""
        events = await OutboxEvent.filter(
            published=False, attempts__lt=self.max_attempts
        ).order_by("created_at").limit(self.batch_size)

        published = 0
        for event in events:
            try:
                await self.publisher(event)
            except Exception as e:
                event.attempts += 1
                await event.save(update_fields=["attempts"])
                log.warning(f"Failed to relay outbox event {event.id} ({event.attempts}/{self.max_attempts}): {e}")
                continue

            event.published = True
            await event.save(update_fields=["published"])
            published += 1
        return published

    async def purge_published(self, days_to_keep: Optional[int] = None) -> int:
        days = self.retention_days if days_to_keep is None else days_to_keep
        cutoff = timezone.now() - timedelta(days=days)
        count = await OutboxEvent.filter(published=True, created_at__lt=cutoff).delete()
        if count:
            log.info(f"Purged {count} published outbox events older than {days} day(s)")
        return count

    # ----------- Poll loop -----------

    def start(self) -> None:
        if self._task and not self._task.done():
            log.info("Outbox relay is already running")
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run())
        log.info(f"--- Outbox relay started (every {self.poll_interval}s) ---")

    async def stop(self) -> None:
        if not self._task:
            return
        self._stop_event.set()
        await self._task
        self._task = None
        log.info("Outbox relay stopped.")

    async def _run(self) -> None:
        last_purge = None
        while not self._stop_event.is_set():
            try:
                await self.relay_pending()
                if last_purge is None or timezone.now() - last_purge > PURGE_EVERY:
                    await self.purge_published()
                    last_purge = timezone.now()
            except Exception as e:
                log.error(f"Outbox relay encountered a DB error: {e}")

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass
