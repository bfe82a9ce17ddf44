"""
Deferred ingredient deduction.

Orders whose inline deduction failed are parked in ``ingredient_deduction_queue``
with their full line-item payload and replayed by a single poll task until
they succeed or run out of attempts.
"""
import asyncio
import logging
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from pydantic import ValidationError
from tortoise import timezone
from tortoise.expressions import F
from tortoise.functions import Count
from tortoise.transactions import in_transaction

from cafe_inventory.core.config import (
    QUEUE_BATCH_SIZE,
    QUEUE_MAX_ATTEMPTS,
    QUEUE_POLL_INTERVAL,
    QUEUE_RETENTION_DAYS,
    QUEUE_STALE_TIMEOUT_SECONDS,
)
from cafe_inventory.core.exceptions import QueueExhaustedError
from cafe_inventory.events.sinks import NotificationSink, safe_notify
from cafe_inventory.models.deduction_queue import DeductionQueueItem, QueueStatus
from cafe_inventory.schemas.order import parse_line_items

log = logging.getLogger("deduction_queue")


class DeductionRetryQueue:

    def __init__(
        self,
        executor: Any,
        notification_sink: Optional[NotificationSink] = None,
        poll_interval: float = QUEUE_POLL_INTERVAL,
        max_attempts: int = QUEUE_MAX_ATTEMPTS,
        batch_size: int = QUEUE_BATCH_SIZE,
    ):
        self.executor = executor
        self.notification_sink = notification_sink
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self.batch_size = batch_size
        self.is_processing = False
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None

    # ----------- Enqueue -----------

    async def add_to_queue(self, order_id: UUID, items: Iterable[Any]) -> bool:
        """Parks an order for deferred deduction. Returns False instead of raising."""
        try:
            payload = [item.model_dump(mode="json") for item in parse_line_items(list(items))]
            await DeductionQueueItem.create(
                order_id=order_id,
                items=payload,
                status=QueueStatus.PENDING,
                max_attempts=self.max_attempts,
            )
        except ValidationError as e:
            log.error(f"Rejected queue entry for order {order_id}: invalid line items ({e.error_count()} errors)")
            return False
        except Exception as e:
            log.error(f"Failed to add ingredient deduction to queue for order {order_id}: {e}")
            return False

        log.info(f"Added ingredient deduction to queue for order {order_id}")
        return True

    # ----------- Processing -----------

    async def process_queue(self) -> int:
        """Claims one batch of pending items and replays each. Returns the batch size."""
        claimed = await self._claim_batch()
        if not claimed:
            return 0

        log.info(f"Processing {len(claimed)} pending ingredient deductions...")
        for item in claimed:
            await self.process_queue_item(item)
        return len(claimed)

    async def _claim_batch(self) -> List[DeductionQueueItem]:
        async with in_transaction() as conn:
            # skip_locked lets a second poller pick a different batch instead of waiting
            pending = await DeductionQueueItem.filter(
                status=QueueStatus.PENDING, attempts__lt=F("max_attempts")
            ).using_db(conn).select_for_update(skip_locked=True).order_by("created_at").limit(self.batch_size)

            now = timezone.now()
            claimed = []
            for item in pending:
                item.status = QueueStatus.PROCESSING
                item.locked_at = now
                item.attempts += 1
                await item.save(update_fields=["status", "locked_at", "attempts"], using_db=conn)
                claimed.append(item)
        return claimed

    async def process_queue_item(self, item: DeductionQueueItem) -> bool:
        """Replays one claimed item. True when the deduction went through."""
        log.info(f"Processing ingredient deduction for order {item.order_id} (attempt {item.attempts}/{item.max_attempts})")
        try:
            result = await self.executor.deduct_ingredients_for_order(item.order_id, item.items)
        except Exception as e:
            await self._record_failure(item, e)
            return False

        item.status = QueueStatus.COMPLETED
        item.processed_at = timezone.now()
        item.locked_at = None
        item.error_message = None
        await item.save(update_fields=["status", "processed_at", "locked_at", "error_message"])
        log.info(
            f"Ingredient deduction completed for order {item.order_id}: "
            f"{len(result.transactions)} ingredient(s){' (already applied)' if result.already_applied else ''}"
        )
        return True

    async def _record_failure(self, item: DeductionQueueItem, error: Exception) -> None:
        message = str(error)
        item.error_message = message
        item.locked_at = None

        if item.attempts < item.max_attempts:
            item.status = QueueStatus.PENDING
            await item.save(update_fields=["status", "error_message", "locked_at"])
            log.warning(
                f"Will retry ingredient deduction for order {item.order_id} "
                f"(attempt {item.attempts}/{item.max_attempts}): {message}"
            )
            return

        await self._mark_exhausted(item, message)

    async def _mark_exhausted(self, item: DeductionQueueItem, message: str) -> None:
        item.status = QueueStatus.FAILED
        item.error_message = message
        item.locked_at = None
        item.processed_at = timezone.now()
        await item.save(update_fields=["status", "error_message", "locked_at", "processed_at"])

        exhausted = QueueExhaustedError(item.order_id, item.attempts, message)
        log.error(f"Max retries reached. {exhausted}")
        await safe_notify(self.notification_sink, "deduction_failed", {
            "title": "Ingredient deduction failed",
            "message": exhausted.message,
            "data": {**exhausted.to_dict(), "order_id": str(item.order_id), "queue_item_id": str(item.id)},
            "priority": "urgent",
        })

    # ----------- Maintenance -----------

    async def retry_failed_items(self) -> int:
        """Puts every failed item back in line with a fresh attempt budget."""
        count = await DeductionQueueItem.filter(status=QueueStatus.FAILED).update(
            status=QueueStatus.PENDING, attempts=0, error_message=None, processed_at=None
        )
        if count:
            log.info(f"Reset {count} failed items for retry")
        else:
            log.info("No failed items to retry")
        return count

    async def cleanup_old_items(self, days_to_keep: int = QUEUE_RETENTION_DAYS) -> int:
        cutoff = timezone.now() - timedelta(days=days_to_keep)
        count = await DeductionQueueItem.filter(status=QueueStatus.COMPLETED, created_at__lt=cutoff).delete()
        log.info(f"Cleaned up {count} old completed items from queue")
        return count

    async def recover_stale_items(self, timeout_seconds: int = QUEUE_STALE_TIMEOUT_SECONDS) -> int:
        """
        Releases items stuck in ``processing`` (poller died mid-batch). Items
        with attempts left go back to ``pending``; the rest are marked failed.
        """
        cutoff = timezone.now() - timedelta(seconds=timeout_seconds)
        stale = DeductionQueueItem.filter(status=QueueStatus.PROCESSING, locked_at__lt=cutoff)

        exhausted = await stale.filter(attempts__gte=F("max_attempts"))
        for item in exhausted:
            await self._mark_exhausted(item, item.error_message or "Abandoned while processing its final attempt")

        count = await stale.filter(attempts__lt=F("max_attempts")).update(status=QueueStatus.PENDING, locked_at=None)
        if count or exhausted:
            log.warning(f"Recovered {count} stale queue item(s) left in processing, {len(exhausted)} marked failed")
        return count + len(exhausted)

    async def get_queue_status(self, recent: int = 10) -> Dict[str, Any]:
        rows = await DeductionQueueItem.annotate(count=Count("id")).group_by("status").values("status", "count")
        counts = {status.value: 0 for status in QueueStatus}
        for row in rows:
            counts[QueueStatus(row["status"]).value] = row["count"]

        recent_items = await DeductionQueueItem.all().order_by("-created_at").limit(recent).values(
            "id", "order_id", "status", "attempts", "max_attempts", "error_message", "created_at", "processed_at"
        )
        return {"counts": counts, "recent_items": recent_items, "is_processing": self.is_processing}

    # ----------- Poll loop -----------

    def start(self) -> None:
        if self._task and not self._task.done():
            log.info("Ingredient deduction queue is already running")
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run())
        log.info(f"--- Ingredient deduction queue started (every {self.poll_interval}s) ---")

    async def stop(self) -> None:
        """Signals the loop and waits for the in-flight batch to finish."""
        if not self._task:
            return
        self._stop_event.set()
        await self._task
        self._task = None
        log.info("Ingredient deduction queue stopped.")

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            self.is_processing = True
            try:
                await self.process_queue()
            except Exception as e:
                log.error(f"Queue poll encountered a DB error: {e}")
            finally:
                self.is_processing = False

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass


async def run_queue_worker():
    """Standalone worker: the queue without the HTTP app."""
    from cafe_inventory.core.container import build_services
    from cafe_inventory.core.db import close_db, init_db

    await init_db()
    services = build_services()
    await services.queue.recover_stale_items()
    services.queue.start()
    try:
        await services.queue._task
    finally:
        await services.queue.stop()
        await close_db()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    try:
        asyncio.run(run_queue_worker())
    except KeyboardInterrupt:
        log.info("Queue worker stopped.")
