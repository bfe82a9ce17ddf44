import asyncio
import pytest
from datetime import timedelta
from unittest.mock import AsyncMock
from uuid import uuid4

from tortoise import timezone

from cafe_inventory.consumers.deduction_queue import DeductionRetryQueue
from cafe_inventory.core.exceptions import TransientDatabaseError
from cafe_inventory.models.deduction_queue import DeductionQueueItem, QueueStatus
from cafe_inventory.schemas.inventory import DeductionResult
from cafe_inventory.services.deduction_service import DeductionTransactionExecutor
from cafe_inventory.testing.testing_mocks import RecordingNotificationSink


def items():
    return [{"menuItemId": str(uuid4()), "quantity": 2, "customizations": ["large_size"]}]


@pytest.fixture
def notifications():
    return RecordingNotificationSink()


@pytest.fixture
def failing_executor():
    executor = AsyncMock()
    executor.deduct_ingredients_for_order.side_effect = TransientDatabaseError("connection reset")
    return executor


@pytest.fixture
def ok_executor():
    executor = AsyncMock()
    executor.deduct_ingredients_for_order.side_effect = lambda order_id, payload: DeductionResult(order_id=order_id)
    return executor


class TestDeductionQueue:

    @pytest.mark.asyncio
    async def test_add_to_queue_stores_validated_items(self, db, ok_executor):
        queue = DeductionRetryQueue(ok_executor)
        order_id = uuid4()

        assert await queue.add_to_queue(order_id, items())

        item = await DeductionQueueItem.get(order_id=order_id)
        assert item.status == QueueStatus.PENDING
        assert item.attempts == 0
        assert item.items[0]["quantity"] == 2
        assert item.items[0]["customizations"][0]["type"] == "large_size"

    @pytest.mark.asyncio
    async def test_add_to_queue_rejects_invalid_items(self, db, ok_executor):
        queue = DeductionRetryQueue(ok_executor)

        assert not await queue.add_to_queue(uuid4(), [{"quantity": 1}])
        assert await DeductionQueueItem.all().count() == 0

    @pytest.mark.asyncio
    async def test_three_failures_mark_item_failed(self, db, failing_executor, notifications):
        queue = DeductionRetryQueue(failing_executor, notification_sink=notifications, max_attempts=3)
        order_id = uuid4()
        await queue.add_to_queue(order_id, items())

        seen = []
        for _ in range(3):
            await queue.process_queue()
            item = await DeductionQueueItem.get(order_id=order_id)
            seen.append((item.status, item.attempts))

        assert seen == [
            (QueueStatus.PENDING, 1),
            (QueueStatus.PENDING, 2),
            (QueueStatus.FAILED, 3),
        ]
        assert item.error_message == "connection reset"
        assert len(notifications.of_type("deduction_failed")) == 1

        # Exhausted items are never picked up again
        assert await queue.process_queue() == 0
        assert failing_executor.deduct_ingredients_for_order.await_count == 3

    @pytest.mark.asyncio
    async def test_success_marks_completed(self, db, ok_executor):
        queue = DeductionRetryQueue(ok_executor)
        order_id = uuid4()
        await queue.add_to_queue(order_id, items())

        assert await queue.process_queue() == 1

        item = await DeductionQueueItem.get(order_id=order_id)
        assert item.status == QueueStatus.COMPLETED
        assert item.processed_at is not None
        assert item.locked_at is None
        ok_executor.deduct_ingredients_for_order.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_replay_against_real_executor(self, make_ingredient, add_recipe):
        milk = await make_ingredient("Milk", 500, unit="ml")
        latte = uuid4()
        await add_recipe(latte, milk, 200, "ml")
        queue = DeductionRetryQueue(DeductionTransactionExecutor())
        order_id = uuid4()
        await queue.add_to_queue(order_id, [{"menu_item_id": str(latte), "quantity": 1}])

        await queue.process_queue()

        await milk.refresh_from_db()
        assert milk.actual_quantity == 300
        assert (await DeductionQueueItem.get(order_id=order_id)).status == QueueStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_retry_failed_items_resets_attempts(self, db, ok_executor):
        queue = DeductionRetryQueue(ok_executor)
        await DeductionQueueItem.create(
            order_id=uuid4(), items=items(), status=QueueStatus.FAILED, attempts=3, error_message="boom"
        )

        assert await queue.retry_failed_items() == 1

        item = await DeductionQueueItem.first()
        assert item.status == QueueStatus.PENDING
        assert item.attempts == 0
        assert item.error_message is None

    @pytest.mark.asyncio
    async def test_cleanup_removes_only_old_completed(self, db, ok_executor):
        queue = DeductionRetryQueue(ok_executor)
        old = await DeductionQueueItem.create(order_id=uuid4(), items=items(), status=QueueStatus.COMPLETED)
        await DeductionQueueItem.create(order_id=uuid4(), items=items(), status=QueueStatus.COMPLETED)
        stale_failed = await DeductionQueueItem.create(order_id=uuid4(), items=items(), status=QueueStatus.FAILED)
        ten_days_ago = timezone.now() - timedelta(days=10)
        await DeductionQueueItem.filter(id__in=[old.id, stale_failed.id]).update(created_at=ten_days_ago)

        assert await queue.cleanup_old_items(days_to_keep=7) == 1
        assert await DeductionQueueItem.all().count() == 2

    @pytest.mark.asyncio
    async def test_recover_stale_processing_items(self, db, ok_executor):
        queue = DeductionRetryQueue(ok_executor)
        stale = await DeductionQueueItem.create(
            order_id=uuid4(), items=items(), status=QueueStatus.PROCESSING,
            attempts=1, locked_at=timezone.now() - timedelta(minutes=30),
        )
        fresh = await DeductionQueueItem.create(
            order_id=uuid4(), items=items(), status=QueueStatus.PROCESSING,
            attempts=1, locked_at=timezone.now(),
        )

        assert await queue.recover_stale_items(timeout_seconds=300) == 1

        await stale.refresh_from_db()
        await fresh.refresh_from_db()
        assert stale.status == QueueStatus.PENDING
        assert fresh.status == QueueStatus.PROCESSING

    @pytest.mark.asyncio
    async def test_stale_item_on_final_attempt_fails_and_does_not_block(self, db, ok_executor, notifications):
        queue = DeductionRetryQueue(ok_executor, notification_sink=notifications, batch_size=1)
        abandoned = await DeductionQueueItem.create(
            order_id=uuid4(), items=items(), status=QueueStatus.PROCESSING,
            attempts=3, max_attempts=3, locked_at=timezone.now() - timedelta(minutes=30),
        )
        await DeductionQueueItem.filter(id=abandoned.id).update(created_at=timezone.now() - timedelta(hours=1))
        newer_order = uuid4()
        await queue.add_to_queue(newer_order, items())

        assert await queue.recover_stale_items(timeout_seconds=300) == 1
        await queue.process_queue()

        await abandoned.refresh_from_db()
        assert abandoned.status == QueueStatus.FAILED
        assert abandoned.attempts == 3
        assert len(notifications.of_type("deduction_failed")) == 1
        assert (await DeductionQueueItem.get(order_id=newer_order)).status == QueueStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_exhausted_pending_rows_do_not_fill_the_batch(self, db, ok_executor):
        queue = DeductionRetryQueue(ok_executor, batch_size=1)
        old = await DeductionQueueItem.create(
            order_id=uuid4(), items=items(), status=QueueStatus.PENDING, attempts=3, max_attempts=3,
        )
        await DeductionQueueItem.filter(id=old.id).update(created_at=timezone.now() - timedelta(hours=1))
        newer_order = uuid4()
        await queue.add_to_queue(newer_order, items())

        assert await queue.process_queue() == 1

        assert (await DeductionQueueItem.get(order_id=newer_order)).status == QueueStatus.COMPLETED
        ok_executor.deduct_ingredients_for_order.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_queue_status_counts(self, db, ok_executor):
        queue = DeductionRetryQueue(ok_executor)
        await queue.add_to_queue(uuid4(), items())
        await queue.add_to_queue(uuid4(), items())
        await DeductionQueueItem.create(order_id=uuid4(), items=items(), status=QueueStatus.FAILED)

        status = await queue.get_queue_status()

        assert status["counts"]["pending"] == 2
        assert status["counts"]["failed"] == 1
        assert status["counts"]["completed"] == 0
        assert len(status["recent_items"]) == 3
        assert status["is_processing"] is False

    @pytest.mark.asyncio
    async def test_poll_loop_processes_and_stops(self, db, ok_executor):
        queue = DeductionRetryQueue(ok_executor, poll_interval=0.01)
        order_id = uuid4()
        await queue.add_to_queue(order_id, items())

        queue.start()
        for _ in range(100):
            if ok_executor.deduct_ingredients_for_order.await_count:
                break
            await asyncio.sleep(0.01)
        await queue.stop()

        assert (await DeductionQueueItem.get(order_id=order_id)).status == QueueStatus.COMPLETED
        assert queue._task is None
