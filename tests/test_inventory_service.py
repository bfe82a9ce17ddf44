import pytest
from unittest.mock import AsyncMock
from uuid import uuid4

from cafe_inventory.core.container import build_services
from cafe_inventory.core.exceptions import InsufficientStockError, NothingToRestoreError
from cafe_inventory.models.alerts import Notification
from cafe_inventory.models.deduction_queue import DeductionQueueItem, QueueStatus
from cafe_inventory.models.outbox import OutboxEvent
from cafe_inventory.schemas.inventory import DeductionResult
from cafe_inventory.services.inventory_service import InventoryService
from cafe_inventory.testing.testing_mocks import RecordingEventSink, RecordingNotificationSink


def items():
    return [{"menu_item_id": str(uuid4()), "quantity": 1}]


class TestProcessOrderReady:

    @pytest.mark.asyncio
    async def test_inline_success_does_not_queue(self):
        order_id = uuid4()
        executor, queue = AsyncMock(), AsyncMock()
        executor.deduct_ingredients_for_order.return_value = DeductionResult(order_id=order_id)
        service = InventoryService(executor, AsyncMock(), queue)

        outcome = await service.process_order_ready(order_id, items())

        assert outcome.deducted and not outcome.queued
        queue.add_to_queue.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failure_is_queued_and_never_raised(self):
        sink = RecordingNotificationSink()
        executor, queue = AsyncMock(), AsyncMock()
        executor.deduct_ingredients_for_order.side_effect = InsufficientStockError("Milk", 600, 500, "ml")
        queue.add_to_queue.return_value = True
        service = InventoryService(executor, AsyncMock(), queue, sink)

        outcome = await service.process_order_ready(uuid4(), items())

        assert not outcome.deducted
        assert outcome.queued
        assert outcome.error["code"] == "insufficient_stock"
        queue.add_to_queue.assert_awaited_once()
        assert len(sink.of_type("deduction_queued")) == 1

    @pytest.mark.asyncio
    async def test_unexpected_error_when_queue_also_fails(self):
        sink = RecordingNotificationSink()
        executor, queue = AsyncMock(), AsyncMock()
        executor.deduct_ingredients_for_order.side_effect = RuntimeError("boom")
        queue.add_to_queue.return_value = False
        service = InventoryService(executor, AsyncMock(), queue, sink)

        outcome = await service.process_order_ready(uuid4(), items())

        assert not outcome.deducted and not outcome.queued
        assert outcome.error["code"] == "unexpected_error"
        assert len(sink.of_type("deduction_failed")) == 1

    @pytest.mark.asyncio
    async def test_cancel_propagates_errors(self):
        restorer = AsyncMock()
        restorer.restore_inventory_for_order.side_effect = NothingToRestoreError(uuid4())
        service = InventoryService(AsyncMock(), restorer, AsyncMock())

        with pytest.raises(NothingToRestoreError):
            await service.cancel_order(uuid4())


class TestWiredServices:

    @pytest.mark.asyncio
    async def test_shortage_lands_on_queue_then_completes_after_restock(self, make_ingredient, add_recipe):
        milk = await make_ingredient("Milk", 100, unit="ml")
        latte = uuid4()
        await add_recipe(latte, milk, 200, "ml")
        services = build_services(RecordingNotificationSink(), RecordingEventSink())
        order_id = uuid4()

        outcome = await services.inventory.process_order_ready(order_id, [{"menuItemId": str(latte)}])
        assert outcome.queued

        milk.actual_quantity = 1000
        await milk.save()
        await services.queue.process_queue()

        item = await DeductionQueueItem.get(order_id=order_id)
        assert item.status == QueueStatus.COMPLETED
        await milk.refresh_from_db()
        assert milk.actual_quantity == 800

    @pytest.mark.asyncio
    async def test_default_sinks_write_outbox_and_notifications(self, make_ingredient, add_recipe):
        milk = await make_ingredient("Milk", 100, unit="ml")
        latte = uuid4()
        await add_recipe(latte, milk, 60, "ml")
        services = build_services()
        order_id = uuid4()

        await services.inventory.process_order_ready(order_id, [{"menuItemId": str(latte)}])
        await services.inventory.process_order_ready(uuid4(), [{"menuItemId": str(latte)}])

        events = await OutboxEvent.filter(event_type="inventory-updated")
        assert len(events) == 1
        assert events[0].aggregate_id == milk.id
        assert events[0].payload["order_id"] == str(order_id)
        assert await Notification.filter(type="deduction_queued").count() == 1

        assert await services.outbox.relay_pending() == 1
        await events[0].refresh_from_db()
        assert events[0].published
