import logging
from typing import Any, Iterable, Optional
from uuid import UUID

from cafe_inventory.core.exceptions import InventoryError
from cafe_inventory.events.sinks import NotificationSink, safe_notify
from cafe_inventory.schemas.inventory import OrderProcessingOutcome, RestorationResult
from cafe_inventory.schemas.order import parse_line_items

log = logging.getLogger("inventory_service")


class InventoryService:
    """
    Entry point for the ordering service.

    ``process_order_ready`` is called when an order is completed: it tries the
    deduction inline and, on failure, parks the same payload on the retry
    queue. It never raises for a failed deduction; the caller's status change
    has already happened and must not be undone by inventory.
    """

    def __init__(self, executor: Any, restorer: Any, queue: Any, notification_sink: Optional[NotificationSink] = None):
        self.executor = executor
        self.restorer = restorer
        self.queue = queue
        self.notification_sink = notification_sink

    async def process_order_ready(self, order_id: UUID, items: Iterable[Any]) -> OrderProcessingOutcome:
        line_items = parse_line_items(list(items))
        try:
            result = await self.executor.deduct_ingredients_for_order(order_id, line_items)
            return OrderProcessingOutcome(order_id=order_id, deducted=True, result=result)
        except InventoryError as e:
            error = e.to_dict()
            log.warning(f"Inline deduction failed for Order {order_id} ({e.code}); deferring to queue.")
        except Exception as e:
            error = {"code": "unexpected_error", "message": str(e)}
            log.exception(f"Unexpected error deducting ingredients for Order {order_id}; deferring to queue.")

        queued = await self.queue.add_to_queue(order_id, line_items)
        if queued:
            await safe_notify(self.notification_sink, "deduction_queued", {
                "title": "Ingredient deduction deferred",
                "message": f"Order {order_id}: {error['message']}. Deduction will be retried.",
                "data": {"order_id": str(order_id), "error": error},
                "priority": "high",
            })
        else:
            log.error(f"Order {order_id} could neither be deducted nor queued.")
            await safe_notify(self.notification_sink, "deduction_failed", {
                "title": "Ingredient deduction failed",
                "message": f"Order {order_id}: {error['message']}. Could not queue for retry.",
                "data": {"order_id": str(order_id), "error": error},
                "priority": "urgent",
            })
        return OrderProcessingOutcome(order_id=order_id, deducted=False, queued=queued, error=error)

    async def cancel_order(
        self,
        order_id: UUID,
        menu_item_id: Optional[UUID] = None,
        customizations: Optional[Iterable[Any]] = None,
    ) -> RestorationResult:
        """Restores stock for a cancelled order (or one of its menu items). Errors propagate."""
        return await self.restorer.restore_inventory_for_order(order_id, menu_item_id, customizations)
