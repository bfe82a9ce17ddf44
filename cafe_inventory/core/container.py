from dataclasses import dataclass
from typing import Optional

from cafe_inventory.consumers.deduction_queue import DeductionRetryQueue
from cafe_inventory.consumers.outbox_relay import OutboxRelay
from cafe_inventory.events.sinks import DatabaseNotificationSink, EventSink, NotificationSink, OutboxEventSink
from cafe_inventory.services.customization_rules import CustomizationRuleEngine
from cafe_inventory.services.deduction_service import DeductionTransactionExecutor
from cafe_inventory.services.inventory_service import InventoryService
from cafe_inventory.services.low_stock_monitor import LowStockMonitor
from cafe_inventory.services.recipe_repository import RecipeRepository
from cafe_inventory.services.restoration_service import RestorationExecutor
from cafe_inventory.services.throttle_service import LowStockAlertThrottle


@dataclass
class Services:
    throttle: LowStockAlertThrottle
    executor: DeductionTransactionExecutor
    restorer: RestorationExecutor
    queue: DeductionRetryQueue
    monitor: LowStockMonitor
    inventory: InventoryService
    outbox: OutboxRelay


def build_services(
    notification_sink: Optional[NotificationSink] = None,
    event_sink: Optional[EventSink] = None,
    throttle: Optional[LowStockAlertThrottle] = None,
) -> Services:
    """Wires the engine. Sinks default to the notifications table and the outbox."""
    notification_sink = notification_sink or DatabaseNotificationSink()
    event_sink = event_sink or OutboxEventSink()
    throttle = throttle or LowStockAlertThrottle()

    executor = DeductionTransactionExecutor(
        recipes=RecipeRepository(),
        rules=CustomizationRuleEngine(),
        notification_sink=notification_sink,
        event_sink=event_sink,
        throttle=throttle,
    )
    restorer = RestorationExecutor(event_sink=event_sink)
    queue = DeductionRetryQueue(executor, notification_sink=notification_sink)
    return Services(
        throttle=throttle,
        executor=executor,
        restorer=restorer,
        queue=queue,
        monitor=LowStockMonitor(throttle, notification_sink),
        inventory=InventoryService(executor, restorer, queue, notification_sink),
        outbox=OutboxRelay(),
    )
