# cafe_inventory/models/__init__.py
from .ingredient import Ingredient, MenuItemIngredient
from .ledger import InventoryTransaction, TransactionType
from .deduction_queue import DeductionQueueItem, QueueStatus
from .alerts import AlertStatus, LowStockAlert, Notification, NotificationThrottle, NotificationType
from .outbox import OutboxEvent

# Export all models
__all__ = [
    "Ingredient",
    "MenuItemIngredient",
    "InventoryTransaction",
    "TransactionType",
    "DeductionQueueItem",
    "QueueStatus",
    "AlertStatus",
    "LowStockAlert",
    "Notification",
    "NotificationThrottle",
    "NotificationType",
    "OutboxEvent",
]
