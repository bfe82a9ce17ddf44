from enum import Enum
from tortoise import fields, models
import uuid


class AlertStatus(str, Enum):
    ACTIVE = "active"
    RESOLVED = "resolved"


class NotificationType(str, Enum):
    LOW_STOCK_CRITICAL = "low_stock_critical"
    LOW_STOCK_LOW = "low_stock_low"


class LowStockAlert(models.Model):
    """At most one ACTIVE alert exists per ingredient at a time."""
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    ingredient = fields.ForeignKeyField("models.Ingredient", related_name="alerts")
    ingredient_name = fields.CharField(max_length=255)
    current_stock = fields.FloatField()
    reorder_level = fields.FloatField()
    alert_type = fields.CharField(max_length=32, default="low_stock") # 'low_stock' or 'out_of_stock'
    status = fields.CharEnumField(AlertStatus, max_length=16, default=AlertStatus.ACTIVE)
    created_at = fields.DatetimeField(auto_now_add=True)
    resolved_at = fields.DatetimeField(null=True)

    class Meta:
        table = "low_stock_alerts"
        indexes = [
            ("ingredient_id", "status"),
        ]


class NotificationThrottle(models.Model):
    """One row per notification type, upserted whenever that type is sent."""
    id = fields.IntField(primary_key=True)
    notification_type = fields.CharEnumField(NotificationType, max_length=32, unique=True)
    last_sent_at = fields.DatetimeField()

    class Meta:
        table = "notification_throttling"


class Notification(models.Model):
    """Administrative signal shown to staff/admin dashboards."""
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    type = fields.CharField(max_length=64) # e.g., 'low_stock', 'deduction_failed'
    title = fields.CharField(max_length=255)
    message = fields.TextField()
    data = fields.JSONField(null=True)
    user_type = fields.CharField(max_length=16, default="admin")
    priority = fields.CharField(max_length=16, default="medium")
    is_read = fields.BooleanField(default=False)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "notifications"
        indexes = [
            ("user_type", "is_read"),
            ("created_at",),
        ]
