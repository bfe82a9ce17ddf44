from enum import Enum
from tortoise import fields, models
import uuid


class QueueStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed" # Terminal until an operator retries it


class DeductionQueueItem(models.Model):
    """
    A deduction request that could not be confirmed inline. Carries the full
    line-item payload so the deduction can be replayed with identical inputs.
    """
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    order_id = fields.UUIDField()
    items = fields.JSONField() # Validated OrderLineItem dicts
    status = fields.CharEnumField(QueueStatus, max_length=16, default=QueueStatus.PENDING)
    attempts = fields.IntField(default=0)
    max_attempts = fields.IntField(default=3)
    error_message = fields.TextField(null=True)
    created_at = fields.DatetimeField(auto_now_add=True)
    # Set when claimed; used to reclaim rows abandoned by a stopped poller
    locked_at = fields.DatetimeField(null=True)
    processed_at = fields.DatetimeField(null=True)

    class Meta:
        table = "ingredient_deduction_queue"
        indexes = [
            ("status", "created_at"),   # Poller: oldest pending first
            ("order_id",),
        ]
