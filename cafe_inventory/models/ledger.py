from enum import Enum
from tortoise import fields, models
import uuid


class TransactionType(str, Enum):
    USAGE = "usage"  # Stock consumed by a sold order
    RESTORATION = "restoration" # Credit back for a cancelled order
    PURCHASE = "purchase"
    INITIAL = "initial"


class InventoryTransaction(models.Model):
    """
    The append-only stock ledger. One row per stock mutation; rows are never
    updated or deleted in normal operation.
    """
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    ingredient = fields.ForeignKeyField("models.Ingredient", related_name="transactions")
    transaction_type = fields.CharEnumField(TransactionType, max_length=16)
    # Always in the ingredient's actual_unit
    actual_amount = fields.FloatField()
    # Amount as computed in the recipe unit, before conversion
    display_amount = fields.FloatField(null=True)
    previous_actual_quantity = fields.FloatField()
    new_actual_quantity = fields.FloatField()
    order_id = fields.UUIDField(null=True)
    menu_item_id = fields.UUIDField(null=True)
    # A restoration row points at the usage row it credits back
    reverses = fields.ForeignKeyField(
        "models.InventoryTransaction", related_name="reversals", null=True
    )
    notes = fields.TextField(null=True)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "inventory_transactions"
        indexes = [
            ("order_id",),                        # Per-order usage / restoration lookups
            ("ingredient_id", "created_at"),      # Ingredient history
            ("order_id", "transaction_type"),     # Composite: idempotency check
        ]
