"""
Error taxonomy for the inventory engine.

Every error carries a stable ``code`` so the HTTP layer and the notification
sink can report it to staff without exposing a traceback.
"""
from typing import Any, Dict, Optional
from uuid import UUID


class InventoryError(Exception):
    code = "inventory_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message}


class InsufficientStockError(InventoryError):
    """Required amount exceeds available stock. The order's deduction is rolled back."""
    code = "insufficient_stock"

    def __init__(self, ingredient_name: str, required: float, available: float, unit: str = "", ingredient_id: Optional[UUID] = None):
        self.ingredient_name = ingredient_name
        self.ingredient_id = ingredient_id
        self.required = required
        self.available = available
        self.unit = unit
        super().__init__(
            f"Insufficient stock for {ingredient_name}. "
            f"Required: {required:g}{unit}, Available: {available:g}{unit}"
        )

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body.update({
            "ingredient": self.ingredient_name,
            "required": self.required,
            "available": self.available,
            "unit": self.unit,
        })
        return body


class UnresolvedRecipeError(InventoryError):
    """Menu item has no ingredient mapping and no fallback applies."""
    code = "unresolved_recipe"

    def __init__(self, menu_item_id: UUID):
        self.menu_item_id = menu_item_id
        super().__init__(f"No recipe configured for menu item {menu_item_id}")


class UnconvertibleUnitError(InventoryError):
    """Soft error: the unit pair has no known conversion path."""
    code = "unconvertible_unit"

    def __init__(self, from_unit: str, to_unit: str):
        self.from_unit = from_unit
        self.to_unit = to_unit
        super().__init__(f"No unit conversion from '{from_unit}' to '{to_unit}'")


class QueueExhaustedError(InventoryError):
    code = "queue_exhausted"

    def __init__(self, order_id: UUID, attempts: int, last_error: Optional[str] = None):
        self.order_id = order_id
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Ingredient deduction for order {order_id} failed after {attempts} attempts: {last_error}"
        )


class TransientDatabaseError(InventoryError):
    """Connection loss or lock timeout. Always retryable through the queue."""
    code = "transient_database_error"


class NothingToRestoreError(InventoryError):
    code = "nothing_to_restore"

    def __init__(self, order_id: UUID, menu_item_id: Optional[UUID] = None):
        self.order_id = order_id
        self.menu_item_id = menu_item_id
        target = f"order {order_id}"
        if menu_item_id:
            target += f" / menu item {menu_item_id}"
        super().__init__(f"No recorded ingredient deductions for {target}")


class IngredientNotFoundError(InventoryError):
    code = "ingredient_not_found"

    def __init__(self, ingredient_id: UUID):
        self.ingredient_id = ingredient_id
        super().__init__(f"Ingredient {ingredient_id} not found")
