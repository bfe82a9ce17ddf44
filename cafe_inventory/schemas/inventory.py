import uuid
from datetime import datetime
from pydantic import BaseModel, Field
from typing import Dict, List, Optional


class IngredientUsage(BaseModel):
    """One committed stock mutation, as reported back to the caller."""
    transaction_id: Optional[uuid.UUID] = None
    ingredient_id: uuid.UUID
    ingredient_name: str
    menu_item_id: Optional[uuid.UUID] = None
    amount: float
    previous_stock: float
    new_stock: float
    unit: str
    reorder_level: float = 0
    is_low_stock: bool = False
    is_fallback: bool = False


class DeductionResult(BaseModel):
    success: bool = True
    order_id: uuid.UUID
    transactions: List[IngredientUsage] = Field(default_factory=list)
    # True when the order had already been deducted and this call was a replay
    already_applied: bool = False
    warnings: List[str] = Field(default_factory=list)
    unresolved_items: List[uuid.UUID] = Field(default_factory=list)
    message: str = ""


class RestorationResult(BaseModel):
    success: bool = True
    order_id: uuid.UUID
    menu_item_id: Optional[uuid.UUID] = None
    restorations: List[IngredientUsage] = Field(default_factory=list)


class FulfillmentLine(BaseModel):
    ingredient_id: uuid.UUID
    ingredient_name: str
    required: float
    available: float
    unit: str
    can_fulfill: bool
    shortfall: float = 0


class FulfillmentReport(BaseModel):
    can_fulfill_order: bool
    lines: List[FulfillmentLine]
    unresolved_items: List[uuid.UUID] = Field(default_factory=list)


class OrderProcessingOutcome(BaseModel):
    """Result of the order-ready flow: deducted inline, or deferred to the queue."""
    order_id: uuid.UUID
    deducted: bool
    queued: bool = False
    result: Optional[DeductionResult] = None
    error: Optional[Dict] = None


class IngredientResponse(BaseModel):
    id: uuid.UUID
    name: str
    category: Optional[str] = None
    actual_unit: str
    actual_quantity: float
    reorder_level: float
    is_available: bool
    updated_at: Optional[datetime] = None


class RestockRequest(BaseModel):
    amount: float = Field(..., gt=0, description="Amount received, in the unit given below.")
    unit: Optional[str] = Field(None, description="Defaults to the ingredient's storage unit.")
    notes: Optional[str] = None


class QueueStatusResponse(BaseModel):
    counts: Dict[str, int]
    recent_items: List[Dict]
    is_processing: bool
