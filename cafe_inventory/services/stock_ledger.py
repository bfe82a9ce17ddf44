"""
Shared write helpers for the stock ledger and the low-stock alert table.

All helpers take the open transaction connection; they never commit on their
own. Quantities are rounded to ``QUANTITY_PRECISION`` decimal places so that
floating point residue never shows up as stock.
"""
import logging
from typing import Any, Optional
from uuid import UUID

from tortoise import timezone
from tortoise.transactions import in_transaction

from cafe_inventory.core.exceptions import IngredientNotFoundError
from cafe_inventory.models.alerts import AlertStatus, LowStockAlert
from cafe_inventory.models.ingredient import Ingredient
from cafe_inventory.models.ledger import InventoryTransaction, TransactionType
from cafe_inventory.services import unit_converter

log = logging.getLogger("stock_ledger")

QUANTITY_PRECISION = 6


def round_quantity(value: float) -> float:
    rounded = round(value, QUANTITY_PRECISION)
    # Avoid "-0.0" in the ledger
    return 0.0 if rounded == 0 else rounded


async def apply_stock_change(
    ingredient: Ingredient,
    delta: float,
    transaction_type: TransactionType,
    conn: Any,
    order_id: Optional[UUID] = None,
    menu_item_id: Optional[UUID] = None,
    display_amount: Optional[float] = None,
    reverses: Optional[InventoryTransaction] = None,
    notes: Optional[str] = None,
) -> InventoryTransaction:
    """
    Moves ``ingredient.actual_quantity`` by ``delta`` and appends the ledger row.
    The caller must hold the row lock and has already checked sufficiency.
    """
    previous = ingredient.actual_quantity
    new_quantity = round_quantity(previous + delta)
    if new_quantity < 0:
        # Sufficiency is checked before we get here; this guards the invariant itself
        raise ValueError(f"Stock for {ingredient.name} would become negative ({new_quantity})")

    ingredient.actual_quantity = new_quantity
    await ingredient.save(update_fields=["actual_quantity", "updated_at"], using_db=conn)

    return await InventoryTransaction.create(
        ingredient=ingredient,
        transaction_type=transaction_type,
        actual_amount=round_quantity(abs(delta)),
        display_amount=display_amount,
        previous_actual_quantity=previous,
        new_actual_quantity=new_quantity,
        order_id=order_id,
        menu_item_id=menu_item_id,
        reverses=reverses,
        notes=notes,
        using_db=conn,
    )


async def raise_low_stock_alert(ingredient: Ingredient, conn: Any) -> Optional[LowStockAlert]:
    """
    Records an active alert unless one already exists for the ingredient.
    Returns the new alert, or None when deduplicated.
    """
    existing = await LowStockAlert.filter(
        ingredient_id=ingredient.id, status=AlertStatus.ACTIVE
    ).using_db(conn).first()
    if existing:
        existing.current_stock = ingredient.actual_quantity
        existing.alert_type = "out_of_stock" if ingredient.actual_quantity <= 0 else "low_stock"
        await existing.save(update_fields=["current_stock", "alert_type"], using_db=conn)
        return None

    alert = await LowStockAlert.create(
        ingredient=ingredient,
        ingredient_name=ingredient.name,
        current_stock=ingredient.actual_quantity,
        reorder_level=ingredient.reorder_level,
        alert_type="out_of_stock" if ingredient.actual_quantity <= 0 else "low_stock",
        status=AlertStatus.ACTIVE,
        using_db=conn,
    )
    log.info(f"Low stock alert created for {ingredient.name} ({ingredient.actual_quantity:g}{ingredient.actual_unit})")
    return alert


async def resolve_low_stock_alert(ingredient: Ingredient, conn: Any) -> int:
    """Resolves the active alert once stock is back above the reorder level."""
    if ingredient.actual_quantity <= ingredient.reorder_level:
        return 0
    return await LowStockAlert.filter(
        ingredient_id=ingredient.id, status=AlertStatus.ACTIVE
    ).using_db(conn).update(status=AlertStatus.RESOLVED, resolved_at=timezone.now())


async def restock_ingredient(
    ingredient_id: UUID,
    amount: float,
    unit: Optional[str] = None,
    notes: Optional[str] = None,
    transaction_type: TransactionType = TransactionType.PURCHASE,
) -> InventoryTransaction:
    """Records received stock (``purchase``) or an opening balance (``initial``)."""
    async with in_transaction() as conn:
        ingredient = await Ingredient.filter(id=ingredient_id).using_db(conn).select_for_update().first()
        if not ingredient:
            raise IngredientNotFoundError(ingredient_id)

        stock_amount = amount
        if unit:
            if not unit_converter.is_convertible(unit, ingredient.actual_unit):
                log.warning(
                    f"Restock of {ingredient.name}: no conversion from '{unit}' to '{ingredient.actual_unit}', amount used as-is"
                )
            stock_amount = unit_converter.convert(amount, unit, ingredient.actual_unit)

        row = await apply_stock_change(
            ingredient, stock_amount, transaction_type, conn,
            display_amount=amount,
            notes=notes or f"{transaction_type.value.title()} of {amount:g}{unit or ingredient.actual_unit}",
        )
        await resolve_low_stock_alert(ingredient, conn)
    return row
