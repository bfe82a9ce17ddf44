import logging
from typing import Any, Iterable, List, Optional
from uuid import UUID

from tortoise.exceptions import DBConnectionError, OperationalError, TransactionManagementError
from tortoise.transactions import in_transaction

from cafe_inventory.core.exceptions import NothingToRestoreError, TransientDatabaseError
from cafe_inventory.events.sinks import EventSink, safe_emit
from cafe_inventory.models.ingredient import Ingredient
from cafe_inventory.models.ledger import InventoryTransaction, TransactionType
from cafe_inventory.schemas.inventory import IngredientUsage, RestorationResult
from cafe_inventory.services.stock_ledger import apply_stock_change, resolve_low_stock_alert

log = logging.getLogger("restoration_service")


class RestorationExecutor:
    """
    Credits stock back for a cancelled order.

    Amounts come from the order's ``usage`` ledger rows, never from the recipe,
    so a recipe or conversion change between sale and cancellation cannot make
    the credit drift from what was actually taken.
    """

    def __init__(self, event_sink: Optional[EventSink] = None):
        self.event_sink = event_sink

    async def restore_inventory_for_order(
        self,
        order_id: UUID,
        menu_item_id: Optional[UUID] = None,
        customizations: Optional[Iterable[Any]] = None,
    ) -> RestorationResult:
        """
        Restores the whole order, or only ``menu_item_id``'s share of it.

        Raises NothingToRestoreError when the order has no recorded deductions.
        Usage rows already credited are skipped, so a repeated cancellation
        returns an empty restoration list instead of crediting twice.
        """
        log.info(f"--- RESTORING inventory for Order {order_id} ---")
        restorations: List[IngredientUsage] = []
        note_suffix = ""
        if customizations:
            note_suffix = f" (customizations: {', '.join(self._describe(c) for c in customizations)})"

        try:
            async with in_transaction() as conn:
                query = InventoryTransaction.filter(order_id=order_id, transaction_type=TransactionType.USAGE)
                if menu_item_id:
                    query = query.filter(menu_item_id=menu_item_id)
                usage_rows = await query.using_db(conn).order_by("created_at")
                if not usage_rows:
                    raise NothingToRestoreError(order_id, menu_item_id)

                reversed_ids = set(await InventoryTransaction.filter(
                    reverses_id__in=[row.id for row in usage_rows],
                    transaction_type=TransactionType.RESTORATION,
                ).using_db(conn).values_list("reverses_id", flat=True))
                pending = [row for row in usage_rows if row.id not in reversed_ids]
                if not pending:
                    log.info(f"Order {order_id} already fully restored.")
                    return RestorationResult(order_id=order_id, menu_item_id=menu_item_id)

                # CRITICAL: Lock rows to ensure consistent increment
                ingredient_ids = sorted({row.ingredient_id for row in pending}, key=str)
                locked = await Ingredient.filter(id__in=ingredient_ids).using_db(conn).select_for_update().order_by("id")
                inv_map = {ing.id: ing for ing in locked}

                for usage in pending:
                    ingredient = inv_map[usage.ingredient_id]
                    row = await apply_stock_change(
                        ingredient, usage.actual_amount, TransactionType.RESTORATION, conn,
                        order_id=order_id,
                        menu_item_id=usage.menu_item_id,
                        display_amount=usage.display_amount,
                        reverses=usage,
                        notes=f"Inventory restored for cancelled order {order_id} - {ingredient.name}{note_suffix}",
                    )
                    await resolve_low_stock_alert(ingredient, conn)
                    restorations.append(IngredientUsage(
                        transaction_id=row.id,
                        ingredient_id=ingredient.id,
                        ingredient_name=ingredient.name,
                        menu_item_id=usage.menu_item_id,
                        amount=row.actual_amount,
                        previous_stock=row.previous_actual_quantity,
                        new_stock=row.new_actual_quantity,
                        unit=ingredient.actual_unit,
                        reorder_level=ingredient.reorder_level,
                        is_low_stock=ingredient.actual_quantity <= ingredient.reorder_level,
                    ))
        except (OperationalError, DBConnectionError, TransactionManagementError) as e:
            log.error(f"CRITICAL ERROR: Failed to restore inventory for {order_id}: {e}")
            raise TransientDatabaseError(str(e)) from e

        log.info(f"SUCCESS: Inventory restored for Order {order_id} ({len(restorations)} ingredient(s))")
        for restoration in restorations:
            await safe_emit(self.event_sink, "inventory-updated", {
                "type": "ingredient_restored",
                "ingredient_id": str(restoration.ingredient_id),
                "name": restoration.ingredient_name,
                "previous": restoration.previous_stock,
                "new": restoration.new_stock,
                "delta": restoration.amount,
                "unit": restoration.unit,
                "order_id": str(order_id),
            })

        return RestorationResult(order_id=order_id, menu_item_id=menu_item_id, restorations=restorations)

    @staticmethod
    def _describe(customization: Any) -> str:
        return getattr(customization, "type", None) or str(customization)
