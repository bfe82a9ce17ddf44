"""
Ingredient deduction for sold orders.

One call is one database transaction: every ingredient the order touches is
row-locked, checked and decremented, or nothing is written at all.
"""
import logging
from collections import Counter
from typing import Any, Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from tortoise.exceptions import DBConnectionError, OperationalError, TransactionManagementError
from tortoise.transactions import in_transaction

from cafe_inventory.core.config import STRICT_RECIPES
from cafe_inventory.core.exceptions import (
    InsufficientStockError,
    InventoryError,
    TransientDatabaseError,
    UnresolvedRecipeError,
)
from cafe_inventory.events.sinks import EventSink, NotificationSink, safe_emit, safe_notify
from cafe_inventory.models.alerts import LowStockAlert, NotificationType
from cafe_inventory.models.ingredient import Ingredient
from cafe_inventory.models.ledger import InventoryTransaction, TransactionType
from cafe_inventory.schemas.inventory import (
    DeductionResult,
    FulfillmentLine,
    FulfillmentReport,
    IngredientUsage,
)
from cafe_inventory.schemas.order import OrderLineItem, parse_line_items
from cafe_inventory.services import unit_converter
from cafe_inventory.services.customization_rules import CustomizationRuleEngine
from cafe_inventory.services.recipe_repository import RecipeLine, RecipeRepository
from cafe_inventory.services.stock_ledger import apply_stock_change, raise_low_stock_alert, round_quantity

log = logging.getLogger("deduction_service")


class DeductionTransactionExecutor:

    def __init__(
        self,
        recipes: Optional[RecipeRepository] = None,
        rules: Optional[CustomizationRuleEngine] = None,
        notification_sink: Optional[NotificationSink] = None,
        event_sink: Optional[EventSink] = None,
        throttle: Any = None,
        strict_recipes: bool = STRICT_RECIPES,
    ):
        self.recipes = recipes or RecipeRepository()
        self.rules = rules or CustomizationRuleEngine()
        self.notification_sink = notification_sink
        self.event_sink = event_sink
        self.throttle = throttle
        self.strict_recipes = strict_recipes
        # (from_unit, to_unit) -> times a quantity passed through unconverted
        self.unconvertible_pairs: Counter = Counter()

    # ----------- Public operations -----------

    async def deduct_ingredients_for_order(self, order_id: UUID, items: Iterable[Any]) -> DeductionResult:
        """
        Deducts every ingredient the order needs, all-or-nothing.

        Raises InsufficientStockError (nothing written), UnresolvedRecipeError
        (strict mode only) or TransientDatabaseError. Replaying an order whose
        usage rows already exist returns those rows with ``already_applied``.
        """
        line_items = parse_line_items(list(items))
        log.info(f"--- Deducting ingredients for Order {order_id} ({len(line_items)} line items) ---")

        usages: List[IngredientUsage] = []
        new_alerts: List[LowStockAlert] = []
        warnings: List[str] = []
        unresolved: List[UUID] = []

        try:
            async with in_transaction() as conn:
                existing = await self._unreversed_usage(order_id, conn)
                if existing:
                    log.info(f"Idempotency: Order {order_id} already deducted ({len(existing)} ledger rows).")
                    return DeductionResult(
                        order_id=order_id,
                        transactions=[self._usage_from_row(row) for row in existing],
                        already_applied=True,
                        message="Ingredients were already deducted for this order",
                    )

                recipes = await self._resolve_recipes(line_items, conn, warnings, unresolved)

                # Lock in a stable order so two orders sharing ingredients cannot deadlock
                ingredient_ids = sorted(
                    {line.ingredient_id for lines in recipes.values() for line in lines}, key=str
                )
                locked = await Ingredient.filter(id__in=ingredient_ids).using_db(conn).select_for_update().order_by("id")
                inv_map = {ing.id: ing for ing in locked}

                for item in line_items:
                    for line in recipes.get(item.menu_item_id, []):
                        ingredient = inv_map[line.ingredient_id]
                        display_amount, required = self._required_amount(item, line, ingredient, warnings)

                        if ingredient.actual_quantity < required:
                            if line.is_optional:
                                warnings.append(
                                    f"Skipped optional {ingredient.name}: required {required:g}{ingredient.actual_unit}, "
                                    f"available {ingredient.actual_quantity:g}{ingredient.actual_unit}"
                                )
                                continue
                            raise InsufficientStockError(
                                ingredient.name, required, ingredient.actual_quantity,
                                ingredient.actual_unit, ingredient.id,
                            )

                        row = await apply_stock_change(
                            ingredient, -required, TransactionType.USAGE, conn,
                            order_id=order_id,
                            menu_item_id=item.menu_item_id,
                            display_amount=display_amount,
                            notes=(
                                f"Used for order {order_id} - {item.name or 'Unknown Item'} "
                                f"(menuItemId: {item.menu_item_id}, qty: {item.quantity})"
                                + (" [default recipe]" if line.is_fallback else "")
                            ),
                        )

                        is_low = ingredient.actual_quantity <= ingredient.reorder_level
                        if is_low:
                            alert = await raise_low_stock_alert(ingredient, conn)
                            if alert:
                                new_alerts.append(alert)

                        usages.append(IngredientUsage(
                            transaction_id=row.id,
                            ingredient_id=ingredient.id,
                            ingredient_name=ingredient.name,
                            menu_item_id=item.menu_item_id,
                            amount=row.actual_amount,
                            previous_stock=row.previous_actual_quantity,
                            new_stock=row.new_actual_quantity,
                            unit=ingredient.actual_unit,
                            reorder_level=ingredient.reorder_level,
                            is_low_stock=is_low,
                            is_fallback=line.is_fallback,
                        ))

        except InventoryError as e:
            log.error(f"FAILURE: Ingredient deduction rolled back for Order {order_id}. Reason: {e}")
            raise
        except (OperationalError, DBConnectionError, TransactionManagementError) as e:
            log.error(f"FAILURE: Database error deducting ingredients for Order {order_id}: {e}")
            raise TransientDatabaseError(str(e)) from e

        log.info(f"SUCCESS: Deducted {len(usages)} ingredient(s) for Order {order_id}")
        await self._publish(order_id, usages, new_alerts, warnings)

        return DeductionResult(
            order_id=order_id,
            transactions=usages,
            warnings=warnings,
            unresolved_items=unresolved,
            message=f"Successfully deducted ingredients for {len(usages)} ingredients",
        )

    async def check_fulfillment(self, items: Iterable[Any]) -> FulfillmentReport:
        """Dry run of a deduction: reports per-ingredient shortfalls without locking or writing."""
        line_items = parse_line_items(list(items))
        warnings: List[str] = []
        unresolved: List[UUID] = []
        recipes = await self._resolve_recipes(line_items, None, warnings, unresolved)

        ingredient_ids = {line.ingredient_id for lines in recipes.values() for line in lines}
        inv_map = {ing.id: ing for ing in await Ingredient.filter(id__in=list(ingredient_ids))}

        # Running balance so repeated ingredients across lines are counted together
        remaining = {ing_id: ing.actual_quantity for ing_id, ing in inv_map.items()}
        report: List[FulfillmentLine] = []
        for item in line_items:
            for line in recipes.get(item.menu_item_id, []):
                ingredient = inv_map[line.ingredient_id]
                _, required = self._required_amount(item, line, ingredient, warnings)
                available = remaining[ingredient.id]
                can_fulfill = available >= required or line.is_optional
                if available >= required:
                    remaining[ingredient.id] = round_quantity(available - required)
                report.append(FulfillmentLine(
                    ingredient_id=ingredient.id,
                    ingredient_name=ingredient.name,
                    required=required,
                    available=available,
                    unit=ingredient.actual_unit,
                    can_fulfill=can_fulfill,
                    shortfall=0 if available >= required else round_quantity(required - available),
                ))

        return FulfillmentReport(
            can_fulfill_order=all(line.can_fulfill for line in report),
            lines=report,
            unresolved_items=unresolved,
        )

    async def get_order_ingredient_usage(self, order_id: UUID) -> List[IngredientUsage]:
        rows = await InventoryTransaction.filter(
            order_id=order_id, transaction_type=TransactionType.USAGE
        ).prefetch_related("ingredient").order_by("-created_at")
        return [self._usage_from_row(row) for row in rows]

    def unconvertible_report(self) -> Dict[str, int]:
        return {f"{a}->{b}": count for (a, b), count in self.unconvertible_pairs.items()}

    # ----------- Internals -----------

    async def _resolve_recipes(
        self,
        line_items: List[OrderLineItem],
        conn: Any,
        warnings: List[str],
        unresolved: List[UUID],
    ) -> Dict[UUID, List[RecipeLine]]:
        recipes = await self.recipes.resolve_many(
            [item.menu_item_id for item in line_items], conn=conn, use_fallback=not self.strict_recipes
        )
        for item in line_items:
            lines = recipes.get(item.menu_item_id, [])
            if not lines:
                if self.strict_recipes:
                    raise UnresolvedRecipeError(item.menu_item_id)
                if item.menu_item_id not in unresolved:
                    unresolved.append(item.menu_item_id)
                warnings.append(f"No recipe for menu item {item.menu_item_id}; line skipped")
            elif any(line.is_fallback for line in lines):
                warnings.append(f"No recipe for menu item {item.menu_item_id}; default recipe applied")
        return recipes

    def _required_amount(
        self,
        item: OrderLineItem,
        line: RecipeLine,
        ingredient: Ingredient,
        warnings: List[str],
    ) -> Tuple[float, float]:
        """Returns (amount in recipe unit, amount in the ingredient's storage unit)."""
        total, rule_warnings = self.rules.apply_requirements(
            line.required_amount,
            item.quantity,
            item.extras,
            item.customizations,
            ingredient.id,
            ingredient.name,
            line.recipe_unit,
        )
        warnings.extend(rule_warnings)

        if not unit_converter.is_convertible(line.recipe_unit, ingredient.actual_unit):
            pair = (unit_converter.normalize_unit(line.recipe_unit), unit_converter.normalize_unit(ingredient.actual_unit))
            self.unconvertible_pairs[pair] += 1
            message = (
                f"No unit conversion from '{line.recipe_unit}' to '{ingredient.actual_unit}' "
                f"for {ingredient.name}; using {total:g} unconverted"
            )
            log.warning(message)
            warnings.append(message)

        required = unit_converter.convert(total, line.recipe_unit, ingredient.actual_unit)
        return round_quantity(total), round_quantity(required)

    async def _unreversed_usage(self, order_id: UUID, conn: Any) -> List[InventoryTransaction]:
        usage = await InventoryTransaction.filter(
            order_id=order_id, transaction_type=TransactionType.USAGE
        ).using_db(conn).prefetch_related("ingredient")
        if not usage:
            return []
        reversed_ids = set(await InventoryTransaction.filter(
            order_id=order_id, transaction_type=TransactionType.RESTORATION
        ).using_db(conn).values_list("reverses_id", flat=True))
        return [row for row in usage if row.id not in reversed_ids]

    @staticmethod
    def _usage_from_row(row: InventoryTransaction) -> IngredientUsage:
        ingredient = row.ingredient
        return IngredientUsage(
            transaction_id=row.id,
            ingredient_id=ingredient.id,
            ingredient_name=ingredient.name,
            menu_item_id=row.menu_item_id,
            amount=row.actual_amount,
            previous_stock=row.previous_actual_quantity,
            new_stock=row.new_actual_quantity,
            unit=ingredient.actual_unit,
            reorder_level=ingredient.reorder_level,
            is_low_stock=row.new_actual_quantity <= ingredient.reorder_level,
        )

    async def _publish(
        self,
        order_id: UUID,
        usages: List[IngredientUsage],
        new_alerts: List[LowStockAlert],
        warnings: List[str],
    ) -> None:
        """Post-commit side effects. Failures are logged, never raised."""
        for usage in usages:
            await safe_emit(self.event_sink, "inventory-updated", {
                "type": "ingredient_deducted",
                "ingredient_id": str(usage.ingredient_id),
                "name": usage.ingredient_name,
                "previous": usage.previous_stock,
                "new": usage.new_stock,
                "delta": -usage.amount,
                "unit": usage.unit,
                "order_id": str(order_id),
            })

        if any("default recipe" in w for w in warnings):
            await safe_notify(self.notification_sink, "recipe_missing", {
                "title": "Menu item without recipe",
                "message": f"Order {order_id} used a default recipe; check menu configuration.",
                "data": {"order_id": str(order_id), "warnings": warnings},
                "priority": "high",
            })

        for alert in new_alerts:
            await self._notify_low_stock(alert)

    async def _notify_low_stock(self, alert: LowStockAlert) -> None:
        notification_type = (
            NotificationType.LOW_STOCK_CRITICAL if alert.current_stock <= 0 else NotificationType.LOW_STOCK_LOW
        )
        if self.throttle is not None:
            try:
                if not await self.throttle.should_send_notification(notification_type):
                    log.info(f"Low stock notification for {alert.ingredient_name} throttled ({notification_type.value}).")
                    return
            except Exception as e:
                log.warning(f"Throttle check failed, sending anyway: {e}")

        sent = await safe_notify(self.notification_sink, "low_stock", {
            "title": "Critical Stock Alert" if notification_type == NotificationType.LOW_STOCK_CRITICAL else "Low Stock Alert",
            "message": f"{alert.ingredient_name} is at {alert.current_stock:g} (reorder level {alert.reorder_level:g})",
            "data": {
                "ingredient_id": str(alert.ingredient_id),
                "current_stock": alert.current_stock,
                "reorder_level": alert.reorder_level,
                "alert_type": alert.alert_type,
            },
            "priority": "urgent" if notification_type == NotificationType.LOW_STOCK_CRITICAL else "high",
        })
        if sent and self.throttle is not None:
            await self.throttle.update_last_sent_time(notification_type)
