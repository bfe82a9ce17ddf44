import logging
from typing import Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from cafe_inventory.schemas.order import Customization, ExtraIngredient
from cafe_inventory.services import unit_converter

log = logging.getLogger("customization_rules")

# customization type -> normalized ingredient name -> multiplier
DEFAULT_MULTIPLIERS: Dict[str, Dict[str, float]] = {
    "extra_shot": {"coffee_beans": 1.5, "milk": 1.2},
    "double_shot": {"coffee_beans": 2.0, "milk": 1.5},
    "extra_syrup": {"syrup": 1.3},
    "extra_cream": {"whipping_cream": 1.4, "milk": 1.2},
    "large_size": {"milk": 1.3, "syrup": 1.2, "coffee_beans": 1.2},
    "extra_ice": {"ice": 1.5},
}


def normalize_key(value: str) -> str:
    """'Coffee Beans' -> 'coffee_beans'."""
    return "_".join(str(value).lower().replace("-", " ").split())


class CustomizationRuleEngine:
    """
    Turns a recipe's per-unit requirement into the total an order line needs.

    Extras are additive and are summed first; customization multipliers are then
    applied to the combined amount. Reordering those two steps changes results.
    """

    def __init__(self, multipliers: Optional[Dict[str, Dict[str, float]]] = None):
        table = DEFAULT_MULTIPLIERS if multipliers is None else multipliers
        self.multipliers = {
            normalize_key(kind): {normalize_key(name): factor for name, factor in per_ingredient.items()}
            for kind, per_ingredient in table.items()
        }

    def sum_extras(
        self,
        extras: Iterable[ExtraIngredient],
        ingredient_id: UUID,
        base_unit: str,
    ) -> Tuple[float, List[str]]:
        """Total of the extras targeting ``ingredient_id``, in ``base_unit``."""
        total = 0.0
        warnings = []
        for extra in extras:
            if extra.ingredient_id != ingredient_id:
                continue
            unit = extra.unit or base_unit
            if not unit_converter.is_convertible(unit, base_unit):
                warnings.append(
                    f"Extra for ingredient {ingredient_id}: no conversion from '{unit}' to '{base_unit}', amount used as-is"
                )
            total += unit_converter.convert(extra.amount, unit, base_unit)
        return total, warnings

    def multiplier_for(
        self,
        customizations: Iterable[Customization],
        ingredient_id: UUID,
        ingredient_name: str,
    ) -> float:
        multiplier = 1.0
        name_key = normalize_key(ingredient_name)
        for customization in customizations:
            if customization.ingredient_id is not None and customization.ingredient_id != ingredient_id:
                continue
            if customization.multiplier is not None:
                multiplier *= customization.multiplier
                continue
            factor = self.multipliers.get(normalize_key(customization.type), {}).get(name_key)
            if factor:
                multiplier *= factor
        return multiplier

    def apply_requirements(
        self,
        base_quantity_per_unit: float,
        order_quantity: int,
        extras: Iterable[ExtraIngredient],
        customizations: Iterable[Customization],
        ingredient_id: UUID,
        ingredient_name: str,
        base_unit: str,
    ) -> Tuple[float, List[str]]:
        """
        Returns ``(total_required_in_base_unit, warnings)``.

        total = (base_quantity_per_unit * order_quantity + extras) * multipliers
        """
        total = base_quantity_per_unit * order_quantity

        extra_total, warnings = self.sum_extras(extras, ingredient_id, base_unit)
        if extra_total > 0:
            log.debug(f"Adding extras for {ingredient_name}: +{extra_total:g} {base_unit}")
            total += extra_total

        multiplier = self.multiplier_for(customizations, ingredient_id, ingredient_name)
        if multiplier != 1.0:
            log.debug(f"Applying x{multiplier:g} customization multiplier for {ingredient_name}")
            total *= multiplier

        return total, warnings
