import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from cafe_inventory.core.config import FALLBACK_RECIPE_GRAMS, FALLBACK_RECIPE_INGREDIENT
from cafe_inventory.models.ingredient import Ingredient, MenuItemIngredient
from cafe_inventory.services import unit_converter

log = logging.getLogger("recipe_repository")


@dataclass
class RecipeLine:
    """A recipe entry resolved for one menu item."""
    menu_item_id: UUID
    ingredient_id: UUID
    ingredient_name: str
    required_amount: float
    recipe_unit: str
    is_optional: bool = False
    # True when synthesized because the menu item has no configured recipe
    is_fallback: bool = False


class RecipeRepository:
    """
    Read access to menu-item -> ingredient mappings.

    When a menu item has no mapping, ``resolve_many`` can substitute a minimal
    default recipe (a fixed weight of the fallback ingredient). That keeps an
    order flowing but hides missing menu configuration, so every substitution
    is logged at WARNING and reported back to the caller.
    """

    def __init__(
        self,
        fallback_ingredient: Optional[str] = FALLBACK_RECIPE_INGREDIENT,
        fallback_grams: float = FALLBACK_RECIPE_GRAMS,
    ):
        self.fallback_ingredient = fallback_ingredient
        self.fallback_grams = fallback_grams

    async def resolve_many(
        self, menu_item_ids: Iterable[UUID], conn: Any = None, use_fallback: bool = True
    ) -> Dict[UUID, List[RecipeLine]]:
        """
        Returns recipe lines keyed by menu item. Menu items with neither a recipe
        nor an applicable fallback map to an empty list. With ``use_fallback``
        off, unmapped items always map to an empty list.
        """
        wanted = list(dict.fromkeys(menu_item_ids))
        entries = await MenuItemIngredient.filter(menu_item_id__in=wanted).using_db(conn).prefetch_related("ingredient")

        recipes: Dict[UUID, List[RecipeLine]] = {mid: [] for mid in wanted}
        for entry in entries:
            ingredient = entry.ingredient
            recipes.setdefault(entry.menu_item_id, []).append(RecipeLine(
                menu_item_id=entry.menu_item_id,
                ingredient_id=ingredient.id,
                ingredient_name=ingredient.name,
                required_amount=entry.required_actual_amount,
                recipe_unit=entry.recipe_unit or ingredient.actual_unit,
                is_optional=entry.is_optional,
            ))

        for menu_item_id, lines in recipes.items():
            if lines or not use_fallback:
                continue
            fallback = await self.fallback_recipe(menu_item_id, conn=conn)
            if fallback:
                recipes[menu_item_id] = [fallback]
        return recipes

    async def fallback_recipe(self, menu_item_id: UUID, conn: Any = None) -> Optional[RecipeLine]:
        if not self.fallback_ingredient:
            return None

        ingredient = await Ingredient.filter(
            name__icontains=self.fallback_ingredient
        ).using_db(conn).order_by("name").first()
        if not ingredient:
            log.warning(
                f"No recipe for menu item {menu_item_id} and no '{self.fallback_ingredient}' ingredient to fall back on."
            )
            return None

        amount = self.fallback_grams
        unit = "g"
        if unit_converter.is_convertible("g", ingredient.actual_unit):
            amount = unit_converter.convert(self.fallback_grams, "g", ingredient.actual_unit)
            unit = ingredient.actual_unit

        log.warning(
            f"MISSING RECIPE: menu item {menu_item_id} has no ingredient mapping. "
            f"Using default recipe: {amount:g}{unit} of {ingredient.name}."
        )
        return RecipeLine(
            menu_item_id=menu_item_id,
            ingredient_id=ingredient.id,
            ingredient_name=ingredient.name,
            required_amount=amount,
            recipe_unit=unit,
            is_fallback=True,
        )
