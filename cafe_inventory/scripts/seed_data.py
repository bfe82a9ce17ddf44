# scripts/seed_data.py
import asyncio
import logging
import uuid
from tortoise import Tortoise
from cafe_inventory.core.config import LOG_FORMAT
from cafe_inventory.core.db import init_db
from cafe_inventory.models.ingredient import Ingredient, MenuItemIngredient
from cafe_inventory.models.ledger import TransactionType
from cafe_inventory.services.stock_ledger import restock_ingredient

log = logging.getLogger("seed_data")

# Stable ids so re-running the seed does not duplicate recipes
MENU_NAMESPACE = uuid.UUID("6f1c1f52-3b8e-4c55-9b8a-0d3c2f9e7a10")

INGREDIENTS = [
    # name, category, unit, opening stock, reorder level
    ("Espresso Beans", "coffee", "g", 2000, 250),
    ("Whole Milk", "dairy", "ml", 5000, 1000),
    ("Sugar", "sweetener", "g", 1500, 200),
    ("Vanilla Syrup", "syrup", "ml", 750, 150),
    ("Whipped Cream", "dairy", "g", 500, 100),
    ("Cocoa Powder", "chocolate", "g", 400, 80),
]

RECIPES = {
    # menu item: [(ingredient, amount, recipe unit, optional)]
    "Caffe Latte": [("Espresso Beans", 1, "shot", False), ("Whole Milk", 200, "ml", False)],
    "Vanilla Latte": [
        ("Espresso Beans", 1, "shot", False),
        ("Whole Milk", 200, "ml", False),
        ("Vanilla Syrup", 2, "pump", False),
    ],
    "Americano": [("Espresso Beans", 2, "shot", False)],
    "Mocha": [
        ("Espresso Beans", 1, "shot", False),
        ("Whole Milk", 180, "ml", False),
        ("Cocoa Powder", 20, "g", False),
        ("Whipped Cream", 15, "g", True),
    ],
}


def menu_item_id(name: str) -> uuid.UUID:
    return uuid.uuid5(MENU_NAMESPACE, name)


async def seed():
    by_name = {}
    for name, category, unit, opening, reorder in INGREDIENTS:
        ingredient, created = await Ingredient.get_or_create(
            name=name,
            defaults={"category": category, "actual_unit": unit, "reorder_level": reorder},
        )
        by_name[name] = ingredient
        if created:
            # Opening balance goes through the ledger like any other stock change
            await restock_ingredient(ingredient.id, opening, unit, "Opening balance", TransactionType.INITIAL)
        log.info(f"Ingredient: {name} ({ingredient.id})")

    for item_name, lines in RECIPES.items():
        item_id = menu_item_id(item_name)
        for ingredient_name, amount, unit, optional in lines:
            await MenuItemIngredient.update_or_create(
                menu_item_id=item_id,
                ingredient=by_name[ingredient_name],
                defaults={"required_actual_amount": amount, "recipe_unit": unit, "is_optional": optional},
            )
        log.info(f"Menu item: {item_name} ({item_id}), {len(lines)} recipe lines")

    log.info("Inventory seeded.")

async def main():
    await init_db()
    await seed()
    await Tortoise.close_connections()

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    asyncio.run(main())
