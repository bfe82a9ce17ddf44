import pytest
import pytest_asyncio

from cafe_inventory.core.db import close_db, init_db
from cafe_inventory.models.ingredient import Ingredient, MenuItemIngredient


@pytest_asyncio.fixture
async def db():
    """Fresh in-memory database per test. SQLite ignores row locks; its single connection serializes writers."""
    await init_db("sqlite://:memory:")
    yield
    await close_db()


@pytest.fixture
def make_ingredient(db):
    async def _make(name, quantity, unit="g", reorder_level=0, **kwargs):
        return await Ingredient.create(
            name=name, actual_unit=unit, actual_quantity=quantity, reorder_level=reorder_level, **kwargs
        )
    return _make


@pytest.fixture
def add_recipe(db):
    async def _add(menu_item_id, ingredient, amount, unit=None, is_optional=False):
        return await MenuItemIngredient.create(
            menu_item_id=menu_item_id,
            ingredient=ingredient,
            required_actual_amount=amount,
            recipe_unit=unit,
            is_optional=is_optional,
        )
    return _add
