import pytest
from uuid import uuid4

from cafe_inventory.schemas.order import Customization, ExtraIngredient, OrderLineItem
from cafe_inventory.services.customization_rules import CustomizationRuleEngine


class TestCustomizationRules:

    def test_extras_then_multiplier(self):
        """20 g x 2 + 10 g extra, large size x1.2 -> 60 g."""
        sugar_id = uuid4()
        engine = CustomizationRuleEngine({"large_size": {"sugar": 1.2}})
        total, warnings = engine.apply_requirements(
            20, 2,
            [ExtraIngredient(ingredient_id=sugar_id, amount=10)],
            [Customization(type="large_size")],
            sugar_id, "Sugar", "g",
        )
        assert total == pytest.approx(60)
        assert warnings == []

    def test_extras_for_other_ingredients_are_ignored(self):
        engine = CustomizationRuleEngine()
        total, _ = engine.apply_requirements(
            200, 1, [ExtraIngredient(ingredient_id=uuid4(), amount=50)], [], uuid4(), "Milk", "ml"
        )
        assert total == 200

    def test_extra_in_other_unit_is_converted(self):
        milk_id = uuid4()
        engine = CustomizationRuleEngine()
        total, _ = engine.apply_requirements(
            200, 1, [ExtraIngredient(ingredient_id=milk_id, amount=0.1, unit="l")], [], milk_id, "Milk", "ml"
        )
        assert total == pytest.approx(300)

    def test_unconvertible_extra_warns(self):
        milk_id = uuid4()
        engine = CustomizationRuleEngine()
        total, warnings = engine.sum_extras([ExtraIngredient(ingredient_id=milk_id, amount=5, unit="g")], milk_id, "ml")
        assert total == 5
        assert len(warnings) == 1

    def test_default_table_matches_normalized_names(self):
        engine = CustomizationRuleEngine()
        assert engine.multiplier_for([Customization(type="Double Shot")], uuid4(), "Coffee Beans") == 2.0
        assert engine.multiplier_for([Customization(type="extra_shot")], uuid4(), "Sugar") == 1.0

    def test_explicit_multiplier_scoped_to_ingredient(self):
        target = uuid4()
        engine = CustomizationRuleEngine()
        scoped = [Customization(type="custom", multiplier=3, ingredient_id=target)]
        assert engine.multiplier_for(scoped, target, "Vanilla Syrup") == 3
        assert engine.multiplier_for(scoped, uuid4(), "Vanilla Syrup") == 1.0

    def test_line_item_accepts_camel_case_and_strings(self):
        menu_item_id = uuid4()
        extra_id = uuid4()
        item = OrderLineItem.model_validate({
            "menuItemId": str(menu_item_id),
            "quantity": 2,
            "customizations": ["extra_shot"],
            "extraIngredients": [{"ingredientId": str(extra_id), "quantity": 5}],
        })
        assert item.menu_item_id == menu_item_id
        assert item.customizations[0].type == "extra_shot"
        assert item.extras[0].ingredient_id == extra_id
        assert item.extras[0].amount == 5

    def test_line_item_lifts_extras_nested_under_addons(self):
        extra_id = uuid4()
        item = OrderLineItem.model_validate({
            "menuItemId": str(uuid4()),
            "addons": {"extras": [{"id": str(extra_id), "amount": 15, "unit": "ml"}]},
        })
        assert len(item.extras) == 1
        assert item.extras[0].ingredient_id == extra_id
        assert item.extras[0].amount == 15
        assert item.extras[0].unit == "ml"

    def test_top_level_extras_win_over_addons(self):
        top_id = uuid4()
        item = OrderLineItem.model_validate({
            "menu_item_id": str(uuid4()),
            "extras": [{"ingredient_id": str(top_id), "amount": 1}],
            "addons": {"extras": [{"ingredient_id": str(uuid4()), "amount": 9}]},
        })
        assert [e.ingredient_id for e in item.extras] == [top_id]
