from tortoise import fields, models
import uuid


class Ingredient(models.Model):
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    name = fields.CharField(max_length=255)
    category = fields.CharField(max_length=64, null=True)
    # Canonical storage unit; every ledger amount for this ingredient is in this unit
    actual_unit = fields.CharField(max_length=32)
    actual_quantity = fields.FloatField(default=0)
    reorder_level = fields.FloatField(default=0) # For low stock alert
    is_available = fields.BooleanField(default=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "ingredients"
        indexes = [
            ("is_available",),
        ]

    def __str__(self):
        return f"{self.name} ({self.actual_quantity:g}{self.actual_unit})"


class MenuItemIngredient(models.Model):
    """
    Recipe entry: how much of one ingredient a single unit of a menu item consumes.
    Maintained by menu administration; the inventory engine only reads it.
    """
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    # Menu items live in the ordering service, referenced by id only
    menu_item_id = fields.UUIDField()
    ingredient = fields.ForeignKeyField("models.Ingredient", related_name="recipe_entries")
    required_actual_amount = fields.FloatField()
    # Unit of required_actual_amount; null means the ingredient's actual_unit
    recipe_unit = fields.CharField(max_length=32, null=True)
    is_optional = fields.BooleanField(default=False)

    class Meta:
        table = "menu_item_ingredients"
        unique_together = (("menu_item_id", "ingredient"),)
        indexes = [
            ("menu_item_id",),
        ]
