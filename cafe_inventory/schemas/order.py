from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import List, Optional, Union
import uuid


class Customization(BaseModel):
    """
    A named customization on a line item (e.g. 'large_size').
    An explicit multiplier overrides the rule table; ingredient_id scopes it to one ingredient.
    """
    model_config = ConfigDict(populate_by_name=True)

    type: str
    multiplier: Optional[float] = Field(None, gt=0)
    ingredient_id: Optional[uuid.UUID] = Field(
        None, validation_alias=AliasChoices("ingredient_id", "ingredientId")
    )


class ExtraIngredient(BaseModel):
    """An additive extra: amount of one ingredient added on top of the recipe."""
    model_config = ConfigDict(populate_by_name=True)

    ingredient_id: uuid.UUID = Field(
        ..., validation_alias=AliasChoices("ingredient_id", "ingredientId", "id")
    )
    amount: float = Field(0, ge=0, validation_alias=AliasChoices("amount", "quantity"))
    unit: Optional[str] = None # None means the recipe unit of the ingredient


class OrderLineItem(BaseModel):
    """
    One line of an order as supplied by the ordering service. Validated once at
    the boundary; the deduction path and the retry queue only see this shape.
    """
    model_config = ConfigDict(populate_by_name=True)

    menu_item_id: uuid.UUID = Field(
        ..., validation_alias=AliasChoices("menu_item_id", "menuItemId")
    )
    quantity: int = Field(1, ge=1)
    customizations: List[Customization] = Field(default_factory=list)
    extras: List[ExtraIngredient] = Field(
        default_factory=list, validation_alias=AliasChoices("extras", "extraIngredients")
    )
    name: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _lift_addon_extras(cls, data):
        # Older ordering clients nest extras as {"addons": {"extras": [...]}}
        if isinstance(data, dict) and "extras" not in data and "extraIngredients" not in data:
            addons = data.get("addons")
            if isinstance(addons, dict) and addons.get("extras"):
                data = {**data, "extras": addons["extras"]}
        return data

    @field_validator("customizations", mode="before")
    @classmethod
    def _coerce_customizations(cls, value: Union[None, list, dict]):
        # Accept plain strings ("extra_shot") alongside objects
        if value is None:
            return []
        if isinstance(value, dict):
            value = [value]
        return [{"type": v} if isinstance(v, str) else v for v in value]

    @field_validator("extras", mode="before")
    @classmethod
    def _coerce_extras(cls, value):
        if value is None:
            return []
        if isinstance(value, dict):
            return value.get("extras", [])
        return value


class OrderDeductionRequest(BaseModel):
    """Payload of the order-completion event."""
    items: List[OrderLineItem] = Field(..., min_length=1)


class OrderRestorationRequest(BaseModel):
    menu_item_id: Optional[uuid.UUID] = None
    customizations: List[Customization] = Field(default_factory=list)


def parse_line_items(raw_items: list) -> List[OrderLineItem]:
    """Validates raw dicts (or already-typed items) into OrderLineItem objects."""
    return [
        item if isinstance(item, OrderLineItem) else OrderLineItem.model_validate(item)
        for item in raw_items
    ]
