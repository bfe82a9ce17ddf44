"""
Unit conversion for ingredient quantities.

Each unit is expressed against one or more *anchor* units. Two units convert
when they share an anchor: ``amount * factor(from) / factor(to)``. Weight units
anchor on ``g``, volume units on ``ml``; coffee measures carry their own
anchors (a ``shot`` is 18 g of beans, a ``cup`` is two shots or 240 ml; a ``shot`` of pulled espresso is 25 ml).
Keeping anchors explicit stops conversions from leaking across families,
e.g. ``ml`` never silently becomes ``g``.

When no path exists :func:`convert` returns the amount unchanged. Callers that
must know use :func:`is_convertible` or :func:`convert_strict`.
"""
from typing import Dict, Optional

from cafe_inventory.core.exceptions import UnconvertibleUnitError

SHOT_GRAMS = 18.0
CUP_SHOTS = 2.0
SHOT_MILLILITERS = 25.0
CUP_MILLILITERS = 240.0

# unit -> {anchor: how many anchor units one unit equals}
UNIT_ANCHORS: Dict[str, Dict[str, float]] = {
    # Weight
    "mg": {"g": 0.001},
    "g": {"g": 1.0},
    "kg": {"g": 1000.0},
    "lb": {"g": 453.6},
    "oz_wt": {"g": 28.35},
    # Volume
    "ml": {"ml": 1.0},
    "cl": {"ml": 10.0},
    "l": {"ml": 1000.0},
    "oz": {"ml": 29.57}, # fluid ounce
    # Coffee measures
    "shot": {"shot": 1.0, "g": SHOT_GRAMS, "ml": SHOT_MILLILITERS},
    "cup": {"cup": 1.0, "shot": CUP_SHOTS, "g": CUP_SHOTS * SHOT_GRAMS, "ml": CUP_MILLILITERS},
    "pump": {"ml": 15.0},
    "sprinkle": {"g": 0.5},
}

UNIT_ALIASES: Dict[str, str] = {
    "gram": "g", "grams": "g", "gr": "g", "gm": "g", "gms": "g",
    "kilogram": "kg", "kilograms": "kg", "kilo": "kg", "kilos": "kg", "kgs": "kg",
    "milligram": "mg", "milligrams": "mg",
    "pound": "lb", "pounds": "lb", "lbs": "lb",
    "oz wt": "oz_wt", "ounce weight": "oz_wt",
    "milliliter": "ml", "milliliters": "ml", "millilitre": "ml", "millilitres": "ml", "mls": "ml",
    "centiliter": "cl", "centiliters": "cl", "centilitre": "cl", "centilitres": "cl",
    "liter": "l", "liters": "l", "litre": "l", "litres": "l", "ltr": "l",
    "fl oz": "oz", "floz": "oz", "fl_oz": "oz", "fluid ounce": "oz", "fluid ounces": "oz",
    "ounce": "oz", "ounces": "oz",
    "cups": "cup",
    "shots": "shot", "espresso shot": "shot", "espresso shots": "shot",
    "pumps": "pump",
    "sprinkles": "sprinkle",
}


def normalize_unit(unit: Optional[str]) -> str:
    """'Grams ' -> 'g'. Unknown units come back lower-cased and trimmed."""
    if unit is None:
        return ""
    normalized = " ".join(str(unit).lower().replace(".", "").split())
    return UNIT_ALIASES.get(normalized, normalized)


def _factor(from_unit: str, to_unit: str) -> Optional[float]:
    from_anchors = UNIT_ANCHORS.get(from_unit)
    to_anchors = UNIT_ANCHORS.get(to_unit)
    if not from_anchors or not to_anchors:
        return None
    for anchor, from_factor in from_anchors.items():
        if anchor in to_anchors:
            return from_factor / to_anchors[anchor]
    return None


def is_convertible(from_unit: Optional[str], to_unit: Optional[str]) -> bool:
    a, b = normalize_unit(from_unit), normalize_unit(to_unit)
    return a == b or _factor(a, b) is not None


def convert(amount: float, from_unit: Optional[str], to_unit: Optional[str]) -> float:
    """
    Convert ``amount`` between units.

    Identical units (after normalization) return ``amount`` unchanged. Pairs with
    no conversion path also return ``amount`` unchanged so that one odd unit does
    not abort a whole order; see :func:`is_convertible`.
    """
    a, b = normalize_unit(from_unit), normalize_unit(to_unit)
    if a == b:
        return amount
    factor = _factor(a, b)
    if factor is None:
        return amount
    return amount * factor


def convert_strict(amount: float, from_unit: Optional[str], to_unit: Optional[str]) -> float:
    if not is_convertible(from_unit, to_unit):
        raise UnconvertibleUnitError(str(from_unit), str(to_unit))
    return convert(amount, from_unit, to_unit)
