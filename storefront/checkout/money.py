"""Montants: conversions prix <-> centimes et forme texte stockée en base."""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from .errors import ValidationError

CENT = Decimal("0.01")

def to_minor_units(price: Any) -> int:
    """Convertit un prix (str|float|int|Decimal) en centimes, arrondi au centime supérieur à .5."""
    try:
        value = Decimal(str(price))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"Prix invalide: {price!r}")
    if not value.is_finite():
        raise ValidationError(f"Prix invalide: {price!r}")
    return int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

def from_minor_units(amount: int) -> Decimal:
    return (Decimal(int(amount)) / 100).quantize(CENT)

def format_price(price: Decimal) -> str:
    """Forme texte stockée en base (numeric), ex: '10.00'."""
    return f"{price.quantize(CENT)}"
