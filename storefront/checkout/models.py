"""
Modèles typés du checkout: adresse de livraison, lignes valorisées,
et métadonnées de session Stripe (validées à l'écriture comme à la lecture).
"""
import json
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic import ValidationError as PydanticValidationError

from .errors import Unauthorized, ValidationError
from .money import from_minor_units

# Stripe limite chaque valeur de metadata à 500 caractères
STRIPE_METADATA_VALUE_MAX = 500


def describe_validation_error(exc: PydanticValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return ", ".join(parts) or "Données invalides"


class ShippingInfo(BaseModel):
    # Accepte les clés camelCase envoyées par le front (fullName, zipCode)
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    full_name: str = Field(alias="fullName", min_length=2, max_length=100)
    email: EmailStr
    address: str = Field(min_length=5, max_length=200)
    city: str = Field(min_length=2, max_length=100)
    zip_code: str = Field(alias="zipCode", min_length=3, max_length=20)

    @classmethod
    def parse(cls, raw: Any) -> "ShippingInfo":
        if isinstance(raw, ShippingInfo):
            return raw
        if not isinstance(raw, Mapping):
            raise ValidationError("shippingInfo manquant ou invalide")
        try:
            return cls.model_validate(dict(raw))
        except PydanticValidationError as e:
            raise ValidationError(describe_validation_error(e))

    def as_address(self) -> Dict[str, Any]:
        """Forme stockée dans orders.shipping_address (clés camelCase, comme le front)."""
        return self.model_dump(by_alias=True)


class SessionMetadata(BaseModel):
    user_id: str = Field(min_length=1)
    shipping_info: ShippingInfo

    def to_stripe(self) -> Dict[str, str]:
        shipping_json = self.shipping_info.model_dump_json(by_alias=True)
        if len(shipping_json) > STRIPE_METADATA_VALUE_MAX:
            raise ValidationError("Adresse de livraison trop longue")
        return {"user_id": self.user_id, "shipping_info": shipping_json}

    @classmethod
    def from_stripe(cls, metadata: Optional[Mapping[str, Any]]) -> "SessionMetadata":
        """
        Relit les métadonnées d'une session Stripe.
        - user_id absent: la propriété de la session est invérifiable -> Unauthorized
        - shipping_info illisible -> ValidationError
        """
        meta = dict(metadata or {})
        user_id = str(meta.get("user_id") or "").strip()
        if not user_id:
            raise Unauthorized("Session de paiement sans propriétaire", status_code=403)
        try:
            shipping_raw = json.loads(meta.get("shipping_info") or "{}")
        except (TypeError, ValueError):
            raise ValidationError("shipping_info illisible dans la session de paiement")
        return cls(user_id=user_id, shipping_info=ShippingInfo.parse(shipping_raw))


class PricedLine(BaseModel):
    product_id: str
    name: str
    unit_price: Decimal
    unit_amount: int  # centimes
    quantity: int

    @property
    def line_amount(self) -> int:
        return self.unit_amount * self.quantity


class PricedCart(BaseModel):
    lines: List[PricedLine]
    amount: int  # total en centimes

    @property
    def total(self) -> Decimal:
        return from_minor_units(self.amount)

    @property
    def product_ids(self) -> List[str]:
        return [line.product_id for line in self.lines]
