"""
Valorisation du panier à partir des produits autoritatifs (pas de Stripe).
- Les prix viennent exclusivement de la table 'products', jamais du client.
- Les montants sont calculés en centimes (entiers) pour que le total de la
  commande soit exactement le montant débité.
"""
from typing import Any, Dict, Iterable

from storefront.cart import repository as cart_repository
from .errors import EmptyCart, InsufficientStock, ValidationError
from .money import from_minor_units, to_minor_units
from .models import PricedCart, PricedLine

# module storefront.checkout.pricing
def price_cart(lines: Iterable[Dict[str, Any]]) -> PricedCart:
    """
    Valorise des lignes de panier jointes à leur produit.
    - EmptyCart si aucune ligne
    - ValidationError si un produit a disparu, ou si quantité/prix invalides
    - InsufficientStock si quantité > stock
    """
    priced = []
    for line in lines or []:
        product = line.get("products") or {}
        product_id = str(product.get("id") or line.get("product_id") or "")
        if not product.get("id"):
            raise ValidationError(f"Produit introuvable: {product_id or '?'}")
        name = product.get("name") or "Article"
        try:
            quantity = int(line.get("quantity") or 0)
            stock = int(product.get("stock") or 0)
        except (TypeError, ValueError):
            raise ValidationError(f"Quantité invalide pour {name}")
        if quantity <= 0:
            raise ValidationError(f"Quantité invalide pour {name}")
        if quantity > stock:
            raise InsufficientStock(f"Stock insuffisant pour {name}")
        unit_amount = to_minor_units(product.get("price"))
        if unit_amount <= 0:
            raise ValidationError(f"Prix invalide pour {name}")
        priced.append(PricedLine(
            product_id=product_id,
            name=name,
            unit_price=from_minor_units(unit_amount),
            unit_amount=unit_amount,
            quantity=quantity,
        ))
    if not priced:
        raise EmptyCart("Panier vide")
    return PricedCart(lines=priced, amount=sum(line.line_amount for line in priced))

def validate_user_cart(user_id: str) -> PricedCart:
    """Relit le panier de l'utilisateur (jamais une copie client) puis le valorise."""
    return price_cart(cart_repository.list_cart_lines(user_id))
