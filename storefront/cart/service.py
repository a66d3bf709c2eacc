"""Cas d'usage panier: consultation, ajout, changement de quantité, retrait.
Le panier serveur est la source de vérité; le total renvoyé ici n'est qu'un
affichage, le checkout revalorise toujours à partir des produits.
"""
from typing import Any, Dict
import logging
from fastapi import HTTPException

from storefront.catalog import repository as catalog_repository
from storefront.checkout.errors import InsufficientStock, PersistenceError, ValidationError
from storefront.checkout.money import from_minor_units, to_minor_units
from . import repository

logger = logging.getLogger(__name__)

def _stock_of(product: Dict[str, Any]) -> int:
    try:
        return int(product.get("stock") or 0)
    except (TypeError, ValueError):
        return 0

def get_cart(user_id: str) -> Dict[str, Any]:
    """
    Retourne {items: [...], total: "25.00"}.
    - Les lignes dont le produit a disparu sont renvoyées avec available=False
      et exclues du total affiché.
    """
    items = []
    amount = 0
    for line in repository.list_cart_lines(user_id):
        product = line.get("products") or {}
        quantity = int(line.get("quantity") or 0)
        available = bool(product.get("id"))
        unit_amount = to_minor_units(product.get("price") or 0) if available else 0
        if available:
            amount += unit_amount * quantity
        items.append({
            "product_id": str(line.get("product_id") or product.get("id") or ""),
            "name": product.get("name"),
            "price": f"{from_minor_units(unit_amount)}" if available else None,
            "stock": _stock_of(product) if available else 0,
            "quantity": quantity,
            "available": available,
        })
    return {"items": items, "total": f"{from_minor_units(amount)}"}

def add_item(user_id: str, product_id: str, quantity: int) -> Dict[str, Any]:
    """Ajoute un produit; fusionne la quantité si la ligne existe déjà (unicité user/produit)."""
    if quantity <= 0:
        raise ValidationError("La quantité doit être positive")
    product = catalog_repository.get_product(product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Produit introuvable")

    existing = repository.get_cart_line(user_id, product_id)
    new_quantity = quantity + (int(existing.get("quantity") or 0) if existing else 0)
    if new_quantity > _stock_of(product):
        raise InsufficientStock(f"Stock insuffisant pour {product.get('name') or 'ce produit'}")

    if existing:
        repository.update_cart_quantity(user_id, product_id, new_quantity)
        return get_cart(user_id)

    try:
        repository.insert_cart_line(user_id, product_id, new_quantity)
    except Exception as e:
        # Ajout concurrent du même produit: la ligne existe désormais, on fusionne
        if "23505" not in str(e) and "duplicate" not in str(e).lower():
            logger.exception("cart.add_item insert failed user_id=%s product_id=%s", user_id, product_id)
            raise PersistenceError("Ajout au panier impossible") from e
        current = repository.get_cart_line(user_id, product_id) or {}
        merged = int(current.get("quantity") or 0) + quantity
        if merged > _stock_of(product):
            raise InsufficientStock(f"Stock insuffisant pour {product.get('name') or 'ce produit'}")
        repository.update_cart_quantity(user_id, product_id, merged)
    return get_cart(user_id)

def set_quantity(user_id: str, product_id: str, quantity: int) -> Dict[str, Any]:
    if quantity < 1:
        raise ValidationError("La quantité minimale est 1")
    if not repository.get_cart_line(user_id, product_id):
        raise HTTPException(status_code=404, detail="Article absent du panier")
    product = catalog_repository.get_product(product_id)
    if not product:
        raise ValidationError("Produit introuvable")
    if quantity > _stock_of(product):
        raise InsufficientStock(f"Stock insuffisant pour {product.get('name') or 'ce produit'}")
    repository.update_cart_quantity(user_id, product_id, quantity)
    return get_cart(user_id)

def remove_item(user_id: str, product_id: str) -> Dict[str, Any]:
    deleted = repository.delete_cart_lines(user_id, [product_id])
    if not deleted:
        raise HTTPException(status_code=404, detail="Article absent du panier")
    return get_cart(user_id)
