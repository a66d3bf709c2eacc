"""
Accès aux données du panier (table 'cart', une ligne par (user_id, product_id)).
- Toutes les requêtes filtrent sur le user_id authentifié.
- Les erreurs Supabase sont journalisées puis remontées en PersistenceError:
  un panier illisible ne doit jamais passer pour un panier vide.
"""
from typing import Any, Dict, Iterable, List, Optional
import logging

import storefront.infra.supabase_client as supabase_client
from storefront.checkout.errors import PersistenceError

logger = logging.getLogger(__name__)

CART_WITH_PRODUCTS = "id, product_id, quantity, products(id, name, price, stock)"

def list_cart_lines(user_id: str) -> List[Dict[str, Any]]:
    """
    Lignes du panier avec le produit autoritatif joint.
    Forme: [{id, product_id, quantity, products: {id, name, price, stock}}, ...]
    """
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("cart")
            .select(CART_WITH_PRODUCTS)
            .eq("user_id", user_id)
            .order("created_at")
            .execute()
        )
        return res.data or []
    except Exception as e:
        logger.exception("cart.repository.list_cart_lines failed user_id=%s", user_id)
        raise PersistenceError("Lecture du panier impossible") from e

def get_cart_line(user_id: str, product_id: str) -> Optional[Dict[str, Any]]:
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("cart")
            .select("id, product_id, quantity")
            .eq("user_id", user_id)
            .eq("product_id", product_id)
            .limit(1)
            .execute()
        )
        rows = res.data or []
        return rows[0] if rows else None
    except Exception as e:
        logger.exception("cart.repository.get_cart_line failed user_id=%s product_id=%s", user_id, product_id)
        raise PersistenceError("Lecture du panier impossible") from e

def insert_cart_line(user_id: str, product_id: str, quantity: int) -> Dict[str, Any]:
    # Pas de try ici: la violation d'unicité (23505) est gérée par le service
    res = (
        supabase_client.get_service_supabase()
        .table("cart")
        .insert({"user_id": user_id, "product_id": product_id, "quantity": quantity})
        .execute()
    )
    rows = res.data or []
    return rows[0] if rows else {"user_id": user_id, "product_id": product_id, "quantity": quantity}

def update_cart_quantity(user_id: str, product_id: str, quantity: int) -> Optional[Dict[str, Any]]:
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("cart")
            .update({"quantity": quantity})
            .eq("user_id", user_id)
            .eq("product_id", product_id)
            .execute()
        )
        rows = res.data or []
        return rows[0] if rows else None
    except Exception as e:
        logger.exception("cart.repository.update_cart_quantity failed user_id=%s product_id=%s", user_id, product_id)
        raise PersistenceError("Mise à jour du panier impossible") from e

def delete_cart_lines(user_id: str, product_ids: Iterable[str]) -> int:
    """Supprime les lignes désignées du panier; retourne le nombre de lignes supprimées."""
    ids = [str(p) for p in product_ids]
    if not ids:
        return 0
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("cart")
            .delete()
            .eq("user_id", user_id)
            .in_("product_id", ids)
            .execute()
        )
        return len(res.data or [])
    except Exception as e:
        logger.exception("cart.repository.delete_cart_lines failed user_id=%s ids=%s", user_id, ids)
        raise PersistenceError("Suppression des lignes du panier impossible") from e
