"""
Accès aux données pour la feature 'orders' (tables orders, order_items).
- orders.payment_id (UNIQUE) porte l'id de session Stripe: clé d'idempotence.
- orders.fulfillment_state persiste l'avancement (order_inserted -> items_inserted -> cart_cleared).
- commit_order_atomic délègue à la fonction Postgres create_order_from_cart
  (commande + lignes + vidage du panier dans une seule transaction).
"""
from typing import Any, Dict, List, Optional
import logging

import storefront.infra.supabase_client as supabase_client
from storefront.checkout.errors import PersistenceError

logger = logging.getLogger(__name__)

ORDER_COLUMNS = "id, user_id, payment_id, total_amount, payment_status, shipping_address, order_date, fulfillment_state"
ORDER_WITH_ITEMS = ORDER_COLUMNS + ", order_items(product_id, product_name, product_price, quantity)"


class DuplicateOrder(Exception):
    """Une commande existe déjà pour ce payment_id (violation d'unicité 23505)."""


class DuplicateOrderItems(Exception):
    """Les lignes de cette commande ont déjà été insérées par un autre appel."""


def _is_unique_violation(e: Exception) -> bool:
    code = getattr(e, "code", None)
    return code == "23505" or "23505" in str(e) or "duplicate key" in str(e).lower()

# module storefront.orders.repository
def find_order_by_payment_id(payment_id: str) -> Optional[Dict[str, Any]]:
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("orders")
            .select(ORDER_COLUMNS)
            .eq("payment_id", payment_id)
            .limit(1)
            .execute()
        )
        rows = res.data or []
        return rows[0] if rows else None
    except Exception as e:
        logger.exception("orders.repository.find_order_by_payment_id failed payment_id=%s", payment_id)
        raise PersistenceError("Lecture de la commande impossible") from e

def insert_order(
    *,
    user_id: str,
    payment_id: str,
    total_amount: str,
    shipping_address: Dict[str, Any],
) -> Dict[str, Any]:
    """Insère l'en-tête de commande (fulfillment_state='order_inserted') et retourne la ligne créée."""
    row = {
        "user_id": user_id,
        "payment_id": payment_id,
        "total_amount": total_amount,
        "payment_status": "completed",
        "shipping_address": shipping_address,
        "fulfillment_state": "order_inserted",
    }
    try:
        res = supabase_client.get_service_supabase().table("orders").insert(row).execute()
    except Exception as e:
        if _is_unique_violation(e):
            raise DuplicateOrder(payment_id) from e
        logger.exception("orders.repository.insert_order failed user_id=%s payment_id=%s", user_id, payment_id)
        raise PersistenceError("Création de la commande impossible") from e
    rows = res.data or []
    if not rows:
        raise PersistenceError("Création de la commande sans retour de ligne")
    return rows[0]

def insert_order_items(order_id: str, items: List[Dict[str, Any]]) -> int:
    """
    Insère toutes les lignes en une requête (un seul INSERT côté Postgres, tout ou rien).
    DuplicateOrderItems si les lignes de cette commande existent déjà (unique order_id, product_id).
    """
    rows = [dict(item, order_id=order_id) for item in items]
    try:
        res = supabase_client.get_service_supabase().table("order_items").insert(rows).execute()
        return len(res.data or rows)
    except Exception as e:
        if _is_unique_violation(e):
            raise DuplicateOrderItems(order_id) from e
        logger.exception("orders.repository.insert_order_items failed order_id=%s", order_id)
        raise PersistenceError("Création des lignes de commande impossible") from e

def list_order_items(order_id: str) -> List[Dict[str, Any]]:
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("order_items")
            .select("product_id, product_name, product_price, quantity")
            .eq("order_id", order_id)
            .execute()
        )
        return res.data or []
    except Exception as e:
        logger.exception("orders.repository.list_order_items failed order_id=%s", order_id)
        raise PersistenceError("Lecture des lignes de commande impossible") from e

def set_fulfillment_state(order_id: str, state: str) -> None:
    try:
        (
            supabase_client.get_service_supabase()
            .table("orders")
            .update({"fulfillment_state": state})
            .eq("id", order_id)
            .execute()
        )
    except Exception as e:
        logger.exception("orders.repository.set_fulfillment_state failed order_id=%s state=%s", order_id, state)
        raise PersistenceError("Mise à jour de la commande impossible") from e

def commit_order_atomic(
    *,
    user_id: str,
    payment_id: str,
    total_amount: str,
    shipping_address: Dict[str, Any],
    items: List[Dict[str, Any]],
) -> Dict[str, Any]:
    """
    Appelle create_order_from_cart (RPC). Retour: {"order_id": "...", "created": bool}.
    created=False: une commande existait déjà pour ce payment_id, rien n'a été écrit.
    """
    params = {
        "p_user_id": user_id,
        "p_payment_id": payment_id,
        "p_total_amount": total_amount,
        "p_shipping_address": shipping_address,
        "p_items": items,
    }
    try:
        res = supabase_client.get_service_supabase().rpc("create_order_from_cart", params).execute()
    except Exception as e:
        logger.exception("orders.repository.commit_order_atomic failed user_id=%s payment_id=%s", user_id, payment_id)
        raise PersistenceError("Création de la commande impossible") from e
    data = res.data
    if isinstance(data, list):
        data = data[0] if data else None
    if not data or not data.get("order_id"):
        raise PersistenceError("Réponse inattendue de create_order_from_cart")
    return {"order_id": str(data["order_id"]), "created": bool(data.get("created"))}

def list_user_orders(user_id: str, limit: int = 50) -> List[Dict[str, Any]]:
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("orders")
            .select(ORDER_WITH_ITEMS)
            .eq("user_id", user_id)
            .order("order_date", desc=True)
            .limit(limit)
            .execute()
        )
        return res.data or []
    except Exception as e:
        logger.exception("orders.repository.list_user_orders failed user_id=%s", user_id)
        raise PersistenceError("Lecture des commandes impossible") from e

def get_user_order(user_id: str, order_id: str) -> Optional[Dict[str, Any]]:
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("orders")
            .select(ORDER_WITH_ITEMS)
            .eq("user_id", user_id)
            .eq("id", order_id)
            .limit(1)
            .execute()
        )
        rows = res.data or []
        return rows[0] if rows else None
    except Exception as e:
        logger.exception("orders.repository.get_user_order failed user_id=%s order_id=%s", user_id, order_id)
        raise PersistenceError("Lecture de la commande impossible") from e
