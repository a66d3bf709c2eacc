"""Couche service des commandes: confirmation du paiement et matérialisation.

Rôles:
- confirm_checkout_session: retour de redirection Stripe (l'appelant fournit le session_id).
- handle_checkout_completed: même traitement déclenché par le webhook Stripe.
- materialize_order: transforme un paiement confirmé + le panier courant en
  commande + lignes figées, puis vide le panier.

Idempotence: la clé est l'id de session Stripe (orders.payment_id, unique).
Un second appel pour le même paiement ne crée rien et renvoie la commande
existante, en reprenant au besoin depuis son fulfillment_state persisté.
"""
from typing import Any, Dict, List, Optional
import logging

from fastapi import HTTPException

from storefront.config import ORDERS_ATOMIC_COMMIT
from storefront.cart import repository as cart_repository
from storefront.checkout import money, pricing
from storefront.checkout.errors import (
    CheckoutError,
    PaymentAmountMismatch,
    PaymentNotCompleted,
    PersistenceError,
    Unauthorized,
)
from storefront.checkout.models import PricedCart, ShippingInfo
from storefront.payments import stripe_client
from storefront.payments import metadata as meta
from . import repository
from .models import MaterializedOrder, OrderState

logger = logging.getLogger(__name__)

def _item_rows(priced: PricedCart) -> List[Dict[str, Any]]:
    # Copie figée nom/prix: indépendante des modifications futures du produit
    return [
        {
            "product_id": line.product_id,
            "product_name": line.name,
            "product_price": money.format_price(line.unit_price),
            "quantity": line.quantity,
        }
        for line in priced.lines
    ]

def _insert_items_once(order_id: str, items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Insère les lignes figées; si un appel concurrent les a déjà insérées, retourne les siennes."""
    try:
        repository.insert_order_items(order_id, items)
        return items
    except repository.DuplicateOrderItems:
        logger.info("orders.materialize items already inserted order_id=%s", order_id)
        return repository.list_order_items(order_id)

def _log_partial(order_id: str, payment_id: Any, state: str) -> None:
    logger.error(
        "orders.materialize %s order_id=%s payment_id=%s state=%s: réconciliation requise",
        OrderState.PARTIALLY_COMMITTED.value, order_id, payment_id, state,
    )

def _resume(order: Dict[str, Any], user_id: str) -> MaterializedOrder:
    """
    Reprend une commande déjà insérée pour ce paiement, sans jamais la réinsérer.
    - cart_cleared: no-op
    - order_inserted: insère les lignes depuis le panier courant (montant revérifié)
    - items_inserted: vide les lignes du panier correspondant aux articles commandés
    """
    order_id = str(order.get("id"))
    if str(order.get("user_id")) != str(user_id):
        raise Unauthorized("Commande appartenant à un autre utilisateur", status_code=403)

    state = order.get("fulfillment_state") or OrderState.CART_CLEARED.value
    if state == OrderState.CART_CLEARED.value:
        logger.info("orders.materialize replay order_id=%s payment_id=%s", order_id, order.get("payment_id"))
        return MaterializedOrder(order_id=order_id, created=False, total_amount=str(order.get("total_amount")))

    logger.warning("orders.materialize resuming order_id=%s from state=%s", order_id, state)
    try:
        items = repository.list_order_items(order_id)
        if state == OrderState.ORDER_INSERTED.value and not items:
            priced = pricing.validate_user_cart(user_id)
            if priced.amount != money.to_minor_units(order.get("total_amount")):
                raise PersistenceError(
                    f"Commande {order_id} incomplète: le panier ne correspond plus au montant payé"
                )
            items = _insert_items_once(order_id, _item_rows(priced))
        repository.set_fulfillment_state(order_id, OrderState.ITEMS_INSERTED.value)
        cart_repository.delete_cart_lines(user_id, [str(i.get("product_id")) for i in items])
        repository.set_fulfillment_state(order_id, OrderState.CART_CLEARED.value)
    except CheckoutError:
        _log_partial(order_id, order.get("payment_id"), state)
        raise
    return MaterializedOrder(order_id=order_id, created=False, total_amount=str(order.get("total_amount")))

def _commit_sequential(user_id: str, payment_id: str, shipping: ShippingInfo, priced: PricedCart) -> MaterializedOrder:
    total = money.format_price(priced.total)
    try:
        order = repository.insert_order(
            user_id=user_id,
            payment_id=payment_id,
            total_amount=total,
            shipping_address=shipping.as_address(),
        )
    except repository.DuplicateOrder:
        # Appel concurrent pour le même paiement: il a gagné l'insertion
        existing = repository.find_order_by_payment_id(payment_id)
        if not existing:
            raise PersistenceError("Commande concurrente introuvable")
        return _resume(existing, user_id)

    order_id = str(order.get("id"))
    state = OrderState.ORDER_INSERTED
    try:
        items = _insert_items_once(order_id, _item_rows(priced))
        repository.set_fulfillment_state(order_id, OrderState.ITEMS_INSERTED.value)
        state = OrderState.ITEMS_INSERTED
        cart_repository.delete_cart_lines(user_id, [str(i.get("product_id")) for i in items])
        repository.set_fulfillment_state(order_id, OrderState.CART_CLEARED.value)
        state = OrderState.CART_CLEARED
    except PersistenceError:
        _log_partial(order_id, payment_id, state.value)
        raise PersistenceError(
            f"Commande {order_id} enregistrée partiellement; un nouvel essai la complètera"
        )
    return MaterializedOrder(order_id=order_id, created=True, state=state, total_amount=total)

def _commit_atomic(user_id: str, payment_id: str, shipping: ShippingInfo, priced: PricedCart) -> MaterializedOrder:
    total = money.format_price(priced.total)
    result = repository.commit_order_atomic(
        user_id=user_id,
        payment_id=payment_id,
        total_amount=total,
        shipping_address=shipping.as_address(),
        items=_item_rows(priced),
    )
    if not result["created"]:
        existing = repository.find_order_by_payment_id(payment_id)
        if not existing:
            raise PersistenceError("Commande existante introuvable")
        return _resume(existing, user_id)
    return MaterializedOrder(order_id=result["order_id"], created=True, total_amount=total)

def materialize_order(
    *,
    user_id: str,
    payment_id: str,
    shipping_info: Any,
    amount_charged: Optional[int] = None,
) -> MaterializedOrder:
    """
    Matérialise une commande pour un paiement déjà vérifié par l'appelant.
    Étapes:
      1) commande existante pour payment_id -> reprise/no-op (pas de doublon)
      2) relecture du panier courant + valorisation (EmptyCart, InsufficientStock)
      3) contrôle montant recalculé == montant débité (PaymentAmountMismatch)
      4) insertion commande -> lignes -> vidage des lignes commandées
    Toute erreur avant l'insertion de la commande n'écrit rien (Aborted).
    """
    if not payment_id:
        raise PaymentNotCompleted("Identifiant de paiement manquant")
    shipping = ShippingInfo.parse(shipping_info)

    existing = repository.find_order_by_payment_id(payment_id)
    if existing:
        return _resume(existing, user_id)

    state = OrderState.PAYMENT_VERIFIED
    try:
        priced = pricing.validate_user_cart(user_id)
        state = OrderState.CART_SNAPSHOTTED
        if amount_charged is not None and priced.amount != int(amount_charged):
            logger.error(
                "orders.materialize amount mismatch payment_id=%s user_id=%s charged=%s cart=%s",
                payment_id, user_id, amount_charged, priced.amount,
            )
            raise PaymentAmountMismatch()
    except HTTPException as e:
        logger.warning(
            "orders.materialize %s payment_id=%s user_id=%s state=%s reason=%s",
            OrderState.ABORTED.value, payment_id, user_id, state.value, getattr(e, "detail", e),
        )
        raise

    if ORDERS_ATOMIC_COMMIT:
        result = _commit_atomic(user_id, payment_id, shipping, priced)
    else:
        result = _commit_sequential(user_id, payment_id, shipping, priced)
    logger.info(
        "orders.materialize order_id=%s created=%s payment_id=%s total=%s items=%s",
        result.order_id, result.created, payment_id, result.total_amount, len(priced.lines),
    )
    return result

def _require_paid(session: Dict[str, Any]) -> None:
    payment_status = session.get("payment_status") or ""
    if payment_status != "paid":
        logger.warning(
            "orders.confirm %s session_id=%s state=%s payment_status=%s",
            OrderState.ABORTED.value, session.get("id"), OrderState.PENDING_PAYMENT.value, payment_status,
        )
        raise PaymentNotCompleted(f"Paiement non confirmé (payment_status={payment_status})")

def confirm_checkout_session(session_id: str, user: Dict[str, Any]) -> MaterializedOrder:
    """
    Retour de redirection Stripe: vérifie la session puis matérialise la commande.
    - la session doit appartenir à l'appelant (metadata.user_id), sinon Unauthorized (403)
    - payment_status doit valoir 'paid', sinon PaymentNotCompleted
    Aucune écriture tant que ces deux vérifications n'ont pas réussi.
    """
    user_id = str((user or {}).get("id") or "")
    if not user_id:
        raise Unauthorized("Utilisateur non authentifié")
    session = stripe_client.get_session(session_id)
    session_meta = meta.extract_metadata_from_session(session)
    if session_meta.user_id != user_id:
        logger.warning(
            "orders.confirm %s ownership mismatch session_id=%s caller=%s state=%s",
            OrderState.ABORTED.value, session_id, user_id, OrderState.PENDING_PAYMENT.value,
        )
        raise Unauthorized("Session appartenant à un autre utilisateur", status_code=403)
    _require_paid(session)
    return materialize_order(
        user_id=user_id,
        payment_id=str(session.get("id") or session_id),
        shipping_info=session_meta.shipping_info,
        amount_charged=session.get("amount_total"),
    )

def handle_checkout_completed(event: Dict[str, Any]) -> Optional[MaterializedOrder]:
    """
    Webhook checkout.session.completed: même matérialisation, l'utilisateur
    provenant des métadonnées (la signature Stripe tient lieu d'authentification).
    Retourne None pour les autres types d'événements.
    """
    if (event or {}).get("type") != "checkout.session.completed":
        return None
    session = meta.session_from_event(event)
    session_meta = meta.extract_metadata_from_session(session)
    _require_paid(session)
    return materialize_order(
        user_id=session_meta.user_id,
        payment_id=str(session.get("id") or ""),
        shipping_info=session_meta.shipping_info,
        amount_charged=session.get("amount_total"),
    )

def list_orders(user_id: str) -> List[Dict[str, Any]]:
    return repository.list_user_orders(user_id)

def get_order(user_id: str, order_id: str) -> Dict[str, Any]:
    order = repository.get_user_order(user_id, order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Commande introuvable")
    return order
