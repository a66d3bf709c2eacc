# module storefront.orders.views
"""Consultation des commandes de l'utilisateur connecté (lignes figées incluses)."""
from typing import Any, Dict
from fastapi import APIRouter, Depends

from storefront.utils.security import require_user
from . import service as orders_service

router = APIRouter(prefix="/api/v1/orders", tags=["Orders API"])

@router.get("")
def list_my_orders(user: Dict[str, Any] = Depends(require_user)):
    return {"orders": orders_service.list_orders(user["id"])}

@router.get("/{order_id}")
def get_my_order(order_id: str, user: Dict[str, Any] = Depends(require_user)):
    return orders_service.get_order(user["id"], order_id)
