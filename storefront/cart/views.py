# module storefront.cart.views

"""Endpoints du panier (source de vérité serveur, par utilisateur).
- GET /api/v1/cart: lignes + total d'affichage
- POST /api/v1/cart/items: ajoute (ou fusionne) un produit
- PATCH /api/v1/cart/items/{product_id}: change la quantité
- DELETE /api/v1/cart/items/{product_id}: retire la ligne
Sécurité: require_user; les écritures sont rate-limitées.
product_id est un UUID (corps et chemin), sinon 422.
"""
from typing import Any, Dict
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from storefront.utils.security import require_user
from storefront.utils.rate_limit import optional_rate_limit
from . import service as cart_service

router = APIRouter(prefix="/api/v1/cart", tags=["Cart API"])

class AddCartItemRequest(BaseModel):
    product_id: UUID
    quantity: int = Field(default=1, ge=1)

class UpdateQuantityRequest(BaseModel):
    quantity: int = Field(ge=1)

@router.get("")
def get_cart(user: Dict[str, Any] = Depends(require_user)):
    return cart_service.get_cart(user["id"])

@router.post("/items", dependencies=[Depends(optional_rate_limit(times=30, seconds=60))])
def add_cart_item(req: AddCartItemRequest, user: Dict[str, Any] = Depends(require_user)):
    return cart_service.add_item(user["id"], str(req.product_id), req.quantity)

@router.patch("/items/{product_id}", dependencies=[Depends(optional_rate_limit(times=30, seconds=60))])
def update_cart_item(product_id: UUID, req: UpdateQuantityRequest, user: Dict[str, Any] = Depends(require_user)):
    return cart_service.set_quantity(user["id"], str(product_id), req.quantity)

@router.delete("/items/{product_id}", dependencies=[Depends(optional_rate_limit(times=30, seconds=60))])
def remove_cart_item(product_id: UUID, user: Dict[str, Any] = Depends(require_user)):
    return cart_service.remove_item(user["id"], str(product_id))
