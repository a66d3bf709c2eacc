"""États d'une tentative de création de commande et résultat de matérialisation."""
from enum import Enum
from typing import Optional
from pydantic import BaseModel


class OrderState(str, Enum):
    PENDING_PAYMENT = "pending_payment"
    PAYMENT_VERIFIED = "payment_verified"
    CART_SNAPSHOTTED = "cart_snapshotted"
    # Seuls les trois états suivants sont persistés (orders.fulfillment_state)
    ORDER_INSERTED = "order_inserted"
    ITEMS_INSERTED = "items_inserted"
    CART_CLEARED = "cart_cleared"
    ABORTED = "aborted"
    PARTIALLY_COMMITTED = "partially_committed"


class MaterializedOrder(BaseModel):
    order_id: str
    created: bool
    state: OrderState = OrderState.CART_CLEARED
    total_amount: Optional[str] = None
