"""
Lecture du catalogue (table 'products'), source autoritative des prix et stocks.
Lecture seule du point de vue du panier et du checkout.
"""
from typing import Any, Dict, Optional
import logging

import storefront.infra.supabase_client as supabase_client
from storefront.checkout.errors import PersistenceError

logger = logging.getLogger(__name__)

def get_product(product_id: str) -> Optional[Dict[str, Any]]:
    """Retourne {id, name, price, stock} ou None si le produit n'existe pas."""
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("products")
            .select("id, name, price, stock")
            .eq("id", str(product_id))
            .limit(1)
            .execute()
        )
        rows = res.data or []
        return rows[0] if rows else None
    except Exception as e:
        logger.exception("catalog.repository.get_product failed product_id=%s", product_id)
        raise PersistenceError("Lecture du produit impossible") from e
