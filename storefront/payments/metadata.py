"""
Lecture des métadonnées Stripe (user_id, shipping_info) depuis une session
Checkout ou un événement webhook, via le modèle typé SessionMetadata.
"""
from typing import Any, Dict

from storefront.checkout.models import SessionMetadata

# module storefront.payments.metadata
def session_from_event(event: Dict[str, Any]) -> Dict[str, Any]:
    """Retourne event.data.object (la session Checkout) ou {}."""
    if not isinstance(event, dict):
        return {}
    return ((event.get("data") or {}).get("object") or {})

def extract_metadata_from_session(session: Dict[str, Any]) -> SessionMetadata:
    """
    Relit et valide session["metadata"] = {user_id, shipping_info(JSON)}.
    Lève Unauthorized si user_id absent, ValidationError si shipping_info illisible.
    """
    meta = (session or {}).get("metadata") if isinstance(session, dict) else None
    return SessionMetadata.from_stripe(meta or {})
