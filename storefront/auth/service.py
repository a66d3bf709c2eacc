import logging
from typing import Dict, Any, Optional

from storefront.checkout.errors import Unauthorized
from .repository import get_user_from_access_token as _repo_get_user_from_token

logger = logging.getLogger(__name__)

def get_current_user(access_token: Optional[str]) -> Dict[str, Any]:
    """Résout l'appelant à partir de son bearer token:
    - Retourne {id, email, token}
    - Lève Unauthorized si le token est absent, invalide ou expiré
    """
    if not access_token:
        raise Unauthorized("Non authentifié")
    try:
        raw = _repo_get_user_from_token(access_token)
    except Exception:
        logger.warning("auth.get_current_user: token refusé par le fournisseur d'identité")
        raise Unauthorized("Session expirée, veuillez vous connecter")
    uid = raw.get("id")
    if not uid:
        raise Unauthorized("Session expirée, veuillez vous connecter")
    return {"id": str(uid), "email": raw.get("email"), "token": access_token}
