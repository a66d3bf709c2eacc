from typing import Optional
from supabase import create_client, Client
from storefront.config import SUPABASE_URL, SUPABASE_ANON, SUPABASE_SERVICE_KEY

_supabase: Optional[Client] = None
_service_supabase: Optional[Client] = None

def get_supabase() -> Client:
    """Client 'anon' partagé: utilisé pour l'auth (validation des access tokens)."""
    global _supabase
    if _supabase is None:
        if not SUPABASE_URL or not SUPABASE_ANON:
            raise RuntimeError("SUPABASE_URL/SUPABASE_ANON_KEY manquants pour get_supabase()")
        _supabase = create_client(SUPABASE_URL, SUPABASE_ANON)
    return _supabase

def get_service_supabase() -> Client:
    """
    Client service-role (bypass RLS).
    Réservé aux opérations serveur faites après authentification de l'appelant:
    chaque requête filtre explicitement sur le user_id vérifié.
    """
    global _service_supabase
    if not SUPABASE_SERVICE_KEY:
        raise RuntimeError("SUPABASE_SERVICE_KEY manquant pour get_service_supabase()")
    if _service_supabase is None:
        _service_supabase = create_client(SUPABASE_URL, SUPABASE_SERVICE_KEY)
    return _service_supabase

def supabase_health_info() -> dict:
    """Informations de configuration (sans secrets) pour /health/supabase."""
    return {
        "url_configured": bool(SUPABASE_URL),
        "anon_key_configured": bool(SUPABASE_ANON),
        "service_key_configured": bool(SUPABASE_SERVICE_KEY),
        "anon_client_ready": _supabase is not None,
        "service_client_ready": _service_supabase is not None,
    }
