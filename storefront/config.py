# storefront.config
from pathlib import Path
import os
from dotenv import load_dotenv

# Calculer le chemin du projet puis charger .env de manière explicite
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH, override=False)

"""
Configuration centrale de la boutique.

- Charge le fichier .env à la racine du projet (BASE_DIR/.env)
- Normalise et expose les secrets/URLs (Supabase, Stripe), CORS/hosts
- Fournit les chemins de redirection du checkout et les options de commit des commandes
"""

def _clean_env(v: str) -> str:
    """
    Nettoie une valeur d'environnement:
    - supprime les espaces et guillemets (simples, doubles) et backticks
    - retourne toujours une chaîne (jamais None)
    """
    return (v or "").strip().strip("'").strip('"').strip("`")

def _flag(name: str, default: str = "0") -> bool:
    return _clean_env(os.getenv(name, default)).lower() in ("1", "true", "yes")

# Supabase: URL et clés (anon/service)
# - SUPABASE_URL peut parfois être sans schéma: on préfixe en https:// si nécessaire
SUPABASE_URL = _clean_env(os.getenv("SUPABASE_URL") or os.getenv("VITE_SUPABASE_URL") or "")
SUPABASE_ANON = _clean_env(os.getenv("SUPABASE_ANON_KEY") or os.getenv("SUPABASE_KEY") or "")
SUPABASE_SERVICE_KEY = _clean_env(os.getenv("SUPABASE_SERVICE_KEY") or os.getenv("SUPABASE_SERVICE_ROLE_KEY") or "")

if SUPABASE_URL and not SUPABASE_URL.startswith("http"):
    SUPABASE_URL = "https://" + SUPABASE_URL
if SUPABASE_URL.endswith("/"):
    SUPABASE_URL = SUPABASE_URL.rstrip("/")

# Cookies / sécurité
COOKIE_SECURE = _flag("COOKIE_SECURE", "false")

# CORS (dev)
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
ALLOWED_HOSTS = [h.strip() for h in os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1,testserver").split(",") if h.strip()]

# Stripe: clé secrète, secret webhook, timeout réseau (secondes)
STRIPE_SECRET_KEY = _clean_env(os.getenv("STRIPE_SECRET_KEY") or "")
STRIPE_WEBHOOK_SECRET = _clean_env(os.getenv("STRIPE_WEBHOOK_SECRET") or "")
STRIPE_TIMEOUT_SECONDS = float(_clean_env(os.getenv("STRIPE_TIMEOUT_SECONDS") or "") or 20)

# Devise des sessions de paiement (code ISO en minuscules pour Stripe)
CURRENCY = (_clean_env(os.getenv("STOREFRONT_CURRENCY") or "") or "usd").lower()

# Origine publique de la boutique, utilisée si la requête n'a pas d'en-tête Origin
SITE_URL = _clean_env(os.getenv("SITE_URL") or "http://localhost:8080").rstrip("/")

# Pages de succès/annulation du checkout ({CHECKOUT_SESSION_ID} est substitué par Stripe)
CHECKOUT_SUCCESS_PATH = os.getenv("CHECKOUT_SUCCESS_PATH", "/profile?session_id={CHECKOUT_SESSION_ID}")
CHECKOUT_CANCEL_PATH = os.getenv("CHECKOUT_CANCEL_PATH", "/checkout?payment=canceled")

# Commit des commandes: 1 = fonction Postgres transactionnelle (RPC), 0 = appels séquentiels
ORDERS_ATOMIC_COMMIT = _flag("ORDERS_ATOMIC_COMMIT", "1")

LOG_LEVEL = _clean_env(os.getenv("LOG_LEVEL") or "info").lower()
