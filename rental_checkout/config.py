# rental_checkout.config
from pathlib import Path
import os
from dotenv import load_dotenv

# Calculer le chemin du projet puis charger .env de manière explicite
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH, override=False)

"""
Configuration centrale du service de checkout.

- Charge le fichier .env à la racine du projet (BASE_DIR/.env)
- Expose les URLs des collaborateurs (inventaire, profil, réservation, paiement)
- Expose les réglages de la réconciliation du paiement (intervalle, timeout, délai de grâce)
- Expose Supabase (stockage des sessions de checkout), CORS/hosts et cookie de session
"""

def _clean_env(v: str) -> str:
    """
    Nettoie une valeur d'environnement:
    - supprime les espaces et guillemets (simples, doubles) et backticks
    - retourne toujours une chaîne (jamais None)
    """
    return (v or "").strip().strip("'").strip('"').strip("`")

def _url_env(name: str, default: str) -> str:
    value = _clean_env(os.getenv(name) or "") or default
    return value.rstrip("/")

def _int_env(name: str, default: int) -> int:
    try:
        return int(_clean_env(os.getenv(name) or "") or default)
    except ValueError:
        return default

def _float_env(name: str, default: float) -> float:
    try:
        return float(_clean_env(os.getenv(name) or "") or default)
    except ValueError:
        return default

# Collaborateurs HTTP: une URL de base commune, surchargeable par service
API_BASE_URL = _url_env("API_BASE_URL", "http://localhost:5000")
INVENTORY_API_URL = _url_env("INVENTORY_API_URL", API_BASE_URL)
PROFILE_API_URL = _url_env("PROFILE_API_URL", API_BASE_URL)
RESERVATION_API_URL = _url_env("RESERVATION_API_URL", API_BASE_URL)
PAYMENT_API_URL = _url_env("PAYMENT_API_URL", API_BASE_URL)
COLLABORATOR_TIMEOUT_SECONDS = _float_env("COLLABORATOR_TIMEOUT_SECONDS", 10.0)

# Réconciliation du paiement (secondes)
PAYMENT_POLL_INTERVAL_SECONDS = _float_env("PAYMENT_POLL_INTERVAL_SECONDS", 3.0)
PAYMENT_POLL_TIMEOUT_SECONDS = _float_env("PAYMENT_POLL_TIMEOUT_SECONDS", 5 * 60.0)
PAYMENT_PAID_GRACE_SECONDS = _float_env("PAYMENT_PAID_GRACE_SECONDS", 2.0)

# "aggregate": un paiement panier demandé explicitement pour toutes les intentions
# "first_intent": le fragment de paiement de la première intention est adopté
PAYMENT_HANDLE_STRATEGY = _clean_env(os.getenv("PAYMENT_HANDLE_STRATEGY") or "aggregate").lower()

# Redirection après paiement confirmé
CHECKOUT_SUCCESS_PATH = os.getenv("CHECKOUT_SUCCESS_PATH", "/customer/bookings?payment=success")

# Règles de planification
MAX_ADDITIONAL_DAYS = _int_env("MAX_ADDITIONAL_DAYS", 30)

# Justificatif de paiement (upload manuel)
RECEIPT_MAX_BYTES = _int_env("RECEIPT_MAX_BYTES", 5 * 1024 * 1024)
RECEIPT_ALLOWED_TYPES = ("image/jpeg", "image/jpg", "image/png", "image/gif", "image/bmp")

# Supabase: stockage durable des sessions de checkout
SUPABASE_URL = _clean_env(os.getenv("SUPABASE_URL") or os.getenv("NEXT_PUBLIC_SUPABASE_URL") or "")
SUPABASE_ANON = _clean_env(os.getenv("SUPABASE_ANON_KEY") or os.getenv("SUPABASE_KEY") or "")
SUPABASE_SERVICE_KEY = _clean_env(os.getenv("SUPABASE_SERVICE_KEY") or "")
CHECKOUT_SESSIONS_TABLE = _clean_env(os.getenv("CHECKOUT_SESSIONS_TABLE") or "checkout_sessions")

# Normalisations utiles
if SUPABASE_URL and not SUPABASE_URL.startswith("http"):
    SUPABASE_URL = "https://" + SUPABASE_URL
if SUPABASE_URL.endswith("/"):
    SUPABASE_URL = SUPABASE_URL.rstrip("/")

# Cookie de session (jeton émis par le service d'authentification externe)
COOKIE_NAME = _clean_env(os.getenv("SESSION_COOKIE_NAME") or "sb_access")

# CORS (dev)
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
ALLOWED_HOSTS = [h.strip() for h in os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1,testserver").split(",") if h.strip()]
