"""
Accès aux données pour la feature 'checkout' (table Supabase des sessions).
Une ligne par session: session_key (clé), version, payload (JSON sérialisé), updated_at.
"""
from typing import Any, Dict, Optional
import logging

import rental_checkout.infra.supabase_client as supabase_client
from .errors import SessionSchemaError
from .models import CheckoutSession, utcnow
from .serialization import deserialize, serialize

logger = logging.getLogger(__name__)

# module rental_checkout.checkout.repository
def load_record(session_key: str) -> Optional[Dict[str, Any]]:
    """
    Lit le payload brut d'une session.
    - Retourne None si absente ou en cas d'erreur de stockage.
    """
    if not session_key:
        return None
    try:
        res = (
            supabase_client.sessions_table()
            .select("payload")
            .eq("session_key", session_key)
            .limit(1)
            .execute()
        )
        rows = res.data or []
        return rows[0].get("payload") if rows else None
    except Exception:
        logger.exception("checkout.repository.load_record failed session_key=%s", session_key)
        return None

def save_record(session_key: str, record: Dict[str, Any]) -> bool:
    """Upsert du payload (clé: session_key). Retourne False si l'écriture échoue."""
    try:
        (
            supabase_client.sessions_table()
            .upsert(
                {
                    "session_key": session_key,
                    "version": record.get("version"),
                    "payload": record,
                    "updated_at": utcnow().isoformat(),
                },
                on_conflict="session_key",
            )
            .execute()
        )
        return True
    except Exception:
        logger.exception("checkout.repository.save_record failed session_key=%s", session_key)
        return False

def delete_record(session_key: str) -> bool:
    try:
        (
            supabase_client.sessions_table()
            .delete()
            .eq("session_key", session_key)
            .execute()
        )
        return True
    except Exception:
        logger.exception("checkout.repository.delete_record failed session_key=%s", session_key)
        return False

def load_session(session_key: str) -> Optional[CheckoutSession]:
    """
    Restaure une CheckoutSession via la frontière versionnée.
    - Une version inconnue est journalisée et traitée comme absente (nouvelle session).
    """
    record = load_record(session_key)
    if record is None:
        return None
    try:
        return deserialize(record, session_key)
    except SessionSchemaError as e:
        logger.warning("checkout.repository.load_session discarded session_key=%s reason=%s", session_key, e.message)
        return None

def save_session(session: CheckoutSession) -> bool:
    session.updated_at = utcnow()
    return save_record(session.session_key, serialize(session))

def delete_session(session_key: str) -> bool:
    """Efface la session (paiement confirmé ou abandon)."""
    return delete_record(session_key)
