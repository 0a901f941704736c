# module rental_checkout.checkout.serialization
"""
Frontière de persistance versionnée de CheckoutSession.
- serialize: {"version": SCHEMA_VERSION, "session": {...}} (JSON-compatible).
- deserialize: valide la version; migre l'ancien format v1 (dictionnaire de planification
  par article: date, sameDateTime, pickupDate, extendDuration, extendedDays...).
- Une version inconnue lève SessionSchemaError plutôt que de deviner la forme.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import ValidationError as PydanticValidationError

from .errors import SessionSchemaError
from .models import SYNC_GROUP_ID, CheckoutSession, ScheduleEntry, ScheduleGroup

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 2
LEGACY_VERSION = 1


def serialize(session: CheckoutSession) -> Dict[str, Any]:
    return {"version": SCHEMA_VERSION, "session": session.model_dump(mode="json")}


def deserialize(record: Dict[str, Any], session_key: str) -> CheckoutSession:
    if not isinstance(record, dict):
        raise SessionSchemaError("Format de session illisible")
    version = record.get("version")
    if version is None:
        version = LEGACY_VERSION
    if version == SCHEMA_VERSION:
        try:
            session = CheckoutSession.model_validate(record.get("session") or {})
        except PydanticValidationError as e:
            raise SessionSchemaError(f"Session v{SCHEMA_VERSION} invalide: {e.error_count()} erreur(s)")
        session.session_key = session_key
        return session
    if version == LEGACY_VERSION:
        legacy = record.get("schedules", record)
        return migrate_legacy(legacy, session_key)
    raise SessionSchemaError(f"Version de session non supportée: {version}")


def _parse_instant(value: Any) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        logger.warning("serialization._parse_instant ignored value=%s", value)
        return None


def migrate_legacy(legacy: Dict[str, Any], session_key: str) -> CheckoutSession:
    """
    Convertit l'ancien dictionnaire {item_id: {date, notes, sameDateTime, ...}}.
    Les articles sameDateTime rejoignent le groupe synchronisé; le premier rencontré
    fournit les valeurs partagées.
    """
    session = CheckoutSession(session_key=session_key)
    for item_id, raw in (legacy or {}).items():
        if not isinstance(raw, dict):
            continue
        entry = ScheduleEntry(
            item_id=str(item_id),
            delivery_at=_parse_instant(raw.get("date")),
            pickup_at=_parse_instant(raw.get("pickupDate")),
            notes=raw.get("notes") or "",
            pickup_notes=raw.get("pickupNotes") or "",
            extend_duration=bool(raw.get("extendDuration")),
            extended_days=int(raw.get("extendedDays") or 0) or None,
        )
        if raw.get("sameDateTime"):
            if SYNC_GROUP_ID not in session.groups:
                session.groups[SYNC_GROUP_ID] = ScheduleGroup(id=SYNC_GROUP_ID, **entry.shared_values())
            entry.group_id = SYNC_GROUP_ID
        session.schedules[entry.item_id] = entry
    logger.info("serialization.migrate_legacy session=%s schedules=%s", session_key, len(session.schedules))
    return session
