# module rental_checkout.checkout.scheduling
"""
Moteur de planification (logique pure, pas de réseau, pas de BD).

Deux modes par article:
- synchronisé: l'article référence un ScheduleGroup (group_id); livraison, reprise, notes
  et prolongation sont lus/écrits sur le groupe, donc visibles par tous ses membres.
- individuel: la livraison est saisie directement; sans prolongation la reprise est
  dérivée (livraison + 24h) et la durée vaut 1 jour.

Règles:
- durée = max(1, ceil((reprise - livraison) / 1 jour)) dès que les deux instants sont connus.
- une reprise <= livraison est une erreur bloquante, jamais corrigée automatiquement.
- toute mutation recalcule durée et totalPrice de chaque article (refresh_pricing).
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from rental_checkout.config import MAX_ADDITIONAL_DAYS
from .errors import ValidationError
from .models import (
    SYNC_GROUP_ID,
    CheckoutSession,
    ScheduleEntry,
    ScheduleFields,
    ScheduleGroup,
    utcnow,
)

logger = logging.getLogger(__name__)

ONE_DAY = timedelta(days=1)

Mutation = Callable[[ScheduleFields], None]


def compute_duration(delivery_at: datetime, pickup_at: datetime) -> int:
    """Nombre de jours facturés entre livraison et reprise, arrondi au jour supérieur, minimum 1."""
    seconds = (pickup_at - delivery_at).total_seconds()
    return max(1, math.ceil(seconds / ONE_DAY.total_seconds()))


def duration_error(delivery_at: Optional[datetime], pickup_at: Optional[datetime]) -> Optional[str]:
    if delivery_at is None or pickup_at is None:
        return None
    if pickup_at <= delivery_at:
        return "La durée minimale de location est d'un jour: la reprise doit être postérieure à la livraison"
    return None


def auto_pickup(delivery_at: datetime) -> datetime:
    return delivery_at + ONE_DAY


def pickup_for_additional_days(delivery_at: datetime, additional_days: int) -> datetime:
    return delivery_at + ONE_DAY * (1 + additional_days)


@dataclass(frozen=True)
class ResolvedSchedule:
    """Vue effective de la planification d'un article (groupe appliqué, reprise dérivée)."""
    item_id: str
    delivery_at: Optional[datetime] = None
    explicit_pickup_at: Optional[datetime] = None
    notes: str = ""
    pickup_notes: str = ""
    group_id: Optional[str] = None
    extend_duration: bool = False
    extended_days: Optional[int] = None

    @property
    def synchronized(self) -> bool:
        return self.group_id is not None

    @property
    def pickup_at(self) -> Optional[datetime]:
        if self.explicit_pickup_at is not None:
            return self.explicit_pickup_at
        if self.delivery_at is not None and not self.extend_duration:
            return auto_pickup(self.delivery_at)
        return None

    @property
    def duration(self) -> int:
        if self.delivery_at is None or self.explicit_pickup_at is None:
            return 1
        return compute_duration(self.delivery_at, self.explicit_pickup_at)

    def to_dict(self) -> Dict[str, Any]:
        pickup = self.pickup_at
        return {
            "deliveryInstant": self.delivery_at.isoformat() if self.delivery_at else None,
            "pickupInstant": pickup.isoformat() if pickup else None,
            "pickupDerived": self.explicit_pickup_at is None and pickup is not None,
            "notes": self.notes,
            "pickupNotes": self.pickup_notes,
            "synchronized": self.synchronized,
            "extendDuration": self.extend_duration,
            "extendedDays": self.extended_days,
            "duration": self.duration,
        }


@dataclass(frozen=True)
class ScheduleIssue:
    item_id: str
    field: str
    message: str


def resolve(session: CheckoutSession, item_id: str) -> ResolvedSchedule:
    entry = session.schedules.get(item_id)
    if entry is None:
        return ResolvedSchedule(item_id=item_id)
    source: ScheduleFields = entry
    if entry.group_id is not None and entry.group_id in session.groups:
        source = session.groups[entry.group_id]
    return ResolvedSchedule(
        item_id=item_id,
        delivery_at=source.delivery_at,
        # Sans prolongation la reprise est toujours dérivée (livraison + 24h)
        explicit_pickup_at=source.pickup_at if source.extend_duration else None,
        notes=source.notes,
        pickup_notes=source.pickup_notes,
        group_id=entry.group_id,
        extend_duration=source.extend_duration,
        extended_days=source.extended_days,
    )


def member_ids(session: CheckoutSession, group_id: str) -> List[str]:
    return [item_id for item_id, entry in session.schedules.items() if entry.group_id == group_id]


def refresh_pricing(session: CheckoutSession) -> float:
    """Recalcule la durée de chaque article (et donc son totalPrice). Retourne le total panier."""
    for item in session.items:
        item.duration = resolve(session, item.id).duration
    return session.cart_total


def apply_to_group(session: CheckoutSession, group_id: str, mutation: Mutation) -> List[str]:
    """
    Applique une mutation aux champs partagés d'un groupe synchronisé, en une seule écriture.
    Tous les membres lisent le même enregistrement: aucune application partielle possible.
    """
    group = session.groups.get(group_id)
    if group is None:
        raise ValidationError(f"Groupe de planification inconnu: {group_id}", "unknown_group")
    mutation(group)
    refresh_pricing(session)
    session.updated_at = utcnow()
    members = member_ids(session, group_id)
    logger.debug("scheduling.apply_to_group group=%s members=%s", group_id, members)
    return members


def _ensure_entry(session: CheckoutSession, item_id: str) -> ScheduleEntry:
    session.get_item(item_id)
    entry = session.schedules.get(item_id)
    if entry is None:
        entry = ScheduleEntry(item_id=item_id)
        session.schedules[item_id] = entry
    return entry


def _apply(session: CheckoutSession, item_id: str, mutation: Mutation) -> None:
    entry = _ensure_entry(session, item_id)
    if entry.group_id is not None:
        apply_to_group(session, entry.group_id, mutation)
        return
    mutation(entry)
    refresh_pricing(session)
    session.updated_at = utcnow()


def _check_additional_days(days: int) -> int:
    try:
        days = int(days)
    except (TypeError, ValueError):
        raise ValidationError("Nombre de jours supplémentaires invalide", "invalid_additional_days")
    if days < 1 or days > MAX_ADDITIONAL_DAYS:
        raise ValidationError(
            f"Le nombre de jours supplémentaires doit être compris entre 1 et {MAX_ADDITIONAL_DAYS}",
            "invalid_additional_days",
        )
    return days


def set_delivery(session: CheckoutSession, item_id: str, delivery_at: Optional[datetime]) -> None:
    def mutation(fields: ScheduleFields) -> None:
        fields.delivery_at = delivery_at
        # Une reprise issue du sélecteur de jours suit la livraison; une reprise saisie ne bouge pas
        if delivery_at is not None and fields.extend_duration and fields.extended_days:
            fields.pickup_at = pickup_for_additional_days(delivery_at, fields.extended_days)

    _apply(session, item_id, mutation)


def set_pickup(session: CheckoutSession, item_id: str, pickup_at: Optional[datetime]) -> None:
    """Une reprise saisie vaut prolongation: la durée est alors calculée à partir de cette date."""
    def mutation(fields: ScheduleFields) -> None:
        fields.pickup_at = pickup_at
        fields.extended_days = None
        if pickup_at is not None:
            fields.extend_duration = True

    _apply(session, item_id, mutation)


def set_notes(
    session: CheckoutSession,
    item_id: str,
    notes: Optional[str] = None,
    pickup_notes: Optional[str] = None,
) -> None:
    def mutation(fields: ScheduleFields) -> None:
        if notes is not None:
            fields.notes = notes
        if pickup_notes is not None:
            fields.pickup_notes = pickup_notes

    _apply(session, item_id, mutation)


def set_extend_duration(
    session: CheckoutSession,
    item_id: str,
    enabled: bool,
    additional_days: Optional[int] = None,
) -> None:
    """
    Active/désactive la prolongation. Activée: la reprise devient obligatoire et est pré-remplie
    à partir des jours supplémentaires (1 par défaut). Désactivée: retour à la reprise dérivée.
    """
    days = _check_additional_days(additional_days) if additional_days is not None else None

    def mutation(fields: ScheduleFields) -> None:
        if enabled:
            fields.extend_duration = True
            fields.extended_days = days or fields.extended_days or 1
            if fields.delivery_at is not None:
                fields.pickup_at = pickup_for_additional_days(fields.delivery_at, fields.extended_days)
        else:
            fields.extend_duration = False
            fields.extended_days = None
            fields.pickup_at = None

    _apply(session, item_id, mutation)


def set_additional_days(session: CheckoutSession, item_id: str, additional_days: int) -> None:
    days = _check_additional_days(additional_days)

    def mutation(fields: ScheduleFields) -> None:
        fields.extend_duration = True
        fields.extended_days = days
        if fields.delivery_at is not None:
            fields.pickup_at = pickup_for_additional_days(fields.delivery_at, days)

    _apply(session, item_id, mutation)


def set_synchronized(
    session: CheckoutSession,
    item_id: str,
    synchronized: bool,
    group_id: str = SYNC_GROUP_ID,
) -> None:
    """
    Rejoint ou quitte le groupe synchronisé.
    - Rejoindre un groupe vide l'initialise avec les valeurs de l'article
      (date de réservation du panier à défaut de livraison).
    - Rejoindre un groupe existant adopte ses valeurs.
    - Quitter recopie les valeurs courantes du groupe sur l'article.
    """
    entry = _ensure_entry(session, item_id)
    if synchronized:
        if entry.group_id == group_id:
            return
        if entry.group_id is not None:
            _leave_group(session, entry)
        group = session.groups.get(group_id)
        if group is None:
            group = ScheduleGroup(id=group_id, **entry.shared_values())
            if group.delivery_at is None and session.reservation_date is not None:
                group.delivery_at = session.reservation_date
            session.groups[group_id] = group
        entry.group_id = group_id
    elif entry.group_id is not None:
        _leave_group(session, entry)
    refresh_pricing(session)
    session.updated_at = utcnow()


def _leave_group(session: CheckoutSession, entry: ScheduleEntry) -> None:
    group = session.groups.get(entry.group_id)
    if group is not None:
        for name, value in group.shared_values().items():
            setattr(entry, name, value)
    old_group_id = entry.group_id
    entry.group_id = None
    if not member_ids(session, old_group_id):
        session.groups.pop(old_group_id, None)


def apply_changes(session: CheckoutSession, item_id: str, changes: Dict[str, Any]) -> None:
    """
    Applique un lot de modifications dans un ordre stable:
    groupe -> livraison -> prolongation -> jours -> reprise -> notes.
    Seules les clés présentes sont appliquées (pickup_at=None efface la reprise).
    """
    if "synchronized" in changes and changes["synchronized"] is not None:
        set_synchronized(session, item_id, bool(changes["synchronized"]))
    if "delivery_at" in changes:
        set_delivery(session, item_id, changes["delivery_at"])
    if "extend_duration" in changes and changes["extend_duration"] is not None:
        set_extend_duration(session, item_id, bool(changes["extend_duration"]), changes.get("extended_days"))
    elif changes.get("extended_days") is not None:
        set_additional_days(session, item_id, changes["extended_days"])
    if "pickup_at" in changes and changes.get("extend_duration") is not False:
        set_pickup(session, item_id, changes["pickup_at"])
    if "notes" in changes or "pickup_notes" in changes:
        set_notes(session, item_id, changes.get("notes"), changes.get("pickup_notes"))


def validate_schedule(session: CheckoutSession) -> List[ScheduleIssue]:
    """Liste toutes les conditions bloquant schedule -> confirm, en nommant l'article et le champ."""
    issues: List[ScheduleIssue] = []
    for item in session.items:
        resolved = resolve(session, item.id)
        if resolved.delivery_at is None:
            issues.append(ScheduleIssue(item.id, "delivery_at", f"Veuillez planifier une date de livraison pour {item.name}"))
            continue
        if resolved.extend_duration and resolved.explicit_pickup_at is None:
            issues.append(ScheduleIssue(item.id, "pickup_at", f"Veuillez choisir une date de reprise pour {item.name}"))
            continue
        error = duration_error(resolved.delivery_at, resolved.explicit_pickup_at)
        if error:
            issues.append(ScheduleIssue(item.id, "pickup_at", f"{item.name}: {error}"))
    return issues
