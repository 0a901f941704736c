# module rental_checkout.checkout.loader
"""
Matérialise la session de travail à partir d'un instantané du panier.
- Les planifications persistées sont restaurées pour les articles encore présents.
- L'état de confirmation (intentions, poignée, étape) n'est repris que si le panier
  est inchangé (mêmes articles, mêmes quantités).
- Une date de réservation au niveau panier pré-remplit les articles non planifiés,
  tous rattachés au groupe synchronisé.
"""
import logging
from datetime import datetime
from typing import List, Optional

from .models import SYNC_GROUP_ID, CartItem, CheckoutSession, CheckoutStep, ScheduleEntry, ScheduleGroup
from .scheduling import refresh_pricing

logger = logging.getLogger(__name__)


def _restore_schedules(session: CheckoutSession, stored: CheckoutSession) -> None:
    item_ids = {item.id for item in session.items}
    for item_id, entry in stored.schedules.items():
        if item_id not in item_ids:
            continue
        session.schedules[item_id] = entry.model_copy(deep=True)
        group_id = entry.group_id
        if group_id is None:
            continue
        if group_id in stored.groups:
            session.groups.setdefault(group_id, stored.groups[group_id].model_copy(deep=True))
        else:
            # Groupe orphelin: l'article redevient individuel
            session.schedules[item_id].group_id = None


def _restore_confirmation(session: CheckoutSession, stored: CheckoutSession) -> None:
    session.step = stored.step
    session.payment_type = stored.payment_type
    session.intents = [intent.model_copy(deep=True) for intent in stored.intents]
    session.payment_handle = stored.payment_handle.model_copy(deep=True) if stored.payment_handle else None
    session.checkout_total = stored.checkout_total
    session.payment_status = stored.payment_status


def _prepopulate(session: CheckoutSession) -> None:
    if session.reservation_date is None:
        return
    for item in session.items:
        if item.id in session.schedules:
            continue
        if SYNC_GROUP_ID not in session.groups:
            session.groups[SYNC_GROUP_ID] = ScheduleGroup(id=SYNC_GROUP_ID, delivery_at=session.reservation_date)
        session.schedules[item.id] = ScheduleEntry(item_id=item.id, group_id=SYNC_GROUP_ID)


def load(
    session_key: str,
    items: List[CartItem],
    *,
    reservation_date: Optional[datetime] = None,
    stored: Optional[CheckoutSession] = None,
) -> CheckoutSession:
    session = CheckoutSession(
        session_key=session_key,
        items=[item.model_copy() for item in items],
        reservation_date=reservation_date,
    )
    if stored is not None:
        if session.reservation_date is None:
            session.reservation_date = stored.reservation_date
        _restore_schedules(session, stored)
        if stored.cart_signature() == session.cart_signature():
            _restore_confirmation(session, stored)
        elif stored.intents:
            logger.info("loader.load cart changed, confirmation dropped session=%s", session_key)
            session.step = CheckoutStep.REVIEW
    _prepopulate(session)
    refresh_pricing(session)
    logger.debug(
        "loader.load session=%s items=%s schedules=%s step=%s",
        session_key, len(session.items), len(session.schedules), session.step.value,
    )
    return session
