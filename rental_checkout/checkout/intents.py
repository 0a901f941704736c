# module rental_checkout.checkout.intents
"""
Coordination des intentions de réservation.

- Une intention par article, créées strictement l'une après l'autre.
- Le total du checkout est la somme des totaux retournés par le serveur.
- Au premier échec: arrêt immédiat, annulation (ordre inverse) des intentions déjà
  créées, puis erreur nommant l'article et sa position dans le panier.
- Une seule poignée de paiement couvre toutes les intentions (stratégie configurable).
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from rental_checkout.config import PAYMENT_HANDLE_STRATEGY
from . import clients
from .errors import BusinessError, CheckoutError, ValidationError
from .models import BookingIntent, CartItem, CheckoutSession, PaymentFragment, PaymentHandle
from .scheduling import ResolvedSchedule, refresh_pricing, resolve

logger = logging.getLogger(__name__)

AGGREGATE = "aggregate"
FIRST_INTENT = "first_intent"
TOTAL_TOLERANCE = 0.01


@dataclass
class ConfirmationResult:
    intents: List[BookingIntent]
    payment_handle: PaymentHandle
    checkout_total: float


def _notes(resolved: ResolvedSchedule) -> str:
    if resolved.pickup_notes:
        return f"{resolved.notes}\nReprise: {resolved.pickup_notes}".strip()
    return resolved.notes


def _fragment(raw: Optional[Dict[str, Any]]) -> Optional[PaymentFragment]:
    if not raw:
        return None
    return PaymentFragment(
        qr_code=raw.get("qrCode") or "",
        instructions=raw.get("instructions") or "",
        reference_number=raw.get("referenceNumber") or "",
        transaction_id=raw.get("transactionId") or "",
    )


def preflight(session: CheckoutSession) -> None:
    """Chaque article doit avoir une date de livraison avant tout appel distant."""
    for index, item in enumerate(session.items, start=1):
        if resolve(session, item.id).delivery_at is None:
            raise ValidationError(
                f"Veuillez planifier une date de livraison pour {item.name}",
                "missing_delivery",
                item_id=item.id,
                item_index=index,
            )


def _intent_from_payload(item: CartItem, resolved: ResolvedSchedule, payload: Dict[str, Any]) -> BookingIntent:
    raw = payload.get("bookingIntent") or {}
    intent_id = raw.get("id") or raw.get("_id")
    if not intent_id:
        raise BusinessError("Réponse de réservation sans identifiant d'intention", "invalid_intent")
    local_total = item.total_price
    server_total = raw.get("totalPrice")
    try:
        total = float(server_total) if server_total is not None else local_total
        intent = BookingIntent(
            intent_id=str(intent_id),
            service_id=item.id,
            quantity=item.quantity,
            delivery_at=resolved.delivery_at,
            duration=resolved.duration,
            total_price=total,
            payment=_fragment(payload.get("payment")),
        )
    except (TypeError, ValueError, AttributeError) as e:
        # ValueError couvre aussi les erreurs de validation pydantic
        raise BusinessError(f"Réponse de réservation invalide: {e}", "invalid_intent")
    if abs(total - local_total) > TOTAL_TOLERANCE:
        logger.warning(
            "intents.create item=%s server_total=%s local_total=%s mismatch", item.id, total, local_total
        )
    return intent


async def compensate(intents: List[BookingIntent], token: Optional[str] = None) -> List[str]:
    """Annule les intentions créées, de la plus récente à la plus ancienne. Retourne les ids libérés."""
    released: List[str] = []
    for intent in reversed(intents):
        try:
            await clients.cancel_intent(intent.intent_id, token, reason="checkout_aborted")
            released.append(intent.intent_id)
        except CheckoutError as e:
            logger.warning("intents.compensate intent=%s not released: %s", intent.intent_id, e.message)
    if intents:
        logger.info("intents.compensate released=%s/%s", len(released), len(intents))
    return released


async def obtain_handle(
    intents: List[BookingIntent],
    total: float,
    token: Optional[str] = None,
    strategy: Optional[str] = None,
) -> PaymentHandle:
    strategy = strategy or PAYMENT_HANDLE_STRATEGY
    intent_ids = [intent.intent_id for intent in intents]
    if strategy == FIRST_INTENT:
        fragment = intents[0].payment if intents else None
        if fragment is None or not fragment.reference_number:
            raise BusinessError("Aucune information de paiement reçue pour la réservation", "missing_payment")
        return PaymentHandle(
            reference_number=fragment.reference_number,
            transaction_id=fragment.transaction_id,
            qr_code=fragment.qr_code,
            instructions=fragment.instructions,
            amount=total,
            intent_ids=intent_ids,
            source=FIRST_INTENT,
        )
    payload = await clients.create_cart_payment(intent_ids, total, token)
    raw = payload.get("payment") if isinstance(payload.get("payment"), dict) else payload
    fragment = _fragment(raw)
    if fragment is None or not fragment.reference_number:
        raise BusinessError("Le service de paiement n'a pas retourné de référence", "missing_payment")
    return PaymentHandle(
        reference_number=fragment.reference_number,
        transaction_id=fragment.transaction_id,
        qr_code=fragment.qr_code,
        instructions=fragment.instructions,
        amount=total,
        intent_ids=intent_ids,
        source=AGGREGATE,
    )


async def confirm(session: CheckoutSession, token: Optional[str] = None) -> ConfirmationResult:
    """
    Crée les intentions et la poignée de paiement, puis les enregistre sur la session.
    Une session déjà confirmée retourne ses intentions existantes sans appel distant.
    """
    if session.is_confirmed:
        return ConfirmationResult(list(session.intents), session.payment_handle, session.checkout_total or 0.0)

    preflight(session)
    refresh_pricing(session)
    created: List[BookingIntent] = []
    total = 0.0
    try:
        for index, item in enumerate(session.items, start=1):
            resolved = resolve(session, item.id)
            try:
                payload = await clients.create_intent(
                    service_id=item.id,
                    quantity=item.quantity,
                    booking_date=resolved.delivery_at,
                    notes=_notes(resolved),
                    duration=resolved.duration,
                    daily_rate=float(item.daily_rate),
                    token=token,
                )
                intent = _intent_from_payload(item, resolved, payload)
            except CheckoutError as e:
                logger.warning("intents.confirm failed item=%s index=%s: %s", item.id, index, e.message)
                raise type(e)(
                    f"Réservation impossible pour {item.name} (article n°{index}): {e.message}",
                    e.code,
                    item_id=item.id,
                    item_index=index,
                )
            created.append(intent)
            total += intent.total_price
        handle = await obtain_handle(created, total, token)
    except CheckoutError:
        await compensate(created, token)
        raise

    session.intents = created
    session.payment_handle = handle
    session.checkout_total = total
    logger.info(
        "intents.confirm session=%s intents=%s total=%s reference=%s",
        session.session_key, len(created), total, handle.reference_number,
    )
    return ConfirmationResult(created, handle, total)
