"""
Cas d'usage 'checkout': orchestre loader, stock, planification, intentions,
réconciliation du paiement et repository.

- Une session de checkout par utilisateur (clé = id utilisateur).
- Chaque cas d'usage recharge la session, la modifie puis la persiste.
- Les appels longs (création des intentions, confirmation du paiement) sont
  marqués 'en cours' pour bloquer retour arrière et doublons (CheckoutBusyError).
"""
import logging
from contextlib import contextmanager
from typing import Any, Dict, List, Optional, Set

from rental_checkout.utils.qrcode_utils import qr_image_url
from . import loader, repository, scheduling, steps, stock
from .errors import CheckoutBusyError, NetworkError, SessionNotFoundError, ValidationError
from .models import CartItem, CheckoutSession, CheckoutStep, PaymentStatus
from .reconciliation import PaymentReconciler, registry
from .schemas import payment_view

logger = logging.getLogger(__name__)

_in_flight: Set[str] = set()
# Sessions payées puis effacées: la confirmation reste visible (redirection) jusqu'au prochain checkout
_paid_sessions: Dict[str, str] = {}


@contextmanager
def _busy(session_key: str):
    if session_key in _in_flight:
        raise CheckoutBusyError()
    _in_flight.add(session_key)
    try:
        yield
    finally:
        _in_flight.discard(session_key)


def is_busy(session_key: str) -> bool:
    return session_key in _in_flight


def _require(session_key: str) -> CheckoutSession:
    session = repository.load_session(session_key)
    if session is None:
        raise SessionNotFoundError()
    _sync_status(session)
    return session


def _save(session: CheckoutSession) -> None:
    if not repository.save_session(session):
        raise NetworkError("Impossible d'enregistrer la session de checkout, veuillez réessayer", "storage_unavailable")


def _sync_status(session: CheckoutSession) -> None:
    # Le poller du processus fait foi sur le statut persisté
    reconciler = registry.get(session.session_key)
    if reconciler is not None and reconciler.status != session.payment_status:
        session.payment_status = reconciler.status


def _reconciler(session: CheckoutSession, token: Optional[str]) -> PaymentReconciler:
    if session.payment_handle is None:
        raise ValidationError("Aucune référence de paiement: confirmez d'abord la réservation", "missing_payment")
    current = registry.get(session.session_key)
    if current is not None and current.handle.reference_number == session.payment_handle.reference_number:
        if token:
            current.token = token
        return current
    session_key = session.session_key
    reconciler = PaymentReconciler(session_key, session.payment_handle, token, status=session.payment_status)

    async def on_change(status: PaymentStatus) -> None:
        stored = repository.load_session(session_key)
        if stored is None:
            return
        stored.payment_status = status
        if not repository.save_session(stored):
            logger.error("checkout.service payment status not persisted session=%s status=%s", session_key, status.value)

    async def on_paid() -> None:
        registry.discard(session_key, reconciler)
        _paid_sessions[session_key] = reconciler.handle.reference_number
        repository.delete_session(session_key)
        logger.info("checkout.service session cleared after payment session=%s", session_key)

    reconciler.on_change = on_change
    reconciler.on_paid = on_paid
    return registry.register(reconciler)


async def _start_polling(session: CheckoutSession, token: Optional[str]) -> None:
    if session.payment_status in (PaymentStatus.PAID, PaymentStatus.FAILED):
        return
    current = registry.get(session.session_key)
    if current is not None and current.polling:
        return
    reconciler = _reconciler(session, token)
    await registry.start(reconciler)


async def open_session(
    session_key: str,
    items: List[CartItem],
    *,
    reservation_date=None,
    token: Optional[str] = None,
) -> CheckoutSession:
    """
    Ouvre (ou recharge) le checkout à partir du panier courant.
    - planifications persistées restaurées, confirmation reprise si le panier est inchangé
    - contrôle de stock immédiat (les anomalies sont exposées, sans bloquer l'ouverture)
    """
    _paid_sessions.pop(session_key, None)
    stored = repository.load_session(session_key)
    session = loader.load(session_key, items, reservation_date=reservation_date, stored=stored)
    if stored is not None and stored.intents and not session.intents:
        # Panier modifié après confirmation: l'ancien poller n'a plus d'objet
        await registry.cancel(session_key)
    _sync_status(session)
    if session.step == CheckoutStep.REVIEW:
        report = await stock.validate(session.items, token)
        session.stock_issues = report.issues
    _save(session)
    if session.step == CheckoutStep.PAYMENT and session.payment_status in (PaymentStatus.UNPAID, PaymentStatus.PROCESSING):
        await _start_polling(session, token)
    return session


def get_session(session_key: str) -> CheckoutSession:
    return _require(session_key)


def update_schedule(session_key: str, item_id: str, changes: Dict[str, Any]) -> CheckoutSession:
    session = _require(session_key)
    if is_busy(session_key):
        raise CheckoutBusyError()
    if session.is_confirmed:
        raise ValidationError(
            "La réservation est déjà confirmée: les dates ne peuvent plus être modifiées", "already_confirmed"
        )
    scheduling.apply_changes(session, item_id, changes)
    _save(session)
    return session


async def advance(session_key: str, token: Optional[str] = None) -> CheckoutSession:
    session = _require(session_key)
    with _busy(session_key):
        await steps.advance(session, token)
    _save(session)
    if session.step == CheckoutStep.PAYMENT:
        await _start_polling(session, token)
    return session


async def confirm(session_key: str, token: Optional[str] = None) -> CheckoutSession:
    """Crée les intentions de réservation (confirm -> payment-type)."""
    session = _require(session_key)
    if session.step != CheckoutStep.CONFIRM:
        if session.is_confirmed:
            return session
        raise ValidationError("Vérifiez d'abord les dates de vos articles", "wrong_step")
    return await advance(session_key, token)


async def back(session_key: str) -> CheckoutSession:
    session = _require(session_key)
    leaving_payment = session.step == CheckoutStep.PAYMENT
    steps.back(session, busy=is_busy(session_key))
    if leaving_payment:
        await registry.stop_polling(session_key)
    _save(session)
    return session


async def choose_payment_type(session_key: str, payment_type: str, token: Optional[str] = None) -> CheckoutSession:
    session = _require(session_key)
    steps.choose_payment_type(session, payment_type)
    if session.step == CheckoutStep.PAYMENT_TYPE:
        await steps.advance(session, token)
    _save(session)
    await _start_polling(session, token)
    return session


def _paid_view() -> Dict[str, Any]:
    return payment_view(PaymentStatus.PAID)


def get_payment(session_key: str) -> Dict[str, Any]:
    if session_key in _paid_sessions and repository.load_session(session_key) is None:
        return _paid_view()
    session = _require(session_key)
    if session.payment_handle is None:
        raise ValidationError("Aucun paiement en attente", "missing_payment")
    reconciler = registry.get(session_key)
    handle = session.payment_handle
    return payment_view(
        session.payment_status,
        session=session,
        qr_image=qr_image_url(handle.qr_code or handle.reference_number),
        polling=bool(reconciler and reconciler.polling),
        timed_out=bool(reconciler and reconciler.timed_out),
    )


async def confirm_payment(session_key: str, token: Optional[str] = None) -> Dict[str, Any]:
    """Vérification manuelle (référence + montant). Après 'paid': sans effet."""
    if session_key in _paid_sessions and repository.load_session(session_key) is None:
        return _paid_view()
    session = _require(session_key)
    with _busy(session_key):
        status = await _reconciler(session, token).confirm_manually()
    logger.info("checkout.service manual confirmation session=%s status=%s", session_key, status.value)
    return get_payment(session_key)


async def confirm_receipt(
    session_key: str,
    *,
    filename: str,
    content: bytes,
    content_type: str,
    token: Optional[str] = None,
) -> Dict[str, Any]:
    if session_key in _paid_sessions and repository.load_session(session_key) is None:
        return _paid_view()
    session = _require(session_key)
    with _busy(session_key):
        status = await _reconciler(session, token).confirm_with_receipt(filename, content, content_type)
    logger.info("checkout.service receipt confirmation session=%s status=%s", session_key, status.value)
    return get_payment(session_key)


async def retry(session_key: str) -> CheckoutSession:
    """
    'Réessayer': arrête l'interrogation, statut unpaid, retour au choix du mode de paiement.
    Un paiement déjà confirmé est refusé (already_paid) et son délai de grâce reste programmé.
    """
    session = _require(session_key)
    with _busy(session_key):
        await registry.stop_polling(session_key)
        _sync_status(session)
        steps.retry(session)
        await registry.cancel(session_key)
        _save(session)
    return session


async def abandon(session_key: str) -> bool:
    """Abandon: le poller est arrêté et la session effacée (les intentions ne sont pas annulées)."""
    if is_busy(session_key):
        raise CheckoutBusyError()
    await registry.cancel(session_key)
    _paid_sessions.pop(session_key, None)
    return repository.delete_session(session_key)


async def shutdown() -> None:
    await registry.cancel_all()
