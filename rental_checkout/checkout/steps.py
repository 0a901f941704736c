# module rental_checkout.checkout.steps
"""
Contrôleur d'étapes: review -> schedule -> confirm -> payment-type -> payment.
Chaque passage vers l'avant est conditionné; le retour arrière est libre sauf pendant
un appel en cours (création des intentions, confirmation du paiement).
"""
import logging
from typing import Any, Dict, Optional

from . import clients, intents, stock
from .errors import CheckoutBusyError, ValidationError
from .models import CheckoutSession, CheckoutStep, PaymentStatus
from .scheduling import validate_schedule

logger = logging.getLogger(__name__)

STEP_ORDER = [
    CheckoutStep.REVIEW,
    CheckoutStep.SCHEDULE,
    CheckoutStep.CONFIRM,
    CheckoutStep.PAYMENT_TYPE,
    CheckoutStep.PAYMENT,
]
PAYMENT_TYPES = ("full",)


def next_step(step: CheckoutStep) -> Optional[CheckoutStep]:
    index = STEP_ORDER.index(step)
    return STEP_ORDER[index + 1] if index + 1 < len(STEP_ORDER) else None


def previous_step(step: CheckoutStep) -> Optional[CheckoutStep]:
    index = STEP_ORDER.index(step)
    return STEP_ORDER[index - 1] if index > 0 else None


def address_complete(profile: Dict[str, Any]) -> bool:
    address = (profile or {}).get("address")
    if isinstance(address, dict):
        return any(str(v or "").strip() for v in address.values())
    return bool(str(address or "").strip())


async def check_review(session: CheckoutSession, token: Optional[str] = None) -> None:
    report = await stock.validate(session.items, token)
    session.stock_issues = list(report.issues)
    if not report.valid:
        raise ValidationError(
            "Certains articles ne sont plus disponibles, veuillez mettre à jour votre panier",
            "stock_issues",
            issues=report.issues,
        )
    profile = await clients.fetch_profile(token)
    if not address_complete(profile):
        raise ValidationError(
            "Veuillez compléter votre adresse avant de poursuivre (requise pour la livraison)",
            "address_incomplete",
        )


def check_schedule(session: CheckoutSession) -> None:
    issues = validate_schedule(session)
    if issues:
        first = issues[0]
        raise ValidationError(
            first.message,
            "schedule_incomplete",
            item_id=first.item_id,
            issues=[issue.message for issue in issues],
        )


def check_payment_type(session: CheckoutSession) -> None:
    if session.payment_type not in PAYMENT_TYPES:
        raise ValidationError("Veuillez choisir un mode de paiement", "payment_type_required")
    if session.payment_handle is None:
        raise ValidationError("Aucune référence de paiement: confirmez d'abord la réservation", "missing_payment")


async def advance(session: CheckoutSession, token: Optional[str] = None) -> CheckoutStep:
    """Valide les conditions de l'étape courante puis passe à la suivante."""
    current = session.step
    target = next_step(current)
    if target is None:
        raise ValidationError("Vous êtes déjà à la dernière étape", "last_step")
    if current == CheckoutStep.REVIEW:
        await check_review(session, token)
    elif current == CheckoutStep.SCHEDULE:
        check_schedule(session)
    elif current == CheckoutStep.CONFIRM:
        await intents.confirm(session, token)
    elif current == CheckoutStep.PAYMENT_TYPE:
        check_payment_type(session)
    session.step = target
    logger.info("steps.advance session=%s %s -> %s", session.session_key, current.value, target.value)
    return target


def back(session: CheckoutSession, busy: bool = False) -> CheckoutStep:
    if busy:
        raise CheckoutBusyError()
    target = previous_step(session.step)
    if target is None:
        raise ValidationError("Vous êtes déjà à la première étape", "first_step")
    logger.info("steps.back session=%s %s -> %s", session.session_key, session.step.value, target.value)
    session.step = target
    return target


def choose_payment_type(session: CheckoutSession, payment_type: str) -> None:
    if session.step not in (CheckoutStep.PAYMENT_TYPE, CheckoutStep.PAYMENT):
        raise ValidationError("Confirmez d'abord votre réservation", "wrong_step")
    if payment_type not in PAYMENT_TYPES:
        raise ValidationError(f"Mode de paiement non supporté: {payment_type}", "payment_type_invalid")
    session.payment_type = payment_type


def retry(session: CheckoutSession) -> None:
    """Réessayer: statut remis à unpaid, retour au choix du mode; planifications et intentions conservées."""
    if session.payment_status == PaymentStatus.PAID:
        raise ValidationError("Le paiement est déjà confirmé", "already_paid")
    session.payment_status = PaymentStatus.UNPAID
    session.step = CheckoutStep.PAYMENT_TYPE
