import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, File, Request, UploadFile

from rental_checkout.utils.rate_limit import optional_rate_limit
from rental_checkout.utils.security import get_token, require_user
from . import service
from .schemas import OpenSessionIn, PaymentTypeIn, ScheduleChangeIn, session_view

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/checkout", tags=["Checkout API"])

# module rental_checkout.checkout.views
@router.post("/session")
async def open_session(body: OpenSessionIn, request: Request, user: Dict[str, Any] = Depends(require_user)):
    """
    Ouvre le checkout à partir du panier courant.
    - Entrée JSON: { "items": [ {id, name, price, quantity, category, serviceType, dailyRate?} ], "reservationDate"? }
    - Recharge les planifications persistées; contrôle le stock (stockIssues dans la réponse)
    """
    session = await service.open_session(
        user["id"],
        [item.to_item() for item in body.items],
        reservation_date=body.reservation_date,
        token=get_token(request),
    )
    logger.info("checkout.open user_id=%s items=%s step=%s", user["id"], len(session.items), session.step.value)
    return session_view(session)

@router.get("/session")
def get_session(user: Dict[str, Any] = Depends(require_user)):
    return session_view(service.get_session(user["id"]))

@router.delete("/session")
async def abandon_session(user: Dict[str, Any] = Depends(require_user)):
    """Abandon du checkout: arrête l'interrogation du paiement et efface la session."""
    deleted = await service.abandon(user["id"])
    return {"status": "ok", "deleted": deleted}

@router.patch("/session/schedules/{item_id}")
def update_schedule(item_id: str, body: ScheduleChangeIn, user: Dict[str, Any] = Depends(require_user)):
    """
    Modifie la planification d'un article (seuls les champs envoyés sont appliqués).
    - synchronized: rejoint/quitte le groupe; les champs partagés s'appliquent alors à tout le groupe
    - extendDuration / extendedDays (1-30) / pickupAt: durée et totalPrice recalculés
    """
    session = service.update_schedule(user["id"], item_id, body.changes())
    return session_view(session)

@router.post("/session/next")
async def next_step(request: Request, user: Dict[str, Any] = Depends(require_user)):
    session = await service.advance(user["id"], token=get_token(request))
    return session_view(session)

@router.post("/session/back")
async def previous_step(user: Dict[str, Any] = Depends(require_user)):
    session = await service.back(user["id"])
    return session_view(session)

@router.post("/session/confirm", dependencies=[Depends(optional_rate_limit(times=5, seconds=60))])
async def confirm_booking(request: Request, user: Dict[str, Any] = Depends(require_user)):
    """
    Crée une intention de réservation par article puis la poignée de paiement agrégée.
    - Échec sur un article: intentions déjà créées annulées, erreur nommant l'article (item_id, item_index)
    - Sécurité: require_user + rate limit (5 req / 60s)
    """
    session = await service.confirm(user["id"], token=get_token(request))
    return session_view(session)

@router.post("/session/payment-type")
async def choose_payment_type(body: PaymentTypeIn, request: Request, user: Dict[str, Any] = Depends(require_user)):
    """Choix du mode de paiement puis passage à l'étape paiement (démarre l'interrogation du statut)."""
    session = await service.choose_payment_type(user["id"], body.payment_type, token=get_token(request))
    return session_view(session)

@router.get("/session/payment")
def get_payment(user: Dict[str, Any] = Depends(require_user)):
    """
    État de la réconciliation: {status, polling, timedOut, payment, qrImage, redirect, retry?}
    - redirect: chemin de succès dès que le paiement est confirmé
    """
    return service.get_payment(user["id"])

@router.post("/session/payment/confirm", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
async def confirm_payment(request: Request, user: Dict[str, Any] = Depends(require_user)):
    return await service.confirm_payment(user["id"], token=get_token(request))

@router.post("/session/payment/receipt", dependencies=[Depends(optional_rate_limit(times=5, seconds=60))])
async def upload_receipt(request: Request, receipt: UploadFile = File(...), user: Dict[str, Any] = Depends(require_user)):
    """
    Vérification par justificatif (JPG/PNG/GIF/BMP, 5 Mo max).
    - Justificatif signalé pour revue: statut 'processing'
    """
    content = await receipt.read()
    return await service.confirm_receipt(
        user["id"],
        filename=receipt.filename or "",
        content=content,
        content_type=receipt.content_type or "",
        token=get_token(request),
    )

@router.post("/session/payment/retry")
async def retry_payment(user: Dict[str, Any] = Depends(require_user)):
    session = await service.retry(user["id"])
    return session_view(session)
