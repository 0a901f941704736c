"""
Adaptateurs HTTP vers les collaborateurs (inventaire, profil, réservation, paiement).
- Centralise les appels httpx et la traduction des échecs:
  transport/timeout/5xx -> NetworkError, 4xx ou {"success": false} -> BusinessError.
- Le jeton de l'utilisateur est relayé tel quel (Authorization: Bearer ...).
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from rental_checkout.config import (
    COLLABORATOR_TIMEOUT_SECONDS,
    INVENTORY_API_URL,
    PAYMENT_API_URL,
    PROFILE_API_URL,
    RESERVATION_API_URL,
)
from .errors import BusinessError, NetworkError

logger = logging.getLogger(__name__)

# module rental_checkout.checkout.clients
def _make_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=COLLABORATOR_TIMEOUT_SECONDS)

def _segment(value: Any) -> str:
    return quote(str(value), safe="")

def _payload(response: httpx.Response) -> Dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}

async def _request(
    method: str,
    url: str,
    *,
    token: Optional[str] = None,
    context: str,
    raise_on_rejection: bool = True,
    **kwargs: Any,
) -> Dict[str, Any]:
    """
    Exécute une requête et retourne le JSON décodé.
    - raise_on_rejection=False: un refus métier (4xx / success=false) est retourné tel quel
      à l'appelant au lieu de lever BusinessError.
    """
    headers = {"Accept": "application/json"}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    try:
        async with _make_client() as client:
            response = await client.request(method, url, headers=headers, **kwargs)
    except httpx.HTTPError as e:
        logger.warning("checkout.clients %s %s unreachable: %s", method, url, e)
        raise NetworkError(f"Service {context} injoignable, veuillez réessayer")

    payload = _payload(response)
    message = payload.get("message") or payload.get("error")
    if response.status_code >= 500:
        logger.warning("checkout.clients %s %s status=%s", method, url, response.status_code)
        raise NetworkError(message or f"Service {context} indisponible (HTTP {response.status_code})")
    if response.status_code >= 400 or payload.get("success") is False:
        if not raise_on_rejection:
            return payload
        logger.info("checkout.clients %s %s rejected status=%s message=%s", method, url, response.status_code, message)
        raise BusinessError(message or f"Requête refusée par le service {context}")
    return payload

# --- Inventaire ---
async def fetch_service(service_id: str, token: Optional[str] = None) -> Dict[str, Any]:
    """Disponibilité courante d'un service: {isAvailable, serviceType, quantity, ...}."""
    payload = await _request(
        "GET", f"{INVENTORY_API_URL}/api/services/{_segment(service_id)}", token=token, context="inventaire"
    )
    return payload.get("service") or {}

# --- Profil ---
async def fetch_profile(token: Optional[str] = None) -> Dict[str, Any]:
    payload = await _request("GET", f"{PROFILE_API_URL}/api/auth/me", token=token, context="profil")
    return payload.get("user") or {}

# --- Réservation ---
async def create_intent(
    *,
    service_id: str,
    quantity: int,
    booking_date: datetime,
    notes: str,
    duration: int,
    daily_rate: float,
    token: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Crée une intention de réservation (réserve stock et prix côté serveur).
    Retour: {"bookingIntent": {id, totalPrice, ...}, "payment": {qrCode, instructions, referenceNumber, transactionId}}
    """
    body = {
        "serviceId": service_id,
        "quantity": quantity,
        "bookingDate": booking_date.isoformat(),
        "notes": notes or "",
        "duration": duration,
        "dailyRate": daily_rate,
    }
    return await _request(
        "POST", f"{RESERVATION_API_URL}/api/bookings/intents", token=token, json=body, context="réservation"
    )

async def cancel_intent(intent_id: str, token: Optional[str] = None, reason: str = "") -> Dict[str, Any]:
    return await _request(
        "POST",
        f"{RESERVATION_API_URL}/api/bookings/intents/{_segment(intent_id)}/cancel",
        token=token,
        json={"reason": reason},
        context="réservation",
    )

# --- Paiement ---
async def create_cart_payment(intent_ids: List[str], amount: float, token: Optional[str] = None) -> Dict[str, Any]:
    """Demande une poignée de paiement unique couvrant toutes les intentions du panier."""
    return await _request(
        "POST",
        f"{PAYMENT_API_URL}/api/payments/create-cart-payment",
        token=token,
        json={"bookingIntents": list(intent_ids), "amount": amount},
        context="paiement",
    )

async def get_payment_status(reference_number: str, token: Optional[str] = None) -> str:
    payload = await _request(
        "GET", f"{PAYMENT_API_URL}/api/payments/status/{_segment(reference_number)}", token=token, context="paiement"
    )
    return str((payload.get("payment") or {}).get("status") or "")

async def verify_payment(reference_number: str, amount: float, token: Optional[str] = None) -> str:
    payload = await _request(
        "POST",
        f"{PAYMENT_API_URL}/api/payments/verify-qr/{_segment(reference_number)}",
        token=token,
        json={"amount": amount},
        context="paiement",
    )
    return str((payload.get("payment") or {}).get("status") or "")

async def verify_receipt(
    reference_number: str,
    amount: float,
    *,
    filename: str,
    content: bytes,
    content_type: str,
    token: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Envoie un justificatif de paiement pour vérification.
    Retour normalisé: {"status": <vocabulaire paiement>, "flagged": bool, "message": str}
    - Un justificatif signalé pour revue manuelle n'est pas un refus: statut 'processing'.
    """
    payload = await _request(
        "POST",
        f"{PAYMENT_API_URL}/api/payments/verify-receipt/{_segment(reference_number)}",
        token=token,
        data={"expectedAmount": str(amount)},
        files={"receipt": (filename, content, content_type)},
        context="paiement",
        raise_on_rejection=False,
    )
    if payload.get("success") is False:
        if payload.get("flaggedForReview"):
            return {"status": "processing", "flagged": True, "message": payload.get("message") or ""}
        raise BusinessError(payload.get("message") or "Vérification du justificatif refusée", "receipt_rejected")
    status = str((payload.get("payment") or {}).get("status") or "completed")
    return {"status": status, "flagged": False, "message": payload.get("message") or ""}
