# module rental_checkout.checkout.schemas
"""
Corps de requête (pydantic, alias camelCase côté client) et mise en forme des réponses.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from rental_checkout.config import CHECKOUT_SUCCESS_PATH
from .models import CartItem, CheckoutSession, Instant, PaymentStatus
from .scheduling import resolve


class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class CartItemIn(_Body):
    id: str = Field(min_length=1)
    name: str
    price: float = Field(ge=0)
    quantity: int = Field(ge=1)
    category: str = ""
    service_type: str = Field(default="", alias="serviceType")
    daily_rate: Optional[float] = Field(default=None, ge=0, alias="dailyRate")

    def to_item(self) -> CartItem:
        return CartItem(
            id=self.id,
            name=self.name,
            price=self.price,
            quantity=self.quantity,
            category=self.category,
            service_type=self.service_type,
            daily_rate=self.daily_rate,
        )


class OpenSessionIn(_Body):
    items: List[CartItemIn] = Field(min_length=1)
    reservation_date: Optional[Instant] = Field(default=None, alias="reservationDate")


class ScheduleChangeIn(_Body):
    """Seuls les champs envoyés sont appliqués; pickupAt=null efface la reprise."""
    synchronized: Optional[bool] = None
    delivery_at: Optional[Instant] = Field(default=None, alias="deliveryAt")
    pickup_at: Optional[Instant] = Field(default=None, alias="pickupAt")
    notes: Optional[str] = None
    pickup_notes: Optional[str] = Field(default=None, alias="pickupNotes")
    extend_duration: Optional[bool] = Field(default=None, alias="extendDuration")
    extended_days: Optional[int] = Field(default=None, alias="extendedDays")

    def changes(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in self.model_fields_set}


class PaymentTypeIn(_Body):
    payment_type: str = Field(default="full", alias="paymentType")


def _amount(value: Optional[float]) -> Optional[float]:
    return round(value, 2) if value is not None else None


def item_view(session: CheckoutSession, item: CartItem) -> Dict[str, Any]:
    return {
        "id": item.id,
        "name": item.name,
        "price": item.price,
        "quantity": item.quantity,
        "category": item.category,
        "serviceType": item.service_type,
        "dailyRate": item.daily_rate,
        "duration": item.duration,
        "totalPrice": _amount(item.total_price),
        "schedule": resolve(session, item.id).to_dict(),
    }


def handle_view(session: CheckoutSession) -> Optional[Dict[str, Any]]:
    handle = session.payment_handle
    if handle is None:
        return None
    return {
        "referenceNumber": handle.reference_number,
        "transactionId": handle.transaction_id,
        "instructions": handle.instructions,
        "amount": _amount(handle.amount),
        "bookingIntents": list(handle.intent_ids),
    }


def session_view(session: CheckoutSession) -> Dict[str, Any]:
    return {
        "step": session.step.value,
        "items": [item_view(session, item) for item in session.items],
        "cartTotal": _amount(session.cart_total),
        "checkoutTotal": _amount(session.checkout_total),
        "stockIssues": list(session.stock_issues),
        "reservationDate": session.reservation_date.isoformat() if session.reservation_date else None,
        "paymentType": session.payment_type,
        "paymentStatus": session.payment_status.value,
        "confirmed": session.is_confirmed,
        "bookingIntents": [
            {
                "id": intent.intent_id,
                "serviceId": intent.service_id,
                "quantity": intent.quantity,
                "bookingDate": intent.delivery_at.isoformat(),
                "duration": intent.duration,
                "totalPrice": _amount(intent.total_price),
            }
            for intent in session.intents
        ],
        "payment": handle_view(session),
    }


def payment_view(
    status: PaymentStatus,
    *,
    session: Optional[CheckoutSession] = None,
    qr_image: Optional[str] = None,
    polling: bool = False,
    timed_out: bool = False,
) -> Dict[str, Any]:
    view: Dict[str, Any] = {
        "status": status.value,
        "polling": polling,
        "timedOut": timed_out,
        "payment": handle_view(session) if session is not None else None,
        "qrImage": qr_image,
        "redirect": CHECKOUT_SUCCESS_PATH if status == PaymentStatus.PAID else None,
    }
    if status == PaymentStatus.FAILED or (timed_out and status != PaymentStatus.PAID):
        view["retry"] = True
    return view
