# module rental_checkout.checkout.models
"""
Modèle de données du checkout (pydantic).
- CartItem: article du panier avec tarif journalier et durée calculée (totalPrice dérivé).
- ScheduleEntry / ScheduleGroup: planification par article; les champs partagés d'un groupe
  synchronisé vivent sur le ScheduleGroup, référencé par group_id (arène + index).
- BookingIntent / PaymentHandle: résultat de la confirmation (une intention par article,
  une seule poignée de paiement agrégée).
- CheckoutSession: racine d'agrégat, seule propriétaire de l'état mutable.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Dict, List, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, model_validator

from .errors import ValidationError


def _ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    # Les instants naïfs sont interprétés en UTC pour rester comparables entre eux
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


Instant = Annotated[datetime, AfterValidator(_ensure_aware)]

SYNC_GROUP_ID = "sync"
SHARED_FIELDS = ("delivery_at", "pickup_at", "notes", "pickup_notes", "extend_duration", "extended_days")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CheckoutStep(str, Enum):
    REVIEW = "review"
    SCHEDULE = "schedule"
    CONFIRM = "confirm"
    PAYMENT_TYPE = "payment-type"
    PAYMENT = "payment"


class PaymentStatus(str, Enum):
    UNPAID = "unpaid"
    PROCESSING = "processing"
    PAID = "paid"
    FAILED = "failed"


class CartItem(BaseModel):
    id: str
    name: str
    price: float = Field(ge=0)
    quantity: int = Field(ge=1)
    category: str = ""
    service_type: str = ""
    daily_rate: Optional[float] = Field(default=None, ge=0)
    duration: int = Field(default=1, ge=1)

    @model_validator(mode="after")
    def _default_daily_rate(self):
        # Sans tarif journalier explicite, le prix courant fait office de tarif/jour
        if self.daily_rate is None:
            self.daily_rate = self.price
        return self

    @property
    def total_price(self) -> float:
        return float(self.daily_rate) * self.duration * self.quantity


class ScheduleFields(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    delivery_at: Optional[Instant] = None
    pickup_at: Optional[Instant] = None
    notes: str = ""
    pickup_notes: str = ""
    extend_duration: bool = False
    extended_days: Optional[int] = None

    def shared_values(self) -> dict:
        return {name: getattr(self, name) for name in SHARED_FIELDS}


class ScheduleGroup(ScheduleFields):
    id: str = SYNC_GROUP_ID


class ScheduleEntry(ScheduleFields):
    item_id: str
    group_id: Optional[str] = None

    @property
    def synchronized(self) -> bool:
        return self.group_id is not None


class PaymentFragment(BaseModel):
    qr_code: str = ""
    instructions: str = ""
    reference_number: str = ""
    transaction_id: str = ""


class BookingIntent(BaseModel):
    intent_id: str
    service_id: str
    quantity: int
    delivery_at: Instant
    duration: int
    total_price: float
    payment: Optional[PaymentFragment] = None


class PaymentHandle(BaseModel):
    reference_number: str
    transaction_id: str = ""
    qr_code: str = ""
    instructions: str = ""
    amount: float
    intent_ids: List[str] = Field(default_factory=list)
    source: str = "aggregate"


class CheckoutSession(BaseModel):
    session_key: str
    items: List[CartItem] = Field(default_factory=list)
    schedules: Dict[str, ScheduleEntry] = Field(default_factory=dict)
    groups: Dict[str, ScheduleGroup] = Field(default_factory=dict)
    step: CheckoutStep = CheckoutStep.REVIEW
    stock_issues: List[str] = Field(default_factory=list)
    payment_type: Optional[str] = None
    intents: List[BookingIntent] = Field(default_factory=list)
    payment_handle: Optional[PaymentHandle] = None
    checkout_total: Optional[float] = None
    payment_status: PaymentStatus = PaymentStatus.UNPAID
    reservation_date: Optional[Instant] = None
    updated_at: Instant = Field(default_factory=utcnow)

    def get_item(self, item_id: str) -> CartItem:
        for item in self.items:
            if item.id == item_id:
                return item
        raise ValidationError(f"Article introuvable dans le panier: {item_id}", "unknown_item", item_id=item_id)

    @property
    def cart_total(self) -> float:
        return sum(item.total_price for item in self.items)

    @property
    def is_confirmed(self) -> bool:
        return bool(self.intents) and self.payment_handle is not None

    def cart_signature(self) -> List[tuple]:
        """Empreinte (id, quantité) du panier, pour savoir si une confirmation reste valable."""
        return sorted((item.id, item.quantity) for item in self.items)
