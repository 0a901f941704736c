"""
Module 'checkout' (feature-first): point d'entrée public.
Réunit modèle, planification, contrôle de stock, intentions de réservation,
réconciliation du paiement, contrôleur d'étapes, repository et services.
"""

from .errors import (
    CheckoutError,
    ValidationError,
    NetworkError,
    BusinessError,
    CheckoutBusyError,
    SessionNotFoundError,
    SessionSchemaError,
)
from .models import (
    CartItem,
    ScheduleEntry,
    ScheduleGroup,
    BookingIntent,
    PaymentHandle,
    CheckoutSession,
    CheckoutStep,
    PaymentStatus,
)
from .scheduling import apply_to_group, compute_duration, refresh_pricing, validate_schedule
from .stock import StockReport, validate as validate_stock
from .intents import ConfirmationResult, confirm as confirm_intents
from .reconciliation import PaymentReconciler, PollerRegistry
from .serialization import SCHEMA_VERSION, serialize, deserialize

__all__ = [
    # errors
    "CheckoutError",
    "ValidationError",
    "NetworkError",
    "BusinessError",
    "CheckoutBusyError",
    "SessionNotFoundError",
    "SessionSchemaError",
    # models
    "CartItem",
    "ScheduleEntry",
    "ScheduleGroup",
    "BookingIntent",
    "PaymentHandle",
    "CheckoutSession",
    "CheckoutStep",
    "PaymentStatus",
    # scheduling
    "apply_to_group",
    "compute_duration",
    "refresh_pricing",
    "validate_schedule",
    # stock / intents / reconciliation
    "StockReport",
    "validate_stock",
    "ConfirmationResult",
    "confirm_intents",
    "PaymentReconciler",
    "PollerRegistry",
    # serialization
    "SCHEMA_VERSION",
    "serialize",
    "deserialize",
]
