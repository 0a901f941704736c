# module rental_checkout.checkout.reconciliation
"""
Réconciliation du paiement agrégé: unpaid -> processing -> {paid, failed}.

- Interrogation périodique du statut (intervalle configurable), bornée par un délai
  absolu depuis le démarrage (asyncio.wait_for). À l'expiration: arrêt silencieux,
  l'état reste le dernier observé.
- Confirmation manuelle (référence + montant, ou justificatif) indépendante du minuteur,
  soumise aux mêmes transitions.
- 'paid' est absorbant: toute écriture ultérieure est ignorée. Après un délai de grâce,
  le rappel on_paid efface la session.
- Un seul poller actif par session: en démarrer un nouveau annule et attend le précédent.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional

from rental_checkout.config import (
    PAYMENT_PAID_GRACE_SECONDS,
    PAYMENT_POLL_INTERVAL_SECONDS,
    PAYMENT_POLL_TIMEOUT_SECONDS,
    RECEIPT_ALLOWED_TYPES,
    RECEIPT_MAX_BYTES,
)
from . import clients
from .errors import CheckoutError, ValidationError
from .models import PaymentHandle, PaymentStatus

logger = logging.getLogger(__name__)

StatusCallback = Callable[[PaymentStatus], Awaitable[None]]
PaidCallback = Callable[[], Awaitable[None]]

COMPLETED = "completed"
FAILED = "failed"
WAITING_STATUSES = ("unpaid", "pending")


def transition(current: PaymentStatus, observed: Optional[str]):
    """
    Retourne (nouvel état, arrêter l'interrogation).
    - completed -> paid (arrêt), failed -> failed (arrêt)
    - unpaid/pending (ou vide) -> inchangé, on continue
    - toute autre valeur -> processing (arrêt)
    """
    if current == PaymentStatus.PAID:
        return PaymentStatus.PAID, True
    value = (observed or "").strip().lower()
    if value == COMPLETED:
        return PaymentStatus.PAID, True
    if value == FAILED:
        return PaymentStatus.FAILED, True
    if not value or value in WAITING_STATUSES:
        return current, False
    return PaymentStatus.PROCESSING, True


def check_receipt(filename: str, content_type: str, size: int) -> None:
    if not filename:
        raise ValidationError("Veuillez sélectionner un justificatif de paiement", "receipt_missing")
    if (content_type or "").lower() not in RECEIPT_ALLOWED_TYPES:
        raise ValidationError(
            "Format de justificatif non supporté (JPG, PNG, GIF ou BMP uniquement)", "receipt_type"
        )
    if size <= 0:
        raise ValidationError("Le justificatif est vide", "receipt_empty")
    if size > RECEIPT_MAX_BYTES:
        raise ValidationError(
            f"Le justificatif dépasse la taille maximale ({RECEIPT_MAX_BYTES // (1024 * 1024)} Mo)", "receipt_size"
        )


class PaymentReconciler:
    def __init__(
        self,
        session_key: str,
        handle: PaymentHandle,
        token: Optional[str] = None,
        *,
        status: PaymentStatus = PaymentStatus.UNPAID,
        on_change: Optional[StatusCallback] = None,
        on_paid: Optional[PaidCallback] = None,
        interval: Optional[float] = None,
        timeout: Optional[float] = None,
        grace: Optional[float] = None,
    ):
        self.session_key = session_key
        self.handle = handle
        self.token = token
        self.status = status
        self.on_change = on_change
        self.on_paid = on_paid
        self.interval = PAYMENT_POLL_INTERVAL_SECONDS if interval is None else interval
        self.timeout = PAYMENT_POLL_TIMEOUT_SECONDS if timeout is None else timeout
        self.grace = PAYMENT_PAID_GRACE_SECONDS if grace is None else grace
        self.timed_out = False
        self._cancelled = False
        self._poll_task: Optional[asyncio.Task] = None
        self._paid_task: Optional[asyncio.Task] = None

    @property
    def polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    async def apply(self, observed: Optional[str], source: str = "poll") -> bool:
        """Applique un statut observé. Retourne True si l'interrogation doit s'arrêter."""
        previous = self.status
        new_status, stop = transition(previous, observed)
        if new_status != previous:
            self.status = new_status
            logger.info(
                "reconciliation session=%s %s -> %s (source=%s observed=%s)",
                self.session_key, previous.value, new_status.value, source, observed,
            )
            if self.on_change is not None:
                await self.on_change(new_status)
            if new_status == PaymentStatus.PAID:
                self._schedule_paid()
        return stop

    def _schedule_paid(self) -> None:
        if self._paid_task is None:
            self._paid_task = asyncio.create_task(self._finish_paid())

    async def _finish_paid(self) -> None:
        await asyncio.sleep(self.grace)
        if self.on_paid is not None:
            await self.on_paid()

    async def _poll_loop(self) -> None:
        while not self._cancelled:
            await asyncio.sleep(self.interval)
            if self._cancelled:
                return
            try:
                observed = await clients.get_payment_status(self.handle.reference_number, self.token)
            except CheckoutError as e:
                logger.warning("reconciliation.poll session=%s tick failed: %s", self.session_key, e.message)
                continue
            if self._cancelled:
                return
            if await self.apply(observed, "poll"):
                return

    async def _run(self) -> None:
        try:
            await asyncio.wait_for(self._poll_loop(), timeout=self.timeout)
        except asyncio.TimeoutError:
            self.timed_out = True
            logger.info(
                "reconciliation.poll session=%s timed out after %ss status=%s",
                self.session_key, self.timeout, self.status.value,
            )

    def start_polling(self) -> asyncio.Task:
        if self.status == PaymentStatus.PAID:
            raise ValidationError("Le paiement est déjà confirmé", "already_paid")
        if self.polling:
            return self._poll_task
        self._cancelled = False
        self.timed_out = False
        self._poll_task = asyncio.create_task(self._run())
        logger.info("reconciliation.poll started session=%s reference=%s", self.session_key, self.handle.reference_number)
        return self._poll_task

    async def stop_polling(self) -> None:
        self._cancelled = True
        task = self._poll_task
        if task is None or task is asyncio.current_task():
            return
        if not task.done():
            task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def cancel(self) -> None:
        """Jeton d'annulation: arrête l'interrogation et le délai de grâce en attente."""
        await self.stop_polling()
        task = self._paid_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def wait(self) -> None:
        """Attend la fin de l'interrogation et du délai de grâce (tests, arrêt propre)."""
        for task in (self._poll_task, self._paid_task):
            if task is not None and not task.cancelled():
                await task
        # Le passage à paid peut programmer le délai de grâce pendant l'attente
        if self._paid_task is not None and not self._paid_task.done():
            await self._paid_task

    async def confirm_manually(self) -> PaymentStatus:
        if self.status == PaymentStatus.PAID:
            return self.status
        observed = await clients.verify_payment(self.handle.reference_number, self.handle.amount, self.token)
        if await self.apply(observed, "manual"):
            await self.stop_polling()
        return self.status

    async def confirm_with_receipt(self, filename: str, content: bytes, content_type: str) -> PaymentStatus:
        if self.status == PaymentStatus.PAID:
            return self.status
        check_receipt(filename, content_type, len(content or b""))
        result = await clients.verify_receipt(
            self.handle.reference_number,
            self.handle.amount,
            filename=filename,
            content=content,
            content_type=content_type,
            token=self.token,
        )
        if result.get("flagged"):
            logger.info("reconciliation.receipt session=%s flagged for review", self.session_key)
        if await self.apply(result.get("status"), "receipt"):
            await self.stop_polling()
        return self.status


class PollerRegistry:
    """Un PaymentReconciler par clé de session (processus courant)."""

    def __init__(self):
        self._reconcilers: Dict[str, PaymentReconciler] = {}

    def get(self, session_key: str) -> Optional[PaymentReconciler]:
        return self._reconcilers.get(session_key)

    async def start(self, reconciler: PaymentReconciler) -> PaymentReconciler:
        previous = self._reconcilers.get(reconciler.session_key)
        if previous is not None and previous is not reconciler:
            await previous.cancel()
        self._reconcilers[reconciler.session_key] = reconciler
        reconciler.start_polling()
        return reconciler

    def register(self, reconciler: PaymentReconciler) -> PaymentReconciler:
        self._reconcilers[reconciler.session_key] = reconciler
        return reconciler

    async def cancel(self, session_key: str) -> None:
        reconciler = self._reconcilers.pop(session_key, None)
        if reconciler is not None:
            await reconciler.cancel()

    async def stop_polling(self, session_key: str) -> None:
        reconciler = self._reconcilers.get(session_key)
        if reconciler is not None:
            await reconciler.stop_polling()

    def discard(self, session_key: str, reconciler: Optional[PaymentReconciler] = None) -> None:
        current = self._reconcilers.get(session_key)
        if current is not None and (reconciler is None or current is reconciler):
            self._reconcilers.pop(session_key, None)

    async def cancel_all(self) -> None:
        keys = list(self._reconcilers)
        for key in keys:
            await self.cancel(key)
        if keys:
            logger.info("reconciliation.registry cancelled %s poller(s)", len(keys))


registry = PollerRegistry()
