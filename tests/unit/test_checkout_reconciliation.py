import asyncio
import pytest

from rental_checkout.checkout import reconciliation
from rental_checkout.checkout.errors import NetworkError, ValidationError
from rental_checkout.checkout.models import PaymentHandle, PaymentStatus
from rental_checkout.checkout.reconciliation import PaymentReconciler, PollerRegistry, transition


def _handle():
    return PaymentHandle(reference_number="CART-REF", amount=420.0, intent_ids=["intent-1", "intent-2"])


def _reconciler(**kwargs):
    events = {"changes": [], "paid": 0}

    async def on_change(status):
        events["changes"].append(status)

    async def on_paid():
        events["paid"] += 1

    options = {"interval": 0.01, "timeout": 2.0, "grace": 0.0}
    options.update(kwargs)
    reconciler = PaymentReconciler("s1", _handle(), "tok", on_change=on_change, on_paid=on_paid, **options)
    return reconciler, events


@pytest.mark.parametrize(
    "current, observed, expected, stop",
    [
        (PaymentStatus.UNPAID, "completed", PaymentStatus.PAID, True),
        (PaymentStatus.UNPAID, "failed", PaymentStatus.FAILED, True),
        (PaymentStatus.UNPAID, "pending", PaymentStatus.UNPAID, False),
        (PaymentStatus.UNPAID, "unpaid", PaymentStatus.UNPAID, False),
        (PaymentStatus.UNPAID, "awaiting_verification", PaymentStatus.PROCESSING, True),
        (PaymentStatus.PROCESSING, "completed", PaymentStatus.PAID, True),
        (PaymentStatus.PAID, "failed", PaymentStatus.PAID, True),
        (PaymentStatus.PAID, "unpaid", PaymentStatus.PAID, True),
    ],
)
def test_transition_table(current, observed, expected, stop):
    assert transition(current, observed) == (expected, stop)


def test_poll_completed_marks_paid_stops_and_clears(collaborators):
    collaborators.statuses = ["pending", "unpaid", "completed", "failed"]
    reconciler, events = _reconciler()

    async def scenario():
        reconciler.start_polling()
        await reconciler.wait()
        # Confirmation manuelle après paid: sans effet, sans appel distant
        return await reconciler.confirm_manually()

    assert asyncio.run(scenario()) == PaymentStatus.PAID
    assert collaborators.status_calls == 3
    assert events["changes"] == [PaymentStatus.PAID]
    assert events["paid"] == 1
    assert collaborators.verify_calls == []
    assert not reconciler.polling


def test_paid_is_never_reverted(collaborators):
    reconciler, events = _reconciler()

    async def scenario():
        await reconciler.apply("completed", "manual")
        await reconciler.apply("failed", "poll")
        await reconciler.apply("unpaid", "poll")
        await reconciler.wait()

    asyncio.run(scenario())
    assert reconciler.status == PaymentStatus.PAID
    assert events["changes"] == [PaymentStatus.PAID]


def test_poll_failed_stops(collaborators):
    collaborators.statuses = ["failed"]
    reconciler, events = _reconciler()

    async def scenario():
        reconciler.start_polling()
        await reconciler.wait()

    asyncio.run(scenario())
    assert reconciler.status == PaymentStatus.FAILED
    assert events["paid"] == 0


def test_other_status_moves_to_processing_and_stops(collaborators):
    collaborators.statuses = ["awaiting_verification", "completed"]
    reconciler, _ = _reconciler()

    async def scenario():
        reconciler.start_polling()
        await reconciler.wait()

    asyncio.run(scenario())
    assert reconciler.status == PaymentStatus.PROCESSING
    assert collaborators.status_calls == 1


def test_network_errors_on_ticks_are_swallowed(collaborators):
    collaborators.statuses = [NetworkError("timeout"), NetworkError("502"), "completed"]
    reconciler, _ = _reconciler()

    async def scenario():
        reconciler.start_polling()
        await reconciler.wait()

    asyncio.run(scenario())
    assert reconciler.status == PaymentStatus.PAID
    assert collaborators.status_calls == 3


def test_timeout_stops_silently_keeping_last_state(collaborators):
    reconciler, events = _reconciler(timeout=0.05)

    async def scenario():
        reconciler.start_polling()
        await reconciler.wait()

    asyncio.run(scenario())
    assert reconciler.timed_out is True
    assert reconciler.status == PaymentStatus.UNPAID
    assert events["changes"] == []
    assert not reconciler.polling


def test_manual_confirmation_applies_same_transitions(collaborators):
    collaborators.verify_status = "failed"
    reconciler, _ = _reconciler()

    status = asyncio.run(reconciler.confirm_manually())

    assert status == PaymentStatus.FAILED
    assert collaborators.verify_calls == [("CART-REF", 420.0)]


def test_manual_confirmation_stops_active_poll(collaborators):
    reconciler, events = _reconciler(interval=10.0)

    async def scenario():
        reconciler.start_polling()
        status = await reconciler.confirm_manually()
        await reconciler.wait()
        return status

    assert asyncio.run(scenario()) == PaymentStatus.PAID
    assert not reconciler.polling
    assert events["paid"] == 1


def test_receipt_flagged_for_review_is_processing(collaborators):
    collaborators.receipt_result = {"status": "processing", "flagged": True, "message": "Revue manuelle"}
    reconciler, _ = _reconciler()

    status = asyncio.run(reconciler.confirm_with_receipt("recu.png", b"\x89PNG...", "image/png"))

    assert status == PaymentStatus.PROCESSING
    assert collaborators.receipt_calls[0]["amount"] == 420.0
    assert collaborators.receipt_calls[0]["filename"] == "recu.png"


@pytest.mark.parametrize(
    "filename, content_type, size, code",
    [
        ("", "image/png", 10, "receipt_missing"),
        ("recu.pdf", "application/pdf", 10, "receipt_type"),
        ("recu.png", "image/png", 0, "receipt_empty"),
        ("recu.png", "image/png", 6 * 1024 * 1024, "receipt_size"),
    ],
)
def test_receipt_validation(filename, content_type, size, code):
    with pytest.raises(ValidationError) as exc:
        reconciliation.check_receipt(filename, content_type, size)
    assert exc.value.code == code


def test_starting_new_poll_cancels_previous(collaborators):
    registry = PollerRegistry()
    first, _ = _reconciler(interval=10.0)
    second, _ = _reconciler(interval=10.0)

    async def scenario():
        await registry.start(first)
        assert first.polling
        await registry.start(second)
        assert not first.polling
        assert second.polling
        assert registry.get("s1") is second
        await registry.cancel_all()
        assert not second.polling

    asyncio.run(scenario())
    assert registry.get("s1") is None


def test_cannot_poll_a_paid_payment():
    reconciler, _ = _reconciler()
    reconciler.status = PaymentStatus.PAID
    with pytest.raises(ValidationError):
        asyncio.run(_start(reconciler))


async def _start(reconciler):
    reconciler.start_polling()
