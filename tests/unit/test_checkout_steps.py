import asyncio
import pytest

from rental_checkout.checkout import scheduling, steps
from rental_checkout.checkout.errors import CheckoutBusyError, ValidationError
from rental_checkout.checkout.models import CartItem, CheckoutStep, PaymentStatus


def test_step_order():
    assert steps.next_step(CheckoutStep.REVIEW) == CheckoutStep.SCHEDULE
    assert steps.next_step(CheckoutStep.PAYMENT) is None
    assert steps.previous_step(CheckoutStep.PAYMENT_TYPE) == CheckoutStep.CONFIRM
    assert steps.previous_step(CheckoutStep.REVIEW) is None


@pytest.mark.parametrize(
    "profile, expected",
    [
        ({"address": "12 rue des Lilas"}, True),
        ({"address": "   "}, False),
        ({"address": None}, False),
        ({}, False),
        ({"address": {"street": "12 rue des Lilas", "city": "Lyon"}}, True),
        ({"address": {"street": "", "city": ""}}, False),
    ],
)
def test_address_complete(profile, expected):
    assert steps.address_complete(profile) is expected


def test_review_blocked_by_stock_issue(collaborators, make_session):
    collaborators.services["tent"] = {"isAvailable": False, "serviceType": "equipment", "quantity": 3}
    session = make_session()

    with pytest.raises(ValidationError) as exc:
        asyncio.run(steps.advance(session))

    assert exc.value.code == "stock_issues"
    assert exc.value.issues == ["Tente 6x3 n'est plus disponible"]
    assert session.stock_issues == exc.value.issues
    assert session.step == CheckoutStep.REVIEW


def test_review_blocked_by_incomplete_address(collaborators, make_session):
    collaborators.profile = {"address": ""}
    session = make_session()

    with pytest.raises(ValidationError) as exc:
        asyncio.run(steps.advance(session))
    assert exc.value.code == "address_incomplete"


def test_schedule_gate_requires_delivery_and_extended_pickup(collaborators, make_session, delivery):
    session = make_session(step=CheckoutStep.SCHEDULE)
    scheduling.set_delivery(session, "tent", delivery)

    with pytest.raises(ValidationError) as exc:
        asyncio.run(steps.advance(session))
    assert exc.value.item_id == "chairs"

    scheduling.set_delivery(session, "chairs", delivery)
    scheduling.set_extend_duration(session, "chairs", True)
    scheduling.set_pickup(session, "chairs", None)
    with pytest.raises(ValidationError):
        asyncio.run(steps.advance(session))

    scheduling.set_extend_duration(session, "chairs", False)
    assert asyncio.run(steps.advance(session)) == CheckoutStep.CONFIRM


def test_individual_item_confirms_without_explicit_pickup(collaborators, make_session, delivery):
    session = make_session(CartItem(id="tent", name="Tente", price=80.0, quantity=1), step=CheckoutStep.SCHEDULE)
    scheduling.set_delivery(session, "tent", delivery)

    asyncio.run(steps.advance(session))
    asyncio.run(steps.advance(session))

    assert session.step == CheckoutStep.PAYMENT_TYPE
    assert session.items[0].duration == 1
    assert collaborators.intent_calls[0]["duration"] == 1


def test_full_forward_path(collaborators, make_session, delivery):
    session = make_session()
    for item in session.items:
        scheduling.set_delivery(session, item.id, delivery)

    async def scenario():
        await steps.advance(session)
        await steps.advance(session)
        await steps.advance(session)
        steps.choose_payment_type(session, "full")
        await steps.advance(session)

    asyncio.run(scenario())
    assert session.step == CheckoutStep.PAYMENT
    assert session.payment_handle.reference_number == "CART-REF"


def test_payment_type_required(collaborators, make_session):
    session = make_session(step=CheckoutStep.PAYMENT_TYPE)
    with pytest.raises(ValidationError) as exc:
        asyncio.run(steps.advance(session))
    assert exc.value.code == "payment_type_required"


def test_unknown_payment_type(make_session):
    session = make_session(step=CheckoutStep.PAYMENT_TYPE)
    with pytest.raises(ValidationError):
        steps.choose_payment_type(session, "installments")


def test_back_is_blocked_while_busy(make_session):
    session = make_session(step=CheckoutStep.CONFIRM)
    with pytest.raises(CheckoutBusyError):
        steps.back(session, busy=True)
    assert steps.back(session) == CheckoutStep.SCHEDULE


def test_back_from_first_step(make_session):
    with pytest.raises(ValidationError):
        steps.back(make_session())


def test_retry_keeps_schedules(make_session, delivery):
    session = make_session(step=CheckoutStep.PAYMENT, payment_status=PaymentStatus.FAILED)
    scheduling.set_delivery(session, "tent", delivery)

    steps.retry(session)

    assert session.step == CheckoutStep.PAYMENT_TYPE
    assert session.payment_status == PaymentStatus.UNPAID
    assert scheduling.resolve(session, "tent").delivery_at == delivery


def test_retry_after_paid_is_refused(make_session):
    session = make_session(step=CheckoutStep.PAYMENT, payment_status=PaymentStatus.PAID)
    with pytest.raises(ValidationError):
        steps.retry(session)
