import datetime as dt

import pytest
from pydantic import ValidationError

from booking import (BookingError, BookingForm, BookingWorkflow, SignInRequired, amount_due,
                     total_amount)
from remote.client import RemoteError
from remote.mock import MockCheckout
from remote.payments import Transaction
from resources.base import mounted
from resources.listings import ListingHook
from schemas import Listing

CHECK_IN = dt.date(2025, 7, 1)


def listing(client, listing_id):
    with mounted(ListingHook(client, listing_id)) as hook:
        return hook.data


def bookings(client):
    return client.tables.get("bookings", [])


@pytest.fixture
def checkout():
    return MockCheckout()


@pytest.fixture
def workflow(client, signed_in, checkout):
    return BookingWorkflow(client, signed_in, checkout, settlement=client.service())


def test_total_is_price_times_travelers():
    tour = Listing(id="t1", title="x", category="tour", price=100)
    assert total_amount(tour, 3) == 300


def test_missing_price_counts_as_zero():
    volunteer = Listing(id="v1", title="x", category="volunteer", price=None)
    assert total_amount(volunteer, 4) == 0


@pytest.mark.parametrize("plan,due", [("full", 1000.0), ("deposit", 150.0), ("lipa_mdogo_mdogo", 250.0)])
def test_amount_due_per_plan(plan, due):
    assert amount_due(1000, plan) == due


def test_submit_creates_pending_booking(client, workflow, checkout):
    result = workflow.submit(listing(client, "t1"), BookingForm(travelers=3, check_in=CHECK_IN))

    assert result.booking.total_amount == 300
    assert result.booking.payment_status == "pending"
    assert result.booking.guests == 3
    assert len(bookings(client)) == 1
    assert checkout.initialized[0].reference == result.booking.id
    assert checkout.initialized[0].amount == 300


def test_deposit_checkout_amount(client, workflow, checkout):
    form = BookingForm(travelers=2, check_in=CHECK_IN, payment_plan="deposit")
    result = workflow.submit(listing(client, "tour-mara-001"), form)
    assert result.booking.total_amount == 90000
    assert checkout.initialized[0].amount == 13500


def test_volunteer_booking_opens_no_checkout(client, workflow, checkout):
    result = workflow.submit(listing(client, "vol-amboseli-201"), BookingForm(travelers=1, check_in=CHECK_IN))
    assert result.booking.total_amount == 0
    assert result.booking.payment_status == "pending"
    assert result.checkout.reference == result.booking.id
    assert result.checkout.authorization_url is None
    assert checkout.initialized == []
    assert len(bookings(client)) == 1


def test_rejected_without_identity(client, auth, checkout):
    flow = BookingWorkflow(client, auth, checkout)
    with pytest.raises(SignInRequired) as exc:
        flow.submit(listing(client, "t1"), BookingForm(travelers=1, check_in=CHECK_IN))
    assert exc.value.redirect == "/signin?redirect=/book/tour/t1"
    assert bookings(client) == []
    assert checkout.initialized == []


def test_rejected_without_listing(workflow, client):
    with pytest.raises(BookingError):
        workflow.submit(None, BookingForm(check_in=CHECK_IN))
    assert bookings(client) == []


def test_stay_requires_check_out(client, workflow):
    stay = listing(client, "stay-diani-101")
    with pytest.raises(BookingError, match="check-out"):
        workflow.submit(stay, BookingForm(travelers=2, check_in=CHECK_IN))

    result = workflow.submit(stay, BookingForm(travelers=2, check_in=CHECK_IN, check_out=dt.date(2025, 7, 4)))
    assert result.booking.check_out_date == "2025-07-04"


def test_check_in_required(client, workflow):
    with pytest.raises(BookingError, match="check-in"):
        workflow.submit(listing(client, "t1"), BookingForm(travelers=1))


@pytest.mark.parametrize("data", [
    {"travelers": 0},
    {"travelers": 9},
    {"payment_plan": "pay_later"},
    {"check_in": "2025-07-05", "check_out": "2025-07-01"},
])
def test_form_validation(data):
    with pytest.raises(ValidationError):
        BookingForm(**data)


def test_repeated_submits_create_repeated_rows(client, workflow):
    tour = listing(client, "t1")
    form = BookingForm(travelers=1, check_in=CHECK_IN)
    workflow.submit(tour, form)
    workflow.submit(tour, form)
    assert len(bookings(client)) == 2


def test_insert_failure_message_is_surfaced(client, workflow, monkeypatch):
    def refuse(table, record):
        raise RemoteError('insert or update on table "bookings" violates foreign key constraint', 409)

    monkeypatch.setattr(client, "insert", refuse)
    with pytest.raises(RemoteError) as exc:
        workflow.submit(listing(client, "t1"), BookingForm(check_in=CHECK_IN))
    assert str(exc.value) == 'insert or update on table "bookings" violates foreign key constraint'


@pytest.mark.parametrize("plan,status", [("full", "paid"), ("deposit", "partial"), ("lipa_mdogo_mdogo", "partial")])
def test_successful_checkout_settles_booking(client, workflow, plan, status):
    result = workflow.submit(listing(client, "t1"), BookingForm(check_in=CHECK_IN, payment_plan=plan))

    assert workflow.confirm_payment(result.booking.id, result.checkout.reference) == status
    row = bookings(client)[0]
    assert row["payment_status"] == status
    assert row["paystack_ref"] == result.booking.id


def test_failed_checkout_leaves_booking_pending(client, workflow, checkout):
    result = workflow.submit(listing(client, "t1"), BookingForm(check_in=CHECK_IN))
    checkout.declined.add(result.booking.id)

    assert workflow.confirm_payment(result.booking.id, result.booking.id) is None
    assert bookings(client)[0]["payment_status"] == "pending"


def test_cancelled_checkout_leaves_booking_pending(client, workflow):
    result = workflow.submit(listing(client, "t1"), BookingForm(check_in=CHECK_IN))
    booking = workflow.cancel_payment(result.booking.id)
    assert booking.payment_status == "pending"

    workflow.submit(listing(client, "t1"), BookingForm(check_in=CHECK_IN))
    assert len(bookings(client)) == 2


def test_confirm_unknown_booking(workflow):
    with pytest.raises(BookingError):
        workflow.confirm_payment("nope", "nope")


def row(client, booking_id):
    return next(r for r in bookings(client) if r["id"] == booking_id)


def test_reference_from_another_checkout_does_not_settle(client, workflow):
    small = workflow.submit(listing(client, "t1"), BookingForm(check_in=CHECK_IN, payment_plan="deposit"))
    large = workflow.submit(listing(client, "tour-kili-002"), BookingForm(travelers=8, check_in=CHECK_IN))
    assert large.booking.total_amount == 1440000

    assert workflow.confirm_payment(large.booking.id, small.checkout.reference) is None
    assert row(client, large.booking.id)["payment_status"] == "pending"
    assert row(client, large.booking.id)["paystack_ref"] is None


def test_transaction_for_another_booking_does_not_settle(client, workflow, checkout, monkeypatch):
    other = workflow.submit(listing(client, "t1"), BookingForm(check_in=CHECK_IN))
    mine = workflow.submit(listing(client, "t1"), BookingForm(check_in=CHECK_IN))
    monkeypatch.setattr(checkout, "verify",
                        lambda reference: Transaction(reference=other.booking.id, status="success", amount=100))

    assert workflow.confirm_payment(mine.booking.id, mine.booking.id) is None
    assert row(client, mine.booking.id)["payment_status"] == "pending"


def test_short_payment_does_not_settle(client, workflow, checkout, monkeypatch):
    result = workflow.submit(listing(client, "tour-mara-001"), BookingForm(check_in=CHECK_IN))
    monkeypatch.setattr(checkout, "verify",
                        lambda reference: Transaction(reference=reference, status="success", amount=15))

    assert workflow.confirm_payment(result.booking.id, result.booking.id) is None
    assert row(client, result.booking.id)["payment_status"] == "pending"


def test_settlement_needs_privileged_client(client, signed_in, checkout):
    flow = BookingWorkflow(client, signed_in, checkout)
    result = flow.submit(listing(client, "t1"), BookingForm(check_in=CHECK_IN))
    with pytest.raises(BookingError, match="not configured"):
        flow.confirm_payment(result.booking.id, result.booking.id)
    assert row(client, result.booking.id)["payment_status"] == "pending"


def test_user_token_cannot_mark_booking_paid(client, workflow):
    result = workflow.submit(listing(client, "t1"), BookingForm(check_in=CHECK_IN))
    client.update("bookings", {"payment_status": "paid"}, {"id": result.booking.id})
    assert row(client, result.booking.id)["payment_status"] == "pending"


def test_cancel_keeps_listing_summary(client, workflow):
    result = workflow.submit(listing(client, "t1"), BookingForm(check_in=CHECK_IN))
    booking = workflow.cancel_payment(result.booking.id)
    assert booking.listings.category == "tour"
    assert booking.listing_id == "t1"
