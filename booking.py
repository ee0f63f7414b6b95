from __future__ import annotations

"""
Booking workflow (pre-pay through the hosted checkout).

submit() turns trip parameters into one pending booking row and opens a
checkout for the amount due under the chosen payment plan. The checkout's
success callback flips the booking to paid (full plan) or partial (deposit,
instalments); a cancelled checkout leaves it pending and the form can be
submitted again. Repeated submits create repeated rows. When nothing is due
(volunteer placements) no checkout is opened and the booking stays pending.
"""

import datetime as dt
import logging
from dataclasses import dataclass
from typing import Dict, Literal, Optional

from pydantic import BaseModel, Field, model_validator

from remote.client import RemoteError
from remote.query import Filter
from remote.payments import Checkout
from schemas import Booking, Listing

logger = logging.getLogger(__name__)

MAX_TRAVELERS = 8

BOOKING_DETAIL = "*,listings(title,images,category)"

# share of the total collected at checkout
PAYMENT_PLANS: Dict[str, float] = {
    "full": 1.0,
    "deposit": 0.15,
    "lipa_mdogo_mdogo": 0.25,  # first of four instalments
}


class BookingError(Exception):
    pass


class SignInRequired(BookingError):
    def __init__(self, redirect: str):
        super().__init__("Please sign in to continue booking.")
        self.redirect = redirect


class BookingForm(BaseModel):
    travelers: int = Field(1, ge=1, le=MAX_TRAVELERS)
    check_in: Optional[dt.date] = None
    check_out: Optional[dt.date] = None
    payment_plan: Literal["full", "deposit", "lipa_mdogo_mdogo"] = "full"

    @model_validator(mode="after")
    def _dates_in_order(self):
        if self.check_in and self.check_out and self.check_out < self.check_in:
            raise ValueError("Check-out date cannot be before check-in date")
        return self


@dataclass
class BookingResult:
    booking: Booking
    checkout: Checkout


def total_amount(listing: Listing, travelers: int) -> float:
    return float(listing.price or 0) * travelers


def amount_due(total: float, plan: str) -> float:
    return round(total * PAYMENT_PLANS[plan], 2)


def settled_status(plan: str) -> str:
    return "paid" if plan == "full" else "partial"


class BookingWorkflow:
    """Submit, settle and cancel bookings for the signed-in identity.

    `client` runs as the user. `settlement` is a privileged client used only to
    write payment_status / paystack_ref once the checkout has been verified;
    the store refuses those writes from user tokens.
    """

    def __init__(self, client, auth, checkout, callback_url: Optional[str] = None, settlement=None):
        self.client = client
        self.auth = auth
        self.checkout = checkout
        self.callback_url = callback_url
        self.settlement = settlement

    def validate(self, listing: Optional[Listing], form: BookingForm) -> None:
        if self.auth.identity is None:
            raise SignInRequired(f"/signin?redirect={booking_path(listing)}")
        if listing is None:
            raise BookingError("Listing not found.")
        if form.check_in is None:
            raise BookingError("Please choose a check-in date.")
        if listing.category == "stay" and form.check_out is None:
            raise BookingError("Please choose a check-out date.")

    def submit(self, listing: Optional[Listing], form: BookingForm) -> BookingResult:
        self.validate(listing, form)
        identity = self.auth.identity
        total = total_amount(listing, form.travelers)

        row = self.client.insert("bookings", {
            "listing_id": listing.id,
            "user_id": identity.id,
            "total_amount": total,
            "payment_plan": form.payment_plan,
            "payment_status": "pending",
            "guests": form.travelers,
            "check_in_date": form.check_in.isoformat() if form.check_in else None,
            "check_out_date": form.check_out.isoformat() if form.check_out else None,
        })
        booking = Booking(**row)
        logger.info("Booking %s created for listing %s (%s)", booking.id, listing.id, form.payment_plan)

        due = amount_due(total, form.payment_plan)
        if due <= 0:
            # nothing to collect; no checkout is opened
            return BookingResult(booking=booking, checkout=Checkout(reference=booking.id, amount=0.0))

        callback = self.callback_url.format(booking_id=booking.id) if self.callback_url else None
        checkout = self.checkout.initialize(
            email=identity.email or "",
            amount=due,
            reference=booking.id,
            callback_url=callback,
        )
        return BookingResult(booking=booking, checkout=checkout)

    def confirm_payment(self, booking_id: str, reference: str) -> Optional[str]:
        """Verify the booking's own checkout and settle it; returns the new status, or None if unpaid."""
        if self.auth.identity is None:
            raise SignInRequired("/signin?redirect=/bookings")
        if self.settlement is None:
            raise BookingError("Payment settlement is not configured.")
        booking = load_booking(self.client, booking_id)
        if reference != booking.id:
            logger.warning("Reference %s does not belong to booking %s", reference, booking.id)
            return None
        transaction = self.checkout.verify(reference)
        if not transaction.succeeded:
            logger.warning("Payment %s for booking %s not successful: %s",
                           reference, booking_id, transaction.status)
            return None
        if transaction.reference != booking.id:
            logger.warning("Transaction %s does not belong to booking %s", transaction.reference, booking.id)
            return None
        due = amount_due(booking.total_amount, booking.payment_plan)
        if transaction.amount < due:
            logger.warning("Payment %s for booking %s short: %.2f of %.2f",
                           reference, booking.id, transaction.amount, due)
            return None
        status = settled_status(booking.payment_plan)
        self.settlement.update("bookings", {"payment_status": status, "paystack_ref": transaction.reference},
                               {"id": booking.id})
        logger.info("Booking %s marked %s", booking.id, status)
        return status

    def cancel_payment(self, booking_id: str) -> Booking:
        booking = load_booking(self.client, booking_id)
        logger.info("Payment window closed for booking %s; booking stays %s", booking.id, booking.payment_status)
        return booking


def booking_path(listing) -> str:
    if listing is None:
        return "/"
    return f"/book/{listing.category}/{listing.id}"


def load_booking(client, booking_id: str) -> Booking:
    try:
        row = client.query("bookings", [Filter.eq("id", booking_id)], single=True, columns=BOOKING_DETAIL)
    except RemoteError as e:
        raise BookingError(e.message) from e
    return Booking(**row)
