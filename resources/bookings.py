from __future__ import annotations

from typing import List, Optional

from remote.query import Filter, Order, RowFilter
from schemas import Booking

from .base import OwnedResourceHook

BOOKING_COLUMNS = (
    "id,created_at,listing_id,payment_status,payment_plan,total_amount,guests,"
    "check_in_date,check_out_date,listings(title,images,category)"
)


class BookingsHook(OwnedResourceHook):
    """The signed-in user's bookings, newest first, each with its listing summary."""

    table = "bookings"
    noun = "bookings"

    def query(self) -> List[Booking]:
        rows = self.client.query(self.table, [Filter.eq("user_id", self.user_id)],
                                 order=Order("created_at"), columns=BOOKING_COLUMNS)
        return [Booking(**r) for r in rows]

    def channel(self) -> Optional[str]:
        return f"public:bookings:user_id={self.user_id}" if self.user_id else None

    def row_filter(self) -> RowFilter:
        return RowFilter("user_id", self.user_id)
