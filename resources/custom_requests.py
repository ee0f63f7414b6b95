from __future__ import annotations

from typing import List, Optional

from remote.query import Filter, Order, RowFilter
from schemas import CustomRequest

from .base import OwnedResourceHook


class CustomRequestsHook(OwnedResourceHook):
    table = "custom_requests"
    noun = "custom requests"

    def query(self) -> List[CustomRequest]:
        rows = self.client.query(self.table, [Filter.eq("user_id", self.user_id)], order=Order("created_at"))
        return [CustomRequest(**r) for r in rows]

    def channel(self) -> Optional[str]:
        return f"public:custom_requests:user_id={self.user_id}" if self.user_id else None

    def row_filter(self) -> RowFilter:
        return RowFilter("user_id", self.user_id)
