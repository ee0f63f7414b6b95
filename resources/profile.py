from __future__ import annotations

from typing import Optional

from remote.query import Filter, RowFilter
from schemas import Profile

from .base import OwnedResourceHook


class ProfileHook(OwnedResourceHook):
    table = "profiles"
    noun = "profile"
    event = "UPDATE"
    keep_data_on_error = False

    def empty(self) -> None:
        return None

    def query(self) -> Profile:
        row = self.client.query(self.table, [Filter.eq("id", self.user_id)],
                                single=True, columns="full_name,email,role")
        return Profile(**row)

    def channel(self) -> Optional[str]:
        return f"public:profiles:id={self.user_id}" if self.user_id else None

    def row_filter(self) -> RowFilter:
        return RowFilter("id", self.user_id)
