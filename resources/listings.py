from __future__ import annotations

from typing import List, Optional

from remote.query import Filter, Order, RowFilter
from schemas import Listing

from .base import ResourceHook

PUBLISHED = Filter.ilike("status", "published")
NEWEST_FIRST = Order("created_at", descending=True)


def listing_filters(category: Optional[str] = None, search: str = "") -> List[Filter]:
    filters = [PUBLISHED]
    if category:
        filters.append(Filter.ilike("category", category))
    if search:
        filters.append(Filter.search(("title", "description"), search))
    return filters


class ListingsHook(ResourceHook):
    table = "listings"
    noun = "listings"
    params = ("category", "search")

    def __init__(self, client, category: Optional[str] = None, search: str = ""):
        self.category = category
        self.search = search
        super().__init__(client)

    def query(self) -> List[Listing]:
        rows = self.client.query(self.table, listing_filters(self.category, self.search), order=NEWEST_FIRST)
        return [Listing(**r) for r in rows]

    def channel(self) -> str:
        return f"public:listings:{self.category or 'all'}:{self.search or 'all'}"


class ListingHook(ResourceHook):
    table = "listings"
    noun = "listing"
    params = ("listing_id",)
    keep_data_on_error = False

    def __init__(self, client, listing_id: str):
        self.listing_id = listing_id
        super().__init__(client)

    def empty(self) -> None:
        return None

    def ready(self) -> bool:
        return bool(self.listing_id)

    def query(self) -> Listing:
        row = self.client.query(self.table, [Filter.eq("id", self.listing_id), PUBLISHED], single=True)
        return Listing(**row)

    def channel(self) -> Optional[str]:
        return f"public:listings:id={self.listing_id}" if self.listing_id else None

    def row_filter(self) -> RowFilter:
        return RowFilter("id", self.listing_id)
