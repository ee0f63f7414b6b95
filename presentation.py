from __future__ import annotations

"""
View helpers over already-fetched listings: calendar availability,
sub-category filtering and image resolution. No remote queries happen here;
public_url() only builds a URL.
"""

import calendar
import datetime as dt
import logging
from typing import Any, Dict, List, Optional, Sequence, Set

from pydantic import BaseModel

from schemas import Listing

logger = logging.getLogger(__name__)

PLACEHOLDER_IMAGE = "https://placehold.co/600x400.png?text=No+Image"
IMAGE_BUCKET = "listings_images"
GALLERY_SIDE_IMAGES = 4
ALL = "All"

SUBCATEGORIES: Dict[str, List[str]] = {
    "tour": [ALL, "Safari", "Trekking", "Cultural", "City Walk"],
    "volunteer": [ALL, "Conservation", "Education", "Healthcare", "Community"],
}


# ---------- availability ----------
def booked_dates(availability: Optional[Dict[str, Any]]) -> Set[dt.date]:
    out: Set[dt.date] = set()
    for raw in (availability or {}).get("booked_dates") or []:
        try:
            out.add(dt.date.fromisoformat(str(raw)[:10]))
        except ValueError:
            logger.warning("Skipping malformed booked date %r", raw)
    return out


def is_booked(day: dt.date, availability: Optional[Dict[str, Any]]) -> bool:
    return day in booked_dates(availability)


def month_days(year: int, month: int, availability: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    taken = booked_dates(availability)
    _, n_days = calendar.monthrange(year, month)
    days = []
    for i in range(1, n_days + 1):
        d = dt.date(year, month, i)
        days.append({"date": d.isoformat(), "available": d not in taken})
    return days


# ---------- filtering ----------
def filter_by_subcategory(listings: Sequence[Listing], selected: str = ALL) -> List[Listing]:
    if not selected or selected == ALL:
        return list(listings)
    wanted = selected.lower()
    return [l for l in listings if (l.type or "").lower() == wanted]


# ---------- images ----------
def image_url(client, images: Optional[Sequence[str]], listing_id: Optional[str] = None,
              bucket: str = IMAGE_BUCKET) -> str:
    if not images or not images[0]:
        return PLACEHOLDER_IMAGE
    path = images[0]
    if path.startswith("http"):
        return path
    url = client.public_url(bucket, path)
    if not url:
        logger.error("Could not get public URL for listing %r with image path %r (bucket %r)",
                     listing_id, path, bucket)
        return PLACEHOLDER_IMAGE
    return url


class Gallery(BaseModel):
    main: str
    others: List[str]
    empty_slots: int


def gallery(client, images: Optional[Sequence[str]], bucket: str = IMAGE_BUCKET) -> Gallery:
    images = [i for i in (images or []) if i]
    if not images:
        return Gallery(main=PLACEHOLDER_IMAGE, others=[], empty_slots=GALLERY_SIDE_IMAGES)
    others = [image_url(client, [p], bucket=bucket) for p in images[1:1 + GALLERY_SIDE_IMAGES]]
    return Gallery(
        main=image_url(client, images[:1], bucket=bucket),
        others=others,
        empty_slots=GALLERY_SIDE_IMAGES - len(others),
    )


class ListingCard(BaseModel):
    id: str
    title: str
    category: str
    type: Optional[str] = None
    location: Optional[str] = None
    rating: Optional[float] = None
    price: Optional[float] = None
    price_label: str
    image: str


def price_label(listing: Listing) -> str:
    if listing.price is None:
        return "Free" if listing.category == "volunteer" else "Price on request"
    suffix = " / night" if listing.category == "stay" else " / person"
    return f"KES {listing.price:,.2f}{suffix}"


def listing_card(client, listing: Listing, bucket: str = IMAGE_BUCKET) -> ListingCard:
    return ListingCard(
        id=listing.id,
        title=listing.title,
        category=listing.category,
        type=listing.type,
        location=listing.location,
        rating=listing.rating,
        price=listing.price,
        price_label=price_label(listing),
        image=image_url(client, listing.images, listing.id, bucket=bucket),
    )
