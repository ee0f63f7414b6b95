from __future__ import annotations

"""
In-process backend used when no hosted backend is configured (and in tests).

Implements the same contract as SupabaseClient / PaystackCheckout, including
the access rules the hosted store enforces with row-level security:
unpublished listings are never returned, per-user tables only expose and
accept rows owned by the signed-in identity, and only profiles can be updated
with a user token. A service-role copy (``service()``) bypasses the rules.
"""

import copy
import datetime as dt
import logging
import threading
import uuid
from typing import Any, Callable, Dict, List, Optional, Sequence, Set

from .client import Identity, RemoteError, Session
from .payments import Checkout, Transaction
from .query import Filter, Order, RowFilter
from .realtime import ChangeEvent, ChangeFeed, Subscription

logger = logging.getLogger(__name__)

NOT_SINGLE = "JSON object requested, multiple (or no) rows returned"

# table -> column holding the owning identity id
OWNED_TABLES = {
    "bookings": "user_id",
    "custom_requests": "user_id",
    "volunteer_applications": "user_id",
    "profiles": "id",
}

# tables a user token may update (own rows only)
USER_UPDATABLE = {"profiles"}

DEFAULTS: Dict[str, Dict[str, Any]] = {
    "bookings": {"payment_status": "pending", "payment_plan": "full", "paystack_ref": None,
                 "guests": None, "check_in_date": None, "check_out_date": None},
    "custom_requests": {"status": "pending", "budget": None, "full_name": None, "email": None,
                        "phone": None, "whatsapp_number": None},
    "profiles": {"role": "user", "full_name": None, "email": None},
    "listings": {"status": "draft"},
}


def _now() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat()


def _split_columns(columns: str) -> List[str]:
    out, depth, cur = [], 0, ""
    for ch in columns:
        if ch == "," and depth == 0:
            out.append(cur.strip())
            cur = ""
            continue
        depth += ch == "("
        depth -= ch == ")"
        cur += ch
    if cur.strip():
        out.append(cur.strip())
    return out


class MemoryClient:
    def __init__(self, tables: Optional[Dict[str, List[Dict[str, Any]]]] = None,
                 feed: Optional[ChangeFeed] = None, access_token: Optional[str] = None):
        self.tables: Dict[str, List[Dict[str, Any]]] = tables if tables is not None else {}
        self.feed = feed or ChangeFeed()
        self.access_token = access_token
        self.users: Dict[str, Dict[str, Any]] = {}
        self.tokens: Dict[str, Identity] = {}
        self.calls: List[tuple] = []
        self._lock = threading.RLock()
        self.service_role = False

    def scoped(self, access_token: Optional[str]) -> "MemoryClient":
        other = copy.copy(self)
        other.access_token = access_token
        other.service_role = False
        return other

    def service(self, key: Optional[str] = None) -> "MemoryClient":
        other = copy.copy(self)
        other.access_token = None
        other.service_role = True
        return other

    # ---------- access rules ----------
    def _current(self) -> Optional[Identity]:
        return self.tokens.get(self.access_token) if self.access_token else None

    def _visible(self, table: str, row: Dict[str, Any]) -> bool:
        if self.service_role:
            return True
        if table == "listings":
            return str(row.get("status") or "").lower() == "published"
        owner_col = OWNED_TABLES.get(table)
        if owner_col is None:
            return True
        me = self._current()
        return me is not None and row.get(owner_col) == me.id

    def _check_owner(self, table: str, record: Dict[str, Any]) -> None:
        if self.service_role:
            return
        owner_col = OWNED_TABLES.get(table)
        if owner_col is None:
            if table == "listings":
                raise RemoteError(f'new row violates row-level security policy for table "{table}"', 403)
            return
        me = self._current()
        if me is None or record.get(owner_col) != me.id:
            raise RemoteError(f'new row violates row-level security policy for table "{table}"', 403)

    # ---------- data ----------
    def _project(self, table: str, row: Dict[str, Any], columns: str) -> Dict[str, Any]:
        if columns.strip() == "*":
            return copy.deepcopy(row)
        out: Dict[str, Any] = {}
        for col in _split_columns(columns):
            if col == "*":
                out.update(copy.deepcopy(row))
            elif "(" in col:
                name, inner = col.split("(", 1)
                name = name.strip()
                fk = (name[:-1] if name.endswith("s") else name) + "_id"
                target = next((r for r in self.tables.get(name, [])
                               if r.get("id") == row.get(fk) and self._visible(name, r)), None)
                out[name] = self._project(name, target, inner[:-1]) if target else None
            else:
                out[col] = copy.deepcopy(row.get(col))
        return out

    def query(self, table: str, filters: Sequence[Filter] = (), order: Optional[Order] = None,
              single: bool = False, columns: str = "*") -> Any:
        self.calls.append(("query", table, tuple(filters)))
        with self._lock:
            rows = [r for r in self.tables.get(table, [])
                    if self._visible(table, r) and all(f.matches(r) for f in filters)]
            if order is not None:
                rows.sort(key=lambda r: str(r.get(order.column) or ""), reverse=order.descending)
            rows = [self._project(table, r, columns) for r in rows]
        if single:
            if len(rows) != 1:
                raise RemoteError(NOT_SINGLE, 406)
            return rows[0]
        return rows

    def insert(self, table: str, record: Dict[str, Any]) -> Dict[str, Any]:
        self.calls.append(("insert", table, dict(record)))
        self._check_owner(table, record)
        row = dict(DEFAULTS.get(table, {}))
        row.update(record)
        row.setdefault("id", str(uuid.uuid4()))
        row.setdefault("created_at", _now())
        with self._lock:
            self.tables.setdefault(table, []).append(row)
        self.feed.publish(ChangeEvent(type="INSERT", table=table, record=copy.deepcopy(row)))
        return copy.deepcopy(row)

    def update(self, table: str, patch: Dict[str, Any], match: Dict[str, Any]) -> None:
        self.calls.append(("update", table, dict(patch), dict(match)))
        filters = [Filter.eq(k, v) for k, v in match.items()]
        changed = []
        if not (self.service_role or table in USER_UPDATABLE):
            # no update policy: the store matches zero rows
            return
        with self._lock:
            for row in self.tables.get(table, []):
                if self._visible(table, row) and all(f.matches(row) for f in filters):
                    old = copy.deepcopy(row)
                    row.update(patch)
                    changed.append((old, copy.deepcopy(row)))
        for old, new in changed:
            self.feed.publish(ChangeEvent(type="UPDATE", table=table, record=new, old_record=old))

    def seed(self, table: str, rows: Sequence[Dict[str, Any]]) -> None:
        """Load rows directly, bypassing access rules (fixtures / sample data)."""
        with self._lock:
            self.tables.setdefault(table, []).extend(copy.deepcopy(list(rows)))

    # ---------- realtime ----------
    def subscribe(self, channel: str, table: str, callback: Callable[[ChangeEvent], None],
                  event: str = "*", row_filter: Optional[RowFilter] = None) -> Subscription:
        return self.feed.subscribe(channel, table, callback, event=event, row_filter=row_filter)

    def unsubscribe(self, sub: Subscription) -> None:
        self.feed.unsubscribe(sub)

    # ---------- storage ----------
    def public_url(self, bucket: str, path: str) -> Optional[str]:
        path = (path or "").lstrip("/")
        if not bucket or not path:
            return None
        return f"memory://storage/{bucket}/{path}"

    # ---------- auth ----------
    def sign_up(self, email: str, password: str, full_name: str = "") -> Identity:
        email = email.strip().lower()
        if email in self.users:
            existing = self.users[email]["identity"]
            return Identity(id=existing.id, email=email, identities=[])
        identity = Identity(id=str(uuid.uuid4()), email=email,
                            user_metadata={"full_name": full_name},
                            identities=[{"provider": "email"}])
        self.users[email] = {"password": password, "identity": identity}
        # profile row normally created by a database trigger on sign-up
        self.seed("profiles", [{"id": identity.id, "full_name": full_name or None, "email": email,
                                "role": "user", "created_at": _now()}])
        return identity

    def sign_in(self, email: str, password: str) -> Session:
        user = self.users.get(email.strip().lower())
        if not user or user["password"] != password:
            raise RemoteError("Invalid login credentials", 400)
        token = uuid.uuid4().hex
        self.tokens[token] = user["identity"]
        return Session(access_token=token, user=user["identity"])

    def sign_out(self) -> None:
        if self.access_token:
            self.tokens.pop(self.access_token, None)

    def get_user(self, access_token: str) -> Identity:
        identity = self.tokens.get(access_token)
        if identity is None:
            raise RemoteError("invalid JWT: unable to parse or verify signature", 401)
        return identity


class MockCheckout:
    """Checkout stand-in: every payment succeeds unless its reference was declined."""

    def __init__(self, callback_url: str = "/bookings/{booking_id}/payment"):
        self.callback_url = callback_url
        self.initialized: List[Checkout] = []
        self.declined: Set[str] = set()

    def initialize(self, email: str, amount: float, reference: str,
                   callback_url: Optional[str] = None) -> Checkout:
        if amount <= 0:
            raise RemoteError("Checkout amount must be greater than zero", 400)
        url = (callback_url or self.callback_url).format(booking_id=reference)
        checkout = Checkout(reference=reference, amount=amount,
                            authorization_url=f"{url}?reference={reference}")
        self.initialized.append(checkout)
        return checkout

    def verify(self, reference: str) -> Transaction:
        opened = next((c for c in self.initialized if c.reference == reference), None)
        if opened is None:
            raise RemoteError("Transaction reference not found", 400)
        status = "failed" if reference in self.declined else "success"
        return Transaction(reference=reference, status=status, amount=opened.amount)


def _listing(id: str, title: str, category: str, price: Optional[float], type: str, created_at: str,
             status: str = "published", **extra) -> Dict[str, Any]:
    row = {
        "id": id,
        "title": title,
        "description": extra.pop("description", None),
        "category": category,
        "price": price,
        "rating": extra.pop("rating", None),
        "location": extra.pop("location", None),
        "type": type,
        "availability": extra.pop("availability", {"booked_dates": []}),
        "images": extra.pop("images", []),
        "features": extra.pop("features", {}),
        "amenities": extra.pop("amenities", {}),
        "itinerary": extra.pop("itinerary", {}),
        "created_at": created_at,
        "status": status,
    }
    row.update(extra)
    return row


MOCK_LISTINGS: List[Dict[str, Any]] = [
    _listing("tour-mara-001", "Maasai Mara Big Five Safari (Mock)", "tour", 45000, "Safari",
             "2024-05-01T08:00:00+00:00",
             description="Three days of game drives across the Mara with sunrise balloon option.",
             rating=4.9, location="Narok, Kenya", images=["tours/mara-1.jpg", "tours/mara-2.jpg"],
             itinerary={"1": "Nairobi to Mara, evening game drive", "2": "Full day in the reserve",
                        "3": "Morning drive, return to Nairobi"}),
    _listing("tour-kili-002", "Kilimanjaro Machame Route (Mock)", "tour", 180000, "Trekking",
             "2024-04-12T08:00:00+00:00",
             description="Seven-day guided climb with porters and park fees included.",
             rating=4.8, location="Moshi, Tanzania", images=[]),
    _listing("tour-lamu-003", "Lamu Old Town Walk (Mock)", "tour", 3500, "City Walk",
             "2024-03-02T08:00:00+00:00", description="Swahili architecture and dhow harbour.",
             rating=4.6, location="Lamu, Kenya", status="Published"),
    _listing("stay-diani-101", "Diani Beach Cottage (Mock)", "stay", 12000, "Cottage",
             "2024-05-10T08:00:00+00:00",
             description="Two-bedroom cottage a short walk from the beach.",
             rating=4.7, location="Diani, Kenya",
             availability={"booked_dates": ["2024-12-24", "2024-12-25", "2024-12-31"]},
             images=["stays/diani-1.jpg", "https://example.com/stays/diani-2.jpg"],
             amenities={"wifi": True, "pool": True}),
    _listing("vol-amboseli-201", "Elephant Conservation Volunteer (Mock)", "volunteer", None, "Conservation",
             "2024-02-20T08:00:00+00:00",
             description="Support research teams tracking elephant herds.",
             location="Amboseli, Kenya", features={"min_weeks": 2}),
    _listing("tour-draft-900", "Unreleased Safari Package (Mock)", "tour", 99000, "Safari",
             "2024-06-01T08:00:00+00:00", status="draft"),
]
