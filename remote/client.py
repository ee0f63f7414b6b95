from __future__ import annotations

"""
Hosted backend client (Supabase-style REST layout).

- Data:    {url}/rest/v1/{table}        (PostgREST)
- Auth:    {url}/auth/v1/...            (GoTrue)
- Storage: {url}/storage/v1/object/public/{bucket}/{path}

Realtime notifications are not read from a socket here: the database posts
webhooks to the application, which publishes them on the shared ChangeFeed.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Sequence
from urllib.parse import quote

import requests
from pydantic import BaseModel, Field

from .query import Filter, Order, RowFilter
from .realtime import ChangeEvent, ChangeFeed, Subscription

logger = logging.getLogger(__name__)

SINGLE_OBJECT = "application/vnd.pgrst.object+json"


class RemoteError(Exception):
    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status = status


class Identity(BaseModel):
    id: str
    email: Optional[str] = None
    user_metadata: Dict[str, Any] = Field(default_factory=dict)
    identities: Optional[List[Dict[str, Any]]] = None


class Session(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    user: Identity


def _error_message(r: requests.Response) -> str:
    try:
        body = r.json()
    except ValueError:
        return r.text or f"Request failed with status {r.status_code}"
    if isinstance(body, dict):
        for key in ("message", "msg", "error_description", "error"):
            if body.get(key):
                return str(body[key])
    return f"Request failed with status {r.status_code}"


class SupabaseClient:
    def __init__(self, url: str, anon_key: str, feed: Optional[ChangeFeed] = None,
                 access_token: Optional[str] = None, timeout: float = 30):
        self.url = url.rstrip("/")
        self.anon_key = anon_key
        self.feed = feed or ChangeFeed()
        self.access_token = access_token
        self.timeout = timeout

    def scoped(self, access_token: Optional[str]) -> "SupabaseClient":
        return SupabaseClient(self.url, self.anon_key, feed=self.feed,
                              access_token=access_token, timeout=self.timeout)

    def service(self, key: str) -> "SupabaseClient":
        """Client authenticated with the service-role key; bypasses row-level security."""
        return SupabaseClient(self.url, key, feed=self.feed, timeout=self.timeout)

    # ---------- transport ----------
    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {self.access_token or self.anon_key}",
            "Content-Type": "application/json",
        }
        if extra:
            headers.update(extra)
        return headers

    def _request(self, method: str, path: str, params: Any = None, payload: Any = None,
                 headers: Optional[Dict[str, str]] = None) -> Any:
        try:
            r = requests.request(method, f"{self.url}{path}", params=params, json=payload,
                                 headers=self._headers(headers), timeout=self.timeout)
        except requests.RequestException as e:
            raise RemoteError(str(e)) from e
        if r.status_code >= 400:
            raise RemoteError(_error_message(r), r.status_code)
        if r.status_code == 204 or not r.content:
            return None
        return r.json()

    # ---------- data ----------
    def query(self, table: str, filters: Sequence[Filter] = (), order: Optional[Order] = None,
              single: bool = False, columns: str = "*") -> Any:
        params = [("select", columns)]
        params.extend(f.to_param() for f in filters)
        if order is not None:
            params.append(order.to_param())
        headers = {"Accept": SINGLE_OBJECT} if single else None
        rows = self._request("GET", f"/rest/v1/{table}", params=params, headers=headers)
        if single:
            return rows
        return rows or []

    def insert(self, table: str, record: Dict[str, Any]) -> Dict[str, Any]:
        headers = {"Prefer": "return=representation", "Accept": SINGLE_OBJECT}
        return self._request("POST", f"/rest/v1/{table}", payload=record, headers=headers)

    def update(self, table: str, patch: Dict[str, Any], match: Dict[str, Any]) -> None:
        params = [Filter.eq(k, v).to_param() for k, v in match.items()]
        self._request("PATCH", f"/rest/v1/{table}", params=params, payload=patch,
                      headers={"Prefer": "return=minimal"})

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
        return f"{self.url}/storage/v1/object/public/{bucket}/{quote(path)}"

    # ---------- auth ----------
    def sign_up(self, email: str, password: str, full_name: str = "") -> Identity:
        body = self._request("POST", "/auth/v1/signup", payload={
            "email": email,
            "password": password,
            "data": {"full_name": full_name},
        })
        user = body.get("user", body) if isinstance(body, dict) else body
        return Identity(**user)

    def sign_in(self, email: str, password: str) -> Session:
        body = self._request("POST", "/auth/v1/token", params={"grant_type": "password"},
                             payload={"email": email, "password": password})
        return Session(**body)

    def sign_out(self) -> None:
        if self.access_token:
            self._request("POST", "/auth/v1/logout")

    def get_user(self, access_token: str) -> Identity:
        body = self._request("GET", "/auth/v1/user",
                             headers={"Authorization": f"Bearer {access_token}"})
        return Identity(**body)
