from __future__ import annotations

"""
Paystack checkout (hosted payment page).

Docs:
- Initialize: https://paystack.com/docs/api/transaction/#initialize
- Verify:     https://paystack.com/docs/api/transaction/#verify

Amounts are passed in major units (KES) and sent in the smallest currency unit.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import requests

from .client import RemoteError

logger = logging.getLogger(__name__)


@dataclass
class Checkout:
    reference: str
    amount: float
    authorization_url: Optional[str] = None
    access_code: Optional[str] = None


@dataclass
class Transaction:
    reference: str
    status: str  # success | failed | abandoned | ...
    amount: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.status == "success"


def to_minor_units(amount: float) -> int:
    return int(round(amount * 100))


class PaystackCheckout:
    def __init__(self, secret_key: str, currency: str = "KES", timeout: float = 30):
        self.secret_key = secret_key
        self.currency = currency
        self.timeout = timeout
        self.base_url = "https://api.paystack.co"

    def initialize(self, email: str, amount: float, reference: str,
                   callback_url: Optional[str] = None) -> Checkout:
        if to_minor_units(amount) <= 0:
            raise RemoteError("Checkout amount must be greater than zero", 400)
        payload = {
            "email": email,
            "amount": to_minor_units(amount),
            "reference": reference,
            "currency": self.currency,
        }
        if callback_url:
            payload["callback_url"] = callback_url
        data = self._call("POST", "/transaction/initialize", payload)
        return Checkout(
            reference=data.get("reference", reference),
            amount=amount,
            authorization_url=data.get("authorization_url"),
            access_code=data.get("access_code"),
        )

    def verify(self, reference: str) -> Transaction:
        data = self._call("GET", f"/transaction/verify/{reference}")
        return Transaction(
            reference=data.get("reference", reference),
            status=data.get("status", "failed"),
            amount=float(data.get("amount", 0)) / 100,
        )

    def _call(self, method: str, path: str, payload: Optional[dict] = None) -> dict:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.secret_key}",
        }
        try:
            r = requests.request(method, f"{self.base_url}{path}", json=payload,
                                 headers=headers, timeout=self.timeout)
            body = r.json()
        except (requests.RequestException, ValueError) as e:
            raise RemoteError(f"Payment provider unavailable: {e}") from e
        if r.status_code >= 400 or not body.get("status"):
            logger.warning("Paystack %s %s failed: %s", method, path, body.get("message"))
            raise RemoteError(body.get("message") or "Payment request failed", r.status_code)
        return body.get("data") or {}
