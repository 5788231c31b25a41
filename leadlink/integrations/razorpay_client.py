"""Razorpay payment gateway client.

Uses the real Razorpay Orders API when a live key is configured, otherwise
fabricates order responses for development and tests.
"""

from __future__ import annotations

import hashlib
import hmac
import uuid
from datetime import datetime, timezone
from typing import Any

import httpx

from leadlink.config import settings
from leadlink.integrations.base import BaseIntegration


def _is_mock() -> bool:
    return settings.RAZORPAY_KEY_ID.startswith("mock_")


def sign_payment(order_id: str, payment_id: str, secret: str | None = None) -> str:
    """HMAC-SHA256 of ``order_id|payment_id``, hex encoded, as Razorpay signs checkouts."""
    key = secret if secret is not None else settings.RAZORPAY_KEY_SECRET
    body = f"{order_id}|{payment_id}"
    return hmac.new(key.encode(), body.encode(), hashlib.sha256).hexdigest()


class RazorpayClient(BaseIntegration):
    """Orders client with real Razorpay API and mock fallback."""

    BASE_URL = "https://api.razorpay.com/v1"

    def __init__(self) -> None:
        super().__init__("razorpay")

    @property
    def public_key(self) -> str:
        return settings.RAZORPAY_KEY_ID

    def _auth(self) -> tuple[str, str]:
        return (settings.RAZORPAY_KEY_ID, settings.RAZORPAY_KEY_SECRET)

    async def health_check(self) -> bool:
        if _is_mock():
            self.logger.info("Razorpay health check: OK (mock)")
            return True
        try:
            async with httpx.AsyncClient(timeout=10) as client:
                resp = await client.get(
                    f"{self.BASE_URL}/orders", auth=self._auth(), params={"count": 1}
                )
                return resp.status_code == 200
        except Exception as e:
            self.logger.error("Razorpay health check failed: %s", e)
            return False

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    async def create_order(
        self,
        amount_minor: int,
        currency: str,
        receipt: str,
        notes: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        if not _is_mock():
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(
                    f"{self.BASE_URL}/orders",
                    auth=self._auth(),
                    json={
                        "amount": amount_minor,
                        "currency": currency,
                        "receipt": receipt,
                        "notes": notes or {},
                    },
                )
                resp.raise_for_status()
                data = resp.json()
                self.logger.info("Created Razorpay order: %s (%d %s)", data["id"], amount_minor, currency)
                return data

        order_id = f"order_{uuid.uuid4().hex[:14]}"
        self.logger.info("Mock Razorpay order: %s (%d %s)", order_id, amount_minor, currency)
        return {
            "id": order_id,
            "entity": "order",
            "amount": amount_minor,
            "amount_paid": 0,
            "amount_due": amount_minor,
            "currency": currency,
            "receipt": receipt,
            "status": "created",
            "attempts": 0,
            "notes": notes or {},
            "created_at": int(datetime.now(timezone.utc).timestamp()),
        }

    # ------------------------------------------------------------------
    # Checkout signature verification
    # ------------------------------------------------------------------

    def verify_payment_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        expected = sign_payment(order_id, payment_id)
        return hmac.compare_digest(expected.encode(), (signature or "").encode())
