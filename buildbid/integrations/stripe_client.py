"""Stripe payment integration client.

Uses real Stripe API when a valid key is configured, otherwise
falls back to mock payment responses for development and tests.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import time
import uuid
from datetime import datetime, timezone
from typing import Any

import httpx

from buildbid.common.exceptions import UpstreamError
from buildbid.common.logging import get_logger
from buildbid.config import settings

GENERIC_DECLINE_MESSAGE = "Payment could not be completed. Please try again."


def _is_mock() -> bool:
    key = getattr(settings, "STRIPE_SECRET_KEY", "mock_stripe_key")
    return key.startswith("mock_")


def _error_message(resp: httpx.Response) -> str:
    """Pull Stripe's human-readable message out of an error response."""
    try:
        return resp.json().get("error", {}).get("message") or GENERIC_DECLINE_MESSAGE
    except ValueError:
        return GENERIC_DECLINE_MESSAGE


class StripeClient:
    """Payment client with real Stripe API and mock fallback."""

    BASE_URL = "https://api.stripe.com/v1"

    def __init__(self) -> None:
        self.logger = get_logger("integrations.stripe")

    def _headers(self) -> dict[str, str]:
        key = getattr(settings, "STRIPE_SECRET_KEY", "")
        return {"Authorization": f"Bearer {key}"}

    async def _request(self, method: str, path: str, data: dict[str, Any] | None = None) -> dict[str, Any]:
        try:
            async with httpx.AsyncClient(timeout=30) as client:
                resp = await client.request(
                    method, f"{self.BASE_URL}{path}", headers=self._headers(), data=data
                )
        except httpx.HTTPError as e:
            self.logger.error("Stripe %s %s failed: %s", method, path, e)
            raise UpstreamError("stripe", GENERIC_DECLINE_MESSAGE) from e

        if resp.status_code >= 400:
            message = _error_message(resp)
            self.logger.warning("Stripe %s %s returned %d: %s", method, path, resp.status_code, message)
            raise UpstreamError("stripe", message)
        return resp.json()

    async def health_check(self) -> bool:
        if _is_mock():
            self.logger.info("Stripe health check: OK (mock)")
            return True
        try:
            async with httpx.AsyncClient(timeout=10) as client:
                resp = await client.get(
                    f"{self.BASE_URL}/balance",
                    headers=self._headers(),
                )
                return resp.status_code == 200
        except httpx.HTTPError as e:
            self.logger.error("Stripe health check failed: %s", e)
            return False

    # ------------------------------------------------------------------
    # Customers
    # ------------------------------------------------------------------

    async def create_customer(
        self, email: str, name: str, metadata: dict[str, str] | None = None
    ) -> dict[str, Any]:
        if not _is_mock():
            payload: dict[str, Any] = {"email": email, "name": name}
            for k, v in (metadata or {}).items():
                payload[f"metadata[{k}]"] = v
            data = await self._request("POST", "/customers", payload)
            self.logger.info("Created Stripe customer: %s", data["id"])
            return data

        customer_id = f"cus_{uuid.uuid4().hex[:14]}"
        self.logger.info("Mock Stripe customer created: %s", customer_id)
        return {
            "id": customer_id,
            "object": "customer",
            "email": email,
            "name": name,
            "metadata": metadata or {},
            "created": int(datetime.now(timezone.utc).timestamp()),
        }

    # ------------------------------------------------------------------
    # Payment Intents
    # ------------------------------------------------------------------

    async def create_payment_intent(
        self,
        amount_cents: int,
        currency: str = "usd",
        customer_id: str | None = None,
        description: str = "",
        metadata: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        if not _is_mock():
            payload: dict[str, Any] = {
                "amount": amount_cents,
                "currency": currency,
                "description": description,
                "automatic_payment_methods[enabled]": "true",
            }
            if customer_id:
                payload["customer"] = customer_id
            for k, v in (metadata or {}).items():
                payload[f"metadata[{k}]"] = v
            data = await self._request("POST", "/payment_intents", payload)
            self.logger.info("Created payment intent: %s ($%.2f)", data["id"], amount_cents / 100)
            return data

        pi_id = f"pi_{uuid.uuid4().hex[:24]}"
        client_secret = f"{pi_id}_secret_{uuid.uuid4().hex[:12]}"
        self.logger.info("Mock payment intent: %s ($%.2f)", pi_id, amount_cents / 100)
        return {
            "id": pi_id,
            "object": "payment_intent",
            "amount": amount_cents,
            "currency": currency,
            "status": "requires_payment_method",
            "client_secret": client_secret,
            "customer": customer_id,
            "description": description,
            "metadata": metadata or {},
            "created": int(datetime.now(timezone.utc).timestamp()),
        }

    async def retrieve_payment_intent(self, payment_intent_id: str) -> dict[str, Any]:
        if not _is_mock():
            return await self._request("GET", f"/payment_intents/{payment_intent_id}")

        # Mock intents are treated as confirmed by the client SDK
        self.logger.info("Mock payment intent retrieved: %s", payment_intent_id)
        return {
            "id": payment_intent_id,
            "object": "payment_intent",
            "status": "succeeded",
            "last_payment_error": None,
        }

    # ------------------------------------------------------------------
    # Webhook signature verification
    # ------------------------------------------------------------------

    def verify_webhook_signature(self, payload: bytes, sig_header: str) -> dict[str, Any]:
        """Verify a Stripe webhook signature. Returns the parsed event."""
        webhook_secret = getattr(settings, "STRIPE_WEBHOOK_SECRET", "")

        if _is_mock() or not webhook_secret:
            return json.loads(payload)

        try:
            parts = dict(item.split("=", 1) for item in sig_header.split(",") if "=" in item)
        except ValueError as e:
            raise ValueError("Malformed Stripe-Signature header") from e
        timestamp = parts.get("t", "")
        signature = parts.get("v1", "")
        if not timestamp or not signature:
            raise ValueError("Malformed Stripe-Signature header")

        signed_payload = f"{timestamp}.{payload.decode()}"
        expected = hmac.new(
            webhook_secret.encode(), signed_payload.encode(), hashlib.sha256
        ).hexdigest()

        if not hmac.compare_digest(expected, signature):
            raise ValueError("Invalid Stripe webhook signature")

        if abs(time.time() - int(timestamp)) > settings.STRIPE_WEBHOOK_TOLERANCE_SECONDS:
            raise ValueError("Stripe webhook timestamp too old")

        return json.loads(payload)
