"""
PaymentGateway - Single charge attempt against the payment provider.

Declines, provider errors and transport errors all come back as a declined
ChargeOutcome; nothing here retries, so a charge is attempted at most once
per call.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from uuid import uuid4

import httpx

from superconnector.core.config import settings
from superconnector.core.logging_config import get_logger


logger = get_logger("adapters.payment")

APPROVED_STATUSES = ("approved", "succeeded", "paid")


@dataclass(frozen=True)
class ChargeOutcome:
    """Result of one charge attempt."""
    approved: bool
    reason: str = ""
    charge_id: str | None = None

    @classmethod
    def approve(cls, charge_id: str | None = None) -> "ChargeOutcome":
        return cls(approved=True, charge_id=charge_id)

    @classmethod
    def decline(cls, reason: str) -> "ChargeOutcome":
        return cls(approved=False, reason=reason or "declined")

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": "approved" if self.approved else "declined",
            "reason": self.reason,
            "charge_id": self.charge_id,
        }


class PaymentGateway:
    """
    HTTP client for the payment provider.

    Without a configured endpoint the gateway runs in demo mode and approves
    every charge, mirroring the product's showcase build.
    """

    def __init__(
        self,
        api_url: str | None = None,
        api_key: str | None = None,
        client: httpx.AsyncClient | None = None,
        timeout_s: float | None = None,
    ) -> None:
        self._api_url = (api_url or settings.payment_api_url or "").rstrip("/")
        self._api_key = api_key or settings.payment_api_key
        self._timeout_s = timeout_s or settings.adapters.charge_timeout_s
        self._client = client
        self._owns_client = client is None

    @property
    def demo_mode(self) -> bool:
        return not self._api_url

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    async def charge(
        self,
        amount_cents: int,
        currency: str = "usd",
        idempotency_key: str | None = None,
        offer_id: str | None = None,
    ) -> ChargeOutcome:
        """
        Attempt one charge.

        Args:
            amount_cents: Amount in minor units.
            currency: ISO currency code.
            idempotency_key: Sent to the provider so a replayed request
                cannot bill twice.
            offer_id: Offer being purchased, for the provider's metadata.

        Returns:
            ChargeOutcome; declined for any provider or transport failure.
        """
        if amount_cents <= 0:
            return ChargeOutcome.decline("invalid amount")

        if self.demo_mode:
            logger.info("Payment endpoint not configured, approving %s in demo mode", offer_id)
            return ChargeOutcome.approve(f"demo_{uuid4().hex[:12]}")

        headers = {"Idempotency-Key": idempotency_key or uuid4().hex}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        payload = {
            "amount": amount_cents,
            "currency": currency,
            "metadata": {"offer_id": offer_id},
        }

        try:
            response = await self._get_client().post(
                f"{self._api_url}/charges",
                json=payload,
                headers=headers,
                timeout=self._timeout_s,
            )
        except httpx.HTTPError as e:
            logger.warning("Charge request failed: %s", e)
            return ChargeOutcome.decline("payment provider unreachable")

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        if response.is_success and str(data.get("status", "")).lower() in APPROVED_STATUSES:
            return ChargeOutcome.approve(data.get("id"))

        reason = data.get("decline_reason") or data.get("error") or f"HTTP {response.status_code}"
        if isinstance(reason, dict):
            reason = reason.get("message") or "declined"
        logger.info("Charge declined: %s", reason)
        return ChargeOutcome.decline(str(reason))

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
