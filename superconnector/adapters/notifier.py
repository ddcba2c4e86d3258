"""
Notifier - Delivers captured session data to the team inbox via EmailJS.
"""

from __future__ import annotations

from typing import Any, Mapping

import httpx

from superconnector.core.config import settings
from superconnector.core.logging_config import get_logger


logger = get_logger("adapters.notifier")

EMAILJS_SEND_URL = "https://api.emailjs.com/api/v1.0/email/send"


class NotificationError(Exception):
    """Delivery to the downstream recipient failed."""


def build_template_params(record: Mapping[str, Any]) -> dict[str, Any]:
    """Map a session record onto the EmailJS template variables."""
    params = {
        "user_type": record.get("role", ""),
        "need": record.get("goal", ""),
        "name": record.get("name", ""),
        "email": record.get("email", ""),
        "phone": record.get("phone", ""),
        "linkedin": record.get("linkedin", ""),
        "website": record.get("website", ""),
        "industry": record.get("industry", ""),
        "traction": record.get("traction", ""),
        "stage": record.get("stage", ""),
        "pitch": record.get("pitch", "") or record.get("hiring_for", ""),
        "notes": record.get("thesis", "") or record.get("interest", ""),
        "premium": "yes" if record.get("premium_unlocked") else "no",
        "matches": ", ".join(record.get("matches", []) or []),
        "submitted_at": record.get("submitted_at", ""),
    }
    return params


class Notifier:
    """
    EmailJS delivery adapter.

    notify() raises NotificationError on failure; callers decide whether to
    retry. Delivery is idempotent from the visitor's point of view.
    """

    def __init__(
        self,
        service_id: str | None = None,
        template_id: str | None = None,
        public_key: str | None = None,
        client: httpx.AsyncClient | None = None,
        timeout_s: float | None = None,
    ) -> None:
        self._service_id = service_id or settings.emailjs_service_id
        self._template_id = template_id or settings.emailjs_template_id
        self._public_key = public_key or settings.emailjs_public_key
        self._timeout_s = timeout_s or settings.adapters.notify_timeout_s
        self._client = client
        self._owns_client = client is None

    @property
    def configured(self) -> bool:
        return bool(self._service_id and self._template_id and self._public_key)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    async def notify(self, record: Mapping[str, Any]) -> None:
        """
        Send one record.

        Args:
            record: Captured answers plus session metadata.

        Raises:
            NotificationError: On transport failure or a non-2xx response.
        """
        if not self.configured:
            logger.warning("EmailJS is not configured, dropping notification")
            return

        payload = {
            "service_id": self._service_id,
            "template_id": self._template_id,
            "user_id": self._public_key,
            "template_params": build_template_params(record),
        }

        try:
            response = await self._get_client().post(
                EMAILJS_SEND_URL,
                json=payload,
                timeout=self._timeout_s,
            )
        except httpx.HTTPError as e:
            raise NotificationError(f"EmailJS request failed: {e}") from e

        if not response.is_success:
            raise NotificationError(f"EmailJS returned {response.status_code}: {response.text[:200]}")

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
