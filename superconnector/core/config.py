"""
Application configuration - Centralized settings and environment variables.

This module provides type-safe configuration with sensible defaults.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any


@dataclass
class PacingConfig:
    """Simulated typing latency for bot messages."""
    typing_delay_min_ms: int = 600
    typing_delay_max_ms: int = 1000
    continuation_delay_ms: int = 300


@dataclass
class AdapterConfig:
    """External service adapter configuration."""
    analyzer_model: str = "llama-3.3-70b-versatile"
    analyze_timeout_s: float = 8.0
    charge_timeout_s: float = 20.0
    notify_timeout_s: float = 10.0
    notify_max_attempts: int = 3
    notify_backoff_s: float = 0.5


@dataclass
class OfferConfig:
    """Premium upsell offer shown after the free matches."""
    offer_id: str = "premium-intros"
    price_cents: int = 4900
    currency: str = "usd"
    results_per_page: int = 3


@dataclass
class Settings:
    """
    Application settings.

    Loads from environment variables with sensible defaults.
    Does NOT fail if API keys are missing (allows import without env).
    """

    # API Keys (optional at import time)
    groq_api_key: str | None = field(default=None)
    payment_api_url: str | None = field(default=None)
    payment_api_key: str | None = field(default=None)
    emailjs_service_id: str | None = field(default=None)
    emailjs_template_id: str | None = field(default=None)
    emailjs_public_key: str | None = field(default=None)

    pacing: PacingConfig = field(default_factory=PacingConfig)
    adapters: AdapterConfig = field(default_factory=AdapterConfig)
    offer: OfferConfig = field(default_factory=OfferConfig)

    # Seed for results sampling and typing delays (None = nondeterministic)
    rng_seed: int | None = None

    log_level: str = "INFO"

    # API settings
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    debug: bool = False

    def __post_init__(self) -> None:
        """Load values from environment after initialization."""
        if self.groq_api_key is None:
            self.groq_api_key = os.getenv("GROQ_API_KEY")
        if self.payment_api_url is None:
            self.payment_api_url = os.getenv("PAYMENT_API_URL")
        if self.payment_api_key is None:
            self.payment_api_key = os.getenv("PAYMENT_API_KEY")
        if self.emailjs_service_id is None:
            self.emailjs_service_id = os.getenv("EMAILJS_SERVICE_ID")
        if self.emailjs_template_id is None:
            self.emailjs_template_id = os.getenv("EMAILJS_TEMPLATE_ID")
        if self.emailjs_public_key is None:
            self.emailjs_public_key = os.getenv("EMAILJS_PUBLIC_KEY")

        # Pacing overrides
        if value := os.getenv("TYPING_DELAY_MIN_MS"):
            self.pacing.typing_delay_min_ms = int(value)
        if value := os.getenv("TYPING_DELAY_MAX_MS"):
            self.pacing.typing_delay_max_ms = int(value)
        if value := os.getenv("CONTINUATION_DELAY_MS"):
            self.pacing.continuation_delay_ms = int(value)

        if value := os.getenv("ANALYZE_TIMEOUT_S"):
            self.adapters.analyze_timeout_s = float(value)
        if value := os.getenv("PREMIUM_PRICE_CENTS"):
            self.offer.price_cents = int(value)

        if self.rng_seed is None and (seed := os.getenv("RNG_SEED")):
            self.rng_seed = int(seed)

        if level := os.getenv("LOG_LEVEL"):
            self.log_level = level.upper()

        if port := os.getenv("API_PORT"):
            self.api_port = int(port)

        if host := os.getenv("API_HOST"):
            self.api_host = host

        if os.getenv("DEBUG", "").lower() in ("1", "true", "yes"):
            self.debug = True

        if self.pacing.typing_delay_min_ms > self.pacing.typing_delay_max_ms:
            raise ValueError("TYPING_DELAY_MIN_MS must not exceed TYPING_DELAY_MAX_MS")

    @property
    def has_api_key(self) -> bool:
        """Check if the analyzer API key is configured."""
        return bool(self.groq_api_key)

    @property
    def has_email_config(self) -> bool:
        """Check if EmailJS delivery is fully configured."""
        return all((
            self.emailjs_service_id,
            self.emailjs_template_id,
            self.emailjs_public_key,
        ))

    def require_api_key(self) -> str:
        """Get API key or raise error if not configured."""
        if not self.groq_api_key:
            raise ValueError("GROQ_API_KEY environment variable is required")
        return self.groq_api_key

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary (excludes sensitive data)."""
        return {
            "pacing": {
                "typing_delay_min_ms": self.pacing.typing_delay_min_ms,
                "typing_delay_max_ms": self.pacing.typing_delay_max_ms,
                "continuation_delay_ms": self.pacing.continuation_delay_ms,
            },
            "adapters": {
                "analyzer_model": self.adapters.analyzer_model,
                "analyze_timeout_s": self.adapters.analyze_timeout_s,
                "charge_timeout_s": self.adapters.charge_timeout_s,
                "notify_max_attempts": self.adapters.notify_max_attempts,
            },
            "offer": {
                "offer_id": self.offer.offer_id,
                "price_cents": self.offer.price_cents,
                "currency": self.offer.currency,
            },
            "api": {
                "host": self.api_host,
                "port": self.api_port,
                "debug": self.debug,
            },
            "has_api_key": self.has_api_key,
            "has_payment_endpoint": bool(self.payment_api_url),
            "has_email_config": self.has_email_config,
        }


# Global settings instance
settings = Settings()
