"""
Tests for the external service adapters.

Tests verify:
- Industry classification parsing and fallback
- Payment outcomes for approvals, declines and transport errors
- EmailJS payload mapping and delivery failures
"""

from __future__ import annotations

import json
from types import SimpleNamespace

import httpx
import pytest

from superconnector.adapters.content_analyzer import ContentAnalyzer, normalize_url
from superconnector.adapters.notifier import (
    EMAILJS_SEND_URL,
    NotificationError,
    Notifier,
    build_template_params,
)
from superconnector.adapters.payment import ChargeOutcome, PaymentGateway
from superconnector.core.config import Settings, settings
from superconnector.orchestration.dialogue import FALLBACK_INDUSTRY
from superconnector.orchestration.orchestrator import Adapters


PAGE = """
<html><head>
<title>Acme Compute</title>
<meta name="description" content="Serverless GPUs for model training">
</head><body></body></html>
"""


class FakeCompletions:
    def __init__(self, content: str | None = None, error: Exception | None = None) -> None:
        self.content = content
        self.error = error
        self.calls: list[dict] = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def fake_groq(completions: FakeCompletions) -> SimpleNamespace:
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def page_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, text=PAGE)


# ============================================================================
# ContentAnalyzer
# ============================================================================

class TestContentAnalyzer:
    """Tests for website industry classification."""

    @pytest.mark.asyncio
    async def test_classifies_with_page_snippet(self) -> None:
        completions = FakeCompletions('```json\n{"industry": "GPU Cloud"}\n```')
        analyzer = ContentAnalyzer(client=fake_groq(completions), http_client=mock_client(page_handler))

        label = await analyzer.analyze("acme.ai")

        assert label == "GPU Cloud"
        user_message = completions.calls[0]["messages"][1]["content"]
        assert "URL: https://acme.ai" in user_message
        assert "Acme Compute | Serverless GPUs for model training" in user_message
        assert completions.calls[0]["temperature"] == 0.0

    @pytest.mark.asyncio
    async def test_unreachable_page_still_classifies(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        completions = FakeCompletions("Fintech")
        analyzer = ContentAnalyzer(client=fake_groq(completions), http_client=mock_client(handler))

        assert await analyzer.analyze("https://acme.ai") == "Fintech"
        assert "Page:" not in completions.calls[0]["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_page_fetch_uses_configured_timeout(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return page_handler(request)

        analyzer = ContentAnalyzer(
            client=fake_groq(FakeCompletions("Fintech")),
            http_client=mock_client(handler),
            fetch_timeout_s=0.5,
        )

        await analyzer.analyze("acme.ai")

        assert seen[0].extensions["timeout"]["read"] == 0.5

    @pytest.mark.asyncio
    async def test_model_error_returns_fallback(self) -> None:
        completions = FakeCompletions(error=RuntimeError("rate limited"))
        analyzer = ContentAnalyzer(client=fake_groq(completions), http_client=mock_client(page_handler))

        assert await analyzer.analyze("acme.ai") == FALLBACK_INDUSTRY

    @pytest.mark.asyncio
    async def test_no_api_key_returns_fallback(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(settings, "groq_api_key", None)
        analyzer = ContentAnalyzer()

        assert await analyzer.analyze("acme.ai") == FALLBACK_INDUSTRY

    @pytest.mark.asyncio
    async def test_empty_model_output_returns_fallback(self) -> None:
        analyzer = ContentAnalyzer(client=fake_groq(FakeCompletions("")), http_client=mock_client(page_handler))

        assert await analyzer.analyze("acme.ai") == FALLBACK_INDUSTRY

    @pytest.mark.parametrize("raw,expected", [
        ('{"industry": "Climate Tech"}', "Climate Tech"),
        ('"Developer Tools."', "Developer Tools"),
        ("unknown", FALLBACK_INDUSTRY),
        ('{"industry": ""}', FALLBACK_INDUSTRY),
        ("{not json", FALLBACK_INDUSTRY),
        ("AI Powered Supply Chain Optimization For Retail", "AI Powered Supply Chain Optimization"),
    ])
    def test_parse_response(self, raw: str, expected: str) -> None:
        analyzer = ContentAnalyzer(client=fake_groq(FakeCompletions()))

        assert analyzer._parse_response(raw) == expected

    def test_normalize_url(self) -> None:
        assert normalize_url("acme.ai") == "https://acme.ai"
        assert normalize_url("  http://acme.ai ") == "http://acme.ai"
        assert normalize_url("") == ""


# ============================================================================
# PaymentGateway
# ============================================================================

class TestPaymentGateway:
    """Tests for charge outcomes."""

    @pytest.mark.asyncio
    async def test_demo_mode_approves(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(settings, "payment_api_url", None)
        gateway = PaymentGateway()

        outcome = await gateway.charge(4900, "usd", "k1", "premium-intros")

        assert gateway.demo_mode
        assert outcome.approved
        assert outcome.charge_id.startswith("demo_")

    @pytest.mark.asyncio
    async def test_invalid_amount_declined(self) -> None:
        gateway = PaymentGateway(api_url="https://pay.test")

        outcome = await gateway.charge(0)

        assert not outcome.approved
        assert outcome.reason == "invalid amount"

    @pytest.mark.asyncio
    async def test_approved_charge_sends_idempotency_key(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"id": "ch_123", "status": "succeeded"})

        gateway = PaymentGateway(api_url="https://pay.test/", api_key="sk-test", client=mock_client(handler))

        outcome = await gateway.charge(4900, "usd", "visitor-1:0:premium-intros", "premium-intros")

        assert outcome == ChargeOutcome.approve("ch_123")
        request = seen[0]
        assert str(request.url) == "https://pay.test/charges"
        assert request.headers["Idempotency-Key"] == "visitor-1:0:premium-intros"
        assert request.headers["Authorization"] == "Bearer sk-test"
        body = json.loads(request.content)
        assert body["amount"] == 4900
        assert body["metadata"] == {"offer_id": "premium-intros"}

    @pytest.mark.asyncio
    async def test_charge_uses_configured_timeout(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"id": "ch_123", "status": "succeeded"})

        gateway = PaymentGateway(
            api_url="https://pay.test", api_key="sk-test", client=mock_client(handler), timeout_s=1.5,
        )

        await gateway.charge(4900, "usd", "visitor-1:0:premium-intros", "premium-intros")

        assert seen[0].extensions["timeout"]["read"] == 1.5

    @pytest.mark.parametrize("status,body,reason", [
        (402, {"status": "declined", "decline_reason": "insufficient funds"}, "insufficient funds"),
        (400, {"error": {"message": "card expired"}}, "card expired"),
        (200, {"status": "pending"}, "HTTP 200"),
    ])
    @pytest.mark.asyncio
    async def test_declines(self, status: int, body: dict, reason: str) -> None:
        gateway = PaymentGateway(
            api_url="https://pay.test",
            client=mock_client(lambda request: httpx.Response(status, json=body)),
        )

        outcome = await gateway.charge(4900)

        assert not outcome.approved
        assert outcome.reason == reason

    @pytest.mark.asyncio
    async def test_non_json_error(self) -> None:
        gateway = PaymentGateway(
            api_url="https://pay.test",
            client=mock_client(lambda request: httpx.Response(500, text="oops")),
        )

        outcome = await gateway.charge(4900)

        assert outcome.reason == "HTTP 500"

    @pytest.mark.asyncio
    async def test_transport_error_declined(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        gateway = PaymentGateway(api_url="https://pay.test", client=mock_client(handler))

        outcome = await gateway.charge(4900)

        assert not outcome.approved
        assert outcome.reason == "payment provider unreachable"

    def test_outcome_to_dict(self) -> None:
        assert ChargeOutcome.decline("").to_dict() == {
            "status": "declined",
            "reason": "declined",
            "charge_id": None,
        }
        assert ChargeOutcome.approve("ch_1").to_dict()["status"] == "approved"


# ============================================================================
# Notifier
# ============================================================================

RECORD = {
    "session_id": "visitor-1",
    "role": "founder",
    "goal": "fundraise",
    "website": "acme.ai",
    "industry": "GPU Cloud",
    "traction": "$50k MRR",
    "stage": "Seed",
    "name": "Sam Altman",
    "email": "sam@example.com",
    "phone": "+1 415 555 0100",
    "linkedin": "linkedin.com/in/sam",
    "premium_unlocked": True,
    "matches": ["i1", "i3"],
    "submitted_at": "2024-01-01T00:00:00+00:00",
}


class TestNotifier:
    """Tests for EmailJS delivery."""

    def test_template_params(self) -> None:
        params = build_template_params(RECORD)

        assert params["user_type"] == "founder"
        assert params["need"] == "fundraise"
        assert params["premium"] == "yes"
        assert params["matches"] == "i1, i3"
        assert params["phone"] == "+1 415 555 0100"
        assert params["linkedin"] == "linkedin.com/in/sam"
        assert params["submitted_at"] == RECORD["submitted_at"]

    def test_template_params_alternate_fields(self) -> None:
        params = build_template_params({"hiring_for": "ML engineers", "interest": "climate"})

        assert params["pitch"] == "ML engineers"
        assert params["notes"] == "climate"
        assert params["premium"] == "no"
        assert params["matches"] == ""

    @pytest.mark.asyncio
    async def test_unconfigured_drops_quietly(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(settings, "emailjs_service_id", None)
        calls: list[httpx.Request] = []
        notifier = Notifier(
            client=mock_client(lambda request: calls.append(request) or httpx.Response(200)),
        )

        await notifier.notify(RECORD)

        assert not notifier.configured
        assert calls == []

    @pytest.mark.asyncio
    async def test_delivers_payload(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, text="OK")

        notifier = Notifier("svc", "tpl", "pub", client=mock_client(handler))

        await notifier.notify(RECORD)

        assert str(seen[0].url) == EMAILJS_SEND_URL
        body = json.loads(seen[0].content)
        assert body["service_id"] == "svc"
        assert body["user_id"] == "pub"
        assert body["template_params"]["email"] == "sam@example.com"

    @pytest.mark.asyncio
    async def test_delivery_uses_configured_timeout(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, text="OK")

        notifier = Notifier("svc", "tpl", "pub", client=mock_client(handler), timeout_s=2.5)

        await notifier.notify(RECORD)

        assert seen[0].extensions["timeout"]["read"] == 2.5

    @pytest.mark.asyncio
    async def test_error_status_raises(self) -> None:
        notifier = Notifier(
            "svc", "tpl", "pub",
            client=mock_client(lambda request: httpx.Response(400, text="bad template")),
        )

        with pytest.raises(NotificationError):
            await notifier.notify(RECORD)

    @pytest.mark.asyncio
    async def test_transport_error_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        notifier = Notifier("svc", "tpl", "pub", client=mock_client(handler))

        with pytest.raises(NotificationError):
            await notifier.notify(RECORD)


# ============================================================================
# Wiring
# ============================================================================

class TestAdapterWiring:
    """Tests for building adapters from an orchestrator's settings."""

    @pytest.mark.asyncio
    async def test_timeouts_come_from_given_settings(self) -> None:
        config = Settings(payment_api_url="https://pay.test", emailjs_service_id="svc")
        config.adapters.charge_timeout_s = 1.5
        config.adapters.notify_timeout_s = 2.5
        config.adapters.analyzer_model = "test-model"

        adapters = Adapters.from_settings(config)
        try:
            assert adapters.payment._timeout_s == 1.5
            assert adapters.payment._api_url == "https://pay.test"
            assert adapters.notifier._timeout_s == 2.5
            assert adapters.notifier._service_id == "svc"
            assert adapters.analyzer._model == "test-model"
        finally:
            await adapters.aclose()
