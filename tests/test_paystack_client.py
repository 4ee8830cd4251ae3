"""Tests for the Paystack client against a mocked transport."""

import hashlib
import hmac
import json
from decimal import Decimal

import httpx
import pytest

from estate_platform.domain.errors import UpstreamError
from estate_platform.services import paystack_client
from estate_platform.services.paystack_client import PaystackClient

SECRET = "sk_test_secret"


@pytest.fixture
def gateway(monkeypatch):
    """Route the client's HTTP calls to a handler the test installs."""
    state = {"handler": None, "requests": []}
    real_client = httpx.AsyncClient

    def _handler(request: httpx.Request) -> httpx.Response:
        state["requests"].append(request)
        return state["handler"](request)

    def _client(**kwargs):
        return real_client(transport=httpx.MockTransport(_handler), **kwargs)

    monkeypatch.setattr(paystack_client.httpx, "AsyncClient", _client)
    return state


class TestRequests:
    async def test_initialize_sends_kobo(self, gateway):
        gateway["handler"] = lambda req: httpx.Response(
            200, json={"status": True, "data": {"authorization_url": "https://checkout.test/abc", "reference": "ES1"}}
        )

        data = await PaystackClient(SECRET).initialize_payment(
            email="bola@test.com", amount=Decimal("5000"), reference="ES1", callback_url="http://client.test/cb"
        )

        assert data["authorization_url"] == "https://checkout.test/abc"
        sent = json.loads(gateway["requests"][0].content)
        assert sent["amount"] == 500000
        assert sent["callback_url"] == "http://client.test/cb"
        assert gateway["requests"][0].headers["Authorization"] == f"Bearer {SECRET}"

    async def test_verify_normalizes_result(self, gateway):
        gateway["handler"] = lambda req: httpx.Response(
            200,
            json={
                "status": True,
                "data": {
                    "reference": "ES1",
                    "status": "Success",
                    "amount": 500000,
                    "paid_at": "2026-11-01T09:00:00.000Z",
                    "channel": "card",
                    "authorization": {"authorization_code": "AUTH_x", "reusable": True},
                },
            },
        )

        result = await PaystackClient(SECRET).verify_payment("ES1")

        assert result.status == "success"
        assert result.amount == Decimal("5000")
        assert result.paid_at.year == 2026
        assert result.reusable_authorization_code == "AUTH_x"
        assert gateway["requests"][0].url.path == "/transaction/verify/ES1"

    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(500, text="boom"),
            httpx.Response(200, text="not json"),
            httpx.Response(200, json={"status": False, "message": "Invalid key"}),
        ],
    )
    async def test_failures_raise_upstream_error(self, gateway, response):
        gateway["handler"] = lambda req: response
        with pytest.raises(UpstreamError):
            await PaystackClient(SECRET).verify_payment("ES1")

    async def test_transport_error_raises_upstream_error(self, gateway):
        def _timeout(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        gateway["handler"] = _timeout
        with pytest.raises(UpstreamError):
            await PaystackClient(SECRET).charge_authorization(
                email="ada@test.com", amount=Decimal("25000"), authorization_code="AUTH_x", reference="ES2"
            )


class TestWebhookSignature:
    def test_valid_signature(self):
        body = b'{"event":"charge.success"}'
        signature = hmac.new(SECRET.encode(), body, hashlib.sha512).hexdigest()
        assert PaystackClient(SECRET).verify_signature(body, signature) is True

    @pytest.mark.parametrize("signature", [None, "", "deadbeef"])
    def test_invalid_signature(self, signature):
        assert PaystackClient(SECRET).verify_signature(b"{}", signature) is False

    def test_missing_secret_rejects_everything(self):
        body = b"{}"
        signature = hmac.new(b"", body, hashlib.sha512).hexdigest()
        assert PaystackClient("").verify_signature(body, signature) is False
