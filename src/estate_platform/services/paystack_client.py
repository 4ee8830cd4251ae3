"""Paystack REST client: initialize, verify, charge saved authorizations, check webhook signatures.

Amounts are passed in whole currency units and converted to kobo on the wire.
Every transport or HTTP failure is raised as UpstreamError.
"""

import hashlib
import hmac
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional

import httpx

from estate_platform.domain.errors import UpstreamError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GatewayVerification:
    """Normalized result of a verify or charge call."""

    reference: str
    status: str  # success | failed | abandoned | ongoing | pending ...
    amount: Decimal = Decimal("0")
    currency: str = "NGN"
    paid_at: Optional[datetime] = None
    channel: Optional[str] = None
    gateway_response: Optional[str] = None
    authorization: dict = field(default_factory=dict)

    @property
    def reusable_authorization_code(self) -> Optional[str]:
        if self.authorization.get("reusable"):
            return self.authorization.get("authorization_code")
        return None


def _parse_paid_at(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _to_verification(tx: dict) -> GatewayVerification:
    return GatewayVerification(
        reference=tx.get("reference", ""),
        status=(tx.get("status") or "").lower(),
        amount=Decimal(tx.get("amount") or 0) / 100,
        currency=tx.get("currency") or "NGN",
        paid_at=_parse_paid_at(tx.get("paid_at") or tx.get("paidAt")),
        channel=tx.get("channel"),
        gateway_response=tx.get("gateway_response"),
        authorization=tx.get("authorization") or {},
    )


class PaystackClient:
    def __init__(self, secret_key: str, base_url: str = "https://api.paystack.co", timeout: float = 30.0):
        self.secret = secret_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.headers = {
            "Authorization": f"Bearer {self.secret}",
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, path: str, json: Optional[dict] = None) -> dict:
        if not self.secret:
            logger.warning("PAYSTACK_SECRET_KEY not set; %s %s will be rejected", method, path)
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                res = await client.request(method, f"{self.base_url}{path}", headers=self.headers, json=json)
            res.raise_for_status()
            payload = res.json()
        except httpx.HTTPError as exc:
            logger.error("Paystack %s %s failed: %s", method, path, exc)
            raise UpstreamError(f"Payment gateway request failed: {exc}") from exc
        except ValueError as exc:
            raise UpstreamError("Payment gateway returned an invalid response") from exc

        if not payload.get("status"):
            raise UpstreamError(payload.get("message") or "Payment gateway rejected the request")
        return payload.get("data") or {}

    async def initialize_payment(
        self,
        *,
        email: str,
        amount: Decimal,
        reference: str,
        callback_url: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> dict:
        """Start a hosted checkout. Returns the gateway data including authorization_url."""
        payload = {
            "email": email,
            "amount": int(Decimal(str(amount)) * 100),
            "reference": reference,
        }
        if callback_url:
            payload["callback_url"] = callback_url
        if metadata:
            payload["metadata"] = metadata

        data = await self._request("POST", "/transaction/initialize", json=payload)
        logger.info("Paystack payment initialized: reference=%s", reference)
        return data

    async def verify_payment(self, reference: str) -> GatewayVerification:
        data = await self._request("GET", f"/transaction/verify/{reference}")
        return _to_verification(data)

    async def charge_authorization(
        self,
        *,
        email: str,
        amount: Decimal,
        authorization_code: str,
        reference: str,
        metadata: Optional[dict] = None,
    ) -> GatewayVerification:
        """Charge a previously saved reusable card authorization."""
        payload = {
            "email": email,
            "amount": int(Decimal(str(amount)) * 100),
            "authorization_code": authorization_code,
            "reference": reference,
        }
        if metadata:
            payload["metadata"] = metadata
        data = await self._request("POST", "/transaction/charge_authorization", json=payload)
        return _to_verification(data)

    def verify_signature(self, body: bytes, signature: Optional[str]) -> bool:
        """Check the x-paystack-signature header (HMAC-SHA512 of the raw body)."""
        if not signature or not self.secret:
            return False
        expected = hmac.new(self.secret.encode(), body, hashlib.sha512).hexdigest()
        return hmac.compare_digest(expected, signature)
