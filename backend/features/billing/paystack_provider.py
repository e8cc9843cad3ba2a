"""
Paystack payment gateway.

Implements PaymentGateway against the Paystack REST API:
- POST /transaction/initialize
- GET  /transaction/verify/{reference}
- Webhooks signed with HMAC-SHA512 of the raw body (x-paystack-signature)
"""
import hashlib
import hmac
import json
import logging
from datetime import datetime
from typing import Any, Dict, Optional
from uuid import uuid4

import httpx

from backend.core.config import settings, require_setting
from backend.core.errors import InvalidWebhookSignatureError
from backend.features.billing.provider import (
    CheckoutSession,
    EVENT_SUBSCRIPTION,
    PaymentEvent,
    PaymentProviderError,
)

logger = logging.getLogger("confera")

SIGNATURE_HEADER = "x-paystack-signature"
CHARGE_SUCCESS = "charge.success"


def compute_signature(secret: str, body: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), msg=body, digestmod=hashlib.sha512).hexdigest()


def new_reference(prefix: str = "cf") -> str:
    return f"{prefix}_{uuid4().hex}"


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _parse_transaction(data: Dict[str, Any]) -> PaymentEvent:
    metadata = data.get("metadata") or {}
    if isinstance(metadata, str):
        # Paystack echoes metadata back as a JSON string on some integrations
        try:
            metadata = json.loads(metadata)
        except ValueError:
            metadata = {}
    if not isinstance(metadata, dict):
        metadata = {}

    return PaymentEvent(
        reference=data.get("reference") or "",
        status=data.get("status") or "unknown",
        event_type=metadata.get("type") or EVENT_SUBSCRIPTION,
        user_id=metadata.get("user_id"),
        plan=metadata.get("plan"),
        amount=data.get("amount"),
        currency=data.get("currency"),
        paid_at=_parse_datetime(data.get("paid_at") or data.get("paidAt")),
        metadata=metadata,
    )


class PaystackProvider:
    """Paystack implementation of PaymentGateway."""

    def __init__(self, secret_key: Optional[str] = None, base_url: Optional[str] = None, client: Optional[httpx.Client] = None):
        self.secret_key = secret_key or require_setting("PAYSTACK_SECRET_KEY")
        self.base_url = (base_url or settings.PAYSTACK_BASE_URL).rstrip("/")
        self._client = client or httpx.Client(timeout=15.0)

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
        }

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        try:
            response = self._client.request(method, f"{self.base_url}{path}", headers=self._headers(), **kwargs)
        except httpx.HTTPError as e:
            raise PaymentProviderError(f"Paystack unreachable: {e.__class__.__name__}")

        try:
            body = response.json()
        except ValueError:
            body = {}
        if response.status_code >= 300 or not body.get("status"):
            logger.warning(
                "[billing] paystack request failed",
                extra={"path": path, "status": response.status_code, "gateway_message": body.get("message")},
            )
            raise PaymentProviderError(f"Paystack error: {body.get('message') or response.status_code}")
        return body.get("data") or {}

    def initialize_checkout(
        self,
        email: str,
        amount: int,
        callback_url: str,
        metadata: Dict[str, Any],
        reference: Optional[str] = None,
    ) -> CheckoutSession:
        payload = {
            "email": email,
            "amount": int(amount),
            "currency": settings.PAYSTACK_CURRENCY,
            "reference": reference or new_reference(),
            "callback_url": callback_url,
            "metadata": metadata,
        }
        data = self._request("POST", "/transaction/initialize", json=payload)
        logger.info("[billing] paystack checkout initialized", extra={"reference": data.get("reference"), "amount": amount})
        return CheckoutSession(
            authorization_url=data["authorization_url"],
            reference=data.get("reference") or payload["reference"],
            access_code=data.get("access_code"),
        )

    def verify_transaction(self, reference: str) -> PaymentEvent:
        return _parse_transaction(self._request("GET", f"/transaction/verify/{reference}"))

    def handle_webhook(self, headers: Dict[str, str], body: bytes) -> Optional[PaymentEvent]:
        lowered = {k.lower(): v for k, v in headers.items()}
        signature = lowered.get(SIGNATURE_HEADER) or ""
        expected = compute_signature(self.secret_key, body)
        if not hmac.compare_digest(expected, signature):
            raise InvalidWebhookSignatureError("Invalid Paystack signature")

        try:
            event = json.loads(body)
        except ValueError:
            raise PaymentProviderError("Webhook body is not valid JSON")

        if event.get("event") != CHARGE_SUCCESS:
            logger.info("[billing] webhook ignored", extra={"event_type": event.get("event")})
            return None
        return _parse_transaction(event.get("data") or {})
