"""
Billing service orchestrator.

Coordinates:
- Subscription checkout (USD list price converted to NGN minor units)
- Synchronous verification after the gateway redirect
- Signed webhook processing
- Idempotent activation, keyed by payment reference

Both the verify path and the webhook may report the same payment, in any
order and more than once. The payment_events ledger makes the second
delivery a no-op; a delivery whose earlier application failed is retried.

All Paystack-specific code is in paystack_provider.py.
"""
import hashlib
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Optional

from sqlalchemy import select, insert, update
from sqlalchemy.exc import IntegrityError

from backend.core.config import settings, require_setting
from backend.core.database import get_db_session, payment_events
from backend.core.logging import log_event
from backend.core.errors import (
    PaymentVerificationFailedError,
    PermissionError,
    ValidationError,
)
from backend.features.billing.provider import (
    CheckoutSession,
    EVENT_SUBSCRIPTION,
    EVENT_TRIAL_FEE,
    PaymentEvent,
    PaymentGateway,
)
from backend.features.identity.service import load_principal, write_metadata
from backend.models.entitlement import (
    UserEntitlement,
    pending_metadata,
    subscription_metadata,
    trial_fee_metadata,
)
from backend.models.plan import PlanName

logger = logging.getLogger("confera")

PAID_PLANS = (PlanName.PRO, PlanName.BUSINESS)
PROVIDER_NAME = "paystack"

_gateway_override: Optional[PaymentGateway] = None
_gateway: Optional[PaymentGateway] = None


@dataclass(frozen=True)
class ActivationResult:
    reference: str
    status: str  # "applied" | "duplicate"
    event_type: str
    user_id: Optional[str]
    plan: Optional[str]


def set_payment_gateway_for_tests(gateway: Optional[PaymentGateway]) -> None:
    global _gateway_override, _gateway
    _gateway_override = gateway
    _gateway = None


def get_payment_gateway() -> PaymentGateway:
    """
    Get the configured payment gateway.

    Raises:
        ConfigurationError: PAYSTACK_SECRET_KEY missing
    """
    global _gateway
    if _gateway_override is not None:
        return _gateway_override
    if _gateway is None:
        from backend.features.billing.paystack_provider import PaystackProvider
        _gateway = PaystackProvider()
    return _gateway


def billing_enabled() -> bool:
    return _gateway_override is not None or bool(settings.PAYSTACK_SECRET_KEY)


def plan_price_usd(plan: PlanName) -> float:
    prices = {
        PlanName.PRO: settings.PRO_PRICE_USD,
        PlanName.BUSINESS: settings.BUSINESS_PRICE_USD,
    }
    if plan not in prices:
        raise ValidationError(f"Plan '{PlanName(plan).value}' cannot be purchased")
    return prices[plan]


def checkout_amount_minor(plan: PlanName) -> int:
    """Price in kobo: USD list price x exchange rate x 100."""
    return int(round(plan_price_usd(plan) * settings.USD_TO_NGN_RATE * 100))


def _parse_plan(value: Optional[str]) -> PlanName:
    try:
        return PlanName(value)
    except ValueError:
        raise ValidationError(f"Unknown plan '{value}'")


def start_checkout(user_id: str, plan: str) -> CheckoutSession:
    """
    Initialize a checkout for a paid plan and mark the user pending.

    Raises:
        ValidationError: plan is not purchasable, or the user has no email
        ConfigurationError: BASE_URL or gateway secret missing
    """
    plan_name = _parse_plan(plan)
    amount = checkout_amount_minor(plan_name)
    base_url = require_setting("BASE_URL").rstrip("/")

    principal = load_principal(user_id)
    if not principal.email:
        raise ValidationError("An email address is required to start checkout")

    session = get_payment_gateway().initialize_checkout(
        email=principal.email,
        amount=amount,
        callback_url=f"{base_url}/dashboard",
        metadata={
            "user_id": user_id,
            "plan": plan_name.value,
            "name": principal.name,
            "email": principal.email,
            "type": EVENT_SUBSCRIPTION,
        },
    )
    write_metadata(user_id, pending_metadata(plan_name))
    logger.info(
        "[billing] checkout started",
        extra={"user_id": user_id, "plan": plan_name.value, "reference": session.reference, "amount": amount},
    )
    return session


def verify_payment(reference: str, user_id: Optional[str] = None) -> ActivationResult:
    """
    Synchronous verify path (gateway redirect back to the app).

    Raises:
        PaymentVerificationFailedError: gateway reports a non-success status
        PermissionError: the payment belongs to another user
    """
    event = get_payment_gateway().verify_transaction(reference)
    if not event.succeeded:
        logger.warning("[billing] verification failed", extra={"reference": reference, "status": event.status})
        raise PaymentVerificationFailedError(f"Payment {reference} was not successful ({event.status})")
    if user_id and event.user_id and event.user_id != user_id:
        raise PermissionError("Payment belongs to a different user")
    return on_payment_succeeded(event, source="verify")


def process_webhook(headers: Dict[str, str], body: bytes) -> Optional[ActivationResult]:
    """
    Process a gateway webhook.

    Signature is checked before anything else; nothing is written for an
    invalid signature.

    Returns None for events with no successful payment.

    Raises:
        InvalidWebhookSignatureError: signature missing or wrong
    """
    event = get_payment_gateway().handle_webhook(headers, body)
    if event is None:
        return None
    if not event.succeeded:
        logger.info("[billing] webhook payment not successful", extra={"reference": event.reference, "status": event.status})
        return None
    return on_payment_succeeded(event, source="webhook")


def _payload_hash(event: PaymentEvent) -> str:
    normalized = {
        "reference": event.reference,
        "event_type": event.event_type,
        "user_id": event.user_id,
        "plan": event.plan,
        "amount": event.amount,
        "paid_at": event.paid_at.isoformat() if event.paid_at else None,
    }
    return hashlib.sha256(json.dumps(normalized, sort_keys=True).encode()).hexdigest()


def _apply_payment(event: PaymentEvent) -> UserEntitlement:
    if event.event_type == EVENT_TRIAL_FEE:
        amount = (event.amount or 0) / 100
        return write_metadata(event.user_id, trial_fee_metadata(event.reference, amount))

    plan = _parse_plan(event.plan or PlanName.PRO.value)
    if plan == PlanName.FREE:
        plan = PlanName.PRO
    return write_metadata(
        event.user_id,
        subscription_metadata(
            plan=plan,
            active=True,
            provider=PROVIDER_NAME,
            reference=event.reference,
            activated_at=event.paid_at or datetime.now(timezone.utc),
        ),
    )


def on_payment_succeeded(event: PaymentEvent, source: str = "webhook") -> ActivationResult:
    """
    Apply a successful payment to the user's entitlement (idempotent).

    1. Check the ledger (skip if this reference was already applied)
    2. Record the reference
    3. Write subscription or trial-fee metadata
    4. Mark processed (or record the error and re-raise)
    """
    if not event.user_id:
        raise ValidationError(f"Payment {event.reference} carries no user_id")

    def _result(status: str) -> ActivationResult:
        return ActivationResult(
            reference=event.reference,
            status=status,
            event_type=event.event_type,
            user_id=event.user_id,
            plan=event.plan,
        )

    try:
        with get_db_session() as session:
            existing = session.execute(
                select(payment_events.c.processed).where(payment_events.c.reference == event.reference)
            ).fetchone()

            if existing and existing.processed:
                logger.info("[billing] payment already applied", extra={"reference": event.reference, "source": source})
                return _result("duplicate")

            if not existing:
                session.execute(
                    insert(payment_events).values(
                        reference=event.reference,
                        event_type=event.event_type,
                        user_id=event.user_id,
                        plan=event.plan,
                        source=source,
                        amount=event.amount,
                        payload_hash=_payload_hash(event),
                        processed=False,
                    )
                )
    except IntegrityError:
        # Concurrent delivery recorded the same reference first
        logger.info("[billing] concurrent delivery skipped", extra={"reference": event.reference, "source": source})
        return _result("duplicate")

    try:
        _apply_payment(event)
        with get_db_session() as session:
            session.execute(
                update(payment_events)
                .where(payment_events.c.reference == event.reference)
                .values(processed=True, processed_at=datetime.now(timezone.utc), error=None)
            )
    except Exception as e:
        with get_db_session() as session:
            session.execute(
                update(payment_events)
                .where(payment_events.c.reference == event.reference)
                .values(error=str(e)[:500])
            )
        log_event(
            "error",
            "billing.payment_apply_failed",
            user_id=event.user_id,
            reference=event.reference,
            event_type=event.event_type,
            error_code=getattr(e, "code", "internal_error"),
            extra={"source": source, "error": str(e)},
        )
        raise

    log_event(
        "info",
        "billing.payment_applied",
        user_id=event.user_id,
        reference=event.reference,
        event_type=event.event_type,
        extra={"plan": event.plan, "source": source},
    )
    return _result("applied")
