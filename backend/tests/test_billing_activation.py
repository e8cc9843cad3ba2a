"""Checkout, verification and idempotent activation."""

from datetime import datetime, timezone

import pytest
from sqlalchemy import select

from backend.core.database import get_db_session, payment_events
from backend.core.errors import (
    ConfigurationError,
    PaymentVerificationFailedError,
    PermissionError,
    ValidationError,
)
from backend.features.billing.provider import PaymentEvent
from backend.features.billing.service import (
    checkout_amount_minor,
    on_payment_succeeded,
    start_checkout,
    verify_payment,
)
from backend.features.identity.service import load_entitlement
from backend.models.plan import PlanName

PAID_AT = datetime(2025, 6, 1, 9, 30, tzinfo=timezone.utc)


def _event(reference="ref_1", plan="pro", event_type="subscription", status="success", user_id="u1", amount=2250000):
    return PaymentEvent(
        reference=reference,
        status=status,
        event_type=event_type,
        user_id=user_id,
        plan=plan,
        amount=amount,
        currency="NGN",
        paid_at=PAID_AT,
    )


def test_checkout_amount_converts_usd_to_kobo():
    assert checkout_amount_minor(PlanName.PRO) == 15 * 1500 * 100
    assert checkout_amount_minor(PlanName.BUSINESS) == 35 * 1500 * 100


def test_free_plan_cannot_be_purchased():
    with pytest.raises(ValidationError):
        checkout_amount_minor(PlanName.FREE)


def test_start_checkout_marks_pending(identity, gateway):
    identity.add_user("u1", email="u1@example.com", name="Ada")

    session = start_checkout("u1", "business")

    checkout = gateway.checkouts[0]
    assert session.reference == checkout["reference"]
    assert checkout["amount"] == 35 * 1500 * 100
    assert checkout["callback_url"] == "https://app.confera.test/dashboard"
    assert checkout["metadata"] == {
        "user_id": "u1",
        "plan": "business",
        "name": "Ada",
        "email": "u1@example.com",
        "type": "subscription",
    }
    ent = load_entitlement("u1")
    assert ent.pending is True
    assert ent.pending_plan == PlanName.BUSINESS
    assert ent.plan == PlanName.FREE
    assert ent.active is False


def test_start_checkout_requires_email(identity, gateway):
    identity.add_user("u1", email="")

    with pytest.raises(ValidationError):
        start_checkout("u1", "pro")


def test_start_checkout_requires_base_url(identity, gateway, monkeypatch):
    from backend.core.config import settings

    identity.add_user("u1")
    monkeypatch.setattr(settings, "BASE_URL", None)

    with pytest.raises(ConfigurationError):
        start_checkout("u1", "pro")
    assert gateway.checkouts == []


def test_payment_activates_subscription(identity):
    identity.add_user("u1", metadata={"subscription_pending": True, "subscription_pending_plan": "pro"})

    result = on_payment_succeeded(_event())

    assert result.status == "applied"
    ent = load_entitlement("u1")
    assert ent.plan == PlanName.PRO
    assert ent.active is True
    assert ent.pending is False
    assert ent.provider == "paystack"
    assert ent.payment_reference == "ref_1"
    assert ent.activated_at == PAID_AT


def test_free_plan_payment_is_floored_to_pro(identity):
    identity.add_user("u1")

    on_payment_succeeded(_event(plan="free"))

    assert load_entitlement("u1").plan == PlanName.PRO


def test_duplicate_delivery_is_a_no_op(identity):
    identity.add_user("u1")
    on_payment_succeeded(_event(), source="verify")
    after_first = identity.metadata("u1")
    writes = len(identity.updates)

    result = on_payment_succeeded(_event(), source="webhook")

    assert result.status == "duplicate"
    assert identity.metadata("u1") == after_first
    assert len(identity.updates) == writes


def test_failed_application_is_retried(identity):
    identity.add_user("u1")
    identity.fail_writes = True
    with pytest.raises(Exception):
        on_payment_succeeded(_event())

    with get_db_session() as session:
        row = session.execute(select(payment_events)).fetchone()
    assert row.processed is False
    assert row.error

    identity.fail_writes = False
    result = on_payment_succeeded(_event())

    assert result.status == "applied"
    assert load_entitlement("u1").active is True


def test_trial_fee_payment_marks_fee_paid_only(identity):
    identity.add_user("u1", metadata={
        "subscription_trial_active": True,
        "subscription_trial_end": "2025-06-10T00:00:00+00:00",
    })

    on_payment_succeeded(_event(reference="fee_1", event_type="trial_fee", amount=250000))

    ent = load_entitlement("u1")
    assert ent.trial.fee_paid is True
    assert ent.trial.fee_reference == "fee_1"
    assert ent.trial.fee_amount == 2500
    assert ent.plan == PlanName.FREE
    assert ent.active is False


def test_event_without_user_rejected(identity):
    with pytest.raises(ValidationError):
        on_payment_succeeded(_event(user_id=None))


def test_verify_payment_activates(identity, gateway):
    identity.add_user("u1")
    gateway.add_transaction(_event(reference="ref_v"))

    result = verify_payment("ref_v", user_id="u1")

    assert result.status == "applied"
    assert load_entitlement("u1").active is True


def test_verify_failed_payment_does_not_mutate(identity, gateway):
    identity.add_user("u1")
    gateway.add_transaction(_event(reference="ref_f", status="failed"))

    with pytest.raises(PaymentVerificationFailedError):
        verify_payment("ref_f", user_id="u1")

    assert identity.updates == []


def test_verify_other_users_payment_forbidden(identity, gateway):
    identity.add_user("u1")
    gateway.add_transaction(_event(reference="ref_o", user_id="u2"))

    with pytest.raises(PermissionError):
        verify_payment("ref_o", user_id="u1")
