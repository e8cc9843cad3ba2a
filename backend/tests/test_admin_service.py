"""Administrator plan overrides, sign-up init and stats."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from backend.core.database import admin_audit, get_db_session
from backend.core.errors import NoAdminPrincipalError
from backend.features.admin.service import initialize_user, list_users, set_user_plan, subscription_stats

NOW = datetime(2025, 6, 10, 12, 0, tzinfo=timezone.utc)


def test_set_user_plan_records_admin_reference(identity, admin_actor):
    identity.add_user("u1", metadata={"subscription_pending": True, "subscription_pending_plan": "pro"})

    ent = set_user_plan("u1", "business", True, admin_actor, now=NOW)

    assert ent.plan.value == "business"
    assert ent.active is True
    assert ent.pending is False
    assert ent.provider == "admin"
    assert ent.payment_reference == f"admin-{int(NOW.timestamp() * 1000)}"
    assert ent.activated_at == NOW


def test_set_user_plan_free_clears_provider_and_reference(identity, admin_actor):
    identity.add_user("u1", metadata={
        "subscription_plan": "pro",
        "subscription_active": True,
        "subscription_provider": "paystack",
        "subscription_reference": "ref_1",
    })

    ent = set_user_plan("u1", "free", False, admin_actor, now=NOW)

    md = identity.metadata("u1")
    assert ent.plan.value == "free"
    assert ent.active is False
    assert "subscription_provider" not in md
    assert "subscription_reference" not in md


def test_set_user_plan_requires_admin(identity):
    identity.add_user("u1")

    with pytest.raises(NoAdminPrincipalError):
        set_user_plan("u1", "pro", True, None)

    assert identity.updates == []


def test_set_user_plan_is_audited(identity, admin_actor):
    identity.add_user("u1")

    set_user_plan("u1", "pro", True, admin_actor, now=NOW)

    with get_db_session() as session:
        row = session.execute(select(admin_audit)).fetchone()
    assert row.action == "set_user_plan"
    assert row.target_user_id == "u1"
    assert row.target_resource == "pro"


def test_initialize_user_writes_free_inactive(identity):
    identity.add_user("u1")

    ent = initialize_user("u1")

    md = identity.metadata("u1")
    assert md["subscription_plan"] == "free"
    assert md["subscription_active"] is False
    assert ent.plan.value == "free"


def test_initialize_user_keeps_existing_plan(identity):
    identity.add_user("u1", metadata={"subscription_plan": "pro", "subscription_active": True})

    ent = initialize_user("u1")

    assert ent.plan.value == "pro"
    assert identity.updates == []


def test_list_users_tolerates_invalid_metadata(identity):
    identity.add_user("good", metadata={"subscription_plan": "pro"})
    identity.add_user("bad", metadata={"subscription_plan": "platinum"})

    rows = {r["user_id"]: r for r in list_users()}

    assert rows["good"]["entitlement"].plan.value == "pro"
    assert rows["bad"]["entitlement"] is None


def test_subscription_stats(identity):
    recent = NOW - timedelta(days=2)
    old = NOW - timedelta(days=30)
    identity.add_user("free_old", created_at=old)
    identity.add_user("pro_new", created_at=recent, metadata={
        "subscription_plan": "pro",
        "subscription_active": True,
        "subscription_activated_at": recent.isoformat(),
    })
    identity.add_user("biz_old", created_at=old, metadata={
        "subscription_plan": "business",
        "subscription_active": True,
        "subscription_activated_at": old.isoformat(),
    })
    identity.add_user("trialing", created_at=recent, metadata={
        "subscription_trial_active": True,
        "subscription_trial_end": (NOW + timedelta(days=3)).isoformat(),
    })
    identity.add_user("broken", created_at=old, metadata={"subscription_plan": "gold"})

    stats = subscription_stats(now=NOW)

    assert stats["total_users"] == 5
    assert stats["active_subscribers"] == 2
    assert stats["pro_subscribers"] == 1
    assert stats["business_subscribers"] == 1
    assert stats["new_users_last_7d"] == 2
    assert stats["new_subscriptions_last_7d"] == 1
    assert stats["trials_active"] == 1
    assert stats["invalid_metadata"] == 1
    assert stats["mrr_usd"] == 15 + 35
