"""Default catalog and plan limit model."""

import pytest
from pydantic import ValidationError

from backend.features.plans.catalog import DEFAULT_CATALOG
from backend.models.plan import PlanLimits, PlanName, ProPlanLimits


def test_default_catalog_has_three_plans():
    assert DEFAULT_CATALOG.free.max_duration_minutes == 40
    assert DEFAULT_CATALOG.free.max_participants == 100
    assert DEFAULT_CATALOG.pro.max_participants == 300
    assert DEFAULT_CATALOG.business.max_participants == 1000


def test_default_free_plan_has_no_paid_features():
    free = DEFAULT_CATALOG.free
    assert free.recordings_enabled is False
    assert free.streaming_enabled is False
    assert free.unlimited_one_on_one is True


def test_default_pro_trial_settings():
    pro = DEFAULT_CATALOG.pro
    assert pro.trial_duration_days == 14
    assert pro.trial_charge_enabled is False
    assert pro.trial_charge_amount == 0


def test_for_plan_accepts_enum_and_string():
    assert DEFAULT_CATALOG.for_plan(PlanName.BUSINESS) is DEFAULT_CATALOG.business
    assert DEFAULT_CATALOG.for_plan("pro") is DEFAULT_CATALOG.pro


def test_for_plan_rejects_unknown_plan():
    with pytest.raises(ValueError):
        DEFAULT_CATALOG.for_plan("enterprise")


def test_plan_limits_reject_zero_participants():
    with pytest.raises(ValidationError):
        PlanLimits(
            max_duration_minutes=10,
            max_participants=0,
            recordings_enabled=False,
            streaming_enabled=False,
            unlimited_one_on_one=False,
        )


def test_pro_limits_reject_negative_trial_charge():
    with pytest.raises(ValidationError):
        ProPlanLimits(
            max_duration_minutes=10,
            max_participants=5,
            recordings_enabled=True,
            streaming_enabled=True,
            unlimited_one_on_one=True,
            trial_charge_amount=-1,
        )


def test_catalog_is_immutable():
    with pytest.raises(ValidationError):
        DEFAULT_CATALOG.free.max_participants = 5
