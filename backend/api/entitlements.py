"""
Entitlement API routes, called by the meeting UI.

- GET  /api/entitlements/me
- POST /api/entitlements/admission
- POST /api/entitlements/duration
- POST /api/entitlements/feature
- POST /api/entitlements/limits

Call state (participant count, members) always comes from the video
provider, never from the request body.
"""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from backend.core.auth import get_current_user_id
from backend.features.calls.service import fetch_call
from backend.features.entitlements.service import (
    Decision,
    Feature,
    check_call_membership,
    check_duration_limit,
    check_feature_access,
    check_participant_admission,
    get_meeting_limits,
    resolve_effective_plan,
)
from backend.features.identity.service import load_entitlement
from backend.features.plans.service import resolve_catalog
from backend.features.trials.service import trial_phase
from backend.models.call import CallSnapshot
from backend.models.plan import PlanLimits


router = APIRouter(prefix="/entitlements", tags=["entitlements"])


class CallRequest(BaseModel):
    call_id: str
    call_type: str = "default"


class DurationRequest(CallRequest):
    elapsed_ms: int = Field(ge=0)


class FeatureRequest(BaseModel):
    feature: Feature


class DecisionResponse(BaseModel):
    allowed: bool
    reason: Optional[str] = None
    plan: str
    active: bool
    trial_applied: bool


class TrialSummary(BaseModel):
    phase: str
    ends_at: Optional[datetime] = None
    charge_enabled: bool = False
    charge_amount: float = 0
    fee_paid: bool = False


class EntitlementResponse(BaseModel):
    user_id: str
    plan: str
    active: bool
    pending: bool
    effective_plan: str
    effective_active: bool
    limits: PlanLimits
    trial: TrialSummary


class MeetingLimitsResponse(BaseModel):
    plan: str
    active: bool
    trial_applied: bool
    is_group: bool
    max_participants: int
    unlimited_one_on_one: bool
    duration_limit_ms: Optional[int]
    recordings_enabled: bool
    streaming_enabled: bool


def _snapshot(body: CallRequest) -> CallSnapshot:
    return fetch_call(body.call_type, body.call_id)


def _to_response(decision: Decision) -> DecisionResponse:
    return DecisionResponse(
        allowed=decision.allowed,
        reason=decision.reason.value if decision.reason else None,
        plan=decision.plan.value,
        active=decision.active,
        trial_applied=decision.trial_applied,
    )


@router.get("/me", response_model=EntitlementResponse)
def my_entitlement(user_id: str = Depends(get_current_user_id)):
    entitlement = load_entitlement(user_id)
    effective = resolve_effective_plan(entitlement)
    trial = entitlement.trial
    return EntitlementResponse(
        user_id=user_id,
        plan=entitlement.plan.value,
        active=entitlement.active,
        pending=entitlement.pending,
        effective_plan=effective.plan.value,
        effective_active=effective.active,
        limits=resolve_catalog().for_plan(effective.plan),
        trial=TrialSummary(
            phase=trial_phase(entitlement).value,
            ends_at=trial.ends_at if trial else None,
            charge_enabled=trial.charge_enabled if trial else False,
            charge_amount=trial.charge_amount if trial else 0,
            fee_paid=trial.fee_paid if trial else False,
        ),
    )


@router.post("/admission", response_model=DecisionResponse)
def admission(body: CallRequest, user_id: str = Depends(get_current_user_id)):
    """Membership (invited calls) first, then the participant cap."""
    entitlement = load_entitlement(user_id)
    call = _snapshot(body)

    membership = check_call_membership(entitlement, call)
    if not membership.allowed:
        return _to_response(membership)
    return _to_response(check_participant_admission(entitlement, call))


@router.post("/duration", response_model=DecisionResponse)
def duration(body: DurationRequest, user_id: str = Depends(get_current_user_id)):
    entitlement = load_entitlement(user_id)
    return _to_response(check_duration_limit(entitlement, _snapshot(body), body.elapsed_ms))


@router.post("/feature", response_model=DecisionResponse)
def feature(body: FeatureRequest, user_id: str = Depends(get_current_user_id)):
    entitlement = load_entitlement(user_id)
    return _to_response(check_feature_access(entitlement, body.feature))


@router.post("/limits", response_model=MeetingLimitsResponse)
def meeting_limits(body: CallRequest, user_id: str = Depends(get_current_user_id)):
    entitlement = load_entitlement(user_id)
    limits = get_meeting_limits(entitlement, _snapshot(body))
    return MeetingLimitsResponse(
        plan=limits.plan.value,
        active=limits.active,
        trial_applied=limits.trial_applied,
        is_group=limits.is_group,
        max_participants=limits.max_participants,
        unlimited_one_on_one=limits.unlimited_one_on_one,
        duration_limit_ms=limits.duration_limit_ms,
        recordings_enabled=limits.recordings_enabled,
        streaming_enabled=limits.streaming_enabled,
    )
