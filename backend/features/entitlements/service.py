"""
backend/features/entitlements/service.py

Entitlement evaluator.

Handles:
- Effective plan resolution (a current trial counts as active pro)
- Participant admission for calls
- Meeting duration caps (one-on-one calls may be exempt)
- Feature gates (recordings, streaming)
- Invited-call membership

Decisions are returned as values; a denial is never an exception. Every
check reads the catalog through resolve_catalog(), so an unreachable
config store degrades to the default catalog instead of failing.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Tuple
import logging

from backend.features.plans.service import resolve_catalog
from backend.models.call import CallSnapshot, INVITED_CALL_TYPE
from backend.models.entitlement import UserEntitlement
from backend.models.plan import PlanCatalog, PlanLimits, PlanName


logger = logging.getLogger("confera")

MS_PER_MINUTE = 60_000


class DenialReason(str, Enum):
    PARTICIPANT_LIMIT_REACHED = "participant_limit_reached"
    MEETING_TIME_LIMIT_REACHED = "meeting_time_limit_reached"
    UPGRADE_REQUIRED = "upgrade_required"
    NOT_A_MEMBER = "not_a_member"


class Feature(str, Enum):
    RECORDINGS = "recordings"
    STREAMING = "streaming"


@dataclass(frozen=True)
class EffectivePlan:
    plan: PlanName
    active: bool
    trial_applied: bool


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: Optional[DenialReason]
    plan: PlanName
    active: bool
    trial_applied: bool = False


@dataclass(frozen=True)
class MeetingLimits:
    """Limits as the meeting room applies them for one user and call."""
    plan: PlanName
    active: bool
    trial_applied: bool
    is_group: bool
    max_participants: int
    unlimited_one_on_one: bool
    duration_limit_ms: Optional[int]  # None when the call is exempt
    recordings_enabled: bool
    streaming_enabled: bool


def _normalize_now(now: Optional[Any]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if getattr(now, "tzinfo", None) is None:
        return now.replace(tzinfo=timezone.utc)
    return now


def resolve_effective_plan(entitlement: UserEntitlement, now: Optional[datetime] = None) -> EffectivePlan:
    """A current trial outranks the stored plan; an expired one is ignored."""
    normalized_now = _normalize_now(now)
    trial = entitlement.trial
    if trial is not None and trial.is_current(normalized_now):
        return EffectivePlan(plan=trial.plan, active=True, trial_applied=True)
    return EffectivePlan(plan=entitlement.plan, active=entitlement.active, trial_applied=False)


def _limits(
    entitlement: UserEntitlement,
    catalog: Optional[PlanCatalog],
    now: Optional[datetime],
) -> Tuple[EffectivePlan, PlanLimits]:
    effective = resolve_effective_plan(entitlement, now)
    cfg = catalog or resolve_catalog()
    return effective, cfg.for_plan(effective.plan)


def _decide(effective: EffectivePlan, reason: Optional[DenialReason]) -> Decision:
    return Decision(
        allowed=reason is None,
        reason=reason,
        plan=effective.plan,
        active=effective.active,
        trial_applied=effective.trial_applied,
    )


def check_participant_admission(
    entitlement: UserEntitlement,
    call: CallSnapshot,
    *,
    catalog: Optional[PlanCatalog] = None,
    now: Optional[datetime] = None,
) -> Decision:
    """
    Decide whether the user may join a call with `call.participant_count` people.

    Denies only group calls at or above the plan's participant cap, and only
    when the user is inactive, on free, or on a plan without the one-on-one
    exemption.
    """
    effective, limits = _limits(entitlement, catalog, now)
    restricted = (not effective.active or effective.plan == PlanName.FREE) or not limits.unlimited_one_on_one
    reason = None
    if call.is_group and restricted and call.participant_count >= limits.max_participants:
        reason = DenialReason.PARTICIPANT_LIMIT_REACHED
        logger.info(
            "[entitlements] admission denied",
            extra={
                "user_id": entitlement.user_id,
                "call_id": call.call_id,
                "plan": effective.plan.value,
                "participant_count": call.participant_count,
                "max_participants": limits.max_participants,
            },
        )
    return _decide(effective, reason)


def check_duration_limit(
    entitlement: UserEntitlement,
    call: CallSnapshot,
    elapsed_ms: int,
    *,
    catalog: Optional[PlanCatalog] = None,
    now: Optional[datetime] = None,
) -> Decision:
    """Deny once a capped call has run for the plan's max duration."""
    effective, limits = _limits(entitlement, catalog, now)
    if limits.unlimited_one_on_one and not call.is_group:
        return _decide(effective, None)

    reason = None
    if elapsed_ms >= limits.max_duration_minutes * MS_PER_MINUTE:
        reason = DenialReason.MEETING_TIME_LIMIT_REACHED
        logger.info(
            "[entitlements] meeting time limit reached",
            extra={
                "user_id": entitlement.user_id,
                "call_id": call.call_id,
                "plan": effective.plan.value,
                "elapsed_ms": elapsed_ms,
            },
        )
    return _decide(effective, reason)


def check_feature_access(
    entitlement: UserEntitlement,
    feature: Feature,
    *,
    catalog: Optional[PlanCatalog] = None,
    now: Optional[datetime] = None,
) -> Decision:
    """Recordings and streaming need an active (or trialing) plan that enables them."""
    effective, limits = _limits(entitlement, catalog, now)
    enabled = limits.recordings_enabled if Feature(feature) == Feature.RECORDINGS else limits.streaming_enabled
    reason = None if (effective.active and enabled) else DenialReason.UPGRADE_REQUIRED
    return _decide(effective, reason)


def check_call_membership(
    entitlement: UserEntitlement,
    call: CallSnapshot,
    *,
    now: Optional[datetime] = None,
) -> Decision:
    """Invited calls admit listed members only; other call types admit anyone."""
    effective = resolve_effective_plan(entitlement, now)
    reason = None
    if call.call_type == INVITED_CALL_TYPE and entitlement.user_id not in call.member_ids:
        reason = DenialReason.NOT_A_MEMBER
    return _decide(effective, reason)


def get_meeting_limits(
    entitlement: UserEntitlement,
    call: CallSnapshot,
    *,
    catalog: Optional[PlanCatalog] = None,
    now: Optional[datetime] = None,
) -> MeetingLimits:
    effective, limits = _limits(entitlement, catalog, now)
    exempt = limits.unlimited_one_on_one and not call.is_group
    return MeetingLimits(
        plan=effective.plan,
        active=effective.active,
        trial_applied=effective.trial_applied,
        is_group=call.is_group,
        max_participants=limits.max_participants,
        unlimited_one_on_one=limits.unlimited_one_on_one,
        duration_limit_ms=None if exempt else limits.max_duration_minutes * MS_PER_MINUTE,
        recordings_enabled=effective.active and limits.recordings_enabled,
        streaming_enabled=effective.active and limits.streaming_enabled,
    )
