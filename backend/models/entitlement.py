"""
backend/models/entitlement.py

User entitlement projected from identity-provider metadata.

Subscription and trial state live in the user's metadata under fixed
`subscription_*` keys. This module is the only place those keys are
parsed or produced; everything else works with UserEntitlement.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from backend.core.errors import InvalidEntitlementMetadataError
from backend.models.plan import PlanName


# Metadata keys (shared with existing user records)
KEY_ACTIVE = "subscription_active"
KEY_PLAN = "subscription_plan"
KEY_PENDING = "subscription_pending"
KEY_PENDING_PLAN = "subscription_pending_plan"
KEY_PROVIDER = "subscription_provider"
KEY_REFERENCE = "subscription_reference"
KEY_ACTIVATED_AT = "subscription_activated_at"
KEY_TRIAL_ACTIVE = "subscription_trial_active"
KEY_TRIAL_PLAN = "subscription_trial_plan"
KEY_TRIAL_END = "subscription_trial_end"
KEY_TRIAL_CHARGE_ENABLED = "subscription_trial_charge_enabled"
KEY_TRIAL_CHARGE_AMOUNT = "subscription_trial_charge_ngn"
KEY_TRIAL_FEE_PAID = "subscription_trial_fee_paid"
KEY_TRIAL_FEE_REFERENCE = "subscription_trial_fee_reference"
KEY_TRIAL_FEE_AMOUNT = "subscription_trial_fee_amount_ngn"
KEY_ROLE = "role"

ADMIN_ROLE = "admin"


def _iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class TrialState(BaseModel):
    model_config = ConfigDict(frozen=True)

    active: bool = False
    plan: PlanName = PlanName.PRO
    ends_at: Optional[datetime] = None
    charge_enabled: bool = False
    charge_amount: float = Field(default=0, ge=0)
    fee_paid: bool = False
    fee_reference: Optional[str] = None
    fee_amount: Optional[float] = None

    def is_current(self, now: datetime) -> bool:
        """A trial counts only while active and strictly before its end."""
        if not self.active or self.ends_at is None:
            return False
        return _aware(self.ends_at) > _aware(now)

    def to_metadata(self) -> Dict[str, Any]:
        """Metadata patch covering every trial key, so a restart replaces the whole trial."""
        return {
            KEY_TRIAL_ACTIVE: self.active,
            KEY_TRIAL_PLAN: self.plan.value,
            KEY_TRIAL_END: _iso(self.ends_at),
            KEY_TRIAL_CHARGE_ENABLED: self.charge_enabled,
            KEY_TRIAL_CHARGE_AMOUNT: self.charge_amount,
            KEY_TRIAL_FEE_PAID: self.fee_paid,
            KEY_TRIAL_FEE_REFERENCE: self.fee_reference,
            KEY_TRIAL_FEE_AMOUNT: self.fee_amount,
        }


class UserEntitlement(BaseModel):
    """Subscription view of one user, as the evaluator consumes it."""
    model_config = ConfigDict(frozen=True)

    user_id: str
    plan: PlanName = PlanName.FREE
    active: bool = False
    pending: bool = False
    pending_plan: Optional[PlanName] = None
    provider: Optional[str] = None
    payment_reference: Optional[str] = None
    activated_at: Optional[datetime] = None
    role: Optional[str] = None
    trial: Optional[TrialState] = None

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE

    @classmethod
    def from_metadata(cls, user_id: str, metadata: Optional[Mapping[str, Any]]) -> "UserEntitlement":
        """
        Validate raw identity metadata into an entitlement.

        Missing keys mean free/inactive with no trial. An unknown plan name
        or malformed value raises InvalidEntitlementMetadataError.
        """
        md = dict(metadata or {})
        plan = md.get(KEY_PLAN) or PlanName.FREE.value
        if plan not in {p.value for p in PlanName}:
            raise InvalidEntitlementMetadataError(f"Unknown plan '{plan}' for user {user_id}")

        trial = None
        if md.get(KEY_TRIAL_END) or md.get(KEY_TRIAL_ACTIVE):
            trial = {
                "active": bool(md.get(KEY_TRIAL_ACTIVE)),
                "plan": md.get(KEY_TRIAL_PLAN) or PlanName.PRO.value,
                "ends_at": md.get(KEY_TRIAL_END),
                "charge_enabled": bool(md.get(KEY_TRIAL_CHARGE_ENABLED)),
                "charge_amount": md.get(KEY_TRIAL_CHARGE_AMOUNT) or 0,
                "fee_paid": bool(md.get(KEY_TRIAL_FEE_PAID)),
                "fee_reference": md.get(KEY_TRIAL_FEE_REFERENCE),
                "fee_amount": md.get(KEY_TRIAL_FEE_AMOUNT),
            }

        try:
            return cls(
                user_id=user_id,
                plan=plan,
                active=bool(md.get(KEY_ACTIVE)),
                pending=bool(md.get(KEY_PENDING)),
                pending_plan=md.get(KEY_PENDING_PLAN) or None,
                provider=md.get(KEY_PROVIDER),
                payment_reference=md.get(KEY_REFERENCE),
                activated_at=md.get(KEY_ACTIVATED_AT),
                role=md.get(KEY_ROLE),
                trial=trial,
            )
        except PydanticValidationError as e:
            raise InvalidEntitlementMetadataError(f"Invalid subscription metadata for user {user_id}: {e.errors()[0]['msg']}")


def subscription_metadata(
    *,
    plan: PlanName,
    active: bool,
    provider: Optional[str],
    reference: Optional[str],
    activated_at: Optional[datetime],
) -> Dict[str, Any]:
    """Metadata patch for an activation or override. plan and active always travel together."""
    return {
        KEY_ACTIVE: active,
        KEY_PLAN: PlanName(plan).value,
        KEY_PENDING: False,
        KEY_PENDING_PLAN: None,
        KEY_PROVIDER: provider,
        KEY_REFERENCE: reference,
        KEY_ACTIVATED_AT: _iso(activated_at),
    }


def pending_metadata(plan: PlanName) -> Dict[str, Any]:
    return {KEY_PENDING: True, KEY_PENDING_PLAN: PlanName(plan).value}


def trial_fee_metadata(reference: str, amount: float) -> Dict[str, Any]:
    return {
        KEY_TRIAL_FEE_PAID: True,
        KEY_TRIAL_FEE_REFERENCE: reference,
        KEY_TRIAL_FEE_AMOUNT: amount,
    }
