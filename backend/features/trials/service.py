"""
Trial lifecycle.

A user moves NO_TRIAL -> ACTIVE -> EXPIRED (end time passed, or ended by an
administrator) or CONVERTED (holds an active paid plan). Expiry needs no
cleanup pass: the evaluator ignores a trial whose end time has passed.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from backend.core.admin_auth import AdminActor
from backend.core.config import require_setting
from backend.core.errors import TrialChargeDisabledError, ValidationError
from backend.features.audit.service import record_admin_audit
from backend.features.billing.provider import EVENT_TRIAL_FEE
from backend.features.billing.service import get_payment_gateway
from backend.features.identity.service import load_entitlement, load_principal, write_metadata
from backend.features.plans.service import resolve_catalog
from backend.models.entitlement import TrialState, UserEntitlement
from backend.models.plan import PlanName

logger = logging.getLogger("confera")


class TrialPhase(str, Enum):
    NO_TRIAL = "no_trial"
    ACTIVE = "active"
    EXPIRED = "expired"
    CONVERTED = "converted"


@dataclass(frozen=True)
class TrialCharge:
    checkout_url: str
    reference: str
    amount: float  # whole NGN


def _now(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    return now if now.tzinfo else now.replace(tzinfo=timezone.utc)


def trial_phase(entitlement: UserEntitlement, now: Optional[datetime] = None) -> TrialPhase:
    if entitlement.active and entitlement.plan != PlanName.FREE:
        return TrialPhase.CONVERTED
    trial = entitlement.trial
    if trial is None:
        return TrialPhase.NO_TRIAL
    if trial.is_current(_now(now)):
        return TrialPhase.ACTIVE
    return TrialPhase.EXPIRED


def start_trial(user_id: str, actor: Optional[AdminActor] = None, now: Optional[datetime] = None) -> UserEntitlement:
    """
    Start (or restart) a pro trial using the catalog's trial settings.

    Restarting overwrites the end time; days do not stack. Subscription
    plan/active are left untouched.
    """
    pro = resolve_catalog().pro
    started = _now(now)
    trial = TrialState(
        active=True,
        plan=PlanName.PRO,
        ends_at=started + timedelta(days=pro.trial_duration_days),
        charge_enabled=pro.trial_charge_enabled,
        charge_amount=pro.trial_charge_amount if pro.trial_charge_enabled else 0,
        fee_paid=False,
    )
    entitlement = write_metadata(user_id, trial.to_metadata())
    if actor is not None:
        record_admin_audit(actor, "start_trial", target_user_id=user_id, payload={"ends_at": trial.ends_at})
    logger.info("[trials] started", extra={"user_id": user_id, "ends_at": trial.ends_at.isoformat()})
    return entitlement


def end_trial(user_id: str, actor: Optional[AdminActor] = None) -> UserEntitlement:
    """Mark the trial inactive. A paid plan is never revoked here."""
    current = load_entitlement(user_id)
    trial = current.trial or TrialState()
    ended = trial.model_copy(update={"active": False})
    entitlement = write_metadata(user_id, ended.to_metadata())
    if actor is not None:
        record_admin_audit(actor, "end_trial", target_user_id=user_id)
    logger.info("[trials] ended", extra={"user_id": user_id})
    return entitlement


def charge_trial_fee(user_id: str, actor: Optional[AdminActor] = None) -> TrialCharge:
    """
    Start a checkout for the pro trial fee.

    Raises:
        TrialChargeDisabledError: charging disabled, or amount is zero
        ValidationError: the user has no email address
        ConfigurationError: BASE_URL or gateway secret missing
    """
    pro = resolve_catalog().pro
    if not pro.trial_charge_enabled or pro.trial_charge_amount <= 0:
        raise TrialChargeDisabledError("Trial charge is disabled")

    base_url = require_setting("BASE_URL").rstrip("/")
    principal = load_principal(user_id)
    if not principal.email:
        raise ValidationError("An email address is required to charge the trial fee")

    session = get_payment_gateway().initialize_checkout(
        email=principal.email,
        amount=int(round(pro.trial_charge_amount * 100)),
        callback_url=f"{base_url}/profile",
        metadata={
            "user_id": user_id,
            "plan": PlanName.PRO.value,
            "type": EVENT_TRIAL_FEE,
        },
    )
    if actor is not None:
        record_admin_audit(
            actor,
            "charge_trial_fee",
            target_user_id=user_id,
            target_resource=session.reference,
            payload={"amount": pro.trial_charge_amount},
        )
    logger.info("[trials] fee checkout started", extra={"user_id": user_id, "reference": session.reference})
    return TrialCharge(checkout_url=session.authorization_url, reference=session.reference, amount=pro.trial_charge_amount)
