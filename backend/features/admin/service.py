"""
Administrator operations on user subscriptions.

Handles:
- User listing with parsed entitlements
- Manual plan override (audited)
- Sign-up initialization (free/inactive)
- Subscription statistics for the admin dashboard
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from backend.core.admin_auth import AdminActor
from backend.core.errors import InvalidEntitlementMetadataError, NoAdminPrincipalError
from backend.features.audit.service import record_admin_audit
from backend.features.billing.service import plan_price_usd
from backend.features.identity.provider import Principal
from backend.features.identity.service import get_identity_provider, load_principal, write_metadata
from backend.models.entitlement import KEY_PLAN, UserEntitlement, subscription_metadata
from backend.models.plan import PlanName

logger = logging.getLogger("confera")

ADMIN_PROVIDER = "admin"
RECENT_WINDOW = timedelta(days=7)


def _entitlement_or_none(principal: Principal) -> Optional[UserEntitlement]:
    try:
        return UserEntitlement.from_metadata(principal.user_id, principal.metadata)
    except InvalidEntitlementMetadataError as e:
        logger.warning("[admin] skipping user with invalid metadata", extra={"user_id": principal.user_id, "error": e.message})
        return None


def list_users() -> List[Dict[str, Any]]:
    rows = []
    for principal in get_identity_provider().list_users():
        entitlement = _entitlement_or_none(principal)
        rows.append({
            "user_id": principal.user_id,
            "email": principal.email,
            "name": principal.name,
            "created_at": principal.created_at,
            "entitlement": entitlement,
        })
    return rows


def set_user_plan(user_id: str, plan: str, active: bool, actor: Optional[AdminActor], now: Optional[datetime] = None) -> UserEntitlement:
    """
    Override a user's plan.

    An active paid plan is recorded with provider "admin" and a synthetic
    reference; anything else clears both.
    """
    if actor is None:
        raise NoAdminPrincipalError("Changing a user's plan requires an administrator")

    plan_name = PlanName(plan)
    stamped = now or datetime.now(timezone.utc)
    paid = active and plan_name != PlanName.FREE
    reference = f"admin-{int(stamped.timestamp() * 1000)}" if paid else None

    entitlement = write_metadata(
        user_id,
        subscription_metadata(
            plan=plan_name,
            active=active,
            provider=ADMIN_PROVIDER if paid else None,
            reference=reference,
            activated_at=stamped if active else None,
        ),
    )
    record_admin_audit(
        actor,
        "set_user_plan",
        target_user_id=user_id,
        target_resource=plan_name.value,
        payload={"plan": plan_name.value, "active": active, "reference": reference},
    )
    logger.info("[admin] plan override", extra={"user_id": user_id, "plan": plan_name.value, "active": active})
    return entitlement


def initialize_user(user_id: str) -> UserEntitlement:
    """Give a new user free/inactive metadata unless a plan is already set."""
    principal = load_principal(user_id)
    if principal.metadata.get(KEY_PLAN):
        return UserEntitlement.from_metadata(principal.user_id, principal.metadata)

    entitlement = write_metadata(
        user_id,
        subscription_metadata(plan=PlanName.FREE, active=False, provider=None, reference=None, activated_at=None),
    )
    logger.info("[admin] user initialized", extra={"user_id": user_id})
    return entitlement


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def subscription_stats(now: Optional[datetime] = None) -> Dict[str, Any]:
    """Totals, paid breakdown, recent growth, active trials and MRR (USD)."""
    current = _aware(now) or datetime.now(timezone.utc)
    since = current - RECENT_WINDOW

    stats: Dict[str, Any] = {
        "total_users": 0,
        "active_subscribers": 0,
        "pro_subscribers": 0,
        "business_subscribers": 0,
        "new_users_last_7d": 0,
        "new_subscriptions_last_7d": 0,
        "trials_active": 0,
        "invalid_metadata": 0,
        "mrr_usd": 0.0,
    }

    for principal in get_identity_provider().list_users():
        stats["total_users"] += 1
        created = _aware(principal.created_at)
        if created and created >= since:
            stats["new_users_last_7d"] += 1

        entitlement = _entitlement_or_none(principal)
        if entitlement is None:
            stats["invalid_metadata"] += 1
            continue

        if entitlement.trial is not None and entitlement.trial.is_current(current):
            stats["trials_active"] += 1

        if not entitlement.active:
            continue
        stats["active_subscribers"] += 1
        if entitlement.plan == PlanName.PRO:
            stats["pro_subscribers"] += 1
        elif entitlement.plan == PlanName.BUSINESS:
            stats["business_subscribers"] += 1

        activated = _aware(entitlement.activated_at)
        if activated and activated >= since and entitlement.plan != PlanName.FREE:
            stats["new_subscriptions_last_7d"] += 1

    stats["mrr_usd"] = (
        stats["pro_subscribers"] * plan_price_usd(PlanName.PRO)
        + stats["business_subscribers"] * plan_price_usd(PlanName.BUSINESS)
    )
    return stats
