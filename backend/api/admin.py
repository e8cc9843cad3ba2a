"""
Admin API routes for users, plans and trials.

All routes require an admin (Supabase JWT with role "admin", or the
legacy X-Admin-Key header where allowed).
"""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from backend.core.admin_auth import AdminActor, require_admin
from backend.features.admin.service import (
    initialize_user,
    list_users,
    set_user_plan,
    subscription_stats,
)
from backend.features.audit.service import list_admin_audit
from backend.features.trials.service import charge_trial_fee, end_trial, start_trial, trial_phase
from backend.models.entitlement import UserEntitlement
from backend.models.plan import PlanName

router = APIRouter(prefix="/admin", tags=["admin"])


class SetUserPlanRequest(BaseModel):
    plan: PlanName
    active: bool


class TrialChargeResponse(BaseModel):
    checkout_url: str
    reference: str
    amount: float


def _entitlement_view(entitlement: Optional[UserEntitlement]) -> Optional[dict]:
    if entitlement is None:
        return None
    trial = entitlement.trial
    return {
        "plan": entitlement.plan.value,
        "active": entitlement.active,
        "pending": entitlement.pending,
        "provider": entitlement.provider,
        "reference": entitlement.payment_reference,
        "activated_at": entitlement.activated_at,
        "role": entitlement.role,
        "trial_phase": trial_phase(entitlement).value,
        "trial_ends_at": trial.ends_at if trial else None,
        "trial_fee_paid": trial.fee_paid if trial else False,
    }


@router.get("/users")
def get_users(actor: AdminActor = Depends(require_admin)) -> dict:
    users = list_users()
    return {
        "count": len(users),
        "users": [
            {
                "user_id": u["user_id"],
                "email": u["email"],
                "name": u["name"],
                "created_at": u["created_at"],
                "entitlement": _entitlement_view(u["entitlement"]),
            }
            for u in users
        ],
    }


@router.put("/users/{user_id}/plan")
def put_user_plan(user_id: str, body: SetUserPlanRequest, actor: AdminActor = Depends(require_admin)) -> dict:
    entitlement = set_user_plan(user_id, body.plan.value, body.active, actor)
    return {"user_id": user_id, "entitlement": _entitlement_view(entitlement)}


@router.post("/users/{user_id}/init")
def init_user(user_id: str, actor: AdminActor = Depends(require_admin)) -> dict:
    """Sign-up hook: free/inactive unless the user already has a plan."""
    entitlement = initialize_user(user_id)
    return {"user_id": user_id, "entitlement": _entitlement_view(entitlement)}


@router.get("/stats")
def get_stats(actor: AdminActor = Depends(require_admin)) -> dict:
    return subscription_stats()


@router.get("/audit")
def get_audit(
    action: Optional[str] = None,
    user_id: Optional[str] = None,
    limit: int = Query(100, ge=1, le=500),
    actor: AdminActor = Depends(require_admin),
) -> dict:
    rows = list_admin_audit(action=action, target_user_id=user_id, limit=limit)
    return {"count": len(rows), "events": rows}


@router.post("/trials/{user_id}/start")
def post_start_trial(user_id: str, actor: AdminActor = Depends(require_admin)) -> dict:
    entitlement = start_trial(user_id, actor=actor)
    return {"user_id": user_id, "entitlement": _entitlement_view(entitlement)}


@router.post("/trials/{user_id}/end")
def post_end_trial(user_id: str, actor: AdminActor = Depends(require_admin)) -> dict:
    entitlement = end_trial(user_id, actor=actor)
    return {"user_id": user_id, "entitlement": _entitlement_view(entitlement)}


@router.post("/trials/{user_id}/charge", response_model=TrialChargeResponse)
def post_charge_trial(user_id: str, actor: AdminActor = Depends(require_admin)):
    charge = charge_trial_fee(user_id, actor=actor)
    return TrialChargeResponse(checkout_url=charge.checkout_url, reference=charge.reference, amount=charge.amount)
