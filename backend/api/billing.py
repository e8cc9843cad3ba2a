"""
Billing API routes.

- POST /api/billing/checkout: Start a Paystack checkout for a paid plan
- GET  /api/billing/verify:   Verify a payment after the gateway redirect
- POST /api/billing/webhook:  Paystack webhook (HMAC-SHA512 signed)

Domain errors propagate as AppError and are rendered by the app's
exception handlers (invalid signature -> 401, failed verification -> 400,
missing configuration -> 503).
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel

from backend.core.auth import get_current_user_id
from backend.features.billing.service import (
    ActivationResult,
    process_webhook,
    start_checkout,
    verify_payment,
)
from backend.models.plan import PlanName


router = APIRouter(prefix="/billing", tags=["billing"])


class CheckoutRequest(BaseModel):
    plan: PlanName


class CheckoutResponse(BaseModel):
    authorization_url: str
    reference: str


class ActivationResponse(BaseModel):
    reference: str
    status: str  # applied | duplicate
    event_type: str
    plan: Optional[str] = None


def _activation(result: ActivationResult) -> ActivationResponse:
    return ActivationResponse(
        reference=result.reference,
        status=result.status,
        event_type=result.event_type,
        plan=result.plan,
    )


@router.post("/checkout", response_model=CheckoutResponse)
def create_checkout(body: CheckoutRequest, user_id: str = Depends(get_current_user_id)):
    """
    Start checkout for pro or business.

    Returns:
        {"authorization_url": "https://checkout.paystack.com/...", "reference": "..."}
    """
    session = start_checkout(user_id, body.plan.value)
    return CheckoutResponse(authorization_url=session.authorization_url, reference=session.reference)


@router.get("/verify", response_model=ActivationResponse)
def verify(reference: str = Query(..., min_length=1), user_id: str = Depends(get_current_user_id)):
    return _activation(verify_payment(reference, user_id=user_id))


@router.post("/webhook")
async def handle_webhook(request: Request):
    """
    Handle Paystack webhook events.

    The raw body is read here (needed for signature verification); the
    blocking verification and activation run in the threadpool.
    """
    body = await request.body()
    result = await run_in_threadpool(process_webhook, dict(request.headers), body)
    if result is None:
        return {"received": True, "status": "ignored"}
    return {"received": True, "status": result.status, "reference": result.reference}
