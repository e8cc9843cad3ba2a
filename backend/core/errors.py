"""Application errors and FastAPI handlers.

Every domain failure surfaces as an AppError subclass carrying a stable
`code` and HTTP `status_code`. Evaluator denials are NOT errors; they are
returned as decision values by the entitlements service.
"""

import logging
import builtins
from typing import Optional
from uuid import uuid4

from fastapi import HTTPException
from fastapi.responses import JSONResponse
from starlette.requests import Request

from backend.core.logging import get_request_id


class AppError(Exception):
    code = "app_error"
    status_code = 500

    def __init__(self, message: str, *, code: Optional[str] = None, status_code: Optional[int] = None, request_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.request_id = request_id


class ValidationError(AppError, ValueError):
    code = "validation_error"
    status_code = 400


class NotFoundError(AppError, ValueError):
    code = "not_found"
    status_code = 404


class PermissionError(AppError, builtins.PermissionError):
    code = "forbidden"
    status_code = 403


class ConfigUnavailableError(AppError):
    """Global plan configuration could not be read from the store."""
    code = "config_unavailable"
    status_code = 503


class NoAdminPrincipalError(PermissionError):
    """An admin-only write was attempted without an admin principal."""
    code = "no_admin_principal"
    status_code = 403


class TrialChargeDisabledError(AppError):
    code = "trial_charge_disabled"
    status_code = 400


class InvalidWebhookSignatureError(AppError):
    code = "invalid_webhook_signature"
    status_code = 401


class PaymentVerificationFailedError(AppError):
    code = "payment_verification_failed"
    status_code = 400


class ConfigurationError(AppError):
    """A collaborator credential or URL required by the operation is missing."""
    code = "configuration_error"
    status_code = 503


class InvalidEntitlementMetadataError(AppError):
    code = "invalid_entitlement_metadata"
    status_code = 422


class CollaboratorError(AppError):
    """An external collaborator (identity, payment, video) failed."""
    code = "collaborator_unavailable"
    status_code = 502


class UserNotFoundError(NotFoundError):
    code = "user_not_found"
    status_code = 404


def _extract_request_id(request: Request, fallback: Optional[str] = None) -> str:
    return (
        getattr(request.state, "request_id", None)
        or get_request_id()
        or fallback
        or str(uuid4())
    )


def _error_payload(code: str, message: str, request_id: str) -> dict:
    return {
        "error": {"code": code, "message": message, "request_id": request_id},
        "detail": message,
    }


def _json_error(status_code: int, code: str, message: str, rid: str) -> JSONResponse:
    response = JSONResponse(status_code=status_code, content=_error_payload(code, message, rid))
    response.headers["x-request-id"] = rid
    return response


async def app_error_handler(request: Request, exc: AppError):
    rid = exc.request_id or _extract_request_id(request)
    logger = logging.getLogger("confera")
    log_level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(
        log_level,
        "app.error",
        extra={"request_id": rid, "error_code": exc.code, "error_message": exc.message, "status": exc.status_code},
    )
    return _json_error(exc.status_code, exc.code, exc.message, rid)


async def http_error_handler(request: Request, exc: HTTPException):
    rid = _extract_request_id(request)
    code = "not_found" if exc.status_code == 404 else "http_error"
    message = exc.detail if exc.detail else "HTTP error"
    logger = logging.getLogger("confera")
    logger.warning("http.error", extra={"request_id": rid, "error_code": code, "status": exc.status_code})
    return _json_error(exc.status_code, code, message, rid)


async def unhandled_exception_handler(request: Request, exc: Exception):
    rid = _extract_request_id(request)
    logger = logging.getLogger("confera")
    logger.error("unhandled.exception", exc_info=True, extra={"request_id": rid, "error_code": "internal_error"})
    return _json_error(500, "internal_error", "Unexpected error", rid)
