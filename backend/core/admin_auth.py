"""
Admin authentication for catalog, trial and plan override operations.

Supports hybrid authentication:
- Supabase JWT (preferred): Bearer token whose app_metadata.role is "admin"
- Legacy X-Admin-Key: shared secret for scripts and local development

Auth modes (ADMIN_AUTH_MODE):
- "jwt": Only Supabase JWT allowed
- "legacy": Only X-Admin-Key allowed (testing/migration)
- "hybrid": Both allowed (default)

In production (ENV=production) the legacy key is blocked in hybrid mode.
All admin writes are audited with the actor identity.
"""
import hashlib
import hmac
import logging
from dataclasses import dataclass
from typing import Optional, Literal

import jwt
from fastapi import Request, HTTPException

from backend.core.config import settings

logger = logging.getLogger("confera")


@dataclass
class AdminActor:
    """Represents an authenticated admin actor."""
    actor_type: Literal["supabase", "legacy_key"]
    actor_id: str  # Supabase user ID or "legacy:<hash>"
    actor_email: Optional[str] = None
    actor_display: Optional[str] = None
    auth_mechanism: Literal["supabase_jwt", "x_admin_key"] = "supabase_jwt"


def verify_legacy_key(request: Request) -> Optional[AdminActor]:
    """
    Verify legacy X-Admin-Key header.
    Returns AdminActor if valid, None if not present/invalid.
    """
    expected_key = settings.ADMIN_KEY
    if not expected_key:
        return None

    header_key = request.headers.get("X-Admin-Key", "").strip()
    if not header_key or not hmac.compare_digest(header_key, expected_key):
        return None

    key_hash = hashlib.sha256(header_key.encode()).hexdigest()[:16]
    return AdminActor(
        actor_type="legacy_key",
        actor_id=f"legacy:{key_hash}",
        actor_display="Legacy Admin Key",
        auth_mechanism="x_admin_key"
    )


def verify_admin_jwt(request: Request) -> Optional[AdminActor]:
    """
    Verify a Supabase JWT from the Authorization header.
    Returns AdminActor if valid and admin, None otherwise.
    """
    from backend.core.supabase_auth import verify_jwt_token, is_admin_user

    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None

    token = auth_header[7:].strip()
    if not token:
        return None

    try:
        claims = verify_jwt_token(token)
    except jwt.PyJWTError as e:
        logger.debug("Admin JWT rejected", extra={"error": str(e)})
        return None

    if not is_admin_user(claims):
        return None

    return AdminActor(
        actor_type="supabase",
        actor_id=claims.get("sub", "unknown"),
        actor_email=claims.get("email"),
        actor_display=(claims.get("user_metadata") or {}).get("name") or claims.get("email"),
        auth_mechanism="supabase_jwt"
    )


def get_admin_actor(request: Request) -> Optional[AdminActor]:
    """
    Attempt to authenticate admin from request.
    Returns AdminActor or None (does not raise).

    Order of preference:
    1. Supabase JWT (if ADMIN_AUTH_MODE in {"jwt", "hybrid"})
    2. Legacy key (if ADMIN_AUTH_MODE in {"legacy", "hybrid"} AND env allows)
    """
    mode = settings.ADMIN_AUTH_MODE.lower()
    env = settings.ENV.lower()

    if mode in {"jwt", "hybrid"}:
        actor = verify_admin_jwt(request)
        if actor:
            return actor

    if mode in {"legacy", "hybrid"}:
        if env == "production" and mode != "legacy":
            return None
        return verify_legacy_key(request)

    return None


def require_admin(request: Request) -> AdminActor:
    """
    FastAPI dependency: Require admin authentication.
    Raises HTTPException if authentication fails.

    Usage:
        @router.put("/admin/plans/catalog")
        def put_catalog(actor: AdminActor = Depends(require_admin)):
            ...
    """
    actor = get_admin_actor(request)

    if not actor:
        mode = settings.ADMIN_AUTH_MODE.lower()

        has_jwt = bool(settings.SUPABASE_JWT_SECRET)
        has_legacy = bool(settings.ADMIN_KEY)

        if not has_jwt and not has_legacy:
            raise HTTPException(
                status_code=503,
                detail="Admin authentication not configured: set SUPABASE_JWT_SECRET or ADMIN_KEY",
            )

        raise HTTPException(
            status_code=401,
            detail=f"Unauthorized: invalid or missing admin credentials (mode: {mode})",
        )

    return actor
