"""
Supabase JWT verification.

Handles:
- HS256 signature verification with the project's JWT secret
- Audience validation ("authenticated" for signed-in users)
- Role extraction from user_metadata
- Test helpers for deterministic testing (no network)
"""
import time
from typing import Dict, Any, Optional

import jwt

from backend.core.config import settings


def verify_jwt_token(token: str, *, secret: Optional[str] = None) -> Dict[str, Any]:
    """
    Verify a Supabase access token and return its claims.

    Raises jwt.PyJWTError on invalid token (bad signature, expired, wrong audience).

    Args:
        token: Raw JWT string (without "Bearer " prefix)
        secret: Override for SUPABASE_JWT_SECRET

    Returns:
        Decoded claims dict with keys: sub, email, user_metadata, role, etc.
    """
    key = secret or settings.SUPABASE_JWT_SECRET
    if not key:
        raise jwt.PyJWTError("SUPABASE_JWT_SECRET must be configured to verify tokens")

    return jwt.decode(
        token,
        key,
        algorithms=["HS256"],
        audience=settings.SUPABASE_JWT_AUDIENCE,
        options={"verify_signature": True, "verify_exp": True, "require": ["sub", "exp"]},
    )


def is_admin_user(claims: Dict[str, Any]) -> bool:
    """
    Check if JWT claims represent an admin user.

    Only app_metadata.role counts. app_metadata can be written with the
    service role key alone; user_metadata is writable by the signed-in
    user through auth.updateUser and is ignored here.
    """
    app_metadata = claims.get("app_metadata", {})
    return isinstance(app_metadata, dict) and app_metadata.get("role") == "admin"


# ============================================================================
# Test Helpers (deterministic, no network)
# ============================================================================

def create_test_jwt(
    sub: str = "test_user_123",
    email: Optional[str] = "test@example.com",
    role: Optional[str] = None,
    exp_minutes: int = 60,
    secret: Optional[str] = None,
    audience: Optional[str] = None,
) -> str:
    """
    Create a Supabase-shaped HS256 JWT for unit testing.

    Args:
        sub: User ID (subject)
        email: User email
        role: Role to set in app_metadata (e.g. "admin")
        exp_minutes: Expiration time in minutes from now (negative for expired)
        secret: Signing secret (defaults to SUPABASE_JWT_SECRET)
        audience: Audience claim (defaults to SUPABASE_JWT_AUDIENCE)
    """
    now = int(time.time())
    payload = {
        "sub": sub,
        "email": email,
        "iat": now,
        "exp": now + (exp_minutes * 60),
        "aud": audience or settings.SUPABASE_JWT_AUDIENCE,
        "role": "authenticated",
        "app_metadata": {"provider": "email"},
        "user_metadata": {},
    }
    if role:
        payload["app_metadata"]["role"] = role

    return jwt.encode(payload, secret or settings.SUPABASE_JWT_SECRET or "test-jwt-secret", algorithm="HS256")
