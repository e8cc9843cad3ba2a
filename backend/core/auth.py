"""
Auth utilities for the Confera API.

Validates Supabase JWTs and extracts user_id from request context.
Outside production, falls back to the X-User-Id header (tests, local tools).
"""
import logging
from typing import Optional

import jwt
from fastapi import Header, HTTPException, Request

from backend.core.config import settings
from backend.core.supabase_auth import verify_jwt_token

logger = logging.getLogger("confera")


def verify_user_jwt(token: str) -> str:
    """
    Verify a Supabase JWT and extract user_id.

    Raises:
        HTTPException 401: Invalid or expired token
    """
    try:
        claims = verify_jwt_token(token)
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.PyJWTError as e:
        logger.debug("Invalid token", extra={"error": str(e)})
        raise HTTPException(status_code=401, detail="Invalid token")

    return claims["sub"]


async def get_current_user_id(
    request: Request,
    x_user_id: Optional[str] = Header(None, description="Non-production: test user ID")
) -> str:
    """
    Extract current user ID from request context.

    Priority:
    1. Supabase JWT from Authorization header
    2. X-User-Id header (not honoured in production)
    3. Raise 401 Unauthorized
    """
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return verify_user_jwt(auth_header[7:].strip())

    if x_user_id and settings.ENV.lower() != "production":
        return x_user_id

    raise HTTPException(
        status_code=401,
        detail="Missing Authorization (Bearer JWT) header",
    )
