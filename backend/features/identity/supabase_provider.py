"""
Supabase implementation of IdentityProvider.

Talks to the GoTrue admin API with the service-role key:
- GET /auth/v1/admin/users            (paginated list)
- GET /auth/v1/admin/users/{id}
- PUT /auth/v1/admin/users/{id}       ({"user_metadata": patch}, merged server-side)
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from backend.core.config import settings, require_setting
from backend.core.errors import UserNotFoundError
from backend.features.identity.provider import IdentityProviderError, Principal

logger = logging.getLogger("confera")

PAGE_SIZE = 200


def _parse_user(data: Dict[str, Any]) -> Principal:
    metadata = data.get("user_metadata") or {}
    created_at = data.get("created_at")
    return Principal(
        user_id=data["id"],
        email=data.get("email"),
        name=metadata.get("name") or metadata.get("full_name"),
        created_at=datetime.fromisoformat(created_at.replace("Z", "+00:00")) if created_at else None,
        metadata=dict(metadata),
    )


class SupabaseIdentityProvider:
    """GoTrue admin API client."""

    def __init__(self, url: Optional[str] = None, service_role_key: Optional[str] = None, client: Optional[httpx.Client] = None):
        self.url = (url or require_setting("SUPABASE_URL")).rstrip("/")
        self.service_role_key = service_role_key or require_setting("SUPABASE_SERVICE_ROLE_KEY")
        self._client = client or httpx.Client(timeout=10.0)

    def _headers(self) -> Dict[str, str]:
        return {
            "apikey": self.service_role_key,
            "Authorization": f"Bearer {self.service_role_key}",
            "Content-Type": "application/json",
        }

    def _request(self, method: str, path: str, user_id: Optional[str] = None, **kwargs) -> Dict[str, Any]:
        try:
            response = self._client.request(method, f"{self.url}{path}", headers=self._headers(), **kwargs)
        except httpx.HTTPError as e:
            raise IdentityProviderError(f"Identity provider unreachable: {e.__class__.__name__}")

        if response.status_code == 404 and user_id:
            raise UserNotFoundError(f"User {user_id} not found")
        if response.status_code >= 300:
            logger.warning(
                "[identity] request failed",
                extra={"method": method, "path": path, "status": response.status_code},
            )
            raise IdentityProviderError(f"Identity provider error: {response.status_code}")
        return response.json()

    def get_user(self, user_id: str) -> Principal:
        return _parse_user(self._request("GET", f"/auth/v1/admin/users/{user_id}", user_id=user_id))

    def list_users(self) -> List[Principal]:
        users: List[Principal] = []
        page = 1
        while True:
            data = self._request("GET", "/auth/v1/admin/users", params={"page": page, "per_page": PAGE_SIZE})
            batch = data.get("users") or []
            users.extend(_parse_user(u) for u in batch)
            if len(batch) < PAGE_SIZE:
                return users
            page += 1

    def update_metadata(self, user_id: str, patch: Dict[str, Any]) -> Principal:
        data = self._request(
            "PUT",
            f"/auth/v1/admin/users/{user_id}",
            user_id=user_id,
            json={"user_metadata": patch},
        )
        logger.info("[identity] metadata updated", extra={"user_id": user_id, "keys": sorted(patch)})
        return _parse_user(data)
