"""
Stream Video implementation of CallProvider.

Server-side requests are authenticated with a JWT signed by the API
secret ({"server": true}, HS256) and the api_key query parameter.
"""
import logging
from typing import Any, Dict, Optional

import httpx
import jwt

from backend.core.config import settings, require_setting
from backend.features.calls.provider import CallNotFoundError, CallProviderError
from backend.models.call import CallSnapshot

logger = logging.getLogger("confera")


def create_server_token(secret: str) -> str:
    return jwt.encode({"server": True}, secret, algorithm="HS256")


def _parse_call(call_type: str, call_id: str, data: Dict[str, Any]) -> CallSnapshot:
    members = data.get("members") or []
    member_ids = frozenset(
        m.get("user_id") or (m.get("user") or {}).get("id")
        for m in members
        if m.get("user_id") or (m.get("user") or {}).get("id")
    )
    call = data.get("call") or {}
    return CallSnapshot(
        call_id=call.get("id") or call_id,
        call_type=call.get("type") or call_type,
        participant_count=len(members),
        member_ids=member_ids,
    )


class StreamCallProvider:
    """Stream Video REST client (read-only)."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        base_url: Optional[str] = None,
        client: Optional[httpx.Client] = None,
    ):
        self.api_key = api_key or require_setting("STREAM_API_KEY")
        self.secret_key = secret_key or require_setting("STREAM_SECRET_KEY")
        self.base_url = (base_url or settings.STREAM_BASE_URL).rstrip("/")
        self._client = client or httpx.Client(timeout=10.0)

    def get_call(self, call_type: str, call_id: str) -> CallSnapshot:
        url = f"{self.base_url}/api/v2/video/call/{call_type}/{call_id}"
        headers = {
            "Authorization": create_server_token(self.secret_key),
            "stream-auth-type": "jwt",
        }
        try:
            response = self._client.get(url, params={"api_key": self.api_key}, headers=headers)
        except httpx.HTTPError as e:
            raise CallProviderError(f"Call provider unreachable: {e.__class__.__name__}")

        if response.status_code == 404:
            raise CallNotFoundError(f"Call {call_type}:{call_id} not found")
        if response.status_code >= 300:
            logger.warning("[calls] request failed", extra={"call_id": call_id, "status": response.status_code})
            raise CallProviderError(f"Call provider error: {response.status_code}")

        return _parse_call(call_type, call_id, response.json())
