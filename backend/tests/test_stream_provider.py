"""StreamCallProvider against a mocked Stream Video API."""

import httpx
import jwt
import pytest

from backend.features.calls.provider import CallNotFoundError, CallProviderError
from backend.features.calls.stream_provider import StreamCallProvider


def _provider(handler):
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return StreamCallProvider(api_key="key", secret_key="secret", base_url="https://video.stream.test", client=client)


def test_get_call_counts_members():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["api_key"] = request.url.params["api_key"]
        seen["claims"] = jwt.decode(request.headers["authorization"], "secret", algorithms=["HS256"])
        return httpx.Response(200, json={
            "call": {"id": "c1", "type": "invited"},
            "members": [
                {"user_id": "u1"},
                {"user": {"id": "u2"}},
                {"user_id": "u3"},
            ],
        })

    call = _provider(handler).get_call("invited", "c1")

    assert seen["path"] == "/api/v2/video/call/invited/c1"
    assert seen["api_key"] == "key"
    assert seen["claims"] == {"server": True}
    assert call.participant_count == 3
    assert call.member_ids == frozenset({"u1", "u2", "u3"})
    assert call.is_group


def test_missing_call_raises_not_found():
    with pytest.raises(CallNotFoundError):
        _provider(lambda r: httpx.Response(404, json={})).get_call("default", "nope")


def test_api_failure_raises_provider_error():
    with pytest.raises(CallProviderError):
        _provider(lambda r: httpx.Response(503, json={})).get_call("default", "c1")
