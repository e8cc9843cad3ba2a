"""Call provider registry."""
from typing import Optional

from backend.features.calls.provider import CallProvider
from backend.models.call import CallSnapshot

_provider_override: Optional[CallProvider] = None
_provider: Optional[CallProvider] = None


def set_call_provider_for_tests(provider: Optional[CallProvider]) -> None:
    global _provider_override, _provider
    _provider_override = provider
    _provider = None


def get_call_provider() -> CallProvider:
    global _provider
    if _provider_override is not None:
        return _provider_override
    if _provider is None:
        from backend.features.calls.stream_provider import StreamCallProvider
        _provider = StreamCallProvider()
    return _provider


def fetch_call(call_type: str, call_id: str) -> CallSnapshot:
    return get_call_provider().get_call(call_type, call_id)
