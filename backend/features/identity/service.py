"""
Identity provider registry and entitlement persistence.

Routes and services never construct provider clients themselves; they
call get_identity_provider(). Tests install a fake with
set_identity_provider_for_tests().
"""
import logging
from typing import Any, Dict, Optional

from backend.features.identity.provider import IdentityProvider, Principal
from backend.models.entitlement import UserEntitlement

logger = logging.getLogger("confera")

_provider_override: Optional[IdentityProvider] = None
_provider: Optional[IdentityProvider] = None


def set_identity_provider_for_tests(provider: Optional[IdentityProvider]) -> None:
    """Set or clear the provider override (no network in tests)."""
    global _provider_override, _provider
    _provider_override = provider
    _provider = None


def get_identity_provider() -> IdentityProvider:
    """
    Get the configured identity provider.

    Raises:
        ConfigurationError: Supabase URL or service key missing
    """
    global _provider
    if _provider_override is not None:
        return _provider_override
    if _provider is None:
        from backend.features.identity.supabase_provider import SupabaseIdentityProvider
        _provider = SupabaseIdentityProvider()
    return _provider


def load_entitlement(user_id: str) -> UserEntitlement:
    """Fetch a user's metadata and validate it into a UserEntitlement."""
    principal = get_identity_provider().get_user(user_id)
    return UserEntitlement.from_metadata(principal.user_id, principal.metadata)


def load_principal(user_id: str) -> Principal:
    return get_identity_provider().get_user(user_id)


def write_metadata(user_id: str, patch: Dict[str, Any]) -> UserEntitlement:
    """Persist a metadata patch and return the resulting entitlement."""
    principal = get_identity_provider().update_metadata(user_id, patch)
    return UserEntitlement.from_metadata(principal.user_id, principal.metadata)
