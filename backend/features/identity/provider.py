"""
Identity provider protocol.

The identity provider owns user accounts and stores each user's
subscription state as key/value metadata. Implementations must merge a
metadata patch into the stored metadata (keys not in the patch survive).
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

from backend.core.errors import CollaboratorError


@dataclass
class Principal:
    """An identity-provider user."""
    user_id: str
    email: Optional[str] = None
    name: Optional[str] = None
    created_at: Optional[datetime] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class IdentityProvider(Protocol):

    def get_user(self, user_id: str) -> Principal:
        """
        Fetch one user.

        Raises:
            UserNotFoundError: unknown user_id
            IdentityProviderError: transport or API failure
        """
        ...

    def list_users(self) -> List[Principal]:
        """Return every user (all pages)."""
        ...

    def update_metadata(self, user_id: str, patch: Dict[str, Any]) -> Principal:
        """
        Merge `patch` into the user's metadata and return the updated user.

        Raises:
            UserNotFoundError: unknown user_id
            IdentityProviderError: transport or API failure
        """
        ...


class IdentityProviderError(CollaboratorError):
    code = "identity_provider_error"
