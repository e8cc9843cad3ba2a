"""
Video call provider protocol.

Only read access is needed: participant counts and membership feed the
entitlement evaluator. Call creation and media stay with the client SDK.
"""
from typing import Protocol

from backend.core.errors import CollaboratorError, NotFoundError
from backend.models.call import CallSnapshot


class CallProvider(Protocol):

    def get_call(self, call_type: str, call_id: str) -> CallSnapshot:
        """
        Fetch a call snapshot.

        Raises:
            CallNotFoundError: no such call
            CallProviderError: transport or API failure
        """
        ...


class CallProviderError(CollaboratorError):
    code = "call_provider_error"


class CallNotFoundError(NotFoundError):
    code = "call_not_found"
