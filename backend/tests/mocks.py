"""In-memory collaborators for tests (no network)."""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from backend.core.errors import UserNotFoundError
from backend.features.billing.paystack_provider import PaystackProvider
from backend.features.billing.provider import CheckoutSession, PaymentEvent
from backend.features.calls.provider import CallNotFoundError
from backend.features.identity.provider import IdentityProviderError, Principal
from backend.models.call import CallSnapshot

WEBHOOK_SECRET = "sk_test_webhook_secret"


class InMemoryIdentityProvider:
    """Merges metadata patches like GoTrue: None deletes a key."""

    def __init__(self):
        self.users: Dict[str, Principal] = {}
        self.updates: List[Dict[str, Any]] = []
        self.fail_writes = False

    def add_user(
        self,
        user_id: str,
        email: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        name: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> Principal:
        principal = Principal(
            user_id=user_id,
            email=email if email is not None else f"{user_id}@confera.test",
            name=name,
            created_at=created_at or datetime(2024, 1, 1, tzinfo=timezone.utc),
            metadata=dict(metadata or {}),
        )
        self.users[user_id] = principal
        return principal

    def metadata(self, user_id: str) -> Dict[str, Any]:
        return dict(self.users[user_id].metadata)

    def get_user(self, user_id: str) -> Principal:
        if user_id not in self.users:
            raise UserNotFoundError(f"User {user_id} not found")
        return self.users[user_id]

    def list_users(self) -> List[Principal]:
        return list(self.users.values())

    def update_metadata(self, user_id: str, patch: Dict[str, Any]) -> Principal:
        if self.fail_writes:
            raise IdentityProviderError("Identity provider error: 500")
        principal = self.get_user(user_id)
        for key, value in patch.items():
            if value is None:
                principal.metadata.pop(key, None)
            else:
                principal.metadata[key] = value
        self.updates.append({"user_id": user_id, "patch": dict(patch)})
        return principal


class FakeGateway:
    """Records checkouts; verify returns seeded transactions; webhooks use real Paystack signing."""

    def __init__(self, webhook_secret: str = WEBHOOK_SECRET):
        self.webhook_secret = webhook_secret
        self.checkouts: List[Dict[str, Any]] = []
        self.transactions: Dict[str, PaymentEvent] = {}
        self._paystack = PaystackProvider(secret_key=webhook_secret, base_url="https://paystack.test")

    def initialize_checkout(self, email, amount, callback_url, metadata, reference=None) -> CheckoutSession:
        ref = reference or f"ref_{len(self.checkouts) + 1}"
        self.checkouts.append({
            "email": email,
            "amount": amount,
            "callback_url": callback_url,
            "metadata": dict(metadata),
            "reference": ref,
        })
        return CheckoutSession(authorization_url=f"https://checkout.paystack.test/{ref}", reference=ref)

    def add_transaction(self, event: PaymentEvent) -> None:
        self.transactions[event.reference] = event

    def verify_transaction(self, reference: str) -> PaymentEvent:
        return self.transactions[reference]

    def handle_webhook(self, headers, body):
        return self._paystack.handle_webhook(headers, body)


class FakeCallProvider:

    def __init__(self):
        self.calls: Dict[str, CallSnapshot] = {}

    def add_call(self, call_id: str, call_type: str = "default", participant_count: int = 0, member_ids=()) -> CallSnapshot:
        snapshot = CallSnapshot(
            call_id=call_id,
            call_type=call_type,
            participant_count=participant_count,
            member_ids=frozenset(member_ids),
        )
        self.calls[f"{call_type}:{call_id}"] = snapshot
        return snapshot

    def get_call(self, call_type: str, call_id: str) -> CallSnapshot:
        key = f"{call_type}:{call_id}"
        if key not in self.calls:
            raise CallNotFoundError(f"Call {key} not found")
        return self.calls[key]
