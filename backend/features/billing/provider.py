"""
Payment gateway protocol.

Defines the interface the subscription and trial services need from a
payment gateway. Amounts are in minor units (kobo for NGN).
"""
from typing import Protocol, Dict, Any, Optional
from dataclasses import dataclass, field
from datetime import datetime

from backend.core.errors import CollaboratorError

EVENT_SUBSCRIPTION = "subscription"
EVENT_TRIAL_FEE = "trial_fee"


@dataclass
class CheckoutSession:
    """A payment page the user is redirected to."""
    authorization_url: str
    reference: str
    access_code: Optional[str] = None


@dataclass
class PaymentEvent:
    """A payment outcome, from either the verify call or the webhook."""
    reference: str
    status: str  # "success", "failed", "abandoned", ...
    event_type: str  # EVENT_SUBSCRIPTION | EVENT_TRIAL_FEE
    user_id: Optional[str]
    plan: Optional[str]
    amount: Optional[int]  # minor units
    currency: Optional[str] = None
    paid_at: Optional[datetime] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == "success"


class PaymentGateway(Protocol):
    """
    Protocol for payment gateways.

    Implementations must handle:
    - Checkout initialization
    - Transaction verification by reference
    - Webhook signature verification and parsing
    """

    def initialize_checkout(
        self,
        email: str,
        amount: int,
        callback_url: str,
        metadata: Dict[str, Any],
        reference: Optional[str] = None,
    ) -> CheckoutSession:
        """
        Start a one-off payment.

        Raises:
            PaymentProviderError: gateway rejected the request or is unreachable
        """
        ...

    def verify_transaction(self, reference: str) -> PaymentEvent:
        """
        Look up the outcome of a payment.

        Raises:
            PaymentProviderError: gateway rejected the request or is unreachable
        """
        ...

    def handle_webhook(self, headers: Dict[str, str], body: bytes) -> Optional[PaymentEvent]:
        """
        Verify webhook signature and parse the event.

        Returns None for events that carry no payment outcome.

        Raises:
            InvalidWebhookSignatureError: signature missing or wrong
            PaymentProviderError: body could not be parsed
        """
        ...


class PaymentProviderError(CollaboratorError):
    code = "payment_provider_error"
