"""
Gateway client interface.

The payment gateway is an external collaborator. The orchestrator
only ever sees this interface; whether it is backed by the
simulator or the live REST API is decided once, at construction.

Every initiate_* call either returns a GatewayAck (accepted with a
request id, or synchronously rejected with a reason) or raises
GatewayUnavailable when the gateway could not be reached. The
``reference`` argument is our idempotency key: repeating a call
with the same reference must not move money twice.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from mobile_payments.models.enums import CallbackOutcome, PaymentLeg


@dataclass(frozen=True)
class GatewayAck:
    accepted: bool
    request_id: Optional[str] = None
    reason: Optional[str] = None


@dataclass(frozen=True)
class GatewayStatus:
    """Current state of a request; outcome None means still pending."""
    request_id: str
    leg: PaymentLeg
    outcome: Optional[CallbackOutcome] = None
    reported_amount: Optional[int] = None
    reason: Optional[str] = None

    @property
    def is_final(self) -> bool:
        return self.outcome is not None


class GatewayClient(ABC):

    @abstractmethod
    def initiate_collection(
        self, payer_reference: str, amount: int, reference: str
    ) -> GatewayAck:
        """Push a payment prompt to the payer's handset."""

    @abstractmethod
    def initiate_disbursement(
        self, payee_reference: str, amount: int, reference: str
    ) -> GatewayAck:
        """Send money from the platform to the payee."""

    @abstractmethod
    def initiate_reversal(
        self, collection_request_id: str, amount: int, reference: str
    ) -> GatewayAck:
        """Return a collected amount to the payer."""

    @abstractmethod
    def query_status(self, leg: PaymentLeg, request_id: str) -> GatewayStatus:
        """Poll the outcome of an earlier request."""

    def close(self) -> None:
        pass
