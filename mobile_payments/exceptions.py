"""
Payment error hierarchy.

Validation errors also derive from ValueError so that callers
which only know about ValueError still reject them as bad input.
"""


class PaymentError(Exception):
    """Base exception for all payment errors."""


class InvalidAmount(PaymentError, ValueError):
    """Raised when a gross amount cannot be split into a valid payment."""


class InvalidPaymentRequest(PaymentError, ValueError):
    """Raised when payer/payee references are missing or identical."""


class TransactionNotFound(PaymentError):
    """Raised when a transaction id does not exist."""


class ReviewItemNotFound(PaymentError):
    """Raised when a review queue item id does not exist."""


class InvalidTransition(PaymentError):
    """Raised when a status change is not an edge of the state machine."""


class StaleVersion(PaymentError):
    """Raised when a transaction was modified since it was read."""


class GatewayUnavailable(PaymentError):
    """Raised when the gateway cannot be reached or is overloaded."""


class CollectionRejected(PaymentError):
    """Raised when the gateway synchronously refuses a collection."""

    def __init__(self, transaction_id: int, reason: str | None):
        self.transaction_id = transaction_id
        self.reason = reason
        super().__init__(
            f"Collection for transaction {transaction_id} rejected: {reason}"
        )


class UnknownTransaction(PaymentError):
    """Raised when a callback request id matches no transaction."""


class AmountMismatch(PaymentError):
    """Raised when a callback reports a different amount than expected."""
