"""
Shared enumerations for database models.

Using Python enums mapped to database enums ensures that
only valid values can be stored.
"""

import enum


class TransactionStatus(str, enum.Enum):
    """Lifecycle of a two-phase payment."""
    CREATED = "CREATED"
    COLLECTION_PENDING = "COLLECTION_PENDING"
    COLLECTION_FAILED = "COLLECTION_FAILED"
    COLLECTED = "COLLECTED"
    DISBURSEMENT_PENDING = "DISBURSEMENT_PENDING"
    DISBURSEMENT_FAILED = "DISBURSEMENT_FAILED"
    SETTLED = "SETTLED"
    REVERSAL_PENDING = "REVERSAL_PENDING"
    REVERSED = "REVERSED"


class PaymentLeg(str, enum.Enum):
    """Gateway operation a request id belongs to."""
    COLLECTION = "collection"
    DISBURSEMENT = "disbursement"
    REVERSAL = "reversal"


class CallbackOutcome(str, enum.Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class ReviewKind(str, enum.Enum):
    """Reasons a payment needs a human."""
    AMOUNT_MISMATCH = "AMOUNT_MISMATCH"
    UNKNOWN_TRANSACTION = "UNKNOWN_TRANSACTION"
    CONFLICTING_CALLBACK = "CONFLICTING_CALLBACK"
    REVERSAL_FAILED = "REVERSAL_FAILED"
    REVERSAL_STALLED = "REVERSAL_STALLED"
    STUCK_TRANSACTION = "STUCK_TRANSACTION"


class NotificationKind(str, enum.Enum):
    """Events the Notifier is told about."""
    COLLECTION_FAILED = "collection_failed"
    PAYMENT_COLLECTED = "payment_collected"
    PAYMENT_SETTLED = "payment_settled"
    PAYMENT_RECEIVED = "payment_received"
    PAYMENT_REVERSED = "payment_reversed"
