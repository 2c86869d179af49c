"""
Database models package.

All models must be imported here so that Alembic can discover
them through Base.metadata when generating migrations.
"""

from mobile_payments.models.base import Base
from mobile_payments.models.enums import (
    TransactionStatus,
    PaymentLeg,
    CallbackOutcome,
    ReviewKind,
    NotificationKind,
)
from mobile_payments.models.transaction import (
    Transaction,
    VALID_TRANSITIONS,
    TERMINAL_STATUSES,
)
from mobile_payments.models.status_history import StatusHistoryEntry
from mobile_payments.models.review_item import ReviewItem
from mobile_payments.models.parked_callback import ParkedCallback

__all__ = [
    "Base",
    "TransactionStatus",
    "PaymentLeg",
    "CallbackOutcome",
    "ReviewKind",
    "NotificationKind",
    "Transaction",
    "VALID_TRANSITIONS",
    "TERMINAL_STATUSES",
    "StatusHistoryEntry",
    "ReviewItem",
    "ParkedCallback",
]
