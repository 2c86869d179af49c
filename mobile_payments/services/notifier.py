"""
Notifier — user-facing status messages.

Notifications are fire-and-forget. A notifier that fails must
never undo or block a payment state transition, so every call
from the payment flow goes through notify_quietly().
"""

from abc import ABC, abstractmethod

from mobile_payments.logging_config import get_logger
from mobile_payments.models.enums import NotificationKind

logger = get_logger(__name__)


class Notifier(ABC):

    @abstractmethod
    def notify(
        self,
        account_reference: str,
        event_kind: NotificationKind,
        transaction_id: int,
    ) -> None:
        """Deliver one status message to the owner of ``account_reference``."""


class LoggingNotifier(Notifier):
    """Default notifier: records the message in the structured log."""

    def notify(
        self,
        account_reference: str,
        event_kind: NotificationKind,
        transaction_id: int,
    ) -> None:
        logger.info(
            "notification_sent",
            account_reference=account_reference,
            event_kind=event_kind.value,
            transaction_id=transaction_id,
        )


def notify_quietly(
    notifier: Notifier,
    account_reference: str,
    event_kind: NotificationKind,
    transaction_id: int,
) -> bool:
    """Send a notification, logging instead of raising on failure."""
    try:
        notifier.notify(account_reference, event_kind, transaction_id)
    except Exception:
        logger.warning(
            "notification_failed",
            account_reference=account_reference,
            event_kind=event_kind.value,
            transaction_id=transaction_id,
            exc_info=True,
        )
        return False
    return True
