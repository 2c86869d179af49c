"""Business logic services."""

from mobile_payments.services.callback_reconciler import (
    CallbackReconciler,
    CallbackResult,
)
from mobile_payments.services.commission import CommissionSplit, compute_commission
from mobile_payments.services.ledger_store import LedgerStore
from mobile_payments.services.notifier import LoggingNotifier, Notifier
from mobile_payments.services.payment_orchestrator import PaymentOrchestrator
from mobile_payments.services.reconciliation_sweep import (
    ReconciliationSweep,
    SweepReport,
)

__all__ = [
    "CallbackReconciler",
    "CallbackResult",
    "CommissionSplit",
    "compute_commission",
    "LedgerStore",
    "LoggingNotifier",
    "Notifier",
    "PaymentOrchestrator",
    "ReconciliationSweep",
    "SweepReport",
]
