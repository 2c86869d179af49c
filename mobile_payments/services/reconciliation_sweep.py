"""
Reconciliation sweep — recovers payments whose callbacks never came.

Callbacks are best effort: the gateway may drop one, or this service
may be down when it arrives. The sweep polls the gateway for every
payment that has sat in a waiting status for too long and feeds any
final result through the callback reconciler, so a result found by
polling is recorded exactly like a delivered callback (a late real
callback then becomes a duplicate).

Rules, per status, once older than PENDING_TIMEOUT_SECONDS:
1. COLLECTION_PENDING: poll; still pending past PENDING_MAX_AGE_SECONDS
   means the payer never approved, fail it as timed out
2. COLLECTED: no disbursement was issued, issue it; a claim held
   past CLAIM_TIMEOUT_SECONDS with no request id is filed for
   review, since the gateway may have received that request
3. DISBURSEMENT_PENDING: poll; still pending past the max age is
   filed for review, never guessed
4. REVERSAL_PENDING: issue the reversal if it was never sent,
   otherwise poll; past the max age it is filed as stalled, and
   an abandoned claim is filed like a disbursement one
5. CREATED: the process died between persisting and calling the
   gateway; filed for review

Every pass first replays parked callbacks whose request id has
since been recorded. Frozen transactions are left alone. Gateway
outages are counted, not raised.
"""

from dataclasses import asdict, dataclass
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from mobile_payments.config import Settings, get_settings
from mobile_payments.exceptions import GatewayUnavailable, StaleVersion
from mobile_payments.logging_config import get_logger
from mobile_payments.models.enums import (
    NotificationKind,
    PaymentLeg,
    ReviewKind,
    TransactionStatus,
)
from mobile_payments.models.transaction import Transaction
from mobile_payments.schemas.callback import CallbackPayload
from mobile_payments.services.callback_reconciler import (
    CallbackReconciler,
    CallbackResult,
)
from mobile_payments.services.ledger_store import LedgerStore
from mobile_payments.services.payment_orchestrator import PaymentOrchestrator

logger = get_logger(__name__)

SWEPT_STATUSES = [
    TransactionStatus.CREATED,
    TransactionStatus.COLLECTION_PENDING,
    TransactionStatus.COLLECTED,
    TransactionStatus.DISBURSEMENT_PENDING,
    TransactionStatus.REVERSAL_PENDING,
]


@dataclass
class SweepReport:
    examined: int = 0
    callbacks_replayed: int = 0
    resolved: int = 0
    disbursements_started: int = 0
    reversals_started: int = 0
    timed_out: int = 0
    flagged: int = 0
    gateway_errors: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


class ReconciliationSweep:

    def __init__(
        self,
        db: Session,
        orchestrator: PaymentOrchestrator,
        reconciler: CallbackReconciler,
        settings: Settings | None = None,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.store = LedgerStore(db, self.settings.STALE_VERSION_MAX_ATTEMPTS)
        self.orchestrator = orchestrator
        self.reconciler = reconciler

    def run(self, now: datetime | None = None) -> SweepReport:
        """One pass over every stale payment."""
        now = now or datetime.utcnow()
        report = SweepReport()
        cutoff = now - timedelta(seconds=self.settings.PENDING_TIMEOUT_SECONDS)

        report.callbacks_replayed = len(self.reconciler.replay_parked())

        # Ids first: every step below re-reads and commits
        transaction_ids = [
            txn.id for txn in self.store.list_stale(SWEPT_STATUSES, cutoff)
        ]
        logger.info("sweep_started", candidates=len(transaction_ids))

        for transaction_id in transaction_ids:
            txn = self.store.get(transaction_id)
            if txn.is_frozen or txn.status not in SWEPT_STATUSES:
                continue
            report.examined += 1

            try:
                self._sweep_one(txn, now, report)
            except GatewayUnavailable as exc:
                report.gateway_errors += 1
                logger.warning(
                    "sweep_gateway_unavailable",
                    transaction_id=transaction_id,
                    error=str(exc),
                )
            except StaleVersion:
                logger.warning(
                    "sweep_skipped_on_conflict", transaction_id=transaction_id
                )

        logger.info("sweep_completed", **report.to_dict())
        return report

    def _sweep_one(self, txn: Transaction, now: datetime, report: SweepReport) -> None:
        transaction_id = txn.id
        status = txn.status
        expired = now - txn.last_transition_at >= timedelta(
            seconds=self.settings.PENDING_MAX_AGE_SECONDS
        )

        if status == TransactionStatus.CREATED:
            self._flag(txn, ReviewKind.STUCK_TRANSACTION, report,
                       "Transaction never reached the gateway")

        elif status == TransactionStatus.COLLECTION_PENDING:
            if self._poll(txn, PaymentLeg.COLLECTION, report):
                return
            if expired:
                self._time_out_collection(transaction_id)
                report.timed_out += 1

        elif status == TransactionStatus.COLLECTED:
            if txn.disbursement_claimed_at is not None:
                if self._claim_abandoned(txn.disbursement_claimed_at, now):
                    self._flag(txn, ReviewKind.STUCK_TRANSACTION, report,
                               "Disbursement claimed but no request id was "
                               "recorded; check the gateway for reference "
                               f"{txn.external_id}:{PaymentLeg.DISBURSEMENT.value} "
                               "before releasing the claim")
                return
            txn = self.orchestrator.start_disbursement(transaction_id)
            if txn.disbursement_request_id is not None:
                report.disbursements_started += 1

        elif status == TransactionStatus.DISBURSEMENT_PENDING:
            if self._poll(txn, PaymentLeg.DISBURSEMENT, report):
                return
            if expired:
                self._flag(txn, ReviewKind.STUCK_TRANSACTION, report,
                           "Disbursement still pending past the maximum age")

        elif status == TransactionStatus.REVERSAL_PENDING:
            if txn.reversal_request_id is None:
                if txn.reversal_claimed_at is None:
                    txn = self.orchestrator.start_reversal(transaction_id)
                    if txn.reversal_request_id is not None:
                        report.reversals_started += 1
                elif self._claim_abandoned(txn.reversal_claimed_at, now):
                    self._flag(txn, ReviewKind.STUCK_TRANSACTION, report,
                               "Reversal claimed but no request id was "
                               "recorded; check the gateway for reference "
                               f"{txn.external_id}:{PaymentLeg.REVERSAL.value} "
                               "before releasing the claim")
            elif self._poll(txn, PaymentLeg.REVERSAL, report):
                return
            if expired:
                self._flag(txn, ReviewKind.REVERSAL_STALLED, report,
                           "Reversal still pending past the maximum age")

    def _claim_abandoned(self, claimed_at: datetime, now: datetime) -> bool:
        return now - claimed_at >= timedelta(
            seconds=self.settings.CLAIM_TIMEOUT_SECONDS
        )

    def _poll(self, txn: Transaction, leg: PaymentLeg, report: SweepReport) -> bool:
        """Ask the gateway for a final result; True once one was applied."""
        request_id = txn.request_id_for(leg)
        if request_id is None:
            return False

        status = self.orchestrator.call_gateway(
            self.orchestrator.gateway.query_status, leg, request_id
        )
        if not status.is_final:
            return False

        payload = CallbackPayload(
            request_id=request_id,
            leg=leg,
            outcome=status.outcome,
            reported_amount=(
                txn.expected_amount(leg)
                if status.reported_amount is None
                else status.reported_amount
            ),
            failure_reason=status.reason[:500] if status.reason else None,
        )
        result = self.reconciler.handle_callback(payload)
        logger.info(
            "sweep_result_reconciled",
            transaction_id=txn.id,
            leg=leg.value,
            outcome=status.outcome.value,
            result=result.value,
        )
        if result in (CallbackResult.APPLIED, CallbackResult.DUPLICATE):
            report.resolved += 1
        elif result in (
            CallbackResult.AMOUNT_MISMATCH,
            CallbackResult.FLAGGED,
            CallbackResult.IGNORED,
        ):
            report.flagged += 1
        return result != CallbackResult.DEFERRED

    def _time_out_collection(self, transaction_id: int) -> None:
        reason = "Collection timed out waiting for payer approval"

        def attempt() -> tuple[bool, Transaction]:
            txn = self.store.get(transaction_id)
            if txn.status != TransactionStatus.COLLECTION_PENDING:
                return False, txn
            txn.failure_reason = reason
            self.store.transition(txn, TransactionStatus.COLLECTION_FAILED, reason)
            return True, self.store.save(txn)

        changed, txn = self.store.run_with_stale_retry(attempt)
        if changed:
            logger.warning("collection_timed_out", transaction_id=transaction_id)
            self.orchestrator.notify(
                txn.payer_reference,
                NotificationKind.COLLECTION_FAILED,
                transaction_id,
            )

    def _flag(
        self,
        txn: Transaction,
        kind: ReviewKind,
        report: SweepReport,
        details: str,
    ) -> None:
        if self.store.has_open_review_item(kind, txn.id):
            return
        self.store.add_review_item(
            kind,
            details=(
                f"{details} (status {txn.status.value}, "
                f"since {txn.last_transition_at:%Y-%m-%d %H:%M:%S})"
            ),
            transaction_id=txn.id,
        )
        report.flagged += 1
        if kind == ReviewKind.REVERSAL_STALLED:
            logger.error("reversal_stalled", transaction_id=txn.id)
