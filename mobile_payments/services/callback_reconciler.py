"""
Callback reconciler — applies gateway results to transactions.

Each callback:
1. Is matched to a transaction by its gateway request id
2. Has its reported amount checked against the leg's amount
3. Is discarded if the same result was already applied
4. Advances the state machine under the optimistic lock
5. Triggers the follow-up (notify, disburse, reverse) once the
   new status is durable

Nothing here raises to the caller for a bad callback. The gateway
redelivers until it gets an acknowledgement, so problems are
logged and filed in the review queue instead.

A callback whose request id is not recorded yet is parked: the
gateway may answer a request before acknowledging it. Parked
callbacks are replayed as soon as the orchestrator records the
request id, and by every sweep.
"""

import enum
from typing import TYPE_CHECKING, NamedTuple

from sqlalchemy.orm import Session

from mobile_payments.exceptions import (
    AmountMismatch,
    GatewayUnavailable,
    PaymentError,
    StaleVersion,
    UnknownTransaction,
)
from mobile_payments.logging_config import get_logger
from mobile_payments.models.enums import (
    CallbackOutcome,
    NotificationKind,
    PaymentLeg,
    ReviewKind,
    TransactionStatus,
)
from mobile_payments.models.transaction import Transaction
from mobile_payments.schemas.callback import CallbackPayload
from mobile_payments.services.ledger_store import GatewayTrigger, LedgerStore

if TYPE_CHECKING:
    from mobile_payments.services.payment_orchestrator import PaymentOrchestrator

logger = get_logger(__name__)


class CallbackResult(str, enum.Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    UNKNOWN_TRANSACTION = "unknown_transaction"
    AMOUNT_MISMATCH = "amount_mismatch"
    FROZEN = "frozen"
    IGNORED = "ignored"
    FLAGGED = "flagged"
    DEFERRED = "deferred"


# (leg, outcome) -> (status the transaction must be in, status it moves to)
CALLBACK_TRANSITIONS: dict[
    tuple[PaymentLeg, CallbackOutcome],
    tuple[TransactionStatus, TransactionStatus],
] = {
    (PaymentLeg.COLLECTION, CallbackOutcome.SUCCESS): (
        TransactionStatus.COLLECTION_PENDING,
        TransactionStatus.COLLECTED,
    ),
    (PaymentLeg.COLLECTION, CallbackOutcome.FAILURE): (
        TransactionStatus.COLLECTION_PENDING,
        TransactionStatus.COLLECTION_FAILED,
    ),
    (PaymentLeg.DISBURSEMENT, CallbackOutcome.SUCCESS): (
        TransactionStatus.DISBURSEMENT_PENDING,
        TransactionStatus.SETTLED,
    ),
    (PaymentLeg.DISBURSEMENT, CallbackOutcome.FAILURE): (
        TransactionStatus.DISBURSEMENT_PENDING,
        TransactionStatus.REVERSAL_PENDING,
    ),
    (PaymentLeg.REVERSAL, CallbackOutcome.SUCCESS): (
        TransactionStatus.REVERSAL_PENDING,
        TransactionStatus.REVERSED,
    ),
}


class Reconciled(NamedTuple):
    result: CallbackResult
    transaction: Transaction
    new_status: TransactionStatus | None = None


class CallbackReconciler:

    def __init__(self, db: Session, orchestrator: "PaymentOrchestrator"):
        self.db = db
        self.store = LedgerStore(db, orchestrator.settings.STALE_VERSION_MAX_ATTEMPTS)
        self.orchestrator = orchestrator

    def handle_callback(self, payload: CallbackPayload) -> CallbackResult:
        """Apply one gateway result. Always returns, never raises for bad input."""
        log = logger.bind(
            request_id=payload.request_id,
            leg=payload.leg.value,
            outcome=payload.outcome.value,
        )

        try:
            reconciled = self.store.run_with_stale_retry(
                lambda: self._reconcile(payload)
            )
        except UnknownTransaction:
            log.warning("callback_unknown_transaction")
            self._park(payload)
            # The request id may have been recorded while this one was parked
            replayed = self.replay_parked(payload.leg, payload.request_id)
            return replayed[-1] if replayed else CallbackResult.UNKNOWN_TRANSACTION
        except AmountMismatch as exc:
            log.error("callback_amount_mismatch", error=str(exc))
            return CallbackResult.AMOUNT_MISMATCH
        except StaleVersion:
            # Left for the reconciliation sweep to pick up by polling
            log.error("callback_deferred_after_conflicts")
            return CallbackResult.DEFERRED

        log.info(
            "callback_reconciled",
            result=reconciled.result.value,
            transaction_id=reconciled.transaction.id,
            new_status=(
                reconciled.new_status.value if reconciled.new_status else None
            ),
        )
        if reconciled.result == CallbackResult.APPLIED:
            transaction_id = reconciled.transaction.id
            try:
                self._after_transition(reconciled.transaction, reconciled.new_status)
            except PaymentError as exc:
                # The transition is committed; the sweep finishes the follow-up
                log.error(
                    "callback_follow_up_failed",
                    transaction_id=transaction_id,
                    error=str(exc),
                )
        return reconciled.result

    def replay_parked(
        self,
        leg: PaymentLeg | None = None,
        request_id: str | None = None,
    ) -> list[CallbackResult]:
        """
        Apply parked callbacks whose request id is now recorded.

        Callbacks that still match nothing stay parked. The
        UNKNOWN_TRANSACTION item filed when one was parked is closed
        once it is replayed.
        """
        results = []
        for parked in self.store.list_parked_callbacks(leg, request_id):
            parked_id = parked.id
            payload = CallbackPayload(
                request_id=parked.request_id,
                leg=parked.leg,
                outcome=parked.outcome,
                reported_amount=parked.reported_amount,
                failure_reason=parked.failure_reason,
            )
            if self.store.find_by_request_id(payload.leg, payload.request_id) is None:
                continue

            result = self.handle_callback(payload)
            results.append(result)
            if result == CallbackResult.DEFERRED:
                continue
            self.store.mark_replayed(parked_id, result.value)
            self.store.resolve_review_items_for_request(
                ReviewKind.UNKNOWN_TRANSACTION,
                payload.request_id,
                f"Callback replayed once the request id was recorded: {result.value}",
            )
            logger.info(
                "parked_callback_replayed",
                request_id=payload.request_id,
                leg=payload.leg.value,
                outcome=payload.outcome.value,
                result=result.value,
            )
        return results

    def _park(self, payload: CallbackPayload) -> None:
        self.store.add_review_item(
            ReviewKind.UNKNOWN_TRANSACTION,
            details=(
                f"No transaction for {payload.leg.value} request "
                f"{payload.request_id} (outcome={payload.outcome.value}, "
                f"amount={payload.reported_amount}); callback parked"
            ),
            request_id=payload.request_id,
            commit=False,
        )
        self.store.park_callback(
            payload.leg,
            payload.request_id,
            payload.outcome,
            payload.reported_amount,
            payload.failure_reason,
        )

    def _reconcile(self, payload: CallbackPayload) -> Reconciled:
        txn = self.store.find_by_request_id(payload.leg, payload.request_id)
        if txn is None:
            raise UnknownTransaction(
                f"No transaction for {payload.leg.value} request {payload.request_id}"
            )

        expected = txn.expected_amount(payload.leg)
        if payload.reported_amount != expected:
            details = (
                f"Gateway reported {payload.reported_amount} for "
                f"{payload.leg.value} request {payload.request_id}, "
                f"expected {expected}; transaction frozen in {txn.status.value}"
            )
            txn.is_frozen = True
            self.store.add_review_item(
                ReviewKind.AMOUNT_MISMATCH,
                details=details,
                transaction_id=txn.id,
                request_id=payload.request_id,
                commit=False,
            )
            self.store.save(txn)
            raise AmountMismatch(details)

        trigger = GatewayTrigger(payload.leg, payload.outcome, payload.request_id)
        if txn.has_transition_for(*trigger):
            return Reconciled(CallbackResult.DUPLICATE, txn)

        if txn.is_frozen:
            return Reconciled(CallbackResult.FROZEN, txn)

        if (payload.leg, payload.outcome) == (
            PaymentLeg.REVERSAL,
            CallbackOutcome.FAILURE,
        ):
            txn.failure_reason = (payload.failure_reason or "Reversal failed")[:500]
            self.store.add_review_item(
                ReviewKind.REVERSAL_FAILED,
                details=(
                    f"Reversal request {payload.request_id} failed: "
                    f"{payload.failure_reason or 'no reason given'}"
                ),
                transaction_id=txn.id,
                request_id=payload.request_id,
                commit=False,
            )
            self.store.save(txn)
            return Reconciled(CallbackResult.FLAGGED, txn)

        required, target = CALLBACK_TRANSITIONS[(payload.leg, payload.outcome)]
        if txn.status != required:
            self.store.add_review_item(
                ReviewKind.CONFLICTING_CALLBACK,
                details=(
                    f"{payload.leg.value} {payload.outcome.value} for request "
                    f"{payload.request_id} arrived while transaction was "
                    f"{txn.status.value}"
                ),
                transaction_id=txn.id,
                request_id=payload.request_id,
            )
            return Reconciled(CallbackResult.IGNORED, txn)

        if payload.outcome == CallbackOutcome.FAILURE:
            txn.failure_reason = (
                payload.failure_reason or f"{payload.leg.value} failed"
            )[:500]
        reason = f"Gateway reported {payload.leg.value} {payload.outcome.value}"
        if payload.failure_reason:
            reason = f"{reason}: {payload.failure_reason}"
        self.store.transition(txn, target, reason, trigger)
        self.store.save(txn)
        return Reconciled(CallbackResult.APPLIED, txn, target)

    def _after_transition(
        self, txn: Transaction, new_status: TransactionStatus
    ) -> None:
        """Side effects of a transition that is already committed."""
        orchestrator = self.orchestrator
        transaction_id = txn.id

        if new_status == TransactionStatus.COLLECTED:
            orchestrator.notify(
                txn.payer_reference,
                NotificationKind.PAYMENT_COLLECTED,
                transaction_id,
            )
            try:
                orchestrator.start_disbursement(transaction_id)
            except GatewayUnavailable:
                # Stays COLLECTED; the sweep retries the disbursement
                pass
        elif new_status == TransactionStatus.COLLECTION_FAILED:
            orchestrator.notify(
                txn.payer_reference,
                NotificationKind.COLLECTION_FAILED,
                transaction_id,
            )
        elif new_status == TransactionStatus.SETTLED:
            orchestrator.notify(
                txn.payer_reference,
                NotificationKind.PAYMENT_SETTLED,
                transaction_id,
            )
            orchestrator.notify(
                txn.payee_reference,
                NotificationKind.PAYMENT_RECEIVED,
                transaction_id,
            )
        elif new_status == TransactionStatus.REVERSAL_PENDING:
            orchestrator.start_reversal_quietly(transaction_id)
        elif new_status == TransactionStatus.REVERSED:
            orchestrator.notify(
                txn.payer_reference,
                NotificationKind.PAYMENT_REVERSED,
                transaction_id,
            )
