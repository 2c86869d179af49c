"""
Payment orchestrator — drives the two-phase payment.

A payment is collected from the payer first and only then
disbursed to the payee:
1. Validate the request and split off the commission
2. Persist the transaction in CREATED
3. Ask the gateway to collect the gross amount
4. (callback) collection confirmed → ask the gateway to disburse
   the net amount
5. (callback) disbursement failed → ask the gateway to reverse
   the collection

Every status change is a read-decide-write against the ledger
store, retried on version conflicts. No lock is held while a
gateway call is in flight; instead a claim marker is written
first so that only one worker ever issues a given request. A
claim is never retaken automatically: a worker that died mid-call
may still have reached the gateway, so the sweep files the claim
for review and an operator releases it.

A callback can arrive before the gateway has acknowledged the
request it answers. The reconciler parks it; it is replayed here
as soon as the request id is recorded.
"""

from datetime import datetime
from typing import Callable

from sqlalchemy.orm import Session
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from mobile_payments.config import Settings, get_settings
from mobile_payments.exceptions import (
    CollectionRejected,
    GatewayUnavailable,
    InvalidPaymentRequest,
    InvalidTransition,
)
from mobile_payments.gateway.base import GatewayAck, GatewayClient
from mobile_payments.logging_config import get_logger
from mobile_payments.models.enums import (
    NotificationKind,
    PaymentLeg,
    ReviewKind,
    TransactionStatus,
)
from mobile_payments.models.transaction import Transaction
from mobile_payments.schemas.payment import PaymentCreate
from mobile_payments.services.callback_reconciler import CallbackReconciler
from mobile_payments.services.commission import compute_commission
from mobile_payments.services.ledger_store import GatewayTrigger, LedgerStore
from mobile_payments.services.notifier import Notifier, notify_quietly

logger = get_logger(__name__)


def _log_gateway_retry(retry_state: RetryCallState) -> None:
    logger.warning(
        "gateway_call_retrying",
        attempt=retry_state.attempt_number,
        error=str(retry_state.outcome.exception()),
    )


def gateway_retrying(settings: Settings) -> Retrying:
    """Bounded exponential backoff for GatewayUnavailable."""
    return Retrying(
        retry=retry_if_exception_type(GatewayUnavailable),
        stop=stop_after_attempt(settings.GATEWAY_MAX_ATTEMPTS),
        wait=wait_exponential(
            multiplier=settings.GATEWAY_BACKOFF_MIN_SECONDS,
            min=settings.GATEWAY_BACKOFF_MIN_SECONDS,
            max=settings.GATEWAY_BACKOFF_MAX_SECONDS,
        ),
        before_sleep=_log_gateway_retry,
        reraise=True,
    )


class PaymentOrchestrator:

    def __init__(
        self,
        db: Session,
        gateway: GatewayClient,
        notifier: Notifier,
        settings: Settings | None = None,
        retrying: Retrying | None = None,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.store = LedgerStore(db, self.settings.STALE_VERSION_MAX_ATTEMPTS)
        self.gateway = gateway
        self.notifier = notifier
        self.retrying = retrying or gateway_retrying(self.settings)

    # --- Collection ---

    def initiate_payment(self, request: PaymentCreate) -> Transaction:
        """
        Start a payment from payer to payee.

        Raises InvalidAmount or InvalidPaymentRequest before anything
        is stored. Once the transaction exists, a gateway rejection
        (CollectionRejected) or outage (GatewayUnavailable) leaves it
        in COLLECTION_FAILED, never half-started.
        """
        if request.payer_reference == request.payee_reference:
            raise InvalidPaymentRequest(
                "Payer and payee must be different accounts"
            )

        split = compute_commission(
            request.gross_amount, self.settings.COMMISSION_RATE_BPS
        )
        txn = self.store.create(
            payer_reference=request.payer_reference,
            payee_reference=request.payee_reference,
            gross_amount=request.gross_amount,
            split=split,
        )
        transaction_id = txn.id
        payer_reference = txn.payer_reference
        log = logger.bind(transaction_id=transaction_id)
        log.info(
            "payment_created",
            gross_amount=txn.gross_amount,
            commission_amount=txn.commission_amount,
            net_amount=txn.net_amount,
        )

        try:
            ack = self.call_gateway(
                self.gateway.initiate_collection,
                payer_reference,
                txn.gross_amount,
                self._reference(txn, PaymentLeg.COLLECTION),
            )
        except GatewayUnavailable as exc:
            self._fail_collection(transaction_id, f"Gateway unavailable: {exc}")
            self.notify(
                payer_reference, NotificationKind.COLLECTION_FAILED, transaction_id
            )
            raise

        if not ack.accepted:
            self._fail_collection(
                transaction_id, ack.reason or "Collection rejected by gateway"
            )
            self.notify(
                payer_reference, NotificationKind.COLLECTION_FAILED, transaction_id
            )
            raise CollectionRejected(transaction_id, ack.reason)

        def record_pending() -> Transaction:
            txn = self.store.get(transaction_id)
            if txn.status != TransactionStatus.CREATED:
                return txn
            txn.collection_request_id = ack.request_id
            self.store.transition(
                txn,
                TransactionStatus.COLLECTION_PENDING,
                "Collection request accepted by gateway",
            )
            return self.store.save(txn)

        self.store.run_with_stale_retry(record_pending)
        log.info("collection_requested", request_id=ack.request_id)
        return self._replay_parked(
            transaction_id, PaymentLeg.COLLECTION, ack.request_id
        )

    def _fail_collection(self, transaction_id: int, reason: str) -> Transaction:
        def attempt() -> Transaction:
            txn = self.store.get(transaction_id)
            if txn.status != TransactionStatus.CREATED:
                return txn
            txn.failure_reason = reason[:500]
            self.store.transition(txn, TransactionStatus.COLLECTION_FAILED, reason)
            return self.store.save(txn)

        txn = self.store.run_with_stale_retry(attempt)
        logger.warning(
            "collection_failed_synchronously",
            transaction_id=transaction_id,
            reason=reason,
        )
        return txn

    # --- Disbursement ---

    def start_disbursement(self, transaction_id: int) -> Transaction:
        """
        Issue the one disbursement for a collected transaction.

        Returns the transaction unchanged when it is not (or no longer)
        eligible: wrong status, request already issued, frozen, or
        a claim is already held. On GatewayUnavailable the
        claim is released and the error propagates; the transaction
        stays COLLECTED for a later retry.
        """
        now = datetime.utcnow()

        def claim() -> tuple[bool, Transaction]:
            txn = self.store.get(transaction_id)
            if not self._claimable(
                txn,
                TransactionStatus.COLLECTED,
                txn.disbursement_request_id,
                txn.disbursement_claimed_at,
            ):
                return False, txn
            txn.disbursement_claimed_at = now
            return True, self.store.save(txn)

        claimed, txn = self.store.run_with_stale_retry(claim)
        if not claimed:
            logger.info(
                "disbursement_not_started",
                transaction_id=transaction_id,
                status=txn.status.value,
                disbursement_request_id=txn.disbursement_request_id,
            )
            return txn

        try:
            ack = self.call_gateway(
                self.gateway.initiate_disbursement,
                txn.payee_reference,
                txn.net_amount,
                self._reference(txn, PaymentLeg.DISBURSEMENT),
            )
        except GatewayUnavailable:
            self._release_claim(transaction_id, "disbursement_claimed_at")
            logger.warning("disbursement_deferred", transaction_id=transaction_id)
            raise

        if ack.accepted:
            return self._record_disbursement(transaction_id, ack)

        reason = f"Disbursement rejected: {ack.reason or 'no reason given'}"

        def reject() -> Transaction:
            txn = self.store.get(transaction_id)
            if txn.status != TransactionStatus.COLLECTED:
                return txn
            txn.failure_reason = reason[:500]
            self.store.transition(txn, TransactionStatus.REVERSAL_PENDING, reason)
            return self.store.save(txn)

        self.store.run_with_stale_retry(reject)
        logger.warning(
            "disbursement_rejected",
            transaction_id=transaction_id,
            reason=ack.reason,
        )
        return self.start_reversal_quietly(transaction_id)

    def _record_disbursement(
        self, transaction_id: int, ack: GatewayAck
    ) -> Transaction:
        def attempt() -> Transaction:
            txn = self.store.get(transaction_id)
            if (
                txn.status != TransactionStatus.COLLECTED
                or txn.disbursement_request_id is not None
            ):
                return txn
            txn.disbursement_request_id = ack.request_id
            self.store.transition(
                txn,
                TransactionStatus.DISBURSEMENT_PENDING,
                "Disbursement request accepted by gateway",
            )
            return self.store.save(txn)

        txn = self.store.run_with_stale_retry(attempt)
        logger.info(
            "disbursement_requested",
            transaction_id=transaction_id,
            request_id=ack.request_id,
            net_amount=txn.net_amount,
        )
        return self._replay_parked(
            transaction_id, PaymentLeg.DISBURSEMENT, ack.request_id
        )

    def retry_disbursement(self, transaction_id: int) -> Transaction:
        """
        Administrative recovery for a transaction stuck in COLLECTED.

        Calling it again once the disbursement is pending or settled
        is a no-op.
        """
        txn = self.store.get(transaction_id)
        if txn.status in (
            TransactionStatus.DISBURSEMENT_PENDING,
            TransactionStatus.SETTLED,
        ):
            logger.info(
                "retry_disbursement_noop",
                transaction_id=transaction_id,
                status=txn.status.value,
            )
            return txn
        if txn.status != TransactionStatus.COLLECTED:
            raise InvalidTransition(
                f"Cannot retry disbursement for transaction {transaction_id} "
                f"in status {txn.status.value}"
            )
        return self.start_disbursement(transaction_id)

    # --- Reversal ---

    def start_reversal(self, transaction_id: int) -> Transaction:
        """
        Ask the gateway to return the collected amount to the payer.

        Same claim discipline as start_disbursement. A synchronous
        rejection files a REVERSAL_FAILED review item; the transaction
        stays in REVERSAL_PENDING until an operator acts.
        """
        now = datetime.utcnow()

        def claim() -> tuple[bool, Transaction]:
            txn = self.store.get(transaction_id)
            if txn.collection_request_id is None or self.store.has_open_review_item(
                ReviewKind.REVERSAL_FAILED, transaction_id
            ):
                return False, txn
            if not self._claimable(
                txn,
                TransactionStatus.REVERSAL_PENDING,
                txn.reversal_request_id,
                txn.reversal_claimed_at,
            ):
                return False, txn
            txn.reversal_claimed_at = now
            return True, self.store.save(txn)

        claimed, txn = self.store.run_with_stale_retry(claim)
        if not claimed:
            logger.info(
                "reversal_not_started",
                transaction_id=transaction_id,
                status=txn.status.value,
                reversal_request_id=txn.reversal_request_id,
            )
            return txn

        try:
            ack = self.call_gateway(
                self.gateway.initiate_reversal,
                txn.collection_request_id,
                txn.gross_amount,
                self._reference(txn, PaymentLeg.REVERSAL),
            )
        except GatewayUnavailable:
            self._release_claim(transaction_id, "reversal_claimed_at")
            logger.warning("reversal_deferred", transaction_id=transaction_id)
            raise

        if not ack.accepted:
            self.store.add_review_item(
                ReviewKind.REVERSAL_FAILED,
                details=f"Reversal rejected by gateway: {ack.reason}",
                transaction_id=transaction_id,
            )
            return self.store.get(transaction_id)

        def record() -> Transaction:
            txn = self.store.get(transaction_id)
            if (
                txn.status != TransactionStatus.REVERSAL_PENDING
                or txn.reversal_request_id is not None
            ):
                return txn
            txn.reversal_request_id = ack.request_id
            return self.store.save(txn)

        txn = self.store.run_with_stale_retry(record)
        logger.info(
            "reversal_requested",
            transaction_id=transaction_id,
            request_id=ack.request_id,
            gross_amount=txn.gross_amount,
        )
        return self._replay_parked(
            transaction_id, PaymentLeg.REVERSAL, ack.request_id
        )

    def start_reversal_quietly(self, transaction_id: int) -> Transaction:
        """start_reversal for automatic paths: outages are left to the sweep."""
        try:
            return self.start_reversal(transaction_id)
        except GatewayUnavailable:
            return self.store.get(transaction_id)

    def complete_reversal(
        self,
        transaction_id: int,
        reason: str = "Reversal completed",
        trigger: GatewayTrigger | None = None,
    ) -> Transaction:
        """Mark the collected funds as returned. Idempotent on REVERSED."""

        def attempt() -> tuple[bool, Transaction]:
            txn = self.store.get(transaction_id)
            if txn.status == TransactionStatus.REVERSED:
                return False, txn
            self.store.transition(
                txn, TransactionStatus.REVERSED, reason, trigger
            )
            return True, self.store.save(txn)

        changed, txn = self.store.run_with_stale_retry(attempt)
        if changed:
            logger.info("payment_reversed", transaction_id=transaction_id)
            self.notify(
                txn.payer_reference,
                NotificationKind.PAYMENT_REVERSED,
                transaction_id,
            )
        return txn

    # --- Queries ---

    def get_transaction(self, transaction_id: int) -> Transaction:
        return self.store.get(transaction_id)

    def list_payments(
        self, account_reference: str, page: int = 1, limit: int = 10
    ) -> tuple[list[Transaction], int]:
        return self.store.list_for_account(account_reference, page, limit)

    # --- Helpers ---

    def call_gateway(self, operation: Callable, *args):
        """Call the gateway with bounded exponential backoff."""
        return self.retrying(operation, *args)

    def notify(
        self,
        account_reference: str,
        event_kind: NotificationKind,
        transaction_id: int,
    ) -> None:
        notify_quietly(self.notifier, account_reference, event_kind, transaction_id)

    def _claimable(
        self,
        txn: Transaction,
        required_status: TransactionStatus,
        request_id: str | None,
        claimed_at: datetime | None,
    ) -> bool:
        if txn.status != required_status or request_id is not None:
            return False
        if txn.is_frozen:
            return False
        # Held claims are only ever released by an outage or an operator
        return claimed_at is None

    def _replay_parked(
        self, transaction_id: int, leg: PaymentLeg, request_id: str
    ) -> Transaction:
        """Apply callbacks that arrived before ``request_id`` was recorded."""
        if self.store.list_parked_callbacks(leg, request_id):
            CallbackReconciler(self.db, self).replay_parked(leg, request_id)
        return self.store.get(transaction_id)

    def _release_claim(self, transaction_id: int, attribute: str) -> None:
        def attempt() -> Transaction:
            txn = self.store.get(transaction_id)
            setattr(txn, attribute, None)
            return self.store.save(txn)

        self.store.run_with_stale_retry(attempt)

    @staticmethod
    def _reference(txn: Transaction, leg: PaymentLeg) -> str:
        """Idempotency key the gateway uses to deduplicate our requests."""
        return f"{txn.external_id}:{leg.value}"
