"""
Ledger store — the single source of truth for payment state.

This service enforces the persistence rules:
1. Every write is conditional on the version that was read
2. Status history is append-only
3. Only edges of the state machine are ever recorded
4. No transaction state is cached between calls

No other service writes transactions directly. The orchestrator
and the callback reconciler both go through this store.
"""

from datetime import datetime
from typing import Callable, NamedTuple, TypeVar

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt

from mobile_payments.config import get_settings
from mobile_payments.exceptions import (
    InvalidTransition,
    ReviewItemNotFound,
    StaleVersion,
    TransactionNotFound,
)
from mobile_payments.logging_config import get_logger
from mobile_payments.models.enums import (
    CallbackOutcome,
    PaymentLeg,
    ReviewKind,
    TransactionStatus,
)
from mobile_payments.models.parked_callback import ParkedCallback
from mobile_payments.models.review_item import ReviewItem
from mobile_payments.models.status_history import StatusHistoryEntry
from mobile_payments.models.transaction import Transaction
from mobile_payments.services.commission import CommissionSplit

logger = get_logger(__name__)

T = TypeVar("T")

REQUEST_ID_COLUMNS = {
    PaymentLeg.COLLECTION: Transaction.collection_request_id,
    PaymentLeg.DISBURSEMENT: Transaction.disbursement_request_id,
    PaymentLeg.REVERSAL: Transaction.reversal_request_id,
}


class GatewayTrigger(NamedTuple):
    """The gateway result that caused a transition."""
    leg: PaymentLeg
    outcome: CallbackOutcome
    request_id: str


class LedgerStore:
    """
    All transaction reads and writes pass through this store.

    Writes commit immediately: a transition must be durable before
    the next gateway call is made, so the store owns the commit
    rather than the caller.
    """

    def __init__(self, db: Session, max_stale_attempts: int | None = None):
        self.db = db
        self.max_stale_attempts = (
            max_stale_attempts or get_settings().STALE_VERSION_MAX_ATTEMPTS
        )

    # --- Transactions ---

    def create(
        self,
        payer_reference: str,
        payee_reference: str,
        gross_amount: int,
        split: CommissionSplit,
    ) -> Transaction:
        """Persist a new transaction in CREATED with its first history row."""
        now = datetime.utcnow()
        txn = Transaction(
            payer_reference=payer_reference,
            payee_reference=payee_reference,
            gross_amount=gross_amount,
            commission_amount=split.commission_amount,
            net_amount=split.net_amount,
            status=TransactionStatus.CREATED,
            created_at=now,
            last_transition_at=now,
        )
        txn.status_history.append(StatusHistoryEntry(
            sequence=1,
            from_status=None,
            to_status=TransactionStatus.CREATED,
            reason="Payment requested",
            created_at=now,
        ))
        self.db.add(txn)
        self.db.commit()
        return txn

    def get(self, transaction_id: int) -> Transaction:
        """
        Read a transaction fresh from the database.

        Everything in the session is expired first, so the caller
        always decides against the committed version.
        """
        self.db.expire_all()
        txn = self.db.get(Transaction, transaction_id)
        if not txn:
            raise TransactionNotFound(f"Transaction {transaction_id} not found")
        return txn

    def find_by_request_id(
        self, leg: PaymentLeg, request_id: str
    ) -> Transaction | None:
        """Map a gateway request id back to its transaction."""
        self.db.expire_all()
        return self.db.execute(
            select(Transaction).where(REQUEST_ID_COLUMNS[leg] == request_id)
        ).scalar_one_or_none()

    def transition(
        self,
        txn: Transaction,
        new_status: TransactionStatus,
        reason: str,
        trigger: GatewayTrigger | None = None,
    ) -> Transaction:
        """
        Move ``txn`` along one edge of the state machine.

        Appends a history row and stamps last_transition_at. Nothing
        is written until save() is called.
        """
        if not txn.can_transition_to(new_status):
            raise InvalidTransition(
                f"Cannot transition transaction {txn.id} from "
                f"{txn.status.value} to {new_status.value}"
            )

        now = datetime.utcnow()
        txn.status_history.append(StatusHistoryEntry(
            sequence=len(txn.status_history) + 1,
            from_status=txn.status,
            to_status=new_status,
            reason=reason[:500],
            trigger_leg=trigger.leg if trigger else None,
            trigger_outcome=trigger.outcome if trigger else None,
            trigger_request_id=trigger.request_id if trigger else None,
            created_at=now,
        ))
        txn.status = new_status
        txn.last_transition_at = now
        return txn

    def save(self, txn: Transaction) -> Transaction:
        """
        Commit pending changes, conditional on the version read.

        A concurrent writer makes the UPDATE match zero rows
        (StaleDataError) or collide on the history sequence
        (IntegrityError); both mean the decision was made on an
        out-of-date view.
        """
        try:
            self.db.commit()
        except (StaleDataError, IntegrityError) as exc:
            self.db.rollback()
            logger.info(
                "transaction_version_conflict",
                transaction_id=txn.id,
                error=str(exc.__class__.__name__),
            )
            raise StaleVersion(
                f"Transaction {txn.id} was modified concurrently"
            ) from exc
        return txn

    def run_with_stale_retry(self, operation: Callable[[], T]) -> T:
        """
        Run a read-decide-write closure, re-running it on StaleVersion.

        ``operation`` must re-read the transaction itself on every
        call; the retry is what re-makes the decision.
        """
        retrying = Retrying(
            retry=retry_if_exception_type(StaleVersion),
            stop=stop_after_attempt(self.max_stale_attempts),
            reraise=True,
        )
        return retrying(operation)

    def list_stale(
        self,
        statuses: list[TransactionStatus],
        older_than: datetime,
    ) -> list[Transaction]:
        """Transactions sitting in ``statuses`` since before ``older_than``."""
        self.db.expire_all()
        txns = self.db.execute(
            select(Transaction)
            .where(
                Transaction.status.in_(statuses),
                Transaction.last_transition_at < older_than,
            )
            .order_by(Transaction.last_transition_at)
        ).scalars().all()
        return list(txns)

    def list_for_account(
        self, account_reference: str, page: int = 1, limit: int = 10
    ) -> tuple[list[Transaction], int]:
        """Payments where the account paid or was paid, newest first."""
        involves = (Transaction.payer_reference == account_reference) | (
            Transaction.payee_reference == account_reference
        )
        total = self.db.execute(
            select(func.count(Transaction.id)).where(involves)
        ).scalar()
        txns = self.db.execute(
            select(Transaction)
            .where(involves)
            .order_by(Transaction.created_at.desc(), Transaction.id.desc())
            .limit(limit)
            .offset((page - 1) * limit)
        ).scalars().all()
        return list(txns), total

    def statistics(self) -> dict:
        """Totals for the admin dashboard."""
        rows = self.db.execute(
            select(Transaction.status, func.count(Transaction.id))
            .group_by(Transaction.status)
        ).all()
        counts = {status: 0 for status in TransactionStatus}
        counts.update({status: count for status, count in rows})

        settled = self.db.execute(
            select(
                func.coalesce(func.sum(Transaction.gross_amount), 0),
                func.coalesce(func.sum(Transaction.commission_amount), 0),
            ).where(Transaction.status == TransactionStatus.SETTLED)
        ).one()
        reversed_total = self.db.execute(
            select(func.coalesce(func.sum(Transaction.gross_amount), 0))
            .where(Transaction.status == TransactionStatus.REVERSED)
        ).scalar()
        open_items = self.db.execute(
            select(func.count(ReviewItem.id))
            .where(ReviewItem.resolved_at.is_(None))
        ).scalar()

        return {
            "counts_by_status": counts,
            "total_settled_gross": int(settled[0]),
            "total_commission_earned": int(settled[1]),
            "total_reversed": int(reversed_total),
            "open_review_items": open_items,
        }

    # --- Review queue ---

    def add_review_item(
        self,
        kind: ReviewKind,
        details: str,
        transaction_id: int | None = None,
        request_id: str | None = None,
        commit: bool = True,
    ) -> ReviewItem:
        """
        File a problem for an operator.

        An open item of the same kind for the same transaction and
        request is returned instead of filing a second one, so a
        redelivered callback does not flood the queue.
        """
        # "== None" compiles to IS NULL
        existing = self.db.execute(
            select(ReviewItem).where(
                ReviewItem.kind == kind,
                ReviewItem.transaction_id == transaction_id,
                ReviewItem.request_id == request_id,
                ReviewItem.resolved_at.is_(None),
            ).limit(1)
        ).scalar_one_or_none()
        if existing:
            return existing

        item = ReviewItem(
            kind=kind,
            details=details,
            transaction_id=transaction_id,
            request_id=request_id,
        )
        self.db.add(item)
        # With commit=False the caller's save() writes the item together
        # with its transaction changes.
        if commit:
            self.db.commit()
        logger.warning(
            "review_item_filed",
            kind=kind.value,
            transaction_id=transaction_id,
            request_id=request_id,
            details=details,
        )
        return item

    def has_open_review_item(self, kind: ReviewKind, transaction_id: int) -> bool:
        return self.db.execute(
            select(func.count(ReviewItem.id)).where(
                ReviewItem.kind == kind,
                ReviewItem.transaction_id == transaction_id,
                ReviewItem.resolved_at.is_(None),
            )
        ).scalar() > 0

    def list_review_items(self, open_only: bool = True) -> list[ReviewItem]:
        query = select(ReviewItem).order_by(ReviewItem.created_at, ReviewItem.id)
        if open_only:
            query = query.where(ReviewItem.resolved_at.is_(None))
        return list(self.db.execute(query).scalars().all())

    def resolve_review_item(
        self,
        item_id: int,
        resolution: str,
        unfreeze: bool = False,
        release_claims: bool = False,
    ) -> ReviewItem:
        """
        Close a review item, optionally releasing its transaction.

        ``unfreeze`` lifts an amount-mismatch freeze. ``release_claims``
        clears disbursement and reversal claims that never got a
        request id, so the leg can be issued again; the operator is
        expected to have checked the gateway first.
        """

        def attempt() -> ReviewItem:
            self.db.expire_all()
            item = self.db.get(ReviewItem, item_id)
            if not item:
                raise ReviewItemNotFound(f"Review item {item_id} not found")
            if not item.is_open:
                return item

            txn = None
            if (unfreeze or release_claims) and item.transaction_id is not None:
                txn = self.db.get(Transaction, item.transaction_id)

            item.resolved_at = datetime.utcnow()
            item.resolution = resolution
            if txn is not None:
                if unfreeze:
                    txn.is_frozen = False
                if release_claims:
                    if txn.disbursement_request_id is None:
                        txn.disbursement_claimed_at = None
                    if txn.reversal_request_id is None:
                        txn.reversal_claimed_at = None
                self.save(txn)
            else:
                self.db.commit()
            logger.info(
                "review_item_resolved",
                item_id=item_id,
                transaction_id=item.transaction_id,
                unfrozen=unfreeze and txn is not None,
                claims_released=release_claims and txn is not None,
            )
            return item

        return self.run_with_stale_retry(attempt)

    def resolve_review_items_for_request(
        self, kind: ReviewKind, request_id: str, resolution: str
    ) -> int:
        """Close every open item of ``kind`` filed against ``request_id``."""
        items = self.db.execute(
            select(ReviewItem).where(
                ReviewItem.kind == kind,
                ReviewItem.request_id == request_id,
                ReviewItem.resolved_at.is_(None),
            )
        ).scalars().all()
        now = datetime.utcnow()
        for item in items:
            item.resolved_at = now
            item.resolution = resolution[:500]
        self.db.commit()
        return len(items)

    # --- Parked callbacks ---

    def park_callback(
        self,
        leg: PaymentLeg,
        request_id: str,
        outcome: CallbackOutcome,
        reported_amount: int,
        failure_reason: str | None = None,
    ) -> ParkedCallback:
        """
        Keep a callback whose request id matches no transaction yet.

        A redelivery of a callback that is already parked is not
        stored twice.
        """
        existing = self.db.execute(
            select(ParkedCallback).where(
                ParkedCallback.leg == leg,
                ParkedCallback.request_id == request_id,
                ParkedCallback.outcome == outcome,
                ParkedCallback.replayed_at.is_(None),
            ).limit(1)
        ).scalar_one_or_none()
        if existing:
            self.db.commit()
            return existing

        parked = ParkedCallback(
            leg=leg,
            request_id=request_id,
            outcome=outcome,
            reported_amount=reported_amount,
            failure_reason=failure_reason,
        )
        self.db.add(parked)
        self.db.commit()
        logger.info(
            "callback_parked",
            leg=leg.value,
            request_id=request_id,
            outcome=outcome.value,
        )
        return parked

    def list_parked_callbacks(
        self,
        leg: PaymentLeg | None = None,
        request_id: str | None = None,
    ) -> list[ParkedCallback]:
        """Parked callbacks not yet replayed, oldest first."""
        query = (
            select(ParkedCallback)
            .where(ParkedCallback.replayed_at.is_(None))
            .order_by(ParkedCallback.received_at, ParkedCallback.id)
        )
        if leg is not None:
            query = query.where(ParkedCallback.leg == leg)
        if request_id is not None:
            query = query.where(ParkedCallback.request_id == request_id)
        return list(self.db.execute(query).scalars().all())

    def mark_replayed(self, parked_id: int, result: str) -> None:
        parked = self.db.get(ParkedCallback, parked_id)
        if parked is None or parked.replayed_at is not None:
            return
        parked.replayed_at = datetime.utcnow()
        parked.replay_result = result
        self.db.commit()
