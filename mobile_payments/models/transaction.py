"""
Payment transaction model.

One row per payer-to-payee payment. The row carries both legs
(collection from the payer, disbursement to the payee) plus the
reversal leg used when a disbursement fails after the money was
collected.

The transaction has a state machine governing its lifecycle.
Invalid state transitions are rejected. Concurrent writers are
serialised by the version column: SQLAlchemy adds
``WHERE version = :read_version`` to every UPDATE.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    BigInteger, Boolean, DateTime, Integer, String,
    Enum as SAEnum, Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from mobile_payments.models.base import Base
from mobile_payments.models.enums import (
    CallbackOutcome,
    PaymentLeg,
    TransactionStatus,
)


# Valid state transitions, the source of truth for the state machine
VALID_TRANSITIONS: dict[TransactionStatus, set[TransactionStatus]] = {
    TransactionStatus.CREATED: {
        TransactionStatus.COLLECTION_PENDING,
        TransactionStatus.COLLECTION_FAILED,
    },
    TransactionStatus.COLLECTION_PENDING: {
        TransactionStatus.COLLECTED,
        TransactionStatus.COLLECTION_FAILED,
    },
    TransactionStatus.COLLECTED: {
        TransactionStatus.DISBURSEMENT_PENDING,
        TransactionStatus.REVERSAL_PENDING,
    },
    TransactionStatus.DISBURSEMENT_PENDING: {
        TransactionStatus.SETTLED,
        TransactionStatus.REVERSAL_PENDING,
    },
    TransactionStatus.REVERSAL_PENDING: {TransactionStatus.REVERSED},
    # Terminal states: no transitions out
    TransactionStatus.COLLECTION_FAILED: set(),
    TransactionStatus.DISBURSEMENT_FAILED: set(),
    TransactionStatus.SETTLED: set(),
    TransactionStatus.REVERSED: set(),
}

TERMINAL_STATUSES = frozenset(
    status for status, targets in VALID_TRANSITIONS.items() if not targets
)


class Transaction(Base):
    __tablename__ = "payment_transactions"

    id: Mapped[int] = mapped_column(primary_key=True)
    external_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, unique=True, nullable=False, default=uuid.uuid4
    )
    payer_reference: Mapped[str] = mapped_column(
        String(64), nullable=False, index=True
    )
    payee_reference: Mapped[str] = mapped_column(
        String(64), nullable=False, index=True
    )
    # Minor currency units
    gross_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    commission_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    net_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    status: Mapped[TransactionStatus] = mapped_column(
        SAEnum(
            TransactionStatus,
            name="transaction_status_enum",
            create_constraint=True,
        ),
        nullable=False,
        default=TransactionStatus.CREATED,
        index=True,
    )
    collection_request_id: Mapped[str | None] = mapped_column(
        String(100), unique=True, nullable=True
    )
    disbursement_request_id: Mapped[str | None] = mapped_column(
        String(100), unique=True, nullable=True
    )
    reversal_request_id: Mapped[str | None] = mapped_column(
        String(100), unique=True, nullable=True
    )
    disbursement_claimed_at: Mapped[datetime | None] = mapped_column(
        DateTime, nullable=True
    )
    reversal_claimed_at: Mapped[datetime | None] = mapped_column(
        DateTime, nullable=True
    )
    is_frozen: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    failure_reason: Mapped[str | None] = mapped_column(
        String(500), nullable=True
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )
    last_transition_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, index=True
    )

    status_history: Mapped[list["StatusHistoryEntry"]] = relationship(
        back_populates="transaction",
        order_by="StatusHistoryEntry.sequence",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version}

    def can_transition_to(self, new_status: TransactionStatus) -> bool:
        """Check if a state transition is valid."""
        return new_status in VALID_TRANSITIONS.get(self.status, set())

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def expected_amount(self, leg: PaymentLeg) -> int:
        """Amount the gateway should report for ``leg``."""
        if leg == PaymentLeg.DISBURSEMENT:
            return self.net_amount
        return self.gross_amount

    def request_id_for(self, leg: PaymentLeg) -> str | None:
        return {
            PaymentLeg.COLLECTION: self.collection_request_id,
            PaymentLeg.DISBURSEMENT: self.disbursement_request_id,
            PaymentLeg.REVERSAL: self.reversal_request_id,
        }[leg]

    def has_transition_for(
        self,
        leg: PaymentLeg,
        outcome: CallbackOutcome,
        request_id: str,
    ) -> bool:
        """True if a gateway result for this exact request was applied."""
        return any(
            entry.trigger_leg == leg
            and entry.trigger_outcome == outcome
            and entry.trigger_request_id == request_id
            for entry in self.status_history
        )

    def __repr__(self) -> str:
        return (
            f"<Transaction {self.id} {self.gross_amount} "
            f"{self.payer_reference}->{self.payee_reference} "
            f"({self.status.value})>"
        )
