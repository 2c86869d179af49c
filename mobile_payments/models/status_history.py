"""
Status history model.

Each row records one edge of a transaction's state machine.
Rows are immutable: once appended, they are never modified
or deleted. Reading them in sequence order replays the
transaction's path from CREATED to its current status.
"""

from datetime import datetime

from sqlalchemy import (
    DateTime, ForeignKey, Integer, String, UniqueConstraint,
    Enum as SAEnum,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from mobile_payments.models.base import Base
from mobile_payments.models.enums import (
    CallbackOutcome,
    PaymentLeg,
    TransactionStatus,
)


class StatusHistoryEntry(Base):
    """
    One transition of a transaction.

    trigger_* columns are filled when a gateway result (callback
    or sweep query) caused the transition. They are what makes a
    redelivered callback recognisable as a duplicate.
    """

    __tablename__ = "transaction_status_history"
    __table_args__ = (
        UniqueConstraint(
            "transaction_id", "sequence", name="uq_history_transaction_sequence"
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    transaction_id: Mapped[int] = mapped_column(
        ForeignKey("payment_transactions.id"), nullable=False, index=True
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    from_status: Mapped[TransactionStatus | None] = mapped_column(
        SAEnum(TransactionStatus, name="transaction_status_enum"),
        nullable=True,
    )
    to_status: Mapped[TransactionStatus] = mapped_column(
        SAEnum(TransactionStatus, name="transaction_status_enum"),
        nullable=False,
    )
    reason: Mapped[str] = mapped_column(String(500), nullable=False)
    trigger_leg: Mapped[PaymentLeg | None] = mapped_column(
        SAEnum(PaymentLeg, name="payment_leg_enum"), nullable=True
    )
    trigger_outcome: Mapped[CallbackOutcome | None] = mapped_column(
        SAEnum(CallbackOutcome, name="callback_outcome_enum"), nullable=True
    )
    trigger_request_id: Mapped[str | None] = mapped_column(
        String(100), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )

    transaction: Mapped["Transaction"] = relationship(
        back_populates="status_history"
    )

    def __repr__(self) -> str:
        from_value = self.from_status.value if self.from_status else "-"
        return (
            f"<StatusHistoryEntry #{self.sequence} "
            f"{from_value}->{self.to_status.value}>"
        )
