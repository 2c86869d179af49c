"""
Review queue model.

Payments that cannot be resolved automatically (amount
mismatches, callbacks for unknown requests, reversals that
never complete) are parked here for an operator.
"""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, Text, Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from mobile_payments.models.base import Base
from mobile_payments.models.enums import ReviewKind


class ReviewItem(Base):
    """
    A problem waiting for human action.

    Items are only ever resolved, never deleted, so the queue
    doubles as an audit trail of manual interventions.
    """

    __tablename__ = "review_queue"

    id: Mapped[int] = mapped_column(primary_key=True)
    transaction_id: Mapped[int | None] = mapped_column(
        ForeignKey("payment_transactions.id"), nullable=True, index=True
    )
    kind: Mapped[ReviewKind] = mapped_column(
        SAEnum(ReviewKind, name="review_kind_enum", create_constraint=True),
        nullable=False,
    )
    request_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    details: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    resolved_at: Mapped[datetime | None] = mapped_column(
        DateTime, nullable=True
    )
    resolution: Mapped[str | None] = mapped_column(String(500), nullable=True)

    @property
    def is_open(self) -> bool:
        return self.resolved_at is None

    def __repr__(self) -> str:
        return f"<ReviewItem {self.id} {self.kind.value} txn={self.transaction_id}>"
