"""
Parked callback model.

A gateway can deliver the result of a request before it has
acknowledged the request itself, so the request id is not yet
recorded on any transaction. Such callbacks are kept here and
replayed once the request id is known.
"""

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, String, Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from mobile_payments.models.base import Base
from mobile_payments.models.enums import CallbackOutcome, PaymentLeg


class ParkedCallback(Base):
    __tablename__ = "parked_callbacks"

    id: Mapped[int] = mapped_column(primary_key=True)
    leg: Mapped[PaymentLeg] = mapped_column(
        SAEnum(PaymentLeg, name="payment_leg_enum"), nullable=False
    )
    request_id: Mapped[str] = mapped_column(
        String(100), nullable=False, index=True
    )
    outcome: Mapped[CallbackOutcome] = mapped_column(
        SAEnum(CallbackOutcome, name="callback_outcome_enum"), nullable=False
    )
    reported_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    failure_reason: Mapped[str | None] = mapped_column(
        String(500), nullable=True
    )
    received_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )
    replayed_at: Mapped[datetime | None] = mapped_column(
        DateTime, nullable=True
    )
    replay_result: Mapped[str | None] = mapped_column(String(30), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<ParkedCallback {self.id} {self.leg.value} "
            f"{self.request_id} {self.outcome.value}>"
        )
