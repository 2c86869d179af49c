"""
Pydantic schemas for administrative endpoints.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from mobile_payments.models.enums import ReviewKind, TransactionStatus


class ReviewItemResponse(BaseModel):
    id: int
    transaction_id: int | None
    kind: ReviewKind
    request_id: str | None
    details: str
    created_at: datetime
    resolved_at: datetime | None
    resolution: str | None

    model_config = {"from_attributes": True}


class ReviewResolve(BaseModel):
    """Operator's note when closing a review item."""
    resolution: str = Field(min_length=1, max_length=500)
    unfreeze: bool = False
    release_claims: bool = False


class ReversalComplete(BaseModel):
    reason: str = Field(default="Reversal confirmed by operator", max_length=500)


class PaymentStatistics(BaseModel):
    counts_by_status: dict[TransactionStatus, int]
    total_settled_gross: int
    total_commission_earned: int
    total_reversed: int
    open_review_items: int


class SweepReportResponse(BaseModel):
    examined: int
    callbacks_replayed: int
    resolved: int
    disbursements_started: int
    reversals_started: int
    timed_out: int
    flagged: int
    gateway_errors: int
