"""
Pydantic schemas for gateway callbacks.
"""

from pydantic import BaseModel, Field

from mobile_payments.models.enums import CallbackOutcome, PaymentLeg


class CallbackPayload(BaseModel):
    """Result of one gateway request, pushed by webhook or pulled by the sweep."""
    request_id: str = Field(min_length=1, max_length=100)
    leg: PaymentLeg
    outcome: CallbackOutcome
    reported_amount: int
    failure_reason: str | None = Field(default=None, max_length=500)


class CallbackAck(BaseModel):
    """Always returned to the gateway so it stops redelivering."""
    status: str = "acknowledged"
    result: str
