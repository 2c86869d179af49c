"""
Pydantic schemas for payment operations.

Payer and payee are separate required fields from the very first
validation step; nothing downstream infers who pays whom.
"""

import re
import uuid
from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from mobile_payments.config import get_settings
from mobile_payments.models.enums import (
    CallbackOutcome,
    PaymentLeg,
    TransactionStatus,
)

_PHONE_PATTERN = re.compile(r"^\+?\d{9,15}$")


def normalize_account_reference(value: str) -> str:
    """
    Canonicalise a mobile-money handle.

    Phone-number-shaped handles lose a leading '+', and a local
    leading '0' is replaced by the country code. Anything else is
    treated as opaque and only stripped of whitespace.
    """
    value = value.strip().replace(" ", "")
    if not _PHONE_PATTERN.match(value):
        return value
    value = value.lstrip("+")
    if value.startswith("0"):
        value = get_settings().MSISDN_COUNTRY_CODE + value[1:]
    return value


# --- Request Schemas ---

class PaymentCreate(BaseModel):
    """Request to move money from a payer to a payee."""
    payer_reference: str = Field(min_length=1, max_length=64)
    payee_reference: str = Field(min_length=1, max_length=64)
    # Minor currency units. Positivity is checked by the commission
    # calculator so that it surfaces as InvalidAmount.
    gross_amount: int

    @field_validator("payer_reference", "payee_reference")
    @classmethod
    def normalize_reference(cls, v: str) -> str:
        v = normalize_account_reference(v)
        if not v:
            raise ValueError("account reference must not be blank")
        return v


# --- Response Schemas ---

class StatusHistoryResponse(BaseModel):
    sequence: int
    from_status: TransactionStatus | None
    to_status: TransactionStatus
    reason: str
    trigger_leg: PaymentLeg | None
    trigger_outcome: CallbackOutcome | None
    trigger_request_id: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class TransactionResponse(BaseModel):
    id: int
    external_id: uuid.UUID
    payer_reference: str
    payee_reference: str
    gross_amount: int
    commission_amount: int
    net_amount: int
    status: TransactionStatus
    collection_request_id: str | None
    disbursement_request_id: str | None
    reversal_request_id: str | None
    is_frozen: bool
    failure_reason: str | None
    created_at: datetime
    last_transition_at: datetime
    status_history: list[StatusHistoryResponse]

    model_config = {"from_attributes": True}


class TransactionSummary(BaseModel):
    """Row in an account's payment history."""
    id: int
    payer_reference: str
    payee_reference: str
    gross_amount: int
    net_amount: int
    status: TransactionStatus
    created_at: datetime

    model_config = {"from_attributes": True}


class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total_payments: int
    limit: int


class PaymentHistoryResponse(BaseModel):
    payments: list[TransactionSummary]
    pagination: Pagination
