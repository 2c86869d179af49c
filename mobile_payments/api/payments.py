"""
Payment API endpoints.
"""

import math

from fastapi import APIRouter, Depends, HTTPException, Query

from mobile_payments.api.deps import get_orchestrator
from mobile_payments.exceptions import (
    CollectionRejected,
    GatewayUnavailable,
    InvalidTransition,
    TransactionNotFound,
)
from mobile_payments.schemas.admin import ReversalComplete
from mobile_payments.schemas.payment import (
    Pagination,
    PaymentCreate,
    PaymentHistoryResponse,
    TransactionResponse,
    normalize_account_reference,
)
from mobile_payments.services.payment_orchestrator import PaymentOrchestrator

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("", response_model=TransactionResponse, status_code=201)
def create_payment(
    request: PaymentCreate,
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
):
    """
    Start a payment from payer to payee.

    Returns as soon as the collection request has been accepted by
    the gateway; the rest of the payment completes via callbacks.
    """
    try:
        return orchestrator.initiate_payment(request)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except CollectionRejected as e:
        raise HTTPException(status_code=402, detail=str(e))
    except GatewayUnavailable as e:
        raise HTTPException(
            status_code=503, detail=f"Payment gateway unavailable: {e}"
        )


@router.get("", response_model=PaymentHistoryResponse)
def list_payments(
    account: str = Query(min_length=1, max_length=64),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
):
    """Payment history for one account, newest first."""
    payments, total = orchestrator.list_payments(
        normalize_account_reference(account), page, limit
    )
    return PaymentHistoryResponse(
        payments=payments,
        pagination=Pagination(
            current_page=page,
            total_pages=math.ceil(total / limit),
            total_payments=total,
            limit=limit,
        ),
    )


@router.get("/{transaction_id}", response_model=TransactionResponse)
def get_payment(
    transaction_id: int,
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
):
    """Get a payment with its full status history."""
    try:
        return orchestrator.get_transaction(transaction_id)
    except TransactionNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


# --- Administrative recovery ---

@router.post(
    "/{transaction_id}/retry-disbursement",
    response_model=TransactionResponse,
)
def retry_disbursement(
    transaction_id: int,
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
):
    """
    Issue the disbursement for a payment stuck in COLLECTED.

    Safe to repeat: once the disbursement is pending or settled
    the payment is returned unchanged.
    """
    try:
        return orchestrator.retry_disbursement(transaction_id)
    except TransactionNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    except GatewayUnavailable as e:
        raise HTTPException(
            status_code=503, detail=f"Payment gateway unavailable: {e}"
        )


@router.post(
    "/{transaction_id}/complete-reversal",
    response_model=TransactionResponse,
)
def complete_reversal(
    transaction_id: int,
    request: ReversalComplete | None = None,
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
):
    """Record that the collected amount was returned to the payer."""
    request = request or ReversalComplete()
    try:
        return orchestrator.complete_reversal(transaction_id, request.reason)
    except TransactionNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
