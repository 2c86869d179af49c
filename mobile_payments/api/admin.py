"""
Administrative endpoints.

The review queue holds every problem the payment flow refuses to
resolve on its own: amount mismatches, unknown or conflicting
callbacks, failed and stalled reversals, stuck transactions.
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from mobile_payments.api.deps import get_orchestrator, get_reconciler
from mobile_payments.exceptions import ReviewItemNotFound
from mobile_payments.models.base import get_db
from mobile_payments.schemas.admin import (
    PaymentStatistics,
    ReviewItemResponse,
    ReviewResolve,
    SweepReportResponse,
)
from mobile_payments.services.callback_reconciler import CallbackReconciler
from mobile_payments.services.ledger_store import LedgerStore
from mobile_payments.services.payment_orchestrator import PaymentOrchestrator
from mobile_payments.services.reconciliation_sweep import ReconciliationSweep

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.get("/review-queue", response_model=list[ReviewItemResponse])
def list_review_queue(
    include_resolved: bool = Query(default=False),
    db: Session = Depends(get_db),
):
    """Open review items, oldest first."""
    return LedgerStore(db).list_review_items(open_only=not include_resolved)


@router.post(
    "/review-queue/{item_id}/resolve",
    response_model=ReviewItemResponse,
)
def resolve_review_item(
    item_id: int,
    request: ReviewResolve,
    db: Session = Depends(get_db),
):
    """
    Close a review item.

    With unfreeze=true a transaction frozen by an amount mismatch
    becomes eligible for callbacks and the sweep again. With
    release_claims=true an abandoned disbursement or reversal claim
    is cleared so the leg can be issued again.
    """
    try:
        return LedgerStore(db).resolve_review_item(
            item_id,
            request.resolution,
            unfreeze=request.unfreeze,
            release_claims=request.release_claims,
        )
    except ReviewItemNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/statistics", response_model=PaymentStatistics)
def get_statistics(db: Session = Depends(get_db)):
    """Payment counts and totals across all accounts."""
    return LedgerStore(db).statistics()


@router.post("/sweep", response_model=SweepReportResponse)
def run_sweep(
    db: Session = Depends(get_db),
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
    reconciler: CallbackReconciler = Depends(get_reconciler),
):
    """Run one reconciliation sweep now instead of waiting for the worker."""
    report = ReconciliationSweep(db, orchestrator, reconciler).run()
    return report.to_dict()
