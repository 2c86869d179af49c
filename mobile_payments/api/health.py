"""
Health check endpoint.

Reports database connectivity and which gateway backend this
instance was configured with.
"""

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from mobile_payments.config import get_settings
from mobile_payments.logging_config import get_logger
from mobile_payments.models.base import get_db

logger = get_logger(__name__)

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check(db: Session = Depends(get_db)):
    """
    Return application health status including database connectivity.

    A failed database check reports "degraded" rather than raising,
    so the load balancer gets an answer it can act on.
    """
    settings = get_settings()
    try:
        db.execute(text("SELECT 1"))
        db_status = "healthy"
    except SQLAlchemyError as e:
        logger.error("health_check_database_failed", error=str(e))
        db_status = "unhealthy"

    return {
        "status": "healthy" if db_status == "healthy" else "degraded",
        "service": "mobile-money-payments",
        "version": settings.APP_VERSION,
        "database": db_status,
        "gateway_mode": settings.GATEWAY_MODE,
    }
