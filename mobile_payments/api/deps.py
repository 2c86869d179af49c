"""
Shared FastAPI dependencies.

The gateway client is built once per process from configuration.
Tests override these dependencies with a scripted simulator and a
recording notifier.
"""

from functools import lru_cache

from fastapi import Depends
from sqlalchemy.orm import Session
from tenacity import Retrying

from mobile_payments.gateway.base import GatewayClient
from mobile_payments.gateway.factory import build_gateway
from mobile_payments.models.base import get_db
from mobile_payments.services.callback_reconciler import CallbackReconciler
from mobile_payments.services.notifier import LoggingNotifier, Notifier
from mobile_payments.services.payment_orchestrator import PaymentOrchestrator


@lru_cache()
def get_gateway() -> GatewayClient:
    return build_gateway()


def get_notifier() -> Notifier:
    return LoggingNotifier()


def get_gateway_retrying() -> Retrying | None:
    """None means the orchestrator's default backoff from settings."""
    return None


def get_orchestrator(
    db: Session = Depends(get_db),
    gateway: GatewayClient = Depends(get_gateway),
    notifier: Notifier = Depends(get_notifier),
    retrying: Retrying | None = Depends(get_gateway_retrying),
) -> PaymentOrchestrator:
    return PaymentOrchestrator(db, gateway, notifier, retrying=retrying)


def get_reconciler(
    db: Session = Depends(get_db),
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
) -> CallbackReconciler:
    return CallbackReconciler(db, orchestrator)
