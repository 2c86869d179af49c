"""
Reconciliation sweeper worker.

Runs the reconciliation sweep every SWEEP_INTERVAL_SECONDS until
it receives SIGINT or SIGTERM.

    python -m mobile_payments.workers.sweeper --interval 30
"""

import signal
import time
from typing import Any

from mobile_payments.config import get_settings
from mobile_payments.gateway.base import GatewayClient
from mobile_payments.gateway.factory import build_gateway
from mobile_payments.logging_config import get_logger, setup_logging
from mobile_payments.models.base import SessionLocal
from mobile_payments.services.callback_reconciler import CallbackReconciler
from mobile_payments.services.notifier import LoggingNotifier
from mobile_payments.services.payment_orchestrator import PaymentOrchestrator
from mobile_payments.services.reconciliation_sweep import (
    ReconciliationSweep,
    SweepReport,
)

logger = get_logger(__name__)


def run_sweep_once(gateway: GatewayClient) -> SweepReport:
    """Run one sweep in its own database session."""
    db = SessionLocal()
    try:
        orchestrator = PaymentOrchestrator(db, gateway, LoggingNotifier())
        reconciler = CallbackReconciler(db, orchestrator)
        return ReconciliationSweep(db, orchestrator, reconciler).run()
    finally:
        db.close()


def start_sweeper(interval: int | None = None) -> None:
    """
    Start the sweeper loop.

    A failed pass is logged and the loop carries on; the next pass
    picks the same transactions up again.
    """
    setup_logging()
    interval = interval or get_settings().SWEEP_INTERVAL_SECONDS
    gateway = build_gateway()

    logger.info("sweeper_starting", interval_seconds=interval)

    running = True

    def signal_handler(sig: int, frame: Any) -> None:
        nonlocal running
        logger.info("sweeper_shutdown_signal_received", signal=sig)
        running = False

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        while running:
            try:
                run_sweep_once(gateway)
            except Exception as e:
                logger.error("sweep_execution_error", error=str(e), exc_info=True)

            # Sleep in short steps so a shutdown signal is noticed quickly
            remaining = interval
            while remaining > 0 and running:
                step = min(remaining, 1)
                time.sleep(step)
                remaining -= step
    finally:
        gateway.close()
        logger.info("sweeper_stopped")


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Reconciliation sweeper")
    parser.add_argument(
        "--interval",
        type=int,
        default=None,
        help="Seconds between sweeps (default: SWEEP_INTERVAL_SECONDS)",
    )
    args = parser.parse_args()

    start_sweeper(interval=args.interval)
