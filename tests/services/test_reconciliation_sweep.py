"""
Tests for the ReconciliationSweep.

The sweep's clock is passed in, so "ten minutes later" and
"two days later" are simulated by moving ``now`` forward.
"""

from datetime import datetime, timedelta

import pytest

from mobile_payments.config import get_settings
from mobile_payments.exceptions import GatewayUnavailable
from mobile_payments.models.enums import (
    CallbackOutcome,
    NotificationKind,
    PaymentLeg,
    ReviewKind,
    TransactionStatus,
)
from mobile_payments.services.callback_reconciler import CallbackResult
from mobile_payments.services.commission import compute_commission
from mobile_payments.services.ledger_store import LedgerStore
from mobile_payments.services.reconciliation_sweep import ReconciliationSweep

settings = get_settings()


def after_timeout():
    return datetime.utcnow() + timedelta(seconds=settings.PENDING_TIMEOUT_SECONDS + 5)


def after_max_age():
    return datetime.utcnow() + timedelta(seconds=settings.PENDING_MAX_AGE_SECONDS + 5)


def open_items(db_session, kind):
    return [i for i in LedgerStore(db_session).list_review_items() if i.kind == kind]


@pytest.fixture
def sweep(db_session, orchestrator, reconciler):
    return ReconciliationSweep(db_session, orchestrator, reconciler)


class TestPendingCollections:

    def test_fresh_payments_are_left_alone(self, create_payment, sweep, gateway):
        create_payment()

        report = sweep.run()

        assert report.examined == 0
        assert gateway.calls(PaymentLeg.DISBURSEMENT) == []

    def test_settled_collection_is_found_by_polling(self, create_payment, sweep):
        txn = create_payment()

        report = sweep.run(now=after_timeout())

        assert report.examined == 1
        assert report.resolved == 1
        assert txn.status == TransactionStatus.DISBURSEMENT_PENDING
        assert txn.status_history[2].trigger_leg == PaymentLeg.COLLECTION

    def test_late_callback_after_sweep_is_duplicate(
        self, create_payment, sweep, deliver
    ):
        txn = create_payment()
        sweep.run(now=after_timeout())

        result = deliver(txn, PaymentLeg.COLLECTION)

        assert result == CallbackResult.DUPLICATE

    def test_failed_collection_is_found_by_polling(
        self, create_payment, sweep, gateway, notifier
    ):
        txn = create_payment()
        gateway.set_result(
            txn.collection_request_id, CallbackOutcome.FAILURE,
            reason="Insufficient balance",
        )

        report = sweep.run(now=after_timeout())

        assert report.resolved == 1
        assert txn.status == TransactionStatus.COLLECTION_FAILED
        assert txn.failure_reason == "Insufficient balance"
        assert notifier.kinds_for(txn.id) == [NotificationKind.COLLECTION_FAILED]

    def test_still_pending_is_left_until_max_age(self, create_payment, sweep, gateway):
        gateway.settle_on_query = False
        txn = create_payment()

        report = sweep.run(now=after_timeout())

        assert report.timed_out == 0
        assert txn.status == TransactionStatus.COLLECTION_PENDING

    def test_pending_past_max_age_times_out(
        self, create_payment, sweep, gateway, notifier
    ):
        gateway.settle_on_query = False
        txn = create_payment()

        report = sweep.run(now=after_max_age())

        assert report.timed_out == 1
        assert txn.status == TransactionStatus.COLLECTION_FAILED
        assert "timed out" in txn.failure_reason
        assert notifier.kinds_for(txn.id) == [NotificationKind.COLLECTION_FAILED]

    def test_polled_amount_mismatch_is_flagged(
        self, create_payment, sweep, gateway, db_session
    ):
        txn = create_payment(gross_amount=10_000)
        gateway.set_result(
            txn.collection_request_id, CallbackOutcome.SUCCESS, reported_amount=1
        )

        report = sweep.run(now=after_timeout())

        assert report.flagged == 1
        assert txn.is_frozen is True
        assert txn.status == TransactionStatus.COLLECTION_PENDING
        assert len(open_items(db_session, ReviewKind.AMOUNT_MISMATCH)) == 1

    def test_frozen_payments_are_skipped(
        self, create_payment, sweep, db_session, gateway
    ):
        txn = create_payment()
        txn.is_frozen = True
        LedgerStore(db_session).save(txn)

        report = sweep.run(now=after_timeout())

        assert report.examined == 0
        assert txn.status == TransactionStatus.COLLECTION_PENDING

    def test_gateway_outage_is_counted_not_raised(
        self, create_payment, sweep, gateway, monkeypatch
    ):
        txn = create_payment()

        def unavailable(leg, request_id):
            raise GatewayUnavailable("query endpoint down")

        monkeypatch.setattr(gateway, "query_status", unavailable)

        report = sweep.run(now=after_timeout())

        assert report.gateway_errors == 1
        assert txn.status == TransactionStatus.COLLECTION_PENDING


class TestCollectedAndDisbursing:

    def test_collected_without_disbursement_is_disbursed(
        self, create_payment, deliver, sweep, gateway
    ):
        txn = create_payment()
        gateway.fail_next(PaymentLeg.DISBURSEMENT, times=3)
        deliver(txn, PaymentLeg.COLLECTION)
        assert txn.status == TransactionStatus.COLLECTED

        report = sweep.run(now=after_timeout())

        assert report.disbursements_started == 1
        assert txn.status == TransactionStatus.DISBURSEMENT_PENDING

    def test_abandoned_claim_is_flagged_not_reissued(
        self, create_payment, deliver, sweep, gateway, db_session
    ):
        txn = create_payment()
        gateway.fail_next(PaymentLeg.DISBURSEMENT, times=3)
        deliver(txn, PaymentLeg.COLLECTION)
        txn.disbursement_claimed_at = datetime.utcnow()
        LedgerStore(db_session).save(txn)

        report = sweep.run(now=after_timeout())

        assert report.disbursements_started == 0
        assert report.flagged == 1
        assert gateway.calls(PaymentLeg.DISBURSEMENT) == []
        assert txn.status == TransactionStatus.COLLECTED
        [item] = open_items(db_session, ReviewKind.STUCK_TRANSACTION)
        assert f"{txn.external_id}:disbursement" in item.details

    def test_released_claim_is_disbursed_by_next_sweep(
        self, create_payment, deliver, sweep, gateway, db_session
    ):
        txn = create_payment()
        gateway.fail_next(PaymentLeg.DISBURSEMENT, times=3)
        deliver(txn, PaymentLeg.COLLECTION)
        store = LedgerStore(db_session)
        txn.disbursement_claimed_at = datetime.utcnow()
        store.save(txn)
        sweep.run(now=after_timeout())
        [item] = open_items(db_session, ReviewKind.STUCK_TRANSACTION)

        store.resolve_review_item(
            item.id, "No request at the gateway", release_claims=True
        )
        report = sweep.run(now=after_timeout())

        assert report.disbursements_started == 1
        assert len(gateway.calls(PaymentLeg.DISBURSEMENT)) == 1
        assert txn.status == TransactionStatus.DISBURSEMENT_PENDING

    def test_pending_disbursement_settles_by_polling(
        self, create_payment, deliver, sweep, notifier
    ):
        txn = create_payment()
        deliver(txn, PaymentLeg.COLLECTION)

        report = sweep.run(now=after_timeout())

        assert report.resolved == 1
        assert txn.status == TransactionStatus.SETTLED
        assert NotificationKind.PAYMENT_RECEIVED in notifier.kinds_for(txn.id)

    def test_stuck_disbursement_is_flagged_once(
        self, create_payment, deliver, sweep, gateway, db_session
    ):
        gateway.settle_on_query = False
        txn = create_payment()
        deliver(txn, PaymentLeg.COLLECTION)

        first = sweep.run(now=after_max_age())
        second = sweep.run(now=after_max_age())

        assert first.flagged == 1
        assert second.flagged == 0
        assert txn.status == TransactionStatus.DISBURSEMENT_PENDING
        [item] = open_items(db_session, ReviewKind.STUCK_TRANSACTION)
        assert item.transaction_id == txn.id


class TestReversals:

    def test_reversal_never_sent_is_started(
        self, create_payment, deliver, sweep, gateway
    ):
        txn = create_payment()
        deliver(txn, PaymentLeg.COLLECTION)
        gateway.fail_next(PaymentLeg.REVERSAL, times=3)
        deliver(txn, PaymentLeg.DISBURSEMENT, CallbackOutcome.FAILURE)
        assert txn.reversal_request_id is None

        report = sweep.run(now=after_timeout())

        assert report.reversals_started == 1
        assert txn.reversal_request_id is not None
        assert txn.status == TransactionStatus.REVERSAL_PENDING

    def test_pending_reversal_completes_by_polling(
        self, create_payment, deliver, sweep, notifier
    ):
        txn = create_payment()
        deliver(txn, PaymentLeg.COLLECTION)
        deliver(txn, PaymentLeg.DISBURSEMENT, CallbackOutcome.FAILURE)

        report = sweep.run(now=after_timeout())

        assert report.resolved == 1
        assert txn.status == TransactionStatus.REVERSED
        assert notifier.kinds_for(txn.id)[-1] == NotificationKind.PAYMENT_REVERSED

    def test_stalled_reversal_is_flagged(
        self, create_payment, deliver, sweep, gateway, db_session
    ):
        gateway.settle_on_query = False
        txn = create_payment()
        deliver(txn, PaymentLeg.COLLECTION)
        deliver(txn, PaymentLeg.DISBURSEMENT, CallbackOutcome.FAILURE)

        report = sweep.run(now=after_max_age())

        assert report.flagged == 1
        assert txn.status == TransactionStatus.REVERSAL_PENDING
        [item] = open_items(db_session, ReviewKind.REVERSAL_STALLED)
        assert item.transaction_id == txn.id


class TestParkedCallbacks:

    def test_sweep_replays_parked_callbacks(self, create_payment, sweep, db_session):
        txn = create_payment()
        LedgerStore(db_session).park_callback(
            PaymentLeg.COLLECTION, txn.collection_request_id,
            CallbackOutcome.SUCCESS, txn.gross_amount,
        )

        report = sweep.run()

        assert report.callbacks_replayed == 1
        assert report.examined == 0
        assert txn.status == TransactionStatus.DISBURSEMENT_PENDING


class TestStuckCreated:

    def test_created_transaction_is_flagged(self, db_session, sweep):
        store = LedgerStore(db_session)
        txn = store.create(
            "254711000001", "254722000002", 1_000, compute_commission(1_000)
        )

        report = sweep.run(now=after_timeout())

        assert report.flagged == 1
        assert txn.status == TransactionStatus.CREATED
        [item] = open_items(db_session, ReviewKind.STUCK_TRANSACTION)
        assert item.transaction_id == txn.id
