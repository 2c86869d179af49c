"""
Shared test fixtures.

Sets up an isolated test database so tests never touch
the real database. Every test starts from empty tables,
a fresh simulated gateway and a notifier that records
what it was asked to send.
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_none

from mobile_payments.api.deps import get_gateway, get_gateway_retrying, get_notifier
from mobile_payments.exceptions import GatewayUnavailable
from mobile_payments.gateway.simulated import SimulatedGateway
from mobile_payments.main import app
from mobile_payments.models.base import Base, get_db
from mobile_payments.models.enums import CallbackOutcome
from mobile_payments.schemas.callback import CallbackPayload
from mobile_payments.schemas.payment import PaymentCreate
from mobile_payments.services.callback_reconciler import CallbackReconciler
from mobile_payments.services.notifier import Notifier
from mobile_payments.services.payment_orchestrator import PaymentOrchestrator


# Use SQLite for tests, no external database needed.
TEST_DATABASE_URL = "sqlite:///./test.db"

engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
)

TestSessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
)

PAYER = "254711000001"
PAYEE = "254722000002"


class RecordingNotifier(Notifier):
    """Keeps every notification so tests can assert on them."""

    def __init__(self):
        self.sent = []

    def notify(self, account_reference, event_kind, transaction_id):
        self.sent.append((account_reference, event_kind, transaction_id))

    def kinds_for(self, transaction_id):
        return [kind for _, kind, txn_id in self.sent if txn_id == transaction_id]


@pytest.fixture(autouse=True)
def setup_database():
    """Create all tables before each test, drop them after."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session():
    """Provide a database session for direct service testing."""
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def other_session():
    """A second, independent session: a concurrent writer."""
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def gateway():
    return SimulatedGateway()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def retrying():
    """Gateway retry policy without the backoff sleeps."""
    return Retrying(
        retry=retry_if_exception_type(GatewayUnavailable),
        stop=stop_after_attempt(3),
        wait=wait_none(),
        reraise=True,
    )


@pytest.fixture
def orchestrator(db_session, gateway, notifier, retrying):
    return PaymentOrchestrator(db_session, gateway, notifier, retrying=retrying)


@pytest.fixture
def reconciler(db_session, orchestrator):
    return CallbackReconciler(db_session, orchestrator)


@pytest.fixture
def create_payment(orchestrator):
    """Start a payment; returns it in COLLECTION_PENDING."""
    def _create(gross_amount=10_000, payer=PAYER, payee=PAYEE):
        return orchestrator.initiate_payment(PaymentCreate(
            payer_reference=payer,
            payee_reference=payee,
            gross_amount=gross_amount,
        ))
    return _create


@pytest.fixture
def deliver(reconciler):
    """Deliver a gateway callback for one leg of ``txn``."""
    def _deliver(txn, leg, outcome=CallbackOutcome.SUCCESS, amount=None,
                 reason=None, request_id=None):
        return reconciler.handle_callback(CallbackPayload(
            request_id=request_id or txn.request_id_for(leg),
            leg=leg,
            outcome=outcome,
            reported_amount=txn.expected_amount(leg) if amount is None else amount,
            failure_reason=reason,
        ))
    return _deliver


@pytest.fixture
def client(db_session, gateway, notifier, retrying):
    """
    Provide a test client with the test database.

    The database session, gateway, notifier and retry policy
    are all swapped for the test doubles above.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_gateway_retrying] = lambda: retrying
    yield TestClient(app)
    app.dependency_overrides.clear()
