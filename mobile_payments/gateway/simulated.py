"""
Simulated gateway.

Stands in for the real gateway in demo deployments and tests.
Every request is accepted unless a rejection or an outage has been
scripted for it, and polling a request reports it as settled for
the amount that was requested.
"""

import threading
import uuid
from collections import deque
from dataclasses import dataclass

from mobile_payments.exceptions import GatewayUnavailable
from mobile_payments.gateway.base import GatewayAck, GatewayClient, GatewayStatus
from mobile_payments.logging_config import get_logger
from mobile_payments.models.enums import CallbackOutcome, PaymentLeg

logger = get_logger(__name__)

_PREFIXES = {
    PaymentLeg.COLLECTION: "SIM-COL",
    PaymentLeg.DISBURSEMENT: "SIM-DSB",
    PaymentLeg.REVERSAL: "SIM-REV",
}


@dataclass
class SimulatedRequest:
    request_id: str
    leg: PaymentLeg
    account: str
    amount: int
    reference: str


class SimulatedGateway(GatewayClient):
    """
    In-memory gateway.

    Scripted responses are consumed in order, per leg:
    ``reject_next`` makes the next call return a rejection and
    ``fail_next`` makes it raise GatewayUnavailable.
    """

    def __init__(self, settle_on_query: bool = True):
        self.settle_on_query = settle_on_query
        self.requests: dict[str, SimulatedRequest] = {}
        self._by_reference: dict[tuple[PaymentLeg, str], str] = {}
        self._scripted: dict[PaymentLeg, deque] = {leg: deque() for leg in PaymentLeg}
        self._results: dict[str, GatewayStatus] = {}
        self._lock = threading.Lock()

    # --- Scripting ---

    def reject_next(self, leg: PaymentLeg, reason: str = "Rejected") -> None:
        self._scripted[leg].append(("reject", reason))

    def fail_next(self, leg: PaymentLeg, times: int = 1) -> None:
        for _ in range(times):
            self._scripted[leg].append(("unavailable", None))

    def set_result(
        self,
        request_id: str,
        outcome: CallbackOutcome | None,
        reported_amount: int | None = None,
        reason: str | None = None,
    ) -> None:
        """Fix what query_status reports for ``request_id``."""
        request = self.requests[request_id]
        self._results[request_id] = GatewayStatus(
            request_id=request_id,
            leg=request.leg,
            outcome=outcome,
            reported_amount=(
                request.amount if reported_amount is None else reported_amount
            ),
            reason=reason,
        )

    def calls(self, leg: PaymentLeg) -> list[SimulatedRequest]:
        return [r for r in self.requests.values() if r.leg == leg]

    # --- GatewayClient ---

    def initiate_collection(
        self, payer_reference: str, amount: int, reference: str
    ) -> GatewayAck:
        return self._submit(PaymentLeg.COLLECTION, payer_reference, amount, reference)

    def initiate_disbursement(
        self, payee_reference: str, amount: int, reference: str
    ) -> GatewayAck:
        return self._submit(
            PaymentLeg.DISBURSEMENT, payee_reference, amount, reference
        )

    def initiate_reversal(
        self, collection_request_id: str, amount: int, reference: str
    ) -> GatewayAck:
        return self._submit(
            PaymentLeg.REVERSAL, collection_request_id, amount, reference
        )

    def query_status(self, leg: PaymentLeg, request_id: str) -> GatewayStatus:
        with self._lock:
            if request_id in self._results:
                return self._results[request_id]
            request = self.requests.get(request_id)
        if request is None or not self.settle_on_query:
            return GatewayStatus(request_id=request_id, leg=leg)
        return GatewayStatus(
            request_id=request_id,
            leg=leg,
            outcome=CallbackOutcome.SUCCESS,
            reported_amount=request.amount,
        )

    def _submit(
        self, leg: PaymentLeg, account: str, amount: int, reference: str
    ) -> GatewayAck:
        with self._lock:
            if self._scripted[leg]:
                action, reason = self._scripted[leg].popleft()
                if action == "unavailable":
                    raise GatewayUnavailable(f"Simulated {leg.value} outage")
                return GatewayAck(accepted=False, reason=reason)

            # Same reference, same request: the gateway deduplicates
            existing = self._by_reference.get((leg, reference))
            if existing:
                return GatewayAck(accepted=True, request_id=existing)

            request_id = f"{_PREFIXES[leg]}-{uuid.uuid4().hex[:16].upper()}"
            self.requests[request_id] = SimulatedRequest(
                request_id=request_id,
                leg=leg,
                account=account,
                amount=amount,
                reference=reference,
            )
            self._by_reference[(leg, reference)] = request_id

        logger.info(
            "simulated_gateway_request_accepted",
            leg=leg.value,
            request_id=request_id,
            amount=amount,
        )
        return GatewayAck(accepted=True, request_id=request_id)
