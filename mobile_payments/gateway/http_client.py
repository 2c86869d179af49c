"""
Live gateway client over the gateway's JSON REST API.

Transport failures, timeouts, 429 and 5xx responses are raised as
GatewayUnavailable so the caller's retry policy can back off. Any
other non-accepted answer is a synchronous rejection.
"""

from typing import Any

import httpx

from mobile_payments.exceptions import GatewayUnavailable
from mobile_payments.gateway.base import GatewayAck, GatewayClient, GatewayStatus
from mobile_payments.logging_config import get_logger
from mobile_payments.models.enums import CallbackOutcome, PaymentLeg

logger = get_logger(__name__)


class HttpGatewayClient(GatewayClient):

    def __init__(
        self,
        base_url: str,
        api_key: str,
        callback_url: str,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.callback_url = callback_url
        self.client = httpx.Client(
            base_url=base_url,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    def initiate_collection(
        self, payer_reference: str, amount: int, reference: str
    ) -> GatewayAck:
        return self._submit("/collections", {
            "account": payer_reference,
            "amount": amount,
            "reference": reference,
            "callback_url": self.callback_url,
        })

    def initiate_disbursement(
        self, payee_reference: str, amount: int, reference: str
    ) -> GatewayAck:
        return self._submit("/disbursements", {
            "account": payee_reference,
            "amount": amount,
            "reference": reference,
            "callback_url": self.callback_url,
        })

    def initiate_reversal(
        self, collection_request_id: str, amount: int, reference: str
    ) -> GatewayAck:
        return self._submit("/reversals", {
            "original_request_id": collection_request_id,
            "amount": amount,
            "reference": reference,
            "callback_url": self.callback_url,
        })

    def query_status(self, leg: PaymentLeg, request_id: str) -> GatewayStatus:
        response = self._request("GET", f"/requests/{request_id}", params={
            "leg": leg.value,
        })
        if response.status_code == 404:
            return GatewayStatus(request_id=request_id, leg=leg)

        data = self._json(response)
        status = data.get("status")
        outcome = {
            "success": CallbackOutcome.SUCCESS,
            "failure": CallbackOutcome.FAILURE,
        }.get(status)
        return GatewayStatus(
            request_id=request_id,
            leg=leg,
            outcome=outcome,
            reported_amount=data.get("amount"),
            reason=data.get("reason"),
        )

    def close(self) -> None:
        self.client.close()

    def _submit(self, path: str, body: dict[str, Any]) -> GatewayAck:
        response = self._request("POST", path, json=body)
        data = self._json(response)

        if (
            response.is_success
            and data.get("status") == "accepted"
            and data.get("request_id")
        ):
            return GatewayAck(accepted=True, request_id=str(data["request_id"]))

        reason = data.get("reason") or f"HTTP {response.status_code}"
        logger.info(
            "gateway_request_rejected",
            path=path,
            status_code=response.status_code,
            reason=reason,
        )
        return GatewayAck(accepted=False, reason=reason)

    def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = self.client.request(method, path, **kwargs)
        except httpx.TransportError as exc:
            logger.warning("gateway_transport_error", path=path, error=str(exc))
            raise GatewayUnavailable(f"Gateway unreachable: {exc}") from exc

        if response.status_code == 429 or response.status_code >= 500:
            logger.warning(
                "gateway_unavailable",
                path=path,
                status_code=response.status_code,
            )
            raise GatewayUnavailable(
                f"Gateway returned HTTP {response.status_code}"
            )
        return response

    @staticmethod
    def _json(response: httpx.Response) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError as exc:
            raise GatewayUnavailable("Gateway returned a non-JSON body") from exc
        return data if isinstance(data, dict) else {}
