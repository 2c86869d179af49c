"""
Gateway selection.

The gateway mode is read from configuration exactly once, here.
Nothing else in the payment flow checks which mode is active.
"""

from mobile_payments.config import Settings, get_settings
from mobile_payments.gateway.base import GatewayClient
from mobile_payments.gateway.http_client import HttpGatewayClient
from mobile_payments.gateway.simulated import SimulatedGateway

GATEWAY_MODES = ("simulated", "live")


def build_gateway(settings: Settings | None = None) -> GatewayClient:
    """Construct the gateway client named by GATEWAY_MODE."""
    settings = settings or get_settings()
    mode = settings.GATEWAY_MODE.lower()

    if mode == "simulated":
        return SimulatedGateway()
    if mode == "live":
        if not settings.GATEWAY_API_KEY:
            raise ValueError("GATEWAY_API_KEY is required when GATEWAY_MODE=live")
        return HttpGatewayClient(
            base_url=settings.GATEWAY_BASE_URL,
            api_key=settings.GATEWAY_API_KEY,
            callback_url=settings.GATEWAY_CALLBACK_URL,
            timeout=settings.GATEWAY_TIMEOUT_SECONDS,
        )
    raise ValueError(
        f"Unknown GATEWAY_MODE '{settings.GATEWAY_MODE}', "
        f"expected one of {GATEWAY_MODES}"
    )
