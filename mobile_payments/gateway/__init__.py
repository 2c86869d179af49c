"""Payment gateway clients."""

from mobile_payments.gateway.base import GatewayAck, GatewayClient, GatewayStatus
from mobile_payments.gateway.factory import build_gateway
from mobile_payments.gateway.http_client import HttpGatewayClient
from mobile_payments.gateway.simulated import SimulatedGateway

__all__ = [
    "GatewayAck",
    "GatewayClient",
    "GatewayStatus",
    "HttpGatewayClient",
    "SimulatedGateway",
    "build_gateway",
]
