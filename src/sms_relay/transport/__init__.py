"""Adapters for the gateway backend, push payloads and the device radio."""

from .connectivity import SwitchableConnectivity
from .device_bridge import BridgeError, DeviceBridgeClient, LoopbackTransport
from .gateway_client import GatewayClient
from .push import PushPayloadError, decode_send_request, push_kind

__all__ = [
    "BridgeError",
    "DeviceBridgeClient",
    "GatewayClient",
    "LoopbackTransport",
    "PushPayloadError",
    "SwitchableConnectivity",
    "decode_send_request",
    "push_kind",
]
