"""Connectors to external collaborators: session headers and HTTP gateway."""

from .credentials import (
    CurlCommand,
    CurlFileHeaderSupplier,
    HeaderSupplier,
    parse_curl_command,
)
from .gateway import GatewayResponse, RequestGateway, RequestsGateway

__all__ = [
    "CurlCommand",
    "CurlFileHeaderSupplier",
    "GatewayResponse",
    "HeaderSupplier",
    "RequestGateway",
    "RequestsGateway",
    "parse_curl_command",
]
