"""Protocol handler registry for entertainment streaming."""

from __future__ import annotations

from typing import Dict

from .base import LightUpdate, ProtocolHandler
from .huestream import HueStreamProtocolHandler, encode_frame

DEFAULT_PROTOCOL = "huestream"

_PROTOCOL_HANDLERS: Dict[str, ProtocolHandler] = {
    "huestream": HueStreamProtocolHandler(),
}


def get_protocol_handler(protocol: str = DEFAULT_PROTOCOL) -> ProtocolHandler:
    """Get the protocol handler for a given protocol name.

    Raises:
        ValueError: If protocol is not recognized
    """
    if protocol not in _PROTOCOL_HANDLERS:
        raise ValueError(
            f"Unknown protocol: {protocol}. "
            f"Supported protocols: {', '.join(_PROTOCOL_HANDLERS.keys())}"
        )
    return _PROTOCOL_HANDLERS[protocol]


__all__ = [
    "LightUpdate",
    "ProtocolHandler",
    "HueStreamProtocolHandler",
    "encode_frame",
    "get_protocol_handler",
    "DEFAULT_PROTOCOL",
]
