"""Base protocol handler interface for streaming wire formats."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Sequence, Tuple

ChannelTriple = Tuple[int, int, int]
LightUpdate = Tuple[int, ChannelTriple]


class ProtocolHandler(ABC):
    """Abstract base class for streaming protocol handlers.

    Each protocol handler is responsible for:
    - Converting per-light color updates to the protocol's binary frame
    - Providing protocol-specific default configuration (port, transport)
    """

    @abstractmethod
    def wrap_command(self, updates: Sequence[LightUpdate]) -> bytes:
        """Convert ordered per-light updates into one datagram payload.

        Args:
            updates: ``(light_id, (channel1, channel2, channel3))`` pairs

        Returns:
            Complete frame ready to hand to the transport.
        """

    @abstractmethod
    def get_default_port(self) -> int:
        """Get the port the bridge listens on for this protocol."""

    @abstractmethod
    def get_default_transport(self) -> str:
        """Get the transport type used to carry frames (e.g. 'dtls')."""

    @property
    @abstractmethod
    def protocol_name(self) -> str:
        """Get the protocol identifier (e.g. 'huestream')."""
