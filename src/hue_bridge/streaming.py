"""DTLS transport for entertainment streaming.

The bridge only answers the handshake while one of its entertainment groups
has streaming activated. Otherwise the ClientHello is silently dropped and the
handshake runs into the socket timeout, so every open is bounded by
``Config.stream_connect_timeout``.
"""

from __future__ import annotations

import socket
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple

from mbedtls import tls
from mbedtls.exceptions import TLSError

from .errors import InputValidationError, StreamTransportError
from .logging import get_logger
from .metrics import observe_stream_open, record_stream_frame
from .models import decode_client_key
from .protocol.huestream import STREAMING_PORT

CIPHER_SUITE = "TLS-PSK-WITH-AES-128-GCM-SHA256"
DTLS_VERSION = tls.DTLSVersion.DTLSv1_2
MAX_FRAME_SIZE = 1024

Address = Tuple[Any, ...]


@dataclass(frozen=True)
class StreamParameters:
    """Validated handshake inputs for one streaming connection."""

    host: str
    identity: bytes
    key: bytes
    port: int = STREAMING_PORT

    @classmethod
    def from_credentials(
        cls,
        host: str,
        username: Optional[str],
        client_key: Optional[str],
        port: int = STREAMING_PORT,
    ) -> "StreamParameters":
        """Validate bridge credentials and build the PSK identity/key pair.

        Raises:
            InputValidationError: if ``username`` is empty or ``client_key`` is
                not 32 hex characters.
        """
        if not host:
            raise InputValidationError("host is required for streaming.")
        if not username:
            raise InputValidationError("username is required for streaming.")
        key = decode_client_key(client_key)
        return cls(host=host, identity=username.encode("utf-8"), key=key, port=port)


class StreamHandle:
    """Open DTLS connection owned by a single session.

    Not safe for concurrent senders: frames must reach the wire in call order.
    """

    def __init__(self, sock: Any, address: Address, host: str) -> None:
        self._sock = sock
        self._closed = False
        self.address = address
        self.host = host
        self.logger = get_logger("hue.stream")

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, frame: bytes) -> None:
        """Send one frame as a single datagram.

        Raises:
            StreamTransportError: if the handle is closed or the send fails.
            InputValidationError: if the frame exceeds ``MAX_FRAME_SIZE``.
        """
        if self._closed:
            record_stream_frame("closed")
            raise StreamTransportError("stream is closed")
        if len(frame) > MAX_FRAME_SIZE:
            raise InputValidationError(
                f"Frame of {len(frame)} bytes exceeds the {MAX_FRAME_SIZE} byte datagram limit."
            )
        try:
            self._sock.send(frame)
        except (OSError, TLSError) as exc:
            record_stream_frame("failure")
            self.logger.warning(
                "Stream send failed",
                exc_info=(type(exc), exc, exc.__traceback__),
                extra={"host": self.host},
            )
            raise StreamTransportError(exc) from exc
        record_stream_frame("success", len(frame))

    def close(self) -> None:
        """Release the connection. A second call raises ``StreamTransportError``."""
        if self._closed:
            raise StreamTransportError("stream is already closed")
        self._closed = True
        try:
            self._sock.close()
        except (OSError, TLSError) as exc:
            self.logger.warning(
                "Stream close failed",
                exc_info=(type(exc), exc, exc.__traceback__),
                extra={"host": self.host},
            )
            raise StreamTransportError(exc) from exc
        self.logger.info("Stream closed", extra={"host": self.host})

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<StreamHandle {self.host} {state}>"


class DtlsStreamTransport:
    """Opens DTLS 1.2 PSK connections to the bridge's streaming port."""

    def __init__(
        self,
        timeout: float = 10.0,
        context_factory: Optional[Callable[[Any], Any]] = None,
        socket_factory: Callable[..., Any] = socket.socket,
        resolver: Callable[..., Any] = socket.getaddrinfo,
    ) -> None:
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        self.timeout = timeout
        self._context_factory = context_factory or tls.ClientContext
        self._socket_factory = socket_factory
        self._resolver = resolver
        self.logger = get_logger("hue.stream")

    def build_configuration(self, params: StreamParameters) -> tls.DTLSConfiguration:
        # Without a session cache the client context always negotiates a full handshake.
        return tls.DTLSConfiguration(
            pre_shared_key=(params.identity.decode("utf-8"), params.key),
            ciphers=(CIPHER_SUITE,),
            validate_certificates=False,
            lowest_supported_version=DTLS_VERSION,
            highest_supported_version=DTLS_VERSION,
        )

    def resolve(self, params: StreamParameters) -> Tuple[int, Address]:
        try:
            infos = self._resolver(params.host, params.port, type=socket.SOCK_DGRAM)
        except OSError as exc:
            raise StreamTransportError(exc) from exc
        if not infos:
            raise StreamTransportError(f"no address found for {params.host}")
        family, _type, _proto, _canonname, address = infos[0]
        return family, address

    def open(self, params: StreamParameters) -> StreamHandle:
        """Perform the handshake and return the connected handle.

        Raises:
            StreamTransportError: on resolution failure, timeout, or handshake
                failure. No handle is produced and the socket is released.
        """
        started = time.perf_counter()
        context = {"host": params.host, "port": params.port, "timeout": self.timeout}
        try:
            family, address = self.resolve(params)
        except StreamTransportError:
            observe_stream_open("resolve_error", time.perf_counter() - started)
            self.logger.warning("Could not resolve bridge address", extra=context)
            raise

        udp = self._socket_factory(family, socket.SOCK_DGRAM)
        udp.settimeout(self.timeout)
        try:
            client = self._context_factory(self.build_configuration(params))
            sock = client.wrap_socket(udp, server_hostname=None)
            sock.connect(address)
            sock.do_handshake()
        except (OSError, TLSError) as exc:
            udp.close()
            result = "timeout" if isinstance(exc, socket.timeout) else "handshake_error"
            observe_stream_open(result, time.perf_counter() - started)
            self.logger.warning(
                "Stream handshake failed",
                exc_info=(type(exc), exc, exc.__traceback__),
                extra={**context, "result": result},
            )
            raise StreamTransportError(exc) from exc
        except BaseException:
            udp.close()
            raise

        observe_stream_open("success", time.perf_counter() - started)
        self.logger.info("Stream opened", extra=context)
        return StreamHandle(sock, address, params.host)
