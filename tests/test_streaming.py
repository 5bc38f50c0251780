import socket
from typing import Any, List, Optional

import pytest

from mbedtls import tls

from hue_bridge.client import HueClient
from hue_bridge.errors import InputValidationError, StreamTransportError
from hue_bridge.models import connect
from hue_bridge.protocol.huestream import encode_frame
from hue_bridge.streaming import (
    MAX_FRAME_SIZE,
    DtlsStreamTransport,
    StreamHandle,
    StreamParameters,
)

CLIENT_KEY = "00112233445566778899AABBCCDDEEFF"


class FakeUdp:
    def __init__(self, family: int, kind: int) -> None:
        self.family = family
        self.kind = kind
        self.timeout: Optional[float] = None
        self.closed = False

    def settimeout(self, value: float) -> None:
        self.timeout = value

    def close(self) -> None:
        self.closed = True


class FakeDtlsSocket:
    def __init__(self, handshake_error: Optional[Exception] = None) -> None:
        self.handshake_error = handshake_error
        self.connected_to: Any = None
        self.handshakes = 0
        self.sent: List[bytes] = []
        self.closed = False

    def connect(self, address: Any) -> None:
        self.connected_to = address

    def do_handshake(self) -> None:
        self.handshakes += 1
        if self.handshake_error is not None:
            raise self.handshake_error

    def send(self, data: bytes) -> int:
        if self.closed:
            raise OSError(9, "Bad file descriptor")
        self.sent.append(data)
        return len(data)

    def close(self) -> None:
        self.closed = True


class FakeNetwork:
    """Stands in for the resolver, UDP sockets and the DTLS client context."""

    def __init__(self, handshake_error: Optional[Exception] = None) -> None:
        self.handshake_error = handshake_error
        self.configurations: List[Any] = []
        self.udp_sockets: List[FakeUdp] = []
        self.dtls_sockets: List[FakeDtlsSocket] = []
        self.resolved: List[Any] = []

    def resolver(self, host: str, port: int, type: int = 0) -> Any:
        self.resolved.append((host, port, type))
        return [(socket.AF_INET, socket.SOCK_DGRAM, 17, "", ("10.0.0.2", port))]

    def socket_factory(self, family: int, kind: int) -> FakeUdp:
        udp = FakeUdp(family, kind)
        self.udp_sockets.append(udp)
        return udp

    def context_factory(self, configuration: Any) -> "FakeNetwork":
        self.configurations.append(configuration)
        return self

    def wrap_socket(self, sock: FakeUdp, server_hostname: Optional[str]) -> FakeDtlsSocket:
        dtls = FakeDtlsSocket(self.handshake_error)
        self.dtls_sockets.append(dtls)
        return dtls

    def transport(self, timeout: float = 3.0) -> DtlsStreamTransport:
        return DtlsStreamTransport(
            timeout=timeout,
            context_factory=self.context_factory,
            socket_factory=self.socket_factory,
            resolver=self.resolver,
        )


def _params() -> StreamParameters:
    return StreamParameters.from_credentials("10.0.0.2", "abc", CLIENT_KEY)


def test_parameters_carry_psk_pair() -> None:
    params = _params()
    assert params.identity == b"abc"
    assert params.key == bytes.fromhex(CLIENT_KEY)
    assert len(params.key) == 16
    assert params.port == 2100


@pytest.mark.parametrize(
    "username,client_key",
    [("abc", "0011"), ("abc", CLIENT_KEY[:-1]), ("abc", None), ("", CLIENT_KEY), (None, CLIENT_KEY)],
)
def test_parameters_reject_bad_credentials(username: Any, client_key: Any) -> None:
    with pytest.raises(InputValidationError):
        StreamParameters.from_credentials("10.0.0.2", username, client_key)


def test_open_connects_to_streaming_port() -> None:
    network = FakeNetwork()
    handle = network.transport(timeout=3.0).open(_params())

    assert network.resolved == [("10.0.0.2", 2100, socket.SOCK_DGRAM)]
    assert network.udp_sockets[0].timeout == 3.0
    assert network.udp_sockets[0].kind == socket.SOCK_DGRAM
    assert network.dtls_sockets[0].connected_to == ("10.0.0.2", 2100)
    assert network.dtls_sockets[0].handshakes == 1
    assert len(network.configurations) == 1
    assert handle.closed is False


def test_handshake_configuration_is_dtls12_psk_only() -> None:
    network = FakeNetwork()
    network.transport().open(_params())

    configuration = network.configurations[0]
    assert tuple(configuration.ciphers) == ("TLS-PSK-WITH-AES-128-GCM-SHA256",)
    assert configuration.lowest_supported_version == tls.DTLSVersion.DTLSv1_2
    assert configuration.highest_supported_version == tls.DTLSVersion.DTLSv1_2
    assert not configuration.validate_certificates
    identity, key = configuration.pre_shared_key
    assert identity == "abc"
    assert bytes(key) == bytes.fromhex(CLIENT_KEY)
    assert len(bytes(key)) == 16


def test_handshake_timeout_raises_and_releases_socket() -> None:
    network = FakeNetwork(handshake_error=socket.timeout("timed out"))

    with pytest.raises(StreamTransportError):
        network.transport().open(_params())

    assert network.udp_sockets[0].closed is True


def test_unexpected_setup_error_releases_socket() -> None:
    network = FakeNetwork()

    def _broken_context(configuration: Any) -> Any:
        raise TypeError("unsupported configuration")

    transport = DtlsStreamTransport(
        context_factory=_broken_context,
        socket_factory=network.socket_factory,
        resolver=network.resolver,
    )
    with pytest.raises(TypeError):
        transport.open(_params())

    assert network.udp_sockets[0].closed is True


def test_resolution_failure_raises_before_socket_creation() -> None:
    network = FakeNetwork()

    def _fail(*args: Any, **kwargs: Any) -> Any:
        raise socket.gaierror(-2, "Name or service not known")

    transport = DtlsStreamTransport(
        context_factory=network.context_factory,
        socket_factory=network.socket_factory,
        resolver=_fail,
    )
    with pytest.raises(StreamTransportError):
        transport.open(StreamParameters.from_credentials("bridge.invalid", "abc", CLIENT_KEY))
    assert network.udp_sockets == []


def test_send_and_close_lifecycle() -> None:
    network = FakeNetwork()
    handle = network.transport().open(_params())
    frame = encode_frame([(1, (65535, 0, 32768))])

    handle.send(frame)
    assert network.dtls_sockets[0].sent == [frame]

    handle.close()
    assert handle.closed is True
    assert network.dtls_sockets[0].closed is True

    with pytest.raises(StreamTransportError):
        handle.send(frame)
    with pytest.raises(StreamTransportError):
        handle.close()


def test_send_network_error_is_a_transport_error() -> None:
    dtls = FakeDtlsSocket()
    dtls.closed = True
    handle = StreamHandle(dtls, ("10.0.0.2", 2100), "10.0.0.2")

    with pytest.raises(StreamTransportError):
        handle.send(b"HueStream")


def test_oversized_frame_is_rejected() -> None:
    handle = StreamHandle(FakeDtlsSocket(), ("10.0.0.2", 2100), "10.0.0.2")
    with pytest.raises(InputValidationError):
        handle.send(b"\x00" * (MAX_FRAME_SIZE + 1))


def test_client_streaming_session_lifecycle() -> None:
    network = FakeNetwork()
    client = HueClient(transport=network.transport())
    bridge = connect("10.0.0.2", "abc", CLIENT_KEY)

    streaming = client.open_streaming(bridge)
    assert streaming.streaming is True
    assert bridge.stream is None

    streaming = client.stream_color(streaming, [(1, (65535, 0, 32768)), (2, (0, 0, 0))])
    assert network.dtls_sockets[0].sent == [encode_frame([(1, (65535, 0, 32768)), (2, (0, 0, 0))])]

    closed = client.close_streaming(streaming)
    assert closed.stream is None
    assert network.dtls_sockets[0].closed is True
    client.close()


def test_reopen_closes_previous_handle() -> None:
    network = FakeNetwork()
    client = HueClient(transport=network.transport())

    first = client.open_streaming(connect("10.0.0.2", "abc", CLIENT_KEY))
    second = client.open_streaming(first)

    assert network.dtls_sockets[0].closed is True
    assert second.stream is not first.stream
    assert second.streaming is True
    client.close()


def test_open_without_client_key_never_touches_network() -> None:
    network = FakeNetwork()
    client = HueClient(transport=network.transport())

    with pytest.raises(InputValidationError):
        client.open_streaming(connect("10.0.0.2", "abc"))

    assert network.resolved == []
    assert network.udp_sockets == []
    client.close()


def test_stream_operations_require_open_stream() -> None:
    client = HueClient(transport=FakeNetwork().transport())
    bridge = connect("10.0.0.2", "abc", CLIENT_KEY)

    with pytest.raises(StreamTransportError):
        client.stream_color(bridge, [(1, (0, 0, 0))])
    with pytest.raises(StreamTransportError):
        client.close_streaming(bridge)
    client.close()
