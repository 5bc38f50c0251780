"""Bridge client: HTTP commands, pairing and the streaming lifecycle.

Query methods return the decoded JSON document. Command methods return a new
:class:`~hue_bridge.models.Bridge` whose ``status``/``error`` describe the
outcome, so calls can be chained and inspected afterwards::

    bridge = client.turn_on(bridge, 1)
    bridge = client.set_color(bridge, 1, (10000, 254, 200))
    if bridge.status is Status.ERROR:
        ...
"""

from __future__ import annotations

import time
from dataclasses import replace
from typing import Any, Mapping, Optional, Sequence, Tuple, Union

import httpx

from .commands import (
    DeviceType,
    brightness_state,
    color_state,
    on_state,
    pairing_request,
    streaming_state,
)
from .config import Config
from .errors import BridgeRequestError, ResponseDecodeError, StreamTransportError
from .logging import get_logger, redact_mapping
from .metrics import observe_command
from .models import Bridge, Color, GroupId, LightId, SceneId
from .protocol import LightUpdate, ProtocolHandler, get_protocol_handler
from .results import record_decode_failure, record_transport_failure, update_bridge
from .streaming import DtlsStreamTransport, StreamParameters

ColorArg = Union[Color, Tuple[Any, ...]]


def api_url(bridge: Bridge, *segments: Any) -> str:
    """Return ``http://{host}/api[/segment...]``."""

    url = f"http://{bridge.host}/api"
    for segment in segments:
        url += f"/{segment}"
    return url


def user_api_url(bridge: Bridge, *segments: Any) -> str:
    return api_url(bridge, bridge.username, *segments)


class HueClient:
    """Issues commands against a bridge session.

    Owns the ``httpx.Client`` it creates; a client passed in by the caller is
    left open on :meth:`close`.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        http: Optional[httpx.Client] = None,
        transport: Optional[DtlsStreamTransport] = None,
        protocol: Optional[ProtocolHandler] = None,
    ) -> None:
        self.config = config or Config()
        self._owns_http = http is None
        self.http = http or httpx.Client(timeout=self.config.http_timeout)
        self.transport = transport or DtlsStreamTransport(timeout=self.config.stream_connect_timeout)
        self.protocol = protocol or get_protocol_handler()
        self.logger = get_logger("hue.http")

    def __enter__(self) -> "HueClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_http:
            self.http.close()

    # HTTP plumbing

    def _request(self, method: str, url: str, payload: Optional[Mapping[str, Any]] = None) -> httpx.Response:
        self.logger.debug(
            "Bridge request",
            extra={"method": method, "payload": redact_mapping(payload or {})},
        )
        return self.http.request(method, url, json=payload)

    def _command(
        self, bridge: Bridge, method: str, url: str, payload: Mapping[str, Any]
    ) -> Bridge:
        started = time.perf_counter()
        try:
            response = self._request(method, url, payload)
        except httpx.RequestError as exc:
            observe_command(method, "transport_error", time.perf_counter() - started)
            return record_transport_failure(bridge, exc)
        try:
            body = response.json()
        except ValueError as exc:
            observe_command(method, "decode_error", time.perf_counter() - started)
            return record_decode_failure(bridge, response.text, exc)
        updated = update_bridge(body, bridge)
        result = "ok" if updated.ok else "api_error"
        observe_command(method, result, time.perf_counter() - started)
        return updated

    def _query(self, url: str) -> Any:
        started = time.perf_counter()
        try:
            response = self._request("GET", url)
        except httpx.RequestError as exc:
            observe_command("GET", "transport_error", time.perf_counter() - started)
            raise BridgeRequestError(exc) from exc
        try:
            body = response.json()
        except ValueError as exc:
            observe_command("GET", "decode_error", time.perf_counter() - started)
            raise ResponseDecodeError(f"Invalid JSON from {url}: {exc}", response.text) from exc
        observe_command("GET", "ok", time.perf_counter() - started)
        return body

    # Pairing

    def authorize(self, bridge: Bridge, devicetype: DeviceType) -> Bridge:
        """Request a username and client key for ``devicetype``.

        The link button on the bridge must have been pressed shortly before.
        On success the returned session carries the new credentials; storing
        them for later runs is up to the caller.
        """
        return self._command(bridge, "POST", api_url(bridge), pairing_request(devicetype))

    # Queries

    def info(self, bridge: Bridge) -> Any:
        """Fetch the full bridge state."""
        return self._query(user_api_url(bridge))

    def lights(self, bridge: Bridge) -> Any:
        return self._query(user_api_url(bridge, "lights"))

    def light_info(self, bridge: Bridge, light: LightId) -> Any:
        return self._query(user_api_url(bridge, "lights", light))

    def groups(self, bridge: Bridge) -> Any:
        return self._query(user_api_url(bridge, "groups"))

    def group_info(self, bridge: Bridge, group: GroupId) -> Any:
        return self._query(user_api_url(bridge, "groups", group))

    def scenes(self, bridge: Bridge) -> Any:
        return self._query(user_api_url(bridge, "scenes"))

    def scene_info(self, bridge: Bridge, scene: SceneId) -> Any:
        return self._query(user_api_url(bridge, "scenes", scene))

    # Light commands

    def set_state(self, bridge: Bridge, light: LightId, new_state: Mapping[str, Any]) -> Bridge:
        """Apply a state patch to a light (see the ``state`` object of ``light_info``)."""
        return self._command(bridge, "PUT", user_api_url(bridge, "lights", light, "state"), new_state)

    def turn_on(self, bridge: Bridge, light: LightId, transition_time_ms: Optional[int] = None) -> Bridge:
        return self.set_state(bridge, light, on_state(True, transition_time_ms))

    def turn_off(self, bridge: Bridge, light: LightId, transition_time_ms: Optional[int] = None) -> Bridge:
        return self.set_state(bridge, light, on_state(False, transition_time_ms))

    def set_color(
        self, bridge: Bridge, light: LightId, color: ColorArg, transition_time_ms: Optional[int] = None
    ) -> Bridge:
        return self.set_state(bridge, light, color_state(color, transition_time_ms))

    def set_brightness(
        self, bridge: Bridge, light: LightId, brightness: float, transition_time_ms: Optional[int] = None
    ) -> Bridge:
        return self.set_state(bridge, light, brightness_state(brightness, transition_time_ms))

    # Group commands

    def set_group_state(self, bridge: Bridge, group: GroupId, new_state: Mapping[str, Any]) -> Bridge:
        return self._command(bridge, "PUT", user_api_url(bridge, "groups", group, "action"), new_state)

    def turn_group_on(self, bridge: Bridge, group: GroupId, transition_time_ms: Optional[int] = None) -> Bridge:
        return self.set_group_state(bridge, group, on_state(True, transition_time_ms))

    def turn_group_off(self, bridge: Bridge, group: GroupId, transition_time_ms: Optional[int] = None) -> Bridge:
        return self.set_group_state(bridge, group, on_state(False, transition_time_ms))

    def set_group_color(
        self, bridge: Bridge, group: GroupId, color: ColorArg, transition_time_ms: Optional[int] = None
    ) -> Bridge:
        return self.set_group_state(bridge, group, color_state(color, transition_time_ms))

    def set_group_brightness(
        self, bridge: Bridge, group: GroupId, brightness: float, transition_time_ms: Optional[int] = None
    ) -> Bridge:
        return self.set_group_state(bridge, group, brightness_state(brightness, transition_time_ms))

    def set_group_to_streaming(self, bridge: Bridge, group: GroupId, active: bool) -> Bridge:
        """Activate or deactivate entertainment streaming for an entertainment group."""
        return self._command(bridge, "PUT", user_api_url(bridge, "groups", group), streaming_state(active))

    # Streaming

    def open_streaming(self, bridge: Bridge) -> Bridge:
        """Handshake with the streaming port and return a session owning the handle.

        An already open handle is closed first. Credential problems raise
        ``InputValidationError`` before any network traffic; transport failures
        raise ``StreamTransportError``.
        """
        params = StreamParameters.from_credentials(
            bridge.host,
            bridge.username,
            bridge.client_key,
            port=self.config.stream_port,
        )
        if bridge.streaming:
            bridge = self.close_streaming(bridge)
        handle = self.transport.open(params)
        return replace(bridge, stream=handle)

    def stream_color(self, bridge: Bridge, light_data: Sequence[LightUpdate]) -> Bridge:
        """Push one frame of ``(light_id, (r, g, b))`` updates over the open stream."""
        if bridge.stream is None:
            raise StreamTransportError("stream is not open")
        bridge.stream.send(self.protocol.wrap_command(light_data))
        return bridge

    def close_streaming(self, bridge: Bridge) -> Bridge:
        """Close the session's stream and return the session without a handle."""
        if bridge.stream is None:
            raise StreamTransportError("stream is not open")
        bridge.stream.close()
        return replace(bridge, stream=None)
