import json
from typing import Any, List

import httpx
import pytest

from hue_bridge.client import HueClient, api_url, user_api_url
from hue_bridge.errors import BridgeRequestError, ResponseDecodeError
from hue_bridge.models import Bridge, DecodeFailure, Status, TransportFailure, XyColor, connect

CLIENT_KEY = "00112233445566778899AABBCCDDEEFF"


class Recorder:
    """Captures requests and answers with a canned response."""

    def __init__(self, response: Any = None, status: int = 200, raw: str = None) -> None:
        self.requests: List[httpx.Request] = []
        self.response = response if response is not None else [{"success": {}}]
        self.status = status
        self.raw = raw

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.raw is not None:
            return httpx.Response(self.status, text=self.raw)
        return httpx.Response(self.status, json=self.response)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]

    def last_json(self) -> Any:
        return json.loads(self.last.content.decode())


def _client(recorder: Any) -> HueClient:
    return HueClient(http=httpx.Client(transport=httpx.MockTransport(recorder)))


def _bridge() -> Bridge:
    return connect("10.0.0.2", "abc")


def test_urls() -> None:
    bridge = _bridge()
    assert api_url(bridge) == "http://10.0.0.2/api"
    assert user_api_url(bridge) == "http://10.0.0.2/api/abc"
    assert user_api_url(bridge, "lights", 3, "state") == "http://10.0.0.2/api/abc/lights/3/state"


def test_authorize_posts_devicetype_and_stores_credentials() -> None:
    recorder = Recorder([{"success": {"username": "new-user", "clientkey": CLIENT_KEY}}])
    client = _client(recorder)

    bridge = client.authorize(connect("10.0.0.2"), ("my_app", "laptop"))

    assert recorder.last.method == "POST"
    assert str(recorder.last.url) == "http://10.0.0.2/api"
    assert recorder.last_json() == {"devicetype": "my_app#laptop", "generateclientkey": True}
    assert bridge.status is Status.OK
    assert bridge.username == "new-user"
    assert bridge.client_key == CLIENT_KEY


def test_authorize_link_button_not_pressed() -> None:
    error = {"type": 101, "address": "", "description": "link button not pressed"}
    client = _client(Recorder([{"error": error}]))

    bridge = client.authorize(connect("10.0.0.2"), "my_app#laptop")

    assert bridge.status is Status.ERROR
    assert bridge.error == error
    assert bridge.username is None


def test_light_commands_put_state_patches() -> None:
    recorder = Recorder()
    client = _client(recorder)
    bridge = _bridge()

    bridge = client.turn_on(bridge, 1)
    assert recorder.last.method == "PUT"
    assert str(recorder.last.url) == "http://10.0.0.2/api/abc/lights/1/state"
    assert recorder.last_json() == {"on": True}

    bridge = client.turn_off(bridge, "2", 250)
    assert str(recorder.last.url) == "http://10.0.0.2/api/abc/lights/2/state"
    assert recorder.last_json() == {"on": False, "transitiontime": 2}

    bridge = client.set_color(bridge, 1, (10000, 254, 200))
    assert recorder.last_json() == {"on": True, "hue": 10000, "sat": 254, "bri": 200}

    bridge = client.set_color(bridge, 1, XyColor(0.3, 0.4), 1000)
    assert recorder.last_json() == {"on": True, "xy": [0.3, 0.4], "transitiontime": 10}

    bridge = client.set_brightness(bridge, 1, 0.5)
    assert recorder.last_json() == {"on": True, "bri": 128}

    bridge = client.set_state(bridge, 1, {"ct": 300})
    assert recorder.last_json() == {"ct": 300}
    assert bridge.status is Status.OK
    assert len(recorder.requests) == 6


def test_group_commands_put_actions() -> None:
    recorder = Recorder()
    client = _client(recorder)
    bridge = _bridge()

    client.turn_group_on(bridge, 0, 99)
    assert str(recorder.last.url) == "http://10.0.0.2/api/abc/groups/0/action"
    assert recorder.last_json() == {"on": True, "transitiontime": 0}

    client.turn_group_off(bridge, 0)
    assert recorder.last_json() == {"on": False}

    client.set_group_color(bridge, 4, (0.1, 0.2))
    assert str(recorder.last.url) == "http://10.0.0.2/api/abc/groups/4/action"
    assert recorder.last_json() == {"on": True, "xy": [0.1, 0.2]}

    client.set_group_brightness(bridge, 4, 1.0, 500)
    assert recorder.last_json() == {"on": True, "bri": 255, "transitiontime": 5}

    client.set_group_state(bridge, 4, {"scene": "abc123"})
    assert recorder.last_json() == {"scene": "abc123"}


def test_set_group_to_streaming() -> None:
    recorder = Recorder([{"success": {"/groups/5/stream/active": True}}])
    client = _client(recorder)

    bridge = client.set_group_to_streaming(_bridge(), 5, True)

    assert recorder.last.method == "PUT"
    assert str(recorder.last.url) == "http://10.0.0.2/api/abc/groups/5"
    assert recorder.last_json() == {"stream": {"active": True}}
    assert bridge.status is Status.OK


def test_api_error_does_not_raise_and_chain_recovers() -> None:
    error = {"type": 1, "address": "/lights/1/state", "description": "unauthorized user"}
    recorder = Recorder([{"error": error}])
    client = _client(recorder)

    bridge = client.turn_on(_bridge(), 1)
    assert bridge.status is Status.ERROR
    assert bridge.error == error

    recorder.response = [{"success": {"/lights/1/state/on": True}}]
    bridge = client.turn_on(bridge, 1)
    assert bridge.status is Status.OK
    assert bridge.error is None


def test_transport_failure_folded_into_session() -> None:
    def _refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = _client(_refuse)
    bridge = client.turn_on(_bridge(), 1)

    assert bridge.status is Status.ERROR
    assert bridge.error == TransportFailure(reason="connection refused")


def test_decode_failure_folded_into_session() -> None:
    client = _client(Recorder(raw="<html>oops</html>"))
    bridge = client.turn_on(_bridge(), 1)

    assert bridge.status is Status.ERROR
    assert isinstance(bridge.error, DecodeFailure)
    assert bridge.error.body == "<html>oops</html>"


def test_queries_pass_through_json() -> None:
    lights = {"1": {"name": "Desk", "type": "Extended color light"}}
    recorder = Recorder(lights)
    client = _client(recorder)
    bridge = _bridge()

    assert client.lights(bridge) == lights
    assert recorder.last.method == "GET"
    assert str(recorder.last.url) == "http://10.0.0.2/api/abc/lights"

    client.info(bridge)
    assert str(recorder.last.url) == "http://10.0.0.2/api/abc"
    client.light_info(bridge, 1)
    assert str(recorder.last.url) == "http://10.0.0.2/api/abc/lights/1"
    client.groups(bridge)
    assert str(recorder.last.url) == "http://10.0.0.2/api/abc/groups"
    client.group_info(bridge, 2)
    assert str(recorder.last.url) == "http://10.0.0.2/api/abc/groups/2"
    client.scenes(bridge)
    assert str(recorder.last.url) == "http://10.0.0.2/api/abc/scenes"
    client.scene_info(bridge, "abc123")
    assert str(recorder.last.url) == "http://10.0.0.2/api/abc/scenes/abc123"


def test_query_failures_raise() -> None:
    def _timeout(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(BridgeRequestError):
        _client(_timeout).lights(_bridge())

    with pytest.raises(ResponseDecodeError):
        _client(Recorder(raw="not json")).lights(_bridge())


def test_client_closes_only_owned_http_client() -> None:
    http = httpx.Client(transport=httpx.MockTransport(Recorder()))
    with HueClient(http=http):
        pass
    assert http.is_closed is False
    http.close()

    owned = HueClient()
    owned.close()
    assert owned.http.is_closed is True
