"""State patch builders and unit conversions for light and group commands."""

from __future__ import annotations

import math
from typing import Any, Dict, Optional, Tuple, Union

from .errors import InputValidationError
from .models import Color, HsbColor, XyColor, as_color

DeviceType = Union[str, Tuple[str, str]]


def transition_time(ms: int) -> int:
    """Convert milliseconds to the bridge's 100 ms unit, discarding the remainder."""

    return int(ms) // 100


def brightness_value(fraction: float) -> int:
    """Convert a 0-1 brightness to 0-255, rounding halves up."""

    return int(math.floor(float(fraction) * 255.0 + 0.5))


def _with_transition(state: Dict[str, Any], transition_time_ms: Optional[int]) -> Dict[str, Any]:
    if transition_time_ms is not None:
        state["transitiontime"] = transition_time(transition_time_ms)
    return state


def on_state(on: bool, transition_time_ms: Optional[int] = None) -> Dict[str, Any]:
    return _with_transition({"on": bool(on)}, transition_time_ms)


def color_state(
    color: Union[Color, Tuple[Any, ...]], transition_time_ms: Optional[int] = None
) -> Dict[str, Any]:
    """Build the patch that switches a light on with the given color.

    HSB colors set ``hue``/``sat``/``bri``; xy colors set ``xy`` only.
    """

    color = as_color(color)
    if isinstance(color, HsbColor):
        state: Dict[str, Any] = {"on": True, "hue": color.hue, "sat": color.sat, "bri": color.bri}
    elif isinstance(color, XyColor):
        state = {"on": True, "xy": [color.x, color.y]}
    else:  # pragma: no cover - as_color only returns the two variants
        raise InputValidationError(f"Unsupported color {color!r}")
    return _with_transition(state, transition_time_ms)


def brightness_state(fraction: float, transition_time_ms: Optional[int] = None) -> Dict[str, Any]:
    return _with_transition({"on": True, "bri": brightness_value(fraction)}, transition_time_ms)


def streaming_state(active: bool) -> Dict[str, Any]:
    return {"stream": {"active": bool(active)}}


def format_devicetype(devicetype: DeviceType) -> str:
    """Return ``"application#device"`` for a tuple, or the string unchanged."""

    if isinstance(devicetype, tuple):
        application_name, device_name = devicetype
        return f"{application_name}#{device_name}"
    return devicetype


def pairing_request(devicetype: DeviceType) -> Dict[str, Any]:
    return {"devicetype": format_devicetype(devicetype), "generateclientkey": True}
