"""Bridge session value and color types."""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional, Tuple, Union

from .errors import InputValidationError

if TYPE_CHECKING:  # pragma: no cover
    from .streaming import StreamHandle


CLIENT_KEY_LENGTH = 16
_CLIENT_KEY_RE = re.compile(r"^[0-9A-Fa-f]{32}$")

LightId = Union[int, str]
GroupId = Union[int, str]
SceneId = str


class Status(str, enum.Enum):
    """Outcome of the last command issued through a session."""

    OK = "ok"
    ERROR = "error"


@dataclass(frozen=True)
class HsbColor:
    """Hue (0-65535), saturation (0-255) and brightness (0-255)."""

    hue: int
    sat: int
    bri: int


@dataclass(frozen=True)
class XyColor:
    """Point in the bridge's CIE xy color space (each axis 0-0.8)."""

    x: float
    y: float


Color = Union[HsbColor, XyColor]


def as_color(value: Union[Color, Tuple[Any, ...]]) -> Color:
    """Coerce a 3-tuple into :class:`HsbColor` and a 2-tuple into :class:`XyColor`."""

    if isinstance(value, (HsbColor, XyColor)):
        return value
    if isinstance(value, tuple):
        if len(value) == 3:
            return HsbColor(int(value[0]), int(value[1]), int(value[2]))
        if len(value) == 2:
            return XyColor(float(value[0]), float(value[1]))
    raise InputValidationError(
        f"Color must be an (hue, sat, bri) or (x, y) tuple; got {value!r}."
    )


@dataclass(frozen=True)
class TransportFailure:
    """HTTP exchange failed before a response body was available."""

    reason: str


@dataclass(frozen=True)
class DecodeFailure:
    """Response body could not be decoded as JSON."""

    reason: str
    body: Optional[str] = None


def decode_client_key(client_key: Optional[str]) -> bytes:
    """Return the 16 raw key bytes encoded in a 32 character hex string."""

    if not client_key or not _CLIENT_KEY_RE.match(client_key):
        raise InputValidationError(
            f"client_key must be {CLIENT_KEY_LENGTH * 2} hex characters; got {client_key!r}."
        )
    return bytes.fromhex(client_key)


@dataclass(frozen=True)
class Bridge:
    """State of a connection with the bridge.

    Every command returns a new value; instances are never mutated in place.

    * ``host`` - IP address or hostname of the bridge
    * ``username`` - credential issued by the bridge during pairing
    * ``client_key`` - hex encoded pre-shared key for entertainment streaming
    * ``status`` - outcome of the last command, ``None`` before the first one
    * ``error`` - diagnostic payload when ``status`` is :attr:`Status.ERROR`
    * ``stream`` - open streaming connection, if any
    """

    host: str
    username: Optional[str] = None
    client_key: Optional[str] = None
    status: Optional[Status] = None
    error: Any = None
    stream: Optional["StreamHandle"] = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        if not self.host:
            raise InputValidationError("host is required.")
        if self.client_key is not None:
            decode_client_key(self.client_key)
        if self.status is Status.ERROR and self.error is None:
            raise InputValidationError("An error status requires an error payload.")
        if self.status is not Status.ERROR and self.error is not None:
            raise InputValidationError("An error payload requires an error status.")

    @property
    def ok(self) -> bool:
        return self.status is not Status.ERROR

    @property
    def streaming(self) -> bool:
        return self.stream is not None and not self.stream.closed


def connect(host: str, username: Optional[str] = None, client_key: Optional[str] = None) -> Bridge:
    """Create a session for the bridge at ``host``, optionally with stored credentials."""

    return Bridge(host=host, username=username, client_key=client_key)
