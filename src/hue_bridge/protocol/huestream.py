"""HueStream entertainment frame encoding.

Frame layout (big-endian throughout)::

    "HueStream"         9 bytes  protocol name
    0x01 0x00           2 bytes  version major/minor
    0x00                1 byte   sequence id (unused)
    0x00 0x00           2 bytes  reserved
    0x00                1 byte   color space (RGB)
    0x00                1 byte   reserved

followed by one 9 byte record per light::

    0x00                1 byte   device type (light)
    light id            2 bytes
    channel 1, 2, 3     2 bytes each
"""

from __future__ import annotations

import struct
from typing import Sequence

from .base import LightUpdate, ProtocolHandler

PROTOCOL_NAME = b"HueStream"
VERSION_MAJOR = 0x01
VERSION_MINOR = 0x00
SEQUENCE_ID = 0x00
COLOR_SPACE_RGB = 0x00
DEVICE_TYPE_LIGHT = 0x00
STREAMING_PORT = 2100

_HEADER_FORMAT = ">BBBHBB"
_RECORD_FORMAT = ">BHHHH"

HEADER = PROTOCOL_NAME + struct.pack(
    _HEADER_FORMAT, VERSION_MAJOR, VERSION_MINOR, SEQUENCE_ID, 0, COLOR_SPACE_RGB, 0
)
HEADER_SIZE = len(HEADER)
RECORD_SIZE = struct.calcsize(_RECORD_FORMAT)


def encode_frame(updates: Sequence[LightUpdate]) -> bytes:
    """Build a streaming frame from ``(light_id, (c1, c2, c3))`` pairs.

    Records keep the order given; nothing is deduplicated. Values outside
    0-65535 make ``struct`` raise ``struct.error``.
    """

    frame = bytearray(HEADER)
    for light_id, (first, second, third) in updates:
        frame += struct.pack(_RECORD_FORMAT, DEVICE_TYPE_LIGHT, light_id, first, second, third)
    return bytes(frame)


class HueStreamProtocolHandler(ProtocolHandler):
    """Protocol handler for the bridge's entertainment streaming port.

    - Port: 2100
    - Transport: DTLS 1.2 with a pre-shared key
    - Color space: RGB, 16 bits per channel
    """

    @property
    def protocol_name(self) -> str:
        return "huestream"

    def get_default_port(self) -> int:
        """The bridge accepts entertainment streams on port 2100."""
        return STREAMING_PORT

    def get_default_transport(self) -> str:
        return "dtls"

    def wrap_command(self, updates: Sequence[LightUpdate]) -> bytes:
        return encode_frame(updates)
