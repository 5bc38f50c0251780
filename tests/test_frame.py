import struct

import pytest

from hue_bridge.protocol import DEFAULT_PROTOCOL, get_protocol_handler
from hue_bridge.protocol.huestream import (
    HEADER,
    HEADER_SIZE,
    RECORD_SIZE,
    HueStreamProtocolHandler,
    encode_frame,
)

EXPECTED_HEADER = b"HueStream" + bytes([0x01, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00])


def test_empty_frame_is_the_fixed_header() -> None:
    assert encode_frame([]) == EXPECTED_HEADER
    assert len(encode_frame([])) == 16
    assert encode_frame([]) == encode_frame([])
    assert HEADER == EXPECTED_HEADER
    assert HEADER_SIZE == 16


def test_single_light_golden_vector() -> None:
    frame = encode_frame([(1, (65535, 0, 32768))])
    assert frame == EXPECTED_HEADER + bytes(
        [0x00, 0x00, 0x01, 0xFF, 0xFF, 0x00, 0x00, 0x80, 0x00]
    )
    assert RECORD_SIZE == 9


def test_records_keep_order_and_duplicates() -> None:
    updates = [(7, (1, 2, 3)), (2, (4, 5, 6)), (7, (7, 8, 9))]
    frame = encode_frame(updates)
    assert len(frame) == HEADER_SIZE + 3 * RECORD_SIZE

    records = [
        struct.unpack(">BHHHH", frame[offset : offset + RECORD_SIZE])
        for offset in range(HEADER_SIZE, len(frame), RECORD_SIZE)
    ]
    assert records == [(0, 7, 1, 2, 3), (0, 2, 4, 5, 6), (0, 7, 7, 8, 9)]


def test_light_id_is_big_endian() -> None:
    frame = encode_frame([(0x1234, (0, 0, 0))])
    assert frame[HEADER_SIZE + 1 : HEADER_SIZE + 3] == b"\x12\x34"


def test_out_of_range_channel_is_rejected_by_packing() -> None:
    with pytest.raises(struct.error):
        encode_frame([(1, (65536, 0, 0))])


def test_protocol_handler_defaults() -> None:
    handler = get_protocol_handler(DEFAULT_PROTOCOL)
    assert isinstance(handler, HueStreamProtocolHandler)
    assert handler.protocol_name == "huestream"
    assert handler.get_default_port() == 2100
    assert handler.get_default_transport() == "dtls"
    assert handler.wrap_command([(1, (65535, 0, 32768))]) == encode_frame([(1, (65535, 0, 32768))])


def test_unknown_protocol_rejected() -> None:
    with pytest.raises(ValueError, match="Unknown protocol"):
        get_protocol_handler("entertainment-v2")
