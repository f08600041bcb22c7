from __future__ import annotations

import pytest

from tftp.errors import ErrorCode, ParseError
from tftp.packet import Ack, Data, Error, ReadRequest, TransferMode, WriteRequest, decode, encode


@pytest.mark.parametrize(
    "packet",
    [
        ReadRequest("boot/pxelinux.0", TransferMode.OCTET),
        WriteRequest("notes.txt", TransferMode.NETASCII),
        ReadRequest("inbox", TransferMode.MAIL),
        Data(1, b"hello"),
        Data(65535, b"x" * 512),
        Data(7, b""),
        Ack(0),
        Ack(65535),
        Error(1, "File not found"),
        Error(4, ""),
    ],
)
def test_roundtrip(packet):
    assert decode(encode(packet)) == packet


def test_data_keeps_nul_bytes():
    payload = b"\x00abc\x00\x00def\x00" + bytes(range(256))
    p = decode(Data(3, payload).to_bytes())
    assert p == Data(3, payload)
    assert len(p.payload) == len(payload)


def test_wire_layout_is_big_endian():
    assert Ack(0x0102).to_bytes() == b"\x00\x04\x01\x02"
    assert Data(0x0203, b"ab").to_bytes() == b"\x00\x03\x02\x03ab"
    assert Error(1, "nope").to_bytes() == b"\x00\x05\x00\x01nope\x00"
    assert ReadRequest("a.bin").to_bytes() == b"\x00\x01a.bin\x00octet\x00"
    assert WriteRequest("a.bin", TransferMode.NETASCII).to_bytes() == b"\x00\x02a.bin\x00netascii\x00"


@pytest.mark.parametrize(
    "raw",
    [
        b"",
        b"\x00",
        b"\x00\x00\x00\x00",  # opcode 0
        b"\x00\x06\x00\x01",  # opcode 6
        b"\x00\x03\x00",  # short DATA
        b"\x00\x04\x00",  # short ACK
        b"\x00\x05\x00\x01",  # ERROR without message terminator
        b"\x00\x05\x00\x01oops",  # ditto, longer
        b"\x00\x01a\x00",  # request without mode
        b"\x00\x01file\x00octet",  # mode not terminated
        b"\x00\x02\x00octet\x00",  # empty filename
        b"\x00\x01file\x00binary\x00",  # unknown mode
        b"\x00\x01\xff\xfe\x00octet\x00",  # filename is not text
        b"\x00\x03\x00\x01" + b"x" * 513,  # oversized DATA
    ],
)
def test_decode_rejects_malformed(raw):
    with pytest.raises(ParseError):
        decode(raw)


def test_parse_error_is_a_value_error():
    with pytest.raises(ValueError):
        decode(b"\x00")


def test_mode_is_case_insensitive():
    assert decode(b"\x00\x01f\x00OcTeT\x00") == ReadRequest("f", TransferMode.OCTET)


def test_request_options_are_ignored():
    raw = b"\x00\x01f\x00octet\x00blksize\x001428\x00"
    assert decode(raw) == ReadRequest("f", TransferMode.OCTET)


def test_ack_trailing_bytes_ignored():
    assert decode(b"\x00\x04\x00\x09junk") == Ack(9)


def test_error_message_stops_at_nul():
    assert decode(b"\x00\x05\x00\x02denied\x00trailing") == Error(2, "denied")


def test_data_final_flag():
    assert Data(1, b"x" * 511).final
    assert Data(1, b"").final
    assert not Data(1, b"x" * 512).final


def test_error_from_code():
    assert Error.from_code(ErrorCode.UNKNOWN_TID, "who?") == Error(5, "who?")


@pytest.mark.parametrize(
    "packet",
    [
        Data(65536, b""),
        Data(-1, b""),
        Data(1, b"x" * 513),
        Ack(70000),
        ReadRequest(""),
        ReadRequest("a\x00b"),
        Error(1, "bad\x00message"),
    ],
)
def test_encode_refuses_invalid_packets(packet):
    with pytest.raises(ValueError):
        packet.to_bytes()
