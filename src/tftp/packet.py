from __future__ import annotations

import enum
import struct
from dataclasses import dataclass
from typing import ClassVar, Union

from .constants import ACK, BLOCK_NUMBER_MODULO, BLOCK_SIZE, DATA, ERROR, HEADER_SIZE, RRQ, WRQ
from .errors import ErrorCode, ParseError

OPCODE = struct.Struct("!H")
HEADER = struct.Struct("!HH")  # opcode, block number or error code

NUL = b"\x00"


class Opcode(enum.IntEnum):
    RRQ = RRQ
    WRQ = WRQ
    DATA = DATA
    ACK = ACK
    ERROR = ERROR


class TransferMode(str, enum.Enum):
    """
    Transfer modes accepted on the wire. All of them are carried as raw
    octets: no newline translation is done for netascii or mail.
    """

    NETASCII = "netascii"
    OCTET = "octet"
    MAIL = "mail"

    @classmethod
    def parse(cls, value: str) -> "TransferMode":
        try:
            return cls(value.lower())
        except ValueError:
            raise ParseError(f"unknown transfer mode: {value!r}") from None


def _check_u16(value: int, what: str) -> None:
    if not 0 <= value < BLOCK_NUMBER_MODULO:
        raise ValueError(f"{what} out of range: {value}")


def _text(value: str, what: str) -> bytes:
    raw = value.encode("utf-8")
    if NUL in raw:
        raise ValueError(f"{what} must not contain NUL bytes")
    return raw


@dataclass(frozen=True, slots=True)
class ReadRequest:
    filename: str
    mode: TransferMode = TransferMode.OCTET

    opcode: ClassVar[Opcode] = Opcode.RRQ

    def to_bytes(self) -> bytes:
        return _request_bytes(self.opcode, self.filename, self.mode)


@dataclass(frozen=True, slots=True)
class WriteRequest:
    filename: str
    mode: TransferMode = TransferMode.OCTET

    opcode: ClassVar[Opcode] = Opcode.WRQ

    def to_bytes(self) -> bytes:
        return _request_bytes(self.opcode, self.filename, self.mode)


@dataclass(frozen=True, slots=True)
class Data:
    block: int
    payload: bytes = b""

    opcode: ClassVar[Opcode] = Opcode.DATA

    @property
    def final(self) -> bool:
        return len(self.payload) < BLOCK_SIZE

    def to_bytes(self) -> bytes:
        _check_u16(self.block, "block number")
        if len(self.payload) > BLOCK_SIZE:
            raise ValueError(f"payload too large: {len(self.payload)}")
        return HEADER.pack(self.opcode, self.block) + bytes(self.payload)


@dataclass(frozen=True, slots=True)
class Ack:
    block: int

    opcode: ClassVar[Opcode] = Opcode.ACK

    def to_bytes(self) -> bytes:
        _check_u16(self.block, "block number")
        return HEADER.pack(self.opcode, self.block)


@dataclass(frozen=True, slots=True)
class Error:
    code: int
    message: str = ""

    opcode: ClassVar[Opcode] = Opcode.ERROR

    def to_bytes(self) -> bytes:
        _check_u16(self.code, "error code")
        return HEADER.pack(self.opcode, self.code) + _text(self.message, "error message") + NUL

    @classmethod
    def from_code(cls, code: ErrorCode, message: str = "") -> "Error":
        return cls(code=int(code), message=message)


Packet = Union[ReadRequest, WriteRequest, Data, Ack, Error]


def _request_bytes(opcode: Opcode, filename: str, mode: TransferMode) -> bytes:
    if not filename:
        raise ValueError("filename must not be empty")
    mode = TransferMode(mode)
    return (
        OPCODE.pack(opcode)
        + _text(filename, "filename")
        + NUL
        + _text(mode.value, "mode")
        + NUL
    )


def _decode_text(raw: bytes, what: str, errors: str = "strict") -> str:
    try:
        return raw.decode("utf-8", errors)
    except UnicodeDecodeError:
        raise ParseError(f"{what} is not valid text") from None


def _decode_request(opcode: Opcode, body: bytes) -> Packet:
    # filename NUL mode NUL [option NUL value NUL ...]; options are ignored
    fields = body.split(NUL)
    if len(fields) < 3:
        raise ParseError("request is missing a NUL terminator")
    filename = _decode_text(fields[0], "filename")
    if not filename:
        raise ParseError("request has an empty filename")
    mode = TransferMode.parse(_decode_text(fields[1], "mode"))
    if opcode is Opcode.RRQ:
        return ReadRequest(filename, mode)
    return WriteRequest(filename, mode)


def encode(packet: Packet) -> bytes:
    return packet.to_bytes()


def decode(raw: bytes) -> Packet:
    """
    Parse one datagram. Raises `ParseError` rather than returning a partial
    packet.
    """
    if len(raw) < OPCODE.size:
        raise ParseError("datagram too small to hold an opcode")

    (value,) = OPCODE.unpack_from(raw)
    try:
        opcode = Opcode(value)
    except ValueError:
        raise ParseError(f"unknown opcode: {value}") from None

    minimum = HEADER_SIZE + 1 if opcode is Opcode.ERROR else HEADER_SIZE
    if len(raw) < minimum:
        raise ParseError(f"{opcode.name} datagram too small: {len(raw)} bytes")

    if opcode in (Opcode.RRQ, Opcode.WRQ):
        return _decode_request(opcode, bytes(raw[OPCODE.size :]))

    _, number = HEADER.unpack_from(raw)
    rest = bytes(raw[HEADER.size :])

    if opcode is Opcode.DATA:
        if len(rest) > BLOCK_SIZE:
            raise ParseError(f"DATA payload too large: {len(rest)} bytes")
        return Data(block=number, payload=rest)

    if opcode is Opcode.ACK:
        return Ack(block=number)

    end = rest.find(NUL)
    if end < 0:
        raise ParseError("ERROR message is missing its NUL terminator")
    return Error(code=number, message=_decode_text(rest[:end], "error message", "replace"))
