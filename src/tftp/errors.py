from __future__ import annotations

import enum


class ErrorCode(enum.IntEnum):
    NOT_DEFINED = 0
    FILE_NOT_FOUND = 1
    ACCESS_VIOLATION = 2
    DISK_FULL = 3
    ILLEGAL_OPERATION = 4
    UNKNOWN_TID = 5
    FILE_EXISTS = 6
    NO_SUCH_USER = 7


class TftpError(Exception):
    """
    Base class for everything that can end a transfer.

    ``error_code`` is the code reported to the peer in an ERROR packet when a
    session fails with this exception. ``None`` means nothing is sent.
    """

    error_code: ErrorCode | None = None

    def __init__(self, message: str = "", error_code: ErrorCode | None = None):
        super().__init__(message)
        self.message = message
        if error_code is not None:
            self.error_code = error_code


class ParseError(TftpError, ValueError):
    """Malformed or truncated datagram."""

    error_code = ErrorCode.ILLEGAL_OPERATION


class ProtocolViolation(TftpError):
    """Well-formed packet that makes no sense in the current state."""

    error_code = ErrorCode.ILLEGAL_OPERATION


class TransportError(TftpError):
    pass


class TransferTimeout(TftpError):
    pass


class PeerError(TftpError):
    """The peer aborted the transfer with an ERROR packet."""

    def __init__(self, code: int, message: str = ""):
        super().__init__(f"peer reported error {code}: {message}")
        self.code = code
        self.peer_message = message


class FileNotFound(TftpError):
    error_code = ErrorCode.FILE_NOT_FOUND


class AccessViolation(TftpError):
    error_code = ErrorCode.ACCESS_VIOLATION


class StorageError(TftpError):
    error_code = ErrorCode.NOT_DEFINED
