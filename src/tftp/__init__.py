"""Trivial File Transfer Protocol (RFC 1350) over UDP.

Layout:
- packet: wire codec for the five packet kinds
- blocks: splitting file content into 512-byte blocks and back
- sender / receiver: the two halves of the lock-step transfer state machine
- server / client: request dispatch and the client driver
"""

from .client import TftpClient
from .errors import TftpError
from .server import TftpServer
from .storage import LocalFileStore

__all__ = ["LocalFileStore", "TftpClient", "TftpError", "TftpServer"]
