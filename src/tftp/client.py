from __future__ import annotations

import functools
import logging
from typing import Tuple

from .constants import ANY_HOST, DEFAULT_MAX_RETRIES, DEFAULT_TIMEOUT_MS
from .errors import TransportError
from .net import Address, Impairment, PortAllocator, UdpEndpoint
from .packet import ReadRequest, TransferMode, WriteRequest
from .receiver import BlockReceiver
from .sender import BlockSender
from .session import Metrics, TransferSession
from .storage import FileStore

LOG = logging.getLogger(__name__)


class TftpClient:
    """
    Downloads files into, and uploads files from, ``store``.

    Each transfer picks a fresh local port (its transaction identifier). The
    request leaves from that port on a throwaway socket; the transfer itself
    then runs on a second socket bound to the same port, which accepts the
    server's reply from whatever port the server chose for the transfer.
    """

    def __init__(
        self,
        store: FileStore,
        host: str = ANY_HOST,
        *,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        allocator: PortAllocator | None = None,
        impairment: Impairment | None = None,
        logger: logging.Logger | None = None,
    ):
        if timeout_ms <= 0:
            raise ValueError(f"timeout_ms must be positive, got {timeout_ms}")
        if max_retries < 0:
            raise ValueError(f"max_retries must not be negative, got {max_retries}")
        self.store = store
        self.host = host
        self.timeout_ms = timeout_ms
        self.max_retries = max_retries
        self.allocator = allocator or PortAllocator()
        self.impairment = impairment
        self.logger = logger or LOG

    def request_file(self, server: Address, path: str, mode: TransferMode = TransferMode.OCTET) -> Metrics:
        """Download ``path`` from ``server``; stored under its last path segment."""
        request = ReadRequest(path, mode).to_bytes()
        udp, port = self._open(server, request)
        session = BlockReceiver(
            udp,
            rendezvous=server,
            request=request,
            save=functools.partial(self.store.create_file, path),
            **self._session_options(),
        )
        return self._run(session, port, "read", path, server)

    def write_file(self, server: Address, path: str, mode: TransferMode = TransferMode.OCTET) -> Metrics:
        """Upload the local file ``path`` to ``server``."""
        content = self.store.read_file(path)
        request = WriteRequest(path, mode).to_bytes()
        udp, port = self._open(server, request)
        session = BlockSender(
            udp,
            rendezvous=server,
            request=request,
            load=lambda: content,
            **self._session_options(),
        )
        return self._run(session, port, "write", path, server)

    def _session_options(self) -> dict:
        return {
            "timeout_ms": self.timeout_ms,
            "max_retries": self.max_retries,
            "logger": self.logger,
        }

    def _open(self, server: Address, request: bytes) -> Tuple[UdpEndpoint, int]:
        first = self.allocator.open(self.host)
        port = first.local_port
        try:
            first.sendto(request, server)
        except (OSError, OverflowError) as exc:
            self.allocator.release(port)
            raise TransportError(f"cannot send request to {server[0]}:{server[1]}: {exc}") from exc
        finally:
            first.close()
        self.logger.debug("request sent to %s:%d from port %d", server[0], server[1], port)

        try:
            udp = UdpEndpoint.bound(self.host, port, self.timeout_ms, self.impairment)
        except (OSError, OverflowError) as exc:
            self.allocator.release(port)
            raise TransportError(f"cannot rebind port {port}: {exc}") from exc
        return udp, port

    def _run(self, session: TransferSession, port: int, kind: str, path: str, server: Address) -> Metrics:
        try:
            metrics = session.run()
        finally:
            self.allocator.release(port)
        self.logger.info(
            "%s %s with %s:%d done; %d bytes in %d block(s)",
            kind,
            path,
            server[0],
            server[1],
            metrics.bytes_transferred,
            metrics.blocks,
        )
        return metrics
