from __future__ import annotations

import functools
import logging
import socket
import threading
from typing import Union

from .constants import DEFAULT_HOST, DEFAULT_MAX_RETRIES, DEFAULT_PORT, DEFAULT_TIMEOUT_MS
from .errors import AccessViolation, ErrorCode, ParseError, TftpError, TransportError
from .net import Address, Impairment, PortAllocator, UdpEndpoint
from .packet import Error, ReadRequest, TransferMode, WriteRequest, decode
from .receiver import BlockReceiver
from .sender import BlockSender
from .session import Metrics, TransferSession
from .storage import FileStore, destination_name

LOG = logging.getLogger(__name__)

Request = Union[ReadRequest, WriteRequest]


class SessionGroup:
    """Counts live sessions so shutdown can wait for them to finish."""

    def __init__(self) -> None:
        self._count = 0
        self._cond = threading.Condition()

    def __len__(self) -> int:
        with self._cond:
            return self._count

    def add(self) -> None:
        with self._cond:
            self._count += 1

    def done(self) -> None:
        with self._cond:
            self._count -= 1
            if self._count <= 0:
                self._cond.notify_all()

    def wait(self, timeout: float | None = None) -> bool:
        with self._cond:
            return self._cond.wait_for(lambda: self._count <= 0, timeout)


class TftpServer:
    """
    Serves read and write requests arriving on one well-known port.

    The accept loop runs in the thread that calls `listen`. Each accepted
    request gets its own port and its own thread; the accept loop never
    waits on a transfer. `stop` ends the accept loop, after which `listen`
    returns once every running transfer has finished.
    """

    def __init__(
        self,
        store: FileStore,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
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
        self.port = port
        self.timeout_ms = timeout_ms
        self.max_retries = max_retries
        self.allocator = allocator or PortAllocator()
        self.impairment = impairment
        self.logger = logger or LOG

        self._address: Address | None = None
        self._sessions = SessionGroup()
        self._stopping = threading.Event()
        self._ready = threading.Event()

    @property
    def address(self) -> Address | None:
        """Bound rendezvous address, once `listen` has bound it."""
        return self._address

    @property
    def active_sessions(self) -> int:
        return len(self._sessions)

    def wait_ready(self, timeout: float | None = None) -> bool:
        return self._ready.wait(timeout)

    def drain(self, timeout: float | None = None) -> bool:
        return self._sessions.wait(timeout)

    def listen(self) -> None:
        try:
            udp = UdpEndpoint.bound(self.host, self.port)
        except (OSError, OverflowError) as exc:
            raise TransportError(f"cannot bind {self.host}:{self.port}: {exc}") from exc

        self._address = udp.address
        self.logger.info("listening on %s:%d", *self._address)
        self._ready.set()

        try:
            while not self._stopping.is_set():
                try:
                    raw, addr = udp.recvfrom()
                except OSError as exc:
                    if self._stopping.is_set():
                        break
                    raise TransportError(f"rendezvous socket failed: {exc}") from exc
                if self._stopping.is_set():
                    break
                self._dispatch(raw, addr)
        finally:
            udp.close()
            pending = self.active_sessions
            if pending:
                self.logger.info("no longer accepting requests; waiting for %d transfer(s)", pending)
            self._sessions.wait()
            self.logger.info("server stopped")

    def stop(self) -> None:
        if self._stopping.is_set():
            return
        self._stopping.set()
        if self._address is None:
            return

        # unblock recvfrom in the accept loop
        host, port = self._address
        if host in ("0.0.0.0", ""):
            host = "127.0.0.1"
        wake = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            wake.sendto(b"", (host, port))
        except OSError as exc:
            self.logger.debug("cannot wake accept loop: %s", exc)
        finally:
            wake.close()

    def _dispatch(self, raw: bytes, client: Address) -> None:
        try:
            request = decode(raw)
        except ParseError as exc:
            self.logger.warning("malformed request from %s:%d discarded: %s", client[0], client[1], exc)
            return

        if not isinstance(request, (ReadRequest, WriteRequest)):
            self.logger.warning(
                "%s from %s:%d is not a request; discarded", type(request).__name__, client[0], client[1]
            )
            return

        if request.mode is not TransferMode.OCTET:
            self.logger.debug("%s mode for %s served as octet", request.mode.value, request.filename)

        try:
            udp = self.allocator.open(self.host, self.timeout_ms, self.impairment)
        except TransportError as exc:
            self.logger.error("cannot open session for %s:%d: %s", client[0], client[1], exc)
            return

        if isinstance(request, WriteRequest):
            try:
                destination_name(request.filename)
            except AccessViolation as exc:
                self._refuse(udp, client, ErrorCode.ACCESS_VIOLATION, exc.message)
                return

        if isinstance(request, ReadRequest):
            session = self._read_session(request, client, udp)
        else:
            session = self._write_session(request, client, udp)
        port = udp.local_port
        self._sessions.add()
        thread = threading.Thread(
            target=self._run_session,
            args=(session, request, client, port),
            name=f"tftp-session-{port}",
            daemon=True,
        )
        try:
            thread.start()
        except RuntimeError as exc:
            self._sessions.done()
            self._refuse(udp, client, ErrorCode.NOT_DEFINED, "server busy")
            self.logger.error("cannot start session for %s:%d: %s", client[0], client[1], exc)

    def _refuse(self, udp: UdpEndpoint, client: Address, code: ErrorCode, message: str) -> None:
        """Answer ``client`` with one ERROR from ``udp`` and give the port back."""
        port = udp.local_port
        self.logger.warning("refused %s:%d: %s", client[0], client[1], message)
        try:
            udp.sendto(Error.from_code(code, message).to_bytes(), client)
        except OSError as exc:
            self.logger.warning("cannot send ERROR to %s:%d: %s", client[0], client[1], exc)
        finally:
            udp.close()
            self.allocator.release(port)

    def _session_options(self) -> dict:
        return {
            "timeout_ms": self.timeout_ms,
            "max_retries": self.max_retries,
            "logger": self.logger,
        }

    def _read_session(self, request: Request, client: Address, udp: UdpEndpoint) -> TransferSession:
        return BlockSender(
            udp,
            client,
            load=functools.partial(self.store.read_file, request.filename),
            **self._session_options(),
        )

    def _write_session(self, request: Request, client: Address, udp: UdpEndpoint) -> TransferSession:
        return BlockReceiver(
            udp,
            client,
            save=functools.partial(self.store.create_file, request.filename),
            **self._session_options(),
        )

    def _run_session(self, session: TransferSession, request: Request, client: Address, port: int) -> None:
        kind = "read" if isinstance(request, ReadRequest) else "write"
        self.logger.info("%s %s from %s:%d on port %d", kind, request.filename, client[0], client[1], port)
        try:
            metrics: Metrics = session.run()
        except TftpError as exc:
            self.logger.warning("%s %s for %s:%d failed: %s", kind, request.filename, client[0], client[1], exc)
        except Exception:
            self.logger.exception("%s %s for %s:%d crashed", kind, request.filename, client[0], client[1])
        else:
            self.logger.info(
                "%s %s for %s:%d done; %d bytes in %d block(s), %d retransmit(s)",
                kind,
                request.filename,
                client[0],
                client[1],
                metrics.bytes_transferred,
                metrics.blocks,
                metrics.retransmits,
            )
        finally:
            self.allocator.release(port)
            self._sessions.done()
