from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field

from .constants import DEFAULT_MAX_RETRIES, DEFAULT_TIMEOUT_MS
from .errors import ErrorCode, PeerError, ProtocolViolation, TftpError, TransferTimeout, TransportError
from .net import Address, UdpEndpoint
from .packet import Error, Packet, decode

LOG = logging.getLogger(__name__)


@dataclass(slots=True)
class Metrics:
    packets_sent: int = 0
    bytes_transferred: int = 0
    blocks: int = 0
    timeouts: int = 0
    retransmits: int = 0
    start_ts: float = field(default_factory=time.monotonic)
    end_ts: float | None = None

    @property
    def duration_s(self) -> float:
        if self.end_ts is None:
            return 0.0
        return max(0.0, self.end_ts - self.start_ts)

    @property
    def throughput_mbps(self) -> float:
        if self.duration_s <= 0:
            return 0.0
        return (self.bytes_transferred * 8 / 1_000_000) / self.duration_s


class TransferSession:
    """
    One transfer over one dedicated endpoint.

    A session built with a ``peer`` talks only to that address. A session
    built with only a ``rendezvous`` address (the client side) locks onto
    whichever address sends the first well-formed reply; until then,
    retransmissions go to the rendezvous address.

    Every receive waits ``timeout_ms``. On expiry the last packet is sent
    again, at most ``max_retries`` times in a row, after which the session
    fails with `TransferTimeout`.

    Subclasses implement ``_run``. ``run`` closes the endpoint when the
    transfer ends, whatever the outcome.
    """

    def __init__(
        self,
        udp: UdpEndpoint,
        peer: Address | None = None,
        *,
        rendezvous: Address | None = None,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        logger: logging.Logger | None = None,
    ):
        if peer is None and rendezvous is None:
            raise ValueError("a session needs a peer or a rendezvous address")
        if timeout_ms <= 0:
            raise ValueError(f"timeout_ms must be positive, got {timeout_ms}")
        if max_retries < 0:
            raise ValueError(f"max_retries must not be negative, got {max_retries}")
        self.udp = udp
        self.peer = peer
        self.rendezvous = rendezvous
        self.timeout_ms = timeout_ms
        self.max_retries = max_retries
        self.logger = logger or LOG
        self.metrics = Metrics()

    @property
    def destination(self) -> Address:
        if self.peer is not None:
            return self.peer
        assert self.rendezvous is not None
        return self.rendezvous

    def run(self) -> Metrics:
        try:
            self._run()
        except TftpError as exc:
            self._report(exc)
            raise
        finally:
            self.metrics.end_ts = time.monotonic()
            self.udp.close()
        return self.metrics

    def _run(self) -> None:
        raise NotImplementedError

    def _send(self, raw: bytes) -> None:
        try:
            self.udp.sendto(raw, self.destination)
        except OSError as exc:
            raise TransportError(f"cannot send to {self.destination}: {exc}") from exc
        self.metrics.packets_sent += 1

    def _receive(self, retransmit: bytes) -> Packet:
        """
        Wait for the next packet from the peer, resending ``retransmit`` each
        time the wait expires.

        The wait is measured from the last send, so datagrams from strangers
        do not extend it.
        """
        retries = 0
        deadline = time.monotonic() + self.timeout_ms / 1000.0
        while True:
            remaining_ms = (deadline - time.monotonic()) * 1000.0
            try:
                if remaining_ms <= 0:
                    raise TimeoutError
                self.udp.settimeout(remaining_ms)
                raw, addr = self.udp.recvfrom()
            except TimeoutError:
                self.metrics.timeouts += 1
                if retries >= self.max_retries:
                    raise TransferTimeout(
                        f"no reply from {self.destination} after {retries} retransmissions"
                    ) from None
                retries += 1
                self.metrics.retransmits += 1
                self.logger.debug("timeout; retransmit to %s:%d retry=%d", *self.destination, retries)
                self._send(retransmit)
                deadline = time.monotonic() + self.timeout_ms / 1000.0
                continue
            except OSError as exc:
                raise TransportError(f"cannot receive: {exc}") from exc

            if self.peer is not None and addr != self.peer:
                self._reject_stranger(addr)
                continue

            packet = decode(raw)
            if self.peer is None:
                self.peer = addr
                self.logger.debug("locked onto peer %s:%d", *addr)
            return packet

    def _reject_stranger(self, addr: Address) -> None:
        self.logger.warning("datagram from unknown TID %s:%d ignored", *addr)
        reply = Error.from_code(ErrorCode.UNKNOWN_TID, "unknown transfer ID").to_bytes()
        try:
            self.udp.sendto(reply, addr)
        except OSError as exc:
            self.logger.warning("cannot send ERROR to %s:%d: %s", addr[0], addr[1], exc)

    def _unexpected(self, packet: Packet, wanted: str) -> TftpError:
        if isinstance(packet, Error):
            return PeerError(packet.code, packet.message)
        return ProtocolViolation(f"expected {wanted}, got {type(packet).__name__}")

    def _report(self, exc: TftpError) -> None:
        if exc.error_code is None or self.peer is None:
            return
        reply = Error.from_code(exc.error_code, exc.message).to_bytes()
        try:
            self.udp.sendto(reply, self.peer)
        except (OSError, ValueError) as send_exc:
            self.logger.warning("cannot send ERROR to %s:%d: %s", self.peer[0], self.peer[1], send_exc)
        else:
            self.logger.debug("sent ERROR %d to %s:%d", exc.error_code, *self.peer)
