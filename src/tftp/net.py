from __future__ import annotations

import random
import socket
import threading
import time
from dataclasses import dataclass
from typing import Tuple

from .constants import DEFAULT_BIND_ATTEMPTS, RECV_BUFSIZE, TID_HIGH, TID_LOW
from .errors import TransportError

Address = Tuple[str, int]


@dataclass(frozen=True, slots=True)
class Impairment:
    """Simulated loss and delay, applied to both directions of an endpoint."""

    loss_rate: float = 0.0
    delay_ms: int = 0

    def should_drop(self) -> bool:
        return self.loss_rate > 0 and random.random() < self.loss_rate

    def sleep_if_needed(self) -> None:
        if self.delay_ms > 0:
            time.sleep(self.delay_ms / 1000.0)


class UdpEndpoint:
    def __init__(self, sock: socket.socket, impairment: Impairment | None = None):
        self.sock = sock
        self.impairment = impairment or Impairment()

    @classmethod
    def bound(
        cls,
        host: str,
        port: int,
        timeout_ms: int = 0,
        impairment: Impairment | None = None,
    ) -> "UdpEndpoint":
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock.bind((host, port))
        except (OSError, OverflowError):
            sock.close()
            raise
        endpoint = cls(sock, impairment)
        endpoint.settimeout(timeout_ms)
        return endpoint

    def settimeout(self, timeout_ms: float) -> None:
        # 0 means block forever
        self.sock.settimeout(timeout_ms / 1000.0 if timeout_ms > 0 else None)

    @property
    def address(self) -> Address:
        return self.sock.getsockname()[:2]

    @property
    def local_port(self) -> int:
        return self.sock.getsockname()[1]

    def sendto(self, data: bytes, addr: Address) -> None:
        if self.impairment.should_drop():
            return
        self.impairment.sleep_if_needed()
        self.sock.sendto(data, addr)

    def recvfrom(self, bufsize: int = RECV_BUFSIZE) -> Tuple[bytes, Address]:
        while True:
            data, addr = self.sock.recvfrom(bufsize)
            if self.impairment.should_drop():
                continue
            self.impairment.sleep_if_needed()
            return data, addr

    def close(self) -> None:
        self.sock.close()


class PortAllocator:
    """
    Hands out transaction identifiers: randomly chosen local ports that no
    other live session of this process holds. A port stays reserved until
    `release` is called, even while no socket is bound to it.
    """

    def __init__(
        self,
        low: int = TID_LOW,
        high: int = TID_HIGH,
        attempts: int = DEFAULT_BIND_ATTEMPTS,
        rng: random.Random | None = None,
    ):
        if not 0 < low <= high <= 65535:
            raise ValueError(f"invalid port range {low}-{high}")
        self.low = low
        self.high = high
        self.attempts = attempts
        self._rng = rng or random.Random()
        self._lock = threading.Lock()
        self._in_use: set[int] = set()

    @property
    def in_use(self) -> frozenset[int]:
        with self._lock:
            return frozenset(self._in_use)

    def _reserve(self) -> int | None:
        with self._lock:
            if len(self._in_use) > self.high - self.low:
                return None
            while True:
                port = self._rng.randint(self.low, self.high)
                if port not in self._in_use:
                    self._in_use.add(port)
                    return port

    def open(
        self,
        host: str,
        timeout_ms: int = 0,
        impairment: Impairment | None = None,
    ) -> UdpEndpoint:
        last_error: OSError | None = None
        for _ in range(self.attempts):
            port = self._reserve()
            if port is None:
                break
            try:
                return UdpEndpoint.bound(host, port, timeout_ms, impairment)
            except OSError as exc:
                # taken by another process; try a different one
                self.release(port)
                last_error = exc
        raise TransportError(f"no free port in {self.low}-{self.high} on {host}") from last_error

    def release(self, port: int) -> None:
        with self._lock:
            self._in_use.discard(port)
