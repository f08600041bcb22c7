from __future__ import annotations

import socket
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from tftp.net import UdpEndpoint
from tftp.packet import Packet, decode
from tftp.server import TftpServer
from tftp.storage import LocalFileStore

TIMEOUT_MS = 500
MAX_RETRIES = 3


class RawPeer:
    """Bare UDP socket speaking the wire format, for driving the other side by hand."""

    def __init__(self, timeout: float = 2.0):
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self.sock.bind(("127.0.0.1", 0))
        self.sock.settimeout(timeout)

    @property
    def address(self):
        return self.sock.getsockname()

    def send(self, packet, addr) -> None:
        raw = packet if isinstance(packet, bytes) else packet.to_bytes()
        self.sock.sendto(raw, addr)

    def recv(self) -> tuple[Packet, tuple[str, int]]:
        raw, addr = self.sock.recvfrom(65535)
        return decode(raw), addr

    def assert_silent(self, timeout: float = 0.3) -> None:
        self.sock.settimeout(timeout)
        with pytest.raises(TimeoutError):
            self.sock.recvfrom(65535)

    def close(self) -> None:
        self.sock.close()


@pytest.fixture
def peer():
    p = RawPeer()
    yield p
    p.close()


@pytest.fixture
def make_peer():
    peers = []

    def make() -> RawPeer:
        p = RawPeer()
        peers.append(p)
        return p

    yield make
    for p in peers:
        p.close()


@pytest.fixture
def endpoint():
    udp = UdpEndpoint.bound("127.0.0.1", 0)
    yield udp
    udp.close()


@pytest.fixture
def executor():
    pool = ThreadPoolExecutor(max_workers=4)
    yield pool
    pool.shutdown(wait=True)


@pytest.fixture
def server_root(tmp_path: Path) -> Path:
    root = tmp_path / "server"
    root.mkdir()
    return root


@pytest.fixture
def client_root(tmp_path: Path) -> Path:
    root = tmp_path / "client"
    root.mkdir()
    return root


@pytest.fixture
def serve():
    running = []

    def start(root: Path, **kwargs) -> TftpServer:
        kwargs.setdefault("timeout_ms", TIMEOUT_MS)
        kwargs.setdefault("max_retries", MAX_RETRIES)
        server = TftpServer(LocalFileStore(root), "127.0.0.1", 0, **kwargs)
        thread = threading.Thread(target=server.listen, daemon=True)
        thread.start()
        assert server.wait_ready(2.0)
        server.thread = thread
        running.append(server)
        return server

    yield start
    for server in running:
        server.stop()
        server.thread.join(timeout=10)
