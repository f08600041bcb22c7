from __future__ import annotations

from typing import Any, Callable

from .blocks import block_number, split
from .errors import ProtocolViolation
from .net import Address, UdpEndpoint
from .packet import Ack, Data
from .session import TransferSession


class BlockSender(TransferSession):
    """
    Source side of a transfer: the server answering a read request, or the
    client after sending a write request (pass the encoded request as
    ``request`` so it can be retransmitted until ACK 0 arrives).

    One block is in flight at a time. A duplicate ACK for the previous block
    is ignored rather than answered, so a delayed ACK never doubles the
    traffic for the rest of the transfer.
    """

    def __init__(
        self,
        udp: UdpEndpoint,
        peer: Address | None = None,
        *,
        load: Callable[[], bytes],
        request: bytes | None = None,
        **kwargs: Any,
    ):
        super().__init__(udp, peer, **kwargs)
        self.load = load
        self.request = request

    def _run(self) -> None:
        blocks = split(self.load())
        self.logger.debug("sending %d block(s) to %s:%d", len(blocks), *self.destination)

        if self.request is not None:
            self._await_ack(self.request, 0)

        for index, payload in enumerate(blocks, start=1):
            number = block_number(index)
            outgoing = Data(number, payload).to_bytes()
            self._send(outgoing)
            self._await_ack(outgoing, number)
            self.metrics.blocks += 1
            self.metrics.bytes_transferred += len(payload)

    def _await_ack(self, outgoing: bytes, number: int) -> None:
        previous = block_number(number - 1)
        while True:
            packet = self._receive(outgoing)
            if not isinstance(packet, Ack):
                raise self._unexpected(packet, f"ACK {number}")
            if packet.block == number:
                return
            if packet.block == previous:
                self.logger.debug("duplicate ACK %d ignored", packet.block)
                continue
            raise ProtocolViolation(f"expected ACK {number}, got ACK {packet.block}")
