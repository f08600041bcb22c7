from __future__ import annotations

from typing import Any, Callable

from .blocks import block_number, reassemble
from .errors import ProtocolViolation
from .net import Address, UdpEndpoint
from .packet import Ack, Data
from .session import TransferSession


class BlockReceiver(TransferSession):
    """
    Sink side of a transfer: the server answering a write request, or the
    client after sending a read request (pass the encoded request as
    ``request``; it is retransmitted until the first DATA arrives).

    Nothing is handed to ``save`` unless the whole file arrived.
    """

    def __init__(
        self,
        udp: UdpEndpoint,
        peer: Address | None = None,
        *,
        save: Callable[[bytes], Any] | None = None,
        request: bytes | None = None,
        **kwargs: Any,
    ):
        super().__init__(udp, peer, **kwargs)
        self.save = save
        self.request = request
        self.content: bytes | None = None

    def _run(self) -> None:
        if self.request is not None:
            outgoing = self.request
        else:
            outgoing = Ack(0).to_bytes()
            self._send(outgoing)

        payloads: list[bytes] = []
        expected = 1
        while True:
            packet = self._receive(outgoing)
            if not isinstance(packet, Data):
                raise self._unexpected(packet, f"DATA {expected}")

            if packet.block != expected:
                if payloads and packet.block == block_number(expected - 1):
                    # our last ACK was lost
                    self.logger.debug("duplicate DATA %d re-acknowledged", packet.block)
                    self._send(outgoing)
                    continue
                raise ProtocolViolation(f"expected DATA {expected}, got DATA {packet.block}")

            payloads.append(packet.payload)
            self.metrics.blocks += 1
            self.metrics.bytes_transferred += len(packet.payload)
            outgoing = Ack(packet.block).to_bytes()
            self._send(outgoing)
            if packet.final:
                break
            expected = block_number(expected + 1)

        self.content = reassemble(payloads)
        self.logger.debug("received %d bytes in %d block(s)", len(self.content), len(payloads))
        if self.save is not None:
            self.save(self.content)
