from __future__ import annotations

from typing import Iterable

from .constants import BLOCK_NUMBER_MODULO, BLOCK_SIZE


def number_of_blocks(size: int) -> int:
    """
    Number of DATA blocks needed to carry ``size`` bytes. A transfer always
    ends with a block shorter than BLOCK_SIZE, so an exact multiple (zero
    included) gets a trailing empty block.
    """
    if size < 0:
        raise ValueError(f"negative size: {size}")
    return size // BLOCK_SIZE + 1


def split(data: bytes) -> list[bytes]:
    return [
        bytes(data[i * BLOCK_SIZE : (i + 1) * BLOCK_SIZE])
        for i in range(number_of_blocks(len(data)))
    ]


def reassemble(payloads: Iterable[bytes]) -> bytes:
    return b"".join(payloads)


def block_number(index: int) -> int:
    # 1-based block index -> 16-bit wire counter
    return index % BLOCK_NUMBER_MODULO
