from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, List

from .constants import (
    BLOCK_TERMINATOR,
    HASH_RECORD_NEXT,
    HASH_RECORD_SHA1_LEN,
    HASH_RECORD_STATUS,
)
from .errors import MalformedContainerError
from .translate import block_to_chain_record_offset

if TYPE_CHECKING:
    from .container import Container


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChainRecord:
    block: int
    offset: int
    sha1: bytes
    status: int
    next_block: int


def read_chain_record(container: "Container", block: int) -> ChainRecord:
    off = block_to_chain_record_offset(container, block)
    store = container.store
    return ChainRecord(
        block=block,
        offset=off,
        sha1=store.read_bytes(off, HASH_RECORD_SHA1_LEN),
        status=store.read8(off + HASH_RECORD_STATUS),
        next_block=store.read24(off + HASH_RECORD_NEXT),
    )


def read_next_block(container: "Container", block: int) -> int:
    off = block_to_chain_record_offset(container, block)
    return container.store.read24(off + HASH_RECORD_NEXT)


def walk_chain(container: "Container", start_block: int, expected_count: int) -> List[int]:
    """Follow next-block pointers from `start_block`.

    `expected_count` is an upper bound taken from the file table; the chain
    ends early at the terminator or at a block that points to itself. The
    result never contains the terminator and never exceeds `expected_count`
    entries. A pointer back to an earlier block in the chain raises
    MalformedContainerError.
    """
    if expected_count <= 0 or start_block == BLOCK_TERMINATOR:
        return []
    blocks = [start_block]
    seen = {start_block}
    for _ in range(expected_count - 1):
        last = blocks[-1]
        nxt = read_next_block(container, last)
        if nxt == last or nxt == BLOCK_TERMINATOR:
            break
        if nxt in seen:
            raise MalformedContainerError(
                f"Block chain from {start_block} loops back to block {nxt}",
                offset=block_to_chain_record_offset(container, last),
                actual=nxt,
            )
        blocks.append(nxt)
        seen.add(nxt)
    if len(blocks) < expected_count:
        logger.debug("Chain from block %d ended after %d of %d block(s)", start_block, len(blocks), expected_count)
    return blocks
