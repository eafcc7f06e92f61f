"""
Logical block -> physical offset translation.

Data blocks are 0x1000 bytes and follow the header starting at DATA_BASE, but
the block space is shared with the hash tables that hold each block's chain
record. One level-0 table precedes every run of 0xAA data blocks and one
level-1 table precedes every run of 0x70E4; packages with a table size shift
of 1 store each table twice. Translating a data block therefore has to skip
every table that precedes it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .constants import (
    BLOCK_SIZE,
    BLOCKS_PER_HASH_TABLE,
    BLOCKS_PER_L1_TABLE,
    DATA_BASE,
    HASH_RECORD_SIZE,
    MAX_BLOCK,
)

if TYPE_CHECKING:
    from .container import Container


def _check_block(block: int) -> None:
    if block < 0 or block > MAX_BLOCK:
        raise ValueError(f"Block number out of range: {block}")


def first_hash_table_offset(shift: int) -> int:
    return DATA_BASE - (BLOCK_SIZE << shift)


def block_to_data_offset(container: "Container", block: int) -> int:
    """Return the byte offset of `block`'s 0x1000-byte payload."""
    shift = container.table_size_shift
    _check_block(block)
    physical = block
    if block >= BLOCKS_PER_HASH_TABLE:
        physical += ((block // BLOCKS_PER_HASH_TABLE) + 1) << shift
    if block >= BLOCKS_PER_L1_TABLE:
        physical += ((block // BLOCKS_PER_L1_TABLE) + 1) << shift
    return DATA_BASE + physical * BLOCK_SIZE


def block_to_chain_record_offset(container: "Container", block: int) -> int:
    """Return the byte offset of `block`'s 0x18-byte chain record."""
    shift = container.table_size_shift
    _check_block(block)
    record = block % BLOCKS_PER_HASH_TABLE
    table = (block // BLOCKS_PER_HASH_TABLE) * (0xAB if shift == 0 else 0xAC)
    if block >= BLOCKS_PER_HASH_TABLE:
        table += ((block // BLOCKS_PER_L1_TABLE) + 1) << shift
    if block >= BLOCKS_PER_L1_TABLE:
        table += 1 << shift
    return first_hash_table_offset(shift) + table * BLOCK_SIZE + record * HASH_RECORD_SIZE
