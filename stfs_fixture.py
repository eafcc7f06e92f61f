"""Builds small synthetic STFS packages for the test-suite.

Blocks are placed with the same translation functions the reader uses, so the
fixtures exercise the reader's chain and table logic rather than re-deriving
the layout. Fields are written by hand (big-endian, or byte-reversed where
the format stores them that way) instead of through ByteStore.
"""

from __future__ import annotations

import hashlib
import struct
from types import SimpleNamespace
from typing import Dict, List, Optional

from stfs.constants import (
    BLOCK_SIZE,
    BLOCK_TERMINATOR,
    EFLAG_DIRECTORY,
    FILE_NAME_FIELD,
    FILE_RECORD_SIZE,
    HASH_RECORD_SIZE,
    HDR_CONTENT_ID,
    HDR_CONTENT_TYPE,
    HDR_DESCRIPTION,
    HDR_DISPLAY_NAME,
    HDR_HEADER_SIZE,
    HDR_PACKAGE_THUMB,
    HDR_PACKAGE_THUMB_SIZE,
    HDR_PUBLISHER,
    HDR_TITLE_ID,
    HDR_TITLE_NAME,
    HDR_TITLE_THUMB,
    HDR_TITLE_THUMB_SIZE,
    MAGIC_CON,
    MIN_PACKAGE_SIZE,
    ROOT_PARENT,
    VD_ALLOCATED_BLOCKS,
    VD_FILE_TABLE_BLOCK,
    VD_FILE_TABLE_BLOCK_COUNT,
    VD_OFFSET,
)
from stfs.translate import block_to_chain_record_offset, block_to_data_offset

# header sizes that select each table size shift
HEADER_SIZES = {0: 0xAD0E, 1: 0x971A}


def le24(value: int) -> bytes:
    return bytes([value & 0xFF, (value >> 8) & 0xFF, (value >> 16) & 0xFF])


def be24(value: int) -> bytes:
    return bytes([(value >> 16) & 0xFF, (value >> 8) & 0xFF, value & 0xFF])


def fat_time(year: int, month: int, day: int, hour: int = 0, minute: int = 0, second: int = 0) -> int:
    date = ((year - 1980) << 9) | (month << 5) | day
    time = (hour << 11) | (minute << 5) | (second // 2)
    return (date << 16) | time


def blank_package(shift: int = 0, *, magic: int = MAGIC_CON, size: int = MIN_PACKAGE_SIZE) -> bytearray:
    buf = bytearray(size)
    struct.pack_into(">I", buf, 0, magic)
    struct.pack_into(">I", buf, HDR_HEADER_SIZE, HEADER_SIZES[shift])
    return buf


def entry_record(
    name: str,
    *,
    flags: int = 0,
    block_count: int = 0,
    starting_block: int = 0,
    parent: int = ROOT_PARENT,
    size: int = 0,
    created: int = 0,
    accessed: int = 0,
    raw_name_byte: Optional[int] = None,
) -> bytes:
    raw = name.encode("ascii")[:FILE_NAME_FIELD]
    rec = bytearray(FILE_RECORD_SIZE)
    rec[: len(raw)] = raw
    rec[0x28] = raw_name_byte if raw_name_byte is not None else ((flags & 0x3) << 6) | (len(raw) & 0x3F)
    rec[0x29:0x2C] = le24(block_count)
    rec[0x2C:0x2F] = le24(block_count)
    rec[0x2F:0x32] = le24(starting_block)
    struct.pack_into(">HIII", rec, 0x32, parent, size, created, accessed)
    return bytes(rec)


class PackageBuilder:
    """Assemble a package block by block.

    Block 0 is reserved for the first file-table block; file blocks are
    handed out sequentially unless an explicit list is passed.
    """

    def __init__(self, *, shift: int = 0, magic: int = MAGIC_CON):
        self.shift = shift
        self.magic = magic
        self.layout = SimpleNamespace(table_size_shift=shift)
        self.blocks: Dict[int, bytes] = {}
        self.next: Dict[int, int] = {}
        self.records: List[bytes] = []
        self.header: Dict[int, bytes] = {}
        self.table_blocks: List[int] = [0]
        self.table_block_count: Optional[int] = None
        self.table_start: Optional[int] = None
        self.bad_hashes: set = set()
        self._free = 1

    def alloc(self, n: int) -> List[int]:
        out = list(range(self._free, self._free + n))
        self._free += n
        return out

    def link(self, block: int, nxt: int) -> None:
        self.next[block] = nxt

    def add_dir(self, name: str, parent: int = ROOT_PARENT, **kw) -> int:
        self.records.append(entry_record(name, flags=EFLAG_DIRECTORY, parent=parent, **kw))
        return len(self.records) - 1

    def add_file(
        self,
        name: str,
        data: bytes,
        parent: int = ROOT_PARENT,
        *,
        blocks: Optional[List[int]] = None,
        block_count: Optional[int] = None,
        size: Optional[int] = None,
        **kw,
    ) -> int:
        n = (len(data) + BLOCK_SIZE - 1) // BLOCK_SIZE
        if blocks is None:
            blocks = self.alloc(n)
        for i, b in enumerate(blocks):
            self.blocks[b] = data[i * BLOCK_SIZE : (i + 1) * BLOCK_SIZE]
        for a, b in zip(blocks, blocks[1:]):
            self.next.setdefault(a, b)
        if blocks:
            self.next.setdefault(blocks[-1], BLOCK_TERMINATOR)
        self.records.append(
            entry_record(
                name,
                block_count=len(blocks) if block_count is None else block_count,
                starting_block=blocks[0] if blocks else 0,
                parent=parent,
                size=len(data) if size is None else size,
                **kw,
            )
        )
        return len(self.records) - 1

    def set_header(self, offset: int, raw: bytes) -> None:
        self.header[offset] = raw

    def set_metadata(
        self,
        *,
        content_type: int = 1,
        title_id: int = 0x4D5307E6,
        content_id: bytes = bytes(range(0xA0, 0xB4)),
        display_name: str = "",
        description: str = "",
        publisher: str = "",
        title_name: str = "",
    ) -> None:
        self.set_header(HDR_CONTENT_TYPE, struct.pack(">I", content_type))
        self.set_header(HDR_TITLE_ID, struct.pack(">I", title_id))
        self.set_header(HDR_CONTENT_ID, content_id)
        self.set_header(HDR_DISPLAY_NAME, display_name.encode("utf-16-be"))
        self.set_header(HDR_DESCRIPTION, description.encode("utf-16-be"))
        self.set_header(HDR_PUBLISHER, publisher.encode("utf-16-be"))
        self.set_header(HDR_TITLE_NAME, title_name.encode("utf-16-be"))

    def set_thumbnails(self, package: bytes = b"", title: bytes = b"") -> None:
        self.set_header(HDR_PACKAGE_THUMB_SIZE, struct.pack(">I", len(package)))
        self.set_header(HDR_TITLE_THUMB_SIZE, struct.pack(">I", len(title)))
        self.set_header(HDR_PACKAGE_THUMB, package)
        self.set_header(HDR_TITLE_THUMB, title)

    def _layout_table(self) -> None:
        per_block = BLOCK_SIZE // FILE_RECORD_SIZE
        needed = max(1, (len(self.records) + per_block - 1) // per_block)
        if needed > len(self.table_blocks):
            self.table_blocks += self.alloc(needed - len(self.table_blocks))
        table = b"".join(self.records)
        for i, b in enumerate(self.table_blocks):
            self.blocks[b] = table[i * BLOCK_SIZE : (i + 1) * BLOCK_SIZE]
        for a, b in zip(self.table_blocks, self.table_blocks[1:]):
            self.next.setdefault(a, b)
        self.next.setdefault(self.table_blocks[-1], BLOCK_TERMINATOR)

    def build(self) -> bytes:
        self._layout_table()
        size = MIN_PACKAGE_SIZE
        for b in self.blocks:
            size = max(
                size,
                block_to_data_offset(self.layout, b) + BLOCK_SIZE,
                block_to_chain_record_offset(self.layout, b) + HASH_RECORD_SIZE,
            )
        for b in self.next:
            size = max(size, block_to_chain_record_offset(self.layout, b) + HASH_RECORD_SIZE)
        buf = blank_package(self.shift, magic=self.magic, size=size)

        buf[VD_OFFSET] = 0x24
        count = len(self.table_blocks) if self.table_block_count is None else self.table_block_count
        start = self.table_blocks[0] if self.table_start is None else self.table_start
        struct.pack_into("<H", buf, VD_FILE_TABLE_BLOCK_COUNT, count)
        buf[VD_FILE_TABLE_BLOCK : VD_FILE_TABLE_BLOCK + 3] = le24(start)
        struct.pack_into(">I", buf, VD_ALLOCATED_BLOCKS, len(self.blocks))
        for off, raw in self.header.items():
            buf[off : off + len(raw)] = raw

        for b, data in self.blocks.items():
            off = block_to_data_offset(self.layout, b)
            padded = data.ljust(BLOCK_SIZE, b"\x00")
            buf[off : off + BLOCK_SIZE] = padded
            rec = block_to_chain_record_offset(self.layout, b)
            digest = hashlib.sha1(padded).digest()
            if b in self.bad_hashes:
                digest = bytes(x ^ 0xFF for x in digest)
            buf[rec : rec + 20] = digest
            buf[rec + 0x14] = 0x80
        for b, nxt in self.next.items():
            rec = block_to_chain_record_offset(self.layout, b)
            buf[rec + 0x15 : rec + 0x18] = be24(nxt)
        return bytes(buf)
