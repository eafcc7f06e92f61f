from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, List, Optional, Sequence

from .bytestore import swap24
from .chain import walk_chain
from .constants import (
    BLOCK_SIZE,
    EFLAG_CONSECUTIVE,
    EFLAG_DIRECTORY,
    FE_ACCESSED,
    FE_BLOCK_COUNT,
    FE_CREATED,
    FE_FILE_SIZE,
    FE_NAME,
    FE_NAME_LENGTH,
    FE_PARENT,
    FE_STARTING_BLOCK,
    FILE_RECORD_SIZE,
    NAME_LENGTH_MASK,
    ROOT_PARENT,
    VD_FILE_TABLE_BLOCK,
    VD_FILE_TABLE_BLOCK_COUNT,
)
from .errors import BoundsError, MalformedContainerError
from .translate import block_to_data_offset

if TYPE_CHECKING:
    from .container import Container


logger = logging.getLogger(__name__)


def fat_timestamp(raw: int) -> Optional[datetime]:
    """Decode a packed FAT date/time (date in the high word) or None if invalid."""
    if raw == 0:
        return None
    date = raw >> 16
    time = raw & 0xFFFF
    try:
        return datetime(
            1980 + (date >> 9),
            (date >> 5) & 0x0F,
            date & 0x1F,
            time >> 11,
            (time >> 5) & 0x3F,
            (time & 0x1F) * 2,
        )
    except ValueError:
        return None


@dataclass(frozen=True)
class FileTableEntry:
    index: int
    name: str
    name_length: int
    flags: int
    block_count: int
    starting_block: int
    parent_index: int
    file_size: int
    created_raw: int = 0
    accessed_raw: int = 0
    offset: int = 0

    @property
    def is_directory(self) -> bool:
        return bool(self.flags & EFLAG_DIRECTORY)

    @property
    def is_consecutive(self) -> bool:
        return bool(self.flags & EFLAG_CONSECUTIVE)

    @property
    def is_root_child(self) -> bool:
        return self.parent_index == ROOT_PARENT

    @property
    def created(self) -> Optional[datetime]:
        return fat_timestamp(self.created_raw)

    @property
    def accessed(self) -> Optional[datetime]:
        return fat_timestamp(self.accessed_raw)


def decode_entry(container: "Container", offset: int, index: int) -> FileTableEntry:
    store = container.store
    raw_len = store.read8(offset + FE_NAME_LENGTH)
    name_length = raw_len & NAME_LENGTH_MASK
    return FileTableEntry(
        index=index,
        name=store.read_ascii(offset + FE_NAME, name_length),
        name_length=name_length,
        flags=(raw_len >> 6) & 0x3,
        # both 24-bit block fields are stored little-endian
        block_count=swap24(store.read24(offset + FE_BLOCK_COUNT)),
        starting_block=swap24(store.read24(offset + FE_STARTING_BLOCK)),
        parent_index=store.read16(offset + FE_PARENT),
        file_size=store.read32(offset + FE_FILE_SIZE),
        created_raw=store.read32(offset + FE_CREATED),
        accessed_raw=store.read32(offset + FE_ACCESSED),
        offset=offset,
    )


def parse_file_table(container: "Container") -> List[FileTableEntry]:
    """
    Parses the package's file table into a flat list of entries.

    The table's block count and first block come from the volume descriptor.
    Each table block holds 0x40-byte records; the first record whose name
    starts with a NUL byte ends the table, including any blocks after it.

    Raises:
        MalformedContainerError: if the table chain cannot be resolved or a
            record lies outside the buffer. No partial table is returned.
    """
    store = container.store
    block_count = store.read16_le(VD_FILE_TABLE_BLOCK_COUNT)
    start_block = store.read24_le(VD_FILE_TABLE_BLOCK)
    if block_count == 0:
        raise MalformedContainerError(
            "File table declares zero blocks",
            offset=VD_FILE_TABLE_BLOCK_COUNT,
            actual=block_count,
        )
    start_off = block_to_data_offset(container, start_block)
    if start_off + BLOCK_SIZE > len(store):
        raise MalformedContainerError(
            f"File table block {start_block} lies outside the package",
            offset=VD_FILE_TABLE_BLOCK,
            expected=len(store),
            actual=start_off + BLOCK_SIZE,
        )
    try:
        blocks = walk_chain(container, start_block, block_count)
    except BoundsError as exc:
        raise MalformedContainerError(
            f"File table chain leaves the package: {exc}",
            offset=exc.offset,
        ) from exc
    if not blocks:
        raise MalformedContainerError("File table chain is empty", offset=VD_FILE_TABLE_BLOCK)

    entries: List[FileTableEntry] = []
    per_block = BLOCK_SIZE // FILE_RECORD_SIZE
    done = False
    for block in blocks:
        base = block_to_data_offset(container, block)
        for i in range(per_block):
            offset = base + i * FILE_RECORD_SIZE
            if store.read8(offset + FE_NAME) == 0:
                done = True
                break
            entries.append(decode_entry(container, offset, len(entries)))
        if done:
            break
    logger.debug("Parsed file table: %d entries across %d block(s)", len(entries), len(blocks))
    return entries


def entry_path(entries: Sequence[FileTableEntry], entry: FileTableEntry) -> str:
    """Build the `/`-joined path of `entry` from the root down.

    Raises:
        MalformedContainerError: if a parent index is out of range or the
            parent chain is longer than the table (a cycle).
    """
    parts = [entry.name]
    cur = entry
    steps = 0
    while cur.parent_index != ROOT_PARENT:
        steps += 1
        if steps > len(entries):
            raise MalformedContainerError(
                f"Parent chain of '{entry.name}' does not reach the root",
                offset=entry.offset,
                expected=ROOT_PARENT,
                actual=cur.parent_index,
            )
        if cur.parent_index >= len(entries):
            raise MalformedContainerError(
                f"Parent index {cur.parent_index} of '{cur.name}' out of range",
                offset=cur.offset,
                expected=len(entries),
                actual=cur.parent_index,
            )
        cur = entries[cur.parent_index]
        parts.append(cur.name)
    return "/".join(reversed(parts))


def clean_path(path: str) -> str:
    """Canonical forward-slash form of a package path; `..` segments are rejected."""
    parts = [p for p in path.replace("\\", "/").split("/") if p not in ("", ".")]
    if ".." in parts:
        raise ValueError(f"Path may not contain '..': {path}")
    return "/".join(parts)


def find_entry(entries: Sequence[FileTableEntry], name: str) -> Optional[FileTableEntry]:
    """Find an entry by full path, falling back to the bare name."""
    target = clean_path(name)
    for e in entries:
        if entry_path(entries, e) == target:
            return e
    for e in entries:
        if e.name == target:
            return e
    return None
