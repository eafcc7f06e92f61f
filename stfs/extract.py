from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING

from .chain import walk_chain
from .constants import BLOCK_SIZE
from .errors import NotAFileError, TruncatedDataError
from .translate import block_to_data_offset

if TYPE_CHECKING:
    from .container import Container
    from .table import FileTableEntry


logger = logging.getLogger(__name__)


def extract_entry(container: "Container", entry: "FileTableEntry", *, allow_truncated: bool = False) -> bytes:
    """Reassemble a file's contents from its block chain.

    Args:
        container: Loaded package.
        entry: File table entry; must not be a directory.
        allow_truncated: When the chain ends before `entry.file_size` bytes
            were read, return the short data instead of raising. A warning is
            logged either way.

    Raises:
        NotAFileError: if `entry` is a directory.
        TruncatedDataError: if the chain is short and allow_truncated is False.
    """
    if entry.is_directory:
        raise NotAFileError(f"'{entry.name}' is a directory", offset=entry.offset)
    store = container.store
    remaining = entry.file_size
    out = bytearray()
    if remaining > 0:
        for block in walk_chain(container, entry.starting_block, entry.block_count):
            take = min(remaining, BLOCK_SIZE)
            off = block_to_data_offset(container, block)
            if off + take > len(store):
                # package cut off before this block
                break
            out += store.read_bytes(off, take)
            remaining -= take
            if remaining <= 0:
                break
    if remaining > 0:
        logger.warning(
            "File '%s' is truncated: chain supplied %d of %d byte(s)",
            entry.name,
            len(out),
            entry.file_size,
        )
        if not allow_truncated:
            raise TruncatedDataError(
                f"Block chain of '{entry.name}' ends after {len(out)} of {entry.file_size} byte(s)",
                data=bytes(out),
                offset=entry.offset,
                expected=entry.file_size,
                actual=len(out),
            )
    return bytes(out)


def extract_to_file(
    container: "Container",
    entry: "FileTableEntry",
    out_path: str,
    *,
    allow_truncated: bool = False,
) -> int:
    data = extract_entry(container, entry, allow_truncated=allow_truncated)
    os.makedirs(os.path.dirname(out_path) or ".", exist_ok=True)
    with open(out_path, "wb") as wf:
        wf.write(data)
    return len(data)
