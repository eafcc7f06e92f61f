from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List

from Cryptodome.Hash import SHA1

from .chain import read_chain_record, walk_chain
from .constants import BLOCK_SIZE, VD_FILE_TABLE_BLOCK, VD_FILE_TABLE_BLOCK_COUNT
from .errors import MalformedContainerError, StfsError
from .table import entry_path
from .translate import block_to_data_offset

if TYPE_CHECKING:
    from .container import Container
    from .table import FileTableEntry


logger = logging.getLogger(__name__)


def sha1(data: bytes) -> bytes:
    return SHA1.new(data).digest()


def verify_block(container: "Container", block: int) -> bool:
    """Compare a data block against the SHA-1 held in its chain record."""
    rec = read_chain_record(container, block)
    data = container.store.read_bytes(block_to_data_offset(container, block), BLOCK_SIZE)
    return sha1(data) == rec.sha1


def verify_blocks(container: "Container", blocks: List[int]) -> List[int]:
    bad: List[int] = []
    for block in blocks:
        if not verify_block(container, block):
            bad.append(block)
    return bad


def verify_entry(container: "Container", entry: "FileTableEntry") -> List[int]:
    """Return the blocks of `entry`'s chain whose hash does not match."""
    if entry.is_directory or entry.file_size == 0:
        return []
    blocks = walk_chain(container, entry.starting_block, entry.block_count)
    bad = verify_blocks(container, blocks)
    if bad:
        logger.warning("File '%s': %d of %d block(s) fail hash check", entry.name, len(bad), len(blocks))
    return bad


@dataclass
class VerifyReport:
    """Book-keeping describing which blocks failed their hash check."""

    table_blocks: int = 0
    bad_table_blocks: List[int] = field(default_factory=list)
    files_checked: int = 0
    bad_files: Dict[str, List[int]] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not (self.bad_table_blocks or self.bad_files or self.errors)

    def to_dict(self) -> Dict:
        return {
            "ok": self.ok,
            "table_blocks": self.table_blocks,
            "bad_table_blocks": self.bad_table_blocks,
            "files_checked": self.files_checked,
            "bad_files": self.bad_files,
            "errors": self.errors,
        }


def verify_package(container: "Container") -> VerifyReport:
    """
    Checks the level-0 hash of every block reachable from the file table.

    1.  **File table:** every block of the table chain.
    2.  **Files:** every block of each file's chain. Path and chain errors for a
        single file are recorded against that file (or `#index:name` when its
        path cannot be built) and do not stop the pass.

    Hash tables above level 0 are not checked.
    """
    report = VerifyReport()
    store = container.store
    table_blocks = walk_chain(
        container,
        store.read24_le(VD_FILE_TABLE_BLOCK),
        store.read16_le(VD_FILE_TABLE_BLOCK_COUNT),
    )
    report.table_blocks = len(table_blocks)
    report.bad_table_blocks = verify_blocks(container, table_blocks)
    if report.bad_table_blocks:
        logger.warning("File table: %d block(s) fail hash check", len(report.bad_table_blocks))
    entries = container.file_table()
    for e in entries:
        if e.is_directory:
            continue
        report.files_checked += 1
        try:
            path = entry_path(entries, e)
        except MalformedContainerError as exc:
            path = f"#{e.index}:{e.name}"
            logger.warning("File '%s': %s", path, exc)
            report.errors[path] = str(exc)
            continue
        try:
            bad = verify_entry(container, e)
        except StfsError as exc:
            logger.warning("File '%s': %s", path, exc)
            report.errors[path] = str(exc)
            continue
        if bad:
            report.bad_files[path] = bad
    return report
