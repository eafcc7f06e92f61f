from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from .constants import (
    CONTENT_ARCADE_GAME,
    CONTENT_AVATAR_ITEM,
    CONTENT_DLC,
    CONTENT_GAMERPIC,
    CONTENT_PROFILE,
    CONTENT_SAVEGAME,
    CONTENT_THEME,
    CONTENT_TITLE_UPDATE,
    HDR_CONTENT_ID,
    HDR_CONTENT_ID_LEN,
    HDR_CONTENT_TYPE,
    HDR_DESCRIPTION,
    HDR_DESCRIPTION_LEN,
    HDR_DISPLAY_NAME,
    HDR_DISPLAY_NAME_LEN,
    HDR_HEADER_SIZE,
    HDR_PACKAGE_THUMB,
    HDR_PACKAGE_THUMB_SIZE,
    HDR_PUBLISHER,
    HDR_PUBLISHER_LEN,
    HDR_SIGNATURE_END,
    HDR_SIGNATURE_START,
    HDR_TITLE_ID,
    HDR_TITLE_NAME,
    HDR_TITLE_NAME_LEN,
    HDR_TITLE_THUMB,
    HDR_TITLE_THUMB_SIZE,
    MAGIC_CON,
    MAGIC_LIVE,
    MAGIC_PIRS,
    THUMB_MAX_SIZE,
    VD_ALLOCATED_BLOCKS,
    VD_FILE_TABLE_BLOCK,
    VD_FILE_TABLE_BLOCK_COUNT,
    VD_UNALLOCATED_BLOCKS,
)
from .errors import MalformedContainerError

if TYPE_CHECKING:
    from .container import Container


_PACKAGE_TYPE_NAMES = {
    MAGIC_CON: "Console-signed",
    MAGIC_LIVE: "Xbox Live-signed",
    MAGIC_PIRS: "Microsoft-signed",
}

_CONTENT_TYPE_NAMES = {
    CONTENT_SAVEGAME: "Saved Game",
    CONTENT_DLC: "Downloadable Content",
    CONTENT_AVATAR_ITEM: "Avatar Item",
    CONTENT_PROFILE: "User Profile",
    CONTENT_GAMERPIC: "Gamer Picture",
    CONTENT_THEME: "Theme",
    CONTENT_TITLE_UPDATE: "Title Update",
    CONTENT_ARCADE_GAME: "Xbox Live Arcade Game",
}

RESIGN_MAGICS = {"live": MAGIC_LIVE, "pirs": MAGIC_PIRS}


def package_type_name(magic: int) -> str:
    return _PACKAGE_TYPE_NAMES.get(magic, f"Unknown Type {magic:x}")


def content_type_name(content_type: int) -> str:
    return _CONTENT_TYPE_NAMES.get(content_type, f"Unknown Type {content_type:x}")


@dataclass
class PackageHeader:
    magic: int
    header_size: int
    table_size_shift: int
    content_type: int
    title_id: int
    content_id: str
    display_name: str
    description: str
    publisher: str
    title_name: str
    file_table_block_count: int
    file_table_block: int
    allocated_blocks: int
    unallocated_blocks: int

    @property
    def package_type(self) -> str:
        return package_type_name(self.magic)

    @property
    def content_type_name(self) -> str:
        return content_type_name(self.content_type)


def content_id(container: "Container") -> str:
    return container.store.read_bytes(HDR_CONTENT_ID, HDR_CONTENT_ID_LEN).hex().upper()


def read_header(container: "Container") -> PackageHeader:
    s = container.store
    return PackageHeader(
        magic=s.read32(0),
        header_size=s.read32(HDR_HEADER_SIZE),
        table_size_shift=container.table_size_shift,
        content_type=s.read32(HDR_CONTENT_TYPE),
        title_id=s.read32(HDR_TITLE_ID),
        content_id=content_id(container),
        display_name=s.read_utf16(HDR_DISPLAY_NAME, HDR_DISPLAY_NAME_LEN),
        description=s.read_utf16(HDR_DESCRIPTION, HDR_DESCRIPTION_LEN),
        publisher=s.read_utf16(HDR_PUBLISHER, HDR_PUBLISHER_LEN),
        title_name=s.read_utf16(HDR_TITLE_NAME, HDR_TITLE_NAME_LEN),
        file_table_block_count=s.read16_le(VD_FILE_TABLE_BLOCK_COUNT),
        file_table_block=s.read24_le(VD_FILE_TABLE_BLOCK),
        allocated_blocks=s.read32(VD_ALLOCATED_BLOCKS),
        unallocated_blocks=s.read32(VD_UNALLOCATED_BLOCKS),
    )


def _thumbnail(container: "Container", size_field: int, data_offset: int) -> bytes:
    size = container.store.read32(size_field)
    if size > THUMB_MAX_SIZE:
        raise MalformedContainerError(
            f"Thumbnail size 0x{size:X} exceeds its 0x{THUMB_MAX_SIZE:X}-byte slot",
            offset=size_field,
            expected=THUMB_MAX_SIZE,
            actual=size,
        )
    return container.store.read_bytes(data_offset, size)


def package_thumbnail(container: "Container") -> bytes:
    return _thumbnail(container, HDR_PACKAGE_THUMB_SIZE, HDR_PACKAGE_THUMB)


def title_thumbnail(container: "Container") -> bytes:
    return _thumbnail(container, HDR_TITLE_THUMB_SIZE, HDR_TITLE_THUMB)


def set_content_type(container: "Container", value: int) -> None:
    container.store.write32(HDR_CONTENT_TYPE, value)


def set_title_id(container: "Container", value: int) -> None:
    container.store.write32(HDR_TITLE_ID, value)


def resign(container: "Container", magic: int) -> None:
    """Retag the package as LIVE or PIRS and blank its signature area.

    The result only loads on consoles that skip signature checks; no new
    signature is produced.
    """
    if magic not in (MAGIC_LIVE, MAGIC_PIRS):
        raise ValueError(f"Can only re-sign as LIVE or PIRS, not 0x{magic:08X}")
    container.store.write32(0, magic)
    container.store.fill(HDR_SIGNATURE_START, HDR_SIGNATURE_END, 0)
