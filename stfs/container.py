from __future__ import annotations

import enum
import logging
from typing import TYPE_CHECKING, List, Optional

from .bytestore import ByteStore, BytesLike
from .constants import HDR_HEADER_SIZE, KNOWN_MAGICS, MIN_PACKAGE_SIZE
from .errors import InvalidStateError, UnrecognizedFormatError

if TYPE_CHECKING:
    from .table import FileTableEntry


logger = logging.getLogger(__name__)


class ContainerState(enum.Enum):
    UNLOADED = "unloaded"
    LOADED = "loaded"


def table_size_shift(header_size: int) -> int:
    """Derive the hash-table size variant from the header size field.

    Headers that round up to 0xB000 bytes use one hash table per level (0);
    anything else uses a pair of tables per level (1).
    """
    return 0 if ((header_size + 0xFFF) & 0xF000) >> 0xC == 0xB else 1


class Container:
    """An STFS package held in memory plus the state derived from it.

    Usage:
        with Container.open("package.bin") as pkg:
            for entry in pkg.file_table():
                ...

    A container starts UNLOADED; `load` validates a buffer and moves it to
    LOADED, `reset` drops the buffer and every derived value. All accessors
    raise InvalidStateError while UNLOADED.
    """

    def __init__(self):
        self.state = ContainerState.UNLOADED
        self.path: Optional[str] = None
        self._store: Optional[ByteStore] = None
        self._shift: Optional[int] = None
        self._entries: Optional[List["FileTableEntry"]] = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.reset()

    @classmethod
    def from_bytes(cls, data: BytesLike) -> "Container":
        c = cls()
        c.load(data)
        return c

    @classmethod
    def open(cls, path: str) -> "Container":
        with open(path, "rb") as f:
            data = f.read()
        c = cls.from_bytes(data)
        c.path = path
        return c

    def load(self, data: BytesLike) -> None:
        if self.state is ContainerState.LOADED:
            raise InvalidStateError("Package already loaded; call reset() first")
        if len(data) < MIN_PACKAGE_SIZE:
            raise UnrecognizedFormatError(
                f"Input too short for an STFS package ({len(data)} bytes)",
                expected=MIN_PACKAGE_SIZE,
                actual=len(data),
            )
        store = ByteStore(data)
        magic = store.read32(0)
        if magic not in KNOWN_MAGICS:
            raise UnrecognizedFormatError(
                f"Unrecognized package magic 0x{magic:08X}",
                offset=0,
                expected=KNOWN_MAGICS,
                actual=magic,
            )
        header_size = store.read32(HDR_HEADER_SIZE)
        self._store = store
        self._shift = table_size_shift(header_size)
        self._entries = None
        self.state = ContainerState.LOADED
        logger.debug(
            "Loaded package: %d bytes, magic 0x%08X, header size 0x%X, table size shift %d",
            len(store),
            magic,
            header_size,
            self._shift,
        )

    def reset(self) -> None:
        self.state = ContainerState.UNLOADED
        self.path = None
        self._store = None
        self._shift = None
        self._entries = None

    def _require_loaded(self) -> None:
        if self.state is not ContainerState.LOADED:
            raise InvalidStateError("No package loaded")

    @property
    def store(self) -> ByteStore:
        self._require_loaded()
        assert self._store is not None
        return self._store

    @property
    def table_size_shift(self) -> int:
        self._require_loaded()
        assert self._shift is not None
        return self._shift

    def __len__(self) -> int:
        return len(self.store)

    def file_table(self) -> List["FileTableEntry"]:
        """Return the parsed file table, parsing it on first use."""
        self._require_loaded()
        if self._entries is None:
            from .table import parse_file_table

            self._entries = parse_file_table(self)
        return self._entries

    def to_bytes(self) -> bytes:
        return self.store.to_bytes()

    def save(self, path: str) -> None:
        data = self.to_bytes()
        with open(path, "wb") as f:
            f.write(data)
