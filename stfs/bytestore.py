from __future__ import annotations

import struct
from typing import Union

from .errors import BoundsError


BytesLike = Union[bytes, bytearray, memoryview]

_U16_BE = struct.Struct(">H")
_U16_LE = struct.Struct("<H")
_U32_BE = struct.Struct(">I")


def swap24(value: int) -> int:
    """Reverse the byte order of a 24-bit value."""
    return ((value & 0xFF) << 16) | (value & 0x00FF00) | ((value >> 16) & 0xFF)


class ByteStore:
    """Bounds-checked big-endian access to an in-memory package buffer.

    Reads never wrap or clamp: any access that would touch a byte outside the
    buffer raises BoundsError with the offending offset.
    """

    def __init__(self, data: BytesLike):
        self._buf = bytearray(data)

    def __len__(self) -> int:
        return len(self._buf)

    def _check(self, offset: int, size: int) -> None:
        if offset < 0 or size < 0 or offset + size > len(self._buf):
            raise BoundsError(
                f"Access of {size} byte(s) at 0x{offset:X} outside buffer of 0x{len(self._buf):X} bytes",
                offset=offset,
                expected=len(self._buf),
                actual=offset + size,
            )

    def read8(self, offset: int) -> int:
        self._check(offset, 1)
        return self._buf[offset]

    def read16(self, offset: int) -> int:
        self._check(offset, 2)
        return _U16_BE.unpack_from(self._buf, offset)[0]

    def read16_le(self, offset: int) -> int:
        self._check(offset, 2)
        return _U16_LE.unpack_from(self._buf, offset)[0]

    def read24(self, offset: int) -> int:
        self._check(offset, 3)
        b = self._buf
        return (b[offset] << 16) | (b[offset + 1] << 8) | b[offset + 2]

    def read24_le(self, offset: int) -> int:
        return swap24(self.read24(offset))

    def read32(self, offset: int) -> int:
        self._check(offset, 4)
        return _U32_BE.unpack_from(self._buf, offset)[0]

    def read_bytes(self, offset: int, length: int) -> bytes:
        self._check(offset, length)
        return bytes(self._buf[offset : offset + length])

    def read_ascii(self, offset: int, length: int) -> str:
        """Decode up to `length` bytes as ASCII, stopping at the first NUL."""
        raw = self.read_bytes(offset, length)
        end = raw.find(b"\x00")
        if end >= 0:
            raw = raw[:end]
        return raw.decode("ascii", errors="replace")

    def read_utf16(self, offset: int, length: int) -> str:
        """Decode a UTF-16BE field of `length` bytes, stopping at the first 0x0000 unit."""
        raw = self.read_bytes(offset, length - (length % 2))
        for i in range(0, len(raw), 2):
            if raw[i] == 0 and raw[i + 1] == 0:
                raw = raw[:i]
                break
        return raw.decode("utf-16-be", errors="replace")

    def write8(self, offset: int, value: int) -> None:
        self._check(offset, 1)
        self._buf[offset] = value & 0xFF

    def write16(self, offset: int, value: int) -> None:
        self._check(offset, 2)
        _U16_BE.pack_into(self._buf, offset, value & 0xFFFF)

    def write24(self, offset: int, value: int) -> None:
        self._check(offset, 3)
        self._buf[offset] = (value >> 16) & 0xFF
        self._buf[offset + 1] = (value >> 8) & 0xFF
        self._buf[offset + 2] = value & 0xFF

    def write32(self, offset: int, value: int) -> None:
        self._check(offset, 4)
        _U32_BE.pack_into(self._buf, offset, value & 0xFFFFFFFF)

    def write_bytes(self, offset: int, data: BytesLike) -> None:
        self._check(offset, len(data))
        self._buf[offset : offset + len(data)] = data

    def fill(self, start: int, end: int, value: int = 0) -> None:
        self._check(start, end - start)
        self._buf[start:end] = bytes([value & 0xFF]) * (end - start)

    def to_bytes(self) -> bytes:
        return bytes(self._buf)
