from __future__ import annotations

from typing import Any, Optional


class StfsError(Exception):
    """Base class for STFS-specific errors.

    Subclasses carry the offending offset and the expected/actual values
    where they are meaningful, so callers can report more than a message.
    """

    def __init__(
        self,
        message: str,
        *,
        offset: Optional[int] = None,
        expected: Any = None,
        actual: Any = None,
    ):
        super().__init__(message)
        self.offset = offset
        self.expected = expected
        self.actual = actual


# Lifecycle
class InvalidStateError(StfsError):
    pass


# Load-time validation
class UnrecognizedFormatError(StfsError):
    pass


# Structure/consistency
class MalformedContainerError(StfsError):
    pass


class BoundsError(MalformedContainerError):
    pass


# Extraction
class NotAFileError(StfsError):
    pass


class TruncatedDataError(StfsError):
    def __init__(self, message: str, *, data: bytes = b"", **kwargs: Any):
        super().__init__(message, **kwargs)
        self.data = data
