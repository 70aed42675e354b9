"""Exception hierarchy for the minidump reader.

Construction failures (``DumpIOError``, ``FormatError`` and subclasses) are
fatal to the reader being built. Stream and memory read failures are raised
per call and leave the reader usable.
"""
from typing import Optional


class MinidumpError(Exception):
    """Base class for every error raised by this package."""


# ============================================================================
# CONSTRUCTION ERRORS
# ============================================================================

class DumpIOError(MinidumpError):
    """The dump file could not be mapped into memory."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


class DumpNotFoundError(DumpIOError):
    """The dump file could not be opened."""


class FormatError(MinidumpError):
    """The bytes are not a decodable minidump container."""


class MalformedInputError(FormatError):
    """Bad signature, truncated header or a decoder failure."""


class StreamDirectoryCorruptError(FormatError):
    """The stream directory points outside the file."""


# ============================================================================
# STREAM ERRORS
# ============================================================================

class StreamError(MinidumpError):
    """A single stream could not be served."""

    def __init__(self, message: str, stream_type: Optional[int] = None):
        super().__init__(message)
        self.stream_type = stream_type


class StreamMissingError(StreamError):
    """The stream is not listed in the stream directory."""


class StreamCorruptError(StreamError):
    """The stream is listed but the decoder could not decode it."""


class MemoryStreamUnavailableError(StreamMissingError):
    """The dump captured no memory (no MemoryList or Memory64List stream)."""


# ============================================================================
# MEMORY READ ERRORS
# ============================================================================

class MemoryReadError(MinidumpError):
    """A virtual memory read was rejected."""

    def __init__(self, message: str, address: int, size: int):
        super().__init__(message)
        self.address = address
        self.size = size


class AddressNotMappedError(MemoryReadError):
    """No captured region contains the address."""


class OutOfBoundsError(MemoryReadError):
    """The window starts inside a region but runs past its end."""
