"""Minidump Reader package.

Read-only access to process crash dumps ("minidumps"):
- Memory-mapped dump file that outlives every view decoded from it
- Virtual address lookup across the dump's captured memory regions
- Thread list and system info streams
"""
from .buffer import MappedBuffer
from .errors import (
    MinidumpError,
    DumpIOError,
    DumpNotFoundError,
    FormatError,
    MalformedInputError,
    StreamDirectoryCorruptError,
    StreamError,
    StreamMissingError,
    StreamCorruptError,
    MemoryStreamUnavailableError,
    MemoryReadError,
    AddressNotMappedError,
    OutOfBoundsError,
)
from .reader import MinidumpReader
from .streams import (
    MemoryRegion,
    MemoryRegionTable,
    MinidumpDirectory,
    MinidumpHeader,
    MinidumpStreamType,
)

__all__ = [
    # Reader
    "MinidumpReader",
    "MappedBuffer",
    # Memory
    "MemoryRegion",
    "MemoryRegionTable",
    "MinidumpDirectory",
    "MinidumpHeader",
    "MinidumpStreamType",
    # Errors
    "MinidumpError",
    "DumpIOError",
    "DumpNotFoundError",
    "FormatError",
    "MalformedInputError",
    "StreamDirectoryCorruptError",
    "StreamError",
    "StreamMissingError",
    "StreamCorruptError",
    "MemoryStreamUnavailableError",
    "MemoryReadError",
    "AddressNotMappedError",
    "OutOfBoundsError",
]

__version__ = "1.0.0"
