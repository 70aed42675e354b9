"""Minidump reader: a mapped dump file plus the views decoded from it.

The reader owns both halves. Only the header and stream directory are parsed
up front; each stream is decoded from the mapping the first time it is
requested, so a damaged stream fails that request and nothing else. Captured
memory regions only record offsets into the mapping, which is released last
and only by ``close()``.
"""
import logging
import os
import threading
from typing import Any, Dict, List, Optional, Union

from minidump.directory import MINIDUMP_DIRECTORY
from minidump.streams import (
    MinidumpMemory64List,
    MinidumpMemoryList,
    MinidumpSystemInfo,
    MinidumpThreadList,
)

from .buffer import MappedBuffer
from .errors import (
    AddressNotMappedError,
    MemoryStreamUnavailableError,
    OutOfBoundsError,
    StreamCorruptError,
    StreamMissingError,
)
from .streams import (
    DIRECTORY_ENTRY_SIZE,
    MEMORY_STREAMS,
    MemoryRegionTable,
    MinidumpDirectory,
    MinidumpHeader,
    MinidumpStreamType,
    build_region_table,
    check_header,
    read_directory,
)

logger = logging.getLogger(__name__)

U64_MAX = (1 << 64) - 1

# Stream decoders from the minidump package, keyed by stream type
STREAM_DECODERS = {
    MinidumpStreamType.THREAD_LIST: MinidumpThreadList,
    MinidumpStreamType.SYSTEM_INFO: MinidumpSystemInfo,
    MinidumpStreamType.MEMORY_LIST: MinidumpMemoryList,
    MinidumpStreamType.MEMORY_64_LIST: MinidumpMemory64List,
}


class MinidumpReader:
    """Read-only access to a minidump file.

    Usage::

        with MinidumpReader("crash.dmp") as reader:
            data = reader.read_virtual_memory(0x7FF95F9B1000, 200)
            threads = reader.get_thread_list().threads
    """

    def __init__(self, dump_path: Union[str, os.PathLike]):
        self._buffer: Optional[MappedBuffer] = None
        self._directories: Dict[int, MinidumpDirectory] = {}
        self._streams: Dict[int, Any] = {}
        self._regions: Optional[MemoryRegionTable] = None
        # Decoding seeks the shared mapping, so it is serialized
        self._decode_lock = threading.RLock()

        buffer = MappedBuffer.open(dump_path)
        try:
            self.header: MinidumpHeader = check_header(buffer)
            directories = read_directory(buffer, self.header)
        except BaseException:
            buffer.close()
            raise

        self._buffer = buffer
        for directory in directories:
            # First entry wins when a stream type is listed twice
            self._directories.setdefault(directory.stream_type, directory)
        logger.debug(
            "Opened %s: %d streams listed (%s)",
            buffer.path, self.header.num_streams,
            ", ".join(self._stream_name(t) for t in sorted(self._directories)),
        )

    def __del__(self):
        self.close()

    def __enter__(self) -> "MinidumpReader":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"<MinidumpReader {self.path} {state}>"

    @property
    def path(self):
        buffer = getattr(self, '_buffer', None)
        return buffer.path if buffer is not None else None

    @property
    def closed(self) -> bool:
        return getattr(self, '_buffer', None) is None

    def close(self) -> None:
        """Drop the decoded streams, then unmap the file."""
        self._streams = {}
        self._regions = None
        buffer = getattr(self, '_buffer', None)
        if buffer is not None:
            self._buffer = None
            buffer.close()

    # ========================================================================
    # STREAMS
    # ========================================================================

    def has_stream(self, stream_type: int) -> bool:
        """Whether the stream directory lists ``stream_type``."""
        self._check_open()
        return int(stream_type) in self._directories

    def get_thread_list(self):
        """The decoded ThreadList stream (``.threads`` holds the threads)."""
        return self._get_stream(MinidumpStreamType.THREAD_LIST)

    def get_system_info(self):
        """The decoded SystemInfo stream."""
        return self._get_stream(MinidumpStreamType.SYSTEM_INFO)

    def _get_stream(self, stream_type: MinidumpStreamType):
        self._check_open()
        stream = self._streams.get(stream_type)
        if stream is not None:
            return stream

        with self._decode_lock:
            stream = self._streams.get(stream_type)
            if stream is None:
                stream = self._decode_stream(stream_type)
                self._streams[stream_type] = stream
            return stream

    def _decode_stream(self, stream_type: MinidumpStreamType):
        """Decode one stream with the minidump package.

        Raises:
            StreamMissingError: the directory does not list the stream
            StreamCorruptError: the stream lies outside the file or the
                decoder rejected it
        """
        directory = self._directories.get(stream_type)
        if directory is None:
            raise StreamMissingError(f"Dump has no {stream_type.name} stream", int(stream_type))

        if directory.end > len(self._buffer):
            raise StreamCorruptError(
                f"{stream_type.name} stream [{directory.rva:#x}, {directory.end:#x}) "
                f"runs past end of file ({len(self._buffer):#x})",
                int(stream_type),
            )

        buff = self._buffer.mapping
        try:
            buff.seek(self.header.stream_directory_rva + directory.index * DIRECTORY_ENTRY_SIZE)
            entry = MINIDUMP_DIRECTORY.parse(buff)
            stream = STREAM_DECODERS[stream_type].parse(entry, buff)
        except Exception as e:
            raise StreamCorruptError(
                f"{stream_type.name} stream could not be decoded: {e}", int(stream_type)
            ) from e
        if stream is None:
            raise StreamCorruptError(f"{stream_type.name} stream could not be decoded", int(stream_type))

        logger.debug("Decoded %s stream (%d bytes at %#x)", stream_type.name, directory.data_size, directory.rva)
        return stream

    # ========================================================================
    # VIRTUAL MEMORY
    # ========================================================================

    def get_memory_regions(self) -> MemoryRegionTable:
        """Captured memory regions, built on first use."""
        self._check_open()
        regions = self._regions
        if regions is not None:
            return regions

        with self._decode_lock:
            if self._regions is None:
                self._regions = self._build_regions()
            return self._regions

    def _build_regions(self) -> MemoryRegionTable:
        listed = [t for t in MEMORY_STREAMS if t in self._directories]
        if not listed:
            raise MemoryStreamUnavailableError(
                "Dump has no MEMORY_LIST or MEMORY_64_LIST stream", int(MinidumpStreamType.MEMORY_LIST)
            )

        memory_lists = []
        errors: List[StreamCorruptError] = []
        for stream_type in listed:
            try:
                memory_lists.append(self._get_stream(stream_type))
            except StreamCorruptError as e:
                errors.append(e)
        if not memory_lists:
            raise errors[0]
        for e in errors:
            logger.warning("%s; its regions are unavailable", e)

        return build_region_table(memory_lists, len(self._buffer))

    def read_virtual_memory(self, address: int, size: int) -> bytes:
        """Copy ``size`` bytes of captured memory starting at ``address``.

        The whole window must lie inside one captured region.

        Raises:
            MemoryStreamUnavailableError: the dump captured no memory
            StreamCorruptError: the memory stream could not be decoded
            AddressNotMappedError: no region contains ``address``
            OutOfBoundsError: the window runs past the end of its region
        """
        if not isinstance(address, int) or not isinstance(size, int):
            raise TypeError("address and size must be integers")
        if address < 0 or size < 0:
            raise ValueError(f"address and size must be non-negative (got {address:#x}, {size})")

        region = self.get_memory_regions().find(address)
        if region is None:
            raise AddressNotMappedError(f"Address {address:#x} is not in any captured region", address, size)

        offset = address - region.base_address
        if offset < 0:
            raise AddressNotMappedError(f"Address {address:#x} is below region {region.base_address:#x}", address, size)

        if size == 0:
            return b''

        end = offset + size
        if end > region.length or address + size - 1 > U64_MAX:
            raise OutOfBoundsError(
                f"Read of {size:#x} bytes at {address:#x} runs past region "
                f"[{region.base_address:#x}, {region.end_address:#x})",
                address, size,
            )

        return self._buffer.read(region.file_offset + offset, size)

    # ========================================================================
    # HELPERS
    # ========================================================================

    def _check_open(self) -> None:
        if self.closed:
            raise ValueError("I/O operation on closed minidump reader")

    @staticmethod
    def _stream_name(value: int) -> str:
        try:
            return MinidumpStreamType(value).name
        except ValueError:
            return hex(value)
