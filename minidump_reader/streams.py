"""Minidump container constants, header checks and the captured memory table."""
import bisect
import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Iterable, Iterator, List, Optional

from .buffer import MappedBuffer
from .errors import MalformedInputError, StreamDirectoryCorruptError

logger = logging.getLogger(__name__)


# ============================================================================
# MINIDUMP STRUCTURES
# ============================================================================

MINIDUMP_SIGNATURE = 0x504D444D  # 'MDMP' read little-endian
HEADER_SIZE = 32
DIRECTORY_ENTRY_SIZE = 12


class MinidumpStreamType(IntEnum):
    """MINIDUMP_STREAM_TYPE enum"""
    UNUSED = 0
    THREAD_LIST = 3
    MODULE_LIST = 4
    MEMORY_LIST = 5
    EXCEPTION = 6
    SYSTEM_INFO = 7
    THREAD_EX_LIST = 8
    MEMORY_64_LIST = 9
    COMMENT_STREAM_A = 10
    COMMENT_STREAM_W = 11
    HANDLE_DATA = 12
    UNLOADED_MODULE_LIST = 14
    MISC_INFO = 15
    MEMORY_INFO_LIST = 16
    THREAD_INFO_LIST = 17


MEMORY_STREAMS = (MinidumpStreamType.MEMORY_LIST, MinidumpStreamType.MEMORY_64_LIST)


@dataclass(frozen=True)
class MinidumpHeader:
    """MINIDUMP_HEADER"""
    signature: int
    version: int
    num_streams: int
    stream_directory_rva: int
    checksum: int
    time_date_stamp: int
    flags: int


def check_header(buffer: MappedBuffer) -> MinidumpHeader:
    """Validate MINIDUMP_HEADER and the directory bounds before decoding.

    Raises:
        MalformedInputError: file too short for a header, or bad signature
        StreamDirectoryCorruptError: the directory does not fit in the file
    """
    size = len(buffer)
    if size < HEADER_SIZE:
        raise MalformedInputError(f"File is {size} bytes, too short for a minidump header")

    sig, ver, streams, stream_dir_rva, checksum, timestamp, flags = buffer.unpack_from('<IIIIIIQ', 0)
    if sig != MINIDUMP_SIGNATURE:
        raise MalformedInputError(f"Not a minidump (signature {sig:#010x})")

    directory_end = stream_dir_rva + streams * DIRECTORY_ENTRY_SIZE
    if streams and (stream_dir_rva < HEADER_SIZE or directory_end > size):
        raise StreamDirectoryCorruptError(
            f"Stream directory [{stream_dir_rva:#x}, {directory_end:#x}) "
            f"does not fit in {size:#x} bytes"
        )

    return MinidumpHeader(
        signature=sig,
        version=ver,
        num_streams=streams,
        stream_directory_rva=stream_dir_rva,
        checksum=checksum,
        time_date_stamp=timestamp,
        flags=flags,
    )


@dataclass(frozen=True)
class MinidumpDirectory:
    """MINIDUMP_DIRECTORY entry"""
    index: int
    stream_type: int
    data_size: int
    rva: int

    @property
    def end(self) -> int:
        return self.rva + self.data_size


def read_directory(buffer: MappedBuffer, header: MinidumpHeader) -> List[MinidumpDirectory]:
    """Parse the MINIDUMP_DIRECTORY array without decoding any stream.

    Unused entries are skipped. Entry bounds are not checked here; a stream
    pointing outside the file only fails when that stream is requested.
    """
    directories = []
    for i in range(header.num_streams):
        offset = header.stream_directory_rva + i * DIRECTORY_ENTRY_SIZE
        stream_type, data_size, rva = buffer.unpack_from('<III', offset)
        if stream_type == MinidumpStreamType.UNUSED:
            continue
        directories.append(MinidumpDirectory(
            index=i,
            stream_type=stream_type,
            data_size=data_size,
            rva=rva,
        ))
    return directories


# ============================================================================
# CAPTURED MEMORY
# ============================================================================

@dataclass(frozen=True)
class MemoryRegion:
    """One captured range of the inspected process's address space.

    The bytes are not held here: ``file_offset`` locates them inside the
    reader's mapped buffer.
    """
    base_address: int
    length: int
    file_offset: int

    @property
    def end_address(self) -> int:
        return self.base_address + self.length

    def contains(self, address: int) -> bool:
        return self.base_address <= address < self.end_address


class MemoryRegionTable:
    """Captured regions sorted by base address."""

    def __init__(self, regions: Iterable[MemoryRegion]):
        self._regions = sorted(regions, key=lambda r: r.base_address)
        self._bases = [r.base_address for r in self._regions]

    def __len__(self) -> int:
        return len(self._regions)

    def __iter__(self) -> Iterator[MemoryRegion]:
        return iter(self._regions)

    def __repr__(self) -> str:
        return f"<MemoryRegionTable regions={len(self._regions)}>"

    def find(self, address: int) -> Optional[MemoryRegion]:
        """Region containing ``address``, or None.

        Only the candidate with the highest ``base_address <= address`` is
        checked. Well-formed dumps never record overlapping regions; in a
        malformed one, an address covered only by a lower-based region that
        the candidate overlaps resolves to None.
        """
        index = bisect.bisect_right(self._bases, address) - 1
        if index < 0:
            return None
        region = self._regions[index]
        if address < region.end_address:
            return region
        return None

    @property
    def total_size(self) -> int:
        return sum(r.length for r in self._regions)


def _segments(memory_list) -> List[Any]:
    """Segments of a MinidumpMemoryList / MinidumpMemory64List."""
    if memory_list is None:
        return []
    segments = getattr(memory_list, 'memory_segments', None)
    if segments is None:
        return []
    return list(segments)


def build_region_table(memory_lists: Iterable[Any], buffer_size: int) -> MemoryRegionTable:
    """Collect the regions of the decoded memory list streams.

    Zero-length segments and segments whose bytes run past the end of the
    file are left out.
    """
    regions = []
    for memory_list in memory_lists:
        for seg in _segments(memory_list):
            base = int(seg.start_virtual_address)
            length = int(seg.size)
            file_offset = int(seg.start_file_address)
            if length == 0:
                continue
            if file_offset + length > buffer_size:
                logger.warning(
                    "Dropping region %#x+%#x: data at file offset %#x runs past end of file (%#x)",
                    base, length, file_offset, buffer_size,
                )
                continue
            regions.append(MemoryRegion(base_address=base, length=length, file_offset=file_offset))

    table = MemoryRegionTable(regions)
    logger.debug("Built memory region table: %d regions, %d bytes", len(table), table.total_size)
    return table
