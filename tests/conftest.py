"""Shared fixtures: synthetic minidump files written to tmp_path."""
import os
import struct
import sys

import pytest

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

THREAD_LIST = 3
MEMORY_LIST = 5
SYSTEM_INFO = 7
MEMORY_64_LIST = 9

PROCESSOR_ARCHITECTURE_AMD64 = 9
VER_NT_WORKSTATION = 1
VER_PLATFORM_WIN32_NT = 2
AMD64_CONTEXT_SIZE = 0x4D0

SCENARIO_BYTES = bytes(range(256))
SECOND_REGION_BYTES = bytes((0xA0 + i) % 256 for i in range(0x100))
THIRD_REGION_BYTES = b"captured-string\x00"


def build_minidump(regions=(), thread_ids=None, with_sysinfo=True, with_memory=True,
                   extra_descriptors=(), regions64=()):
    """Assemble a minimal little-endian minidump.

    regions: (base_address, data) pairs stored in a MemoryList stream
    thread_ids: thread ids for a ThreadList stream, None to leave it out
    extra_descriptors: raw (base_address, size, rva) memory descriptors
    regions64: (base_address, data) pairs stored in a Memory64List stream,
        their data laid out back to back from BaseRva
    """
    num_streams = (int(with_memory) + int(bool(regions64))
                   + int(thread_ids is not None) + int(with_sysinfo))
    out = bytearray(32 + num_streams * 12)
    directory = []

    def append(blob):
        while len(out) % 8:
            out.append(0)
        rva = len(out)
        out.extend(blob)
        return rva

    if with_memory:
        data_rvas = [append(data) for _, data in regions]
        descriptors = [(base, len(data), rva) for (base, data), rva in zip(regions, data_rvas)]
        descriptors.extend(extra_descriptors)
        body = struct.pack('<I', len(descriptors))
        body += b''.join(struct.pack('<QII', base, size, rva) for base, size, rva in descriptors)
        directory.append((MEMORY_LIST, len(body), append(body)))

    if regions64:
        base_rva = append(b''.join(data for _, data in regions64))
        body = struct.pack('<QQ', len(regions64), base_rva)
        body += b''.join(struct.pack('<QQ', base, len(data)) for base, data in regions64)
        directory.append((MEMORY_64_LIST, len(body), append(body)))

    if thread_ids is not None:
        context_rva = append(bytes(AMD64_CONTEXT_SIZE))
        body = struct.pack('<I', len(thread_ids))
        for tid in thread_ids:
            body += struct.pack(
                '<IIIIQQIIII',
                tid, 0, 0x20, 0,           # ThreadId, SuspendCount, PriorityClass, Priority
                0x7FFDE000 + tid * 0x2000,  # Teb
                0x00100000, 0, 0,           # Stack: StartOfMemoryRange, DataSize, Rva
                AMD64_CONTEXT_SIZE, context_rva,
            )
        directory.append((THREAD_LIST, len(body), append(body)))

    if with_sysinfo:
        csd = "Service Pack 1".encode('utf-16-le')
        csd_rva = append(struct.pack('<I', len(csd)) + csd)
        body = struct.pack(
            '<HHHBBIIIIIHH',
            PROCESSOR_ARCHITECTURE_AMD64, 6, 0x9E0A,
            8, VER_NT_WORKSTATION,
            10, 0, 19045,
            VER_PLATFORM_WIN32_NT, csd_rva,
            0x0100, 0,
        ) + bytes(24)
        directory.append((SYSTEM_INFO, len(body), append(body)))

    struct.pack_into('<IHHIIIIQ', out, 0, 0x504D444D, 0xA793, 0, len(directory), 32, 0, 0x63F1D400, 0)
    for i, (stream_type, size, rva) in enumerate(directory):
        struct.pack_into('<III', out, 32 + i * 12, stream_type, size, rva)
    return bytes(out)


def corrupt_stream(data, stream_type, rva=None, size=None):
    """Point the directory entry of ``stream_type`` outside the file."""
    out = bytearray(data)
    num_streams, directory_rva = struct.unpack_from('<II', out, 8)
    for i in range(num_streams):
        offset = directory_rva + i * 12
        entry_type, entry_size, entry_rva = struct.unpack_from('<III', out, offset)
        if entry_type == stream_type:
            if rva is None and size is None:
                rva = 0x7FFFFF00
            struct.pack_into('<III', out, offset, entry_type,
                             entry_size if size is None else size,
                             entry_rva if rva is None else rva)
            return bytes(out)
    raise KeyError(stream_type)


@pytest.fixture
def write_dump(tmp_path):
    """Write dump bytes to a fresh file and return its path."""
    counter = iter(range(1000))

    def _write(data, name=None):
        path = tmp_path / (name or f"dump{next(counter)}.dmp")
        path.write_bytes(data)
        return path

    return _write


@pytest.fixture
def scenario_dump(write_dump):
    """Regions 0x1000+0x100 (0x00..0xFF), adjacent 0x1100+0x100, and 0x3000."""
    return write_dump(build_minidump(
        regions=[
            (0x3000, THIRD_REGION_BYTES),
            (0x1000, SCENARIO_BYTES),
            (0x1100, SECOND_REGION_BYTES),
        ],
        thread_ids=[0x10, 0x20],
    ))
