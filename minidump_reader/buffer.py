"""Read-only memory mapping of a dump file.

The mapping is the single backing store for everything the reader hands out.
Slices are returned as ``bytes`` copies and no memoryview is exported, so
``close()`` can always unmap.
"""
import logging
import mmap
import os
import struct
from pathlib import Path
from typing import Optional, Tuple, Union

from .errors import DumpIOError, DumpNotFoundError

logger = logging.getLogger(__name__)


class MappedBuffer:
    """Owns an open file handle and a read-only mmap over the whole file."""

    def __init__(self, path: Path, file_handle, mapping: mmap.mmap):
        self.path = path
        self._file_handle = file_handle
        self._mmap = mapping

    @classmethod
    def open(cls, path: Union[str, os.PathLike]) -> "MappedBuffer":
        """Open ``path`` and map it read-only.

        Raises:
            DumpNotFoundError: the file cannot be opened
            DumpIOError: the file was opened but cannot be mapped
                (empty file, unsupported filesystem, ...)
        """
        path = Path(path)
        try:
            file_handle = open(path, 'rb')
        except OSError as e:
            raise DumpNotFoundError(f"Cannot open dump file {path}: {e.strerror or e}", str(path)) from e

        try:
            mapping = mmap.mmap(file_handle.fileno(), 0, access=mmap.ACCESS_READ)
        except (OSError, ValueError) as e:
            file_handle.close()
            raise DumpIOError(f"Cannot map dump file {path}: {e}", str(path)) from e

        logger.debug("Mapped %s (%d bytes)", path, len(mapping))
        return cls(path, file_handle, mapping)

    def __del__(self):
        """Clean up mmap and file handle."""
        self.close()

    def __enter__(self) -> "MappedBuffer":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __len__(self) -> int:
        self._check_open()
        return len(self._mmap)

    @property
    def closed(self) -> bool:
        return getattr(self, '_mmap', None) is None

    @property
    def mapping(self) -> mmap.mmap:
        """The read-only mmap, usable as a seekable file object."""
        self._check_open()
        return self._mmap

    def read(self, offset: int, size: int) -> bytes:
        """Copy ``size`` bytes starting at file ``offset``."""
        self._check_open()
        if offset < 0 or size < 0 or offset + size > len(self._mmap):
            raise ValueError(
                f"Window [{offset:#x}, {offset + size:#x}) outside buffer of {len(self._mmap):#x} bytes"
            )
        return self._mmap[offset:offset + size]

    def unpack_from(self, fmt: str, offset: int = 0) -> Tuple:
        """``struct.unpack_from`` directly over the mapping."""
        self._check_open()
        return struct.unpack_from(fmt, self._mmap, offset)

    def close(self) -> None:
        """Unmap and release the file handle. Safe to call more than once."""
        mapping: Optional[mmap.mmap] = getattr(self, '_mmap', None)
        if mapping is not None:
            self._mmap = None
            mapping.close()
            logger.debug("Unmapped %s", self.path)
        file_handle = getattr(self, '_file_handle', None)
        if file_handle is not None:
            self._file_handle = None
            file_handle.close()

    def _check_open(self) -> None:
        if self.closed:
            raise ValueError(f"Buffer for {self.path} is closed")
