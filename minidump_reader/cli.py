#!/usr/bin/env python3
"""
Minidump Reader - command line entry point

Prints captured memory, the thread count and the OS/CPU summary of a dump.
"""
import argparse
import logging
import sys
from typing import Iterator, List, Optional

from .config import ReaderSettings, load_settings
from .errors import MinidumpError
from .reader import MinidumpReader

logger = logging.getLogger(__name__)


def hexdump(data: bytes, address: int = 0, width: int = 16) -> Iterator[str]:
    """Yield classic hex dump lines, collapsing repeated rows into ``*``."""
    last_row = None
    collapsed = False
    for i in range(0, len(data), width):
        row = data[i:i + width]
        if row == last_row:
            if not collapsed:
                yield "*"
                collapsed = True
            continue
        collapsed = False
        last_row = row
        yield "{:016x}  {:<{hexw}}  |{}|".format(
            address + i,
            " ".join("{:02x}".format(b) for b in row),
            "".join(chr(b) if 32 <= b < 127 else "." for b in row),
            hexw=width * 3 - 1,
        )


def _enum_name(value) -> str:
    name = getattr(value, 'name', None)
    return name if name else str(value)


def describe_system_info(sysinfo) -> str:
    """One-line OS / CPU summary of a decoded SystemInfo stream."""
    os_text = "{} {}.{}.{}".format(
        _enum_name(getattr(sysinfo, 'PlatformId', '?')),
        getattr(sysinfo, 'MajorVersion', '?'),
        getattr(sysinfo, 'MinorVersion', '?'),
        getattr(sysinfo, 'BuildNumber', '?'),
    )
    csd = getattr(sysinfo, 'CSDVersion', None)
    if csd:
        os_text += f" ({csd})"
    cpu_text = "{} x{}".format(
        _enum_name(getattr(sysinfo, 'ProcessorArchitecture', '?')),
        getattr(sysinfo, 'NumberOfProcessors', '?'),
    )
    return f"OS: {os_text}, CPU: {cpu_text}"


def _parse_int(text: str) -> int:
    try:
        value = int(text, 0)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {text!r}")
    if value < 0:
        raise argparse.ArgumentTypeError(f"must be non-negative: {text!r}")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='minidump-reader',
        description='Read captured memory and streams from a minidump file',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Thread count and OS/CPU summary
  %(prog)s crash.dmp

  # Dump 64 bytes of captured memory
  %(prog)s crash.dmp --address 0x7ff95f9b1000 --size 64

  # List captured memory regions
  %(prog)s crash.dmp --regions
        """
    )
    parser.add_argument('dump_file', help='Path to minidump file (.dmp)')
    parser.add_argument('--address', '-a', type=_parse_int, help='Virtual address to read (hex with 0x prefix)')
    parser.add_argument('--size', '-n', type=_parse_int, help='Number of bytes to read (default from MINIDUMP_READER_READ_SIZE)')
    parser.add_argument('--regions', action='store_true', help='List captured memory regions')
    return parser


def _print_memory(reader: MinidumpReader, address: int, size: int, settings: ReaderSettings) -> bool:
    try:
        data = reader.read_virtual_memory(address, size)
    except MinidumpError as e:
        print(f"Error reading virtual memory: {e}", file=sys.stderr)
        return False
    print(f"Read {len(data)} bytes from virtual address 0x{address:x}:")
    for line in hexdump(data, address, settings.hexdump_width):
        print(line)
    return True


def _print_regions(reader: MinidumpReader) -> bool:
    try:
        regions = reader.get_memory_regions()
    except MinidumpError as e:
        print(f"Error accessing memory regions: {e}", file=sys.stderr)
        return False
    print(f"Memory regions: {len(regions)} ({regions.total_size:,} bytes)")
    for region in regions:
        print(f"  0x{region.base_address:016x} - 0x{region.end_address:016x}  {region.length:#x}")
    return True


def _print_threads(reader: MinidumpReader) -> bool:
    try:
        thread_list = reader.get_thread_list()
    except MinidumpError as e:
        print(f"Error accessing threads: {e}", file=sys.stderr)
        return False
    print(f"Thread count: {len(thread_list.threads)}")
    return True


def _print_system_info(reader: MinidumpReader) -> bool:
    try:
        sysinfo = reader.get_system_info()
    except MinidumpError as e:
        print(f"Error accessing system info: {e}", file=sys.stderr)
        return False
    print(f"System Info -> {describe_system_info(sysinfo)}")
    return True


def main(argv: Optional[List[str]] = None) -> int:
    settings = load_settings()
    logging.basicConfig(level=settings.log_level, format='%(levelname)s %(name)s: %(message)s')

    args = build_parser().parse_args(argv)

    try:
        reader = MinidumpReader(args.dump_file)
    except MinidumpError as e:
        print(f"Error opening {args.dump_file}: {e}", file=sys.stderr)
        return 1

    with reader:
        ok = True
        if args.address is not None:
            size = args.size if args.size is not None else settings.read_size
            ok &= _print_memory(reader, args.address, size, settings)
        if args.regions:
            ok &= _print_regions(reader)
        ok &= _print_threads(reader)
        ok &= _print_system_info(reader)

    return 0 if ok else 1


if __name__ == '__main__':
    sys.exit(main())
