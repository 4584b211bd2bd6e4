from __future__ import annotations

import logging
import os
import struct

from dissect.util.ts import from_unix

log = logging.getLogger(__name__)
log.setLevel(os.getenv("DISSECT_LOG_REGDUMP", "CRITICAL"))

# Seconds between 1601-01-01 and 1970-01-01
EPOCH_DELTA = 11644473600
TICKS_PER_SECOND = 10_000_000


def is_printable(char: int) -> bool:
    return 32 <= char < 127


def escape_char(char: int) -> str:
    """Render a byte or UTF-16 code unit as ``<XX>`` or ``<XXXX>``."""
    if char < 0x100:
        return f"<{char:02X}>"
    return f"<{char:04X}>"


def decode_name(blob: bytes, compressed: bool) -> str:
    """Decode a key or value name into printable ASCII.

    Compressed names store one byte per character, other names are UTF-16-LE.
    Anything outside the printable ASCII range is written as its hexadecimal
    code between angle brackets.
    """
    if compressed:
        chars = blob
    else:
        chars = struct.unpack(f"<{len(blob) // 2}H", blob[: len(blob) & ~1])

    return "".join(chr(char) if is_printable(char) else escape_char(char) for char in chars)


def format_timestamp(ticks: int, full: bool = False, brackets: bool = False) -> str:
    """Format a FILETIME as local ``year-month-day hour:minute:second``.

    Args:
        ticks: The number of 100-nanosecond intervals since 1601-01-01 UTC.
        full: Append the 7 digit sub-second remainder.
        brackets: Wrap the result in ``[...]`` followed by a space.
    """
    try:
        ts = from_unix(ticks // TICKS_PER_SECOND - EPOCH_DELTA).astimezone()
        text = (
            f"{ts.year}-{ts.month:02d}-{ts.day:02d} {ts.hour:02d}:{ts.minute:02d}:{ts.second:02d}"
        )
    except (OverflowError, OSError, ValueError):
        log.debug("Timestamp 0x%x can't be represented as a local time", ticks)
        text = f"0x{ticks:X}"

    if full:
        text += f".{ticks % TICKS_PER_SECOND:07d}"

    if brackets:
        text = f"[{text}] "

    return text
