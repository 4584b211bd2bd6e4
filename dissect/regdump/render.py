from __future__ import annotations

import struct

from dissect.regdump.c_regdump import (
    DEVPROP_MASK,
    DEVPROP_TYPE_BOOLEAN,
    DEVPROP_TYPE_INT16,
    DEVPROP_TYPE_UINT16,
    FILETIME_MAX,
    FILETIME_MIN,
    REG_BINARY,
    REG_DWORD,
    REG_EXPAND_SZ,
    REG_LINK,
    REG_MULTI_SZ,
    REG_NONE,
    REG_QWORD,
    REG_SZ,
)
from dissect.regdump.text import escape_char, format_timestamp, is_printable
from dissect.regdump.valuetype import Scope

TEXT_NONE = 0
TEXT_ASCII = 8
TEXT_UTF16 = 16

STRING_TYPES = (REG_SZ, REG_MULTI_SZ, REG_EXPAND_SZ, REG_LINK)
BINARY_TYPES = (REG_BINARY, REG_NONE)


def detect_text(value_type: int, data: bytes) -> int:
    """Guess whether binary data is really text.

    Data counts as UTF-16 text when 3 out of 4 code units are printable, and as
    ASCII text when 7 out of 8 bytes are. The first two characters always have
    to be printable.
    """
    size = len(data)
    if value_type not in BINARY_TYPES or size < 8:
        return TEXT_NONE

    if data[1] == 0 and data[3] == 0:
        if not (is_printable(data[0]) and is_printable(data[2])):
            return TEXT_NONE

        units = struct.unpack(f"<{size // 2}H", data[: size & ~1])
        printable = 2 + sum(1 for unit in units[2:] if is_printable(unit))
        if printable * 2 * 8 >= size * 6:
            return TEXT_UTF16

    elif is_printable(data[0]) and is_printable(data[1]):
        printable = 2 + sum(1 for char in data[2:] if is_printable(char))
        if printable * 8 >= size * 7:
            return TEXT_ASCII

    return TEXT_NONE


def hex_bytes(data: bytes) -> str:
    return ",".join(f"{char:02X}" for char in data)


def render_utf16(data: bytes, value_type: int, all_string: bool, text: int) -> str:
    units = list(struct.unpack(f"<{len(data) // 2}H", data[: len(data) & ~1]))

    # Binary data that looks like text is shown completely
    if text != TEXT_UTF16:
        while units and units[-1] == 0:
            units.pop()

    out = []
    for idx, unit in enumerate(units):
        if is_printable(unit):
            out.append(chr(unit))
        elif unit == 0 and value_type == REG_MULTI_SZ and idx + 1 < len(units) and units[idx + 1] != 0:
            out.append("<>")
        elif unit == 0 and not all_string and text != TEXT_UTF16:
            out.append(" <...>")
            break
        else:
            out.append(escape_char(unit))

    return "".join(out)


def render_ascii(data: bytes) -> str:
    return "".join(chr(char) if is_printable(char) else escape_char(char) for char in data)


def render_value(value_type: int, raw_type: int, data: bytes, scope: Scope, all_string: bool = False) -> str:
    """Render value data as a single line of printable ASCII.

    Args:
        value_type: The effective type, see :func:`~dissect.regdump.valuetype.resolve_type`.
        raw_type: The type as stored in the value cell.
        data: The value data, its length is the size to render.
        scope: The special subtrees the value is located in.
        all_string: Don't stop strings at the first NUL character.
    """
    size = len(data)

    if value_type == REG_DWORD and size == 4:
        (unsigned,) = struct.unpack("<I", data)
        (signed,) = struct.unpack("<i", data)
        return f"0x{unsigned:X} ({signed})"

    if scope.properties and size == 1 and raw_type == DEVPROP_MASK | DEVPROP_TYPE_BOOLEAN:
        if data[0] == 0xFF:
            return "true"
        if data[0] == 0:
            return "false"
        return f"{data[0]:02X}"

    if scope.properties and size == 2 and raw_type in (DEVPROP_MASK | DEVPROP_TYPE_INT16, DEVPROP_MASK | DEVPROP_TYPE_UINT16):
        (unsigned,) = struct.unpack("<H", data)
        if raw_type & 0xFFFF == DEVPROP_TYPE_UINT16:
            return f"0x{unsigned:X} ({unsigned})"
        (signed,) = struct.unpack("<h", data)
        return f"0x{unsigned:X} ({signed})"

    if size == 8 and value_type in (REG_QWORD, *BINARY_TYPES):
        (unsigned,) = struct.unpack("<Q", data)
        (signed,) = struct.unpack("<q", data)

        # A 21st century FILETIME
        if FILETIME_MIN <= signed < FILETIME_MAX:
            ts = format_timestamp(signed)
            if value_type == REG_QWORD:
                return f"{ts} (0x{unsigned:X}; {signed})"
            return f"{ts} ({hex_bytes(data)})"

        if value_type == REG_QWORD:
            return f"0x{unsigned:X} ({signed})"

    text = detect_text(value_type, data)

    if value_type in STRING_TYPES or text == TEXT_UTF16:
        return render_utf16(data, value_type, all_string, text)

    if text == TEXT_ASCII:
        return render_ascii(data)

    return hex_bytes(data)
