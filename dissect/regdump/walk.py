from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import TYPE_CHECKING

from dissect.regdump.exceptions import MalformedHiveError
from dissect.regdump.render import render_value
from dissect.regdump.text import format_timestamp
from dissect.regdump.valuetype import Scope, resolve_type

if TYPE_CHECKING:
    from collections.abc import Iterator

    from dissect.regdump.hive import KeyNode, KeyValue, RegistryHive

log = logging.getLogger(__name__)
log.setLevel(os.getenv("DISSECT_LOG_REGDUMP", "CRITICAL"))

# Windows doesn't allow keys to be nested any deeper
MAX_DEPTH = 512

PROPERTIES = b"Properties"
DRIVER_PACKAGES = b"DriverPackages"


@dataclass(frozen=True)
class DumpOptions:
    """Options controlling which lines are written and how they look.

    Attributes:
        hex_type: Write type and size in hexadecimal, in front of the path.
        only_values: Don't write lines for empty keys.
        only_keys: Write every key with its timestamp, but no values.
        all_string: Don't stop strings at the first NUL character.
        time_sec: Prefix lines with the key timestamp.
        time_full: Prefix lines with the key timestamp, including sub-seconds.
    """

    hex_type: bool = False
    only_values: bool = False
    only_keys: bool = False
    all_string: bool = False
    time_sec: bool = False
    time_full: bool = False


def dump(hive: RegistryHive, options: DumpOptions | None = None) -> Iterator[str]:
    """Yield the lines describing all keys and values of a hive."""
    options = options or DumpOptions()
    yield from _walk(hive.root(), "", Scope(), options, set(), 0)


def enter_scope(key: KeyNode, scope: Scope) -> Scope:
    """Return the scope of a key's values and subkeys."""
    if not scope.properties and key.name_blob == PROPERTIES:
        log.debug("Entering device property scope at 0x%x", key.offset)
        scope = scope._replace(properties=True)

    if not scope.driver_packages and key.name_blob == DRIVER_PACKAGES:
        log.debug("Entering driver package scope at 0x%x", key.offset)
        scope = scope._replace(driver_packages=True)

    return scope


def format_value(key: KeyNode, value: KeyValue, path: str, scope: Scope, options: DumpOptions) -> str:
    path = f"{path}/{value.name or '@'}"
    raw_type = value.type
    size = value.size

    text = render_value(resolve_type(raw_type, scope), raw_type, value.data, scope, options.all_string)

    if options.hex_type:
        line = f"[{raw_type:08X}:{size:08X}] {path} = {text}"
    else:
        signed_type = raw_type - (1 << 32) if raw_type & 0x80000000 else raw_type
        line = f"{path} [{signed_type}:{size}] = {text}"

    return _timestamp(key, options) + line


def _timestamp(key: KeyNode, options: DumpOptions) -> str:
    if options.time_sec or options.time_full:
        return format_timestamp(key.timestamp, options.time_full, brackets=True)
    return ""


def _walk(key: KeyNode, path: str, scope: Scope, options: DumpOptions, seen: set[int], depth: int) -> Iterator[str]:
    if depth >= MAX_DEPTH:
        raise MalformedHiveError(f"Keys are nested deeper than {MAX_DEPTH} levels at {path}")

    if key.offset in seen:
        raise MalformedHiveError(f"Key at 0x{key.offset:x} is referenced more than once, below {path}")
    seen.add(key.offset)

    path = f"{path}/{key.name}"

    if options.only_keys:
        yield format_timestamp(key.timestamp, options.time_full, brackets=True) + path
        empty = False
    else:
        scope = enter_scope(key, scope)
        empty = key.value_count == 0

        for value in key.values():
            yield format_value(key, value, path, scope, options)

    if (subkey_list := key.subkey_list) is not None:
        if subkey_list.count:
            empty = False

        for subkey in subkey_list:
            yield from _walk(subkey, path, scope, options, seen, depth + 1)

    if empty and not options.only_values:
        padding = " " * 20 if options.hex_type else ""
        yield _timestamp(key, options) + padding + path
