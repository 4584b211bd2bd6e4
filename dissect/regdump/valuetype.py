from __future__ import annotations

from typing import NamedTuple

from dissect.regdump.c_regdump import (
    DEVPROP_MASK,
    DEVPROP_TYPE_FILETIME,
    DEVPROP_TYPE_INT32,
    DEVPROP_TYPE_INT64,
    DEVPROP_TYPE_STRING,
    DEVPROP_TYPE_STRING_INDIRECT,
    DEVPROP_TYPE_STRING_LIST,
    DEVPROP_TYPE_UINT32,
    DEVPROP_TYPE_UINT64,
    REG_DWORD,
    REG_MULTI_SZ,
    REG_QWORD,
    REG_SZ,
)

DEVPROP_TYPE_MAP = {
    DEVPROP_TYPE_INT32: REG_DWORD,
    DEVPROP_TYPE_UINT32: REG_DWORD,
    DEVPROP_TYPE_INT64: REG_QWORD,
    DEVPROP_TYPE_UINT64: REG_QWORD,
    DEVPROP_TYPE_FILETIME: REG_QWORD,
    DEVPROP_TYPE_STRING: REG_SZ,
    DEVPROP_TYPE_STRING_INDIRECT: REG_SZ,
    DEVPROP_TYPE_STRING_LIST: REG_MULTI_SZ,
}


class Scope(NamedTuple):
    """The special subtrees a key is located in."""

    properties: bool = False
    driver_packages: bool = False


def is_devprop(raw_type: int) -> bool:
    return raw_type & DEVPROP_MASK == DEVPROP_MASK


def resolve_type(raw_type: int, scope: Scope) -> int:
    """Return the standard registry type a stored type code stands for.

    Below a ``Properties`` key, types with the high word set are device property
    types and are translated to the closest ``REG_*`` type. Below a
    ``DriverPackages`` key the high word holds flags and is masked off.
    """
    if scope.properties and is_devprop(raw_type):
        return DEVPROP_TYPE_MAP.get(raw_type & 0xFFFF, raw_type)

    if scope.driver_packages:
        return raw_type & 0xFFFF

    return raw_type
