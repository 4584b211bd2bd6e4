from __future__ import annotations

import pytest

from dissect.regdump.c_regdump import (
    REG_BINARY,
    REG_DWORD,
    REG_MULTI_SZ,
    REG_QWORD,
    REG_SZ,
)
from dissect.regdump.valuetype import Scope, resolve_type

PROPERTIES = Scope(properties=True)
DRIVER_PACKAGES = Scope(driver_packages=True)
BOTH = Scope(properties=True, driver_packages=True)


@pytest.mark.parametrize(
    ("raw_type", "expected"),
    [
        (0xFFFF0004, 0xFFFF0004),  # INT16 has no standard counterpart
        (0xFFFF0005, 0xFFFF0005),
        (0xFFFF0006, REG_DWORD),
        (0xFFFF0007, REG_DWORD),
        (0xFFFF0008, REG_QWORD),
        (0xFFFF0009, REG_QWORD),
        (0xFFFF0010, REG_QWORD),
        (0xFFFF0011, 0xFFFF0011),
        (0xFFFF0012, REG_SZ),
        (0xFFFF0019, REG_SZ),
        (0xFFFF2012, REG_MULTI_SZ),
        (0xFFFF1003, 0xFFFF1003),
        (REG_BINARY, REG_BINARY),
        (0x00010001, 0x00010001),
    ],
)
def test_resolve_devprop(raw_type: int, expected: int) -> None:
    assert resolve_type(raw_type, PROPERTIES) == expected


def test_resolve_outside_scope() -> None:
    assert resolve_type(0xFFFF0007, Scope()) == 0xFFFF0007
    assert resolve_type(0x00010001, Scope()) == 0x00010001


def test_resolve_driver_packages() -> None:
    assert resolve_type(0x00010001, DRIVER_PACKAGES) == REG_SZ
    assert resolve_type(0xFFFF0007, DRIVER_PACKAGES) == REG_MULTI_SZ
    assert resolve_type(REG_DWORD, DRIVER_PACKAGES) == REG_DWORD


def test_resolve_both_scopes() -> None:
    # Device property types win, other types still get their high word masked
    assert resolve_type(0xFFFF0007, BOTH) == REG_DWORD
    assert resolve_type(0xFFFF0011, BOTH) == 0xFFFF0011
    assert resolve_type(0x00010001, BOTH) == REG_SZ
