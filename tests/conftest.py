from __future__ import annotations

import struct
import time
from io import BytesIO
from typing import TYPE_CHECKING

import pytest

from dissect.regdump import DumpOptions, RegistryHive, dump

if TYPE_CHECKING:
    from collections.abc import Iterator

NO_CELL = 0xFFFFFFFF
HBIN_HEADER_SIZE = 0x20


def encode_name(name: str | bytes, compressed: bool) -> bytes:
    if isinstance(name, bytes):
        return name
    return name.encode("latin1") if compressed else name.encode("utf-16-le")


class HiveBuilder:
    """Lay out a minimal hive with a single hbin, one cell at a time.

    Cells are written in the order they are created, so children have to be
    created before the keys referencing them.
    """

    def __init__(self, major: int = 1, minor: int = 5):
        self.major = major
        self.minor = minor
        self.cells = bytearray()

    @property
    def offset(self) -> int:
        """The offset of the next cell."""
        return HBIN_HEADER_SIZE + len(self.cells)

    def alloc(self, payload: bytes) -> int:
        offset = self.offset
        size = (len(payload) + 4 + 7) & ~7
        self.cells += struct.pack("<i", -size) + payload.ljust(size - 4, b"\x00")
        return offset

    def value_cell(self, name: str | bytes, value_type: int, raw_size: int, data_field: int, compressed: bool = True) -> int:
        name_blob = encode_name(name, compressed)
        return self.alloc(
            b"vk"
            + struct.pack("<HIIIHH", len(name_blob), raw_size, data_field, value_type, int(compressed), 0)
            + name_blob
        )

    def value(self, name: str | bytes, value_type: int, data: bytes = b"", compressed: bool = True) -> int:
        if len(data) <= 4:
            (data_field,) = struct.unpack("<I", data.ljust(4, b"\x00"))
            return self.value_cell(name, value_type, len(data) | 0x80000000, data_field, compressed)

        return self.value_cell(name, value_type, len(data), self.alloc(data), compressed)

    def big_value(self, name: str | bytes, value_type: int, data: bytes, segment_size: int = 16344) -> int:
        segments = [self.alloc(data[idx : idx + segment_size]) for idx in range(0, len(data), segment_size)]
        segment_list = self.alloc(struct.pack(f"<{len(segments)}I", *segments))
        big_data = self.alloc(b"db" + struct.pack("<HI", len(segments), segment_list))
        return self.value_cell(name, value_type, len(data), big_data)

    def subkey_list(self, subkeys: list[int], list_type: bytes = b"lh") -> int:
        if list_type in (b"li", b"ri"):
            entries = struct.pack(f"<{len(subkeys)}I", *subkeys)
        else:
            entries = b"".join(struct.pack("<II", subkey, 0) for subkey in subkeys)
        return self.alloc(list_type + struct.pack("<H", len(subkeys)) + entries)

    def key(
        self,
        name: str | bytes,
        values: list[int] = (),
        subkeys: list[int] = (),
        timestamp: int = 0,
        compressed: bool = True,
        list_type: bytes = b"lh",
        subkey_list: int | None = None,
    ) -> int:
        name_blob = encode_name(name, compressed)

        if subkey_list is None:
            subkey_list = self.subkey_list(list(subkeys), list_type) if subkeys else NO_CELL
        value_list = self.alloc(struct.pack(f"<{len(values)}I", *values)) if values else NO_CELL

        return self.alloc(
            b"nk"
            + struct.pack("<HQII", 0x20 if compressed else 0, timestamp, 0, 0)
            + struct.pack("<II", len(subkeys), 0)
            + struct.pack("<II", subkey_list, NO_CELL)
            + struct.pack("<II", len(values), value_list)
            + struct.pack("<7I", NO_CELL, NO_CELL, 0, 0, 0, 0, 0)
            + struct.pack("<HH", len(name_blob), 0)
            + name_blob
        )

    def build(self, root: int) -> BytesIO:
        hbin_size = (HBIN_HEADER_SIZE + len(self.cells) + 0xFFF) & ~0xFFF
        hbin = b"hbin" + struct.pack("<IIIIQI", 0, hbin_size, 0, 0, 0, 0) + self.cells
        hbin = hbin.ljust(hbin_size, b"\x00")

        header = bytearray(0x1000)
        struct.pack_into(
            "<4sIIQIIIIII", header, 0, b"regf", 1, 1, 0, self.major, self.minor, 0, 1, root, hbin_size
        )
        struct.pack_into("<I", header, 44, 1)

        checksum = 0
        for (word,) in struct.iter_unpack("<I", header[:508]):
            checksum ^= word
        struct.pack_into("<I", header, 508, checksum)

        return BytesIO(bytes(header) + hbin)

    def dump(self, root: int, **kwargs) -> list[str]:
        return list(dump(RegistryHive(self.build(root)), DumpOptions(**kwargs)))


@pytest.fixture
def builder() -> HiveBuilder:
    return HiveBuilder()


@pytest.fixture(autouse=True)
def utc(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    monkeypatch.setenv("TZ", "UTC")
    if hasattr(time, "tzset"):
        time.tzset()
    yield
    monkeypatch.undo()
    if hasattr(time, "tzset"):
        time.tzset()
