from __future__ import annotations

import logging
import os
import struct
from functools import cached_property, lru_cache
from typing import TYPE_CHECKING, BinaryIO

from dissect.regdump.c_regdump import (
    BIG_DATA_SEGMENT_SIZE,
    CELL_BASE,
    DATA_INLINE,
    KEY,
    NO_CELL,
    VALUE,
    c_regdump,
)
from dissect.regdump.exceptions import InvalidHiveError, MalformedHiveError
from dissect.regdump.text import decode_name

if TYPE_CHECKING:
    from collections.abc import Iterator

log = logging.getLogger(__name__)
log.setLevel(os.getenv("DISSECT_LOG_REGDUMP", "CRITICAL"))


# TODO: Add `: TypeAlias` when we drop Python 3.9
CellType = "IndexLeaf | FastLeaf | HashLeaf | IndexRoot | KeyNode | KeyValue | BigData"

STABLE = 0


class RegistryHive:
    """A registry hive, loaded completely into memory.

    Cell offsets are relative to the start of the first hbin, which directly
    follows the 4096 byte base block.
    """

    def __init__(self, fh: BinaryIO):
        fh.seek(0)
        self.data = fh.read()

        if self.data[:4] != b"regf":
            raise InvalidHiveError("invalid file ('regf' signature not found)")

        if self.data[CELL_BASE : CELL_BASE + 4] != b"hbin":
            raise InvalidHiveError("invalid file ('hbin' signature not found)")

        header_data = self.data[: len(c_regdump._HBASE_BLOCK)]
        self.header = c_regdump._HBASE_BLOCK(header_data)
        self.major = self.header.Major
        self.minor = self.header.Minor
        self.filename = self.header.FileName.rstrip("\x00")

        self.dirty = xor32_crc(header_data[:508]) != self.header.CheckSum
        if self.dirty:
            log.warning(
                "Checksum failed, the %r hive is dirty, recovery needed, "
                "may not be able to read keys and values properly",
                self.filename,
            )
        else:
            log.debug("Hive %r checksum OK", self.filename)

        self.in_transaction = self.header.Sequence1 != self.header.Sequence2
        if self.in_transaction:
            log.warning(
                "The hive %r is undergoing a transaction, may not be able to read keys and values properly",
                self.filename,
            )
        else:
            log.debug("Hive %r is not undergoing any transactions", self.filename)

        self.cell = lru_cache(4096)(self.cell)

    @property
    def supports_big_data(self) -> bool:
        return self.major > 1 or self.minor > 3

    def root(self) -> KeyNode:
        root = self.cell(self.header.RootCell)
        if not isinstance(root, KeyNode):
            raise MalformedHiveError(f"Root cell 0x{self.header.RootCell:x} is not a key, got {root!r}")
        return root

    def read(self, offset: int, size: int) -> bytes:
        """Read raw bytes at a cell offset, regardless of cell boundaries."""
        start = CELL_BASE + offset
        if offset < 0 or size < 0 or start + size > len(self.data):
            raise MalformedHiveError(f"Reading 0x{size:x} bytes at offset 0x{offset:x} is outside of the hive")
        return self.data[start : start + size]

    def cell_data(self, offset: int) -> bytes:
        (size,) = struct.unpack("<i", self.read(offset, 4))
        size = abs(size)

        if size < 4:
            raise MalformedHiveError(f"Invalid cell size 0x{size:x} at offset 0x{offset:x}")

        return self.read(offset + 4, size - 4)

    def cell(self, offset: int) -> CellType:
        return self.parse_cell_data(offset, self.cell_data(offset))

    def parse_cell_data(self, offset: int, data: bytes) -> CellType:
        sig = data[:2]

        if cls := _CELL_CLASSES.get(sig):
            return cls(self, offset, data)

        raise MalformedHiveError(f"Unknown cell signature {sig!r} at offset 0x{offset:x}")


class Cell:
    __signature__ = b""
    __struct__ = None

    def __init__(self, hive: RegistryHive, offset: int, data: bytes):
        self.hive = hive
        self.offset = offset

        if data[:2] != self.__signature__:
            raise MalformedHiveError(
                f"Invalid {self.__class__.__name__} signature {data[:2]!r} at offset 0x{offset:x}, "
                f"expected {self.__signature__!r}"
            )

        if len(data) < self.min_size(data):
            raise MalformedHiveError(f"{self.__class__.__name__} at offset 0x{offset:x} is truncated")

        self.cell = self.__struct__(data)

    def min_size(self, data: bytes) -> int:
        return len(self.__struct__)

    def _name_blob(self, data: bytes, name_length: int) -> bytes:
        blob = data[len(self.__struct__) :][:name_length]
        if len(blob) != name_length:
            raise MalformedHiveError(f"Name of {self.__class__.__name__} at offset 0x{self.offset:x} is truncated")
        return blob


class KeyNode(Cell):
    __signature__ = b"nk"
    __struct__ = c_regdump._CM_KEY_NODE

    def __init__(self, hive: RegistryHive, offset: int, data: bytes):
        super().__init__(hive, offset, data)

        self.name_blob = self._name_blob(data, self.cell.NameLength)
        self.compressed = KEY.COMP_NAME in self.cell.Flags
        self.name = decode_name(self.name_blob, self.compressed)

    def __repr__(self) -> str:
        return f"<KeyNode {self.name}>"

    @property
    def timestamp(self) -> int:
        """The last write time as a raw FILETIME."""
        return self.cell.LastWriteTime

    @property
    def value_count(self) -> int:
        return self.cell.ValueList.Count

    @cached_property
    def subkey_list(self) -> IndexLeaf | FastLeaf | HashLeaf | IndexRoot | None:
        if (list_offset := self.cell.SubKeyLists[STABLE]) == NO_CELL:
            return None

        subkey_list = self.hive.cell(list_offset)
        if not isinstance(subkey_list, KeyIndex):
            raise MalformedHiveError(f"KeyNode {self.name} has no subkey list at 0x{list_offset:x}, got {subkey_list!r}")

        if isinstance(subkey_list, LeafIndex) and (num_sk := self.cell.SubKeyCounts[STABLE]) != subkey_list.count:
            log.debug(
                "KeyNode %s has %d subkeys, while the %s has %d elements",
                self.name,
                num_sk,
                subkey_list.__class__.__name__,
                subkey_list.count,
            )

        return subkey_list

    def subkeys(self) -> Iterator[KeyNode]:
        if self.subkey_list:
            yield from self.subkey_list

    def values(self) -> Iterator[KeyValue]:
        if num_values := self.value_count:
            data = self.hive.cell_data(self.cell.ValueList.List)

            # Possible slack values
            if len(data) // 4 < num_values:
                log.debug(
                    "Value list of key %r is %d bytes short, reading %d values instead of %d",
                    self.name,
                    num_values * 4 - len(data),
                    len(data) // 4,
                    num_values,
                )
                num_values = len(data) // 4

            for entry in c_regdump.uint32[num_values](data[: num_values * 4]):
                value = self.hive.cell(entry)
                if not isinstance(value, KeyValue):
                    raise MalformedHiveError(f"KeyNode {self.name} lists {value!r} as a value")
                yield value


class KeyValue(Cell):
    __signature__ = b"vk"
    __struct__ = c_regdump._CM_KEY_VALUE

    def __init__(self, hive: RegistryHive, offset: int, data: bytes):
        super().__init__(hive, offset, data)

        self.name_blob = self._name_blob(data, self.cell.NameLength)
        self.compressed = VALUE.COMP_NAME in self.cell.Flags
        self.name = decode_name(self.name_blob, self.compressed)

    def __repr__(self) -> str:
        return f"<KeyValue {self.name}>"

    @property
    def type(self) -> int:
        return self.cell.Type

    @property
    def size(self) -> int:
        return self.cell.DataLength & ~DATA_INLINE

    @property
    def is_inline(self) -> bool:
        # Small values are stored in the data offset field itself
        return bool(self.cell.DataLength & DATA_INLINE)

    @property
    def is_big_data(self) -> bool:
        return (
            not self.is_inline
            and self.size > BIG_DATA_SEGMENT_SIZE
            and self.hive.supports_big_data
            and self.hive.read(self.cell.Data + 4, 2) == b"db"
        )

    @property
    def data(self) -> bytes:
        """The value data, reassembled from its segments if needed.

        Big data is copied into a new buffer on every access, so the caller
        decides how long it lives.
        """
        if not self.size:
            return b""

        if self.is_inline:
            return struct.pack("<I", self.cell.Data)[: self.size]

        if self.is_big_data:
            return self.hive.cell(self.cell.Data).read(self.size)

        return self.hive.read(self.cell.Data + 4, self.size)


class KeyIndex(Cell):
    __entry_size__ = 4

    def __len__(self) -> int:
        return self.count

    def __iter__(self) -> Iterator[KeyNode]:
        raise NotImplementedError

    @cached_property
    def count(self) -> int:
        return self.cell.Count

    def min_size(self, data: bytes) -> int:
        if len(data) < 4:
            return 4
        (count,) = struct.unpack("<H", data[2:4])
        return 4 + count * self.__entry_size__

    def _key(self, offset: int) -> KeyNode:
        key = self.hive.cell(offset)
        if not isinstance(key, KeyNode):
            raise MalformedHiveError(f"{self.__class__.__name__} at 0x{self.offset:x} lists {key!r} as a subkey")
        return key


class LeafIndex(KeyIndex):
    pass


class IndexLeaf(LeafIndex):
    __signature__ = b"li"
    __struct__ = c_regdump._CM_KEY_INDEX

    def __iter__(self) -> Iterator[KeyNode]:
        for entry in self.cell.List:
            yield self._key(entry)


class FastLeaf(LeafIndex):
    __signature__ = b"lf"
    __struct__ = c_regdump._CM_KEY_FAST_INDEX
    __entry_size__ = 8

    def __iter__(self) -> Iterator[KeyNode]:
        # The name hints are of no use when walking
        for entry in self.cell.List:
            yield self._key(entry.Cell)


class HashLeaf(LeafIndex):
    __signature__ = b"lh"
    __struct__ = c_regdump._CM_KEY_HASH_INDEX
    __entry_size__ = 8

    def __iter__(self) -> Iterator[KeyNode]:
        for entry in self.cell.List:
            yield self._key(entry.Cell)


class IndexRoot(KeyIndex):
    """A list of subkey lists, used for keys with many subkeys."""

    __signature__ = b"ri"
    __struct__ = c_regdump._CM_KEY_INDEX

    def __iter__(self) -> Iterator[KeyNode]:
        for entry in self.cell.List:
            leaf = self.hive.cell(entry)
            if not isinstance(leaf, LeafIndex):
                raise MalformedHiveError(f"IndexRoot at 0x{self.offset:x} lists {leaf!r} as a subkey list")
            yield from leaf


class BigData(Cell):
    __signature__ = b"db"
    __struct__ = c_regdump._CM_BIG_DATA

    @cached_property
    def segments(self) -> list[int]:
        count = self.cell.Count
        data = self.hive.read(self.cell.List + 4, count * 4)
        return list(c_regdump.uint32[count](data))

    def read(self, size: int) -> bytes:
        """Reassemble ``size`` bytes of value data from the segments."""
        buf = bytearray(size)
        offset = 0

        for segment in self.segments:
            if offset >= size:
                break

            length = min(size - offset, BIG_DATA_SEGMENT_SIZE)
            buf[offset : offset + length] = self.hive.read(segment + 4, length)
            offset += length

        if offset < size:
            raise MalformedHiveError(
                f"BigData at 0x{self.offset:x} has {len(self.segments)} segments, not enough for 0x{size:x} bytes"
            )

        log.debug("Reassembled 0x%x bytes from %d segments of BigData at 0x%x", size, len(self.segments), self.offset)
        return bytes(buf)


_CELL_CLASSES = {
    KeyNode.__signature__: KeyNode,
    KeyValue.__signature__: KeyValue,
    IndexRoot.__signature__: IndexRoot,
    IndexLeaf.__signature__: IndexLeaf,
    FastLeaf.__signature__: FastLeaf,
    HashLeaf.__signature__: HashLeaf,
    BigData.__signature__: BigData,
}


def xor32_crc(data: bytes) -> int:
    crc = 0
    for ii in c_regdump.uint32[len(data) // 4](data):
        crc ^= ii

    return crc
