"""Serialization of values into the PackStream binary format."""

from __future__ import annotations

import math
import struct
from collections.abc import Iterable, Mapping

from boltproto.errors import PackOverflowError

_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1


class Packer:
    """Appends PackStream encoded values to an internal buffer."""

    def __init__(self) -> None:
        self._buf = bytearray()

    def reset(self) -> None:
        """Discard everything packed so far."""
        self._buf.clear()

    def getvalue(self) -> bytes:
        """Return the bytes packed so far."""
        return bytes(self._buf)

    def struct_header(self, tag: int | str, num: int) -> None:
        if num > 0x0F:
            raise PackOverflowError("Trying to pack struct with too many fields")
        if isinstance(tag, str):
            tag = ord(tag)
        self._buf += bytes((0xB0 + num, tag))

    def int64(self, value: int) -> None:
        if not _INT64_MIN <= value <= _INT64_MAX:
            raise PackOverflowError(f"Integer {value} does not fit into int64")
        value = int(value)
        if -0x10 <= value < 0x80:
            self._buf.append(value & 0xFF)
        elif -0x80 <= value < -0x10:
            self._buf += struct.pack(">Bb", 0xC8, value)
        elif -0x8000 <= value < 0x8000:
            self._buf += struct.pack(">Bh", 0xC9, value)
        elif -0x80000000 <= value < 0x80000000:
            self._buf += struct.pack(">Bi", 0xCA, value)
        else:
            self._buf += struct.pack(">Bq", 0xCB, value)

    def uint64(self, value: int) -> None:
        if value < 0 or value > _INT64_MAX:
            raise PackOverflowError("Trying to pack uint64 that doesn't fit into int64")
        self.int64(value)

    def float64(self, value: float) -> None:
        self._buf += struct.pack(">Bd", 0xC1, value)

    def float32(self, value: float) -> None:
        """Pack a value after rounding it to single precision."""
        try:
            narrowed = struct.unpack(">f", struct.pack(">f", value))[0]
        except OverflowError:
            narrowed = math.copysign(math.inf, value)
        self.float64(narrowed)

    def _list_header(self, length: int, short_offset: int, long_offset: int) -> None:
        if length < 0x10:
            self._buf.append(short_offset + length)
        elif length < 0x100:
            self._buf += struct.pack(">BB", long_offset, length)
        elif length < 0x10000:
            self._buf += struct.pack(">BH", long_offset + 1, length)
        elif length < 0xFFFFFFFF:
            self._buf += struct.pack(">BI", long_offset + 2, length)
        else:
            raise PackOverflowError(f"Trying to pack too large list of size {length} ")

    def string(self, value: str) -> None:
        data = value.encode("utf-8")
        self._list_header(len(data), 0x80, 0xD0)
        self._buf += data

    def strings(self, values: Iterable[str]) -> None:
        values = list(values)
        self.array_header(len(values))
        for value in values:
            self.string(value)

    def int64s(self, values: Iterable[int]) -> None:
        values = list(values)
        self.array_header(len(values))
        for value in values:
            self.int64(value)

    def float64s(self, values: Iterable[float]) -> None:
        values = list(values)
        self.array_header(len(values))
        for value in values:
            self.float64(value)

    def array_header(self, length: int) -> None:
        self._list_header(length, 0x90, 0xD4)

    def map_header(self, length: int) -> None:
        self._list_header(length, 0xA0, 0xD8)

    def int_map(self, mapping: Mapping[str, int]) -> None:
        self.map_header(len(mapping))
        for key, value in mapping.items():
            self.string(key)
            self.int64(value)

    def string_map(self, mapping: Mapping[str, str]) -> None:
        self.map_header(len(mapping))
        for key, value in mapping.items():
            self.string(key)
            self.string(value)

    def byte_array(self, data: bytes) -> None:
        length = len(data)
        if length < 0x100:
            header = struct.pack(">BB", 0xCC, length)
        elif length < 0x10000:
            header = struct.pack(">BH", 0xCD, length)
        elif length < 0x100000000:
            header = struct.pack(">BI", 0xCE, length)
        else:
            raise PackOverflowError(f"Trying to pack too large byte array of size {length}")
        self._buf += header
        self._buf += data

    def boolean(self, value: bool) -> None:
        self._buf.append(0xC3 if value else 0xC2)

    def nil(self) -> None:
        self._buf.append(0xC0)