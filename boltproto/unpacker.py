"""Deserialization of values from the PackStream binary format."""

from __future__ import annotations

import enum
import struct
from typing import NamedTuple

from boltproto.errors import PackIOError, UnpackError


class PackedType(enum.IntEnum):
    """Kind of value found at the current position of an unpacker."""

    UNDEF = 0
    INT = 1
    FLOAT = 2
    STR = 3
    STRUCT = 4
    BYTE_ARRAY = 5
    ARRAY = 6
    MAP = 7
    NIL = 8
    TRUE = 9
    FALSE = 10


class _Marker(NamedTuple):
    type: PackedType
    shortlen: int = 0
    numlenbytes: int = 0


_UNDEF_MARKER = _Marker(PackedType.UNDEF)


def _build_markers() -> tuple[_Marker, ...]:
    markers = [_UNDEF_MARKER] * 0x100
    tiny_ranges = (
        (0x00, 0x80, PackedType.INT),
        (0x80, 0x90, PackedType.STR),
        (0x90, 0xA0, PackedType.ARRAY),
        (0xA0, 0xB0, PackedType.MAP),
        (0xB0, 0xC0, PackedType.STRUCT),
    )
    for start, stop, kind in tiny_ranges:
        for marker in range(start, stop):
            markers[marker] = _Marker(kind, shortlen=marker - start)
    fixed = {
        0xC0: _Marker(PackedType.NIL),
        0xC1: _Marker(PackedType.FLOAT, numlenbytes=8),
        0xC2: _Marker(PackedType.FALSE),
        0xC3: _Marker(PackedType.TRUE),
        0xC8: _Marker(PackedType.INT, numlenbytes=1),
        0xC9: _Marker(PackedType.INT, numlenbytes=2),
        0xCA: _Marker(PackedType.INT, numlenbytes=4),
        0xCB: _Marker(PackedType.INT, numlenbytes=8),
        0xCC: _Marker(PackedType.BYTE_ARRAY, numlenbytes=1),
        0xCD: _Marker(PackedType.BYTE_ARRAY, numlenbytes=2),
        0xCE: _Marker(PackedType.BYTE_ARRAY, numlenbytes=4),
        0xD0: _Marker(PackedType.STR, numlenbytes=1),
        0xD1: _Marker(PackedType.STR, numlenbytes=2),
        0xD2: _Marker(PackedType.STR, numlenbytes=4),
        0xD4: _Marker(PackedType.ARRAY, numlenbytes=1),
        0xD5: _Marker(PackedType.ARRAY, numlenbytes=2),
        0xD6: _Marker(PackedType.ARRAY, numlenbytes=4),
        0xD8: _Marker(PackedType.MAP, numlenbytes=1),
        0xD9: _Marker(PackedType.MAP, numlenbytes=2),
        0xDA: _Marker(PackedType.MAP, numlenbytes=4),
    }
    for marker, value in fixed.items():
        markers[marker] = value
    for marker in range(0xF0, 0x100):
        markers[marker] = _Marker(PackedType.INT, shortlen=marker - 0x100)
    return tuple(markers)


_MARKERS = _build_markers()


class Unpacker:
    """Reads PackStream values one marker at a time from a buffer.

    Call :meth:`next` to move to the next marker, inspect :attr:`curr` and
    then call the reader that matches the kind of value found.
    """

    def __init__(self, buf: bytes = b"") -> None:
        self.reset(buf)

    def reset(self, buf: bytes) -> None:
        self._buf = bytes(buf)
        self._off = 0
        self._marker = _UNDEF_MARKER
        self.curr = PackedType.UNDEF

    def next(self) -> None:
        """Advance to the next marker."""
        self._marker = _MARKERS[self._pop()]
        self.curr = self._marker.type

    def length(self) -> int:
        """Length of the current string, list, map, byte array or struct."""
        if self._marker.numlenbytes == 0:
            return self._marker.shortlen
        return self._read_len(self._marker.numlenbytes)

    def int64(self) -> int:
        n = self._marker.numlenbytes
        if n == 0:
            return self._marker.shortlen
        if n not in (1, 2, 4, 8):
            raise UnpackError(f"Illegal int length: {n}")
        return int.from_bytes(self._read(n), "big", signed=True)

    def float64(self) -> float:
        return struct.unpack(">d", self._read(8))[0]

    def struct_tag(self) -> int:
        return self._pop()

    def string(self) -> str:
        n = self._marker.numlenbytes
        length = self._marker.shortlen if n == 0 else self._read_len(n)
        data = self._read(length)
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise UnpackError(f"Invalid UTF-8 in string: {exc}") from exc

    def boolean(self) -> bool:
        if self.curr == PackedType.TRUE:
            return True
        if self.curr == PackedType.FALSE:
            return False
        raise UnpackError("Illegal value for bool")

    def byte_array(self) -> bytes:
        return self._read(self.length())

    def _pop(self) -> int:
        if self._off >= len(self._buf):
            raise PackIOError()
        value = self._buf[self._off]
        self._off += 1
        return value

    def _read(self, n: int) -> bytes:
        end = self._off + n
        if n < 0 or end > len(self._buf):
            raise PackIOError()
        data = self._buf[self._off:end]
        self._off = end
        return data

    def _read_len(self, n: int) -> int:
        if n not in (1, 2, 4):
            raise UnpackError(f"Illegal length: {n} ({int(self.curr)})")
        return int.from_bytes(self._read(n), "big")