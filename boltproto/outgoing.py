"""Building outgoing Bolt request messages."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from datetime import date, datetime, time, timezone
from typing import Any
from zoneinfo import ZoneInfo

from boltproto.messages import MessageTag
from boltproto.packer import Packer
from boltproto.values import Duration, Point2D, Point3D

_EPOCH = datetime(1970, 1, 1)
_EPOCH_DATE = date(1970, 1, 1)
_NANOS_PER_SECOND = 1_000_000_000
_NANOS_PER_MICRO = 1000


class UnsupportedTypeError(TypeError):
    """A value of this type cannot be sent to the server."""

    def __init__(self, value_type: type) -> None:
        super().__init__(f"Unsupported type: {value_type.__qualname__}")
        self.type = value_type


def _wall_seconds(wall: datetime) -> tuple[int, int]:
    delta = wall - _EPOCH
    return delta.days * 86400 + delta.seconds, delta.microseconds * _NANOS_PER_MICRO


def _nanos_of_day(value: time) -> int:
    seconds = (value.hour * 60 + value.minute) * 60 + value.second
    return seconds * _NANOS_PER_SECOND + value.microsecond * _NANOS_PER_MICRO


def _zone_name(value: datetime) -> str | None:
    tz = value.tzinfo
    if isinstance(tz, ZoneInfo) and tz.key:
        return tz.key
    if tz is timezone.utc:
        return "UTC"
    return None


class Outgoing:
    """Collects packed request messages until they are taken for sending."""

    def __init__(self) -> None:
        self._messages: list[bytes] = []

    def take_messages(self) -> list[bytes]:
        """Return the packed messages and forget them."""
        messages, self._messages = self._messages, []
        return messages

    @contextmanager
    def _message(self) -> Iterator[Packer]:
        packer = Packer()
        yield packer
        self._messages.append(packer.getvalue())

    def append_hello(self, hello: Mapping[str, Any] | None) -> None:
        with self._message() as packer:
            packer.struct_header(MessageTag.HELLO, 1)
            self._pack_map(packer, hello)

    def append_begin(self, meta: Mapping[str, Any] | None) -> None:
        with self._message() as packer:
            packer.struct_header(MessageTag.BEGIN, 1)
            self._pack_map(packer, meta)

    def append_commit(self) -> None:
        self.append_x(MessageTag.COMMIT)

    def append_rollback(self) -> None:
        self.append_x(MessageTag.ROLLBACK)

    def append_run(
        self,
        cypher: str,
        params: Mapping[str, Any] | None,
        meta: Mapping[str, Any] | None,
    ) -> None:
        with self._message() as packer:
            packer.struct_header(MessageTag.RUN, 3)
            packer.string(cypher)
            self._pack_map(packer, params)
            self._pack_map(packer, meta)

    def append_pull_n(self, n: int) -> None:
        with self._message() as packer:
            packer.struct_header(MessageTag.PULL_N, 1)
            packer.map_header(1)
            packer.string("n")
            packer.int64(n)

    def _append_n_qid(self, tag: MessageTag, n: int, qid: int) -> None:
        with self._message() as packer:
            packer.struct_header(tag, 1)
            packer.map_header(2)
            packer.string("n")
            packer.int64(n)
            packer.string("qid")
            packer.int64(qid)

    def append_pull_n_qid(self, n: int, qid: int) -> None:
        self._append_n_qid(MessageTag.PULL_N, n, qid)

    def append_discard_n_qid(self, n: int, qid: int) -> None:
        self._append_n_qid(MessageTag.DISCARD_N, n, qid)

    def append_pull_all(self) -> None:
        self.append_x(MessageTag.PULL_ALL)

    def append_reset(self) -> None:
        self.append_x(MessageTag.RESET)

    def append_goodbye(self) -> None:
        self.append_x(MessageTag.GOODBYE)

    def append_x(self, tag: int | str, *args: Any) -> None:
        """Append a struct message with the given tag and fields."""
        with self._message() as packer:
            packer.struct_header(tag, len(args))
            for value in args:
                self._pack_value(packer, value)

    def pack_map_message(self, mapping: Mapping[str, Any] | None) -> None:
        """Append a message that holds nothing but a packed map."""
        with self._message() as packer:
            self._pack_map(packer, mapping)

    def _pack_map(self, packer: Packer, mapping: Mapping[Any, Any] | None) -> None:
        if mapping is None:
            packer.map_header(0)
            return
        if not all(isinstance(key, str) for key in mapping):
            raise UnsupportedTypeError(type(mapping))
        packer.map_header(len(mapping))
        for key, value in mapping.items():
            packer.string(key)
            self._pack_value(packer, value)

    def _pack_value(self, packer: Packer, value: Any) -> None:
        if value is None:
            packer.nil()
        elif isinstance(value, bool):
            packer.boolean(value)
        elif isinstance(value, int):
            packer.int64(value)
        elif isinstance(value, float):
            packer.float64(value)
        elif isinstance(value, str):
            packer.string(value)
        elif isinstance(value, (bytes, bytearray, memoryview)):
            packer.byte_array(bytes(value))
        elif isinstance(value, Mapping):
            self._pack_map(packer, value)
        elif isinstance(value, (list, tuple)):
            packer.array_header(len(value))
            for item in value:
                self._pack_value(packer, item)
        else:
            self._pack_struct(packer, value)

    def _pack_struct(self, packer: Packer, value: Any) -> None:
        if isinstance(value, Point2D):
            packer.struct_header("X", 3)
            packer.int64(value.spatial_ref_id)
            packer.float64(value.x)
            packer.float64(value.y)
        elif isinstance(value, Point3D):
            packer.struct_header("Y", 4)
            packer.int64(value.spatial_ref_id)
            packer.float64(value.x)
            packer.float64(value.y)
            packer.float64(value.z)
        elif isinstance(value, datetime):
            self._pack_datetime(packer, value)
        elif isinstance(value, date):
            packer.struct_header("D", 1)
            packer.int64((value - _EPOCH_DATE).days)
        elif isinstance(value, time):
            self._pack_time(packer, value)
        elif isinstance(value, Duration):
            packer.struct_header("E", 4)
            packer.int64(value.months)
            packer.int64(value.days)
            packer.int64(value.seconds)
            packer.int64(value.nanos)
        else:
            raise UnsupportedTypeError(type(value))

    def _pack_datetime(self, packer: Packer, value: datetime) -> None:
        secs, nanos = _wall_seconds(value.replace(tzinfo=None))
        offset = value.utcoffset()
        if offset is None:
            packer.struct_header("d", 2)
            packer.int64(secs)
            packer.int64(nanos)
            return
        name = _zone_name(value)
        if name is None:
            packer.struct_header("F", 3)
            packer.int64(secs)
            packer.int64(nanos)
            packer.int64(int(offset.total_seconds()))
        else:
            packer.struct_header("f", 3)
            packer.int64(secs)
            packer.int64(nanos)
            packer.string(name)

    def _pack_time(self, packer: Packer, value: time) -> None:
        nanos = _nanos_of_day(value)
        if value.tzinfo is None:
            packer.struct_header("t", 1)
            packer.int64(nanos)
            return
        offset = value.utcoffset()
        if offset is None:
            raise UnsupportedTypeError(type(value))
        packer.struct_header("T", 2)
        packer.int64(nanos)
        packer.int64(int(offset.total_seconds()))