"""Turning PackStream encoded Bolt responses into Python values."""

from __future__ import annotations

import enum
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from boltproto.messages import MessageTag
from boltproto.unpacker import PackedType, Unpacker
from boltproto.values import (
    Duration,
    Node,
    Path,
    Point2D,
    Point3D,
    Relationship,
    RelNode,
    build_path,
)

_EPOCH = datetime(1970, 1, 1)
_EPOCH_DATE = date(1970, 1, 1)
_NANOS_PER_SECOND = 1_000_000_000


class HydrationError(Exception):
    """A response could not be turned into values."""


class StatementType(enum.IntEnum):
    """Kind of statement reported by the server."""

    UNKNOWN = 0
    READ = 1
    WRITE = 2
    READ_WRITE = 3
    SCHEMA_WRITE = 4


_STATEMENT_TYPES = {
    "r": StatementType.READ,
    "w": StatementType.WRITE,
    "rw": StatementType.READ_WRITE,
    "s": StatementType.SCHEMA_WRITE,
}


@dataclass
class Neo4jError(Exception):
    """An error reported by the database server."""

    code: str = ""
    msg: str = ""

    __hash__ = Exception.__hash__

    def __post_init__(self) -> None:
        super().__init__(self.code, self.msg)

    def __str__(self) -> str:
        return f"Neo4jError: {self.code} ({self.msg})"

    def _classification(self) -> str:
        parts = self.code.split(".")
        return parts[1] if len(parts) > 1 else ""

    def is_retriable_cluster(self) -> bool:
        return self.code == "Neo.ClientError.Cluster.NotALeader"

    def is_retriable_transient(self) -> bool:
        return self._classification() == "TransientError"


@dataclass
class Record:
    """One row of a result."""

    values: list[Any] = field(default_factory=list)


@dataclass
class InputPosition:
    offset: int = 0
    line: int = 0
    column: int = 0


@dataclass
class Notification:
    code: str = ""
    title: str = ""
    description: str = ""
    severity: str = ""
    position: InputPosition | None = None


@dataclass
class Plan:
    operator: str = ""
    arguments: dict[str, Any] | None = None
    identifiers: list[str] = field(default_factory=list)
    children: list[Plan] = field(default_factory=list)


@dataclass
class ProfiledPlan:
    operator: str = ""
    arguments: dict[str, Any] | None = None
    identifiers: list[str] = field(default_factory=list)
    children: list[ProfiledPlan] = field(default_factory=list)
    db_hits: int = 0
    records: int = 0


@dataclass
class Summary:
    bookmark: str = ""
    stmnt_type: StatementType = StatementType.UNKNOWN
    counters: dict[str, int] | None = None
    tlast: int = 0
    plan: Plan | None = None
    profiled_plan: ProfiledPlan | None = None
    notifications: list[Notification] | None = None


@dataclass
class Ignored:
    """The server ignored a request."""


@dataclass
class Success:
    """Metadata of a successful response."""

    fields: list[str] | None = None
    tfirst: int = 0
    qid: int = -1
    bookmark: str = ""
    connection_id: str = ""
    server: str = ""
    db: str = ""
    has_more: bool = False
    tlast: int = 0
    qtype: StatementType = StatementType.UNKNOWN
    counters: dict[str, int] | None = None
    plan: Plan | None = None
    profile: ProfiledPlan | None = None
    notifications: list[Notification] | None = None
    num: int = 0

    def summary(self) -> Summary:
        return Summary(
            bookmark=self.bookmark,
            stmnt_type=self.qtype,
            counters=self.counters,
            tlast=self.tlast,
            plan=self.plan,
            profiled_plan=self.profile,
            notifications=self.notifications,
        )

    def is_reset_response(self) -> bool:
        return self.num == 0


def _get_str(m: dict[str, Any], key: str) -> str:
    value = m.get(key)
    return value if isinstance(value, str) else ""


def _get_int(m: dict[str, Any], key: str) -> int:
    value = m.get(key)
    return value if isinstance(value, int) and not isinstance(value, bool) else 0


def _op_ids_args_children(
    planx: dict[str, Any],
) -> tuple[str, list[str], dict[str, Any] | None, list[Any]]:
    operator = _get_str(planx, "operatorType")
    identifiersx = planx.get("identifiers")
    if not isinstance(identifiersx, list):
        identifiersx = []
    identifiers = [i if isinstance(i, str) else "" for i in identifiersx]
    arguments = planx.get("args")
    if not isinstance(arguments, dict):
        arguments = None
    children = planx.get("children")
    if not isinstance(children, list):
        children = []
    return operator, identifiers, arguments, children


def _child_maps(childrenx: list[Any]) -> list[dict[str, Any]]:
    return [c for c in childrenx if isinstance(c, dict) and c]


def parse_plan(planx: dict[str, Any]) -> Plan:
    """Build a plan from the map sent by the server."""
    operator, identifiers, arguments, childrenx = _op_ids_args_children(planx)
    return Plan(
        operator=operator,
        arguments=arguments,
        identifiers=identifiers,
        children=[parse_plan(c) for c in _child_maps(childrenx)],
    )


def parse_profile(profilex: dict[str, Any]) -> ProfiledPlan:
    """Build a profiled plan from the map sent by the server."""
    operator, identifiers, arguments, childrenx = _op_ids_args_children(profilex)
    return ProfiledPlan(
        operator=operator,
        arguments=arguments,
        identifiers=identifiers,
        children=[parse_profile(c) for c in _child_maps(childrenx)],
        db_hits=_get_int(profilex, "dbHits"),
        records=_get_int(profilex, "rows"),
    )


def parse_notification(m: dict[str, Any]) -> Notification:
    """Build a notification from the map sent by the server."""
    description = m.get("description")
    if not isinstance(description, str):
        raise HydrationError("Notification without description")
    notification = Notification(
        code=_get_str(m, "code"),
        title=_get_str(m, "title"),
        description=description,
        severity=_get_str(m, "severity"),
    )
    posx = m.get("position")
    if isinstance(posx, dict):
        notification.position = InputPosition(
            offset=_get_int(posx, "offset"),
            line=_get_int(posx, "line"),
            column=_get_int(posx, "column"),
        )
    return notification


def parse_notifications(notificationsx: list[Any]) -> list[Notification] | None:
    """Build notifications from a list, skipping entries that are not maps."""
    if not notificationsx:
        return None
    return [parse_notification(x) for x in notificationsx if isinstance(x, dict)]


def _wall_clock(secs: int, nanos: int) -> datetime:
    try:
        return _EPOCH + timedelta(seconds=secs, microseconds=nanos // 1000)
    except OverflowError as exc:
        raise HydrationError(f"Date time out of range: {secs}s {nanos}ns") from exc


def _offset_zone(seconds: int) -> timezone:
    try:
        return timezone(timedelta(seconds=seconds))
    except ValueError as exc:
        raise HydrationError(f"Invalid zone offset: {seconds}") from exc


def _clock(nanos: int, tz: tzinfo | None) -> time:
    secs, rest = divmod(nanos, _NANOS_PER_SECOND)
    minutes, second = divmod(secs, 60)
    hours, minute = divmod(minutes, 60)
    return time(hours % 24, minute, second, rest // 1000, tzinfo=tz)


class Hydrator:
    """Decodes Bolt response messages."""

    def __init__(self) -> None:
        self._unp = Unpacker()
        self._structs: dict[int, Callable[[], Any]] = {
            ord("N"): self._node,
            ord("R"): self._relationship,
            ord("r"): self._rel_node,
            ord("P"): self._path,
            ord("X"): self._point2d,
            ord("Y"): self._point3d,
            ord("F"): self._date_time_offset,
            ord("f"): self._date_time_named_zone,
            ord("d"): self._local_date_time,
            ord("D"): self._date,
            ord("T"): self._time,
            ord("t"): self._local_time,
            ord("E"): self._duration,
        }
        self._messages: dict[int, Callable[[], Any]] = {
            MessageTag.SUCCESS: self._success,
            MessageTag.IGNORED: self._ignored,
            MessageTag.FAILURE: self._failure,
            MessageTag.RECORD: self._record,
        }

    def hydrate(self, buf: bytes) -> Any:
        """Decode one top level message struct."""
        unp = self._unp
        unp.reset(buf)
        unp.next()
        if unp.curr != PackedType.STRUCT:
            raise HydrationError("Expected struct")
        unp.length()
        tag = unp.struct_tag()
        handler = self._messages.get(tag)
        if handler is None:
            raise HydrationError(f"Unexpected tag at top level: {tag}")
        return handler()

    def _ignored(self) -> Ignored:
        return Ignored()

    def _failure(self) -> Neo4jError:
        unp = self._unp
        error = Neo4jError()
        unp.next()
        for _ in range(unp.length()):
            unp.next()
            key = unp.string()
            unp.next()
            if key == "code":
                error.code = unp.string()
            elif key == "message":
                error.msg = unp.string()
            else:
                self._value()
        error.args = (error.code, error.msg)
        return error

    def _success(self) -> Success:
        unp = self._unp
        unp.next()
        num = unp.length()
        succ = Success(num=num)
        for _ in range(num):
            unp.next()
            key = unp.string()
            unp.next()
            if key == "fields":
                succ.fields = self._strings()
            elif key == "t_first":
                succ.tfirst = unp.int64()
            elif key == "qid":
                succ.qid = unp.int64()
            elif key == "bookmark":
                succ.bookmark = unp.string()
            elif key == "connection_id":
                succ.connection_id = unp.string()
            elif key == "server":
                succ.server = unp.string()
            elif key == "has_more":
                succ.has_more = unp.boolean()
            elif key == "t_last":
                succ.tlast = unp.int64()
            elif key == "type":
                succ.qtype = _STATEMENT_TYPES.get(unp.string(), succ.qtype)
            elif key == "db":
                succ.db = unp.string()
            elif key == "stats":
                succ.counters = self._stats()
            elif key == "plan":
                succ.plan = parse_plan(self._map())
            elif key == "profile":
                succ.profile = parse_profile(self._map())
            elif key == "notifications":
                succ.notifications = parse_notifications(self._array())
            else:
                self._value()
        return succ

    def _stats(self) -> dict[str, int] | None:
        unp = self._unp
        n = unp.length()
        if n == 0:
            return None
        counts = {}
        for _ in range(n):
            unp.next()
            key = unp.string()
            unp.next()
            counts[key] = unp.int64()
        return counts

    def _strings(self) -> list[str]:
        unp = self._unp
        result = []
        for _ in range(unp.length()):
            unp.next()
            result.append(unp.string())
        return result

    def _map(self) -> dict[str, Any]:
        unp = self._unp
        result = {}
        for _ in range(unp.length()):
            unp.next()
            key = unp.string()
            unp.next()
            result[key] = self._value()
        return result

    def _array(self) -> list[Any]:
        unp = self._unp
        result = []
        for _ in range(unp.length()):
            unp.next()
            result.append(self._value())
        return result

    def _record(self) -> Record:
        self._unp.next()
        return Record(values=self._array())

    def _value(self) -> Any:
        unp = self._unp
        kind = unp.curr
        if kind == PackedType.INT:
            return unp.int64()
        if kind == PackedType.FLOAT:
            return unp.float64()
        if kind == PackedType.STR:
            return unp.string()
        if kind == PackedType.STRUCT:
            tag = unp.struct_tag()
            unp.length()
            handler = self._structs.get(tag)
            if handler is None:
                raise HydrationError(f"Unknown tag: {tag:02x}")
            return handler()
        if kind == PackedType.BYTE_ARRAY:
            return unp.byte_array()
        if kind == PackedType.ARRAY:
            return self._array()
        if kind == PackedType.MAP:
            return self._map()
        if kind == PackedType.NIL:
            return None
        if kind == PackedType.TRUE:
            return True
        if kind == PackedType.FALSE:
            return False
        raise HydrationError("Hydration state error")

    def _next_int(self) -> int:
        self._unp.next()
        return self._unp.int64()

    def _next_float(self) -> float:
        self._unp.next()
        return self._unp.float64()

    def _next_string(self) -> str:
        self._unp.next()
        return self._unp.string()

    def _node(self) -> Node:
        node_id = self._next_int()
        self._unp.next()
        labels = self._strings()
        self._unp.next()
        return Node(id=node_id, labels=labels, props=self._map())

    def _relationship(self) -> Relationship:
        rel_id = self._next_int()
        start_id = self._next_int()
        end_id = self._next_int()
        rel_type = self._next_string()
        self._unp.next()
        return Relationship(
            id=rel_id, start_id=start_id, end_id=end_id, type=rel_type, props=self._map()
        )

    def _rel_node(self) -> RelNode:
        rel_id = self._next_int()
        name = self._next_string()
        self._unp.next()
        return RelNode(id=rel_id, name=name, props=self._map())

    def _typed_list(self, kind: type) -> list[Any]:
        unp = self._unp
        unp.next()
        items = []
        for _ in range(unp.length()):
            unp.next()
            item = self._value()
            if not isinstance(item, kind):
                raise HydrationError("Path hydrate error")
            items.append(item)
        return items

    def _path(self) -> Path:
        nodes = self._typed_list(Node)
        rel_nodes = self._typed_list(RelNode)
        unp = self._unp
        unp.next()
        indexes = [self._next_int() for _ in range(unp.length())]
        if len(indexes) % 2 == 1:
            raise HydrationError("Path hydrate error")
        return build_path(nodes, rel_nodes, indexes)

    def _point2d(self) -> Point2D:
        srid = self._next_int() & 0xFFFFFFFF
        return Point2D(spatial_ref_id=srid, x=self._next_float(), y=self._next_float())

    def _point3d(self) -> Point3D:
        srid = self._next_int() & 0xFFFFFFFF
        return Point3D(
            spatial_ref_id=srid,
            x=self._next_float(),
            y=self._next_float(),
            z=self._next_float(),
        )

    def _date_time_offset(self) -> datetime:
        secs = self._next_int()
        nanos = self._next_int()
        offset = self._next_int()
        return _wall_clock(secs, nanos).replace(tzinfo=_offset_zone(offset))

    def _date_time_named_zone(self) -> datetime:
        secs = self._next_int()
        nanos = self._next_int()
        zone = self._next_string()
        try:
            tz = ZoneInfo(zone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise HydrationError(f"Unknown time zone: {zone}") from exc
        return _wall_clock(secs, nanos).replace(tzinfo=tz)

    def _local_date_time(self) -> datetime:
        secs = self._next_int()
        nanos = self._next_int()
        return _wall_clock(secs, nanos)

    def _date(self) -> date:
        days = self._next_int()
        try:
            return _EPOCH_DATE + timedelta(days=days)
        except OverflowError as exc:
            raise HydrationError(f"Date out of range: {days}") from exc

    def _time(self) -> time:
        nanos = self._next_int()
        offset = self._next_int()
        return _clock(nanos, _offset_zone(offset))

    def _local_time(self) -> time:
        return _clock(self._next_int(), None)

    def _duration(self) -> Duration:
        return Duration(
            months=self._next_int(),
            days=self._next_int(),
            seconds=self._next_int(),
            nanos=self._next_int(),
        )