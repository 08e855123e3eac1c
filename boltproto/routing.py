"""Reading the routing table returned by a routing procedure."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from boltproto.hydrator import Record


@dataclass
class RoutingTable:
    """Servers of a cluster grouped by the role they play."""

    time_to_live: int = 0
    readers: list[str] = field(default_factory=list)
    writers: list[str] = field(default_factory=list)
    routers: list[str] = field(default_factory=list)


_ROLES = {"READ": "readers", "WRITE": "writers", "ROUTE": "routers"}


def _addresses(entry: Any) -> tuple[str, list[str]]:
    if not isinstance(entry, dict):
        raise ValueError("Routing table entry is not a map")
    addresses = entry.get("addresses")
    if not isinstance(addresses, list) or not all(isinstance(a, str) for a in addresses):
        raise ValueError("Routing table entry has no list of addresses")
    role = entry.get("role")
    if not isinstance(role, str):
        raise ValueError("Routing table entry has no role")
    return role, list(addresses)


def parse_routing_table_record(record: Record) -> RoutingTable:
    """Build a routing table from a record; raises ValueError if malformed."""
    if len(record.values) < 2:
        raise ValueError("Routing table record has too few values")
    ttl, entries = record.values[0], record.values[1]
    if not isinstance(ttl, int) or isinstance(ttl, bool):
        raise ValueError("Routing table time to live is not an integer")
    if not isinstance(entries, list):
        raise ValueError("Routing table servers is not a list")

    table = RoutingTable(time_to_live=ttl)
    for entry in entries:
        role, addresses = _addresses(entry)
        attribute = _ROLES.get(role)
        if attribute is not None:
            setattr(table, attribute, addresses)
    return table