"""A database server as seen by the connection pool: its idle and busy connections."""

from __future__ import annotations

import itertools
import threading
from collections import deque
from typing import Protocol

REMEMBER_FAILED_CONNECT_DURATION = 180.0
"""Seconds that a failed connect to a server is remembered."""

NEW_CONNECTION_PENALTY = 1 << 8
"""Penalty for a server where a new connection would have to be made."""

_round_robin_counter = itertools.count(1)
_round_robin_lock = threading.Lock()


def _next_round_robin() -> int:
    with _round_robin_lock:
        return next(_round_robin_counter) & 0xFFFFFFFF


class Connection(Protocol):
    """What the pool needs from a database connection."""

    @property
    def server_name(self) -> str: ...

    @property
    def birthdate(self) -> float: ...

    def is_alive(self) -> bool: ...

    def reset(self) -> None: ...

    def close(self) -> None: ...


class Server:
    """Connections to one server, each either idle or busy. Not thread safe."""

    def __init__(self) -> None:
        self.idle: deque[Connection] = deque()
        self.busy: deque[Connection] = deque()
        self.failed_connect_at: float | None = None
        self.round_robin = 0

    def get_idle(self) -> Connection | None:
        """Move an idle connection to busy and return it, or None if none is idle."""
        if not self.idle:
            return None
        conn = self.idle.popleft()
        self.busy.appendleft(conn)
        self.round_robin = _next_round_robin()
        return conn

    def notify_failed_connect(self, now: float) -> None:
        self.failed_connect_at = now

    def notify_successful_connect(self) -> None:
        self.failed_connect_at = None

    def has_failed_connect(self, now: float) -> bool:
        if self.failed_connect_at is None:
            return False
        return now - self.failed_connect_at < REMEMBER_FAILED_CONNECT_DURATION

    def calculate_penalty(self, now: float) -> int:
        """Penalty for choosing this server; the lower, the better the choice."""
        penalty = 0
        if self.has_failed_connect(now):
            penalty = 1 << 31
        penalty |= min(len(self.busy), 0xFF) << 16
        if not self.idle:
            penalty |= NEW_CONNECTION_PENALTY
        penalty |= self.round_robin & 0xFF
        return penalty

    def return_busy(self, conn: Connection) -> None:
        """Make a busy connection idle."""
        self.unregister_busy(conn)
        self.idle.appendleft(conn)

    def num_idle(self) -> int:
        return len(self.idle)

    def register_busy(self, conn: Connection) -> None:
        self.round_robin = _next_round_robin()
        self.busy.appendleft(conn)

    def unregister_busy(self, conn: Connection) -> None:
        for position, candidate in enumerate(self.busy):
            if candidate is conn:
                del self.busy[position]
                return

    def size(self) -> int:
        return len(self.busy) + len(self.idle)

    def remove_idle_older_than(self, now: float, max_age: float) -> None:
        """Close and forget idle connections at least ``max_age`` seconds old."""
        kept: deque[Connection] = deque()
        expired = []
        for conn in self.idle:
            if now - conn.birthdate >= max_age:
                expired.append(conn)
            else:
                kept.append(conn)
        self.idle = kept
        for conn in expired:
            conn.close()

    def close_all(self) -> None:
        """Close every connection, busy ones included."""
        for conn in [*self.idle, *self.busy]:
            conn.close()
        self.idle.clear()
        self.busy.clear()