"""A thread safe pool of database connections spread over several servers."""

from __future__ import annotations

import logging
import math
import threading
import time
from collections import deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from boltproto.server import NEW_CONNECTION_PENALTY, Connection, Server

_log = logging.getLogger(__name__)


class PoolError(Exception):
    """Base class for connection pool errors."""


class PoolTimeout(PoolError):
    """Timed out while waiting for a connection."""

    def __init__(self, servers: Iterable[str], err: BaseException | None = None) -> None:
        self.servers = list(servers)
        self.err = err
        super().__init__(
            f"Timeout while waiting for connection to any of {self.servers}: {err}"
        )


class PoolFull(PoolError):
    """No idle connection and no room for a new one."""

    def __init__(self, servers: Iterable[str]) -> None:
        self.servers = list(servers)
        super().__init__(f"No idle connections on any of {self.servers}")


class PoolClosed(PoolError):
    """The pool has been closed."""

    def __init__(self) -> None:
        super().__init__("Pool closed")


@dataclass(eq=False)
class _Waiter:
    servers: tuple[str, ...]
    wakeup: threading.Event = field(default_factory=threading.Event)
    conn: Connection | None = None


class Pool:
    """Hands out connections to servers, connecting when needed."""

    def __init__(
        self,
        max_size: int,
        max_age: float,
        connect: Callable[[str], Connection],
        log_id: str = "pool",
        now: Callable[[], float] = time.time,
    ) -> None:
        self._max_size = max_size
        self._max_age = max_age if max_age > 0 else math.inf
        self._connect = connect
        self._log_id = log_id
        self._now = now
        self._servers: dict[str, Server] = {}
        self._servers_lock = threading.Lock()
        self._queue: deque[_Waiter] = deque()
        self._queue_lock = threading.Lock()
        self._closed = False
        _log.info("%s: Created", log_id)

    def close(self) -> None:
        """Close every connection; waiting borrowers are left to time out."""
        self._closed = True
        with self._queue_lock:
            self._queue.clear()
        with self._servers_lock:
            for server in self._servers.values():
                server.close_all()
            self._servers.clear()
        _log.info("%s: Closed", self._log_id)

    def queue_size(self) -> int:
        """Number of borrowers waiting for a connection."""
        with self._queue_lock:
            return len(self._queue)

    def servers(self) -> dict[str, Server]:
        """A snapshot of the servers known to the pool."""
        with self._servers_lock:
            return dict(self._servers)

    def clean_up(self) -> None:
        """Close too old idle connections and forget servers left empty."""
        with self._servers_lock:
            now = self._now()
            for name, server in list(self._servers.items()):
                server.remove_idle_older_than(now, self._max_age)
                if server.size() == 0 and not server.has_failed_connect(now):
                    del self._servers[name]

    def _any_existing_connections(self, server_names: list[str]) -> bool:
        with self._servers_lock:
            return any(
                (server := self._servers.get(name)) is not None and server.size() > 0
                for name in server_names
            )

    def _try_borrow(self, server_name: str) -> Connection:
        with self._servers_lock:
            server = self._servers.get(server_name)
            if server is not None:
                conn = server.get_idle()
                if conn is not None:
                    return conn
                if server.size() >= self._max_size:
                    raise PoolFull([server_name])
            else:
                server = Server()
                self._servers[server_name] = server

            _log.info("%s: Connecting to %s", self._log_id, server_name)
            try:
                conn = self._connect(server_name)
            except Exception as exc:
                server.notify_failed_connect(self._now())
                _log.warning(
                    "%s: Failed to connect to %s: %s", self._log_id, server_name, exc
                )
                raise
            server.register_busy(conn)
            server.notify_successful_connect()
            return conn

    def _by_penalty(self, server_names: list[str]) -> list[str]:
        with self._servers_lock:
            now = self._now()
            penalties = []
            for name in server_names:
                server = self._servers.get(name)
                if server is None:
                    penalties.append((NEW_CONNECTION_PENALTY, name))
                else:
                    server.remove_idle_older_than(now, self._max_age)
                    penalties.append((server.calculate_penalty(now), name))
        return [name for _, name in sorted(penalties, key=lambda item: item[0])]

    def _try_any_idle(self, server_names: list[str]) -> Connection | None:
        with self._servers_lock:
            for name in server_names:
                server = self._servers.get(name)
                if server is not None:
                    conn = server.get_idle()
                    if conn is not None:
                        return conn
        return None

    def borrow(
        self,
        server_names: Iterable[str],
        wait: bool = True,
        timeout: float | None = None,
    ) -> Connection:
        """Borrow a connection to one of the servers.

        With ``wait`` the call blocks until a connection is returned by
        another thread, for at most ``timeout`` seconds when that is given.
        """
        if self._closed:
            raise PoolClosed()
        names = list(server_names)
        deadline = None if timeout is None else time.monotonic() + timeout
        _log.debug("%s: Trying to borrow connection from %s", self._log_id, names)

        last_err: Exception | None = None
        for name in self._by_penalty(names):
            if deadline is not None and time.monotonic() >= deadline:
                _log.warning("%s: Borrow time-out", self._log_id)
                raise PoolTimeout(names)
            try:
                return self._try_borrow(name)
            except Exception as exc:
                last_err = exc

        if not self._any_existing_connections(names):
            message = f"No server connection available to any of {names}"
            _log.warning("%s: %s", self._log_id, message)
            if last_err is None:
                raise PoolError(message)
            raise last_err

        if not wait:
            raise PoolFull(names)

        with self._queue_lock:
            conn = self._try_any_idle(names)
            if conn is not None:
                return conn
            waiter = _Waiter(servers=tuple(names))
            self._queue.append(waiter)

        _log.warning("%s: Borrow queued", self._log_id)
        remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
        if waiter.wakeup.wait(remaining) and waiter.conn is not None:
            return waiter.conn
        with self._queue_lock:
            if waiter in self._queue:
                self._queue.remove(waiter)
        if waiter.conn is not None:
            return waiter.conn
        _log.warning("%s: Borrow time-out", self._log_id)
        raise PoolTimeout(names, TimeoutError("Waited too long for a connection"))

    def _unregister(self, server_name: str, conn: Connection, now: float) -> None:
        with self._servers_lock:
            server = self._servers.get(server_name)
            if server is None:
                _log.warning("%s: Server %s not found", self._log_id, server_name)
            else:
                server.unregister_busy(conn)
                if server.size() == 0 and not server.has_failed_connect(now):
                    del self._servers[server_name]
        conn.close()

    def _remove_idle_older_than(self, server_name: str, now: float, max_age: float) -> None:
        with self._servers_lock:
            server = self._servers.get(server_name)
            if server is not None:
                server.remove_idle_older_than(now, max_age)

    def return_connection(self, conn: Connection) -> None:
        """Give a borrowed connection back to the pool."""
        if self._closed:
            _log.warning("%s: Trying to return connection to closed pool", self._log_id)
            return

        server_name = conn.server_name
        alive = conn.is_alive()
        _log.debug(
            "%s: Returning connection to %s {alive:%s}", self._log_id, server_name, alive
        )

        now = self._now()
        age = now - conn.birthdate
        max_age = self._max_age
        if not alive:
            # Connections made before this dead one may be dead too.
            max_age = min(max_age, age)
        self._remove_idle_older_than(server_name, now, max_age)

        if alive:
            conn.reset()
            alive = conn.is_alive()

        if not alive or age >= self._max_age:
            self._unregister(server_name, conn, now)
            _log.info(
                "%s: Unregistering dead or too old connection to %s",
                self._log_id,
                server_name,
            )
            return

        with self._queue_lock:
            for waiter in self._queue:
                if server_name in waiter.servers:
                    waiter.conn = conn
                    self._queue.remove(waiter)
                    waiter.wakeup.set()
                    return
            with self._servers_lock:
                server = self._servers.get(server_name)
                if server is not None:
                    server.return_busy(conn)
                else:
                    _log.warning("%s: Server %s not found", self._log_id, server_name)