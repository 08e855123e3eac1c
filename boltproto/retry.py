"""Deciding whether a failed transaction should be retried."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol

from boltproto.hydrator import Neo4jError
from boltproto.server import Connection
from boltproto.throttler import Throttler

_log = logging.getLogger(__name__)


class Router(Protocol):
    """Something that can forget the routing table of a database."""

    def invalidate(self, database: str) -> None: ...


class CommitFailedDeadError(Exception):
    """The connection died while a commit was in flight."""

    def __init__(self, inner: BaseException | None) -> None:
        self.inner = inner
        super().__init__(f"Connection lost during commit: {inner}")


@dataclass
class RetryState:
    """Tracks failures of a transaction function and whether to try again."""

    max_transaction_retry_time: float = 30.0
    now: Callable[[], float] = time.monotonic
    sleep: Callable[[float], None] = time.sleep
    throttle: Throttler = field(default_factory=lambda: Throttler(1.0))
    max_dead_connections: int = 0
    router: Router | None = None
    database_name: str = ""
    log_name: str = "retry"
    log_id: str = ""

    last_err_was_retryable: bool = field(default=False, init=False)
    last_err: BaseException | None = field(default=None, init=False)
    errs: list[BaseException | None] = field(default_factory=list, init=False)
    causes: list[str] = field(default_factory=list, init=False)

    _stop: bool = field(default=False, init=False, repr=False)
    _start: float | None = field(default=None, init=False, repr=False)
    _cause: str = field(default="", init=False, repr=False)
    _dead_errors: int = field(default=0, init=False, repr=False)
    _skip_sleep: bool = field(default=False, init=False, repr=False)

    def on_failure(
        self, conn: Connection | None, err: BaseException, is_committing: bool
    ) -> None:
        """Record a failure; ``conn`` is None when no connection could be had."""
        self.last_err = err
        self._cause = ""
        self._skip_sleep = False

        if self._start is None:
            self._start = self.now()
        if self.now() - self._start > self.max_transaction_retry_time:
            self._stop = True
            self._cause = "Timeout"
            return

        self.last_err_was_retryable = False

        if conn is None:
            self.last_err_was_retryable = True
            self._cause = "No available connection"
            return

        if not conn.is_alive():
            if is_committing:
                # Not safe to retry: the commit may or may not have happened.
                self._stop = True
                self.last_err = CommitFailedDeadError(self.last_err)
                return
            self._dead_errors += 1
            self._stop = self._dead_errors > self.max_dead_connections
            self.last_err_was_retryable = True
            self._cause = "Connection lost"
            self._skip_sleep = True
            return

        if isinstance(err, Neo4jError):
            if err.is_retriable_cluster():
                if self.router is not None:
                    self.router.invalidate(self.database_name)
                self._cause = "Cluster error"
                self.last_err_was_retryable = True
                return
            if err.is_retriable_transient():
                self._cause = "Transient error"
                self.last_err_was_retryable = True
                return

        self._stop = True

    def should_continue(self) -> bool:
        """Whether to run the transaction (again), sleeping first when retrying."""
        if not self._stop and self.last_err is None:
            return True

        self.errs.append(self.last_err)
        if self._cause:
            self.causes.append(self._cause)

        if self._stop:
            return False

        if self._skip_sleep:
            _log.debug(
                "%s %s: Retrying transaction (%s): %s",
                self.log_name, self.log_id, self._cause, self.last_err,
            )
        else:
            self.throttle = self.throttle.next()
            sleep_time = self.throttle.delay()
            _log.debug(
                "%s %s: Retrying transaction (%s): %s [after %ss]",
                self.log_name, self.log_id, self._cause, self.last_err, sleep_time,
            )
            self.sleep(sleep_time)
        return True