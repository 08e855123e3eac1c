"""Buffering of result streams and bookkeeping of open streams."""

from __future__ import annotations

import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from boltproto.hydrator import Record, Summary


class InvalidStreamError(Exception):
    """A stream handle does not refer to a usable stream."""

    def __init__(self, message: str = "Invalid stream handle") -> None:
        super().__init__(message)


class StreamAssertionError(Exception):
    """Open streams were used in a way that breaks their invariants."""


@dataclass(eq=False)
class Stream:
    """A result stream with records buffered ahead of the consumer."""

    keys: list[str] = field(default_factory=list)
    fifo: deque[Record] = field(default_factory=deque)
    sum: Summary | None = None
    err: BaseException | None = None
    qid: int = 0
    fetch_size: int = 0
    key: int = 0

    def buffered_next(self) -> Record | Summary | None:
        """Return the next buffered record, else the summary.

        Raises the stream's error once all buffered records are consumed and
        returns None when nothing is buffered.
        """
        if self.fifo:
            return self.fifo.popleft()
        if self.err is not None:
            raise self.err
        return self.sum

    def error(self) -> BaseException | None:
        """The stream's error, held back until buffered records are consumed."""
        if self.fifo:
            return None
        return self.err

    def push(self, record: Record) -> None:
        self.fifo.append(record)


def _noop(*_args: Any) -> None:
    return None


class OpenStreams:
    """Tracks the streams open on a connection and which one is current."""

    def __init__(
        self,
        on_close: Callable[[Stream], None] | None = None,
        on_empty: Callable[[], None] | None = None,
    ) -> None:
        self.curr: Stream | None = None
        self.num = 0
        self.key = 0
        self._on_close = on_close or _noop
        self._on_empty = on_empty or _noop

    def attach(self, stream: Stream) -> None:
        """Add a new open stream and make it current."""
        if self.curr is not None:
            raise StreamAssertionError("Should be no current stream")
        self.num += 1
        self.curr = stream
        stream.key = self.key

    def detach(self, summary: Summary | None, error: BaseException | None) -> None:
        """Close the current stream with either a summary or an error."""
        curr = self.curr
        if curr is None:
            raise StreamAssertionError("Should be a current stream")
        if summary is not None:
            curr.sum = summary
            self._on_close(curr)
        elif error is not None:
            curr.err = error
        else:
            raise StreamAssertionError("Detaching incomplete stream")

        self._remove(curr)
        self.curr = None
        if self.num <= 0:
            self._on_empty()

    def pause(self) -> None:
        self.curr = None

    def resume(self, stream: Stream) -> None:
        if self.curr is not None:
            raise StreamAssertionError("Should be no current stream")
        self.curr = stream

    def _remove(self, stream: Stream) -> None:
        self.num -= 1
        stream.key = 0

    def reset(self) -> None:
        """Forget all open streams; they are no longer safe to use."""
        num, self.num = self.num, 0
        if num > 0:
            self._on_empty()
        self.curr = None
        self.key = max(time.time_ns(), self.key + 1)

    def get_unsafe(self, handle: Any) -> Stream:
        """Return the handle as a stream, not checking that it belongs here."""
        if not isinstance(handle, Stream):
            raise InvalidStreamError()
        return handle

    def is_safe(self, stream: Stream) -> bool:
        """Whether the stream was opened since the last reset."""
        return stream.key == self.key