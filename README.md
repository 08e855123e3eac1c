# boltproto

Building blocks for speaking the Bolt protocol used by graph databases. The
package has no third-party dependencies.

## What is in it

- `boltproto.packer.Packer` and `boltproto.unpacker.Unpacker` encode and
  decode PackStream values: integers, floats, strings, byte arrays, lists,
  maps, structs, booleans and null. Problems are raised as exceptions from
  `boltproto.errors`: `PackOverflowError` for values too large to pack,
  `PackIOError` when a buffer ends early and `UnpackError` for malformed
  data, all derived from `PackstreamError`.
- `boltproto.messages.MessageTag` holds the struct tags of the Bolt messages.
- `boltproto.hydrator.Hydrator.hydrate` turns one response message into a
  `Success`, `Ignored`, `Neo4jError` or `Record`. Values inside records become
  `Node`, `Relationship`, `Path`, `Point2D`, `Point3D` and `Duration` objects
  (from `boltproto.values`), `datetime`, `date` and `time` objects, or plain
  Python values. `Success` carries fields, bookmark, statement type, counters,
  query plans (`Plan`, `ProfiledPlan`) and notifications; `Success.summary()`
  gathers these into a `Summary`. Anything that cannot be decoded raises
  `HydrationError`.
- `boltproto.outgoing.Outgoing` packs request messages (HELLO, BEGIN, RUN,
  PULL, DISCARD, COMMIT, ROLLBACK, RESET, GOODBYE, or any struct through
  `append_x`). `take_messages()` returns the packed messages as a list of
  `bytes` and clears them. Values of a type that cannot be sent raise
  `UnsupportedTypeError`.
- `boltproto.routing.parse_routing_table_record` reads a routing table
  record into a `RoutingTable` of readers, writers and routers, raising
  `ValueError` when the record is malformed.
- `boltproto.stream.Stream` buffers records of a result;
  `boltproto.stream.OpenStreams` tracks which streams are open on a
  connection and which one is current.
- `boltproto.pool.Pool` is a thread-safe connection pool over several
  servers. It prefers servers with idle connections and few busy ones,
  spreads use round-robin, and penalises servers that failed to connect in
  the last three minutes (`boltproto.server.Server` keeps the per-server
  state).
- `boltproto.retry.RetryState` decides whether a failed transaction should be
  retried, sleeping between attempts for a jittered delay from
  `boltproto.throttler.Throttler`.

## Temporal values

`Outgoing` sends Python temporal values as follows:

| Python value                             | Bolt struct |
|------------------------------------------|-------------|
| `datetime` with a `ZoneInfo` zone or UTC | `f` (named zone) |
| `datetime` with any other fixed offset   | `F` (offset) |
| naive `datetime`                         | `d` (local date time) |
| `date`                                   | `D` |
| `time` with a zone                       | `T` |
| naive `time`                             | `t` (local time) |
| `Duration`                               | `E` |

The hydrator reads them back into the same kinds of value. Python keeps
microseconds, so nanoseconds sent by the server are truncated.

## Encoding and decoding

```python
from boltproto.packer import Packer
from boltproto.unpacker import PackedType, Unpacker

packer = Packer()
packer.map_header(1)
packer.string("answer")
packer.int64(42)
data = packer.getvalue()

unpacker = Unpacker(data)
unpacker.next()
assert unpacker.curr is PackedType.MAP
assert unpacker.length() == 1
unpacker.next()
assert unpacker.string() == "answer"
unpacker.next()
assert unpacker.int64() == 42
```

## Building requests and reading responses

```python
from boltproto.hydrator import Hydrator, Record, Success
from boltproto.outgoing import Outgoing

out = Outgoing()
out.append_run("RETURN $x", {"x": 1}, {"mode": "r"})
out.append_pull_n(1000)
messages = out.take_messages()  # list of packed messages, one bytes each

hydrator = Hydrator()
response = hydrator.hydrate(message_bytes_from_server)
if isinstance(response, Success):
    print(response.fields)
elif isinstance(response, Record):
    print(response.values)
```

## Pooling connections

A connection handed to the pool needs a `server_name` and a `birthdate`
(seconds, on the same clock as the pool's `now`, `time.time` by default), and
the methods `is_alive()`, `reset()` and `close()`; see
`boltproto.server.Connection`.

```python
from boltproto.pool import Pool

pool = Pool(max_size=10, max_age=3600.0, connect=open_connection)
conn = pool.borrow(["db1:7687", "db2:7687"], wait=True, timeout=5.0)
try:
    ...
finally:
    pool.return_connection(conn)
```

`borrow` raises `PoolFull` when it may not wait, `PoolTimeout` when the
timeout passes, `PoolClosed` after `close()`, and the connect error itself
when no server could be reached. `clean_up()` closes idle connections older
than `max_age` and forgets servers left without connections.

## Retrying transactions

```python
from boltproto.pool import PoolError
from boltproto.retry import RetryState

def run_with_retries(pool, servers, work, router):
    state = RetryState(max_transaction_retry_time=30.0, router=router,
                       database_name="neo4j")
    while state.should_continue():
        try:
            conn = pool.borrow(servers, timeout=5.0)
        except PoolError as exc:
            state.on_failure(None, exc, False)
            continue
        try:
            return work(conn)
        except Exception as exc:
            state.on_failure(conn, exc, False)
        finally:
            pool.return_connection(conn)
    raise state.last_err
```

Cluster errors make the router invalidate the database's routing table;
transient errors and lost connections are retried until
`max_transaction_retry_time` passes. A connection lost during commit stops
retrying with `CommitFailedDeadError`.

## Logging

`boltproto.pool` and `boltproto.retry` report through the standard `logging`
module under their module names.

## What it does not do

The package does not open network connections, perform the Bolt handshake,
negotiate TLS or split messages into transport chunks. There is no driver,
session or transaction API: the pieces above are meant to be assembled by the
code that owns the connections.

## Running the tests

```
pip install -e ".[test]"
pytest
```