import random
import threading
import time
from dataclasses import dataclass

import pytest

from boltproto.pool import Pool, PoolClosed, PoolError, PoolFull, PoolTimeout
from boltproto.server import REMEMBER_FAILED_CONNECT_DURATION

MAX_AGE = 1.0
BIRTH = 1_000_000.0


@dataclass(eq=False)
class FakeConn:
    name: str = ""
    alive: bool = True
    birth: float = 0.0
    id: int = 0
    closed: bool = False
    resets: int = 0

    @property
    def server_name(self):
        return self.name

    @property
    def birthdate(self):
        return self.birth

    def is_alive(self):
        return self.alive

    def reset(self):
        self.resets += 1

    def close(self):
        self.closed = True


class Clock:
    def __init__(self, t):
        self.t = t

    def __call__(self):
        return self.t


def succeeding_connect(name):
    return FakeConn(name=name, birth=BIRTH)


def make_pool(max_size=1, max_age=MAX_AGE, connect=succeeding_connect, clock=None):
    return Pool(max_size, max_age, connect, "poolid", clock or Clock(BIRTH))


def wait_for_queue(pool):
    deadline = time.monotonic() + 5
    while pool.queue_size() == 0:
        assert time.monotonic() < deadline, "borrower never queued"
        time.sleep(0.001)


def test_single_thread_borrow_return():
    p = make_pool()
    conn = p.borrow(["srv1"])
    assert conn.server_name == "srv1"
    p.return_connection(conn)
    assert p.servers()["srv1"].num_idle() == 1
    assert conn.resets == 1
    p.close()


def test_second_borrower_waits_for_return():
    p = make_pool()
    c1 = p.borrow(["srv1"])
    results = []

    def second():
        results.append(p.borrow(["srv1"], True, 5))

    thread = threading.Thread(target=second)
    thread.start()
    wait_for_queue(p)
    p.return_connection(c1)
    thread.join(5)
    assert results == [c1]
    p.close()


def test_borrow_without_wait_raises_pool_full():
    p = make_pool()
    p.borrow(["srv1"])
    with pytest.raises(PoolFull) as info:
        p.borrow(["srv1"], wait=False)
    assert info.value.servers == ["srv1"]
    p.close()


def test_multiple_threads_borrow_and_return():
    max_conns = 2
    p = make_pool(max_size=max_conns)
    errors = []

    def worker():
        try:
            for _ in range(5):
                c = p.borrow(["srv1"], True, 5)
                time.sleep(random.randint(0, 6) / 1000)
                p.return_connection(c)
        except Exception as exc:
            errors.append(exc)

    threads = [threading.Thread(target=worker) for _ in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(10)
    assert errors == []
    assert all(s.num_idle() == max_conns for s in p.servers().values())


def test_failing_connect_returns_connect_error():
    failing_error = RuntimeError("whatever")

    def failing_connect(name):
        raise failing_error

    p = make_pool(max_size=2, connect=failing_connect)
    with pytest.raises(RuntimeError) as info:
        p.borrow(["srv1"])
    assert info.value is failing_error


def test_borrow_with_no_servers():
    p = make_pool()
    with pytest.raises(PoolError):
        p.borrow([])


def test_borrow_times_out():
    p = make_pool()
    c1 = p.borrow(["A"])
    with pytest.raises(PoolTimeout) as info:
        p.borrow(["A"], True, 0.05)
    assert info.value.servers == ["A"]
    assert p.queue_size() == 0
    p.return_connection(c1)
    assert p.servers()["A"].num_idle() == 1


def test_borrow_from_closed_pool():
    p = make_pool()
    p.close()
    with pytest.raises(PoolClosed):
        p.borrow(["A"])


def test_close_closes_connections():
    p = make_pool(max_size=2)
    c1 = p.borrow(["A"])
    c2 = p.borrow(["A"])
    p.return_connection(c1)
    p.close()
    assert c1.closed and c2.closed
    assert p.servers() == {}


def test_order_of_servers_is_priority():
    p = make_pool()
    c = p.borrow(["srvA", "srvB", "srvC", "srvD"])
    assert c.server_name == "srvA"
    p.close()


def test_dead_connection_not_put_back():
    p = make_pool(max_size=2)
    c = p.borrow(["srvA"])
    c.alive = False
    p.return_connection(c)
    servers = p.servers()
    assert "srvA" not in servers or servers["srvA"].size() == 0
    assert c.closed


def test_too_old_connection_not_put_back():
    p = make_pool(max_size=2, clock=Clock(BIRTH + 2 * MAX_AGE))
    c = p.borrow(["srvA"])
    p.return_connection(c)
    servers = p.servers()
    assert "srvA" not in servers or servers["srvA"].size() == 0


def test_dead_connection_removes_older_idle_connections():
    p = Pool(3, 0, succeeding_connect, "poolid")
    c1 = p.borrow(["A"])
    c2 = p.borrow(["A"])
    c3 = p.borrow(["A"])
    now = time.time()
    c1.birth, c1.id = now - 1, 1
    c2.birth, c2.id = now, 2
    c3.birth, c3.id = now + 1, 3
    p.return_connection(c1)
    p.return_connection(c3)
    assert len(p.servers()) == 1
    assert p.servers()["A"].num_idle() == 2
    c2.alive = False
    p.return_connection(c2)
    assert p.servers()["A"].num_idle() == 1
    assert c1.closed
    assert not c3.closed


def test_too_old_connections_not_borrowed():
    clock = Clock(BIRTH)
    p = make_pool(clock=clock)
    c1 = p.borrow(["srvA"])
    c1.id = 123
    p.return_connection(c1)
    clock.t += 2 * MAX_AGE
    c2 = p.borrow(["srvA"])
    assert c2 is not c1
    assert c2.id != 123
    assert c1.closed


def test_add_servers_when_existing_are_full():
    p = make_pool()
    assert p.borrow(["A"]).server_name == "A"
    assert p.borrow(["B"]).server_name == "B"
    assert len(p.servers()) == 2


def test_cleanup_removes_servers_with_only_old_idle_connections():
    clock = Clock(BIRTH)
    p = make_pool(max_size=0, max_age=MAX_AGE, clock=clock)
    c1 = p.borrow(["A"])
    c2 = p.borrow(["B"])
    p.return_connection(c1)
    p.return_connection(c2)
    assert len(p.servers()) == 2
    assert p.servers()["A"].num_idle() == 1
    assert p.servers()["B"].num_idle() == 1

    clock.t = BIRTH + MAX_AGE + 1
    p.clean_up()
    assert len(p.servers()) == 0
    assert c1.closed and c2.closed


def test_cleanup_keeps_servers_with_busy_connections():
    clock = Clock(BIRTH)
    p = make_pool(max_size=0, max_age=MAX_AGE, clock=clock)
    p.borrow(["A"])
    c2 = p.borrow(["B"])
    p.return_connection(c2)
    assert len(p.servers()) == 2
    assert p.servers()["A"].num_idle() == 0
    assert p.servers()["B"].num_idle() == 1

    clock.t = BIRTH + MAX_AGE + 1
    p.clean_up()
    assert list(p.servers()) == ["A"]


def test_cleanup_keeps_servers_with_recent_connect_failures():
    def failing_connect(name):
        raise RuntimeError("an error")

    clock = Clock(BIRTH)
    p = make_pool(max_size=0, max_age=MAX_AGE, connect=failing_connect, clock=clock)
    with pytest.raises(RuntimeError):
        p.borrow(["A"])
    assert len(p.servers()) == 1
    assert p.servers()["A"].num_idle() == 0

    clock.t = BIRTH + MAX_AGE + 1
    p.clean_up()
    assert len(p.servers()) == 1

    clock.t = BIRTH + MAX_AGE + REMEMBER_FAILED_CONNECT_DURATION + 1
    p.clean_up()
    assert len(p.servers()) == 0


def test_error_messages():
    assert str(PoolClosed()) == "Pool closed"
    assert "['a']" in str(PoolFull(["a"]))
    assert "['b']" in str(PoolTimeout(["b"]))