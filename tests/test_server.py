import time
from dataclasses import dataclass

from boltproto.server import (
    NEW_CONNECTION_PENALTY,
    REMEMBER_FAILED_CONNECT_DURATION,
    Server,
)


@dataclass(eq=False)
class FakeConn:
    name: str = ""
    alive: bool = True
    birth: float = 0.0
    id: int = 0
    closed: bool = False

    @property
    def server_name(self):
        return self.name

    @property
    def birthdate(self):
        return self.birth

    def is_alive(self):
        return self.alive

    def reset(self):
        pass

    def close(self):
        self.closed = True


def _align_round_robin():
    # Keep the shared counter's low byte far from wrapping during a test.
    probe = Server()
    probe.register_busy(FakeConn())
    while probe.round_robin & 0xFF > 100:
        probe.register_busy(FakeConn())


def test_register_unregister_size():
    s = Server()
    assert s.size() == 0
    c1 = FakeConn()
    s.register_busy(c1)
    assert s.size() == 1
    c2 = FakeConn()
    s.register_busy(c2)
    assert s.size() == 2
    s.unregister_busy(c2)
    assert s.size() == 1
    s.unregister_busy(c1)
    assert s.size() == 0


def test_unregister_unknown_is_ignored():
    s = Server()
    s.register_busy(FakeConn())
    s.unregister_busy(FakeConn())
    assert s.size() == 1


def test_get_idle_return_busy():
    s = Server()
    c1 = FakeConn()
    s.register_busy(c1)
    s.return_busy(c1)
    assert s.num_idle() == 1

    c2 = s.get_idle()
    assert c2 is c1
    assert s.get_idle() is None

    s.return_busy(c2)
    assert s.get_idle() is c1


def test_remove_idle_older_than():
    s = Server()
    now = time.time()
    conns = [FakeConn(birth=now) for _ in range(3)]
    for c in conns:
        s.register_busy(c)
        s.return_busy(c)

    conns[1].birth = now - 20
    s.remove_idle_older_than(now, 10)
    assert s.size() == 2
    assert conns[1].closed
    assert not conns[0].closed

    b1 = s.get_idle()
    b2 = s.get_idle()
    assert b1 is not None and b2 is not None
    assert s.get_idle() is None

    s.return_busy(b1)
    s.return_busy(b2)
    conns[0].birth = now - 20
    conns[2].birth = now - 20
    s.remove_idle_older_than(now, 10)
    assert s.get_idle() is None
    assert s.size() == 0


def test_close_all():
    s = Server()
    idle, busy = FakeConn(), FakeConn()
    s.register_busy(idle)
    s.return_busy(idle)
    s.register_busy(busy)
    s.close_all()
    assert idle.closed and busy.closed
    assert s.size() == 0


def test_failed_connect_is_forgotten():
    s = Server()
    now = 1000.0
    assert not s.has_failed_connect(now)
    s.notify_failed_connect(now)
    assert s.has_failed_connect(now + 1)
    assert not s.has_failed_connect(now + REMEMBER_FAILED_CONNECT_DURATION)
    s.notify_successful_connect()
    assert not s.has_failed_connect(now)


def test_penalty_of_empty_server():
    assert Server().calculate_penalty(0.0) == NEW_CONNECTION_PENALTY


def test_server_penalty():
    _align_round_robin()
    now = time.time()
    srv1 = Server()
    srv2 = Server()

    def assert_gt(s1, s2, at):
        assert s1.calculate_penalty(at) > s2.calculate_penalty(at)

    c11 = FakeConn(id=11)
    srv1.register_busy(c11)
    assert_gt(srv1, srv2, now)

    srv1.return_busy(c11)
    assert_gt(srv2, srv1, now)

    c21 = FakeConn(id=21)
    srv2.register_busy(c21)
    srv2.return_busy(c21)
    assert_gt(srv2, srv1, now)

    srv1.get_idle()
    srv1.return_busy(c11)
    assert_gt(srv1, srv2, now)

    c12 = FakeConn(id=12)
    srv1.register_busy(c12)
    srv1.return_busy(c12)
    c22 = FakeConn(id=22)
    srv2.register_busy(c22)
    srv2.return_busy(c22)
    assert_gt(srv2, srv1, now)

    srv1.get_idle()
    srv1.get_idle()
    srv2.get_idle()
    assert_gt(srv1, srv2, now)

    srv2.get_idle()
    srv2.return_busy(c21)
    srv2.return_busy(c22)
    srv1.return_busy(c11)
    srv1.return_busy(c12)
    assert_gt(srv2, srv1, now)

    srv1.notify_failed_connect(now)
    assert_gt(srv1, srv2, now)
    assert srv1.has_failed_connect(now)
    assert not srv2.has_failed_connect(now)
    srv2.get_idle()
    srv2.get_idle()
    assert_gt(srv1, srv2, now)

    assert_gt(srv2, srv1, now + 3 * 3600)

    srv1.notify_successful_connect()
    assert_gt(srv2, srv1, now)