"""Tests for ConnectionPool capacity, blocking acquire, release misuse and shutdown."""

import threading
import time
from unittest.mock import MagicMock

import pytest

from pymbap import ClientConfig, ConnectionPool, PoolConfig, Session
from pymbap.errors import PoolClosedError, PoolTimeoutError, TransportError

from .conftest import FakeDevice, LoopbackServer


def fake_factory(created: list[Session] | None = None):
    def factory(config: ClientConfig) -> Session:
        session = Session(FakeDevice(), timeout=config.timeout, name=config.address)
        if created is not None:
            created.append(session)
        return session

    return factory


def test_pool_opens_all_sessions_eagerly() -> None:
    created: list[Session] = []
    pool = ConnectionPool("10.0.0.1:502", capacity=5, timeout=1.0, session_factory=fake_factory(created))
    assert len(created) == 5
    assert pool.available() == 5
    assert pool.capacity == 5


def test_pool_defaults() -> None:
    pool = ConnectionPool("10.0.0.1", capacity=0, timeout=0, session_factory=fake_factory())
    assert pool.capacity == 10
    assert pool.timeout == 5.0
    assert PoolConfig("10.0.0.1").client_config().port == 502


def test_acquire_times_out_when_exhausted() -> None:
    pool = ConnectionPool("10.0.0.1:502", capacity=5, timeout=1.0, session_factory=fake_factory())
    held = [pool.acquire() for _ in range(5)]
    assert len({id(s) for s in held}) == 5
    start = time.monotonic()
    with pytest.raises(PoolTimeoutError):
        pool.acquire(timeout=0.2)
    assert time.monotonic() - start >= 0.15


def test_acquire_waits_for_release() -> None:
    pool = ConnectionPool("10.0.0.1:502", capacity=1, timeout=1.0, session_factory=fake_factory())
    session = pool.acquire()
    timer = threading.Timer(0.1, pool.release, args=(session,))
    timer.start()
    try:
        assert pool.acquire(timeout=2.0) is session
    finally:
        timer.cancel()


def test_concurrent_checkouts_never_exceed_capacity() -> None:
    pool = ConnectionPool("10.0.0.1:502", capacity=5, timeout=5.0, session_factory=fake_factory())
    lock = threading.Lock()
    in_use: set[int] = set()
    peak = 0
    errors: list[BaseException] = []

    def worker() -> None:
        nonlocal peak
        try:
            for _ in range(20):
                with pool.session() as s:
                    with lock:
                        assert id(s) not in in_use
                        in_use.add(id(s))
                        peak = max(peak, len(in_use))
                    time.sleep(0.001)
                    with lock:
                        in_use.discard(id(s))
        except BaseException as e:  # noqa: BLE001
            errors.append(e)

    threads = [threading.Thread(target=worker) for _ in range(20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert 1 <= peak <= 5
    assert pool.available() == 5


def test_release_into_full_pool_closes_session() -> None:
    pool = ConnectionPool("10.0.0.1:502", capacity=2, timeout=1.0, session_factory=fake_factory())
    stray = Session(FakeDevice(), timeout=1.0)
    pool.release(stray)
    assert stray.closed
    assert pool.available() == 2


def test_double_release_does_not_grow_pool() -> None:
    pool = ConnectionPool("10.0.0.1:502", capacity=1, timeout=1.0, session_factory=fake_factory())
    session = pool.acquire()
    pool.release(session)
    pool.release(session)
    assert pool.available() == 1
    assert not session.closed
    again = pool.acquire()
    assert again is session
    again.write_single_coil(1, 0, True)
    assert again.read_coils(1, 0, 1) == [True]


def test_double_release_never_hands_out_a_session_twice() -> None:
    created: list[Session] = []
    pool = ConnectionPool("10.0.0.1:502", capacity=3, timeout=1.0, session_factory=fake_factory(created))
    a = pool.acquire()
    pool.acquire()
    pool.release(a)
    pool.release(a)
    assert pool.available() == 2
    held = [pool.acquire(timeout=0)]
    held.append(pool.acquire(timeout=0))
    assert len({id(s) for s in held}) == 2
    with pytest.raises(PoolTimeoutError):
        pool.acquire(timeout=0)
    assert not any(s.closed for s in created)


def test_release_of_closed_session_drops_it() -> None:
    pool = ConnectionPool("10.0.0.1:502", capacity=2, timeout=1.0, session_factory=fake_factory())
    session = pool.acquire()
    session.close()
    pool.release(session)
    assert pool.available() == 1


def test_construction_failure_closes_opened_sessions() -> None:
    created: list[Session] = []
    good = fake_factory(created)
    factory = MagicMock(side_effect=[good(ClientConfig("x:1")), good(ClientConfig("x:1")), TransportError("refused")])
    with pytest.raises(TransportError, match="refused"):
        ConnectionPool("10.0.0.1:502", capacity=4, timeout=1.0, session_factory=factory)
    assert len(created) == 2
    assert all(s.closed for s in created)


def test_shutdown_closes_idle_and_refuses_acquire() -> None:
    created: list[Session] = []
    pool = ConnectionPool("10.0.0.1:502", capacity=3, timeout=1.0, session_factory=fake_factory(created))
    out = pool.acquire()
    pool.shutdown()
    assert pool.closed
    assert [s.closed for s in created if s is not out] == [True, True]
    assert not out.closed
    with pytest.raises(PoolClosedError):
        pool.acquire()
    pool.release(out)
    assert out.closed
    pool.shutdown()


def test_release_racing_shutdown_closes_every_session() -> None:
    for _ in range(20):
        created: list[Session] = []
        pool = ConnectionPool("10.0.0.1:502", capacity=8, timeout=1.0, session_factory=fake_factory(created))
        held = [pool.acquire() for _ in range(8)]
        barrier = threading.Barrier(len(held) + 1)

        def give_back(session: Session) -> None:
            barrier.wait()
            pool.release(session)

        def stop() -> None:
            barrier.wait()
            pool.shutdown()

        threads = [threading.Thread(target=give_back, args=(s,)) for s in held]
        threads.append(threading.Thread(target=stop))
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert pool.closed
        assert all(s.closed for s in created)
        assert pool.available() == 0


def test_pool_context_manager_shuts_down() -> None:
    created: list[Session] = []
    with ConnectionPool("10.0.0.1:502", capacity=2, session_factory=fake_factory(created)) as pool:
        with pool.session() as s:
            s.write_single_register(1, 0, 5)
            assert s.read_holding_registers(1, 0, 1) == [5]
    assert all(s.closed for s in created)


def test_pool_over_tcp(server: LoopbackServer) -> None:
    server.memory.holding[3] = 7
    pool = ConnectionPool.from_config(PoolConfig(server.address, capacity=3, timeout=2.0))
    try:
        with pool.session() as s:
            assert s.read_holding_registers(1, 3, 1) == [7]
    finally:
        pool.shutdown()


def test_pool_construction_fails_when_unreachable(free_port: int) -> None:
    with pytest.raises(TransportError):
        ConnectionPool(f"127.0.0.1:{free_port}", capacity=2, timeout=1.0)
