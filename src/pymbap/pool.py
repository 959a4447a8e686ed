"""ConnectionPool: a fixed number of eagerly opened sessions to one address."""

import logging
import queue
import threading
from contextlib import contextmanager
from typing import Any, Callable, Iterator

from .errors import ModbusClientError, PoolClosedError, PoolTimeoutError
from .session import Session
from .types import DEFAULT_POOL_CAPACITY, DEFAULT_TIMEOUT, ClientConfig, PoolConfig

logger = logging.getLogger(__name__)

SessionFactory = Callable[[ClientConfig], Session]


class ConnectionPool:
    """
    Bounded pool of Sessions to one Modbus TCP address.

    All sessions are opened at construction; if any connection fails the ones
    already opened are closed and the TransportError propagates. Idle sessions
    live in a bounded queue, so no more than capacity sessions are ever checked
    out. Callers must not share a checked-out session between threads.
    """

    def __init__(
        self,
        address: str,
        capacity: int = DEFAULT_POOL_CAPACITY,
        timeout: float = DEFAULT_TIMEOUT,
        session_factory: SessionFactory | None = None,
    ) -> None:
        self._config = PoolConfig(address=address, capacity=capacity, timeout=timeout)
        self._factory: SessionFactory = session_factory or Session.open
        self._idle: "queue.Queue[Session]" = queue.Queue(maxsize=self._config.capacity)
        self._closed = False
        self._state_lock = threading.Lock()
        # sessions this pool created and has not dropped, and the subset checked out
        self._members: set[Session] = set()
        self._checked_out: set[Session] = set()

        client_config = self._config.client_config()
        for i in range(self._config.capacity):
            try:
                session = self._factory(client_config)
            except ModbusClientError:
                logger.warning(
                    "Pool to %s failed opening connection %d of %d",
                    address,
                    i + 1,
                    self._config.capacity,
                )
                self.shutdown()
                raise
            self._members.add(session)
            self._idle.put_nowait(session)
        logger.info("Pool to %s opened with %d sessions", address, self._config.capacity)

    @classmethod
    def from_config(cls, config: PoolConfig, session_factory: SessionFactory | None = None) -> "ConnectionPool":
        return cls(config.address, config.capacity, config.timeout, session_factory=session_factory)

    @property
    def address(self) -> str:
        return self._config.address

    @property
    def capacity(self) -> int:
        return self._config.capacity

    @property
    def timeout(self) -> float:
        return self._config.timeout

    @property
    def closed(self) -> bool:
        return self._closed

    def available(self) -> int:
        """Approximate number of idle sessions."""
        return self._idle.qsize()

    def acquire(self, timeout: float | None = None) -> Session:
        """
        Check out an idle session, waiting up to timeout seconds (pool timeout if None).
        Raises PoolTimeoutError if none frees up, PoolClosedError after shutdown.
        """
        if self._closed:
            raise PoolClosedError(f"pool to {self.address} is shut down")
        wait = self._config.timeout if timeout is None else timeout
        try:
            if wait <= 0:
                session = self._idle.get_nowait()
            else:
                session = self._idle.get(timeout=wait)
        except queue.Empty:
            raise PoolTimeoutError(
                f"timeout waiting for connection to {self.address} after {wait:g}s"
            ) from None
        with self._state_lock:
            if not self._closed:
                self._checked_out.add(session)
                return session
            self._members.discard(session)
        session.close()
        raise PoolClosedError(f"pool to {self.address} is shut down")

    def release(self, session: Session) -> None:
        """
        Return a checked-out session to the idle set.

        A session that is already closed is dropped from the pool. Releasing a
        session that is already idle is ignored; releasing one the pool never
        handed out closes it. After shutdown every released session is closed.
        """
        with self._state_lock:
            if session in self._checked_out:
                self._checked_out.discard(session)
                if self._closed or session.closed:
                    self._members.discard(session)
                    reason = "pool shut down" if self._closed else "session already closed"
                else:
                    try:
                        self._idle.put_nowait(session)
                        return
                    except queue.Full:
                        self._members.discard(session)
                        reason = "pool already full"
            elif session in self._members:
                logger.warning("Session %r released twice; it is already idle", session)
                return
            else:
                reason = "session not from this pool"
        if reason != "pool shut down":
            logger.warning("Pool to %s not taking back %r: %s", self.address, session, reason)
        session.close()

    @contextmanager
    def session(self, timeout: float | None = None) -> Iterator[Session]:
        """Acquire a session for the duration of a with-block, then release it."""
        s = self.acquire(timeout)
        try:
            yield s
        finally:
            self.release(s)

    def shutdown(self) -> None:
        """
        Close every idle session and refuse further acquires. Checked-out sessions
        are closed when released.
        """
        drained: list[Session] = []
        with self._state_lock:
            already_closed = self._closed
            self._closed = True
            while True:
                try:
                    session = self._idle.get_nowait()
                except queue.Empty:
                    break
                self._members.discard(session)
                drained.append(session)
        for session in drained:
            session.close()
        if not already_closed:
            logger.info("Pool to %s shut down (%d idle sessions closed)", self.address, len(drained))

    def __enter__(self) -> "ConnectionPool":
        return self

    def __exit__(self, *args: Any) -> None:
        self.shutdown()
