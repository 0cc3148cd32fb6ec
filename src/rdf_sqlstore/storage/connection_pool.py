"""
Connection pooling for quadruple stores.

Every store call checks a DB-API connection out of the pool and returns it
when the call ends, so no statement or cursor state is shared between
calls. Provides:
- Lazy creation up to a configurable size
- Checkout/checkin semantics with a timeout on exhaustion
- Discarding of connections left broken by a failed call
- Context manager support
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from queue import Empty, LifoQueue
from typing import Any, Callable, Dict, Iterator, Optional

logger = logging.getLogger(__name__)


class PoolExhaustedError(Exception):
    """Raised when pool is exhausted and timeout expires."""
    pass


class PoolClosedError(Exception):
    """Raised when checking out from a closed pool."""
    pass


@dataclass
class PooledConnection:
    """A DB-API connection wrapper that tracks usage state."""

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    raw: Any = None
    checked_out: bool = False
    checked_out_at: Optional[float] = None
    checked_out_by: Optional[int] = None  # Thread ID
    use_count: int = 0
    last_used_at: Optional[float] = None

    def mark_checked_out(self) -> None:
        self.checked_out = True
        self.checked_out_at = time.time()
        self.checked_out_by = threading.current_thread().ident
        self.use_count += 1

    def mark_returned(self) -> None:
        self.checked_out = False
        self.last_used_at = time.time()
        self.checked_out_at = None
        self.checked_out_by = None


@dataclass
class PoolStats:
    """Statistics for connection pool monitoring."""

    total_connections: int = 0
    available_connections: int = 0
    checked_out_connections: int = 0
    total_checkouts: int = 0
    total_timeouts: int = 0
    total_discards: int = 0


class ConnectionPool:
    """
    Thread-safe pool of DB-API connections.

    Connections are opened by the factory on demand until max_size is
    reached; after that a checkout waits up to timeout seconds for one to
    be returned.

    Example:
        pool = ConnectionPool(dialect.connect, max_size=4)

        with pool.connection() as conn:
            conn.execute("SELECT 1")
    """

    def __init__(
        self,
        connection_factory: Callable[[], Any],
        max_size: int = 1,
        timeout: float = 30.0,
    ):
        """
        Initialize connection pool.

        Args:
            connection_factory: Callable opening a new DB-API connection
            max_size: Maximum number of open connections
            timeout: Seconds to wait for an available connection
        """
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self._factory = connection_factory
        self._max_size = max_size
        self._timeout = timeout

        self._idle: LifoQueue[PooledConnection] = LifoQueue(maxsize=max_size)
        self._lock = threading.Lock()
        self._all_connections: Dict[str, PooledConnection] = {}
        self._stats = PoolStats()
        self._closed = False

    @property
    def max_size(self) -> int:
        return self._max_size

    @property
    def closed(self) -> bool:
        return self._closed

    def _create_connection(self) -> PooledConnection:
        raw = self._factory()
        conn = PooledConnection(raw=raw)
        self._all_connections[conn.id] = conn
        logger.debug(f"Opened pooled connection {conn.id}")
        return conn

    @contextmanager
    def connection(self, timeout: Optional[float] = None) -> Iterator[Any]:
        """
        Check out a connection for the duration of the block.

        A connection whose block raised is closed and dropped when
        discard() was called for it inside the block.

        Yields:
            The raw DB-API connection

        Raises:
            PoolExhaustedError: If no connection is available within timeout
            PoolClosedError: If the pool has been closed
        """
        conn = self._checkout(timeout)
        try:
            yield conn.raw
        finally:
            self._checkin(conn)

    def _checkout(self, timeout: Optional[float] = None) -> PooledConnection:
        if self._closed:
            raise PoolClosedError("Pool is closed")

        effective_timeout = timeout if timeout is not None else self._timeout

        try:
            conn = self._idle.get_nowait()
        except Empty:
            conn = None
            with self._lock:
                if len(self._all_connections) < self._max_size:
                    conn = self._create_connection()
                    self._stats.total_connections += 1
                    self._stats.available_connections += 1
            if conn is None:
                try:
                    conn = self._idle.get(timeout=effective_timeout)
                except Empty:
                    with self._lock:
                        self._stats.total_timeouts += 1
                    raise PoolExhaustedError(
                        f"No connection available after {effective_timeout}s timeout"
                    )

        conn.mark_checked_out()
        with self._lock:
            self._stats.available_connections -= 1
            self._stats.checked_out_connections += 1
            self._stats.total_checkouts += 1
        return conn

    def _checkin(self, conn: PooledConnection) -> None:
        conn.mark_returned()
        with self._lock:
            self._stats.checked_out_connections -= 1
            dropped = conn.id not in self._all_connections
            if self._closed and not dropped:
                del self._all_connections[conn.id]
                self._stats.total_connections -= 1

        if dropped or self._closed:
            self._close_raw(conn)
            return

        with self._lock:
            self._stats.available_connections += 1
        self._idle.put(conn)

    def discard(self, raw: Any) -> None:
        """
        Mark a checked-out connection as unusable.

        It is closed instead of being returned when its block exits.
        """
        with self._lock:
            for conn_id, conn in list(self._all_connections.items()):
                if conn.raw is raw:
                    del self._all_connections[conn_id]
                    self._stats.total_connections -= 1
                    self._stats.total_discards += 1
                    logger.debug(f"Discarded pooled connection {conn_id}")
                    break

    def _close_raw(self, conn: PooledConnection) -> None:
        try:
            conn.raw.close()
        except Exception as e:
            logger.warning(f"Error closing pooled connection {conn.id}: {e}")

    def stats(self) -> PoolStats:
        """Get current pool statistics."""
        with self._lock:
            return PoolStats(
                total_connections=self._stats.total_connections,
                available_connections=self._stats.available_connections,
                checked_out_connections=self._stats.checked_out_connections,
                total_checkouts=self._stats.total_checkouts,
                total_timeouts=self._stats.total_timeouts,
                total_discards=self._stats.total_discards,
            )

    def size(self) -> int:
        """Get current pool size (open connections)."""
        with self._lock:
            return self._stats.total_connections

    def available(self) -> int:
        """Get number of idle connections."""
        with self._lock:
            return self._stats.available_connections

    def close(self) -> None:
        """Close idle connections; checked-out ones close when returned."""
        self._closed = True

        while True:
            try:
                conn = self._idle.get_nowait()
            except Empty:
                break
            self._close_raw(conn)

        with self._lock:
            self._all_connections = {
                conn_id: conn
                for conn_id, conn in self._all_connections.items()
                if conn.checked_out
            }
            self._stats.total_connections = len(self._all_connections)
            self._stats.available_connections = 0

    def __enter__(self) -> "ConnectionPool":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
