"""
Transactional execution of quadruple reads and mutations.

Every call follows the same shape: check out a connection, open a fresh
cursor, apply the statement timeout of its category, BEGIN, execute,
COMMIT, close the cursor and return the connection. Any failure rolls
back, closes and re-raises as StoreOperationError with the original
message.
"""

from __future__ import annotations
from contextlib import contextmanager
from threading import Event
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple
import logging

from rdf_sqlstore.exceptions import (
    OperationCancelledError,
    StoreError,
    StoreOperationError,
)
from rdf_sqlstore.storage.connection_pool import ConnectionPool
from rdf_sqlstore.storage.dialects import DELETE, INSERT, SELECT, SQLDialect
from rdf_sqlstore.storage.patterns import CompiledPattern, PatternCompiler

logger = logging.getLogger(__name__)

Row = Tuple[Any, ...]


class CancellationToken:
    """
    Token for cooperative cancellation of store calls.

    Only observed before a call begins its transaction; a transaction that
    has started always runs to commit or rollback.
    """

    def __init__(self):
        self._cancelled = Event()

    def cancel(self):
        """Request cancellation."""
        self._cancelled.set()

    def is_cancelled(self) -> bool:
        """Check if cancellation was requested."""
        return self._cancelled.is_set()

    def check(self):
        """Raise if cancelled."""
        if self._cancelled.is_set():
            raise OperationCancelledError("Operation was cancelled before it started")


class QuadrupleEngine:
    """
    Runs the statements of one store against its connection pool.

    Args:
        dialect: Target engine
        pool: Pool the connections are checked out from
        timeouts: Seconds per statement category (select, insert, delete)
    """

    def __init__(
        self,
        dialect: SQLDialect,
        pool: ConnectionPool,
        timeouts: Optional[Dict[str, int]] = None,
    ):
        self._dialect = dialect
        self._pool = pool
        self._compiler = PatternCompiler(dialect)
        self._timeouts = timeouts or {}

    @property
    def compiler(self) -> PatternCompiler:
        return self._compiler

    # -------------------------------------------------------------------------
    # Call scaffolding
    # -------------------------------------------------------------------------

    def _apply_timeout(self, cursor: Any, category: str) -> None:
        seconds = self._timeouts.get(category)
        if not seconds:
            return
        statement = self._dialect.timeout_sql(category, seconds)
        if statement:
            cursor.execute(statement)

    def _rollback(self, conn: Any, cursor: Any) -> None:
        try:
            cursor.execute(self._dialect.rollback_sql())
        except Exception as e:
            # Connection state is unknown after a failed rollback
            logger.warning(f"Rollback on {self._dialect.name} failed: {e}")
            self._pool.discard(conn)

    @staticmethod
    def _close_cursor(cursor: Any) -> None:
        try:
            cursor.close()
        except Exception as e:
            logger.debug(f"Error closing cursor: {e}")

    @contextmanager
    def transaction(
        self,
        category: str,
        action: str,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Iterator[Any]:
        """
        Run the block inside one transaction on a pooled connection.

        Args:
            category: Timeout category (select, insert or delete)
            action: Verb phrase used in error messages ("insert data into")
            cancel_token: Checked once, before anything is executed

        Yields:
            A fresh cursor

        Raises:
            OperationCancelledError: If cancelled before the call started
            StoreOperationError: If anything fails; the transaction is
                rolled back first
        """
        if cancel_token is not None:
            cancel_token.check()

        d = self._dialect
        try:
            with self._pool.connection() as conn:
                cursor = conn.cursor()
                began = False
                try:
                    self._apply_timeout(cursor, category)
                    cursor.execute(d.begin_sql())
                    began = True
                    yield cursor
                    cursor.execute(d.commit_sql())
                except BaseException:
                    if began:
                        self._rollback(conn, cursor)
                    raise
                finally:
                    self._close_cursor(cursor)
        except StoreError:
            raise
        except Exception as e:
            logger.debug(f"{d.name} call failed ({action}): {e}")
            raise StoreOperationError.wrap(action, d.name, e) from e

    @contextmanager
    def reading(
        self,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Iterator[Any]:
        """Like transaction() for single read statements, without BEGIN/COMMIT."""
        if cancel_token is not None:
            cancel_token.check()

        d = self._dialect
        try:
            with self._pool.connection() as conn:
                cursor = conn.cursor()
                try:
                    self._apply_timeout(cursor, SELECT)
                    yield cursor
                finally:
                    self._close_cursor(cursor)
        except StoreError:
            raise
        except Exception as e:
            logger.debug(f"{d.name} read failed: {e}")
            raise StoreOperationError.wrap("read data from", d.name, e) from e

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def insert(
        self,
        rows: Iterable[Row],
        cancel_token: Optional[CancellationToken] = None,
    ) -> int:
        """
        Insert rows unless their QuadrupleID already exists, all or nothing.

        Returns:
            Number of rows submitted (duplicates included)
        """
        sql = self._dialect.insert_sql()
        submitted = 0
        with self.transaction(INSERT, "insert data into", cancel_token) as cursor:
            for row in rows:
                cursor.execute(sql, self._dialect.insert_params(tuple(row)))
                submitted += 1
        logger.debug(f"Inserted {submitted} rows into {self._dialect.name} store")
        return submitted

    def delete(
        self,
        compiled: CompiledPattern,
        cancel_token: Optional[CancellationToken] = None,
    ) -> None:
        """Delete every row matching the pattern (all rows for the full scan)."""
        sql = self._compiler.delete_sql(compiled.template)
        with self.transaction(DELETE, "delete data from", cancel_token) as cursor:
            if compiled.params:
                cursor.execute(sql, compiled.params)
            else:
                cursor.execute(sql)
        logger.debug(f"Deleted by pattern '{compiled.signature}' from {self._dialect.name} store")

    def delete_by_id(
        self,
        quadruple_id: int,
        cancel_token: Optional[CancellationToken] = None,
    ) -> None:
        sql = self._compiler.delete_by_id_sql()
        with self.transaction(DELETE, "delete data from", cancel_token) as cursor:
            cursor.execute(sql, (quadruple_id,))

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def select(
        self,
        compiled: CompiledPattern,
        cancel_token: Optional[CancellationToken] = None,
    ) -> List[Sequence[Any]]:
        """Rows (flavor, context, subject, predicate, object) matching the pattern."""
        sql = self._compiler.select_sql(compiled.template)
        with self.reading(cancel_token) as cursor:
            if compiled.params:
                cursor.execute(sql, compiled.params)
            else:
                cursor.execute(sql)
            return cursor.fetchall()

    def exists(
        self,
        quadruple_id: int,
        cancel_token: Optional[CancellationToken] = None,
    ) -> bool:
        with self.reading(cancel_token) as cursor:
            cursor.execute(self._compiler.exists_sql(), (quadruple_id,))
            row = cursor.fetchone()
        return bool(row[0]) if row else False

    def count(self, cancel_token: Optional[CancellationToken] = None) -> int:
        with self.reading(cancel_token) as cursor:
            cursor.execute(self._compiler.count_sql())
            row = cursor.fetchone()
        return int(row[0]) if row else 0

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    def optimize(self) -> None:
        """Run the engine's statistics/compaction statements outside a transaction."""
        d = self._dialect
        try:
            with self._pool.connection() as conn:
                cursor = conn.cursor()
                try:
                    for statement in d.optimize_sql():
                        cursor.execute(statement)
                finally:
                    self._close_cursor(cursor)
        except Exception as e:
            raise StoreOperationError.wrap("optimize", d.name, e) from e
        logger.info(f"Optimized {d.name} store {d.describe()}")
