"""
Schema lifecycle of the quadruples table.

The manager probes the catalog once, when a store is constructed, and
creates the table and its covering indexes when they are missing.
"""

from __future__ import annotations
from enum import Enum, auto
from typing import Optional
import logging

from rdf_sqlstore.exceptions import StoreInitializationError
from rdf_sqlstore.storage.connection_pool import ConnectionPool
from rdf_sqlstore.storage.dialects import SQLDialect

logger = logging.getLogger(__name__)


class SchemaState(Enum):
    """Outcome of probing the target database."""
    UNPROBED = auto()
    READY = auto()          # Table found
    TABLE_MISSING = auto()  # Database reachable, table absent
    INVALID = auto()        # Database unreachable or probe failed


class SchemaManager:
    """
    Guarantees the quadruples table exists before the store is used.

    Only an INVALID data source or a failed creation is fatal; both are
    raised as StoreInitializationError from ensure().
    """

    def __init__(self, dialect: SQLDialect, pool: ConnectionPool):
        self._dialect = dialect
        self._pool = pool
        self._state = SchemaState.UNPROBED
        self.last_error: Optional[BaseException] = None

    @property
    def state(self) -> SchemaState:
        return self._state

    def probe(self) -> SchemaState:
        """Query the catalog for the quadruples table."""
        try:
            with self._pool.connection() as conn:
                cursor = conn.cursor()
                try:
                    cursor.execute(self._dialect.probe_sql())
                    row = cursor.fetchone()
                finally:
                    cursor.close()
        except Exception as e:
            self.last_error = e
            self._state = SchemaState.INVALID
            logger.warning(f"Probe of {self._dialect.name} database failed: {e}")
            return self._state

        found = int(row[0]) if row else 0
        self._state = SchemaState.READY if found > 0 else SchemaState.TABLE_MISSING
        logger.debug(f"Probed {self._dialect.name} database: {self._state.name}")
        return self._state

    def create(self) -> None:
        """
        Create the table and its indexes in one transaction.

        Raises:
            StoreInitializationError: If any statement fails
        """
        d = self._dialect
        try:
            with self._pool.connection() as conn:
                cursor = conn.cursor()
                try:
                    cursor.execute(d.begin_sql())
                    try:
                        for statement in d.create_sql():
                            cursor.execute(statement)
                        cursor.execute(d.commit_sql())
                    except Exception:
                        cursor.execute(d.rollback_sql())
                        raise
                finally:
                    cursor.close()
        except Exception as e:
            raise StoreInitializationError(
                f"Cannot initialize {d.name.upper()} store because: {e}",
                engine=d.name,
                cause=e,
            ) from e

        self._state = SchemaState.READY
        logger.info(f"Created quadruples table on {d.name} database {d.describe()}")

    def ensure(self) -> SchemaState:
        """
        Probe, then create the schema when the table is missing.

        Returns:
            SchemaState.READY

        Raises:
            StoreInitializationError: If the database is unreachable or
                the schema cannot be created
        """
        state = self.probe()
        if state == SchemaState.INVALID:
            d = self._dialect
            raise StoreInitializationError(
                f"Cannot initialize {d.name.upper()} store because: unable to open the database"
                + (f" ({self.last_error})" if self.last_error else "") + ".",
                engine=d.name,
                cause=self.last_error,
            )
        if state == SchemaState.TABLE_MISSING:
            self.create()
        return self._state
