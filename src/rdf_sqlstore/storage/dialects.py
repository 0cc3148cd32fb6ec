"""
SQL dialects for the supported engines.

Every engine-specific detail of the quadruple store lives here: identifier
spelling, parameter markers, the catalog probe, the schema DDL, the
insert-if-absent idiom, maintenance statements, statement timeouts and how
to open a connection. The rest of the store is engine-agnostic.

Supported engines:
- sqlite: standard library sqlite3
- duckdb: duckdb
- postgresql: psycopg (optional)
- mysql: pymysql (optional)
"""

from __future__ import annotations
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import unquote, urlsplit
import logging
import re
import sqlite3

try:
    import duckdb
    DUCKDB_AVAILABLE = True
except ImportError:
    DUCKDB_AVAILABLE = False

from rdf_sqlstore.exceptions import StoreInitializationError

logger = logging.getLogger(__name__)

MEMORY_DATABASE = ":memory:"

# Statement categories with their own timeout
SELECT = "select"
INSERT = "insert"
DELETE = "delete"

# Persisted columns in insert order
COLUMNS: Tuple[str, ...] = (
    "QuadrupleID",
    "TripleFlavor",
    "Context",
    "ContextID",
    "Subject",
    "SubjectID",
    "Predicate",
    "PredicateID",
    "Object",
    "ObjectID",
)

# Columns projected by pattern selects
SELECT_COLUMNS: Tuple[str, ...] = ("TripleFlavor", "Context", "Subject", "Predicate", "Object")

# name -> covered columns; together they cover every accessor combination
INDEXES: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("IDX_ContextID", ("ContextID",)),
    ("IDX_SubjectID", ("SubjectID",)),
    ("IDX_PredicateID", ("PredicateID",)),
    ("IDX_ObjectID", ("ObjectID", "TripleFlavor")),
    ("IDX_SubjectID_PredicateID", ("SubjectID", "PredicateID")),
    ("IDX_SubjectID_ObjectID", ("SubjectID", "ObjectID", "TripleFlavor")),
    ("IDX_PredicateID_ObjectID", ("PredicateID", "ObjectID", "TripleFlavor")),
)


class SQLDialect:
    """
    Capability set of one target engine.

    Subclasses fill in the class attributes and override the statement
    builders that differ from the defaults.
    """

    name: str = "generic"
    placeholder: str = "?"
    fold_identifiers: bool = False
    id_type: str = "BIGINT"
    flavor_type: str = "INTEGER"
    text_type: str = "VARCHAR(1000)"

    def __init__(self, database: str):
        self.database = database

    # -------------------------------------------------------------------------
    # Identifiers
    # -------------------------------------------------------------------------

    @property
    def table(self) -> str:
        return self.identifier("Quadruples")

    def identifier(self, name: str) -> str:
        """Engine-visible spelling of a table, column or index name."""
        return name.lower() if self.fold_identifiers else name

    def column(self, name: str) -> str:
        return self.identifier(name)

    def placeholders(self, count: int) -> str:
        return ", ".join([self.placeholder] * count)

    # -------------------------------------------------------------------------
    # Statements
    # -------------------------------------------------------------------------

    def probe_sql(self) -> str:
        """Catalog query counting tables named quadruples in the active schema."""
        raise NotImplementedError

    def create_table_sql(self) -> str:
        c = self.column
        return (
            f"CREATE TABLE {self.table} ("
            f"{c('QuadrupleID')} {self.id_type} NOT NULL PRIMARY KEY, "
            f"{c('TripleFlavor')} {self.flavor_type} NOT NULL, "
            f"{c('Context')} {self.text_type} NOT NULL, "
            f"{c('ContextID')} {self.id_type} NOT NULL, "
            f"{c('Subject')} {self.text_type} NOT NULL, "
            f"{c('SubjectID')} {self.id_type} NOT NULL, "
            f"{c('Predicate')} {self.text_type} NOT NULL, "
            f"{c('PredicateID')} {self.id_type} NOT NULL, "
            f"{c('Object')} {self.text_type} NOT NULL, "
            f"{c('ObjectID')} {self.id_type} NOT NULL)"
        )

    def create_index_sql(self, index: str, columns: Tuple[str, ...]) -> str:
        cols = ", ".join(self.column(col) for col in columns)
        return f"CREATE INDEX {self.identifier(index)} ON {self.table} ({cols})"

    def create_sql(self) -> List[str]:
        """Create-table statement followed by the covering indexes."""
        statements = [self.create_table_sql()]
        statements.extend(self.create_index_sql(name, cols) for name, cols in INDEXES)
        return statements

    def column_list(self) -> str:
        return ", ".join(self.column(col) for col in COLUMNS)

    def insert_sql(self) -> str:
        """Insert one row unless its QuadrupleID is already present."""
        raise NotImplementedError

    def insert_params(self, row: Tuple[Any, ...]) -> Tuple[Any, ...]:
        """Parameters for insert_sql() given a persisted row."""
        return row

    def optimize_sql(self) -> List[str]:
        return []

    def timeout_sql(self, category: str, seconds: int) -> Optional[str]:
        """Statement applying a per-category timeout, or None if unsupported."""
        return None

    def begin_sql(self) -> str:
        return "BEGIN"

    def commit_sql(self) -> str:
        return "COMMIT"

    def rollback_sql(self) -> str:
        return "ROLLBACK"

    # -------------------------------------------------------------------------
    # Connections
    # -------------------------------------------------------------------------

    @property
    def max_connections(self) -> Optional[int]:
        """Upper bound on pooled connections (None = unbounded)."""
        return None

    def connect(self) -> Any:
        """Open a DB-API connection in autocommit mode."""
        raise NotImplementedError

    def describe(self) -> str:
        """Descriptor shown in str(store); never contains a password."""
        return self.database

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.describe()!r})"


class SQLiteDialect(SQLDialect):
    """SQLite through the standard library sqlite3 module."""

    name = "sqlite"
    id_type = "INTEGER"

    def probe_sql(self) -> str:
        return "SELECT COUNT(*) FROM sqlite_master WHERE type = 'table' AND name = 'Quadruples'"

    def insert_sql(self) -> str:
        return (
            f"INSERT OR IGNORE INTO {self.table}({self.column_list()}) "
            f"VALUES ({self.placeholders(len(COLUMNS))})"
        )

    def optimize_sql(self) -> List[str]:
        return ["VACUUM", "ANALYZE"]

    def timeout_sql(self, category: str, seconds: int) -> Optional[str]:
        # sqlite has no statement timeout; waiting on locks is what can hang
        return f"PRAGMA busy_timeout = {int(seconds * 1000)}"

    @property
    def is_memory(self) -> bool:
        return self.database == MEMORY_DATABASE

    @property
    def max_connections(self) -> Optional[int]:
        # Every connection to :memory: is a separate database
        return 1 if self.is_memory else None

    def connect(self) -> sqlite3.Connection:
        if not self.is_memory:
            Path(self.database).parent.mkdir(parents=True, exist_ok=True)
        # Pooled connections move between threads, the pool keeps use exclusive
        return sqlite3.connect(
            self.database,
            isolation_level=None,
            check_same_thread=False,
        )


class DuckDBDialect(SQLDialect):
    """DuckDB embedded database."""

    name = "duckdb"
    fold_identifiers = True
    text_type = "VARCHAR"

    def __init__(self, database: str):
        if not DUCKDB_AVAILABLE:
            raise ImportError(
                "DuckDB is required for duckdb stores. "
                "Install with: pip install duckdb"
            )
        super().__init__(database)
        self._database_handle: Optional[Any] = None

    def probe_sql(self) -> str:
        return (
            "SELECT COUNT(*) FROM information_schema.tables "
            "WHERE table_schema = current_schema() AND table_name = 'quadruples'"
        )

    def insert_sql(self) -> str:
        return (
            f"INSERT INTO {self.table}({self.column_list()}) "
            f"VALUES ({self.placeholders(len(COLUMNS))}) "
            f"ON CONFLICT DO NOTHING"
        )

    def optimize_sql(self) -> List[str]:
        if self.database == MEMORY_DATABASE:
            return ["ANALYZE"]
        return ["ANALYZE", "CHECKPOINT"]

    def begin_sql(self) -> str:
        return "BEGIN TRANSACTION"

    def connect(self) -> "duckdb.DuckDBPyConnection":
        # One database handle per dialect; connections are cursors on it so
        # that pooled connections share an in-memory database
        if self._database_handle is None:
            if self.database != MEMORY_DATABASE:
                Path(self.database).parent.mkdir(parents=True, exist_ok=True)
            self._database_handle = duckdb.connect(self.database)
        return self._database_handle.cursor()

    def dispose(self) -> None:
        """Close the shared database handle."""
        if self._database_handle is not None:
            self._database_handle.close()
            self._database_handle = None


class PostgreSQLDialect(SQLDialect):
    """PostgreSQL through psycopg. Identifiers are folded to lowercase."""

    name = "postgresql"
    placeholder = "%s"
    fold_identifiers = True
    text_type = "VARCHAR"

    def probe_sql(self) -> str:
        return (
            "SELECT COUNT(*) FROM pg_catalog.pg_class c "
            "JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace "
            "WHERE n.nspname = current_schema() AND c.relname = 'quadruples'"
        )

    def create_index_sql(self, index: str, columns: Tuple[str, ...]) -> str:
        cols = ", ".join(self.column(col) for col in columns)
        return f"CREATE INDEX {self.identifier(index)} ON {self.table} USING btree ({cols})"

    def insert_sql(self) -> str:
        p = self.placeholder
        return (
            f"INSERT INTO {self.table}({self.column_list()}) "
            f"SELECT {self.placeholders(len(COLUMNS))} "
            f"WHERE NOT EXISTS (SELECT 1 FROM {self.table} "
            f"WHERE {self.column('QuadrupleID')} = {p})"
        )

    def insert_params(self, row: Tuple[Any, ...]) -> Tuple[Any, ...]:
        # The existence check binds the key a second time
        return row + (row[0],)

    def optimize_sql(self) -> List[str]:
        return [f"VACUUM ANALYZE {self.table}"]

    def timeout_sql(self, category: str, seconds: int) -> Optional[str]:
        return f"SET statement_timeout = {int(seconds * 1000)}"

    def connect(self) -> Any:
        try:
            import psycopg
        except ImportError as e:
            raise ImportError(
                "psycopg is required for PostgreSQL stores. "
                "Install with: pip install 'rdf-sqlstore[postgresql]'"
            ) from e
        return psycopg.connect(self.database, autocommit=True)

    def describe(self) -> str:
        return _mask_password(self.database)


class MySQLDialect(SQLDialect):
    """MySQL / MariaDB through pymysql."""

    name = "mysql"
    placeholder = "%s"
    id_type = "BIGINT"
    flavor_type = "INT"

    def probe_sql(self) -> str:
        return (
            "SELECT COUNT(*) FROM information_schema.tables "
            "WHERE table_schema = DATABASE() AND table_name = 'Quadruples'"
        )

    def create_table_sql(self) -> str:
        return super().create_table_sql() + " ENGINE=InnoDB"

    def insert_sql(self) -> str:
        return (
            f"INSERT IGNORE INTO {self.table}({self.column_list()}) "
            f"VALUES ({self.placeholders(len(COLUMNS))})"
        )

    def optimize_sql(self) -> List[str]:
        return [f"OPTIMIZE TABLE {self.table}"]

    def timeout_sql(self, category: str, seconds: int) -> Optional[str]:
        # max_execution_time only applies to SELECT statements
        if category != SELECT:
            return None
        return f"SET SESSION max_execution_time = {int(seconds * 1000)}"

    def begin_sql(self) -> str:
        return "START TRANSACTION"

    def connection_kwargs(self) -> Dict[str, Any]:
        parts = urlsplit(self.database)
        kwargs: Dict[str, Any] = {
            "host": parts.hostname or "localhost",
            "port": parts.port or 3306,
            "database": parts.path.lstrip("/"),
            "autocommit": True,
        }
        if parts.username:
            kwargs["user"] = unquote(parts.username)
        if parts.password:
            kwargs["password"] = unquote(parts.password)
        return kwargs

    def connect(self) -> Any:
        try:
            import pymysql
        except ImportError as e:
            raise ImportError(
                "pymysql is required for MySQL stores. "
                "Install with: pip install 'rdf-sqlstore[mysql]'"
            ) from e
        return pymysql.connect(**self.connection_kwargs())

    def describe(self) -> str:
        return _mask_password(self.database)


def _mask_password(url: str) -> str:
    return re.sub(r"(://[^:/@]+:)[^@]*@", r"\1***@", url)


# =============================================================================
# Descriptor resolution
# =============================================================================

_SCHEMES = {
    "sqlite": SQLiteDialect,
    "duckdb": DuckDBDialect,
    "postgresql": PostgreSQLDialect,
    "postgres": PostgreSQLDialect,
    "mysql": MySQLDialect,
}


def dialect_for(descriptor: str) -> SQLDialect:
    """
    Resolve a connection descriptor to a dialect.

    Accepted forms:
        sqlite:///relative/or/absolute.db   sqlite:///:memory:
        duckdb:///path.duckdb               duckdb:///:memory:
        postgresql://user:pw@host/db        mysql://user:pw@host:3306/db
        /a/bare/path.db or :memory:         (SQLite)

    Raises:
        StoreInitializationError: If the descriptor is empty or its scheme
            is not supported
    """
    if descriptor is None or not str(descriptor).strip():
        raise StoreInitializationError(
            "Cannot connect to store because: given connection descriptor is null or empty."
        )
    descriptor = str(descriptor).strip()

    scheme, sep, rest = descriptor.partition("://")
    if not sep:
        return SQLiteDialect(descriptor)

    dialect_cls = _SCHEMES.get(scheme.lower())
    if dialect_cls is None:
        raise StoreInitializationError(
            f"Cannot connect to store because: unsupported engine {scheme!r}."
        )

    if dialect_cls in (PostgreSQLDialect, MySQLDialect):
        if dialect_cls is PostgreSQLDialect and scheme.lower() == "postgres":
            descriptor = "postgresql://" + rest
        return dialect_cls(descriptor)

    # File engines: sqlite:///x.db -> "x.db", sqlite:////abs/x.db -> "/abs/x.db"
    path = rest[1:] if rest.startswith("/") else rest
    if not path:
        raise StoreInitializationError(
            f"Cannot connect to store because: descriptor {descriptor!r} names no database."
        )
    return dialect_cls(unquote(path))
