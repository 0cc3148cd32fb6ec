"""
rdf-sqlstore Storage Layer.

Engine dialects, the pattern compiler, schema lifecycle, connection
pooling and transactional execution behind SQLQuadStore.
"""

from rdf_sqlstore.storage.dialects import (
    SQLDialect,
    SQLiteDialect,
    DuckDBDialect,
    PostgreSQLDialect,
    MySQLDialect,
    dialect_for,
    COLUMNS,
    INDEXES,
)
from rdf_sqlstore.storage.patterns import (
    Accessor,
    PatternTemplate,
    CompiledPattern,
    PatternCompiler,
    PATTERN_TABLE,
    compile_pattern,
    signature,
)
from rdf_sqlstore.storage.connection_pool import (
    ConnectionPool,
    PooledConnection,
    PoolStats,
    PoolExhaustedError,
    PoolClosedError,
)
from rdf_sqlstore.storage.schema import SchemaManager, SchemaState
from rdf_sqlstore.storage.engine import QuadrupleEngine, CancellationToken
from rdf_sqlstore.storage.rows import (
    QuadrupleResult,
    quadruple_to_row,
    row_to_quadruple,
)

__all__ = [
    # Dialects
    "SQLDialect",
    "SQLiteDialect",
    "DuckDBDialect",
    "PostgreSQLDialect",
    "MySQLDialect",
    "dialect_for",
    "COLUMNS",
    "INDEXES",
    # Pattern Compiler
    "Accessor",
    "PatternTemplate",
    "CompiledPattern",
    "PatternCompiler",
    "PATTERN_TABLE",
    "compile_pattern",
    "signature",
    # Connection Pooling
    "ConnectionPool",
    "PooledConnection",
    "PoolStats",
    "PoolExhaustedError",
    "PoolClosedError",
    # Schema
    "SchemaManager",
    "SchemaState",
    # Execution
    "QuadrupleEngine",
    "CancellationToken",
    # Rows
    "QuadrupleResult",
    "quadruple_to_row",
    "row_to_quadruple",
]
