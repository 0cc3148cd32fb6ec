"""
rdf-sqlstore: RDF quadruple storage on relational engines.

Persists rdflib quadruples in SQLite, DuckDB, PostgreSQL or MySQL and
answers quad-pattern queries through indexed term hashes.
"""

__version__ = "0.1.0"

from rdf_sqlstore.model import (
    DEFAULT_CONTEXT,
    ObjectFlavor,
    Quadruple,
    create_hash,
    parse_term,
    pattern_member_id,
    term_string,
)
from rdf_sqlstore.config import StoreOptions
from rdf_sqlstore.exceptions import (
    StoreError,
    StoreInitializationError,
    StoreOperationError,
    StoreClosedError,
    OperationCancelledError,
    QuadrupleParseError,
    InvalidPatternError,
)
from rdf_sqlstore.storage.engine import CancellationToken
from rdf_sqlstore.storage.rows import QuadrupleResult
from rdf_sqlstore.store import SQLQuadStore, open_store
from rdf_sqlstore.aio import AsyncSQLQuadStore

__all__ = [
    "__version__",
    # Model
    "DEFAULT_CONTEXT",
    "ObjectFlavor",
    "Quadruple",
    "create_hash",
    "parse_term",
    "pattern_member_id",
    "term_string",
    # Store
    "SQLQuadStore",
    "AsyncSQLQuadStore",
    "open_store",
    "StoreOptions",
    "QuadrupleResult",
    "CancellationToken",
    # Errors
    "StoreError",
    "StoreInitializationError",
    "StoreOperationError",
    "StoreClosedError",
    "OperationCancelledError",
    "QuadrupleParseError",
    "InvalidPatternError",
]
