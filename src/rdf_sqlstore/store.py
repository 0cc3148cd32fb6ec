"""
SQL-backed RDF quadruple store.

SQLQuadStore persists rdflib quadruples in a single relational table and
answers quad-pattern queries through indexed ID columns. The same store
class serves every supported engine; engine differences live in the
dialect picked from the connection descriptor.

Example:
    from rdflib import URIRef
    from rdf_sqlstore import Quadruple, open_store

    with open_store("sqlite:///quads.db") as store:
        store.add_quadruple(Quadruple.create(
            URIRef("http://example.org/alice"),
            URIRef("http://example.org/knows"),
            URIRef("http://example.org/bob"),
            context=URIRef("http://example.org/people"),
        ))
        store.select_quadruples(subject=URIRef("http://example.org/alice"))
"""

from __future__ import annotations
from typing import Iterable, Iterator, Optional, Union
import logging

from rdflib import BNode, Dataset, Graph, URIRef
from rdflib.term import Node

from rdf_sqlstore.config import StoreOptions
from rdf_sqlstore.exceptions import StoreClosedError, StoreError, StoreInitializationError
from rdf_sqlstore.model import DEFAULT_CONTEXT, Quadruple, create_hash
from rdf_sqlstore.storage.connection_pool import ConnectionPool, PoolStats
from rdf_sqlstore.storage.dialects import SQLDialect, dialect_for
from rdf_sqlstore.storage.engine import CancellationToken, QuadrupleEngine
from rdf_sqlstore.storage.patterns import compile_pattern
from rdf_sqlstore.storage.rows import QuadrupleResult, quadruple_to_row
from rdf_sqlstore.storage.schema import SchemaManager, SchemaState

logger = logging.getLogger(__name__)


class SQLQuadStore:
    """
    Quadruple store backed by a SQL database.

    Construction probes the database and creates the quadruples table when
    it is missing; an unreachable database aborts construction.

    Mutators silently ignore None arguments and return the store so calls
    can be chained. Every call runs in its own transaction on a pooled
    connection and raises StoreOperationError on failure, after rollback.

    Thread-safety: calls never share cursor or statement state, but with
    the default pool_size of 1 concurrent callers wait for the single
    connection. Use pool_size > 1 (file or server databases) or one store
    per thread for parallel access.
    """

    def __init__(
        self,
        descriptor: Union[str, SQLDialect],
        options: Optional[StoreOptions] = None,
    ):
        """
        Open a store.

        Args:
            descriptor: Connection descriptor (see dialect_for) or a dialect
            options: Timeouts and pool settings (defaults if None)

        Raises:
            StoreInitializationError: If the descriptor is empty, the engine
                is unavailable, the database cannot be opened or the schema
                cannot be created
        """
        self._options = options if options is not None else StoreOptions()
        self._dialect = self._resolve_dialect(descriptor)

        pool_size = self._options.pool_size
        if self._dialect.max_connections is not None:
            pool_size = min(pool_size, self._dialect.max_connections)
        self._pool = ConnectionPool(
            self._dialect.connect,
            max_size=pool_size,
            timeout=self._options.pool_timeout,
        )
        self._schema = SchemaManager(self._dialect, self._pool)
        try:
            self._schema.ensure()
        except StoreError:
            self._dispose()
            raise

        self._engine = QuadrupleEngine(self._dialect, self._pool, self._options.timeouts())
        self._closed = False
        self.store_id = create_hash(str(self))
        logger.info(f"Opened {self}")

    @staticmethod
    def _resolve_dialect(descriptor: Union[str, SQLDialect]) -> SQLDialect:
        if isinstance(descriptor, SQLDialect):
            return descriptor
        try:
            return dialect_for(descriptor)
        except ImportError as e:
            raise StoreInitializationError(
                f"Cannot create store because: {e}", cause=e
            ) from e

    def _dispose(self) -> None:
        self._pool.close()
        dispose = getattr(self._dialect, "dispose", None)
        if dispose is not None:
            dispose()

    def _check_open(self) -> None:
        if self._closed:
            raise StoreClosedError(
                f"Cannot use {self._dialect.name.upper()} store because: it has been closed.",
                engine=self._dialect.name,
            )

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def dialect(self) -> SQLDialect:
        return self._dialect

    @property
    def options(self) -> StoreOptions:
        return self._options

    @property
    def schema_state(self) -> SchemaState:
        return self._schema.state

    @property
    def closed(self) -> bool:
        return self._closed

    def pool_stats(self) -> PoolStats:
        return self._pool.stats()

    def __str__(self) -> str:
        return f"{self._dialect.name.upper()}|DESCRIPTOR={self._dialect.describe()}"

    def __repr__(self) -> str:
        return f"SQLQuadStore({self._dialect!r})"

    # -------------------------------------------------------------------------
    # Add
    # -------------------------------------------------------------------------

    def add_quadruple(
        self,
        quadruple: Optional[Quadruple],
        cancel_token: Optional[CancellationToken] = None,
    ) -> "SQLQuadStore":
        """Add a quadruple unless it is already stored."""
        self._check_open()
        if quadruple is not None:
            self._engine.insert([quadruple_to_row(quadruple)], cancel_token)
        return self

    def add_quadruples(
        self,
        quadruples: Iterable[Optional[Quadruple]],
        cancel_token: Optional[CancellationToken] = None,
    ) -> "SQLQuadStore":
        """Add many quadruples in one transaction, skipping stored ones."""
        self._check_open()
        rows = [quadruple_to_row(q) for q in quadruples if q is not None]
        if rows:
            self._engine.insert(rows, cancel_token)
        return self

    def merge_graph(
        self,
        graph: Optional[Graph],
        context: Optional[Union[URIRef, BNode]] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> "SQLQuadStore":
        """
        Merge every triple of a graph under one context, in one transaction.

        Args:
            graph: rdflib graph to merge
            context: Context of the merged quadruples (the graph identifier
                if None)
        """
        self._check_open()
        if graph is None:
            return self
        ctx = context if context is not None else graph.identifier
        rows = (quadruple_to_row(Quadruple(ctx, s, p, o)) for s, p, o in graph)
        self._engine.insert(rows, cancel_token)
        return self

    def merge_dataset(
        self,
        dataset: Optional[Dataset],
        cancel_token: Optional[CancellationToken] = None,
    ) -> "SQLQuadStore":
        """Merge every quad of an rdflib dataset, keeping its contexts."""
        self._check_open()
        if dataset is None:
            return self

        def rows():
            for s, p, o, c in dataset.quads((None, None, None, None)):
                ctx = getattr(c, "identifier", c)
                yield quadruple_to_row(
                    Quadruple(ctx if ctx is not None else DEFAULT_CONTEXT, s, p, o)
                )

        self._engine.insert(rows(), cancel_token)
        return self

    # -------------------------------------------------------------------------
    # Remove
    # -------------------------------------------------------------------------

    def remove_quadruple(
        self,
        quadruple: Optional[Quadruple],
        cancel_token: Optional[CancellationToken] = None,
    ) -> "SQLQuadStore":
        """Remove one quadruple."""
        self._check_open()
        if quadruple is not None:
            self._engine.delete_by_id(quadruple.quadruple_id, cancel_token)
        return self

    def remove_quadruples(
        self,
        context: Optional[Node] = None,
        subject: Optional[Node] = None,
        predicate: Optional[Node] = None,
        obj: Optional[Node] = None,
        literal: Optional[Node] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> "SQLQuadStore":
        """
        Remove the quadruples matching every given accessor.

        With no accessor at all, every quadruple is removed.

        Raises:
            InvalidPatternError: If both obj and literal are given
        """
        self._check_open()
        compiled = compile_pattern(context, subject, predicate, obj, literal)
        self._engine.delete(compiled, cancel_token)
        return self

    def _remove_bound(self, cancel_token: Optional[CancellationToken], **accessors) -> "SQLQuadStore":
        # Named removers are no-ops unless every accessor they name is given
        self._check_open()
        if any(value is None for value in accessors.values()):
            return self
        return self.remove_quadruples(cancel_token=cancel_token, **accessors)

    def remove_quadruples_by_context(self, context, cancel_token=None) -> "SQLQuadStore":
        return self._remove_bound(cancel_token, context=context)

    def remove_quadruples_by_subject(self, subject, cancel_token=None) -> "SQLQuadStore":
        return self._remove_bound(cancel_token, subject=subject)

    def remove_quadruples_by_predicate(self, predicate, cancel_token=None) -> "SQLQuadStore":
        return self._remove_bound(cancel_token, predicate=predicate)

    def remove_quadruples_by_object(self, obj, cancel_token=None) -> "SQLQuadStore":
        return self._remove_bound(cancel_token, obj=obj)

    def remove_quadruples_by_literal(self, literal, cancel_token=None) -> "SQLQuadStore":
        return self._remove_bound(cancel_token, literal=literal)

    def remove_quadruples_by_context_subject(self, context, subject, cancel_token=None) -> "SQLQuadStore":
        return self._remove_bound(cancel_token, context=context, subject=subject)

    def remove_quadruples_by_context_predicate(self, context, predicate, cancel_token=None) -> "SQLQuadStore":
        return self._remove_bound(cancel_token, context=context, predicate=predicate)

    def remove_quadruples_by_context_object(self, context, obj, cancel_token=None) -> "SQLQuadStore":
        return self._remove_bound(cancel_token, context=context, obj=obj)

    def remove_quadruples_by_context_literal(self, context, literal, cancel_token=None) -> "SQLQuadStore":
        return self._remove_bound(cancel_token, context=context, literal=literal)

    def remove_quadruples_by_context_subject_predicate(
        self, context, subject, predicate, cancel_token=None
    ) -> "SQLQuadStore":
        return self._remove_bound(cancel_token, context=context, subject=subject, predicate=predicate)

    def remove_quadruples_by_context_subject_object(
        self, context, subject, obj, cancel_token=None
    ) -> "SQLQuadStore":
        return self._remove_bound(cancel_token, context=context, subject=subject, obj=obj)

    def remove_quadruples_by_context_subject_literal(
        self, context, subject, literal, cancel_token=None
    ) -> "SQLQuadStore":
        return self._remove_bound(cancel_token, context=context, subject=subject, literal=literal)

    def remove_quadruples_by_context_predicate_object(
        self, context, predicate, obj, cancel_token=None
    ) -> "SQLQuadStore":
        return self._remove_bound(cancel_token, context=context, predicate=predicate, obj=obj)

    def remove_quadruples_by_context_predicate_literal(
        self, context, predicate, literal, cancel_token=None
    ) -> "SQLQuadStore":
        return self._remove_bound(cancel_token, context=context, predicate=predicate, literal=literal)

    def remove_quadruples_by_subject_predicate(self, subject, predicate, cancel_token=None) -> "SQLQuadStore":
        return self._remove_bound(cancel_token, subject=subject, predicate=predicate)

    def remove_quadruples_by_subject_object(self, subject, obj, cancel_token=None) -> "SQLQuadStore":
        return self._remove_bound(cancel_token, subject=subject, obj=obj)

    def remove_quadruples_by_subject_literal(self, subject, literal, cancel_token=None) -> "SQLQuadStore":
        return self._remove_bound(cancel_token, subject=subject, literal=literal)

    def remove_quadruples_by_predicate_object(self, predicate, obj, cancel_token=None) -> "SQLQuadStore":
        return self._remove_bound(cancel_token, predicate=predicate, obj=obj)

    def remove_quadruples_by_predicate_literal(self, predicate, literal, cancel_token=None) -> "SQLQuadStore":
        return self._remove_bound(cancel_token, predicate=predicate, literal=literal)

    def clear_quadruples(self, cancel_token: Optional[CancellationToken] = None) -> None:
        """Remove every quadruple."""
        self.remove_quadruples(cancel_token=cancel_token)

    # -------------------------------------------------------------------------
    # Select
    # -------------------------------------------------------------------------

    def contains_quadruple(
        self,
        quadruple: Optional[Quadruple],
        cancel_token: Optional[CancellationToken] = None,
    ) -> bool:
        """Check whether a quadruple is stored (False for None)."""
        self._check_open()
        if quadruple is None:
            return False
        return self._engine.exists(quadruple.quadruple_id, cancel_token)

    def select_quadruples(
        self,
        context: Optional[Node] = None,
        subject: Optional[Node] = None,
        predicate: Optional[Node] = None,
        obj: Optional[Node] = None,
        literal: Optional[Node] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> QuadrupleResult:
        """
        Quadruples matching every given accessor (all of them if none given).

        Raises:
            InvalidPatternError: If both obj and literal are given
        """
        self._check_open()
        compiled = compile_pattern(context, subject, predicate, obj, literal)
        return QuadrupleResult.from_rows(self._engine.select(compiled, cancel_token))

    def count(self, cancel_token: Optional[CancellationToken] = None) -> int:
        """
        Number of stored quadruples.

        Raises:
            StoreOperationError: If the count query fails
        """
        self._check_open()
        return self._engine.count(cancel_token)

    @property
    def quadruples_count(self) -> int:
        """Number of stored quadruples, or -1 if it cannot be read."""
        try:
            return self.count()
        except StoreError as e:
            logger.warning(f"Cannot count quadruples of {self}: {e}")
            return -1

    def to_dataset(self) -> Dataset:
        """Copy every stored quadruple into an rdflib Dataset."""
        return self.select_quadruples().to_dataset()

    def __len__(self) -> int:
        return self.count()

    def __contains__(self, quadruple: object) -> bool:
        if not isinstance(quadruple, Quadruple):
            return False
        return self.contains_quadruple(quadruple)

    def __iter__(self) -> Iterator[Quadruple]:
        return iter(self.select_quadruples())

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    def optimize(self) -> None:
        """Run the engine's statistics/compaction statement (best effort)."""
        self._check_open()
        self._engine.optimize()

    def close(self) -> None:
        """Close pooled connections. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._dispose()
        logger.info(f"Closed {self}")

    def __enter__(self) -> "SQLQuadStore":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


def open_store(
    descriptor: Union[str, SQLDialect],
    options: Optional[StoreOptions] = None,
) -> SQLQuadStore:
    """
    Open a quadruple store.

    Args:
        descriptor: "sqlite:///path.db", "duckdb:///path.duckdb",
            "postgresql://...", "mysql://..." or a bare SQLite path
        options: Timeouts and pool settings
    """
    return SQLQuadStore(descriptor, options)
