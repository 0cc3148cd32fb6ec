"""
Asyncio facade over SQLQuadStore.

Each coroutine yields to the event loop once before starting, then runs
the blocking store call in a worker thread. A cancellation that arrives
before the call starts aborts it with no side effect; once started, the
call is shielded and its transaction runs to commit or rollback even if
the awaiting task is cancelled.
"""

from __future__ import annotations
from typing import Any, Callable, Iterable, Optional, Union
import asyncio
import functools
import logging

from rdflib import BNode, Dataset, Graph, URIRef
from rdflib.term import Node

from rdf_sqlstore.config import StoreOptions
from rdf_sqlstore.model import Quadruple
from rdf_sqlstore.storage.dialects import SQLDialect
from rdf_sqlstore.storage.rows import QuadrupleResult
from rdf_sqlstore.store import SQLQuadStore

logger = logging.getLogger(__name__)


class AsyncSQLQuadStore:
    """
    Async mirror of SQLQuadStore with identical ordering guarantees.

    Example:
        async with await AsyncSQLQuadStore.open("sqlite:///quads.db") as store:
            await store.add_quadruple(q)
            print(await store.count())
    """

    def __init__(self, store: SQLQuadStore):
        self._store = store

    @classmethod
    async def open(
        cls,
        descriptor: Union[str, SQLDialect],
        options: Optional[StoreOptions] = None,
    ) -> "AsyncSQLQuadStore":
        """Open the underlying store without blocking the event loop."""
        store = await asyncio.to_thread(SQLQuadStore, descriptor, options)
        return cls(store)

    @property
    def store(self) -> SQLQuadStore:
        """The wrapped synchronous store."""
        return self._store

    async def _run(self, func: Callable[..., Any], *args, **kwargs) -> Any:
        await asyncio.sleep(0)
        inner = asyncio.ensure_future(asyncio.to_thread(func, *args, **kwargs))
        inner.add_done_callback(_consume_exception)
        return await asyncio.shield(inner)

    # Mutations

    async def add_quadruple(self, quadruple: Optional[Quadruple]) -> "AsyncSQLQuadStore":
        await self._run(self._store.add_quadruple, quadruple)
        return self

    async def add_quadruples(self, quadruples: Iterable[Optional[Quadruple]]) -> "AsyncSQLQuadStore":
        await self._run(self._store.add_quadruples, list(quadruples))
        return self

    async def merge_graph(
        self,
        graph: Optional[Graph],
        context: Optional[Union[URIRef, BNode]] = None,
    ) -> "AsyncSQLQuadStore":
        await self._run(self._store.merge_graph, graph, context)
        return self

    async def merge_dataset(self, dataset: Optional[Dataset]) -> "AsyncSQLQuadStore":
        await self._run(self._store.merge_dataset, dataset)
        return self

    async def remove_quadruple(self, quadruple: Optional[Quadruple]) -> "AsyncSQLQuadStore":
        await self._run(self._store.remove_quadruple, quadruple)
        return self

    async def remove_quadruples(
        self,
        context: Optional[Node] = None,
        subject: Optional[Node] = None,
        predicate: Optional[Node] = None,
        obj: Optional[Node] = None,
        literal: Optional[Node] = None,
    ) -> "AsyncSQLQuadStore":
        await self._run(
            self._store.remove_quadruples,
            context=context, subject=subject, predicate=predicate, obj=obj, literal=literal,
        )
        return self

    async def clear_quadruples(self) -> None:
        await self._run(self._store.clear_quadruples)

    # Reads

    async def contains_quadruple(self, quadruple: Optional[Quadruple]) -> bool:
        return await self._run(self._store.contains_quadruple, quadruple)

    async def select_quadruples(
        self,
        context: Optional[Node] = None,
        subject: Optional[Node] = None,
        predicate: Optional[Node] = None,
        obj: Optional[Node] = None,
        literal: Optional[Node] = None,
    ) -> QuadrupleResult:
        return await self._run(
            self._store.select_quadruples,
            context=context, subject=subject, predicate=predicate, obj=obj, literal=literal,
        )

    async def count(self) -> int:
        return await self._run(self._store.count)

    async def quadruples_count(self) -> int:
        """Legacy count returning -1 on failure."""
        return await self._run(lambda: self._store.quadruples_count)

    async def optimize(self) -> None:
        await self._run(self._store.optimize)

    async def close(self) -> None:
        await asyncio.to_thread(self._store.close)

    async def __aenter__(self) -> "AsyncSQLQuadStore":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


def _consume_exception(future: "asyncio.Future[Any]") -> None:
    # A shielded call can outlive its awaiting task; nobody else reads its error then
    if future.cancelled():
        return
    error = future.exception()
    if error is not None:
        logger.debug(f"Store call finished with {type(error).__name__}: {error}")


def _mirror(name: str) -> Callable[..., Any]:
    sync_method = getattr(SQLQuadStore, name)

    @functools.wraps(sync_method)
    async def method(self: AsyncSQLQuadStore, *args) -> AsyncSQLQuadStore:
        await self._run(getattr(self._store, name), *args)
        return self

    return method


# Named removers share one shape: positional accessors, store returned
for _name in dir(SQLQuadStore):
    if _name.startswith("remove_quadruples_by_"):
        setattr(AsyncSQLQuadStore, _name, _mirror(_name))
del _name
