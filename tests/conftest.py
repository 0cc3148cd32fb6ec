"""
Shared fixtures for store tests.
"""

import pytest
from rdflib import Literal, URIRef

from rdf_sqlstore import Quadruple, SQLQuadStore

EX = "http://example.org/"

ENGINES = ["sqlite", "duckdb"]


def ex(name: str) -> URIRef:
    return URIRef(f"{EX}{name}")


def quad(ctx: str, subj: str, pred: str, obj) -> Quadruple:
    """Build a quadruple; obj is a name under EX or an rdflib Literal."""
    obj_term = obj if isinstance(obj, Literal) else ex(obj)
    return Quadruple(context=ex(ctx), subject=ex(subj), predicate=ex(pred), object=obj_term)


def descriptor_for(engine: str, directory) -> str:
    if engine == "sqlite":
        return f"sqlite:///{directory / 'quads.db'}"
    return f"duckdb:///{directory / 'quads.duckdb'}"


@pytest.fixture(params=ENGINES)
def engine(request):
    """Name of the engine under test."""
    return request.param


@pytest.fixture
def store(engine, tmp_path):
    """An empty file-backed store."""
    s = SQLQuadStore(descriptor_for(engine, tmp_path))
    yield s
    s.close()


@pytest.fixture
def sample_quads():
    """Quadruples spread over two contexts, with resource and literal objects."""
    return [
        quad("ctx1", "alice", "knows", "bob"),
        quad("ctx1", "alice", "name", Literal("Alice")),
        quad("ctx1", "bob", "knows", "carol"),
        quad("ctx2", "alice", "knows", "bob"),
        quad("ctx2", "carol", "name", Literal("Carol", lang="en")),
        quad("ctx2", "carol", "age", Literal(42)),
    ]


@pytest.fixture
def populated_store(store, sample_quads):
    """Store holding sample_quads."""
    store.add_quadruples(sample_quads)
    return store
