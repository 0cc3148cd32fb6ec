"""
Tests for SQLQuadStore.

Every test runs against SQLite and DuckDB through the store fixture.
"""

from unittest.mock import patch

import polars as pl
import pytest
from rdflib import BNode, Dataset, Graph, Literal, URIRef

from rdf_sqlstore import (
    DEFAULT_CONTEXT,
    CancellationToken,
    Quadruple,
    SQLQuadStore,
    open_store,
)
from rdf_sqlstore.exceptions import (
    InvalidPatternError,
    OperationCancelledError,
    StoreClosedError,
    StoreInitializationError,
    StoreOperationError,
)
from rdf_sqlstore.storage.patterns import PATTERN_TABLE, Accessor, signature
from rdf_sqlstore.storage.schema import SchemaState

from conftest import EX, descriptor_for, ex, quad


class TestOpen:
    """Tests for store construction."""

    def test_schema_created(self, store):
        assert store.schema_state == SchemaState.READY
        assert store.count() == 0

    def test_reopen_keeps_data(self, engine, tmp_path):
        descriptor = descriptor_for(engine, tmp_path)
        with open_store(descriptor) as store:
            store.add_quadruple(quad("c", "s", "p", "o"))

        with open_store(descriptor) as store:
            assert store.schema_state == SchemaState.READY
            assert store.count() == 1

    @pytest.mark.parametrize("descriptor", ["sqlite:///:memory:", "duckdb:///:memory:"])
    def test_memory_store(self, descriptor):
        with SQLQuadStore(descriptor) as store:
            store.add_quadruple(quad("c", "s", "p", "o"))
            assert store.count() == 1

    def test_empty_descriptor(self):
        with pytest.raises(StoreInitializationError):
            SQLQuadStore("")

    def test_unreachable_database(self, tmp_path):
        """A directory cannot be opened as a SQLite database."""
        with pytest.raises(StoreInitializationError, match="unable to open the database"):
            SQLQuadStore(str(tmp_path))

    def test_str_and_store_id(self, tmp_path):
        path = tmp_path / "quads.db"
        store = SQLQuadStore(f"sqlite:///{path}")
        assert str(store) == f"SQLITE|DESCRIPTOR={path}"
        assert isinstance(store.store_id, int)
        store.close()

        again = SQLQuadStore(f"sqlite:///{path}")
        assert again.store_id == store.store_id
        again.close()


class TestAdd:
    """Tests for adding quadruples."""

    def test_add_and_contains(self, store):
        q = quad("c", "s", "p", "o")
        store.add_quadruple(q)

        assert store.contains_quadruple(q)
        assert q in store
        assert store.count() == 1

    def test_insert_is_idempotent(self, store):
        q = quad("c", "s", "p", Literal("v"))
        store.add_quadruple(q)
        store.add_quadruple(q)
        store.add_quadruples([q])

        assert store.count() == 1

    def test_add_none_is_noop(self, store):
        assert store.add_quadruple(None) is store
        assert store.add_quadruples([None, None]) is store
        assert store.count() == 0

    def test_add_many(self, populated_store, sample_quads):
        assert populated_store.count() == len(sample_quads)
        assert len(populated_store) == len(sample_quads)

    def test_chaining(self, store):
        result = store.add_quadruple(quad("c", "s", "p", "o")).add_quadruple(quad("c", "s", "p", "o2"))
        assert result is store
        assert store.count() == 2

    def test_same_triple_in_two_contexts(self, store):
        store.add_quadruple(quad("c1", "s", "p", "o"))
        store.add_quadruple(quad("c2", "s", "p", "o"))
        assert store.count() == 2

    def test_contains_none(self, store):
        assert store.contains_quadruple(None) is False
        assert "not a quadruple" not in store


class TestSelect:
    """Tests for pattern selects."""

    def test_round_trip(self, store):
        quads = [
            quad("c", "s", "p", "o"),
            quad("c", "s", "p", Literal("plain")),
            quad("c", "s", "p", Literal("hallo", lang="de")),
            quad("c", "s", "p", Literal(3.5)),
            Quadruple(BNode("g1"), BNode("b1"), ex("p"), BNode("b2")),
        ]
        store.add_quadruples(quads)

        assert store.select_quadruples().to_set() == set(quads)

    def test_full_scan_equals_iteration(self, populated_store, sample_quads):
        assert set(populated_store) == set(sample_quads)
        assert populated_store.select_quadruples().to_set() == set(sample_quads)

    @pytest.mark.parametrize("accessor", ["context", "subject", "predicate"])
    def test_full_scan_equals_union_of_partitions(self, populated_store, accessor):
        """Single-accessor selects over every stored value partition the full scan."""
        full = populated_store.select_quadruples()
        values = {getattr(q, accessor) for q in full}

        union = set()
        total = 0
        for value in values:
            part = populated_store.select_quadruples(**{accessor: value})
            union |= part.to_set()
            total += len(part)

        assert union == full.to_set()
        assert total == len(full) == populated_store.count()

    def test_full_scan_equals_union_of_objects(self, populated_store):
        """Object and literal selects together partition the full scan."""
        full = populated_store.select_quadruples()

        union = set()
        total = 0
        for value in {q.object for q in full}:
            kind = "literal" if isinstance(value, Literal) else "obj"
            part = populated_store.select_quadruples(**{kind: value})
            union |= part.to_set()
            total += len(part)

        assert union == full.to_set()
        assert total == len(full)

    def test_by_context(self, populated_store):
        result = populated_store.select_quadruples(context=ex("ctx2"))
        assert len(result) == 3
        assert result.contexts() == {ex("ctx2")}

    def test_by_subject_predicate(self, populated_store):
        result = populated_store.select_quadruples(subject=ex("alice"), predicate=ex("knows"))
        assert result.to_set() == {
            quad("ctx1", "alice", "knows", "bob"),
            quad("ctx2", "alice", "knows", "bob"),
        }

    def test_by_object(self, populated_store):
        result = populated_store.select_quadruples(obj=ex("carol"))
        assert result.to_set() == {quad("ctx1", "bob", "knows", "carol")}

    def test_by_literal(self, populated_store):
        result = populated_store.select_quadruples(literal=Literal("Carol", lang="en"))
        assert result.to_set() == {quad("ctx2", "carol", "name", Literal("Carol", lang="en"))}

    def test_literal_language_matters(self, populated_store):
        assert not populated_store.select_quadruples(literal=Literal("Carol"))

    def test_every_accessor(self, populated_store):
        result = populated_store.select_quadruples(
            context=ex("ctx2"), subject=ex("carol"), predicate=ex("age"), literal=Literal(42)
        )
        assert len(result) == 1

    def test_no_match(self, populated_store):
        result = populated_store.select_quadruples(subject=ex("nobody"))
        assert len(result) == 0
        assert not result

    def test_object_and_literal_rejected(self, populated_store):
        with pytest.raises(InvalidPatternError):
            populated_store.select_quadruples(obj=ex("bob"), literal=Literal("bob"))

    def test_flavor_disambiguates_equal_object_ids(self, store):
        """Resource and literal objects never match each other's pattern."""
        with patch("rdf_sqlstore.storage.rows.pattern_member_id", return_value=7), \
                patch("rdf_sqlstore.storage.patterns.pattern_member_id", return_value=7):
            resource = quad("c", "s", "p", "o")
            literal = quad("c", "s", "p", Literal("o"))
            store.add_quadruples([resource, literal])

            assert store.select_quadruples(obj=ex("o")).to_set() == {resource}
            assert store.select_quadruples(literal=Literal("o")).to_set() == {literal}

            store.remove_quadruples_by_literal(Literal("o"))
            assert store.select_quadruples().to_set() == {resource}


ACCESSOR_ARGS = (
    (Accessor.CONTEXT, "context"),
    (Accessor.SUBJECT, "subject"),
    (Accessor.PREDICATE, "predicate"),
    (Accessor.OBJECT, "obj"),
    (Accessor.LITERAL, "literal"),
)

# Values bound when an accessor must not match
MISMATCH = {
    "context": ex("other-ctx"),
    "subject": ex("other-s"),
    "predicate": ex("other-p"),
    "obj": ex("other-o"),
    "literal": Literal("other"),
}


class TestEverySignature:
    """Each accessor combination selects and removes exactly what it binds."""

    RESOURCE = quad("ctx", "s", "p", "o")
    LITERAL = quad("ctx", "s", "p", Literal("o"))
    UNRELATED = quad("ctx9", "s9", "p9", "o9")

    def bind(self, mask):
        target = self.LITERAL if mask & Accessor.LITERAL else self.RESOURCE
        values = {
            "context": target.context,
            "subject": target.subject,
            "predicate": target.predicate,
            "obj": self.RESOURCE.object,
            "literal": self.LITERAL.object,
        }
        accessors = {name: values[name] for bit, name in ACCESSOR_ARGS if mask & bit}
        return target, accessors

    @pytest.fixture
    def twins_store(self, store):
        store.add_quadruples([self.RESOURCE, self.LITERAL, self.UNRELATED])
        return store

    @pytest.mark.parametrize("mask", sorted(PATTERN_TABLE), ids=lambda m: signature(m) or "full")
    def test_select_matches_bound_quadruple(self, twins_store, mask):
        target, accessors = self.bind(mask)
        twin = self.RESOURCE if target is self.LITERAL else self.LITERAL

        result = twins_store.select_quadruples(**accessors)

        assert target in result
        if mask & (Accessor.OBJECT | Accessor.LITERAL):
            assert twin not in result
        else:
            assert twin in result
        if mask:
            assert self.UNRELATED not in result

    @pytest.mark.parametrize("mask", sorted(m for m in PATTERN_TABLE if m), ids=signature)
    def test_select_excludes_on_any_mismatch(self, twins_store, mask):
        target, accessors = self.bind(mask)
        for name in accessors:
            changed = dict(accessors, **{name: MISMATCH[name]})
            assert target not in twins_store.select_quadruples(**changed)

    @pytest.mark.parametrize("mask", sorted(m for m in PATTERN_TABLE if m), ids=signature)
    def test_remove_matches_select(self, twins_store, mask):
        target, accessors = self.bind(mask)
        selected = twins_store.select_quadruples(**accessors).to_set()

        twins_store.remove_quadruples(**accessors)

        assert not twins_store.contains_quadruple(target)
        remaining = twins_store.select_quadruples().to_set()
        assert remaining == {self.RESOURCE, self.LITERAL, self.UNRELATED} - selected


class TestRemove:
    """Tests for removing quadruples."""

    def test_remove_quadruple(self, populated_store):
        q = quad("ctx1", "alice", "knows", "bob")
        populated_store.remove_quadruple(q)

        assert not populated_store.contains_quadruple(q)
        assert populated_store.contains_quadruple(quad("ctx2", "alice", "knows", "bob"))

    def test_remove_none_is_noop(self, populated_store, sample_quads):
        populated_store.remove_quadruple(None)
        populated_store.remove_quadruples_by_context(None)
        populated_store.remove_quadruples_by_subject_predicate(ex("alice"), None)
        assert populated_store.count() == len(sample_quads)

    def test_context_scenario(self, store):
        store.add_quadruple(quad("ctx", "s", "p", "o"))
        assert store.count() == 1

        store.remove_quadruples_by_context(ex("ctx2"))
        assert store.count() == 1

        store.remove_quadruples_by_context(ex("ctx"))
        assert store.count() == 0

    @pytest.mark.parametrize("accessors", [
        {"context": ex("ctx1")},
        {"subject": ex("alice")},
        {"predicate": ex("name")},
        {"obj": ex("bob")},
        {"literal": Literal(42)},
        {"context": ex("ctx2"), "subject": ex("carol")},
        {"subject": ex("alice"), "predicate": ex("knows"), "obj": ex("bob")},
        {"context": ex("ctx1"), "predicate": ex("name"), "literal": Literal("Alice")},
    ])
    def test_remove_removes_exactly_selection(self, populated_store, sample_quads, accessors):
        """Removing a pattern leaves everything except what the pattern selects."""
        matched = populated_store.select_quadruples(**accessors).to_set()
        assert matched

        populated_store.remove_quadruples(**accessors)

        assert not populated_store.select_quadruples(**accessors)
        assert populated_store.select_quadruples().to_set() == set(sample_quads) - matched

    def test_named_removers(self, populated_store):
        populated_store.remove_quadruples_by_subject_literal(ex("alice"), Literal("Alice"))
        populated_store.remove_quadruples_by_context_object(ex("ctx2"), ex("bob"))
        populated_store.remove_quadruples_by_predicate_literal(ex("age"), Literal(42))

        assert populated_store.select_quadruples().to_set() == {
            quad("ctx1", "alice", "knows", "bob"),
            quad("ctx1", "bob", "knows", "carol"),
            quad("ctx2", "carol", "name", Literal("Carol", lang="en")),
        }

    def test_clear(self, populated_store, sample_quads):
        populated_store.clear_quadruples()
        assert populated_store.count() == 0
        assert not populated_store.select_quadruples()
        for q in sample_quads:
            assert not populated_store.contains_quadruple(q)

    def test_remove_without_accessors_clears(self, populated_store):
        populated_store.remove_quadruples()
        assert populated_store.count() == 0

    def test_object_and_literal_rejected(self, populated_store, sample_quads):
        with pytest.raises(InvalidPatternError):
            populated_store.remove_quadruples(obj=ex("bob"), literal=Literal("bob"))
        assert populated_store.count() == len(sample_quads)


class TestMerge:
    """Tests for merging rdflib graphs and datasets."""

    def test_merge_graph(self, store):
        graph = Graph(identifier=ex("people"))
        graph.add((ex("alice"), ex("knows"), ex("bob")))
        graph.add((ex("alice"), ex("name"), Literal("Alice")))

        store.merge_graph(graph)

        assert store.count() == 2
        assert store.select_quadruples().contexts() == {ex("people")}

    def test_merge_graph_into_context(self, store):
        graph = Graph()
        graph.add((ex("alice"), ex("knows"), ex("bob")))

        store.merge_graph(graph, context=ex("override"))

        assert store.contains_quadruple(quad("override", "alice", "knows", "bob"))

    def test_merge_none(self, store):
        store.merge_graph(None)
        store.merge_dataset(None)
        assert store.count() == 0

    def test_merge_dataset(self, store):
        dataset = Dataset()
        dataset.add((ex("s"), ex("p"), ex("o"), ex("g1")))
        dataset.add((ex("s"), ex("p"), Literal("v"), ex("g2")))

        store.merge_dataset(dataset)

        assert store.select_quadruples().to_set() == {
            quad("g1", "s", "p", "o"),
            quad("g2", "s", "p", Literal("v")),
        }

    def test_merge_dataset_default_graph(self, store):
        dataset = Dataset()
        dataset.add((ex("s"), ex("p"), ex("o")))

        store.merge_dataset(dataset)

        assert store.select_quadruples().contexts() == {DEFAULT_CONTEXT}

    def test_failed_merge_rolls_back(self, store):
        """A merge that fails part way leaves the store unchanged."""
        store.add_quadruple(quad("c", "s", "p", "o"))

        graph = Graph(identifier=ex("g"))
        for i in range(5):
            graph.add((ex(f"s{i}"), ex("p"), Literal(i)))
        graph.add((Literal("not a subject"), ex("p"), ex("o")))

        with pytest.raises(StoreOperationError, match="Cannot insert data into"):
            store.merge_graph(graph)

        assert store.count() == 1
        # The store stays usable after a failed call
        store.add_quadruple(quad("c", "s", "p", "o2"))
        assert store.count() == 2


class TestFailedCalls:
    """Tests for calls whose statements fail."""

    def test_failed_insert_rolls_back(self, populated_store, sample_quads):
        dialect = populated_store.dialect
        with patch.object(dialect, "insert_sql", return_value="INSERT INTO missing_table VALUES (1)"):
            with pytest.raises(StoreOperationError, match="Cannot insert data into") as excinfo:
                populated_store.add_quadruple(quad("c", "s", "p", "new"))

        error = excinfo.value
        assert error.engine == dialect.name
        assert error.cause is not None
        assert error.__cause__ is error.cause

        stats = populated_store.pool_stats()
        assert stats.total_discards == 0
        assert stats.checked_out_connections == 0

        assert populated_store.count() == len(sample_quads)
        populated_store.add_quadruple(quad("c", "s", "p", "new"))
        assert populated_store.count() == len(sample_quads) + 1

    def test_failed_pattern_delete(self, populated_store, sample_quads):
        compiler = populated_store._engine.compiler
        with patch.object(compiler, "delete_sql", return_value="DELETE FROM missing_table"):
            with pytest.raises(StoreOperationError, match="Cannot delete data from") as excinfo:
                populated_store.remove_quadruples_by_context(ex("ctx1"))

        assert excinfo.value.cause is not None
        assert populated_store.pool_stats().checked_out_connections == 0
        assert populated_store.count() == len(sample_quads)

        populated_store.remove_quadruples_by_context(ex("ctx1"))
        assert populated_store.count() == 3

    def test_failed_rollback_discards_connection(self, populated_store, sample_quads, caplog):
        dialect = populated_store.dialect
        with patch.object(dialect, "insert_sql", return_value="INSERT INTO missing_table VALUES (1)"), \
                patch.object(dialect, "rollback_sql", return_value="NOT A STATEMENT"):
            with pytest.raises(StoreOperationError, match="Cannot insert data into") as excinfo:
                populated_store.add_quadruple(quad("c", "s", "p", "new"))

        assert excinfo.value.cause is not None
        assert "Rollback on" in caplog.text

        stats = populated_store.pool_stats()
        assert stats.total_discards == 1
        assert stats.checked_out_connections == 0
        assert stats.total_connections == 0

        # A fresh connection replaces the discarded one
        assert populated_store.count() == len(sample_quads)
        populated_store.add_quadruple(quad("c", "s", "p", "new"))
        assert populated_store.count() == len(sample_quads) + 1
        assert populated_store.pool_stats().total_connections == 1


class TestCount:
    """Tests for count and its legacy sentinel."""

    def test_count_failure_raises(self, populated_store):
        compiler = populated_store._engine.compiler
        with patch.object(compiler, "count_sql", return_value="SELECT COUNT(*) FROM missing_table"):
            with pytest.raises(StoreOperationError, match="Cannot read data from"):
                populated_store.count()

    def test_quadruples_count_sentinel(self, populated_store, sample_quads, caplog):
        assert populated_store.quadruples_count == len(sample_quads)

        compiler = populated_store._engine.compiler
        with patch.object(compiler, "count_sql", return_value="SELECT COUNT(*) FROM missing_table"):
            assert populated_store.quadruples_count == -1
        assert "Cannot count quadruples" in caplog.text


class TestLifecycle:
    """Tests for cancellation, maintenance and closing."""

    def test_cancelled_before_start(self, store):
        token = CancellationToken()
        token.cancel()

        with pytest.raises(OperationCancelledError):
            store.add_quadruple(quad("c", "s", "p", "o"), cancel_token=token)
        with pytest.raises(OperationCancelledError):
            store.select_quadruples(cancel_token=token)

        assert store.count() == 0

    def test_uncancelled_token(self, store):
        token = CancellationToken()
        store.add_quadruple(quad("c", "s", "p", "o"), cancel_token=token)
        assert store.count(cancel_token=token) == 1

    def test_optimize(self, populated_store, sample_quads):
        populated_store.optimize()
        assert populated_store.count() == len(sample_quads)

    def test_close(self, engine, tmp_path):
        store = SQLQuadStore(descriptor_for(engine, tmp_path))
        store.close()
        store.close()

        assert store.closed
        with pytest.raises(StoreClosedError):
            store.add_quadruple(quad("c", "s", "p", "o"))
        with pytest.raises(StoreClosedError):
            store.count()

    def test_pool_returns_connections(self, populated_store):
        populated_store.select_quadruples(subject=ex("alice"))
        stats = populated_store.pool_stats()
        assert stats.checked_out_connections == 0
        assert stats.total_checkouts > 0


class TestResults:
    """Tests for result conversion."""

    def test_to_dataset(self, populated_store, sample_quads):
        dataset = populated_store.to_dataset()
        quads = {
            (s, p, o, getattr(c, "identifier", c))
            for s, p, o, c in dataset.quads((None, None, None, None))
        }
        assert quads == {q.as_quad() for q in sample_quads}

    def test_to_polars(self, populated_store):
        df = populated_store.select_quadruples(context=ex("ctx1")).to_polars()
        assert isinstance(df, pl.DataFrame)
        assert df.height == 3
        assert df.columns == ["flavor", "context", "subject", "predicate", "object"]
        assert set(df["context"].to_list()) == {f"<{EX}ctx1>"}
        assert sorted(df["flavor"].to_list()) == [1, 1, 2]

    def test_empty_to_polars(self, store):
        df = store.select_quadruples().to_polars()
        assert df.height == 0
        assert df.schema["flavor"] == pl.Int32
