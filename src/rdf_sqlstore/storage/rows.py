"""
Conversion between quadruples and persisted rows, and the in-memory
result set returned by pattern selects.
"""

from __future__ import annotations
from typing import Any, Iterable, Iterator, List, Sequence, Set, Tuple

import polars as pl
from rdflib import Dataset, Literal

from rdf_sqlstore.exceptions import QuadrupleParseError
from rdf_sqlstore.model import (
    Context,
    ObjectFlavor,
    Quadruple,
    parse_term,
    pattern_member_id,
    term_string,
)


def quadruple_to_row(quadruple: Quadruple) -> Tuple[Any, ...]:
    """The ten persisted values of a quadruple, in insert column order."""
    q = quadruple
    return (
        q.quadruple_id,
        int(q.flavor),
        term_string(q.context),
        pattern_member_id(q.context),
        term_string(q.subject),
        pattern_member_id(q.subject),
        term_string(q.predicate),
        pattern_member_id(q.predicate),
        term_string(q.object),
        pattern_member_id(q.object),
    )


def row_to_quadruple(row: Sequence[Any]) -> Quadruple:
    """
    Rebuild a quadruple from a (flavor, context, subject, predicate, object) row.

    Raises:
        QuadrupleParseError: If a term does not parse or the object does
            not agree with the stored flavor
    """
    flavor_value, context, subject, predicate, obj = row
    try:
        flavor = ObjectFlavor(int(flavor_value))
    except ValueError as e:
        raise QuadrupleParseError(f"Unknown triple flavor {flavor_value!r}", cause=e) from e

    object_term = parse_term(obj)
    if (flavor == ObjectFlavor.LITERAL) != isinstance(object_term, Literal):
        raise QuadrupleParseError(
            f"Object {obj!r} does not match triple flavor {flavor.name}"
        )
    try:
        return Quadruple(
            context=parse_term(context),
            subject=parse_term(subject),
            predicate=parse_term(predicate),
            object=object_term,
        )
    except TypeError as e:
        raise QuadrupleParseError(f"Invalid quadruple row {tuple(row)!r}: {e}", cause=e) from e


class QuadrupleResult:
    """
    Quadruples returned by a pattern select.

    Rows are materialized eagerly, so the result stays valid after the
    connection that produced it has been returned to the pool.
    """

    def __init__(self, quadruples: Iterable[Quadruple] = ()):
        self._quadruples: List[Quadruple] = list(quadruples)

    @classmethod
    def from_rows(cls, rows: Iterable[Sequence[Any]]) -> "QuadrupleResult":
        return cls(row_to_quadruple(row) for row in rows)

    def __len__(self) -> int:
        return len(self._quadruples)

    def __iter__(self) -> Iterator[Quadruple]:
        return iter(self._quadruples)

    def __contains__(self, quadruple: object) -> bool:
        return quadruple in self._quadruples

    def __bool__(self) -> bool:
        return bool(self._quadruples)

    def __repr__(self) -> str:
        return f"QuadrupleResult({len(self._quadruples)} quadruples)"

    def to_set(self) -> Set[Quadruple]:
        return set(self._quadruples)

    def contexts(self) -> Set[Context]:
        """Distinct contexts present in the result."""
        return {q.context for q in self._quadruples}

    def to_dataset(self) -> Dataset:
        """Load the result into an rdflib Dataset, one graph per context."""
        dataset = Dataset()
        for q in self._quadruples:
            dataset.add(q.as_quad())
        return dataset

    def to_polars(self) -> pl.DataFrame:
        """Convert the result to a Polars DataFrame of display strings."""
        if not self._quadruples:
            return pl.DataFrame({
                "flavor": pl.Series([], dtype=pl.Int32),
                "context": pl.Series([], dtype=pl.Utf8),
                "subject": pl.Series([], dtype=pl.Utf8),
                "predicate": pl.Series([], dtype=pl.Utf8),
                "object": pl.Series([], dtype=pl.Utf8),
            })
        return pl.DataFrame(
            {
                "flavor": [int(q.flavor) for q in self._quadruples],
                "context": [term_string(q.context) for q in self._quadruples],
                "subject": [term_string(q.subject) for q in self._quadruples],
                "predicate": [term_string(q.predicate) for q in self._quadruples],
                "object": [term_string(q.object) for q in self._quadruples],
            },
            schema={
                "flavor": pl.Int32,
                "context": pl.Utf8,
                "subject": pl.Utf8,
                "predicate": pl.Utf8,
                "object": pl.Utf8,
            },
        )
