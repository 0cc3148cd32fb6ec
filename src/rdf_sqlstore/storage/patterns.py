"""
Pattern compiler.

Maps the accessors bound by a query or delete (context, subject,
predicate, object, literal) to one WHERE clause over the indexed ID
columns and its ordered parameters.

Bound accessors form a 5-bit mask. Every valid mask (object and literal
never together) has a PatternTemplate built once at import time; the
read path and the delete path render their SQL from the same template.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import IntFlag
from typing import Dict, List, Optional, Tuple

from rdflib import Literal
from rdflib.term import Node

from rdf_sqlstore.exceptions import InvalidPatternError
from rdf_sqlstore.model import ObjectFlavor, pattern_member_id
from rdf_sqlstore.storage.dialects import SELECT_COLUMNS, SQLDialect


class Accessor(IntFlag):
    """One bit per accessor, in signature order."""
    CONTEXT = 1
    SUBJECT = 2
    PREDICATE = 4
    OBJECT = 8
    LITERAL = 16


# Signature order with the letter and filtered column of each accessor
_ACCESSORS: Tuple[Tuple[Accessor, str, str], ...] = (
    (Accessor.CONTEXT, "C", "ContextID"),
    (Accessor.SUBJECT, "S", "SubjectID"),
    (Accessor.PREDICATE, "P", "PredicateID"),
    (Accessor.OBJECT, "O", "ObjectID"),
    (Accessor.LITERAL, "L", "ObjectID"),
)

_OBJECT_AND_LITERAL = Accessor.OBJECT | Accessor.LITERAL


def signature(mask: int) -> str:
    """Letters of the bound accessors in C, S, P, O, L order."""
    return "".join(letter for bit, letter, _ in _ACCESSORS if mask & bit)


def is_valid_mask(mask: int) -> bool:
    return 0 <= mask < 32 and (mask & _OBJECT_AND_LITERAL) != _OBJECT_AND_LITERAL


@dataclass(frozen=True)
class PatternTemplate:
    """
    Predicate shape for one accessor combination.

    Attributes:
        mask: Bound accessors
        signature: Canonical letters, "" for the full scan
        columns: Filtered ID columns in parameter order
        flavor: Flavor filter when an object or literal is bound
    """
    mask: int
    signature: str
    columns: Tuple[str, ...]
    flavor: Optional[ObjectFlavor] = None

    @property
    def is_full_scan(self) -> bool:
        return self.mask == 0

    def filter_columns(self) -> Tuple[str, ...]:
        """Every column the predicate constrains, flavor included."""
        if self.flavor is None:
            return self.columns
        return self.columns + ("TripleFlavor",)

    def where_clause(self, dialect: SQLDialect) -> str:
        """Predicate text, empty for the full scan."""
        if self.is_full_scan:
            return ""
        conditions = [
            f"{dialect.column(col)} = {dialect.placeholder}"
            for col in self.filter_columns()
        ]
        return " WHERE " + " AND ".join(conditions)


def _build_template(mask: int) -> PatternTemplate:
    columns = tuple(column for bit, _, column in _ACCESSORS if mask & bit)
    flavor = None
    if mask & Accessor.OBJECT:
        flavor = ObjectFlavor.RESOURCE
    elif mask & Accessor.LITERAL:
        flavor = ObjectFlavor.LITERAL
    return PatternTemplate(mask=mask, signature=signature(mask), columns=columns, flavor=flavor)


PATTERN_TABLE: Dict[int, PatternTemplate] = {
    mask: _build_template(mask) for mask in range(32) if is_valid_mask(mask)
}

FULL_SCAN: PatternTemplate = PATTERN_TABLE[0]


@dataclass(frozen=True)
class CompiledPattern:
    """A template together with the parameters bound for one call."""
    template: PatternTemplate
    params: Tuple[int, ...]

    @property
    def signature(self) -> str:
        return self.template.signature


def compile_pattern(
    context: Optional[Node] = None,
    subject: Optional[Node] = None,
    predicate: Optional[Node] = None,
    obj: Optional[Node] = None,
    literal: Optional[Node] = None,
) -> CompiledPattern:
    """
    Compile bound accessors into a template and its parameters.

    Parameters are pattern member IDs in C, S, P, O/L order, followed by
    the flavor value when an object or literal is bound.

    Raises:
        InvalidPatternError: If both obj and literal are given, or either
            one has the wrong kind of term
    """
    if obj is not None and literal is not None:
        raise InvalidPatternError(
            "Cannot compile pattern because: object and literal accessors "
            "are mutually exclusive."
        )
    if obj is not None and isinstance(obj, Literal):
        raise InvalidPatternError(
            f"Cannot compile pattern because: object accessor {obj!r} is a literal, "
            "use the literal accessor."
        )
    if literal is not None and not isinstance(literal, Literal):
        raise InvalidPatternError(
            f"Cannot compile pattern because: literal accessor {literal!r} is not a literal."
        )

    bound = (context, subject, predicate, obj, literal)
    mask = 0
    params: List[int] = []
    for (bit, _, _), term in zip(_ACCESSORS, bound):
        if term is not None:
            mask |= bit
            params.append(pattern_member_id(term))

    template = PATTERN_TABLE.get(mask)
    if template is None:
        return CompiledPattern(FULL_SCAN, ())
    if template.flavor is not None:
        params.append(int(template.flavor))
    return CompiledPattern(template, tuple(params))


class PatternCompiler:
    """
    Renders and caches the statements of one dialect.

    Statement text depends only on the template, so each mask is rendered
    once per compiler.
    """

    def __init__(self, dialect: SQLDialect):
        self._dialect = dialect
        self._select_cache: Dict[int, str] = {}
        self._delete_cache: Dict[int, str] = {}

    @property
    def dialect(self) -> SQLDialect:
        return self._dialect

    def select_sql(self, template: PatternTemplate) -> str:
        sql = self._select_cache.get(template.mask)
        if sql is None:
            d = self._dialect
            projection = ", ".join(d.column(col) for col in SELECT_COLUMNS)
            sql = f"SELECT {projection} FROM {d.table}{template.where_clause(d)}"
            self._select_cache[template.mask] = sql
        return sql

    def delete_sql(self, template: PatternTemplate) -> str:
        sql = self._delete_cache.get(template.mask)
        if sql is None:
            d = self._dialect
            sql = f"DELETE FROM {d.table}{template.where_clause(d)}"
            self._delete_cache[template.mask] = sql
        return sql

    def exists_sql(self) -> str:
        d = self._dialect
        return (
            f"SELECT EXISTS(SELECT 1 FROM {d.table} "
            f"WHERE {d.column('QuadrupleID')} = {d.placeholder})"
        )

    def delete_by_id_sql(self) -> str:
        d = self._dialect
        return f"DELETE FROM {d.table} WHERE {d.column('QuadrupleID')} = {d.placeholder}"

    def count_sql(self) -> str:
        return f"SELECT COUNT(*) FROM {self._dialect.table}"
