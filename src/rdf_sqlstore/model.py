"""
Quadruple model and term codec.

RDF terms come from rdflib. This module only adds what the SQL layer needs
on top of them:
- a canonical display string per term (its N3 form) and its inverse
- 64-bit content hashes (pattern member IDs and quadruple IDs)
- the immutable Quadruple value object with its object flavor
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Optional, Tuple, Union
import hashlib

from rdflib import BNode, Literal, URIRef
from rdflib.graph import DATASET_DEFAULT_GRAPH_ID
from rdflib.term import Node
from rdflib.util import from_n3

from rdf_sqlstore.exceptions import QuadrupleParseError


Resource = Union[URIRef, BNode]
Context = Union[URIRef, BNode]
ObjectTerm = Union[URIRef, BNode, Literal]

# Context given to quadruples built without one
DEFAULT_CONTEXT: URIRef = DATASET_DEFAULT_GRAPH_ID


class ObjectFlavor(IntEnum):
    """
    Kind of object carried by a quadruple.

    Persisted in the TripleFlavor column; the values match the ones
    written by existing deployments.
    """
    RESOURCE = 1  # SPO
    LITERAL = 2   # SPL


# =============================================================================
# Term codec
# =============================================================================

def term_string(term: Node) -> str:
    """Canonical display string of a term (its N3 form)."""
    return term.n3()


def parse_term(text: str) -> Node:
    """
    Parse a display string produced by term_string() back into a term.

    Raises:
        QuadrupleParseError: If the text is not a resource or literal
    """
    try:
        term = from_n3(text)
    except Exception as e:
        raise QuadrupleParseError(f"Cannot parse term {text!r}: {e}", cause=e) from e
    if not isinstance(term, (URIRef, BNode, Literal)):
        raise QuadrupleParseError(f"Cannot parse term {text!r}")
    return term


def create_hash(text: str) -> int:
    """
    Stable 64-bit content hash of a string.

    First 8 bytes of the MD5 digest, read as a signed big-endian integer
    so the value fits a SQL BIGINT column.
    """
    digest = hashlib.md5(text.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big", signed=True)


def pattern_member_id(term: Node) -> int:
    """Hash of a single term, independent of its position in a quadruple."""
    return create_hash(term_string(term))


# =============================================================================
# Quadruple
# =============================================================================

@dataclass(frozen=True, slots=True)
class Quadruple:
    """
    An RDF statement together with the context (named graph) holding it.

    Attributes:
        context: Context resource (URIRef or BNode)
        subject: Subject resource (URIRef or BNode)
        predicate: Predicate IRI
        object: Object resource or literal
        flavor: Derived object flavor
        quadruple_id: Derived 64-bit identifier of the whole quadruple
    """
    context: Context
    subject: Resource
    predicate: URIRef
    object: ObjectTerm
    flavor: ObjectFlavor = field(init=False, compare=False, repr=False)
    quadruple_id: int = field(init=False, compare=False, repr=False)

    def __post_init__(self):
        if not isinstance(self.context, (URIRef, BNode)):
            raise TypeError(f"Context must be a URIRef or BNode, got {self.context!r}")
        if not isinstance(self.subject, (URIRef, BNode)):
            raise TypeError(f"Subject must be a URIRef or BNode, got {self.subject!r}")
        if not isinstance(self.predicate, URIRef):
            raise TypeError(f"Predicate must be a URIRef, got {self.predicate!r}")
        if not isinstance(self.object, (URIRef, BNode, Literal)):
            raise TypeError(f"Object must be a URIRef, BNode or Literal, got {self.object!r}")

        flavor = (
            ObjectFlavor.LITERAL if isinstance(self.object, Literal)
            else ObjectFlavor.RESOURCE
        )
        for term in (self.context, self.subject, self.predicate, self.object):
            try:
                term_string(term)
            except Exception as e:
                # rdflib accepts some IRIs it refuses to write as N3
                raise TypeError(f"Cannot serialize term {term!r}: {e}") from e

        object.__setattr__(self, "flavor", flavor)
        object.__setattr__(self, "quadruple_id", create_hash(str(self)))

    def __str__(self) -> str:
        return " ".join(
            term_string(t)
            for t in (self.context, self.subject, self.predicate, self.object)
        )

    @property
    def is_literal(self) -> bool:
        return self.flavor == ObjectFlavor.LITERAL

    def as_quad(self) -> Tuple[Node, Node, Node, Node]:
        """The (s, p, o, c) tuple used by rdflib datasets."""
        return (self.subject, self.predicate, self.object, self.context)

    @classmethod
    def create(
        cls,
        subject: Resource,
        predicate: URIRef,
        obj: ObjectTerm,
        context: Optional[Context] = None,
    ) -> "Quadruple":
        """Build a quadruple, falling back to the default context."""
        return cls(
            context=context if context is not None else DEFAULT_CONTEXT,
            subject=subject,
            predicate=predicate,
            object=obj,
        )

    @classmethod
    def from_triple(
        cls,
        triple: Tuple[Node, Node, Node],
        context: Optional[Context] = None,
    ) -> "Quadruple":
        """Build a quadruple from an rdflib (s, p, o) triple."""
        s, p, o = triple
        return cls.create(s, p, o, context)
