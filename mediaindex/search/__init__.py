"""Search module for mediaindex."""

from .engine import Query, SearchEngine, SearchResult
from .predicates import ATTRIBUTES, Attribute, Operator, Predicate, ValueType

__all__ = [
    "SearchEngine",
    "Query",
    "SearchResult",
    "Predicate",
    "Operator",
    "Attribute",
    "ValueType",
    "ATTRIBUTES",
]
