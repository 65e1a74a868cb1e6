"""
Gambit Query — statement builders.

- BaseQueryBuilder: the fluent intent interface shared by all backends
- QueryBuilder: relational renderer (parameterized SQL)
- DocumentQueryBuilder: document-store renderer
- Dialect table: placeholders, quoting, booleans, DDL types
"""

from .base import BaseQueryBuilder, Predicate, Join, OrderClause, Aggregate, OPERATORS
from .dialects import Dialect, DIALECTS, get_dialect, register_dialect
from .sql import QueryBuilder, Statement
from .document import (
    DocumentQueryBuilder,
    DocumentOperation,
    to_document,
    from_document,
    like_to_regex,
)

__all__ = [
    "BaseQueryBuilder",
    "Predicate",
    "Join",
    "OrderClause",
    "Aggregate",
    "OPERATORS",
    "Dialect",
    "DIALECTS",
    "get_dialect",
    "register_dialect",
    "QueryBuilder",
    "Statement",
    "DocumentQueryBuilder",
    "DocumentOperation",
    "to_document",
    "from_document",
    "like_to_regex",
]
