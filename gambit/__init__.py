"""
Gambit - async ORM/ODM for relational and document stores

- Query: one fluent builder interface, rendered as parameterized SQL or
  as native document-store operations
- Models: declarative fields, hooks, validation, timestamps, soft
  deletes, scopes and relations
- DB: async engine over pluggable backend adapters
- Faults: structured error taxonomy
"""

__version__ = "0.1.0"

from .config import ConfigLoader, DatabaseConfig
from .db import Database, QueryResult, configure_database, get_database, set_database
from .faults import (
    Fault,
    ValidationFault,
    MissingIdentityFault,
    RecordNotFoundFault,
    ScopeNotFoundFault,
    SoftDeleteNotEnabledFault,
    UnknownFieldFault,
    RelationNotFoundFault,
    BuilderFault,
    QueryFault,
    DatabaseConnectionFault,
)
from .models import (
    Model,
    ModelRegistry,
    HookEvent,
    AutoField,
    IntegerField,
    FloatField,
    CharField,
    TextField,
    BooleanField,
    DateTimeField,
    JSONField,
    HasOne,
    HasMany,
    BelongsTo,
    BelongsToMany,
)
from .query import BaseQueryBuilder, QueryBuilder, DocumentQueryBuilder
from .validation import ValidationEngine

__all__ = [
    "__version__",
    # Config
    "ConfigLoader",
    "DatabaseConfig",
    # DB
    "Database",
    "QueryResult",
    "configure_database",
    "get_database",
    "set_database",
    # Faults
    "Fault",
    "ValidationFault",
    "MissingIdentityFault",
    "RecordNotFoundFault",
    "ScopeNotFoundFault",
    "SoftDeleteNotEnabledFault",
    "UnknownFieldFault",
    "RelationNotFoundFault",
    "BuilderFault",
    "QueryFault",
    "DatabaseConnectionFault",
    # Models
    "Model",
    "ModelRegistry",
    "HookEvent",
    "AutoField",
    "IntegerField",
    "FloatField",
    "CharField",
    "TextField",
    "BooleanField",
    "DateTimeField",
    "JSONField",
    "HasOne",
    "HasMany",
    "BelongsTo",
    "BelongsToMany",
    # Query
    "BaseQueryBuilder",
    "QueryBuilder",
    "DocumentQueryBuilder",
    # Validation
    "ValidationEngine",
]
