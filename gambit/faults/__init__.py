"""
Gambit faults - Structured error taxonomy.

Every error raised by the library is a typed Fault carrying a stable
code, a message, a domain and metadata:

- ValidationFault: aggregated field-keyed validation messages
- MissingIdentityFault / RecordNotFoundFault: lifecycle preconditions
- ScopeNotFoundFault / SoftDeleteNotEnabledFault / UnknownFieldFault /
  RelationNotFoundFault / DatabaseConnectionFault: capability or
  configuration problems
- BuilderFault: a statement intent that cannot be rendered
- QueryFault: execution failure, chained to the driver error
"""

from .core import Fault, FaultDomain, Severity

from .domains import (
    ConfigFault,
    ConfigInvalidFault,
    ValidationFault,
    ModelFault,
    MissingIdentityFault,
    RecordNotFoundFault,
    ScopeNotFoundFault,
    SoftDeleteNotEnabledFault,
    UnknownFieldFault,
    RelationNotFoundFault,
    ModelNotFoundFault,
    BuilderFault,
    DatabaseFault,
    QueryFault,
    DatabaseConnectionFault,
    TransactionFault,
)

__all__ = [
    # Core types
    "Fault",
    "FaultDomain",
    "Severity",

    # Domain faults
    "ConfigFault",
    "ConfigInvalidFault",
    "ValidationFault",
    "ModelFault",
    "MissingIdentityFault",
    "RecordNotFoundFault",
    "ScopeNotFoundFault",
    "SoftDeleteNotEnabledFault",
    "UnknownFieldFault",
    "RelationNotFoundFault",
    "ModelNotFoundFault",
    "BuilderFault",
    "DatabaseFault",
    "QueryFault",
    "DatabaseConnectionFault",
    "TransactionFault",
]
