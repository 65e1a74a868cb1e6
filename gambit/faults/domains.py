"""
Gambit faults - Domain-specific fault types.

Provides concrete fault classes for each domain:
- CONFIG faults
- VALIDATION faults
- MODEL faults (preconditions and capabilities)
- QUERY faults (statement building)
- DATABASE faults (execution)
"""

from typing import Any, Optional
from .core import Fault, FaultDomain, Severity


# ============================================================================
# CONFIG Faults
# ============================================================================

class ConfigFault(Fault):
    """Base class for configuration faults."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        severity: Severity = Severity.FATAL,
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            domain=FaultDomain.CONFIG,
            severity=severity,
            retryable=False,
            metadata=metadata,
        )


class ConfigInvalidFault(ConfigFault):
    """Configuration value is invalid."""

    def __init__(self, key: str, reason: str, **kwargs):
        super().__init__(
            code="CONFIG_INVALID",
            message=f"Configuration key '{key}' is invalid: {reason}",
            metadata={"key": key, "reason": reason, **kwargs.get("metadata", {})},
        )


# ============================================================================
# VALIDATION Faults
# ============================================================================

class ValidationFault(Fault):
    """
    Record validation failed.

    Carries every message for every failing field, keyed by field name,
    so callers can render all problems at once.
    """

    def __init__(self, errors: dict[str, list[str]], **kwargs):
        self.errors = errors
        error_summary = "; ".join(
            f"{k}: {', '.join(v)}" for k, v in errors.items()
        )
        super().__init__(
            code="VALIDATION_FAILED",
            message=f"Validation failed: {error_summary}",
            domain=FaultDomain.VALIDATION,
            public=True,
            metadata={"errors": errors, **kwargs.get("metadata", {})},
        )

    def field_errors(self, field: str) -> list[str]:
        return list(self.errors.get(field, []))

    def has_field_error(self, field: str) -> bool:
        return bool(self.errors.get(field))

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base["errors"] = self.errors
        return base


# ============================================================================
# MODEL Faults
# ============================================================================

class ModelFault(Fault):
    """Base class for model lifecycle and capability faults."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        severity: Severity = Severity.ERROR,
        public: bool = False,
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            domain=FaultDomain.MODEL,
            severity=severity,
            retryable=False,
            public=public,
            metadata=metadata,
        )


class MissingIdentityFault(ModelFault):
    """An operation that needs a persisted record was called without an id."""

    def __init__(self, model: str, operation: str, **kwargs):
        super().__init__(
            code="MISSING_IDENTITY",
            message=f"Cannot {operation} {model} without an id",
            metadata={"model": model, "operation": operation, **kwargs.get("metadata", {})},
        )


class RecordNotFoundFault(ModelFault):
    """The row backing a record no longer exists."""

    def __init__(self, model: str, pk: Any, **kwargs):
        super().__init__(
            code="RECORD_NOT_FOUND",
            message=f"{model} with id {pk!r} not found",
            public=True,
            metadata={"model": model, "pk": pk, **kwargs.get("metadata", {})},
        )


class ScopeNotFoundFault(ModelFault):
    """A local scope was requested by a name that was never registered."""

    def __init__(self, model: str, scope: str, **kwargs):
        super().__init__(
            code="SCOPE_NOT_FOUND",
            message=f"Scope '{scope}' not found on model {model}",
            metadata={"model": model, "scope": scope, **kwargs.get("metadata", {})},
        )


class SoftDeleteNotEnabledFault(ModelFault):
    """A soft-delete operation was called on a type without soft deletes."""

    def __init__(self, model: str, operation: str = "restore", **kwargs):
        super().__init__(
            code="SOFT_DELETES_DISABLED",
            message=f"Cannot {operation} {model}: soft deletes are not enabled",
            metadata={"model": model, "operation": operation, **kwargs.get("metadata", {})},
        )


class UnknownFieldFault(ModelFault):
    """Attempted to set or filter on a field the model does not declare."""

    def __init__(self, model: str, field: str, **kwargs):
        super().__init__(
            code="UNKNOWN_FIELD",
            message=f"{model} has no field '{field}'",
            metadata={"model": model, "field": field, **kwargs.get("metadata", {})},
        )


class RelationNotFoundFault(ModelFault):
    """A relation name was requested that the model does not declare."""

    def __init__(self, model: str, relation: str, **kwargs):
        super().__init__(
            code="RELATION_NOT_FOUND",
            message=f"Relation '{relation}' not found on model {model}",
            metadata={"model": model, "relation": relation, **kwargs.get("metadata", {})},
        )


class ModelNotFoundFault(ModelFault):
    """Model not found in registry."""

    def __init__(self, model_name: str, **kwargs):
        super().__init__(
            code="MODEL_NOT_FOUND",
            message=f"Model '{model_name}' not found in ModelRegistry",
            metadata={"model": model_name, **kwargs.get("metadata", {})},
        )


# ============================================================================
# QUERY Faults
# ============================================================================

class BuilderFault(Fault):
    """A statement intent cannot be rendered (programmer error)."""

    def __init__(self, table: str, reason: str, **kwargs):
        super().__init__(
            code="BUILDER_ERROR",
            message=f"Cannot build statement for '{table}': {reason}",
            domain=FaultDomain.QUERY,
            metadata={"table": table, "reason": reason, **kwargs.get("metadata", {})},
        )


# ============================================================================
# DATABASE Faults
# ============================================================================

class DatabaseFault(Fault):
    """Base class for execution collaborator faults."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        severity: Severity = Severity.ERROR,
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            domain=FaultDomain.DATABASE,
            severity=severity,
            retryable=False,
            metadata=metadata,
        )


class QueryFault(DatabaseFault):
    """Statement execution failed."""

    def __init__(self, model: str, operation: str, reason: str, **kwargs):
        self.operation = operation
        super().__init__(
            code="QUERY_FAILED",
            message=f"Query on '{model}' ({operation}) failed: {reason}",
            metadata={"model": model, "operation": operation, "reason": reason, **kwargs.get("metadata", {})},
        )


class DatabaseConnectionFault(DatabaseFault):
    """Database connection failed or is unavailable."""

    def __init__(self, url: str, reason: str, **kwargs):
        super().__init__(
            code="DB_CONNECTION_FAILED",
            message=f"Database connection failed ({url}): {reason}",
            severity=Severity.FATAL,
            metadata={"url": url, "reason": reason, **kwargs.get("metadata", {})},
        )


class TransactionFault(DatabaseFault):
    """Transaction used out of order (commit without begin, nested begin)."""

    def __init__(self, reason: str, **kwargs):
        super().__init__(
            code="TRANSACTION_ERROR",
            message=f"Transaction error: {reason}",
            metadata={"reason": reason, **kwargs.get("metadata", {})},
        )
