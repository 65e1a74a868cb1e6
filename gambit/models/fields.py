"""
Gambit Model Fields — the declared schema of a model.

Each field knows how to convert between Python values and stored
values, its column type per dialect, and which validators it carries:

    class User(Model):
        name = CharField(max_length=150, validators=[MinLengthValidator(2)])
        email = CharField(max_length=255, unique=True)
        active = BooleanField(default=True)
        settings = JSONField(null=True)

Fields do not validate on assignment; their validators are merged into
the model's validation rules and run by the validation engine on save.
"""

from __future__ import annotations

import copy
import datetime
import json
from typing import Any, Callable, List, Optional, TYPE_CHECKING

from ..query.dialects import Dialect, get_dialect

if TYPE_CHECKING:
    from .base import Model

__all__ = [
    "UNSET",
    "Field",
    "AutoField",
    "IntegerField",
    "FloatField",
    "CharField",
    "TextField",
    "BooleanField",
    "DateTimeField",
    "JSONField",
]


# ── Sentinel ─────────────────────────────────────────────────────────────────

class _Unset:
    """Sentinel for distinguishing 'not set' from None."""
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return "<UNSET>"

    def __bool__(self):
        return False

UNSET = _Unset()


# ── Base Field ───────────────────────────────────────────────────────────────


class Field:
    """
    Base field — all Gambit fields inherit from this.

    Core parameters:
        null        – Allow NULL in database (default False)
        default     – Default value or callable
        unique      – Add UNIQUE constraint
        primary_key – Mark as primary key
        db_column   – Override column name
        validators  – Validator objects run on save
        help_text   – Documentation string
    """

    _kind: str = "text"
    _python_type: type = object

    def __init__(
        self,
        *,
        null: bool = False,
        default: Any = UNSET,
        unique: bool = False,
        primary_key: bool = False,
        db_column: Optional[str] = None,
        validators: Optional[List[Any]] = None,
        help_text: str = "",
    ):
        self.null = null
        self.default = default
        self.unique = unique
        self.primary_key = primary_key
        self.db_column = db_column
        self.validators = list(validators or [])
        self.help_text = help_text

        # Set by metaclass
        self.name: str = ""
        self.model: Optional[type[Model]] = None

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}: {self.name}>"

    @property
    def column_name(self) -> str:
        """Database column name."""
        return self.db_column or self.name

    def has_default(self) -> bool:
        return self.default is not UNSET

    def get_default(self) -> Any:
        """Get default value, calling it if callable."""
        if self.default is UNSET:
            return None
        if callable(self.default):
            return self.default()
        return copy.deepcopy(self.default)

    def to_python(self, value: Any) -> Any:
        """Convert stored value to Python object."""
        return value

    def to_db(self, value: Any) -> Any:
        """Convert Python value to a storable value."""
        return value

    def sql_type(self, dialect: Dialect) -> str:
        return dialect.column_type(self._kind)

    def sql_column_def(self, dialect: str | Dialect = "sqlite") -> str:
        """Generate full SQL column definition."""
        dialect = get_dialect(dialect)
        if self.primary_key and isinstance(self, AutoField):
            return f"{dialect.quote(self.column_name)} {dialect.auto_increment_pk}"

        parts = [dialect.quote(self.column_name), self.sql_type(dialect)]
        if self.primary_key:
            parts.append("PRIMARY KEY")
        if self.unique and not self.primary_key:
            parts.append("UNIQUE")
        if not self.null and not self.primary_key:
            parts.append("NOT NULL")
        sql_default = self._sql_default(dialect)
        if sql_default is not None:
            parts.append(f"DEFAULT {sql_default}")
        return " ".join(parts)

    def _sql_default(self, dialect: Dialect) -> Optional[str]:
        if self.default is UNSET or callable(self.default):
            return None
        value = dialect.bind(self.default)
        if isinstance(value, bool):
            return "TRUE" if value else "FALSE"
        if isinstance(value, (int, float)):
            return str(value)
        if isinstance(value, str):
            escaped = value.replace("'", "''")
            return f"'{escaped}'"
        return None


# ═══════════════════════════════════════════════════════════════════════════════
# NUMERIC FIELDS
# ═══════════════════════════════════════════════════════════════════════════════


class AutoField(Field):
    """Store-generated primary key (auto-increment integer, or document id)."""

    _kind = "integer"

    def __init__(self, **kwargs: Any):
        kwargs.setdefault("primary_key", True)
        kwargs.setdefault("null", True)
        super().__init__(**kwargs)


class IntegerField(Field):
    _kind = "integer"
    _python_type = int

    def to_python(self, value: Any) -> Any:
        if value is None or isinstance(value, int):
            return value
        try:
            return int(value)
        except (TypeError, ValueError):
            return value


class FloatField(Field):
    """Double-precision floating-point field."""

    _kind = "float"
    _python_type = float

    def to_python(self, value: Any) -> Any:
        if value is None or isinstance(value, float):
            return value
        try:
            return float(value)
        except (TypeError, ValueError):
            return value


# ═══════════════════════════════════════════════════════════════════════════════
# TEXT FIELDS
# ═══════════════════════════════════════════════════════════════════════════════


class CharField(Field):
    """Short text field."""

    _kind = "string"
    _python_type = str

    def __init__(self, *, max_length: int = 255, **kwargs: Any):
        self.max_length = max_length
        super().__init__(**kwargs)

    def sql_type(self, dialect: Dialect) -> str:
        return dialect.column_type(self._kind, max_length=self.max_length)


class TextField(Field):
    """Long text field — no length restriction."""

    _kind = "text"
    _python_type = str


# ═══════════════════════════════════════════════════════════════════════════════
# OTHER FIELDS
# ═══════════════════════════════════════════════════════════════════════════════


class BooleanField(Field):
    """Boolean field — the dialect decides how it is bound (1/0 or native)."""

    _kind = "boolean"
    _python_type = bool

    def to_python(self, value: Any) -> Any:
        if value is None:
            return None
        return bool(value)

    def to_db(self, value: Any) -> Any:
        if value is None:
            return None
        return bool(value)


class DateTimeField(Field):
    """DateTime field, stored as ISO-8601 text."""

    _kind = "datetime"
    _python_type = datetime.datetime

    def to_python(self, value: Any) -> Any:
        if isinstance(value, str):
            try:
                return datetime.datetime.fromisoformat(value)
            except ValueError:
                return value
        return value

    def to_db(self, value: Any) -> Any:
        if isinstance(value, datetime.datetime):
            return value.isoformat()
        return value


class JSONField(Field):
    """JSON data field — native on PostgreSQL, TEXT elsewhere."""

    _kind = "json"
    _python_type = dict

    def __init__(self, *, encoder: Optional[type] = None, decoder: Optional[Callable] = None, **kwargs: Any):
        self.encoder = encoder
        self.decoder = decoder
        super().__init__(**kwargs)

    def to_python(self, value: Any) -> Any:
        if isinstance(value, str):
            try:
                return json.loads(value, object_hook=self.decoder)
            except json.JSONDecodeError:
                return value
        return value

    def to_db(self, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return json.dumps(value, cls=self.encoder)
