"""
Gambit Validators — reusable per-field validation rules.

A validator inspects one value and returns ``None`` when it is valid or
an error message when it is not. ``validate`` may be sync or async;
the engine awaits whichever it gets.

Every validator except ``RequiredValidator`` treats an empty value
(``None`` or ``""``) as valid, so optional fields only need
``RequiredValidator`` when they are actually required.

Usage:
    from gambit.validation import (
        RequiredValidator, EmailValidator, MinLengthValidator, UniqueValidator,
    )

    class User(Model):
        email = CharField(validators=[RequiredValidator(), EmailValidator()])

        class Meta:
            validation_rules = {
                "name": [RequiredValidator(), MinLengthValidator(2)],
                "email": [UniqueValidator()],
            }
"""

from __future__ import annotations

import datetime
import inspect
import re
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence, Union
from urllib.parse import urlparse

__all__ = [
    "BaseValidator",
    "RequiredValidator",
    "EmailValidator",
    "MinLengthValidator",
    "MaxLengthValidator",
    "MinValidator",
    "MaxValidator",
    "RegexValidator",
    "TypeValidator",
    "UrlValidator",
    "DateValidator",
    "ArrayValidator",
    "CustomValidator",
    "UniqueValidator",
    "ExistsValidator",
    "is_empty",
]

ValidationOutcome = Union[Optional[str], Awaitable[Optional[str]]]


def is_empty(value: Any) -> bool:
    return value is None or value == ""


class BaseValidator:
    """Base class for all validators."""

    code: str = "invalid"

    def __init__(self, message: Optional[str] = None):
        self.message = message

    def validate(self, value: Any, field: str, record: Any = None) -> ValidationOutcome:
        """Return an error message, or ``None`` if ``value`` is valid."""
        if is_empty(value):
            return None
        if self.is_valid(value):
            return None
        return self.message or self.default_message(field, value)

    def is_valid(self, value: Any) -> bool:
        """Override in subclasses. Return True if value is valid."""
        return True

    def default_message(self, field: str, value: Any) -> str:
        return f"{field} is invalid"

    def __eq__(self, other: Any) -> bool:
        return isinstance(other, self.__class__) and self.__dict__ == other.__dict__

    def __hash__(self) -> int:
        return id(self)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}>"


# ── Presence / format ────────────────────────────────────────────────


class RequiredValidator(BaseValidator):
    """Fail on ``None`` and ``""``."""

    code = "required"

    def validate(self, value: Any, field: str, record: Any = None) -> Optional[str]:
        if is_empty(value):
            return self.message or f"{field} is required"
        return None


class EmailValidator(BaseValidator):
    code = "invalid_email"
    _pattern = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

    def is_valid(self, value: Any) -> bool:
        return isinstance(value, str) and bool(self._pattern.match(value))

    def default_message(self, field: str, value: Any) -> str:
        return f"{field} must be a valid email address"


class RegexValidator(BaseValidator):
    """Validate ``str(value)`` against a pattern (searched, not anchored)."""

    code = "invalid_format"

    def __init__(self, pattern: Union[str, "re.Pattern[str]"], flags: int = 0, message: Optional[str] = None):
        super().__init__(message)
        self.pattern = pattern if isinstance(pattern, re.Pattern) else re.compile(pattern, flags)

    def is_valid(self, value: Any) -> bool:
        return bool(self.pattern.search(str(value)))

    def default_message(self, field: str, value: Any) -> str:
        return f"{field} does not match the required pattern"

    def __repr__(self) -> str:
        return f"RegexValidator({self.pattern.pattern!r})"


class UrlValidator(BaseValidator):
    """
    Validate an absolute URL.

    ``protocols`` restricts the scheme (default http/https); with
    ``require_protocol=False`` any scheme is accepted.
    """

    code = "invalid_url"

    def __init__(
        self,
        protocols: Sequence[str] = ("http", "https"),
        require_protocol: bool = True,
        message: Optional[str] = None,
    ):
        super().__init__(message)
        self.protocols = tuple(protocols)
        self.require_protocol = require_protocol

    def validate(self, value: Any, field: str, record: Any = None) -> Optional[str]:
        if is_empty(value):
            return None
        parsed = urlparse(str(value))
        if not parsed.scheme or not (parsed.netloc or parsed.path):
            return self.message or f"{field} must be a valid URL"
        if self.require_protocol and parsed.scheme not in self.protocols:
            return self.message or (
                f"{field} must use one of the following protocols: {', '.join(self.protocols)}"
            )
        return None


# ── Length / range ───────────────────────────────────────────────────


class MinLengthValidator(BaseValidator):
    code = "min_length"

    def __init__(self, min_length: int, message: Optional[str] = None):
        super().__init__(message)
        self.min_length = min_length

    def is_valid(self, value: Any) -> bool:
        return len(value if isinstance(value, str) else str(value)) >= self.min_length

    def default_message(self, field: str, value: Any) -> str:
        return f"{field} must be at least {self.min_length} characters long"

    def __repr__(self) -> str:
        return f"MinLengthValidator({self.min_length})"


class MaxLengthValidator(BaseValidator):
    code = "max_length"

    def __init__(self, max_length: int, message: Optional[str] = None):
        super().__init__(message)
        self.max_length = max_length

    def is_valid(self, value: Any) -> bool:
        return len(value if isinstance(value, str) else str(value)) <= self.max_length

    def default_message(self, field: str, value: Any) -> str:
        return f"{field} must be at most {self.max_length} characters long"

    def __repr__(self) -> str:
        return f"MaxLengthValidator({self.max_length})"


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class MinValidator(BaseValidator):
    """Numeric lower bound (inclusive); numeric strings are coerced."""

    code = "min_value"

    def __init__(self, minimum: float, message: Optional[str] = None):
        super().__init__(message)
        self.minimum = minimum

    def validate(self, value: Any, field: str, record: Any = None) -> Optional[str]:
        if is_empty(value):
            return None
        number = _as_number(value)
        if number is None:
            return f"{field} must be a number"
        if number < self.minimum:
            return self.message or f"{field} must be at least {self.minimum}"
        return None

    def __repr__(self) -> str:
        return f"MinValidator({self.minimum})"


class MaxValidator(BaseValidator):
    """Numeric upper bound (inclusive); numeric strings are coerced."""

    code = "max_value"

    def __init__(self, maximum: float, message: Optional[str] = None):
        super().__init__(message)
        self.maximum = maximum

    def validate(self, value: Any, field: str, record: Any = None) -> Optional[str]:
        if is_empty(value):
            return None
        number = _as_number(value)
        if number is None:
            return f"{field} must be a number"
        if number > self.maximum:
            return self.message or f"{field} must be at most {self.maximum}"
        return None

    def __repr__(self) -> str:
        return f"MaxValidator({self.maximum})"


# ── Types ────────────────────────────────────────────────────────────


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value == value


_TYPE_CHECKS: Dict[str, Callable[[Any], bool]] = {
    "string": lambda v: isinstance(v, str),
    "number": _is_number,
    "boolean": lambda v: isinstance(v, bool),
    "date": lambda v: isinstance(v, (datetime.date, datetime.datetime)),
    "array": lambda v: isinstance(v, (list, tuple)),
    "object": lambda v: isinstance(v, dict),
}


class TypeValidator(BaseValidator):
    """
    Check the value's kind: string, number, boolean, date, array or object.

    Only ``None`` is skipped; an empty string is still checked.
    """

    code = "invalid_type"

    def __init__(self, expected_type: str, message: Optional[str] = None):
        if expected_type not in _TYPE_CHECKS:
            raise ValueError(f"Unknown type {expected_type!r}; expected one of {sorted(_TYPE_CHECKS)}")
        super().__init__(message)
        self.expected_type = expected_type

    def validate(self, value: Any, field: str, record: Any = None) -> Optional[str]:
        if value is None or _TYPE_CHECKS[self.expected_type](value):
            return None
        return self.message or f"{field} must be of type {self.expected_type}"

    def __repr__(self) -> str:
        return f"TypeValidator({self.expected_type!r})"


def _parse_date(value: Any) -> Optional[datetime.datetime]:
    if isinstance(value, datetime.datetime):
        return value
    if isinstance(value, datetime.date):
        return datetime.datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        try:
            return datetime.datetime.fromisoformat(value)
        except ValueError:
            return None
    if _is_number(value):
        try:
            return datetime.datetime.fromtimestamp(value, tz=datetime.timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    return None


def _comparable(a: datetime.datetime, b: datetime.datetime) -> tuple:
    # naive and aware datetimes cannot be compared directly
    if (a.tzinfo is None) != (b.tzinfo is None):
        a, b = a.replace(tzinfo=None), b.replace(tzinfo=None)
    return a, b


class DateValidator(BaseValidator):
    """
    Validate a date: a ``date``/``datetime``, an ISO-8601 string, or a
    POSIX timestamp. ``min``/``max`` bounds are inclusive.
    """

    code = "invalid_date"

    def __init__(
        self,
        min: Union[datetime.datetime, str, None] = None,
        max: Union[datetime.datetime, str, None] = None,
        message: Optional[str] = None,
    ):
        super().__init__(message)
        self.min = _parse_date(min) if min is not None else None
        self.max = _parse_date(max) if max is not None else None

    def validate(self, value: Any, field: str, record: Any = None) -> Optional[str]:
        if is_empty(value):
            return None
        parsed = _parse_date(value)
        if parsed is None:
            return self.message or f"{field} must be a valid date"
        if self.min is not None:
            a, b = _comparable(parsed, self.min)
            if a < b:
                return self.message or f"{field} must be after {self.min.isoformat()}"
        if self.max is not None:
            a, b = _comparable(parsed, self.max)
            if a > b:
                return self.message or f"{field} must be before {self.max.isoformat()}"
        return None


class ArrayValidator(BaseValidator):
    """Validate a list: optional length bounds and item type."""

    code = "invalid_array"

    def __init__(
        self,
        min: Optional[int] = None,
        max: Optional[int] = None,
        item_type: Optional[str] = None,
        message: Optional[str] = None,
    ):
        if item_type is not None and item_type not in _TYPE_CHECKS:
            raise ValueError(f"Unknown item type {item_type!r}")
        super().__init__(message)
        self.min = min
        self.max = max
        self.item_type = item_type

    def validate(self, value: Any, field: str, record: Any = None) -> Optional[str]:
        if value is None:
            return None
        if not isinstance(value, (list, tuple)):
            return self.message or f"{field} must be an array"
        if self.min is not None and len(value) < self.min:
            return self.message or f"{field} must have at least {self.min} item(s)"
        if self.max is not None and len(value) > self.max:
            return self.message or f"{field} must have at most {self.max} item(s)"
        if self.item_type is not None:
            check = _TYPE_CHECKS[self.item_type]
            for i, item in enumerate(value):
                if not check(item):
                    return self.message or f"{field}[{i}] must be of type {self.item_type}"
        return None


# ── Callables ────────────────────────────────────────────────────────


class CustomValidator(BaseValidator):
    """
    Wrap a predicate ``fn(value, field, record) -> bool`` (sync or async).

    An exception raised by the predicate becomes the error message.
    """

    code = "custom"

    def __init__(self, fn: Callable[[Any, str, Any], Any], message: Optional[str] = None):
        super().__init__(message)
        self.fn = fn

    async def validate(self, value: Any, field: str, record: Any = None) -> Optional[str]:
        try:
            result = self.fn(value, field, record)
            if inspect.isawaitable(result):
                result = await result
        except Exception as exc:
            return str(exc) or f"{field} validation error"
        if result:
            return None
        return self.message or f"{field} validation failed"


# ── Database-backed ──────────────────────────────────────────────────


def _record_builder(record: Any, table: Optional[str]):
    """Builder on the record's database, for ``table`` or the record's own."""
    cls = record if isinstance(record, type) else type(record)
    return cls.builder(table)


class UniqueValidator(BaseValidator):
    """
    No other stored row may hold the same value.

    Queries the record's database; the record's own identity is excluded
    so re-saving an unchanged record passes.

    Args:
        table: Table to check (defaults to the record's table)
        column: Column to check (defaults to the validated field)
        where: Extra equality conditions
        ignore_id: Identity to exclude instead of the record's own
    """

    code = "unique"

    def __init__(
        self,
        table: Optional[str] = None,
        column: Optional[str] = None,
        *,
        where: Optional[Dict[str, Any]] = None,
        ignore_id: Any = None,
        message: Optional[str] = None,
    ):
        super().__init__(message)
        self.table = table
        self.column = column
        self.where = dict(where or {})
        self.ignore_id = ignore_id

    async def validate(self, value: Any, field: str, record: Any = None) -> Optional[str]:
        if is_empty(value):
            return None
        qb = _record_builder(record, self.table).where(self.column or field, "=", value)
        own_id = self.ignore_id if self.ignore_id is not None else getattr(record, "id", None)
        if own_id is not None:
            qb.where("id", "!=", own_id)
        for key, val in self.where.items():
            qb.where(key, "=", val)
        row = await qb.first()
        if row is None:
            return None
        return self.message or f"{field} must be unique"


class ExistsValidator(BaseValidator):
    """
    The value must reference an existing row, e.g. a foreign key.

    Args:
        table: Table to look in (required)
        column: Column to match (defaults to ``id``)
        where: Extra equality conditions
    """

    code = "exists"

    def __init__(
        self,
        table: str,
        column: str = "id",
        *,
        where: Optional[Dict[str, Any]] = None,
        message: Optional[str] = None,
    ):
        super().__init__(message)
        self.table = table
        self.column = column
        self.where = dict(where or {})

    async def validate(self, value: Any, field: str, record: Any = None) -> Optional[str]:
        if is_empty(value):
            return None
        qb = _record_builder(record, self.table).where(self.column, "=", value)
        for key, val in self.where.items():
            qb.where(key, "=", val)
        row = await qb.first()
        if row is not None:
            return None
        return self.message or f"{field} does not exist"
