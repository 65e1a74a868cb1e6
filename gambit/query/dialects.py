"""
Gambit Dialects — per-dialect rendering table.

Every dialect-specific decision the builders make is looked up here
rather than branched on inline:

- placeholder style (``?`` / ``$1`` / ``%s``)
- identifier quoting (``"users"`` / ```users```)
- boolean binding (``1/0`` for engines without a native boolean)
- auto-increment primary key definition
- RETURNING / FULL OUTER JOIN support
- column type names for DDL

Usage:
    from gambit.query.dialects import get_dialect

    pg = get_dialect("postgresql")
    pg.placeholder(3)        # '$3'
    pg.quote("users.id")     # '"users"."id"'
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict

from ..faults import ConfigInvalidFault

__all__ = [
    "Dialect",
    "DIALECTS",
    "get_dialect",
    "register_dialect",
]

_AS_RE = re.compile(r"^(.+?)\s+as\s+(.+)$", re.IGNORECASE)
_IDENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass(frozen=True)
class Dialect:
    """Rendering rules for one target engine."""

    name: str
    param_style: str = "qmark"  # qmark (?) | numeric ($1) | format (%s)
    quote_char: str = '"'
    boolean_as_int: bool = True
    supports_returning: bool = False
    supports_full_join: bool = True
    document_store: bool = False
    unbounded_limit: str = ""  # LIMIT clause required before a bare OFFSET
    auto_increment_pk: str = "INTEGER PRIMARY KEY AUTOINCREMENT"
    column_types: Dict[str, str] = field(default_factory=dict)

    def placeholder(self, index: int) -> str:
        """Placeholder for the 1-based parameter ``index``."""
        if self.param_style == "numeric":
            return f"${index}"
        if self.param_style == "format":
            return "%s"
        return "?"

    def quote(self, identifier: str) -> str:
        """
        Quote a column or table reference.

        ``a`` -> ``"a"``, ``a.b`` -> ``"a"."b"``, ``a.*`` -> ``"a".*``,
        ``a AS b`` -> ``"a" AS "b"``. Anything else (function calls,
        already-quoted text, arithmetic) is treated as a raw expression
        and returned unchanged.
        """
        identifier = identifier.strip()
        if identifier == "*":
            return identifier
        m = _AS_RE.match(identifier)
        if m:
            return f"{self.quote(m.group(1))} AS {self.quote(m.group(2))}"
        parts = identifier.split(".")
        if not all(_IDENT_RE.match(p) or p == "*" for p in parts):
            return identifier
        q = self.quote_char
        return ".".join(p if p == "*" else f"{q}{p}{q}" for p in parts)

    def bind(self, value: Any) -> Any:
        """Convert a Python value into the form the driver expects."""
        if isinstance(value, bool) and self.boolean_as_int:
            return 1 if value else 0
        return value

    def column_type(self, kind: str, **params: Any) -> str:
        template = self.column_types.get(kind, "TEXT")
        return template.format(**params)


_SQLITE_TYPES = {
    "integer": "INTEGER",
    "bigint": "INTEGER",
    "float": "REAL",
    "string": "VARCHAR({max_length})",
    "text": "TEXT",
    "boolean": "INTEGER",
    "datetime": "TIMESTAMP",
    "json": "TEXT",
}

_POSTGRES_TYPES = {
    "integer": "INTEGER",
    "bigint": "BIGINT",
    "float": "DOUBLE PRECISION",
    "string": "VARCHAR({max_length})",
    "text": "TEXT",
    "boolean": "BOOLEAN",
    "datetime": "TIMESTAMP",
    "json": "JSONB",
}

_MYSQL_TYPES = {
    "integer": "INT",
    "bigint": "BIGINT",
    "float": "DOUBLE",
    "string": "VARCHAR({max_length})",
    "text": "TEXT",
    "boolean": "TINYINT(1)",
    "datetime": "DATETIME",
    "json": "JSON",
}


DIALECTS: Dict[str, Dialect] = {
    "sqlite": Dialect(
        name="sqlite",
        param_style="qmark",
        boolean_as_int=True,
        supports_returning=False,
        supports_full_join=True,
        unbounded_limit="LIMIT -1",
        auto_increment_pk="INTEGER PRIMARY KEY AUTOINCREMENT",
        column_types=_SQLITE_TYPES,
    ),
    "postgresql": Dialect(
        name="postgresql",
        param_style="numeric",
        boolean_as_int=False,
        supports_returning=True,
        supports_full_join=True,
        auto_increment_pk="SERIAL PRIMARY KEY",
        column_types=_POSTGRES_TYPES,
    ),
    "mysql": Dialect(
        name="mysql",
        param_style="format",
        quote_char="`",
        boolean_as_int=True,
        supports_returning=False,
        supports_full_join=False,
        unbounded_limit="LIMIT 18446744073709551615",
        auto_increment_pk="INT AUTO_INCREMENT PRIMARY KEY",
        column_types=_MYSQL_TYPES,
    ),
    "document": Dialect(
        name="document",
        boolean_as_int=False,
        supports_full_join=False,
        document_store=True,
    ),
}

_ALIASES = {
    "postgres": "postgresql",
    "mongodb": "document",
    "memory": "document",
}


def get_dialect(name: str | Dialect) -> Dialect:
    """Look up a dialect by name (or pass one through)."""
    if isinstance(name, Dialect):
        return name
    key = _ALIASES.get(name, name)
    try:
        return DIALECTS[key]
    except KeyError:
        raise ConfigInvalidFault(
            "dialect",
            f"unknown dialect {name!r}; expected one of {sorted(DIALECTS)}",
        ) from None


def register_dialect(dialect: Dialect) -> None:
    """Add or replace a dialect in the table."""
    DIALECTS[dialect.name] = dialect
