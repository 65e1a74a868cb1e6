"""
Gambit Validation Engine — runs validator rules against a record.

Every validator of every field runs, even after earlier failures, and
the messages are collected per field into one ``ValidationFault``.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional

from ..faults import ValidationFault

logger = logging.getLogger("gambit.validation")

__all__ = ["ValidationEngine"]


class ValidationEngine:
    """Stateless rule runner."""

    @staticmethod
    async def run_validator(validator: Any, value: Any, field: str, record: Any) -> Optional[str]:
        """
        Run one validator; return its error message or ``None``.

        Accepts validator objects (``validate(value, field, record)``) and
        plain callables taking the value that raise ``ValueError``.
        """
        if hasattr(validator, "validate"):
            result = validator.validate(value, field, record)
            if inspect.isawaitable(result):
                result = await result
            return result or None
        try:
            result = validator(value)
            if inspect.isawaitable(result):
                await result
        except ValueError as exc:
            return str(exc) or f"{field} is invalid"
        return None

    @classmethod
    async def collect(
        cls,
        record: Any,
        rules: Mapping[str, Iterable[Any]],
        values: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, List[str]]:
        """
        Run ``rules`` and return ``{field: [messages]}`` for failing fields.

        ``values`` overrides where values come from (defaults to the
        record's attributes); used to validate a merged view before
        it is applied.
        """
        errors: Dict[str, List[str]] = {}
        for field, validators in rules.items():
            if values is not None and field in values:
                value = values[field]
            else:
                value = getattr(record, field, None)
            messages: List[str] = []
            for validator in validators:
                message = await cls.run_validator(validator, value, field, record)
                if message:
                    messages.append(message)
            if messages:
                errors[field] = messages
        return errors

    @classmethod
    async def validate(
        cls,
        record: Any,
        rules: Mapping[str, Iterable[Any]],
        values: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """
        Validate ``record`` against ``rules``.

        Raises:
            ValidationFault: one or more fields failed
        """
        errors = await cls.collect(record, rules, values)
        if errors:
            logger.debug(f"Validation failed for {type(record).__name__}: {errors}")
            raise ValidationFault(errors)

    @classmethod
    async def validate_field(cls, record: Any, field: str, value: Any, validators: Iterable[Any]) -> None:
        """Validate a single value; raises ``ValidationFault`` keyed by ``field``."""
        await cls.validate(record, {field: list(validators)}, {field: value})
