"""
Gambit Model Components — validation and relationship capabilities.

The metaclass assembles one of each per model type, next to its
``ModelState`` and ``RecordLifecycle``:

    User._validation      # ValidationComponent
    User._relationships   # RelationshipComponent
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Type, TYPE_CHECKING

from ..faults import RelationNotFoundFault
from ..validation import ValidationEngine
from .hooks import HookEvent
from .relations import Relation

if TYPE_CHECKING:
    from .base import Model

__all__ = ["ValidationComponent", "RelationshipComponent"]


class ValidationComponent:
    """
    Validation rules of one model type.

    Rules are the field-level ``validators=[...]`` followed by
    ``Meta.validation_rules`` for the same field.
    """

    def __init__(self, model_cls: Type[Model]):
        self.model_cls = model_cls
        rules: Dict[str, List[Any]] = {}
        for name, field in model_cls._fields.items():
            if field.validators:
                rules[name] = list(field.validators)
        for name, validators in model_cls._meta.validation_rules.items():
            rules.setdefault(name, []).extend(validators)
        self.rules = rules

    def add_rule(self, field: str, *validators: Any) -> None:
        self.rules.setdefault(field, []).extend(validators)

    async def check(self, record: Model, values: Optional[Mapping[str, Any]] = None) -> None:
        """Run the rules only (no hooks)."""
        if self.rules:
            await ValidationEngine.validate(record, self.rules, values)

    async def validate(self, record: Model) -> None:
        """``before_validate`` hooks, the rules, then ``after_validate`` hooks."""
        hooks = self.model_cls._state.hooks
        await hooks.execute(HookEvent.BEFORE_VALIDATE, record)
        await self.check(record)
        await hooks.execute(HookEvent.AFTER_VALIDATE, record)


class RelationshipComponent:
    """Relation descriptors of one model type, and eager loading."""

    def __init__(self, model_cls: Type[Model], relations: Mapping[str, Relation]):
        self.model_cls = model_cls
        self.relations: Dict[str, Relation] = dict(relations)

    def get(self, name: str) -> Relation:
        try:
            return self.relations[name]
        except KeyError:
            raise RelationNotFoundFault(self.model_cls.__name__, name) from None

    async def eager_load(self, records: Sequence[Model], names: Iterable[str]) -> None:
        """Load each named relation for all ``records`` at once."""
        names = list(names)
        # resolve every name before issuing any query
        relations = [self.get(name) for name in names]
        if not records:
            return
        for relation in relations:
            await relation.eager_load(records)
