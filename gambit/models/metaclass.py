"""
Gambit Model Metaclass — field schema, Meta parsing, capability assembly.

Every model class gets, at definition time:

- ``_fields``: explicit field schema (inherited fields first), with an
  ``id`` AutoField and the timestamp / soft-delete columns injected
  when the options ask for them
- ``_meta``: parsed ``Options``
- ``_relations``: relation descriptors, inherited ones included
- ``_state``: the type's own ``ModelState`` (hooks, scopes, visibility)
- ``_validation`` / ``_relationships`` / ``_lifecycle``: its components
"""

from __future__ import annotations

from typing import Any, Dict, Tuple

from .components import RelationshipComponent, ValidationComponent
from .fields import AutoField, DateTimeField, Field
from .lifecycle import RecordLifecycle
from .options import Options
from .registry import ModelRegistry, ModelState
from .relations import Relation

__all__ = ["ModelMeta"]


class ModelMeta(type):
    """
    Metaclass for Gambit models.

    Handles:
    - Field collection and ordering
    - ``id`` injection
    - Meta class parsing -> Options
    - Per-type state and component assembly
    - Model registration in ModelRegistry
    """

    def __new__(
        mcs,
        name: str,
        bases: Tuple[type, ...],
        namespace: Dict[str, Any],
        **kwargs,
    ) -> ModelMeta:
        # Don't process the base Model class itself
        parents = [b for b in bases if isinstance(b, ModelMeta)]
        if not parents:
            return super().__new__(mcs, name, bases, namespace)

        meta_class = namespace.pop("Meta", None)
        parent_opts = next((p._meta for p in parents if hasattr(p, "_meta")), None)
        opts = Options(name, meta_class, parent_opts)

        # Inherit fields and relations from parents
        fields: Dict[str, Field] = {}
        relations: Dict[str, Relation] = {}
        for parent in parents:
            fields.update(getattr(parent, "_fields", {}))
            relations.update(getattr(parent, "_relations", {}))

        new_fields: Dict[str, Field] = {}
        for key, value in list(namespace.items()):
            if isinstance(value, Field):
                new_fields[key] = value
            elif isinstance(value, Relation):
                relations[key] = value

        injected: Dict[str, Field] = {}
        if "id" not in fields and "id" not in new_fields:
            injected["id"] = AutoField()
        schema: Dict[str, Field] = {**injected, **fields, **new_fields}

        if opts.timestamps:
            for attr in (opts.created_at, opts.updated_at):
                if attr not in schema:
                    injected[attr] = schema[attr] = DateTimeField(null=True)
        if opts.soft_deletes and opts.deleted_at not in schema:
            injected[opts.deleted_at] = schema[opts.deleted_at] = DateTimeField(null=True)

        namespace.update(injected)
        cls = super().__new__(mcs, name, bases, namespace)

        for fname, field in {**new_fields, **injected}.items():
            field.__set_name__(cls, fname)
            field.model = cls

        cls._fields = schema
        cls._meta = opts
        cls._relations = relations
        cls._db = None

        cls._state = ModelState(name)
        cls._validation = ValidationComponent(cls)
        cls._relationships = RelationshipComponent(cls, relations)
        cls._lifecycle = RecordLifecycle(cls, cls._state)

        if not opts.abstract:
            ModelRegistry.register(cls)

        return cls
