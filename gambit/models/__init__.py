"""
Gambit Model System — declarative async active-record models.

Usage:
    from gambit.models import Model, CharField, IntegerField, HasMany

    class User(Model):
        name = CharField(max_length=150)
        age = IntegerField(null=True)
        posts = HasMany("Post")

        class Meta:
            timestamps = True

Public API:
    - Model: Base class for all models
    - Fields: AutoField, IntegerField, FloatField, CharField, TextField,
      BooleanField, DateTimeField, JSONField
    - Relations: HasOne, HasMany, BelongsTo, BelongsToMany
    - Hooks: HookEvent, HookRegistry
    - Scopes: ScopedQuery
    - ModelRegistry / ModelState: registries
"""

from .fields import (
    UNSET,
    Field,
    AutoField,
    IntegerField,
    FloatField,
    CharField,
    TextField,
    BooleanField,
    DateTimeField,
    JSONField,
)
from .hooks import HookEvent, HookRegistry
from .options import Options
from .registry import ModelRegistry, ModelState, TrashedVisibility
from .relations import (
    PIVOT_PREFIX,
    Relation,
    HasOne,
    HasMany,
    BelongsTo,
    BelongsToMany,
    BoundRelation,
    PivotRelation,
)
from .components import ValidationComponent, RelationshipComponent
from .lifecycle import RecordLifecycle
from .scopes import ScopedQuery
from .metaclass import ModelMeta
from .base import Model

__all__ = [
    # Model
    "Model",
    "ModelMeta",
    "Options",
    # Fields
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
    # Hooks
    "HookEvent",
    "HookRegistry",
    # Registries
    "ModelRegistry",
    "ModelState",
    "TrashedVisibility",
    # Relations
    "PIVOT_PREFIX",
    "Relation",
    "HasOne",
    "HasMany",
    "BelongsTo",
    "BelongsToMany",
    "BoundRelation",
    "PivotRelation",
    # Components
    "ValidationComponent",
    "RelationshipComponent",
    "RecordLifecycle",
    "ScopedQuery",
]
