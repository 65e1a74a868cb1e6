"""
Gambit Model Options — parsed from the inner Meta class.

    class Post(Model):
        title = CharField()

        class Meta:
            table = "posts"
            timestamps = True
            soft_deletes = True
            validation_rules = {"title": [RequiredValidator()]}
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

__all__ = ["Options"]


def _default_table(model_name: str) -> str:
    """``BlogPost`` -> ``blog_posts``."""
    snake = "".join(
        ("_" + ch.lower()) if ch.isupper() and i else ch.lower()
        for i, ch in enumerate(model_name)
    )
    return snake if snake.endswith("s") else snake + "s"


class Options:
    """
    Parsed model options.

    Attributes:
        table: Table (or collection) name
        abstract: Abstract models declare shared fields and get no table
        timestamps: Maintain created/updated timestamps automatically
        created_at: Created-at column name
        updated_at: Updated-at column name
        soft_deletes: ``delete()`` marks rows instead of removing them
        deleted_at: Deleted-at column name
        validation_rules: ``{field: [validators]}`` run on save
        ordering: Default ordering for ``find_all`` (``"-name"`` for DESC)
    """

    __slots__ = (
        "table",
        "abstract",
        "timestamps",
        "created_at",
        "updated_at",
        "soft_deletes",
        "deleted_at",
        "validation_rules",
        "ordering",
    )

    def __init__(self, model_name: str, meta: Optional[type] = None, parent: Optional[Options] = None):
        def opt(name: str, default: Any) -> Any:
            if meta is not None and hasattr(meta, name):
                return getattr(meta, name)
            if parent is not None and name not in ("table", "table_name", "abstract"):
                return getattr(parent, name)
            return default

        self.table: str = opt("table", None) or opt("table_name", None) or _default_table(model_name)
        self.abstract: bool = bool(opt("abstract", False))
        self.timestamps: bool = bool(opt("timestamps", False))
        self.created_at: str = opt("created_at", "created_at")
        self.updated_at: str = opt("updated_at", "updated_at")
        self.soft_deletes: bool = bool(opt("soft_deletes", False))
        self.deleted_at: str = opt("deleted_at", "deleted_at")
        rules = opt("validation_rules", {}) or {}
        self.validation_rules: Dict[str, List[Any]] = {k: list(v) for k, v in rules.items()}
        self.ordering: List[str] = list(opt("ordering", []) or [])

    def __repr__(self) -> str:
        return f"<Options table={self.table!r}>"
