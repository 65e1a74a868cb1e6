"""
Gambit Model Hooks — before/after lifecycle callbacks.

Every model type owns one ``HookRegistry`` (``User._state.hooks``). Callbacks
receive the record and may be sync or async; they run one at a time, in
ascending priority, registration order breaking ties. A callback that
raises aborts the operation that fired it.

Usage:
    from gambit.models import HookEvent

    @User.hook(HookEvent.BEFORE_SAVE)
    def normalize_email(user):
        user.email = user.email.lower()

    async def audit(user):
        await audit_log.write("deleted", user.email)

    User.hook(HookEvent.AFTER_DELETE, audit, priority=10)
    User.unhook(HookEvent.AFTER_DELETE, audit)
"""

from __future__ import annotations

import contextlib
import inspect
import logging
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

logger = logging.getLogger("gambit.models.hooks")

__all__ = ["HookEvent", "HookRegistry", "DEFAULT_PRIORITY"]

DEFAULT_PRIORITY = 100


class HookEvent(str, Enum):
    """Lifecycle points a hook can attach to."""

    BEFORE_SAVE = "before_save"
    AFTER_SAVE = "after_save"
    BEFORE_CREATE = "before_create"
    AFTER_CREATE = "after_create"
    BEFORE_UPDATE = "before_update"
    AFTER_UPDATE = "after_update"
    BEFORE_DELETE = "before_delete"
    AFTER_DELETE = "after_delete"
    BEFORE_VALIDATE = "before_validate"
    AFTER_VALIDATE = "after_validate"


class HookRegistry:
    """
    Priority-ordered callbacks per lifecycle event.

    The same callable may be registered more than once; each
    registration runs. ``unregister`` removes the first match by
    identity.
    """

    def __init__(self, owner: str = ""):
        self.owner = owner
        # Each entry: (callback, priority)
        self._hooks: Dict[HookEvent, List[Tuple[Callable, int]]] = {}

    def register(
        self,
        event: HookEvent | str,
        callback: Optional[Callable] = None,
        priority: int = DEFAULT_PRIORITY,
    ):
        """
        Register a callback. Can be used as a decorator.

        Args:
            event: Lifecycle event
            callback: Callable taking the record
            priority: Lower values run first (default: 100)
        """
        event = HookEvent(event)

        def _decorator(fn: Callable) -> Callable:
            entries = self._hooks.setdefault(event, [])
            entries.append((fn, priority))
            # stable sort keeps registration order for equal priorities
            entries.sort(key=lambda x: x[1])
            return fn

        if callback is not None:
            return _decorator(callback)
        return _decorator

    def unregister(self, event: HookEvent | str, callback: Callable) -> bool:
        """
        Remove the first registration of ``callback`` for ``event``.

        Returns True if a registration was removed.
        """
        entries = self._hooks.get(HookEvent(event), [])
        for i, (fn, _) in enumerate(entries):
            if fn is callback:
                entries.pop(i)
                return True
        return False

    def clear(self, event: HookEvent | str | None = None) -> None:
        """Remove every callback for ``event``, or for all events."""
        if event is None:
            self._hooks.clear()
        else:
            self._hooks.pop(HookEvent(event), None)

    def clear_all(self) -> None:
        self._hooks.clear()

    def hooks(self, event: HookEvent | str) -> List[Callable]:
        """Callbacks for ``event`` in execution order."""
        return [fn for fn, _ in self._hooks.get(HookEvent(event), [])]

    def has_hooks(self, event: HookEvent | str) -> bool:
        return bool(self._hooks.get(HookEvent(event)))

    async def execute(self, event: HookEvent | str, record: Any) -> None:
        """
        Run every callback for ``event`` against ``record``.

        Awaits each callback before starting the next. The first exception
        propagates and the remaining callbacks do not run.
        """
        event = HookEvent(event)
        # snapshot so callbacks may (un)register hooks while running
        for fn, _ in list(self._hooks.get(event, [])):
            try:
                result = fn(record)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                logger.debug(
                    f"{self.owner} {event.value} hook {getattr(fn, '__name__', fn)!r} "
                    f"raised {exc.__class__.__name__}: {exc}"
                )
                raise

    @contextlib.contextmanager
    def connected(self, event: HookEvent | str, callback: Callable, priority: int = DEFAULT_PRIORITY) -> Iterator[Callable]:
        """
        Temporarily register a callback.

        Usage:
            with User._state.hooks.connected(HookEvent.AFTER_SAVE, spy):
                await user.save()
        """
        self.register(event, callback, priority)
        try:
            yield callback
        finally:
            self.unregister(event, callback)

    def __repr__(self) -> str:
        counts = {e.value: len(v) for e, v in self._hooks.items() if v}
        return f"<HookRegistry {self.owner} {counts}>"
