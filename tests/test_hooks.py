"""
Hook registry tests — ordering, sync/async callbacks, abort semantics.
"""

import pytest

from gambit.models import HookEvent, HookRegistry


class TestRegistration:

    def test_register_and_list(self):
        reg = HookRegistry("User")
        fn = lambda r: None
        reg.register(HookEvent.BEFORE_SAVE, fn)
        assert reg.hooks(HookEvent.BEFORE_SAVE) == [fn]
        assert reg.has_hooks("before_save")

    def test_decorator_form(self):
        reg = HookRegistry()

        @reg.register(HookEvent.AFTER_CREATE, priority=5)
        def audit(record):
            pass

        assert reg.hooks(HookEvent.AFTER_CREATE) == [audit]

    def test_unknown_event(self):
        with pytest.raises(ValueError):
            HookRegistry().register("before_launch", lambda r: None)

    def test_unregister_by_identity(self):
        reg = HookRegistry()
        a = lambda r: None
        b = lambda r: None
        reg.register(HookEvent.BEFORE_DELETE, a)
        reg.register(HookEvent.BEFORE_DELETE, b)
        assert reg.unregister(HookEvent.BEFORE_DELETE, a) is True
        assert reg.hooks(HookEvent.BEFORE_DELETE) == [b]
        assert reg.unregister(HookEvent.BEFORE_DELETE, a) is False

    def test_clear_one_event(self):
        reg = HookRegistry()
        reg.register(HookEvent.BEFORE_SAVE, lambda r: None)
        reg.register(HookEvent.AFTER_SAVE, lambda r: None)
        reg.clear(HookEvent.BEFORE_SAVE)
        assert not reg.has_hooks(HookEvent.BEFORE_SAVE)
        assert reg.has_hooks(HookEvent.AFTER_SAVE)

    def test_clear_all(self):
        reg = HookRegistry()
        reg.register(HookEvent.BEFORE_SAVE, lambda r: None)
        reg.clear_all()
        assert not reg.has_hooks(HookEvent.BEFORE_SAVE)

    def test_connected_context(self):
        reg = HookRegistry()
        fn = lambda r: None
        with reg.connected(HookEvent.AFTER_UPDATE, fn):
            assert reg.hooks(HookEvent.AFTER_UPDATE) == [fn]
        assert reg.hooks(HookEvent.AFTER_UPDATE) == []


class TestExecution:

    @pytest.mark.asyncio
    async def test_priority_order_is_stable(self):
        reg = HookRegistry()
        calls = []
        for priority in (200, 50, 100):
            reg.register(HookEvent.BEFORE_SAVE, lambda r, p=priority: calls.append(p), priority=priority)

        await reg.execute(HookEvent.BEFORE_SAVE, object())
        await reg.execute(HookEvent.BEFORE_SAVE, object())
        assert calls == [50, 100, 200, 50, 100, 200]

    @pytest.mark.asyncio
    async def test_ties_keep_registration_order(self):
        reg = HookRegistry()
        calls = []
        reg.register(HookEvent.BEFORE_SAVE, lambda r: calls.append("first"))
        reg.register(HookEvent.BEFORE_SAVE, lambda r: calls.append("second"))
        await reg.execute(HookEvent.BEFORE_SAVE, None)
        assert calls == ["first", "second"]

    @pytest.mark.asyncio
    async def test_async_callbacks_awaited_in_sequence(self):
        reg = HookRegistry()
        calls = []

        async def slow(record):
            calls.append("slow-start")
            calls.append("slow-end")

        reg.register(HookEvent.AFTER_SAVE, slow, priority=1)
        reg.register(HookEvent.AFTER_SAVE, lambda r: calls.append("sync"), priority=2)
        await reg.execute(HookEvent.AFTER_SAVE, None)
        assert calls == ["slow-start", "slow-end", "sync"]

    @pytest.mark.asyncio
    async def test_callback_receives_record(self):
        reg = HookRegistry()
        seen = []
        reg.register(HookEvent.BEFORE_UPDATE, seen.append)
        record = object()
        await reg.execute(HookEvent.BEFORE_UPDATE, record)
        assert seen == [record]

    @pytest.mark.asyncio
    async def test_exception_stops_later_callbacks(self):
        reg = HookRegistry()
        calls = []

        def boom(record):
            raise RuntimeError("nope")

        reg.register(HookEvent.BEFORE_DELETE, boom, priority=1)
        reg.register(HookEvent.BEFORE_DELETE, lambda r: calls.append("after"), priority=2)
        with pytest.raises(RuntimeError, match="nope"):
            await reg.execute(HookEvent.BEFORE_DELETE, None)
        assert calls == []

    @pytest.mark.asyncio
    async def test_event_without_callbacks(self):
        await HookRegistry().execute(HookEvent.AFTER_VALIDATE, None)
