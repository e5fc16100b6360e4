"""
Tests for Singleflight (operation coalescing).

Coverage includes:
- Leader/joiner results and subscriber counts
- Error propagation to all subscribers
- Release of the key on success, failure and cancellation
- Waiter cancellation isolation (shield)
- Event emission
"""
import asyncio
from typing import List

import pytest

from discovery_cache import (
    MemorySingleflightStore,
    Singleflight,
    SingleflightEvent,
    SingleflightEventType,
    create_singleflight,
)


async def async_value(value="value"):
    """Helper to create a simple async function returning a value."""
    return value


class TestSingleflight:
    """Tests for Singleflight."""

    @pytest.fixture
    def singleflight(self) -> Singleflight:
        """Create a fresh singleflight instance for each test."""
        sf = Singleflight()
        yield sf
        sf.close()

    def test_constructor_with_custom_store(self) -> None:
        """Should accept custom store."""
        store = MemorySingleflightStore()
        sf = create_singleflight(store)

        assert sf.get_stats() == {"in_flight": 0, "keys": []}
        sf.close()

    # === do() tests ===

    async def test_do_executes_and_returns_result(self, singleflight: Singleflight) -> None:
        """Should execute function and return result."""
        result = await singleflight.do("op", lambda: async_value("test-value"))

        assert result.value == "test-value"
        assert result.shared is False
        assert result.subscribers == 1

    async def test_do_coalesces_concurrent_calls(self, singleflight: Singleflight) -> None:
        """Should coalesce concurrent calls on the same key."""
        call_count = {"value": 0}

        async def fn() -> str:
            call_count["value"] += 1
            await asyncio.sleep(0.05)
            return "shared-value"

        results = await asyncio.gather(
            singleflight.do("op", fn),
            singleflight.do("op", fn),
            singleflight.do("op", fn),
        )

        assert call_count["value"] == 1
        assert all(r.value == "shared-value" for r in results)
        assert sum(1 for r in results if r.shared) == 2
        assert all(r.subscribers == 3 for r in results)

    async def test_do_does_not_coalesce_different_keys(
        self, singleflight: Singleflight
    ) -> None:
        """Should not coalesce different keys."""
        call_count = {"value": 0}

        async def fn() -> str:
            call_count["value"] += 1
            return f"value-{call_count['value']}"

        results = await asyncio.gather(
            singleflight.do("op-1", fn),
            singleflight.do("op-2", fn),
        )

        assert call_count["value"] == 2
        assert results[0].value != results[1].value

    async def test_do_propagates_same_error_to_all_subscribers(
        self, singleflight: Singleflight
    ) -> None:
        """Should propagate one error instance to all subscribers."""
        error = RuntimeError("Test error")

        async def fn() -> str:
            await asyncio.sleep(0.02)
            raise error

        results = await asyncio.gather(
            singleflight.do("op", fn),
            singleflight.do("op", fn),
            singleflight.do("op", fn),
            return_exceptions=True,
        )

        assert all(r is error for r in results)

    async def test_do_releases_key_after_completion(self, singleflight: Singleflight) -> None:
        """Should start a fresh execution after completion."""
        call_count = {"value": 0}

        async def fn() -> int:
            call_count["value"] += 1
            return call_count["value"]

        first = await singleflight.do("op", fn)
        second = await singleflight.do("op", fn)

        assert singleflight.is_in_flight("op") is False
        assert (first.value, second.value) == (1, 2)

    async def test_do_releases_key_after_error(self, singleflight: Singleflight) -> None:
        """Should remove in-flight operation after error."""

        async def fn() -> str:
            raise RuntimeError("Test error")

        with pytest.raises(RuntimeError):
            await singleflight.do("op", fn)

        assert singleflight.is_in_flight("op") is False

    async def test_key_released_before_waiters_resume(
        self, singleflight: Singleflight
    ) -> None:
        """Should let a waiter start a new execution as soon as it resumes."""
        calls: List[str] = []

        async def fn() -> str:
            calls.append("run")
            await asyncio.sleep(0)
            return "done"

        async def caller() -> bool:
            await singleflight.do("op", fn)
            return singleflight.is_in_flight("op")

        still_in_flight = await asyncio.gather(caller(), caller())

        assert still_in_flight == [False, False]
        assert calls == ["run"]

    async def test_get_subscribers(self, singleflight: Singleflight) -> None:
        """Should track correct subscriber count."""
        resolve_event = asyncio.Event()

        async def fn() -> str:
            await resolve_event.wait()
            return "value"

        tasks = [asyncio.create_task(singleflight.do("op", fn)) for _ in range(3)]
        await asyncio.sleep(0.01)

        assert singleflight.get_subscribers("op") == 3
        assert singleflight.get_subscribers("other") == 0

        resolve_event.set()
        await asyncio.gather(*tasks)

    # === start() tests ===

    async def test_start_registers_synchronously(self, singleflight: Singleflight) -> None:
        """Should register the operation before the task runs."""
        task = singleflight.start("op", lambda: async_value("v"))

        assert singleflight.is_in_flight("op") is True
        assert singleflight.start("op", lambda: async_value("other")) is task
        assert await task == "v"
        assert singleflight.is_in_flight("op") is False

    def test_start_requires_running_loop(self, singleflight: Singleflight) -> None:
        """Should refuse to start outside an event loop."""
        with pytest.raises(RuntimeError):
            singleflight.start("op", lambda: async_value())

    # === cancellation tests ===

    async def test_waiter_cancellation_does_not_cancel_shared_work(
        self, singleflight: Singleflight
    ) -> None:
        """Should keep running for other waiters when one is cancelled."""
        release = asyncio.Event()

        async def fn() -> str:
            await release.wait()
            return "value"

        first = asyncio.create_task(singleflight.do("op", fn))
        second = asyncio.create_task(singleflight.do("op", fn))
        await asyncio.sleep(0.01)

        first.cancel()
        await asyncio.sleep(0)
        release.set()

        result = await second
        assert result.value == "value"
        assert first.cancelled() is True

    async def test_cancel_cancels_all_waiters(self, singleflight: Singleflight) -> None:
        """Should cancel the shared task and release the key."""
        events: List[SingleflightEvent] = []
        singleflight.on(events.append)

        async def fn() -> str:
            await asyncio.sleep(10)
            return "never"

        waiters = [asyncio.create_task(singleflight.do("op", fn)) for _ in range(2)]
        await asyncio.sleep(0.01)

        assert singleflight.cancel("op") is True
        results = await asyncio.gather(*waiters, return_exceptions=True)

        assert all(isinstance(r, asyncio.CancelledError) for r in results)
        assert singleflight.is_in_flight("op") is False
        assert SingleflightEventType.CANCEL in [e.type for e in events]

    async def test_cancel_unknown_key(self, singleflight: Singleflight) -> None:
        """Should report nothing cancelled for an idle key."""
        assert singleflight.cancel("missing") is False

    async def test_cancel_all(self, singleflight: Singleflight) -> None:
        """Should cancel every in-flight operation."""

        async def fn() -> str:
            await asyncio.sleep(10)
            return "never"

        tasks = [singleflight.start(key, fn) for key in ("a", "b")]
        await asyncio.sleep(0)

        assert singleflight.cancel_all() == 2
        await asyncio.gather(*tasks, return_exceptions=True)
        assert all(task.cancelled() for task in tasks)
        assert singleflight.get_stats()["in_flight"] == 0

    # === events tests ===

    async def test_emits_lead_join_complete(self, singleflight: Singleflight) -> None:
        """Should emit lead, join and complete events in order."""
        events: List[SingleflightEvent] = []
        singleflight.on(events.append)

        async def fn() -> str:
            await asyncio.sleep(0.01)
            return "value"

        await asyncio.gather(singleflight.do("op", fn), singleflight.do("op", fn))

        assert [e.type for e in events] == [
            SingleflightEventType.LEAD,
            SingleflightEventType.JOIN,
            SingleflightEventType.COMPLETE,
        ]
        assert events[1].metadata == {"subscribers": 2}
        assert events[2].metadata["subscribers"] == 2

    async def test_emits_error_event(self, singleflight: Singleflight) -> None:
        """Should emit error event with the message."""
        events: List[SingleflightEvent] = []
        singleflight.on(events.append)

        async def fn() -> str:
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await singleflight.do("op", fn)

        error_events = [e for e in events if e.type == SingleflightEventType.ERROR]
        assert error_events[0].metadata == {"error": "boom"}

    async def test_off_and_unsubscribe(self, singleflight: Singleflight) -> None:
        """Should stop delivering events after removal."""
        events: List[SingleflightEvent] = []
        unsubscribe = singleflight.on(events.append)
        unsubscribe()

        await singleflight.do("op", lambda: async_value())

        assert events == []

    async def test_listener_errors_do_not_break_operation(
        self, singleflight: Singleflight
    ) -> None:
        """Should ignore failing listeners."""

        def bad_listener(event: SingleflightEvent) -> None:
            raise ValueError("listener failure")

        singleflight.on(bad_listener)
        result = await singleflight.do("op", lambda: async_value("ok"))

        assert result.value == "ok"
