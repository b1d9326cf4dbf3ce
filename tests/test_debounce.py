import asyncio
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from services.debounce import TrailingDebouncer


def test_burst_of_triggers_fires_once():
    async def scenario():
        calls = []
        debouncer = TrailingDebouncer(lambda: calls.append(1), delay_seconds=0.03)
        for _ in range(5):
            debouncer.trigger()
            await asyncio.sleep(0.005)
        await debouncer.wait()
        return calls, debouncer.fire_count

    calls, fire_count = asyncio.run(scenario())
    assert calls == [1]
    assert fire_count == 1


def test_cancel_drops_pending_call():
    async def scenario():
        calls = []
        debouncer = TrailingDebouncer(lambda: calls.append(1), delay_seconds=0.01)
        debouncer.trigger()
        debouncer.cancel()
        await asyncio.sleep(0.03)
        return calls, debouncer.pending

    calls, pending = asyncio.run(scenario())
    assert calls == []
    assert pending is False


def test_flush_runs_immediately():
    async def scenario():
        calls = []

        async def callback():
            calls.append("ran")

        debouncer = TrailingDebouncer(callback, delay_seconds=10)
        await debouncer.flush()         # nothing pending
        debouncer.trigger()
        await debouncer.flush()
        return calls

    assert asyncio.run(scenario()) == ["ran"]


def test_failing_callback_does_not_break_later_runs():
    async def scenario():
        calls = []

        def callback():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("boom")

        debouncer = TrailingDebouncer(callback, delay_seconds=0.01)
        debouncer.trigger()
        await debouncer.wait()
        debouncer.trigger()
        await debouncer.wait()
        return calls

    assert asyncio.run(scenario()) == [1, 1]
