from __future__ import annotations

import asyncio

import pytest

from food_quest.quest.scheduler import AsyncioScheduler, ManualScheduler


def test_manual_scheduler_fires_in_due_order():
    scheduler = ManualScheduler()
    fired = []

    scheduler.schedule(3.0, lambda: fired.append("late"))
    scheduler.schedule(1.0, lambda: fired.append("early"))
    scheduler.schedule(1.0, lambda: fired.append("early-second"))

    assert scheduler.advance(0.5) == 0
    assert scheduler.advance(1.0) == 2
    assert fired == ["early", "early-second"]
    assert scheduler.now == pytest.approx(1.5)
    assert scheduler.pending == 1

    assert scheduler.advance(2.0) == 1
    assert fired[-1] == "late"


def test_manual_scheduler_cancel_skips_callback():
    scheduler = ManualScheduler()
    fired = []

    handle = scheduler.schedule(1.0, lambda: fired.append("x"))
    scheduler.cancel(handle)

    assert scheduler.pending == 0
    assert scheduler.advance(5.0) == 0
    assert fired == []


def test_run_all_includes_callbacks_scheduled_while_running():
    scheduler = ManualScheduler()
    fired = []

    def first() -> None:
        fired.append("first")
        scheduler.schedule(2.0, lambda: fired.append("second"))

    scheduler.schedule(1.0, first)

    assert scheduler.run_all() == 2
    assert fired == ["first", "second"]
    assert scheduler.now == pytest.approx(3.0)


def test_manual_scheduler_rejects_negative_delay():
    with pytest.raises(ValueError):
        ManualScheduler().schedule(-0.1, lambda: None)


def test_asyncio_scheduler_runs_and_cancels():
    fired = []

    async def scenario() -> None:
        scheduler = AsyncioScheduler()
        scheduler.schedule(0.001, lambda: fired.append("kept"))
        dropped = scheduler.schedule(0.001, lambda: fired.append("dropped"))
        scheduler.cancel(dropped)
        await asyncio.sleep(0.05)

    asyncio.run(scenario())

    assert fired == ["kept"]
