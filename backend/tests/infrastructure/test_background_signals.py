"""Background Signals — fire-and-forget tasks whose failures are logged, never raised."""

import asyncio
import logging

from academy.infrastructure.background import BackgroundSignals


async def test_spawned_task_runs_to_completion():
    signals = BackgroundSignals()
    done = []

    async def work():
        await asyncio.sleep(0)
        done.append(True)

    signals.spawn(work(), "work")
    await signals.drain()

    assert done == [True]


async def test_failure_is_logged_not_raised(caplog):
    signals = BackgroundSignals()

    async def explode():
        raise RuntimeError("rtc down")

    with caplog.at_level(logging.ERROR, logger="academy.infrastructure.background"):
        signals.spawn(explode(), "open_room:s1")
        await signals.drain()
        await asyncio.sleep(0)

    assert "open_room:s1" in caplog.text
    assert signals.pending == 0


async def test_drain_with_nothing_pending_returns():
    await BackgroundSignals().drain()
