"""Loop-bound sink tests."""

import asyncio

import pytest

from ftmsmon.sink import LoopSink


@pytest.mark.asyncio
async def test_calls_are_deferred_to_loop(sink):
    loop_sink = LoopSink(sink, asyncio.get_running_loop())

    loop_sink.on_status("Connected")
    loop_sink.on_reading(10.0, None)
    assert sink.statuses == []

    await asyncio.sleep(0)
    assert sink.statuses == ["Connected"]
    assert sink.readings == [(10.0, None)]


@pytest.mark.asyncio
async def test_calls_from_another_thread_keep_order(sink, wait_until):
    loop_sink = LoopSink(sink, asyncio.get_running_loop())

    def radio_thread():
        for power in range(5):
            loop_sink.on_reading(None, float(power))

    await asyncio.to_thread(radio_thread)
    await wait_until(lambda: len(sink.readings) == 5)

    assert [power for _, power in sink.readings] == [0.0, 1.0, 2.0, 3.0, 4.0]
