#!/usr/bin/env python
"""Live monitoring against a real FTMS bike.

Set FTMSMON_TEST_ADDRESS to the bike's Bluetooth address and pedal while the
test runs.
"""

import asyncio
import logging
import os

import pytest

from ftmsmon.config import MonitorConfig
from ftmsmon.controller import MonitorController
from ftmsmon.display import DisplayManager
from ftmsmon.session import ConnectionState

# Enable logging
logging.basicConfig(level=logging.INFO, format="%(message)s")

ADDRESS = os.environ.get("FTMSMON_TEST_ADDRESS")


@pytest.mark.integration
@pytest.mark.asyncio
async def test_live_readings():
    """Connect, stream readings into the live display, then stop cleanly."""
    if not ADDRESS:
        pytest.skip("FTMSMON_TEST_ADDRESS not set - skipping integration test")

    controller = MonitorController(MonitorConfig(address=ADDRESS, max_attempts=3))
    display = DisplayManager()
    readings = []

    controller.set_on_status(display.show_status)

    def on_reading(cadence, power):
        readings.append((cadence, power))
        display.show_reading(cadence, power)

    controller.set_on_reading(on_reading)

    print("=== Testing Live Readings ===")
    display.start_live()
    try:
        controller.start_monitoring()
        for _ in range(300):
            if readings or not controller.is_running:
                break
            await asyncio.sleep(0.1)
    finally:
        display.stop_live()
        state = controller.state
        await controller.stop_monitoring()

    print(f"Final status: {controller.get_status()}")

    if not readings:
        pytest.skip(f"No readings from {ADDRESS}: {controller.last_status}")

    assert state is ConnectionState.STREAMING
    assert not controller.is_running
