"""Monitor controller tests against an in-memory radio."""

import asyncio

import pytest

from ftmsmon.config import MonitorConfig
from ftmsmon.controller import MonitorController
from ftmsmon.errors import ConnectFailed
from ftmsmon.session import ConnectionState
from ftmsmon.supervisor import ADAPTER_DISABLED_MESSAGE

FRAME = bytes([0x44, 0x00, 0xE8, 0x03, 0x64, 0x00])


@pytest.mark.asyncio
async def test_start_monitoring_streams_to_callbacks(make_adapter, make_link, wait_until, test_address):
    link = make_link()
    controller = MonitorController(MonitorConfig(address=test_address), adapter=make_adapter([link]))
    statuses, readings = [], []
    controller.set_on_status(statuses.append)
    controller.set_on_reading(lambda cadence, power: readings.append((cadence, power)))

    identity = controller.start_monitoring()
    assert identity.address == test_address
    assert controller.is_running

    await wait_until(lambda: controller.state is ConnectionState.STREAMING)
    link.notify(FRAME)
    await wait_until(lambda: readings)

    assert readings == [(10.0, 50.0)]
    assert "Connected" in statuses
    status = controller.get_status()
    assert status["state"] == "STREAMING"
    assert status["cadence"] == 10.0
    assert status["power"] == 50.0
    assert status["readings"] == 1
    assert status["sessions"] == 1

    await controller.stop_monitoring()
    assert not controller.is_running
    assert link.close_calls == 1
    assert controller.last_status == "Stopped"


@pytest.mark.asyncio
async def test_callbacks_run_on_controller_loop_in_order(make_adapter, make_link, wait_until, test_address):
    link = make_link()
    controller = MonitorController(MonitorConfig(address=test_address), adapter=make_adapter([link]))
    loop = asyncio.get_running_loop()
    seen = []

    def on_status(text):
        assert asyncio.get_running_loop() is loop
        seen.append(text)

    def on_reading(cadence, power):
        assert asyncio.get_running_loop() is loop
        seen.append((cadence, power))

    controller.set_on_status(on_status)
    controller.set_on_reading(on_reading)
    controller.start_monitoring()

    await wait_until(lambda: controller.state is ConnectionState.STREAMING)
    link.notify(FRAME)
    link.notify(bytes([0x00, 0x00]))
    await wait_until(lambda: len(seen) >= 6)

    assert seen[-3:] == ["Connected", (10.0, 50.0), (None, None)]
    await controller.stop_monitoring()
    assert seen[-1] == "Stopped"


@pytest.mark.asyncio
async def test_address_argument_overrides_config(make_adapter, wait_until):
    adapter = make_adapter()
    controller = MonitorController(MonitorConfig(address="AA:AA:AA:AA:AA:AA"), adapter=adapter)

    controller.start_monitoring("11:22:33:44:55:66")
    await wait_until(lambda: adapter.links)
    assert adapter.links[0].address == "11:22:33:44:55:66"
    await controller.stop_monitoring()


@pytest.mark.asyncio
async def test_start_twice_raises(make_adapter, test_address):
    controller = MonitorController(MonitorConfig(address=test_address), adapter=make_adapter())
    controller.start_monitoring()
    with pytest.raises(RuntimeError):
        controller.start_monitoring()
    await controller.stop_monitoring()


@pytest.mark.asyncio
async def test_disabled_adapter_ends_monitoring(make_adapter, test_address):
    controller = MonitorController(
        MonitorConfig(address=test_address), adapter=make_adapter(enabled=False)
    )
    controller.start_monitoring()
    await asyncio.wait_for(controller.wait(), 1.0)

    assert not controller.is_running
    assert controller.last_status == ADAPTER_DISABLED_MESSAGE


@pytest.mark.asyncio
async def test_callback_errors_do_not_stop_monitoring(make_adapter, make_link, wait_until, test_address):
    failing = make_link(connect_error=ConnectFailed("Connection failed."))
    adapter = make_adapter([failing])
    controller = MonitorController(MonitorConfig(address=test_address), adapter=adapter)

    def broken(text):
        raise ValueError("display gone")

    controller.set_on_status(broken)
    controller.start_monitoring()
    await wait_until(lambda: controller.state is ConnectionState.STREAMING)

    assert controller.is_running
    assert controller.sessions_started == 2
    await controller.stop_monitoring()


@pytest.mark.asyncio
async def test_retry_settings_reach_supervisor(make_adapter, make_link, test_address):
    links = [make_link(connect_error=ConnectFailed("Connection failed.")) for _ in range(3)]
    config = MonitorConfig(address=test_address, retry_delay=0.01, max_attempts=3)
    controller = MonitorController(config, adapter=make_adapter(links))

    controller.start_monitoring()
    await asyncio.wait_for(controller.wait(), 1.0)

    assert controller.sessions_started == 3
    assert controller.last_status == "Giving up after 3 failed attempt(s)."
