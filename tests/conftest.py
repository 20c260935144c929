"""Shared pytest fixtures for UMI bridge tests."""

import os
import sys
from datetime import datetime

import pytest

# Add repo root to path for imports (tests run without installing the package)
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from umi_bridge.bridge import EventBridge
from umi_bridge.command_channel import CommandChannel
from umi_bridge.mocks import (
    MockSerialPort, MockDatagramSender, MockDatagramReceiver,
    MockClock, MockLogger, MockFileSystem,
)


@pytest.fixture
def serial_port():
    port = MockSerialPort()
    port.open("/dev/ttyUSB0", 115200)
    return port


@pytest.fixture
def sender():
    return MockDatagramSender()


@pytest.fixture
def receiver():
    return MockDatagramReceiver()


@pytest.fixture
def clock():
    return MockClock(datetime(2025, 1, 1, 12, 0, 0), start_ms=1000)


@pytest.fixture
def logger():
    return MockLogger()


@pytest.fixture
def filesystem():
    return MockFileSystem()


@pytest.fixture
def command_channel(serial_port, logger):
    return CommandChannel(serial_port, logger)


@pytest.fixture
def make_bridge(command_channel, sender, receiver, clock, logger):
    """Factory for bridges wired to the shared mocks. Stops them on teardown."""
    created = []

    def _make(**kwargs):
        params = dict(
            device_id="pi-01",
            command_channel=command_channel,
            sender=sender,
            receiver=receiver,
            clock=clock,
            logger=logger,
            # Long period: only the immediate hello goes out during a test
            heartbeat_period_ms=60_000,
        )
        params.update(kwargs)
        bridge = EventBridge(**params)
        created.append(bridge)
        return bridge

    yield _make

    for bridge in created:
        bridge.stop()


@pytest.fixture
def running_bridge(make_bridge, sender):
    """A started bridge whose startup hello has already been sent and cleared."""
    bridge = make_bridge()
    assert bridge.start(9100, "10.0.0.166", 9000)
    _wait_for(lambda: bridge.stats()["hellos_sent"] >= 1)
    sender.clear()
    return bridge


def _wait_for(predicate, timeout=2.0, interval=0.005):
    import time
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def wait_for():
    """Poll a predicate until it holds or a timeout elapses."""
    return _wait_for
