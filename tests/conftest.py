from __future__ import annotations

from typing import List

import pytest
import usb.core

import moticam.core

from .mocks import MockUsbDevice
from .moticam_emulator import MoticamEmulatorLogic


@pytest.fixture()
def emulator() -> MoticamEmulatorLogic:
    return MoticamEmulatorLogic()


@pytest.fixture()
def events() -> list:
    return []


@pytest.fixture()
def mock_device(emulator: MoticamEmulatorLogic, events: list) -> MockUsbDevice:
    return MockUsbDevice(emulator, event_log=events)


@pytest.fixture()
def sleeps(monkeypatch, events: list) -> List[float]:
    """Replace the settle delay with a recorder that logs into ``events``."""

    recorded: List[float] = []

    def fake_sleep(seconds: float) -> None:
        recorded.append(seconds)
        events.append(("sleep", seconds))

    monkeypatch.setattr(moticam.core.time, "sleep", fake_sleep)
    return recorded


@pytest.fixture()
def attached(monkeypatch, mock_device: MockUsbDevice, sleeps) -> List[MockUsbDevice]:
    """Make ``usb.core.find`` see ``mock_device`` (append to the list for more)."""

    devices = [mock_device]

    def fake_find(find_all=False, idVendor=None, idProduct=None, **kwargs):
        return iter(
            [
                dev
                for dev in devices
                if (idVendor is None or dev.idVendor == idVendor)
                and (idProduct is None or dev.idProduct == idProduct)
            ]
        )

    monkeypatch.setattr(usb.core, "find", fake_find)
    return devices
