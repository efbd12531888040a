"""Control sequencing of :class:`moticam.MoticamSession` against the emulator."""

from __future__ import annotations

import pytest

from moticam import (
    AmbiguousDevice,
    ControlTransferFailed,
    DeviceNotFound,
    DeviceSettings,
    MoticamSession,
    SessionState,
    SessionStateError,
)
from moticam.core import SETTLE_DELAY_S, WARMUP_EXPOSURE_MS
from moticam.registers import (
    GAIN_REGISTERS,
    REG_EXPOSURE,
    REG_RESET,
    REG_RESOLUTION,
    REG_RESOLUTION_INIT,
    RESOLUTION_SELECTORS,
    encode_exposure,
    encode_gain,
    word_payload,
)

from .mocks import MockUsbDevice

SETTINGS = DeviceSettings.from_width(1024, exposure_ms=100.0, gain=1.0)


def test_open_uses_single_matching_device(attached, mock_device):
    with MoticamSession.open() as session:
        assert session.device is mock_device
        assert session.state is SessionState.OPENED
    assert mock_device.configured
    assert mock_device.disposed


def test_open_without_device(attached):
    attached.clear()
    with pytest.raises(DeviceNotFound):
        MoticamSession.open()


def test_open_ignores_other_products(attached, emulator):
    attached[:] = [MockUsbDevice(emulator, pid=0x0101)]
    with pytest.raises(DeviceNotFound):
        MoticamSession.open()


def test_open_refuses_duplicate_devices(attached, emulator):
    attached.append(MockUsbDevice(emulator, address=2))
    with pytest.raises(AmbiguousDevice):
        MoticamSession.open()


def test_reset_writes_zero_then_one(mock_device, events):
    session = MoticamSession(mock_device)
    session.reset()
    assert mock_device.control_log == [
        (REG_RESET, b"\x00\x00"),
        (REG_RESET, b"\x00\x01"),
    ]
    assert session.state is SessionState.RESET


@pytest.mark.parametrize(
    "settings",
    [
        SETTINGS,
        DeviceSettings.from_width(512, exposure_ms=1.0, gain=0.5),
        DeviceSettings.from_width(2048, exposure_ms=5000.0, gain=30.0),
    ],
)
def test_configure_order(mock_device, events, sleeps, emulator, settings):
    session = MoticamSession(mock_device)
    session.reset()
    del events[:]

    session.configure(settings)

    gain = word_payload(encode_gain(settings.gain))
    expected = [("ctrl", register, gain) for register in GAIN_REGISTERS]
    expected.append(("ctrl", REG_EXPOSURE, word_payload(encode_exposure(WARMUP_EXPOSURE_MS))))
    expected.append(("ctrl", REG_RESOLUTION_INIT, bytes.fromhex("0014002005ff07ff")))
    expected.append(("ctrl", REG_RESOLUTION, RESOLUTION_SELECTORS[settings.width]))
    expected.append(("ctrl", REG_EXPOSURE, word_payload(encode_exposure(settings.exposure_ms))))
    expected.append(("sleep", SETTLE_DELAY_S))
    assert events == expected
    assert emulator.width == settings.width
    assert session.state is SessionState.CONFIGURED


def test_deactivate_writes_zero_exposure_three_times(mock_device, sleeps):
    session = MoticamSession(mock_device)
    session.reset()
    session.configure(SETTINGS)
    before = len(mock_device.control_log)

    session.deactivate()

    parked = mock_device.control_log[before:]
    assert parked == [(REG_EXPOSURE, word_payload(0x000C))] * 3
    assert session.state is SessionState.DEACTIVATED


def test_context_exit_parks_sensor_and_closes(attached, mock_device):
    with MoticamSession.open() as session:
        session.reset()
        session.configure(SETTINGS)
        session.start_capture()
    assert mock_device.control_log[-3:] == [(REG_EXPOSURE, b"\x00\x0c")] * 3
    assert session.state is SessionState.CLOSED
    assert mock_device.disposed


def test_context_exit_without_writes_does_not_touch_sensor(attached, mock_device):
    with MoticamSession.open():
        pass
    assert mock_device.control_log == []


def test_control_failure_is_fatal_and_still_cleans_up(attached, mock_device, emulator):
    emulator.fail_register = REG_RESOLUTION
    with pytest.raises(ControlTransferFailed) as excinfo:
        with MoticamSession.open() as session:
            session.reset()
            session.configure(SETTINGS)
    assert "0xba22" in str(excinfo.value)
    # Deactivation was still attempted after the failure.
    assert mock_device.control_log[-3:] == [(REG_EXPOSURE, b"\x00\x0c")] * 3
    assert session.state is SessionState.CLOSED


def test_failed_cleanup_keeps_first_error(attached, mock_device, emulator):
    with pytest.raises(ControlTransferFailed) as excinfo:
        with MoticamSession.open() as session:
            session.reset()
            emulator.fail_register = REG_EXPOSURE
            session.configure(SETTINGS)
    assert "0xba09" in str(excinfo.value)
    assert mock_device.disposed


@pytest.mark.parametrize("operation", ["configure", "start_capture"])
def test_operations_out_of_order(mock_device, operation):
    session = MoticamSession(mock_device)
    with pytest.raises(SessionStateError):
        if operation == "configure":
            session.configure(SETTINGS)
        else:
            session.start_capture()


def test_reset_only_once(mock_device):
    session = MoticamSession(mock_device)
    session.reset()
    with pytest.raises(SessionStateError):
        session.reset()


def test_no_writes_after_deactivate(mock_device):
    session = MoticamSession(mock_device)
    session.reset()
    session.deactivate()
    with pytest.raises(SessionStateError):
        session.deactivate()


def test_settings_validation():
    assert SETTINGS.frame_size == 1024 * 768
    with pytest.raises(ValueError):
        DeviceSettings.from_width(640)
    with pytest.raises(ValueError):
        DeviceSettings(width=1024, height=384).validate()
    with pytest.raises(ValueError):
        DeviceSettings.from_width(1024, exposure_ms=0.5).validate()
    with pytest.raises(ValueError):
        DeviceSettings.from_width(1024, gain=43.0).validate()
    with pytest.raises(ValueError):
        DeviceSettings.from_width(1024, gain=0.0).validate()
