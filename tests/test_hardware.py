"""Smoke test against a real camera.

Set ``MOTICAM_ENABLE_HARDWARE_TESTS=1`` with a Moticam 3+ attached to run it.
"""

from __future__ import annotations

import os

import pytest

from moticam import CollectingSink, DeviceSettings, MoticamSession, capture, find_moticam_devices

pytestmark = pytest.mark.skipif(
    os.environ.get("MOTICAM_ENABLE_HARDWARE_TESTS") != "1",
    reason="Hardware tests are disabled. Set MOTICAM_ENABLE_HARDWARE_TESTS=1 to enable.",
)


@pytest.fixture(scope="module")
def hardware_present() -> None:
    if len(find_moticam_devices()) != 1:
        pytest.skip("Exactly one Moticam 3+ must be attached")


@pytest.mark.parametrize("width", [512, 1024])
def test_capture_two_frames(hardware_present, width):
    sink = CollectingSink()
    with MoticamSession.open() as session:
        session.reset()
        session.configure(DeviceSettings.from_width(width, exposure_ms=50.0, gain=1.0))
        result = capture(session, sink, 2)
    assert result.frames == 2
    assert sink.frames[0].shape == (DeviceSettings.from_width(width).height, width, 4)
