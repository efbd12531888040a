"""Device discovery and the Moticam control session.

:class:`MoticamSession` owns the pyusb device handle for a whole capture run
and sequences the vendor writes the sensor expects::

    with MoticamSession.open() as session:
        session.reset()
        session.configure(DeviceSettings.from_width(1024, exposure_ms=100, gain=1.0))
        reader = session.start_capture()
        raw = reader.read()

Leaving the ``with`` block parks the sensor and releases the handle, also when
the block is left through an exception.
"""

from __future__ import annotations

import contextlib
import ctypes
import dataclasses
import enum
import logging
import time
from typing import List, Optional

import usb.core
import usb.util

from .errors import (
    AmbiguousDevice,
    ControlTransferFailed,
    DeviceNotFound,
    MoticamError,
    SessionStateError,
)
from .reader import FrameReader
from .registers import (
    RESOLUTIONS,
    VENDOR_REQUEST,
    ControlCommand,
    exposure_command,
    gain_commands,
    reset_commands,
    resolution_commands,
)

LOG = logging.getLogger(__name__)

MOTICAM_VID = 0x232F
MOTICAM_PID = 0x0100

# Vendor request, host to device, recipient device.
REQ_TYPE_VENDOR_OUT = usb.util.build_request_type(
    usb.util.CTRL_OUT, usb.util.CTRL_TYPE_VENDOR, usb.util.CTRL_RECIPIENT_DEVICE
)

WARMUP_EXPOSURE_MS = 30.0
SETTLE_DELAY_S = 0.1
PARK_WRITES = 3

EXPOSURE_RANGE_MS = (1.0, 5000.0)
GAIN_LIMITS = (0.0, 43.0)

_LIBUSB_HOTPLUG_DISABLED = False
_LIBUSB_HOTPLUG_ATTEMPTED = False


@dataclasses.dataclass(frozen=True)
class DeviceSettings:
    """Sensor configuration for one capture run."""

    width: int = 1024
    height: int = 768
    exposure_ms: float = 100.0
    gain: float = 1.0

    @classmethod
    def from_width(cls, width: int, exposure_ms: float = 100.0, gain: float = 1.0) -> "DeviceSettings":
        if width not in RESOLUTIONS:
            choices = ", ".join(str(w) for w in RESOLUTIONS)
            raise ValueError(f"Unsupported width {width} (choose from {choices})")
        return cls(width=width, height=RESOLUTIONS[width], exposure_ms=exposure_ms, gain=gain)

    @property
    def frame_size(self) -> int:
        return self.width * self.height

    def validate(self) -> "DeviceSettings":
        """Check user supplied values; returns ``self`` so calls can be chained."""

        if RESOLUTIONS.get(self.width) != self.height:
            raise ValueError(f"{self.width}x{self.height} is not a supported resolution")
        low, high = EXPOSURE_RANGE_MS
        if not low <= self.exposure_ms <= high:
            raise ValueError(f"Exposure must be between {low:g} and {high:g} ms")
        low, high = GAIN_LIMITS
        if not low < self.gain < high:
            raise ValueError(f"Gain must be greater than {low:g} and lower than {high:g}")
        return self


class SessionState(enum.Enum):
    CLOSED = "closed"
    OPENED = "opened"
    RESET = "reset"
    CONFIGURED = "configured"
    CAPTURING = "capturing"
    DEACTIVATED = "deactivated"


def _disable_hotplug_and_get_backend():
    """Try to reinitialise libusb without the udev hotplug monitor.

    Some sandboxes block access to udev, causing ``libusb_init`` to fail and
    ``usb.core.find`` to raise :class:`usb.core.NoBackendError`.  Asking libusb
    to skip device discovery still lets PyUSB enumerate present devices.
    """

    global _LIBUSB_HOTPLUG_ATTEMPTED, _LIBUSB_HOTPLUG_DISABLED
    from usb.backend import libusb1

    if _LIBUSB_HOTPLUG_DISABLED or _LIBUSB_HOTPLUG_ATTEMPTED:
        return libusb1.get_backend()

    _LIBUSB_HOTPLUG_ATTEMPTED = True

    try:
        libusb = ctypes.CDLL("libusb-1.0.so.0")
    except OSError:
        return None

    set_option = getattr(libusb, "libusb_set_option", None)
    if set_option is None:
        return None
    set_option.argtypes = [ctypes.c_void_p, ctypes.c_int]
    set_option.restype = ctypes.c_int

    # LIBUSB_OPTION_NO_DEVICE_DISCOVERY on the default context.
    if set_option(None, 2) != 0:
        return None

    # Force PyUSB to load the library again so the option takes effect.
    libusb1._lib = None  # type: ignore[attr-defined]
    libusb1._lib_object = None  # type: ignore[attr-defined]

    backend = libusb1.get_backend()
    if backend is not None:
        _LIBUSB_HOTPLUG_DISABLED = True
    return backend


def find_moticam_devices(vid: int = MOTICAM_VID, pid: int = MOTICAM_PID) -> List[usb.core.Device]:
    """Return every attached device with exactly this vendor/product pair."""

    try:
        devices = usb.core.find(find_all=True, idVendor=vid, idProduct=pid)
    except usb.core.NoBackendError as exc:
        backend = _disable_hotplug_and_get_backend()
        if backend is None:
            raise MoticamError(f"unable to initialize libusb: {exc}") from exc
        devices = usb.core.find(find_all=True, idVendor=vid, idProduct=pid, backend=backend)
    if devices is None:
        return []
    return list(devices)


def describe_device(dev) -> str:
    """Human readable one-line summary of a device."""

    def _string(index_name: str) -> Optional[str]:
        index = getattr(dev, index_name, 0)
        if not index:
            return None
        try:
            return usb.util.get_string(dev, index)
        except (ValueError, usb.core.USBError, NotImplementedError):
            return None

    vendor = _string("iManufacturer") or f"VID_{dev.idVendor:04x}"
    product = _string("iProduct") or f"PID_{dev.idProduct:04x}"
    location = f"bus {getattr(dev, 'bus', '?')} address {getattr(dev, 'address', '?')}"
    return f"{vendor} {product} [{dev.idVendor:04x}:{dev.idProduct:04x}] ({location})"


class MoticamSession:
    """Exclusive owner of one open Moticam device."""

    def __init__(self, device) -> None:
        self.device = device
        self.settings: Optional[DeviceSettings] = None
        self._state = SessionState.OPENED
        self._sensor_touched = False

        with contextlib.suppress(usb.core.USBError, NotImplementedError):
            self.device.set_configuration()

    @classmethod
    def open(cls, vid: int = MOTICAM_VID, pid: int = MOTICAM_PID) -> "MoticamSession":
        devices = find_moticam_devices(vid, pid)
        if not devices:
            raise DeviceNotFound(f"unable to find device {vid:04x}:{pid:04x}")
        if len(devices) > 1:
            raise AmbiguousDevice(
                f"{len(devices)} devices match {vid:04x}:{pid:04x}, more than one is not supported"
            )
        device = devices[0]
        LOG.info("Using device: %s", describe_device(device))
        return cls(device)

    def __enter__(self) -> "MoticamSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            if self._needs_deactivate():
                if exc_type is None:
                    self.deactivate()
                else:
                    try:
                        self.deactivate()
                    except MoticamError as cleanup_exc:
                        LOG.warning("Sensor deactivation failed during cleanup: %s", cleanup_exc)
        finally:
            self.close()

    @property
    def state(self) -> SessionState:
        return self._state

    # ------------------------------------------------------------------
    # Control transfers
    # ------------------------------------------------------------------

    def control_write(self, command: ControlCommand) -> None:
        """Send one vendor write; any transport error aborts the session."""

        if self._state in (SessionState.CLOSED, SessionState.DEACTIVATED):
            raise SessionStateError(f"Can not write registers in state {self._state.value}")
        LOG.debug("vendor write %s", command)
        self._sensor_touched = True
        try:
            self.device.ctrl_transfer(
                REQ_TYPE_VENDOR_OUT,
                VENDOR_REQUEST,
                command.register,
                0,
                command.payload,
                timeout=0,
            )
        except usb.core.USBError as exc:
            raise ControlTransferFailed(
                f"can not send vendor request to register 0x{command.register:04x}: {exc}"
            ) from exc

    def _write_all(self, commands: List[ControlCommand]) -> None:
        for command in commands:
            self.control_write(command)

    def _require(self, *states: SessionState) -> None:
        if self._state not in states:
            expected = " or ".join(state.value for state in states)
            raise SessionStateError(f"Session is {self._state.value}, expected {expected}")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def reset(self) -> None:
        self._require(SessionState.OPENED)
        self._write_all(reset_commands())
        self._state = SessionState.RESET

    def configure(self, settings: DeviceSettings) -> None:
        """Apply ``settings`` in the order the sensor needs.

        Gain first, then a short warm-up exposure so the resolution switch
        happens on a stable sensor, then the resolution, then the requested
        exposure, and finally a settle delay before the first bulk read.
        """

        self._require(SessionState.RESET)
        self._write_all(gain_commands(settings.gain))
        self.control_write(exposure_command(WARMUP_EXPOSURE_MS))
        self._write_all(resolution_commands(settings.width, settings.height))
        self.control_write(exposure_command(settings.exposure_ms))
        time.sleep(SETTLE_DELAY_S)
        self.settings = settings
        self._state = SessionState.CONFIGURED
        LOG.info(
            "Configured %sx%s exposure=%gms gain=%g",
            settings.width,
            settings.height,
            settings.exposure_ms,
            settings.gain,
        )

    def start_capture(self) -> FrameReader:
        """Return a reader borrowing this session's device for bulk reads."""

        self._require(SessionState.CONFIGURED)
        assert self.settings is not None
        reader = FrameReader(self.device, self.settings.width, self.settings.height)
        self._state = SessionState.CAPTURING
        return reader

    def deactivate(self) -> None:
        """Park the sensor: three zero-exposure writes, always all three."""

        self._require(
            SessionState.OPENED,
            SessionState.RESET,
            SessionState.CONFIGURED,
            SessionState.CAPTURING,
        )
        command = exposure_command(0.0)
        for _ in range(PARK_WRITES):
            self.control_write(command)
        self._state = SessionState.DEACTIVATED

    def close(self) -> None:
        if self._state is SessionState.CLOSED:
            return
        self._state = SessionState.CLOSED
        with contextlib.suppress(usb.core.USBError):
            usb.util.dispose_resources(self.device)

    def _needs_deactivate(self) -> bool:
        return self._sensor_touched and self._state not in (
            SessionState.DEACTIVATED,
            SessionState.CLOSED,
        )


__all__ = [
    "DeviceSettings",
    "MOTICAM_PID",
    "MOTICAM_VID",
    "MoticamSession",
    "PARK_WRITES",
    "SETTLE_DELAY_S",
    "SessionState",
    "WARMUP_EXPOSURE_MS",
    "describe_device",
    "find_moticam_devices",
]
