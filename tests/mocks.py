"""Mock helpers backed by :mod:`tests.moticam_emulator` for unit tests."""

from __future__ import annotations

import array
from typing import List, Optional

from moticam.core import MOTICAM_PID, MOTICAM_VID

from .moticam_emulator import MoticamEmulatorLogic


class _DummyContext:
    def __init__(self, owner: "MockUsbDevice") -> None:
        self._owner = owner

    def dispose(self, device, close_handle: bool = True) -> None:
        self._owner.disposed = True


class MockUsbDevice:
    """Drop-in replacement for :class:`usb.core.Device` backed by the emulator."""

    def __init__(
        self,
        emulator: MoticamEmulatorLogic,
        *,
        vid: int = MOTICAM_VID,
        pid: int = MOTICAM_PID,
        address: int = 1,
        event_log: Optional[list] = None,
    ) -> None:
        self._emulator = emulator
        self.idVendor = vid
        self.idProduct = pid
        self.bus = 1
        self.address = address
        self.iManufacturer = 0
        self.iProduct = 0
        self.iSerialNumber = 0
        self.configured = False
        self.disposed = False
        self.read_sizes: List[int] = []
        # Shared, ordered log of ("ctrl", register, payload) / ("read", size) entries.
        self.events = event_log if event_log is not None else []
        self._ctx = _DummyContext(self)

    def set_configuration(self, *args, **kwargs) -> None:
        self.configured = True

    # ------------------------------------------------------------------
    # PyUSB facade
    # ------------------------------------------------------------------

    def ctrl_transfer(
        self,
        bmRequestType: int,
        bRequest: int,
        wValue: int = 0,
        wIndex: int = 0,
        data_or_wLength=None,
        timeout: Optional[int] = None,
    ):
        self.events.append(("ctrl", wValue, bytes(data_or_wLength)))
        return self._emulator.handle_ctrl_transfer(
            bmRequestType, bRequest, wValue, wIndex, data_or_wLength, timeout=timeout
        )

    def read(self, endpoint: int, size_or_buffer, timeout: Optional[int] = None):
        if isinstance(size_or_buffer, array.array):
            size = len(size_or_buffer)
        else:
            size = int(size_or_buffer)
        self.read_sizes.append(size)
        self.events.append(("read", size))
        payload = self._emulator.next_bulk_payload(size)
        if isinstance(size_or_buffer, array.array):
            memoryview(size_or_buffer)[: len(payload)] = payload
            return len(payload)
        return array.array("B", payload)

    @property
    def control_log(self):
        return [(event[1], event[2]) for event in self.events if event[0] == "ctrl"]
