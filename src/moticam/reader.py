"""Bulk frame reads from the Moticam streaming endpoint."""

from __future__ import annotations

import array
import logging

import numpy as np
import usb.core

from .errors import AllocationFailed, BulkReadFailed, FrameSizeMismatch

LOG = logging.getLogger(__name__)

BULK_ENDPOINT = 0x83
CHUNK_SIZE = 16384


def bulk_transfer_size(expected: int, chunk: int = CHUNK_SIZE) -> int:
    """Return the bulk request size used to fetch a frame of ``expected`` bytes.

    The camera terminates every frame with a short or zero length packet.  The
    request is always at least one chunk larger than the frame so that packet
    is consumed by the same transfer instead of showing up as an empty frame
    on the next read.
    """

    if expected <= 0:
        raise ValueError("Frame size must be positive")
    return (expected // chunk + 1) * chunk


class FrameReader:
    """Read raw Bayer frames into a buffer allocated once per capture run.

    The reader borrows ``device`` from the session that created it and never
    closes it.
    """

    def __init__(self, device, width: int, height: int, *, endpoint: int = BULK_ENDPOINT) -> None:
        self.device = device
        self.width = width
        self.height = height
        self.endpoint = endpoint
        self.expected_size = width * height
        self.transfer_size = bulk_transfer_size(self.expected_size)
        self.reads = 0
        self.dropped = 0
        try:
            self._buffer = array.array("B", bytes(self.transfer_size))
        except MemoryError as exc:
            raise AllocationFailed(
                f"can not allocate {self.transfer_size} byte bulk buffer"
            ) from exc
        self._view = np.frombuffer(self._buffer, dtype=np.uint8, count=self.expected_size)
        self._view.flags.writeable = False

    def read(self) -> np.ndarray:
        """Block until the device delivers a transfer and return the raw frame.

        The returned array is a view onto the reader's buffer and is only valid
        until the next call.  Raises :class:`FrameSizeMismatch` when the transfer
        length is not exactly one frame.
        """

        try:
            transferred = self.device.read(self.endpoint, self._buffer, timeout=0)
        except usb.core.USBError as exc:
            raise BulkReadFailed(f"can not read data: {exc}") from exc
        self.reads += 1

        if transferred != self.expected_size:
            self.dropped += 1
            LOG.debug(
                "dropping transfer %d: %d bytes, expected %d",
                self.reads,
                transferred,
                self.expected_size,
            )
            raise FrameSizeMismatch(transferred, self.expected_size)
        return self._view
