"""Exception hierarchy shared by the moticam modules."""

from __future__ import annotations


class MoticamError(RuntimeError):
    """Base class for every error raised while driving the camera."""


class DeviceNotFound(MoticamError):
    """No attached device matches the Moticam vendor/product identifiers."""


class AmbiguousDevice(MoticamError):
    """More than one attached device matches; picking one would be a guess."""


class ControlTransferFailed(MoticamError):
    """A vendor control write was rejected by the transport."""


class BulkReadFailed(MoticamError):
    """The bulk endpoint reported a transport error."""


class AllocationFailed(MoticamError):
    """A frame buffer could not be allocated."""


class SessionStateError(MoticamError):
    """A session operation was called out of order."""


class FrameSizeMismatch(MoticamError):
    """A bulk transfer did not carry exactly one frame.

    This is not fatal: the capture loop drops the transfer and reads again.
    """

    def __init__(self, transferred: int, expected: int) -> None:
        super().__init__(f"bad image size ({transferred}, expected {expected})")
        self.transferred = transferred
        self.expected = expected
