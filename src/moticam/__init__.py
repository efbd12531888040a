"""Public interface for the moticam package.

The implementation is split across :mod:`moticam.registers` (vendor register
encoding), :mod:`moticam.core` (device discovery and the control session),
:mod:`moticam.reader` (bulk frame reads), :mod:`moticam.demosaic` (GRBG to
BGRA) and :mod:`moticam.capture` (the capture loop).  The names most scripts
need are re-exported here.
"""

from __future__ import annotations

from .capture import CaptureResult, capture
from .core import (
    MOTICAM_PID,
    MOTICAM_VID,
    DeviceSettings,
    MoticamSession,
    SessionState,
    describe_device,
    find_moticam_devices,
)
from .demosaic import Demosaicer, allocate_color_frame, demosaic
from .errors import (
    AllocationFailed,
    AmbiguousDevice,
    BulkReadFailed,
    ControlTransferFailed,
    DeviceNotFound,
    FrameSizeMismatch,
    MoticamError,
    SessionStateError,
)
from .reader import BULK_ENDPOINT, CHUNK_SIZE, FrameReader, bulk_transfer_size
from .registers import (
    ControlCommand,
    encode_exposure,
    encode_gain,
    encode_resolution,
)
from .sinks import CollectingSink, FrameSink, ImageSequenceSink, PreviewSink, RawFileSink

__version__ = "0.1.0"

__all__ = [
    "AllocationFailed",
    "AmbiguousDevice",
    "BULK_ENDPOINT",
    "BulkReadFailed",
    "CHUNK_SIZE",
    "CaptureResult",
    "CollectingSink",
    "ControlCommand",
    "ControlTransferFailed",
    "Demosaicer",
    "DeviceNotFound",
    "DeviceSettings",
    "FrameReader",
    "FrameSink",
    "FrameSizeMismatch",
    "ImageSequenceSink",
    "MOTICAM_PID",
    "MOTICAM_VID",
    "MoticamError",
    "MoticamSession",
    "PreviewSink",
    "RawFileSink",
    "SessionState",
    "SessionStateError",
    "allocate_color_frame",
    "bulk_transfer_size",
    "capture",
    "demosaic",
    "describe_device",
    "encode_exposure",
    "encode_gain",
    "encode_resolution",
    "find_moticam_devices",
]
