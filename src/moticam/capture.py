"""Capture loop: read frames, demosaic them and hand them to a sink."""

from __future__ import annotations

import dataclasses
import logging
from typing import Optional

from .core import MoticamSession
from .demosaic import Demosaicer, allocate_color_frame
from .errors import FrameSizeMismatch
from .sinks import FrameSink

LOG = logging.getLogger(__name__)


@dataclasses.dataclass
class CaptureResult:
    """Counters collected over one :func:`capture` run."""

    frames: int = 0
    attempts: int = 0
    dropped: int = 0
    cancelled: bool = False


def capture(
    session: MoticamSession,
    sink: FrameSink,
    count: Optional[int] = None,
    *,
    raw: bool = False,
) -> CaptureResult:
    """Stream frames from a configured ``session`` into ``sink``.

    With ``count`` set, the loop ends after exactly that many accepted frames;
    transfers of the wrong size are dropped and do not count.  Without it the
    loop runs until the sink reports cancellation.  Cancellation is only
    checked between reads, never during a transfer.
    """

    if count is not None and count < 0:
        raise ValueError("Frame count must not be negative")

    reader = session.start_capture()
    width, height = reader.width, reader.height
    demosaicer: Optional[Demosaicer] = None
    color = None
    if not raw:
        demosaicer = Demosaicer(width, height)
        color = allocate_color_frame(width, height)

    result = CaptureResult()
    while count is None or result.frames < count:
        sink.poll()
        if sink.cancelled:
            LOG.info("Capture cancelled after %d frames", result.frames)
            result.cancelled = True
            break

        result.attempts += 1
        try:
            frame = reader.read()
        except FrameSizeMismatch as exc:
            result.dropped += 1
            LOG.warning("bad image size (%d), drop", exc.transferred)
            continue

        LOG.info("write %d (%d)", result.frames, frame.size)
        if demosaicer is None:
            sink.write_raw(frame, width, height)
        else:
            demosaicer.demosaic(frame, color)
            sink.write_color(color, width, height)
        result.frames += 1

    return result


__all__ = ["CaptureResult", "capture"]
