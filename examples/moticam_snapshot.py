#!/usr/bin/env python3
"""Grab a single demosaiced frame from a Moticam 3+ and save it as an image file."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from PIL import Image

ROOT = Path(__file__).resolve().parents[1]
try:
    from moticam import CollectingSink, DeviceSettings, MoticamError, MoticamSession, capture
except ImportError:  # pragma: no cover
    sys.path.insert(0, str(ROOT / "src"))
    from moticam import CollectingSink, DeviceSettings, MoticamError, MoticamSession, capture

from moticam.sinks import bgra_to_rgb

LOG = logging.getLogger("moticam_snapshot")


def main() -> int:
    parser = argparse.ArgumentParser(description="Capture one Moticam frame")
    parser.add_argument("--width", type=int, choices=(512, 1024, 2048), default=2048)
    parser.add_argument("--exposure", type=float, default=100.0, help="Exposure in milliseconds")
    parser.add_argument("--gain", type=float, default=1.0)
    parser.add_argument("--skip-frames", type=int, default=2, help="Frames to discard before saving")
    parser.add_argument("--output", type=Path, required=True, help="Destination file (e.g. frame.png)")
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args()

    logging.basicConfig(level=args.log_level.upper())

    try:
        settings = DeviceSettings.from_width(args.width, args.exposure, args.gain).validate()
    except ValueError as exc:
        parser.error(str(exc))

    sink = CollectingSink()
    try:
        with MoticamSession.open() as session:
            session.reset()
            session.configure(settings)
            capture(session, sink, max(0, args.skip_frames) + 1)
    except MoticamError as exc:
        print(f"Failed to capture from camera: {exc}")
        return 1

    Image.fromarray(bgra_to_rgb(sink.frames[-1])).save(args.output)
    LOG.info("Saved %sx%s frame to %s", settings.width, settings.height, args.output)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
