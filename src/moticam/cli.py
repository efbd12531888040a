"""Command line front-end: ``moticam [options] [OUTPUT]``."""

from __future__ import annotations

import argparse
import logging
from typing import List, Optional

from .capture import capture
from .core import DeviceSettings, MoticamSession
from .errors import MoticamError
from .registers import RESOLUTIONS
from .sinks import FrameSink, ImageSequenceSink, PreviewSink, RawFileSink

LOG = logging.getLogger("moticam")

DEFAULT_COUNT = 30
DEFAULT_OUTPUT = "out"


def _float_in(low: float, high: float, *, inclusive: bool):
    def parse(value: str) -> float:
        try:
            parsed = float(value)
        except ValueError as exc:
            raise argparse.ArgumentTypeError(f"invalid number: {value!r}") from exc
        ok = low <= parsed <= high if inclusive else low < parsed < high
        if not ok:
            raise argparse.ArgumentTypeError(f"{value} is out of range")
        return parsed

    return parse


def _count(value: str) -> int:
    try:
        parsed = int(value, 10)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid count: {value!r}") from exc
    if parsed < 0:
        raise argparse.ArgumentTypeError("count must not be negative")
    return parsed


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="moticam", description="Moticam 3+ viewer.")
    parser.add_argument(
        "output",
        nargs="?",
        default=DEFAULT_OUTPUT,
        help=f"output file or file prefix (default: {DEFAULT_OUTPUT})",
    )
    parser.add_argument(
        "-w",
        "--width",
        type=int,
        choices=sorted(RESOLUTIONS),
        default=1024,
        help="image width (default: 1024)",
    )
    parser.add_argument(
        "-e",
        "--exposure",
        type=_float_in(1.0, 5000.0, inclusive=True),
        default=100.0,
        metavar="MS",
        help="exposure value (1 to 5000, default: 100)",
    )
    parser.add_argument(
        "-g",
        "--gain",
        type=_float_in(0.0, 43.0, inclusive=False),
        default=1.0,
        metavar="VALUE",
        help="gain value (0.33 to 42.66, default: 1)",
    )
    parser.add_argument(
        "-n",
        "--count",
        type=_count,
        metavar="N",
        help=f"number of images to take (default: {DEFAULT_COUNT}, unlimited with --view)",
    )
    parser.add_argument("--raw", action="store_true", help="keep raw Bayer data instead of demosaicing")
    parser.add_argument("--view", action="store_true", help="show a live preview instead of writing files")
    parser.add_argument("--log-level", default="INFO")
    return parser


def settings_from_args(args: argparse.Namespace) -> DeviceSettings:
    return DeviceSettings.from_width(args.width, exposure_ms=args.exposure, gain=args.gain).validate()


def frame_count_from_args(args: argparse.Namespace) -> Optional[int]:
    if args.count is not None:
        return args.count
    return None if args.view else DEFAULT_COUNT


def make_sink(args: argparse.Namespace) -> FrameSink:
    if args.view:
        return PreviewSink()
    if args.raw:
        return RawFileSink(args.output)
    return ImageSequenceSink(args.output)


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(level=args.log_level.upper())

    try:
        settings = settings_from_args(args)
    except ValueError as exc:
        parser.error(str(exc))
    count = frame_count_from_args(args)

    try:
        with MoticamSession.open() as session:
            session.reset()
            session.configure(settings)
            with make_sink(args) as sink:
                result = capture(session, sink, count, raw=args.raw)
    except MoticamError as exc:
        LOG.error("%s", exc)
        return 1
    except KeyboardInterrupt:
        LOG.info("Interrupted")
        return 130
    except OSError as exc:
        LOG.error("can not write output %s: %s", args.output, exc)
        return 1

    LOG.info(
        "Captured %d frames (%d dropped)%s",
        result.frames,
        result.dropped,
        ", cancelled" if result.cancelled else "",
    )
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
