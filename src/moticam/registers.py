"""Vendor register encoding for the Moticam 3+ sensor.

The camera does not follow any documented class protocol.  Every setting is
written with vendor request ``240`` to a 16-bit "register" carried in
``wValue``; the payload is either a big-endian 16-bit word or a short fixed
byte sequence.  The functions in this module only build those payloads, they
never touch the USB bus.

The gain segments and the ``(code << 8) | 0x60`` packing come from observing
the vendor driver.  They are not derived from a datasheet, so keep the
thresholds exactly as they are.
"""

from __future__ import annotations

import dataclasses
import math
from types import MappingProxyType
from typing import List, Mapping, Tuple

VENDOR_REQUEST = 240

REG_RESET = 0xBA00
REG_RESOLUTION_INIT = 0xBA01
REG_EXPOSURE = 0xBA09
REG_RESOLUTION = 0xBA22
# Redundant analog gain channels, written in this order.
GAIN_REGISTERS: Tuple[int, ...] = (0xBA2D, 0xBA2B, 0xBA2E, 0xBA2C)

EXPOSURE_SCALE = 12.82
EXPOSURE_MIN = 0x000C
EXPOSURE_MAX = 0xFFFF

GAIN_UP_LOW_BYTE = 0x60

RESOLUTION_INIT = bytes((0x00, 0x14, 0x00, 0x20, 0x05, 0xFF, 0x07, 0xFF))

RESOLUTION_SELECTORS: Mapping[int, bytes] = MappingProxyType(
    {
        512: bytes((0x00, 0x03, 0x00, 0x03)),
        1024: bytes((0x00, 0x11, 0x00, 0x11)),
        2048: bytes((0x00, 0x00, 0x00, 0x00)),
    }
)

RESOLUTIONS: Mapping[int, int] = MappingProxyType({512: 384, 1024: 768, 2048: 1536})


@dataclasses.dataclass(frozen=True)
class GainSegment:
    """One linear piece of the gain transfer curve."""

    upper: float
    gain_min: float
    gain_max: float
    code_min: int
    code_max: int
    shifted: bool = False


GAIN_SEGMENTS: Tuple[GainSegment, ...] = (
    GainSegment(upper=1.34, gain_min=0.33, gain_max=1.33, code_min=0x08, code_max=0x20),
    GainSegment(upper=2.68, gain_min=1.42, gain_max=2.67, code_min=0x51, code_max=0x60),
    GainSegment(
        upper=math.inf, gain_min=3.0, gain_max=42.67, code_min=0x01, code_max=0x78, shifted=True
    ),
)


@dataclasses.dataclass(frozen=True)
class ControlCommand:
    """A single vendor write: ``payload`` sent to ``register``."""

    register: int
    payload: bytes

    def __post_init__(self) -> None:
        if not 0 <= self.register <= 0xFFFF:
            raise ValueError(f"Register address 0x{self.register:x} does not fit in 16 bits")
        if not 1 <= len(self.payload) <= 8:
            raise ValueError(f"Control payload must be 1-8 bytes, got {len(self.payload)}")

    def __str__(self) -> str:
        return f"0x{self.register:04x} <- {self.payload.hex()}"


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def word_payload(value: int) -> bytes:
    """Return ``value`` as the big-endian two byte payload used by word registers."""

    return int(value).to_bytes(2, "big", signed=False)


def gain_segment(gain: float) -> GainSegment:
    """Return the segment of the transfer curve that ``gain`` falls into."""

    for segment in GAIN_SEGMENTS:
        if gain <= segment.upper:
            return segment
    return GAIN_SEGMENTS[-1]


def encode_gain(gain: float) -> int:
    """Translate a gain factor into the 16-bit analog gain register value.

    Values outside the segment's nominal range clamp to the segment's boundary
    code instead of raising.
    """

    segment = gain_segment(gain)
    span = segment.code_max - segment.code_min
    scaled = (gain - segment.gain_min) / (segment.gain_max - segment.gain_min) * span
    code = _round_half_up(scaled + segment.code_min)
    code = min(max(code, segment.code_min), segment.code_max)
    if segment.shifted:
        return (code << 8) | GAIN_UP_LOW_BYTE
    return code


def encode_exposure(exposure_ms: float) -> int:
    """Translate an exposure time in milliseconds into the exposure register value."""

    value = _round_half_up(exposure_ms * EXPOSURE_SCALE)
    return min(max(value, EXPOSURE_MIN), EXPOSURE_MAX)


def encode_resolution(width: int) -> Tuple[bytes, bytes]:
    """Return ``(init_bytes, selector_bytes)`` for one of the preset widths."""

    try:
        selector = RESOLUTION_SELECTORS[width]
    except KeyError:
        raise AssertionError(f"Unsupported sensor width {width}") from None
    return RESOLUTION_INIT, selector


def gain_commands(gain: float) -> List[ControlCommand]:
    payload = word_payload(encode_gain(gain))
    return [ControlCommand(register, payload) for register in GAIN_REGISTERS]


def exposure_command(exposure_ms: float) -> ControlCommand:
    return ControlCommand(REG_EXPOSURE, word_payload(encode_exposure(exposure_ms)))


def resolution_commands(width: int, height: int) -> List[ControlCommand]:
    """Build the init + selector writes that switch the sensor to ``width`` x ``height``.

    The height is implied by the width; a mismatching pair is a caller bug.
    """

    init, selector = encode_resolution(width)
    assert RESOLUTIONS[width] == height, f"{width}x{height} is not a sensor preset"
    return [
        ControlCommand(REG_RESOLUTION_INIT, init),
        ControlCommand(REG_RESOLUTION, selector),
    ]


def reset_commands() -> List[ControlCommand]:
    """The reset register must see 0 then 1, as two separate writes."""

    return [
        ControlCommand(REG_RESET, word_payload(0x0000)),
        ControlCommand(REG_RESET, word_payload(0x0001)),
    ]


__all__ = [
    "ControlCommand",
    "EXPOSURE_MAX",
    "EXPOSURE_MIN",
    "EXPOSURE_SCALE",
    "GAIN_REGISTERS",
    "GAIN_SEGMENTS",
    "GainSegment",
    "REG_EXPOSURE",
    "REG_RESET",
    "REG_RESOLUTION",
    "REG_RESOLUTION_INIT",
    "RESOLUTIONS",
    "RESOLUTION_INIT",
    "RESOLUTION_SELECTORS",
    "VENDOR_REQUEST",
    "encode_exposure",
    "encode_gain",
    "encode_resolution",
    "exposure_command",
    "gain_commands",
    "gain_segment",
    "reset_commands",
    "resolution_commands",
    "word_payload",
]
