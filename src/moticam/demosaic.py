"""GRBG Bayer to BGRA reconstruction.

The sensor samples a single colour per site in a repeating 2x2 tile::

    row 0:  G R G R ...
    row 1:  B G B G ...

Each interior site keeps its own sample and takes the two missing colours
from the average of its neighbours:

=============  ============================  ============================
site           first missing colour          second missing colour
=============  ============================  ============================
G, even row    R = (left + right + 1) >> 1   B = (up + down + 1) >> 1
R              G = 4 cross neighbours        B = 4 diagonal neighbours
B              G = 4 cross neighbours        R = 4 diagonal neighbours
G, odd row     B = (left + right + 1) >> 1   R = (up + down + 1) >> 1
=============  ============================  ============================

Four-neighbour averages are ``(a + b + c + d + 2) >> 2``.  The outermost rows
and columns are not interpolated; they repeat the nearest interior pixel.

Output pixels are laid out ``B, G, R, A`` with ``A`` fixed at 255, which is
the byte order OpenCV displays natively.
"""

from __future__ import annotations

from typing import Dict, Optional, Tuple

import numpy as np

from .errors import AllocationFailed

CHANNELS = 4
BLUE, GREEN, RED, ALPHA = range(CHANNELS)
OPAQUE = 255

CROSS = ((0, -1), (0, 1), (-1, 0), (1, 0))
DIAGONAL = ((-1, -1), (-1, 1), (1, -1), (1, 1))
HORIZONTAL = ((0, -1), (0, 1))
VERTICAL = ((-1, 0), (1, 0))

# (row parity, column parity) -> (own channel, ((channel, neighbours), ...))
GRBG_SITES = {
    (0, 0): (GREEN, ((RED, HORIZONTAL), (BLUE, VERTICAL))),
    (0, 1): (RED, ((GREEN, CROSS), (BLUE, DIAGONAL))),
    (1, 0): (BLUE, ((GREEN, CROSS), (RED, DIAGONAL))),
    (1, 1): (GREEN, ((BLUE, HORIZONTAL), (RED, VERTICAL))),
}


def allocate_color_frame(width: int, height: int) -> np.ndarray:
    """Allocate a ``(height, width, 4)`` BGRA frame with an opaque alpha plane."""

    try:
        frame = np.empty((height, width, CHANNELS), dtype=np.uint8)
    except MemoryError as exc:
        raise AllocationFailed(f"can not allocate {width}x{height} colour frame") from exc
    frame[..., ALPHA] = OPAQUE
    return frame


def _interior(parity: int, size: int) -> slice:
    """Interior indices ``1 .. size-2`` that have the given parity."""

    start = 2 if parity == 0 else 1
    return slice(start, size - 1, 2)


def _shift(index: slice, offset: int) -> slice:
    return slice(index.start + offset, index.stop + offset, 2)


def _as_frame(out, width: int, height: int) -> np.ndarray:
    if isinstance(out, np.ndarray):
        frame = out.reshape(height, width, CHANNELS)
    else:
        frame = np.frombuffer(out, dtype=np.uint8).reshape(height, width, CHANNELS)
    if not frame.flags.writeable:
        raise ValueError("Output buffer is read-only")
    return frame


class Demosaicer:
    """Reusable GRBG demosaicer for one frame geometry.

    All scratch memory is allocated up front so :meth:`demosaic` does not
    allocate per frame.
    """

    def __init__(self, width: int, height: int) -> None:
        if width < 3 or height < 3:
            raise ValueError(f"Frames must be at least 3x3 pixels, got {width}x{height}")
        self.width = width
        self.height = height
        self._sites: Dict[Tuple[int, int], Tuple[slice, slice]] = {}
        self._scratch: Dict[Tuple[int, int], np.ndarray] = {}
        try:
            self._wide = np.empty((height, width), dtype=np.int16)
            for parity in GRBG_SITES:
                rows = _interior(parity[0], height)
                cols = _interior(parity[1], width)
                shape = (len(range(height)[rows]), len(range(width)[cols]))
                self._sites[parity] = (rows, cols)
                self._scratch[parity] = np.empty(shape, dtype=np.int16)
        except MemoryError as exc:
            raise AllocationFailed("can not allocate demosaic scratch buffers") from exc

    def demosaic(self, raw, out) -> np.ndarray:
        """Reconstruct ``raw`` (``width*height`` bytes) into ``out`` and return it.

        ``out`` may be an ``ndarray`` or any writable buffer of
        ``width*height*4`` bytes.
        """

        width, height = self.width, self.height
        src = np.frombuffer(raw, dtype=np.uint8, count=width * height).reshape(height, width)
        dst = _as_frame(out, width, height)
        np.copyto(self._wide, src)

        for parity, (own, missing) in GRBG_SITES.items():
            rows, cols = self._sites[parity]
            site = dst[rows, cols]
            np.copyto(site[..., own], src[rows, cols])
            acc = self._scratch[parity]
            for channel, neighbours in missing:
                self._average(rows, cols, neighbours, acc)
                np.copyto(site[..., channel], acc, casting="unsafe")

        # Edge duplication: columns first, then whole rows so corners follow.
        dst[1:-1, 0] = dst[1:-1, 1]
        dst[1:-1, -1] = dst[1:-1, -2]
        dst[0] = dst[1]
        dst[-1] = dst[-2]
        dst[..., ALPHA] = OPAQUE
        return dst

    __call__ = demosaic

    def _average(self, rows: slice, cols: slice, neighbours, acc: np.ndarray) -> None:
        wide = self._wide
        (dy0, dx0), (dy1, dx1) = neighbours[0], neighbours[1]
        np.add(
            wide[_shift(rows, dy0), _shift(cols, dx0)],
            wide[_shift(rows, dy1), _shift(cols, dx1)],
            out=acc,
        )
        for dy, dx in neighbours[2:]:
            acc += wide[_shift(rows, dy), _shift(cols, dx)]
        rounding = len(neighbours) // 2
        shift = 1 if len(neighbours) == 2 else 2
        acc += rounding
        acc >>= shift


def demosaic(raw, width: int, height: int, out: Optional[np.ndarray] = None) -> np.ndarray:
    """One-shot convenience wrapper around :class:`Demosaicer`."""

    if out is None:
        out = allocate_color_frame(width, height)
    return Demosaicer(width, height).demosaic(raw, out)


__all__ = [
    "ALPHA",
    "BLUE",
    "CHANNELS",
    "Demosaicer",
    "GREEN",
    "OPAQUE",
    "RED",
    "allocate_color_frame",
    "demosaic",
]
