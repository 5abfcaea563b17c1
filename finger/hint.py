"""Hint-v2 strip decoder.

An in-game overlay paints a short ASCII token as a horizontal run of coloured
blocks in the window's top-left corner. Each pixel carries 7 bits:

    value = G[6:4] << 4 | R[6:5] << 2 | B[6:5]

A token is framed as ``0x00... 0x7F... <data> 0x7F... 0x00``. The width of the
leading marker run gives the block size, which is used to turn run lengths
back into character counts.
"""

from __future__ import annotations

from typing import List, Optional, Tuple

import numpy as np


MARK_LOW = 0x00
MARK_HIGH = 0x7F
MAX_ROWS = 60
MAX_COLS = 200
ROW_STEP = 3


def pixel_values(bgra: np.ndarray) -> np.ndarray:
    """7-bit values for every pixel of a BGRA image (rows x cols x 4)."""

    arr = np.asarray(bgra, dtype=np.uint8)
    if arr.ndim != 3 or arr.shape[2] < 3:
        raise ValueError(f"expected a BGRA image, got shape {arr.shape}")
    b = (arr[..., 0] >> 5) & 0x03
    g = (arr[..., 1] >> 4) & 0x07
    r = (arr[..., 2] >> 5) & 0x03
    return ((g << 4) | (r << 2) | b).astype(np.uint8)


def _decode_row(values: np.ndarray) -> Optional[str]:
    state = "start"
    marker_width = 0
    runs: List[Tuple[int, int]] = []

    for val in values.tolist():
        if state == "start":
            if val == MARK_LOW:
                state = "m0"
                marker_width = 1
        elif state == "m0":
            if val == MARK_LOW:
                marker_width += 1
            elif val == MARK_HIGH:
                state = "m1"
                marker_width += 1
            else:
                state = "start"
        elif state == "m1":
            if val == MARK_HIGH:
                marker_width += 1
            else:
                state = "data"
                runs.append((val, 1))
        elif state == "data":
            if val == MARK_HIGH:
                state = "end"
            elif runs[-1][0] == val:
                runs[-1] = (val, runs[-1][1] + 1)
            else:
                runs.append((val, 1))
        elif state == "end":
            if val == MARK_LOW:
                state = "done"
                break

    if state != "done" or not runs or marker_width == 0:
        return None

    out: List[str] = []
    for code, n in runs:
        ch = chr(code)
        if not (ch == " " or ch.isprintable() and not ch.isspace()):
            continue
        count = max(1, int(round(n * 2.0 / marker_width)))
        out.append(ch * count)
    return "".join(out) or None


def decode_hint_v2(bgra: np.ndarray) -> Optional[str]:
    """Decode the first hint strip found in the top rows, or None."""

    values = pixel_values(bgra)
    rows, cols = values.shape
    for y in range(0, min(rows, MAX_ROWS), ROW_STEP):
        text = _decode_row(values[y, : min(cols, MAX_COLS)])
        if text is not None:
            return text
    return None


def encode_hint_v2(text: str, block: int = 4, height: int = 6) -> np.ndarray:
    """Render ``text`` as a hint strip; the inverse of :func:`decode_hint_v2`.

    The leading marker is one block of 0x00 followed by one block of 0x7F, so
    the decoder's marker width equals ``2 * block``.
    """

    def colour(value: int) -> Tuple[int, int, int, int]:
        g = (value >> 4) & 0x07
        r = (value >> 2) & 0x03
        b = value & 0x03
        return (b << 5, g << 4, r << 5, 255)

    seq: List[int] = [MARK_LOW] * block + [MARK_HIGH] * block
    for ch in text:
        seq.extend([ord(ch) & 0x7F] * block)
    seq.extend([MARK_HIGH] * block + [MARK_LOW] * block)

    row = np.array([colour(v) for v in seq], dtype=np.uint8)
    pad = np.zeros((2, 4), dtype=np.uint8)
    pad[:, 1] = 0x10  # non-marker lead-in so the scan starts cleanly
    row = np.vstack([pad, row])
    return np.repeat(row[np.newaxis, :, :], height, axis=0)
