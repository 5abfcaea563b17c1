from __future__ import annotations

import numpy as np
import pytest

from finger.hint import MARK_HIGH, MARK_LOW, decode_hint_v2, encode_hint_v2, pixel_values


@pytest.mark.parametrize("token", ["rally", "hk", "hkpre", "logout"])
def test_decode_known_tokens(token: str) -> None:
    assert decode_hint_v2(encode_hint_v2(token)) == token


def test_larger_blocks_keep_repeat_counts() -> None:
    assert decode_hint_v2(encode_hint_v2("aabccc", block=6)) == "aabccc"


def test_strip_below_first_rows_is_found() -> None:
    strip = encode_hint_v2("rally", height=3)
    img = np.zeros((12, strip.shape[1], 4), dtype=np.uint8)
    img[:, :, 1] = 0x10
    img[6:9] = strip
    assert decode_hint_v2(img) == "rally"


def test_blank_image_has_no_hint() -> None:
    assert decode_hint_v2(np.zeros((80, 150, 4), dtype=np.uint8)) is None


def test_missing_end_marker() -> None:
    img = encode_hint_v2("rally", block=4)
    # Drop the trailing 0x00 run.
    assert decode_hint_v2(img[:, :-4]) is None


def test_pixel_values_layout() -> None:
    img = encode_hint_v2("A")
    values = pixel_values(img)[0].tolist()
    assert values[:2] == [16, 16]
    assert values[2:6] == [MARK_LOW] * 4
    assert values[6:10] == [MARK_HIGH] * 4
    assert values[10:14] == [ord("A")] * 4


def test_bad_shape_raises() -> None:
    with pytest.raises(ValueError):
        decode_hint_v2(np.zeros((10, 10), dtype=np.uint8))
