"""Unit tests for src/scan/frame.py."""

import numpy as np
import pytest

from src.scan.frame import Frame, InvalidFrameError, to_luminance
from tests.frames import checkerboard_frame, document_bgr, encode, solid_frame


def _rgba(r: int, g: int, b: int, a: int = 255, h: int = 4, w: int = 4) -> np.ndarray:
    pixels = np.empty((h, w, 4), dtype=np.uint8)
    pixels[...] = (r, g, b, a)
    return pixels


# ---------------------------------------------------------------------------
# Frame validation
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("h,w", [(0, 0), (2, 10), (10, 2), (1, 1)])
def test_frame_rejects_tiny_dimensions(h, w):
    with pytest.raises(InvalidFrameError, match="at least 3"):
        Frame(np.zeros((h, w, 4), dtype=np.uint8))


def test_frame_rejects_wrong_channel_count():
    with pytest.raises(InvalidFrameError, match=r"\(H, W, 4\)"):
        Frame(np.zeros((10, 10, 3), dtype=np.uint8))


def test_frame_rejects_non_uint8():
    with pytest.raises(InvalidFrameError, match="uint8"):
        Frame(np.zeros((10, 10, 4), dtype=np.float32))


def test_frame_rejects_non_array():
    with pytest.raises(InvalidFrameError):
        Frame([[0, 0, 0, 0]])


def test_frame_is_read_only_copy():
    source = _rgba(10, 20, 30)
    frame = Frame(source)
    source[...] = 0  # caller mutation must not leak into the frame
    assert frame.pixels[0, 0, 0] == 10
    with pytest.raises(ValueError):
        frame.pixels[0, 0, 0] = 1


def test_frame_dimensions():
    frame = solid_frame(h=30, w=40)
    assert frame.width == 40
    assert frame.height == 30


# ---------------------------------------------------------------------------
# OpenCV conversions
# ---------------------------------------------------------------------------


def test_from_bgr_swaps_channels_and_adds_alpha():
    bgr = np.zeros((5, 5, 3), dtype=np.uint8)
    bgr[...] = (1, 2, 3)  # B, G, R
    frame = Frame.from_bgr(bgr)
    assert tuple(frame.pixels[0, 0]) == (3, 2, 1, 255)


def test_from_bgr_accepts_grayscale():
    frame = Frame.from_bgr(np.full((6, 7), 42, dtype=np.uint8))
    assert tuple(frame.pixels[0, 0]) == (42, 42, 42, 255)
    assert (frame.width, frame.height) == (7, 6)


def test_from_bgr_rejects_empty_image():
    with pytest.raises(InvalidFrameError):
        Frame.from_bgr(np.zeros((0, 0, 3), dtype=np.uint8))


def test_to_bgr_round_trips_channels():
    bgr = document_bgr()
    assert np.array_equal(Frame.from_bgr(bgr).to_bgr(), bgr)


def test_decode_png():
    bgr = document_bgr()
    frame = Frame.decode(encode(bgr))
    assert (frame.width, frame.height) == (bgr.shape[1], bgr.shape[0])


@pytest.mark.parametrize("data", [b"", b"not an image"])
def test_decode_garbage_raises(data):
    with pytest.raises(InvalidFrameError, match="decode"):
        Frame.decode(data)


# ---------------------------------------------------------------------------
# Grayscale reduction
# ---------------------------------------------------------------------------


def test_luminance_uses_bt601_weights():
    luma = to_luminance(Frame(_rgba(100, 50, 200)))
    assert luma.shape == (4, 4)
    assert luma.dtype == np.float64
    assert luma[0, 0] == pytest.approx(0.299 * 100 + 0.587 * 50 + 0.114 * 200)


def test_luminance_ignores_alpha():
    opaque = to_luminance(Frame(_rgba(10, 200, 30, a=255)))
    transparent = to_luminance(Frame(_rgba(10, 200, 30, a=0)))
    assert np.array_equal(opaque, transparent)


def test_luminance_range_extremes():
    assert to_luminance(Frame(_rgba(0, 0, 0))).max() == 0.0
    assert to_luminance(Frame(_rgba(255, 255, 255))).min() == pytest.approx(255.0)


def test_luminance_is_deterministic():
    frame = checkerboard_frame(low=17, high=211)
    first = to_luminance(frame)
    second = to_luminance(frame)
    assert np.array_equal(first, second)
    assert first.tobytes() == second.tobytes()


def test_luminance_fills_given_buffer():
    frame = solid_frame(h=8, w=9, value=200)
    buf = np.full((8, 9), -1.0)
    result = to_luminance(frame, out=buf)
    assert result is buf
    assert np.allclose(buf, 200.0)


def test_luminance_buffer_reuse_does_not_change_result():
    a = checkerboard_frame(h=20, w=20)
    b = solid_frame(h=20, w=20, value=90)
    buf = np.empty((20, 20))
    to_luminance(a, out=buf)
    assert np.array_equal(to_luminance(b, out=buf), to_luminance(b))


def test_luminance_rejects_mismatched_buffer():
    with pytest.raises(ValueError, match="buffer"):
        to_luminance(solid_frame(h=8, w=8), out=np.empty((4, 4)))
