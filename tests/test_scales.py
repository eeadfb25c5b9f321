import numpy as np
import pytest

from kripton_qr.errors import ScaleTooSmall
from kripton_qr.image.raster import PixelBuffer
from kripton_qr.image.scales import generate_scale_variants, order_scale_factors, resize_buffer


def test_native_scale_keeps_dimensions(rgb_image):
    out = resize_buffer(rgb_image, 1.0)
    assert (out.width, out.height, out.channels) == (rgb_image.width, rgb_image.height, 3)
    assert np.array_equal(out.pixels, rgb_image.pixels)
    assert out.pixels is not rgb_image.pixels


def test_upscale_and_downscale_preserve_aspect():
    buf = PixelBuffer(np.full((100, 200), 128, dtype=np.uint8))
    up = resize_buffer(buf, 1.5)
    assert (up.width, up.height) == (300, 150)
    assert up.is_grayscale
    down = resize_buffer(buf, 0.8)
    assert (down.width, down.height) == (160, 80)
    # smooth interpolation of a flat image stays flat
    assert np.all(up.pixels == 128) and np.all(down.pixels == 128)


def test_too_small_raises():
    buf = PixelBuffer(np.zeros((100, 100), dtype=np.uint8))
    with pytest.raises(ScaleTooSmall) as ei:
        resize_buffer(buf, 0.25, min_side=32)
    assert ei.value.factor == 0.25
    assert (ei.value.width, ei.value.height) == (25, 25)


def test_small_image_native_and_upscale_never_rejected():
    buf = PixelBuffer(np.zeros((20, 20), dtype=np.uint8))
    native = resize_buffer(buf, 1.0, min_side=32)
    assert (native.width, native.height) == (20, 20)
    up = resize_buffer(buf, 1.2, min_side=32)
    assert (up.width, up.height) == (24, 24)
    with pytest.raises(ScaleTooSmall):
        resize_buffer(buf, 0.9, min_side=32)


def test_non_positive_factor():
    buf = PixelBuffer(np.zeros((40, 40), dtype=np.uint8))
    with pytest.raises(ValueError):
        resize_buffer(buf, 0)


def test_order_native_then_up_then_down():
    assert order_scale_factors([0.8, 1.5, 1.0, 2.0, 0.5, 1.5]) == [1.0, 1.5, 2.0, 0.8, 0.5]
    assert order_scale_factors([0.5, 0.8]) == [0.8, 0.5]


def test_variants_skip_too_small_factors():
    buf = PixelBuffer(np.zeros((100, 120, 3), dtype=np.uint8))
    variants = list(generate_scale_variants(buf, [0.8, 1.0, 0.1, 1.5], min_side=32))
    assert [v.factor for v in variants] == [1.0, 1.5, 0.8]
    assert [v.index for v in variants] == [0, 1, 2]
    assert variants[0].is_native
    assert [(v.buffer.width, v.buffer.height) for v in variants] == [(120, 100), (180, 150), (96, 80)]
    assert all(v.buffer.channels == 3 for v in variants)
