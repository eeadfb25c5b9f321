import numpy as np
import pytest

from kripton_qr.errors import DimensionMismatch
from kripton_qr.image.enhance import (
    BACKGROUND,
    FOREGROUND,
    Polarity,
    adaptive_threshold,
    equalize_histogram,
    to_grayscale,
)
from kripton_qr.image.raster import PixelBuffer
from kripton_qr.qr.pipeline import PipelineConfig


def _reference_block(px, block_size, bias, polarity):
    """Straight loop over clipped grid blocks."""
    h, w = px.shape
    out = np.empty_like(px)
    for by in range(0, h, block_size):
        for bx in range(0, w, block_size):
            tile = px[by:by + block_size, bx:bx + block_size].astype(np.int64)
            mean = tile.sum() / tile.size
            for y in range(by, min(by + block_size, h)):
                for x in range(bx, min(bx + block_size, w)):
                    v = float(px[y, x])
                    fg = v < mean - bias if polarity is Polarity.DARK else v > mean + bias
                    out[y, x] = FOREGROUND if fg else BACKGROUND
    return out


def _reference_window(px, block_size, bias):
    h, w = px.shape
    half = block_size // 2
    out = np.empty_like(px)
    for y in range(h):
        for x in range(w):
            win = px[max(0, y - half):min(h - 1, y + half) + 1, max(0, x - half):min(w - 1, x + half) + 1]
            mean = win.astype(np.int64).sum() / win.size
            out[y, x] = FOREGROUND if float(px[y, x]) < mean - bias else BACKGROUND
    return out


class TestGrayscale:
    def test_weights_and_dimensions(self):
        px = np.zeros((2, 3, 3), dtype=np.uint8)
        px[0, 0] = (255, 0, 0)
        px[0, 1] = (0, 255, 0)
        px[0, 2] = (0, 0, 255)
        px[1, :] = (255, 255, 255)
        gray = to_grayscale(PixelBuffer(px))
        assert gray.is_grayscale
        assert (gray.width, gray.height) == (3, 2)
        assert gray.pixels[0].tolist() == [76, 150, 29]
        assert gray.pixels[1].tolist() == [255, 255, 255]

    def test_idempotent_on_grayscale(self, rgb_image):
        once = to_grayscale(rgb_image)
        twice = to_grayscale(once)
        assert np.array_equal(once.pixels, twice.pixels)
        assert twice.pixels is not once.pixels

    def test_deterministic(self, rgb_image):
        assert np.array_equal(to_grayscale(rgb_image).pixels, to_grayscale(rgb_image).pixels)

    def test_neutral_gray_keeps_value(self):
        px = np.stack([np.arange(256, dtype=np.uint8).reshape(16, 16)] * 3, axis=-1)
        gray = to_grayscale(PixelBuffer(px))
        assert np.array_equal(gray.pixels, px[:, :, 0])


class TestEqualize:
    def test_flat_image_unchanged(self):
        px = np.full((20, 30), 137, dtype=np.uint8)
        out = equalize_histogram(PixelBuffer(px))
        assert np.array_equal(out.pixels, px)

    def test_two_levels(self):
        px = np.array([[0, 0], [255, 255]], dtype=np.uint8)
        out = equalize_histogram(PixelBuffer(px))
        assert out.pixels.tolist() == [[127, 127], [255, 255]]

    def test_spreads_low_contrast_range(self):
        px = np.repeat(np.arange(100, 116, dtype=np.uint8), 16).reshape(16, 16)
        out = equalize_histogram(PixelBuffer(px)).pixels
        assert out.max() == 255
        assert int(out.max()) - int(out.min()) > int(px.max()) - int(px.min())
        # monotonic mapping keeps the intensity order
        assert np.all(np.diff(out[:, 0].astype(int)) >= 0)

    def test_rejects_color(self, rgb_image):
        with pytest.raises(DimensionMismatch):
            equalize_histogram(rgb_image)


class TestAdaptiveThreshold:
    def test_binary_and_same_shape(self, gray_noise):
        out = adaptive_threshold(gray_noise, block_size=16, bias=0)
        assert out.pixels.shape == gray_noise.pixels.shape
        assert set(np.unique(out.pixels).tolist()) == {FOREGROUND, BACKGROUND}

    @pytest.mark.parametrize("block_size", [1, 5, 16, 64])
    def test_block_matches_reference_on_ragged_edges(self, gray_noise, block_size):
        # 53x37 is not a multiple of any of these block sizes (except 1)
        out = adaptive_threshold(gray_noise, block_size=block_size, bias=3)
        expected = _reference_block(gray_noise.pixels, block_size, 3, Polarity.DARK)
        assert np.array_equal(out.pixels, expected)

    def test_light_polarity_matches_reference(self, gray_noise):
        out = adaptive_threshold(gray_noise, block_size=10, bias=4, polarity=Polarity.LIGHT)
        expected = _reference_block(gray_noise.pixels, 10, 4, Polarity.LIGHT)
        assert np.array_equal(out.pixels, expected)

    def test_window_matches_reference(self, gray_noise):
        out = adaptive_threshold(gray_noise, block_size=7, bias=2, method="window")
        assert np.array_equal(out.pixels, _reference_window(gray_noise.pixels, 7, 2))

    @pytest.mark.parametrize(
        "lo, hi, min_contrast",
        [
            (60, 72, 0),  # straddles four blocks, plain block means suffice
            (64, 80, PipelineConfig().min_block_contrast),  # fills exactly one block
        ],
    )
    def test_dark_square_scenario(self, lo, hi, min_contrast):
        px = np.full((200, 200), 200, dtype=np.uint8)
        px[lo:hi, lo:hi] = 50
        out = adaptive_threshold(PixelBuffer(px), block_size=16, bias=0, min_contrast=min_contrast).pixels
        square = np.zeros(out.shape, dtype=bool)
        square[lo:hi, lo:hi] = True
        assert np.all(out[square] == FOREGROUND)
        assert np.all(out[~square] == BACKGROUND)

    def test_light_polarity_on_inverted_scene(self, dark_square_image):
        inverted = PixelBuffer(255 - dark_square_image.pixels)
        out = adaptive_threshold(inverted, block_size=16, bias=0, polarity=Polarity.LIGHT).pixels
        assert np.all(out[60:72, 60:72] == FOREGROUND)
        assert np.count_nonzero(out == FOREGROUND) == 12 * 12

    def test_flat_block_borrows_neighbour_mean(self):
        # 16x16 dark block fully covering one grid cell, light all around it
        px = np.full((48, 48), 220, dtype=np.uint8)
        px[16:32, 16:32] = 40
        gray = PixelBuffer(px)

        plain = adaptive_threshold(gray, block_size=16, bias=5).pixels
        assert np.all(plain[16:32, 16:32] == BACKGROUND)

        patched = adaptive_threshold(gray, block_size=16, bias=5, min_contrast=16).pixels
        assert np.all(patched[16:32, 16:32] == FOREGROUND)
        assert np.count_nonzero(patched == FOREGROUND) == 16 * 16

    def test_uniform_input_is_all_background(self):
        out = adaptive_threshold(PixelBuffer(np.full((10, 10), 90, dtype=np.uint8)), block_size=4, bias=0)
        assert set(np.unique(out.pixels).tolist()) == {BACKGROUND}

    def test_bad_arguments(self, gray_noise, rgb_image):
        with pytest.raises(ValueError):
            adaptive_threshold(gray_noise, block_size=0)
        with pytest.raises(ValueError):
            adaptive_threshold(gray_noise, method="otsu")
        with pytest.raises(DimensionMismatch):
            adaptive_threshold(rgb_image)
