# kripton_qr/image/enhance.py
from __future__ import annotations

"""
Enhancement stages applied before a binarized candidate is handed to a decoder.

    to_grayscale -> equalize_histogram -> adaptive_threshold

Every stage takes a PixelBuffer and returns a new one with the same width and
height; inputs are never modified in place.
"""

from enum import Enum

import numpy as np

from ..errors import DimensionMismatch
from .raster import PixelBuffer

LUMA_WEIGHTS = (0.299, 0.587, 0.114)
N_BINS = 256

FOREGROUND = 0
BACKGROUND = 255

THRESHOLD_METHODS = ("block", "window")


class Polarity(str, Enum):
    """Which side of the local mean counts as a QR module."""

    DARK = "dark"  # dark modules on light paper
    LIGHT = "light"  # light modules on dark background

    def inverted(self) -> "Polarity":
        return Polarity.LIGHT if self is Polarity.DARK else Polarity.DARK


def _check_same_dims(src: PixelBuffer, out: PixelBuffer, stage: str) -> PixelBuffer:
    if (src.width, src.height) != (out.width, out.height):
        raise DimensionMismatch(
            f"{stage}: {src.width}x{src.height} in, {out.width}x{out.height} out"
        )
    return out


def _require_gray(buf: PixelBuffer, stage: str) -> None:
    if not buf.is_grayscale:
        raise DimensionMismatch(f"{stage} needs a single-channel buffer, got {buf.channels} channels")


def to_grayscale(buf: PixelBuffer) -> PixelBuffer:
    """Perceptual luminance (0.299 R + 0.587 G + 0.114 B), rounded and clamped to 0..255."""
    px = buf.pixels
    if buf.channels == 1:
        return PixelBuffer(px.copy())
    if buf.channels == 2:
        # gray + alpha
        return _check_same_dims(buf, PixelBuffer(np.ascontiguousarray(px[:, :, 0])), "to_grayscale")

    rgb = px[:, :, :3].astype(np.float32)
    r, g, b = LUMA_WEIGHTS
    lum = rgb[:, :, 0] * r + rgb[:, :, 1] * g + rgb[:, :, 2] * b
    out = np.clip(np.rint(lum), 0, 255).astype(np.uint8)
    return _check_same_dims(buf, PixelBuffer(out), "to_grayscale")


def equalize_histogram(gray: PixelBuffer) -> PixelBuffer:
    """Histogram equalization through the normalized cumulative distribution.

    A buffer holding a single intensity value comes back unchanged.
    """
    _require_gray(gray, "equalize_histogram")
    px = gray.pixels
    hist = np.bincount(px.ravel(), minlength=N_BINS)
    if np.count_nonzero(hist) <= 1:
        return PixelBuffer(px.copy())

    cdf = np.cumsum(hist, dtype=np.float64) / float(px.size)
    lut = np.floor(cdf * 255.0).astype(np.uint8)
    return _check_same_dims(gray, PixelBuffer(lut[px]), "equalize_histogram")


def _neighbourhood_sum(grid: np.ndarray) -> np.ndarray:
    """Sum over each cell's 3x3 neighbourhood, clipped at the grid edges."""
    gh, gw = grid.shape
    out = np.zeros_like(grid)
    for dy in (-1, 0, 1):
        for dx in (-1, 0, 1):
            out[max(dy, 0):gh + min(dy, 0), max(dx, 0):gw + min(dx, 0)] += grid[
                max(-dy, 0):gh + min(-dy, 0), max(-dx, 0):gw + min(-dx, 0)
            ]
    return out


def _block_means(px: np.ndarray, block_size: int, min_contrast: int = 0) -> np.ndarray:
    """Per-pixel mean of the grid block the pixel falls in. Edge blocks are clipped.

    Blocks whose intensity range is below min_contrast take the mean of their
    3x3 block neighbourhood instead, so a block lying entirely inside a dark
    module is still compared against its lighter surroundings.
    """
    h, w = px.shape
    row_starts = np.arange(0, h, block_size)
    col_starts = np.arange(0, w, block_size)
    row_sizes = np.diff(np.append(row_starts, h))
    col_sizes = np.diff(np.append(col_starts, w))

    sums = np.add.reduceat(px.astype(np.int64), row_starts, axis=0)
    sums = np.add.reduceat(sums, col_starts, axis=1)
    counts = np.outer(row_sizes, col_sizes)
    means = sums / counts

    if min_contrast > 0:
        hi = np.maximum.reduceat(np.maximum.reduceat(px, row_starts, axis=0), col_starts, axis=1)
        lo = np.minimum.reduceat(np.minimum.reduceat(px, row_starts, axis=0), col_starts, axis=1)
        flat = (hi.astype(np.int64) - lo.astype(np.int64)) < int(min_contrast)
        if flat.any():
            wide = _neighbourhood_sum(sums) / _neighbourhood_sum(counts)
            means = np.where(flat, wide, means)

    return np.repeat(np.repeat(means, row_sizes, axis=0), col_sizes, axis=1)


def _window_means(px: np.ndarray, block_size: int) -> np.ndarray:
    """Per-pixel mean of a block_size window centred on the pixel, clipped at the border."""
    h, w = px.shape
    half = block_size // 2

    integral = np.zeros((h + 1, w + 1), dtype=np.int64)
    integral[1:, 1:] = px.astype(np.int64).cumsum(axis=0).cumsum(axis=1)

    ys = np.arange(h)
    xs = np.arange(w)
    y0 = np.maximum(ys - half, 0)
    y1 = np.minimum(ys + half, h - 1) + 1
    x0 = np.maximum(xs - half, 0)
    x1 = np.minimum(xs + half, w - 1) + 1

    sums = (
        integral[y1][:, x1]
        - integral[y0][:, x1]
        - integral[y1][:, x0]
        + integral[y0][:, x0]
    )
    counts = np.outer(y1 - y0, x1 - x0)
    return sums / counts


def adaptive_threshold(
    gray: PixelBuffer,
    block_size: int = 24,
    bias: float = 5.0,
    polarity: Polarity = Polarity.DARK,
    method: str = "block",
    min_contrast: int = 0,
) -> PixelBuffer:
    """Binarize against local means.

    method="block": the image is cut into a grid of block_size tiles and every
    pixel is compared with the mean of its tile (tiles flatter than
    min_contrast borrow their neighbours' mean). method="window": every pixel
    is compared with the mean of the block_size window around it.

    Polarity.DARK marks pixels below (mean - bias) as foreground,
    Polarity.LIGHT marks pixels above (mean + bias). Foreground is written as 0
    and background as 255, so the output always reads as dark modules on a
    light background.
    """
    _require_gray(gray, "adaptive_threshold")
    if int(block_size) < 1:
        raise ValueError(f"block_size must be >= 1, got {block_size}")
    if method not in THRESHOLD_METHODS:
        raise ValueError(f"method must be one of {THRESHOLD_METHODS}, got {method!r}")
    polarity = Polarity(polarity)

    px = gray.pixels
    if method == "block":
        means = _block_means(px, int(block_size), min_contrast=int(min_contrast))
    else:
        means = _window_means(px, int(block_size))

    values = px.astype(np.float64)
    if polarity is Polarity.DARK:
        fg = values < (means - float(bias))
    else:
        fg = values > (means + float(bias))

    out = np.where(fg, FOREGROUND, BACKGROUND).astype(np.uint8)
    return _check_same_dims(gray, PixelBuffer(out), "adaptive_threshold")
