# kripton_qr/image/scales.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Sequence

import cv2
import numpy as np

from ..errors import ScaleTooSmall
from .raster import PixelBuffer

logger = logging.getLogger(__name__)

DEFAULT_SCALES = (1.0, 1.5, 0.8)
MIN_DECODABLE_SIDE = 32


@dataclass(frozen=True, eq=False)
class ScaleVariant:
    index: int
    factor: float
    buffer: PixelBuffer

    @property
    def is_native(self) -> bool:
        return self.factor == 1.0


def order_scale_factors(factors: Iterable[float]) -> List[float]:
    """Native scale first, then upscales (ascending), then downscales (descending)."""
    uniq = []
    for f in factors:
        f = float(f)
        if f <= 0:
            raise ValueError(f"scale factor must be > 0, got {f}")
        if f not in uniq:
            uniq.append(f)
    native = [f for f in uniq if f == 1.0]
    up = sorted(f for f in uniq if f > 1.0)
    down = sorted((f for f in uniq if f < 1.0), reverse=True)
    return native + up + down


def resize_buffer(buf: PixelBuffer, factor: float, min_side: int = MIN_DECODABLE_SIDE) -> PixelBuffer:
    """Aspect-preserving resize. Bilinear when enlarging, area averaging when shrinking."""
    factor = float(factor)
    if factor <= 0:
        raise ValueError(f"scale factor must be > 0, got {factor}")

    w, h = buf.width, buf.height
    new_w = int(round(w * factor))
    new_h = int(round(h * factor))
    # only shrinking can push a loadable image below the decodable minimum
    if factor < 1.0 and min(new_w, new_h) < int(min_side):
        raise ScaleTooSmall(factor, new_w, new_h, int(min_side))

    if (new_w, new_h) == (w, h):
        return buf.copy()

    interp = cv2.INTER_LINEAR if factor > 1.0 else cv2.INTER_AREA
    out = cv2.resize(buf.pixels, (new_w, new_h), interpolation=interp)
    # cv2 drops a trailing channel axis of size 1
    if buf.pixels.ndim == 3 and out.ndim == 2:
        out = out[:, :, None]
    return PixelBuffer(np.ascontiguousarray(out))


def generate_scale_variants(
    buf: PixelBuffer,
    factors: Sequence[float],
    min_side: int = MIN_DECODABLE_SIDE,
) -> Iterator[ScaleVariant]:
    """Lazily yield one ScaleVariant per factor in priority order.

    Downscale factors that would shrink the image below `min_side` are skipped.
    """
    index = 0
    for factor in order_scale_factors(factors):
        try:
            resized = resize_buffer(buf, factor, min_side=min_side)
        except ScaleTooSmall as e:
            logger.warning("Skipping scale variant: %s", e)
            continue
        yield ScaleVariant(index=index, factor=factor, buffer=resized)
        index += 1
