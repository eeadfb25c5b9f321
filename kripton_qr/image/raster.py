# kripton_qr/image/raster.py
from __future__ import annotations

import io
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Optional, Union

import numpy as np
from PIL import Image, UnidentifiedImageError

from ..errors import CorruptImage, DimensionMismatch, IOFailure, UnsupportedFormat

SUPPORTED_FORMATS = ("PNG", "JPEG", "BMP", "GIF", "WEBP")
SUPPORTED_EXTENSIONS = {".png", ".jpg", ".jpeg", ".bmp", ".gif", ".webp"}

_HINT_ALIASES = {"JPG": "JPEG"}

Source = Union[str, Path, bytes, bytearray, BinaryIO]


@dataclass(frozen=True, eq=False)
class PixelBuffer:
    """uint8 raster, shape (H, W) for single channel or (H, W, C) for color (RGB order)."""

    pixels: np.ndarray

    def __post_init__(self):
        px = self.pixels
        if not isinstance(px, np.ndarray) or px.dtype != np.uint8:
            raise DimensionMismatch(f"PixelBuffer needs a uint8 ndarray, got {type(px).__name__}")
        if px.ndim not in (2, 3):
            raise DimensionMismatch(f"PixelBuffer needs 2 or 3 dims, got shape={px.shape}")
        if px.shape[0] <= 0 or px.shape[1] <= 0 or (px.ndim == 3 and px.shape[2] <= 0):
            raise DimensionMismatch(f"PixelBuffer has an empty dimension: shape={px.shape}")

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def channels(self) -> int:
        return 1 if self.pixels.ndim == 2 else int(self.pixels.shape[2])

    @property
    def is_grayscale(self) -> bool:
        return self.channels == 1

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height

    def copy(self) -> "PixelBuffer":
        return PixelBuffer(self.pixels.copy())


def _normalize_hint(format_hint: Optional[str]) -> Optional[str]:
    if not format_hint:
        return None
    hint = format_hint.strip().lstrip(".").upper()
    hint = _HINT_ALIASES.get(hint, hint)
    if hint not in SUPPORTED_FORMATS:
        raise UnsupportedFormat(None, detected=hint)
    return hint


def _read_source(source: Source) -> tuple[bytes, Optional[str]]:
    """Return (raw bytes, label for error messages)."""
    if isinstance(source, (bytes, bytearray)):
        return bytes(source), None
    if isinstance(source, (str, Path)):
        path = Path(source)
        try:
            return path.read_bytes(), str(path)
        except FileNotFoundError:
            raise IOFailure(path, "file not found") from None
        except IsADirectoryError:
            raise IOFailure(path, "is a directory") from None
        except PermissionError:
            raise IOFailure(path, "permission denied") from None
        except OSError as e:
            raise IOFailure(path, str(e)) from e
    try:
        data = source.read()
    except OSError as e:
        raise IOFailure(getattr(source, "name", None), str(e)) from e
    return bytes(data), getattr(source, "name", None)


def _to_array(img: Image.Image) -> np.ndarray:
    """Bring any Pillow mode down to L or RGB. Transparency is flattened onto white."""
    mode = img.mode
    if mode == "L":
        return np.array(img, dtype=np.uint8)
    if mode == "1":
        return np.array(img.convert("L"), dtype=np.uint8)
    has_alpha = "A" in mode or (mode == "P" and "transparency" in img.info)
    if has_alpha:
        rgba = img.convert("RGBA")
        white = Image.new("RGBA", rgba.size, (255, 255, 255, 255))
        return np.array(Image.alpha_composite(white, rgba).convert("RGB"), dtype=np.uint8)
    return np.array(img.convert("RGB"), dtype=np.uint8)


def load_raster(source: Source, format_hint: Optional[str] = None) -> PixelBuffer:
    """Decode PNG/JPEG/BMP/GIF/WebP content into a PixelBuffer.

    `source` may be a path, raw bytes or a binary stream. With `format_hint`,
    detection is restricted to that container format.
    """
    hint = _normalize_hint(format_hint)
    data, label = _read_source(source)
    if not data:
        raise CorruptImage(label, "empty input")

    formats = [hint] if hint else list(SUPPORTED_FORMATS)
    try:
        img = Image.open(io.BytesIO(data), formats=formats)
    except UnidentifiedImageError:
        # distinguish "not an image" from "an image we do not handle"
        detected = None
        try:
            with Image.open(io.BytesIO(data)) as sniff:
                detected = sniff.format
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError, SyntaxError):
            detected = None
        raise UnsupportedFormat(label, detected=detected) from None
    except Image.DecompressionBombError as e:
        # header declares more pixels than Pillow is willing to allocate
        raise CorruptImage(label, str(e)) from e
    except (OSError, ValueError, SyntaxError) as e:
        raise CorruptImage(label, str(e)) from e

    with img:
        w, h = img.size
        if w <= 0 or h <= 0:
            raise CorruptImage(label, f"zero dimension ({w}x{h})")
        try:
            img.seek(0)
            img.load()
            arr = _to_array(img)
        except (Image.DecompressionBombError, OSError, ValueError, SyntaxError, EOFError) as e:
            raise CorruptImage(label, str(e)) from e

    return PixelBuffer(np.ascontiguousarray(arr))
