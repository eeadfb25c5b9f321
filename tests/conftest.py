"""
Shared fixtures: synthetic rasters and stand-in decoders.
"""
from typing import Callable, List

import numpy as np
import pytest

from kripton_qr.image.raster import PixelBuffer


class FakeDecoder:
    """Decoder double: `rule(buf)` returns the payloads for a candidate; calls are recorded."""

    name = "fake"

    def __init__(self, rule: Callable[[PixelBuffer], List[bytes]]):
        self.rule = rule
        self.calls: List[tuple] = []

    def __call__(self, buf: PixelBuffer) -> List[bytes]:
        self.calls.append((buf.width, buf.height))
        return list(self.rule(buf))


def min_width_decoder(min_width: int, payload: bytes = b"https://example.com/qr") -> FakeDecoder:
    """Succeeds only once the candidate is at least min_width pixels wide."""
    return FakeDecoder(lambda buf: [payload] if buf.width >= min_width else [])


@pytest.fixture
def rgb_image():
    rng = np.random.default_rng(7)
    return PixelBuffer(rng.integers(0, 256, size=(48, 64, 3), dtype=np.uint8))


@pytest.fixture
def gray_noise():
    rng = np.random.default_rng(11)
    return PixelBuffer(rng.integers(0, 256, size=(37, 53), dtype=np.uint8))


@pytest.fixture
def dark_square_image():
    """200x200 flat background (200) with a 12x12 dark square (50) at rows/cols 60..71."""
    px = np.full((200, 200), 200, dtype=np.uint8)
    px[60:72, 60:72] = 50
    return PixelBuffer(px)


@pytest.fixture
def photo_200():
    """200x200 color image with some structure, sized so that 1.5x gives 300px."""
    px = np.full((200, 200, 3), 230, dtype=np.uint8)
    px[40:160:10, 40:160] = (20, 20, 20)
    px[:, :30] = (120, 90, 60)
    return PixelBuffer(px)


def oversized_png_bytes(width: int = 40000, height: int = 40000) -> bytes:
    """A small valid PNG whose IHDR claims width x height (CRC recomputed)."""
    import io
    import struct
    import zlib

    from PIL import Image

    bio = io.BytesIO()
    Image.fromarray(np.full((8, 8), 255, dtype=np.uint8)).save(bio, format="PNG")
    data = bytearray(bio.getvalue())
    # signature(8) + length(4) + b"IHDR"(4), then 13 bytes of header data and a CRC
    data[16:24] = struct.pack(">II", width, height)
    data[29:33] = struct.pack(">I", zlib.crc32(bytes(data[12:29])) & 0xFFFFFFFF)
    return bytes(data)
