# kripton_qr/utils/qr_decode.py
from __future__ import annotations

from typing import List, Protocol
import contextlib
import io
import logging

import cv2

from ..image.raster import PixelBuffer

logger = logging.getLogger(__name__)

DECODER_NAMES = ("zbar", "opencv")


class QRDecoder(Protocol):
    """Black-box decoding capability: binary buffer in, zero or more payloads out.

    An empty list means no symbol was found.
    """

    name: str

    def __call__(self, buf: PixelBuffer) -> List[bytes]:
        ...


@contextlib.contextmanager
def _suppress_stderr(enabled: bool = True):
    """Suppress noisy zbar warnings (databar assertions, etc.)."""
    if not enabled:
        yield
        return
    buf = io.StringIO()
    with contextlib.redirect_stderr(buf):
        yield


class ZbarDecoder:
    """zbar through pyzbar, restricted to QR symbols."""

    name = "zbar"

    def __init__(self, quiet: bool = True):
        # imported here so that opencv-only setups never need libzbar
        from pyzbar.pyzbar import ZBarSymbol, decode

        self._decode = decode
        self._symbols = [ZBarSymbol.QRCODE]
        self.quiet = quiet

    def __call__(self, buf: PixelBuffer) -> List[bytes]:
        with _suppress_stderr(self.quiet):
            codes = self._decode(buf.pixels, symbols=self._symbols)
        return [bytes(c.data) for c in codes if c.data]


class OpenCVDecoder:
    """cv2.QRCodeDetector; multi-symbol detection first, single as a fallback."""

    name = "opencv"

    def __init__(self):
        self._detector = cv2.QRCodeDetector()

    def __call__(self, buf: PixelBuffer) -> List[bytes]:
        img = buf.pixels
        texts: List[str] = []
        try:
            ret, data, _points, _ = self._detector.detectAndDecodeMulti(img)
        except cv2.error as e:
            logger.debug("detectAndDecodeMulti failed: %s", e)
            ret, data = False, None
        if ret and data:
            texts.extend(t for t in data if t)

        if not texts:
            try:
                text, _pts, _ = self._detector.detectAndDecode(img)
            except cv2.error as e:
                logger.debug("detectAndDecode failed: %s", e)
                text = ""
            if text:
                texts.append(text)

        return [t.encode("utf-8") for t in texts]


def get_decoder(name: str = "zbar") -> QRDecoder:
    key = (name or "").strip().lower()
    if key == "zbar":
        return ZbarDecoder()
    if key == "opencv":
        return OpenCVDecoder()
    raise ValueError(f"Unknown decoder {name!r}; expected one of {DECODER_NAMES}")
