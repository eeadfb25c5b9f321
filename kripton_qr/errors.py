# kripton_qr/errors.py
from __future__ import annotations

"""Error taxonomy for the QR reading pipeline.

Load errors (IOFailure, UnsupportedFormat, CorruptImage) abort the pipeline for
one image and reach the caller unchanged. ScaleTooSmall is recovered by the
orchestrator (the variant is skipped). NoQRCodeFound is an expected outcome and
is only raised on request via PipelineResult.raise_for_failure().
"""

from pathlib import Path
from typing import Optional, Union


class QRReaderError(Exception):
    """Base class for recoverable, user-facing errors."""


class IOFailure(QRReaderError):
    def __init__(self, source: Union[str, Path, None], reason: str):
        self.source = str(source) if source is not None else None
        self.reason = reason
        where = f": {self.source}" if self.source else ""
        super().__init__(f"Could not read image{where} ({reason})")


class UnsupportedFormat(QRReaderError):
    def __init__(self, source: Union[str, Path, None], detected: Optional[str] = None):
        self.source = str(source) if source is not None else None
        self.detected = detected
        what = f"format {detected}" if detected else "unrecognised image data"
        where = f" in {self.source}" if self.source else ""
        super().__init__(f"Unsupported {what}{where}")


class CorruptImage(QRReaderError):
    def __init__(self, source: Union[str, Path, None], reason: str):
        self.source = str(source) if source is not None else None
        self.reason = reason
        where = f" {self.source}" if self.source else ""
        super().__init__(f"Corrupt image{where}: {reason}")


class ScaleTooSmall(QRReaderError):
    def __init__(self, factor: float, width: int, height: int, min_side: int):
        self.factor = factor
        self.width = width
        self.height = height
        self.min_side = min_side
        super().__init__(
            f"Scale {factor:g} gives {width}x{height}, below the minimum side of {min_side}px"
        )


class NoQRCodeFound(QRReaderError):
    def __init__(self, attempts: int, reason: str = "no_qr_code_found"):
        self.attempts = attempts
        self.reason = reason
        super().__init__(f"No QR code could be decoded ({reason}, {attempts} candidate(s) tried)")


class DimensionMismatch(AssertionError):
    """Internal contract breach between pipeline stages. Never caught."""
