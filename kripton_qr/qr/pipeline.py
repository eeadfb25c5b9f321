# kripton_qr/qr/pipeline.py
from __future__ import annotations

"""
Candidate orchestration.

Grayscale and histogram equalization run once per image. Each scale variant of
the enhanced image is then binarized (dark polarity, optionally light polarity
as well) and handed to the decoder. Single-shot mode stops at the first
candidate that yields payloads; exhaustive mode tries every candidate and keeps
the union of payloads, deduplicated by content.
"""

import json
import logging
import threading
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from ..image.enhance import THRESHOLD_METHODS, Polarity, adaptive_threshold, equalize_histogram, to_grayscale
from ..image.raster import PixelBuffer, load_raster
from ..image.scales import DEFAULT_SCALES, MIN_DECODABLE_SIDE, ScaleVariant, generate_scale_variants
from ..utils.qr_decode import QRDecoder, get_decoder
from .payload import DecodedPayload, FailureReason, PipelineResult, PipelineState, VariantAttempt

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineConfig:
    block_size: int = 24
    bias: float = 5.0
    threshold_method: str = "block"
    min_block_contrast: int = 16
    scales: Tuple[float, ...] = DEFAULT_SCALES
    min_side: int = MIN_DECODABLE_SIDE
    exhaustive: bool = False
    try_inverted: bool = True
    enhance_contrast: bool = True

    def __post_init__(self):
        # accept lists from JSON / argparse
        object.__setattr__(self, "scales", tuple(float(s) for s in self.scales))
        if self.block_size < 1:
            raise ValueError(f"block_size must be >= 1, got {self.block_size}")
        if self.threshold_method not in THRESHOLD_METHODS:
            raise ValueError(f"threshold_method must be one of {THRESHOLD_METHODS}")
        if not self.scales:
            raise ValueError("at least one scale factor is required")
        if any(s <= 0 for s in self.scales):
            raise ValueError(f"scale factors must be > 0, got {self.scales}")
        if self.min_block_contrast < 0:
            raise ValueError(f"min_block_contrast must be >= 0, got {self.min_block_contrast}")
        if self.min_side < 1:
            raise ValueError(f"min_side must be >= 1, got {self.min_side}")

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "PipelineConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(d) - known)
        if unknown:
            raise ValueError(f"Unknown config keys: {unknown}")
        return cls(**d)

    @classmethod
    def from_json(cls, path: Union[str, Path]) -> "PipelineConfig":
        d = json.loads(Path(path).read_text(encoding="utf-8"))
        if not isinstance(d, dict):
            raise ValueError(f"{path}: expected a JSON object")
        return cls.from_dict(d)

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["scales"] = list(self.scales)
        return d


class CandidateOrchestrator:
    """Drives one image through the candidate set. Runs once."""

    def __init__(self, decoder: QRDecoder, config: Optional[PipelineConfig] = None):
        self.decoder = decoder
        self.config = config or PipelineConfig()
        self.state = PipelineState.NOT_STARTED

    def _polarities(self) -> List[Polarity]:
        if self.config.try_inverted:
            return [Polarity.DARK, Polarity.LIGHT]
        return [Polarity.DARK]

    def _enhance(self, buf: PixelBuffer) -> PixelBuffer:
        gray = to_grayscale(buf)
        if not self.config.enhance_contrast:
            return gray
        return equalize_histogram(gray)

    def _try_candidate(
        self,
        variant: ScaleVariant,
        polarity: Polarity,
        found: List[DecodedPayload],
    ) -> VariantAttempt:
        cfg = self.config
        binary = adaptive_threshold(
            variant.buffer,
            block_size=cfg.block_size,
            bias=cfg.bias,
            polarity=polarity,
            method=cfg.threshold_method,
            min_contrast=cfg.min_block_contrast,
        )
        symbols = self.decoder(binary)

        n_new = 0
        for raw in symbols:
            if any(p.same_content(raw) for p in found):
                continue
            found.append(
                DecodedPayload(
                    data=bytearray(raw),
                    scale=variant.factor,
                    polarity=polarity.value,
                    variant_index=variant.index,
                    decoder=getattr(self.decoder, "name", type(self.decoder).__name__),
                )
            )
            n_new += 1

        logger.debug(
            "variant %d scale=%g polarity=%s size=%dx%d: %d symbol(s), %d new",
            variant.index, variant.factor, polarity.value,
            binary.width, binary.height, len(symbols), n_new,
        )
        return VariantAttempt(
            variant_index=variant.index,
            scale=variant.factor,
            polarity=polarity.value,
            width=binary.width,
            height=binary.height,
            n_symbols=len(symbols),
            n_new=n_new,
        )

    def run(self, buf: PixelBuffer, cancel_event: Optional[threading.Event] = None) -> PipelineResult:
        if self.state is not PipelineState.NOT_STARTED:
            raise RuntimeError(f"orchestrator already used (state={self.state.value})")
        self.state = PipelineState.IN_PROGRESS

        cfg = self.config
        enhanced = self._enhance(buf)
        found: List[DecodedPayload] = []
        attempts: List[VariantAttempt] = []
        cancelled = False

        for variant in generate_scale_variants(enhanced, cfg.scales, min_side=cfg.min_side):
            if cancel_event is not None and cancel_event.is_set():
                cancelled = True
                break
            for polarity in self._polarities():
                attempts.append(self._try_candidate(variant, polarity, found))
                if found and not cfg.exhaustive:
                    break
            if found and not cfg.exhaustive:
                break

        if found:
            self.state = PipelineState.SUCCEEDED
            logger.info("Decoded %d unique QR code(s) after %d candidate(s)", len(found), len(attempts))
            return PipelineResult(state=self.state, payloads=found, attempts=attempts)

        self.state = PipelineState.EXHAUSTED
        reason = FailureReason.CANCELLED if cancelled else FailureReason.NO_QR_CODE_FOUND
        logger.info("No QR code decoded (%s) after %d candidate(s)", reason.value, len(attempts))
        return PipelineResult(state=self.state, failure=reason, attempts=attempts)


def read_qr_image(
    buf: PixelBuffer,
    decoder: Optional[QRDecoder] = None,
    config: Optional[PipelineConfig] = None,
    cancel_event: Optional[threading.Event] = None,
) -> PipelineResult:
    decoder = decoder if decoder is not None else get_decoder("zbar")
    return CandidateOrchestrator(decoder, config).run(buf, cancel_event=cancel_event)


def read_qr_file(
    path: Union[str, Path],
    decoder: Optional[QRDecoder] = None,
    config: Optional[PipelineConfig] = None,
    cancel_event: Optional[threading.Event] = None,
    format_hint: Optional[str] = None,
) -> PipelineResult:
    """Load an image file and run the pipeline. Load errors propagate unchanged."""
    buf = load_raster(path, format_hint=format_hint)
    logger.debug("Loaded %s (%dx%d, %d channel(s))", path, buf.width, buf.height, buf.channels)
    return read_qr_image(buf, decoder=decoder, config=config, cancel_event=cancel_event)
