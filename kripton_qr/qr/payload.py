# kripton_qr/qr/payload.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from ..errors import NoQRCodeFound


class PipelineState(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"

    @property
    def is_terminal(self) -> bool:
        return self in (PipelineState.SUCCEEDED, PipelineState.EXHAUSTED)


class FailureReason(str, Enum):
    NO_QR_CODE_FOUND = "no_qr_code_found"
    CANCELLED = "cancelled"


@dataclass(eq=False)
class DecodedPayload:
    """Decoded symbol content plus the candidate that produced it.

    Content is held in a bytearray so it can be overwritten in place by zeroize().
    """

    data: bytearray
    scale: float
    polarity: str
    variant_index: int
    decoder: str = ""

    @property
    def text(self) -> str:
        return bytes(self.data).decode("utf-8", errors="replace")

    @property
    def is_cleared(self) -> bool:
        return len(self.data) == 0

    def same_content(self, other: bytes | bytearray) -> bool:
        return self.data == other

    def zeroize(self) -> None:
        for i in range(len(self.data)):
            self.data[i] = 0
        self.data.clear()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "payload": self.text,
            "scale": self.scale,
            "polarity": self.polarity,
            "variant_index": self.variant_index,
            "decoder": self.decoder,
        }


@dataclass(frozen=True)
class VariantAttempt:
    variant_index: int
    scale: float
    polarity: str
    width: int
    height: int
    n_symbols: int
    n_new: int


@dataclass(eq=False)
class PipelineResult:
    """Sole output of the pipeline: payloads on success, a failure reason otherwise.

    Use as a context manager (or call clear()) to overwrite payload content once
    the caller is done with it.
    """

    state: PipelineState
    payloads: List[DecodedPayload] = field(default_factory=list)
    failure: Optional[FailureReason] = None
    attempts: List[VariantAttempt] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.state is PipelineState.SUCCEEDED

    @property
    def texts(self) -> List[str]:
        return [p.text for p in self.payloads]

    def raise_for_failure(self) -> "PipelineResult":
        if not self.ok:
            reason = self.failure.value if self.failure else FailureReason.NO_QR_CODE_FOUND.value
            raise NoQRCodeFound(attempts=len(self.attempts), reason=reason)
        return self

    def clear(self) -> None:
        for p in self.payloads:
            p.zeroize()

    def __enter__(self) -> "PipelineResult":
        return self

    def __exit__(self, *exc) -> None:
        self.clear()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "state": self.state.value,
            "failure": self.failure.value if self.failure else None,
            "payloads": [p.to_dict() for p in self.payloads],
            "attempts": len(self.attempts),
        }
