# kripton_qr/qr/cli_common.py
from __future__ import annotations

import argparse
import logging
from typing import Tuple

from ..utils.qr_decode import DECODER_NAMES
from .pipeline import PipelineConfig


def parse_scales(s: str) -> Tuple[float, ...]:
    try:
        out = tuple(float(x) for x in s.split(",") if x.strip())
    except ValueError:
        raise argparse.ArgumentTypeError(f"scales must be comma-separated numbers, got {s!r}") from None
    if not out:
        raise argparse.ArgumentTypeError("at least one scale factor is required")
    return out


def add_pipeline_args(ap: argparse.ArgumentParser) -> None:
    defaults = PipelineConfig()
    ap.add_argument("--config_json", type=str, default="", help="JSON file with PipelineConfig fields (CLI flags override it)")
    ap.add_argument("--decoder", type=str, default="zbar", choices=list(DECODER_NAMES))
    ap.add_argument("--block_size", type=int, default=None, help=f"Threshold block side in px (default {defaults.block_size})")
    ap.add_argument("--bias", type=float, default=None, help=f"Threshold bias below the local mean (default {defaults.bias})")
    ap.add_argument("--method", type=str, default=None, choices=["block", "window"])
    ap.add_argument("--min_contrast", type=int, default=None, help=f"Blocks flatter than this use their neighbours' mean (default {defaults.min_block_contrast}, 0 = off)")
    ap.add_argument("--scales", type=parse_scales, default=None, help="e.g. 1.0,1.5,0.8")
    ap.add_argument("--min_side", type=int, default=None)
    ap.add_argument("--exhaustive", action="store_true", help="Try every variant and collect all unique payloads")
    ap.add_argument("--no_inverted", action="store_true", help="Skip the light-on-dark thresholding pass")
    ap.add_argument("--no_equalize", action="store_true", help="Skip histogram equalization")
    ap.add_argument("--log_level", type=str, default="WARNING", choices=["DEBUG", "INFO", "WARNING", "ERROR"])


def config_from_args(args: argparse.Namespace) -> PipelineConfig:
    base = PipelineConfig.from_json(args.config_json) if args.config_json else PipelineConfig()
    d = base.to_dict()
    overrides = {
        "block_size": args.block_size,
        "bias": args.bias,
        "threshold_method": args.method,
        "min_block_contrast": args.min_contrast,
        "scales": args.scales,
        "min_side": args.min_side,
    }
    d.update({k: v for k, v in overrides.items() if v is not None})
    if args.exhaustive:
        d["exhaustive"] = True
    if args.no_inverted:
        d["try_inverted"] = False
    if args.no_equalize:
        d["enhance_contrast"] = False
    return PipelineConfig.from_dict(d)


def setup_logging(level: str) -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.WARNING), format="%(levelname)s %(name)s: %(message)s")
