# kripton_qr/qr/scan_dir.py
from __future__ import annotations

"""Batch QR reading over a directory of images.

Every image runs through the full pipeline independently, so --workers > 1
spreads images over a process pool.

Example:
  python -m kripton_qr.qr.scan_dir \
    --scan_dir data/photos \
    --out_csv reports/scan.csv \
    --exhaustive \
    --workers 4 \
    --plot_dir reports/plots
"""

import argparse
from concurrent.futures import ProcessPoolExecutor, as_completed
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd
from tqdm.auto import tqdm

from ..errors import QRReaderError
from ..eval.plots import plot_variant_hits
from ..image.raster import SUPPORTED_EXTENSIONS
from ..utils.qr_decode import get_decoder
from .cli_common import add_pipeline_args, config_from_args, setup_logging
from .pipeline import PipelineConfig, read_qr_file

REPORT_COLUMNS = [
    "path",
    "status",
    "payload_index",
    "payload",
    "scale",
    "polarity",
    "variant_index",
    "error",
]


def list_images(scan_dir: Path, recursive: bool = False) -> List[Path]:
    """Supported image files under scan_dir, sorted by path."""
    if not scan_dir.is_dir():
        raise NotADirectoryError(f"Not a directory: {scan_dir}")
    it = scan_dir.rglob("*") if recursive else scan_dir.iterdir()
    return sorted(p for p in it if p.is_file() and p.suffix.lower() in SUPPORTED_EXTENSIONS)


def scan_one(path: str, config: Dict[str, Any], decoder_name: str) -> List[Dict[str, Any]]:
    """Run one image and flatten the outcome into report rows.

    Takes plain values so it can run in a worker process.
    """
    cfg = PipelineConfig.from_dict(config)
    try:
        result = read_qr_file(path, decoder=get_decoder(decoder_name), config=cfg)
    except QRReaderError as e:
        return [{"path": path, "status": "error", "error": f"{type(e).__name__}: {e}"}]

    with result:
        if not result.ok:
            return [{"path": path, "status": result.failure.value, "error": ""}]
        return [
            {
                "path": path,
                "status": "ok",
                "payload_index": i,
                "payload": p.text,
                "scale": p.scale,
                "polarity": p.polarity,
                "variant_index": p.variant_index,
                "error": "",
            }
            for i, p in enumerate(result.payloads)
        ]


def scan_paths(
    paths: List[Path],
    config: PipelineConfig,
    decoder_name: str = "zbar",
    workers: int = 1,
    progress: bool = True,
) -> pd.DataFrame:
    cfg_dict = config.to_dict()
    rows: List[Dict[str, Any]] = []

    if workers <= 1:
        it = tqdm(paths, desc="Scan QR", unit="img", disable=not progress)
        for p in it:
            rows.extend(scan_one(str(p), cfg_dict, decoder_name))
            it.set_postfix(rows=len(rows))
    else:
        with ProcessPoolExecutor(max_workers=workers) as ex:
            futs = [ex.submit(scan_one, str(p), cfg_dict, decoder_name) for p in paths]
            for fut in tqdm(as_completed(futs), total=len(futs), desc="Scan QR", unit="img", disable=not progress):
                rows.extend(fut.result())

    df = pd.DataFrame(rows, columns=REPORT_COLUMNS)
    # completion order differs between workers; keep the report stable
    df = df.sort_values(["path", "payload_index"], na_position="first", kind="stable").reset_index(drop=True)
    return df


def summarize(df: pd.DataFrame) -> Dict[str, int]:
    per_file = df.groupby("path")["status"].first()
    return {
        "images": int(per_file.shape[0]),
        "decoded_images": int((per_file == "ok").sum()),
        "payloads": int((df["status"] == "ok").sum()),
        "errors": int((per_file == "error").sum()),
    }


def main(argv: Optional[List[str]] = None) -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--scan_dir", type=str, required=True, help="Folder with images")
    ap.add_argument("--out_csv", type=str, required=True)
    ap.add_argument("--recursive", action="store_true", help="Include images in subfolders")
    ap.add_argument("--workers", type=int, default=1, help="Process pool size (1 = in-process)")
    ap.add_argument("--plot_dir", type=str, default="", help="If set, save a per-scale hit chart here")
    ap.add_argument("--no_progress", action="store_true")
    add_pipeline_args(ap)
    args = ap.parse_args(argv)

    setup_logging(args.log_level)
    cfg = config_from_args(args)
    # fail early on a bad decoder setup rather than once per image
    get_decoder(args.decoder)

    scan_dir = Path(args.scan_dir)
    if not scan_dir.is_dir():
        raise SystemExit(f"Scan directory does not exist: {scan_dir}")
    paths = list_images(scan_dir, recursive=args.recursive)
    if not paths:
        raise SystemExit(f"No supported image files found under {scan_dir} (supported: {sorted(SUPPORTED_EXTENSIONS)})")
    print(f"[SCAN] Found {len(paths)} images under {scan_dir}")

    df = scan_paths(paths, cfg, decoder_name=args.decoder, workers=args.workers, progress=not args.no_progress)

    for _, r in df[df["status"] == "error"].iterrows():
        print(f"[WARN] {Path(r['path']).name}: {r['error']}")

    out_csv = Path(args.out_csv)
    out_csv.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(out_csv, index=False)

    s = summarize(df)
    print(f"[OK] Saved: {out_csv}")
    print(f"Images: {s['images']}  decoded: {s['decoded_images']}  payloads: {s['payloads']}  errors: {s['errors']}")

    if args.plot_dir:
        out_png = plot_variant_hits(df, Path(args.plot_dir))
        print(f"[OK] Plot: {out_png}")


if __name__ == "__main__":
    main()
