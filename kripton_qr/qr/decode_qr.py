# kripton_qr/qr/decode_qr.py
from __future__ import annotations

"""Decode the QR code(s) in a single image.

Example:
  python -m kripton_qr.qr.decode_qr photo.jpg --exhaustive
  python -m kripton_qr.qr.decode_qr photo.jpg --json --decoder opencv
"""

import argparse
import json
import sys
from typing import List, Optional

from ..errors import QRReaderError
from ..utils.qr_decode import get_decoder
from .cli_common import add_pipeline_args, config_from_args, setup_logging
from .pipeline import read_qr_file

EXIT_OK = 0
EXIT_NO_QR = 1
EXIT_LOAD_ERROR = 2


def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser()
    ap.add_argument("image_path", type=str, help="Path to a PNG/JPEG/BMP/GIF/WebP image")
    ap.add_argument("--format", type=str, default="", help="Expected container format (default: detect)")
    ap.add_argument("--json", action="store_true", help="Print the result as JSON")
    add_pipeline_args(ap)
    args = ap.parse_args(argv)

    setup_logging(args.log_level)
    cfg = config_from_args(args)
    decoder = get_decoder(args.decoder)

    try:
        result = read_qr_file(args.image_path, decoder=decoder, config=cfg, format_hint=args.format or None)
    except QRReaderError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return EXIT_LOAD_ERROR

    with result:
        if args.json:
            print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
        elif not result.ok:
            print("No QR code could be decoded from the selected image.")
            print(f"Tried {len(result.attempts)} different candidates.")
        else:
            print(f"{len(result.payloads)} unique QR code(s) successfully decoded!")
            for i, p in enumerate(result.payloads, start=1):
                print(f"--- QR Code {i} ---")
                print(f"Scale: {p.scale:g} ({p.polarity})")
                print(f"Content: {p.text}")
        return EXIT_OK if result.ok else EXIT_NO_QR


if __name__ == "__main__":
    sys.exit(main())
