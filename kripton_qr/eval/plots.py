# kripton_qr/eval/plots.py
from __future__ import annotations

from pathlib import Path

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402
import pandas as pd  # noqa: E402


def variant_hit_counts(df: pd.DataFrame) -> pd.DataFrame:
    """Unique payloads found per (scale, polarity) from a scan report."""
    ok = df[df["status"] == "ok"]
    if ok.empty:
        return pd.DataFrame(columns=["scale", "polarity", "hits"])
    counts = ok.groupby(["scale", "polarity"]).size().reset_index(name="hits")
    return counts.sort_values(["scale", "polarity"]).reset_index(drop=True)


def plot_variant_hits(df: pd.DataFrame, out_dir: Path) -> Path:
    out_dir.mkdir(parents=True, exist_ok=True)
    out_path = out_dir / "variant_hits.png"
    counts = variant_hit_counts(df)

    plt.figure()
    if counts.empty:
        plt.text(0.5, 0.5, "no QR codes decoded", ha="center", va="center")
        plt.axis("off")
    else:
        labels = [f"{s:g}x {p}" for s, p in zip(counts["scale"], counts["polarity"])]
        plt.bar(range(len(labels)), counts["hits"].values)
        plt.xticks(range(len(labels)), labels, rotation=30, ha="right")
        plt.ylabel("payloads found")
        plt.grid(True, axis="y", alpha=0.3)
    plt.title("Decoded payloads per candidate variant")
    plt.savefig(out_path, dpi=200, bbox_inches="tight")
    plt.close()
    return out_path
