from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Sequence

import matplotlib.pyplot as plt
import numpy as np

logger = logging.getLogger(__name__)


def plot_mapping_classes(
    *,
    counters: Dict[str, int],
    out_png: str | Path,
    title: str = "Read pair mappings",
) -> None:
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    labels = ["Good", "Bad", "Single"]
    values = [
        int(counters.get("good", 0)),
        int(counters.get("bad", 0)),
        int(counters.get("singles", 0)),
    ]

    plt.figure()
    plt.bar(labels, values)
    plt.ylabel("Count")
    plt.title(title)
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()


def plot_pair_branches(
    *,
    counters: Dict[str, int],
    out_png: str | Path,
    title: str = "Classification branches",
) -> None:
    """Horizontal bar chart of the per-branch pair counters."""
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    keys = [
        "properly_paired",
        "improperly_paired",
        "same_contig",
        "realistic_overlap",
        "unrealistic_overlap",
        "realistic_fragment",
        "unrealistic_fragment",
        "proper_orientation",
        "improper_orientation",
    ]
    values = [int(counters.get(k, 0)) for k in keys]
    labels = [k.replace("_", " ") for k in keys]

    plt.figure(figsize=(7, 4))
    plt.barh(range(len(keys)), values)
    plt.yticks(range(len(keys)), labels)
    plt.gca().invert_yaxis()
    plt.xlabel("Read pairs")
    plt.title(title)
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()


def plot_contig_coverage_hist(
    *,
    mean_coverages: Sequence[float],
    out_png: str | Path,
    title: str = "Mean coverage per contig",
    nbins: int = 50,
) -> None:
    """Histogram of per-contig mean coverage on a log1p scale."""
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    values: List[float] = [float(x) for x in mean_coverages]

    plt.figure()
    if values:
        plt.hist(np.log1p(values), bins=nbins)
    plt.xlabel("log(1 + mean coverage)")
    plt.ylabel("Contig count")
    plt.title(title)
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()
