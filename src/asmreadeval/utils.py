from __future__ import annotations

import gzip
import json
import logging
from pathlib import Path
from typing import Any, TextIO

logger = logging.getLogger(__name__)

FASTQ_LINES_PER_RECORD = 4


def ensure_outdir(path: str | Path) -> Path:
    p = Path(path)
    p.mkdir(parents=True, exist_ok=True)
    return p


def open_textmaybe_gzip(path: str | Path, mode: str = "rt") -> TextIO:
    p = str(path)
    if p.endswith(".gz"):
        return gzip.open(p, mode)  # type: ignore[return-value]
    return open(p, mode)


def write_json(path: str | Path, obj: Any) -> None:
    with open(path, "wt", encoding="utf-8") as f:
        json.dump(obj, f, indent=2, sort_keys=True)


def count_lines(path: str | Path) -> int:
    """Count newline-terminated lines (a missing final newline still counts)."""
    n = 0
    with open_textmaybe_gzip(path, "rt") as fh:
        for _ in fh:
            n += 1
    return n


def count_fastq_records(path: str | Path) -> int:
    return count_lines(path) // FASTQ_LINES_PER_RECORD


def safe_ratio(numerator: float, denominator: float) -> float:
    if denominator == 0:
        return 0.0
    return numerator / denominator
