"""Per-contig and assembly-wide read coverage statistics.

Contigs shorter than ``min_contig_length`` (200 bases by default) are ignored
entirely: they contribute neither to counts nor to the lengths used for the
mean coverage. Proportions are nevertheless taken over the whole assembly.
"""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple, Union

import numpy as np
import pysam
from tqdm import tqdm

from .assembly import AssemblySummary
from .errors import CoverageComputationError
from .models import ContigCoverage, CoverageStats
from .utils import open_textmaybe_gzip, safe_ratio

logger = logging.getLogger(__name__)

MIN_CONTIG_LENGTH = 200
UNCOVERED_MEAN = 1.0
LOWCOVERED_MEAN = 10.0

Depths = Union[np.ndarray, Sequence[int]]


def round_half_up(value: float, ndigits: int = 2) -> float:
    """Round with ties away from zero (0.125 -> 0.13), unlike ``round``."""
    quantum = Decimal(1).scaleb(-ndigits)
    return float(Decimal(repr(float(value))).quantize(quantum, rounding=ROUND_HALF_UP))


class CoverageAggregator:
    def __init__(self, *, min_contig_length: int = MIN_CONTIG_LENGTH) -> None:
        self.min_contig_length = int(min_contig_length)
        self.contigs: List[ContigCoverage] = []
        self.total_length = 0
        self.total_coverage = 0
        self.n_uncovered_bases = 0
        self.n_uncovered_base_contigs = 0  # any base cov < 1
        self.n_uncovered_contigs = 0  # mean cov < 1
        self.n_lowcovered_contigs = 0  # mean cov < 10

    def add_contig(self, contig: str, depths: Depths, *, length: Optional[int] = None) -> Optional[ContigCoverage]:
        """Fold one contig's per-base depths into the totals.

        ``length`` defaults to ``len(depths)`` and is only used for the
        minimum-length filter. Returns None for filtered contigs.
        """
        arr = np.asarray(depths)
        contig_len = int(length) if length is not None else int(arr.size)
        if contig_len < self.min_contig_length:
            return None
        if arr.size == 0:
            raise CoverageComputationError(f"Contig {contig} has an empty coverage array", contig=contig)
        if not np.issubdtype(arr.dtype, np.number):
            raise CoverageComputationError(f"Contig {contig} has non-numeric coverage values", contig=contig)

        total = arr.sum()
        if not np.isfinite(total) or (arr < 0).any():
            raise CoverageComputationError(f"Contig {contig} has invalid coverage values", contig=contig)

        zerocov = int(np.count_nonzero(arr < 1))
        mean = float(total) / arr.size

        self.total_length += int(arr.size)
        self.total_coverage += int(total)
        self.n_uncovered_bases += zerocov
        if zerocov > 0:
            self.n_uncovered_base_contigs += 1
        if mean < UNCOVERED_MEAN:
            self.n_uncovered_contigs += 1
        if mean < LOWCOVERED_MEAN:
            self.n_lowcovered_contigs += 1

        cc = ContigCoverage(
            contig=contig,
            length=int(arr.size),
            total_coverage=int(total),
            zero_coverage_bases=zerocov,
            mean_coverage=mean,
        )
        self.contigs.append(cc)
        return cc

    def finalize(self, *, n_bases: int, n_contigs: int) -> CoverageStats:
        """Compute proportions over the (unfiltered) assembly totals."""
        mean_coverage = round_half_up(safe_ratio(self.total_coverage, self.total_length), 2)
        return CoverageStats(
            mean_coverage=mean_coverage,
            n_uncovered_bases=self.n_uncovered_bases,
            p_uncovered_bases=safe_ratio(self.n_uncovered_bases, n_bases),
            n_uncovered_base_contigs=self.n_uncovered_base_contigs,
            p_uncovered_base_contigs=safe_ratio(self.n_uncovered_base_contigs, n_contigs),
            n_uncovered_contigs=self.n_uncovered_contigs,
            p_uncovered_contigs=safe_ratio(self.n_uncovered_contigs, n_contigs),
            n_lowcovered_contigs=self.n_lowcovered_contigs,
            p_lowcovered_contigs=safe_ratio(self.n_lowcovered_contigs, n_contigs),
            n_contigs_considered=len(self.contigs),
            contigs=list(self.contigs),
        )


def iter_bam_coverage(
    bam_path: str | Path,
    contigs: Iterable[Tuple[str, int]],
) -> Iterator[Tuple[str, int, np.ndarray]]:
    """Yield ``(contig, length, depths)`` from a sorted, indexed BAM.

    Depth is the sum of A/C/G/T counts per base with no base-quality filter.
    Contigs absent from the BAM header yield all-zero depth.
    """
    with pysam.AlignmentFile(str(bam_path), "rb") as bam:
        refs = set(bam.references)
        for contig, length in contigs:
            if contig not in refs:
                yield contig, length, np.zeros(length, dtype=np.int64)
                continue
            acgt = bam.count_coverage(contig, 0, length, quality_threshold=0, read_callback="all")
            depths = np.sum(np.asarray(acgt, dtype=np.int64), axis=0)
            yield contig, length, depths


def analyse_coverage(
    bam_path: str | Path,
    assembly: AssemblySummary,
    *,
    min_contig_length: int = MIN_CONTIG_LENGTH,
    progress: bool = False,
) -> CoverageStats:
    agg = CoverageAggregator(min_contig_length=min_contig_length)
    eligible = [(c, n) for c, n in assembly.contig_lengths.items() if n >= min_contig_length]
    logger.info(
        "Computing coverage for %d/%d contigs >= %d bp",
        len(eligible),
        assembly.n_contigs,
        min_contig_length,
    )

    it: Iterable[Tuple[str, int, np.ndarray]] = iter_bam_coverage(bam_path, eligible)
    if progress:
        it = tqdm(it, total=len(eligible), unit="contig", desc="Coverage")
    for contig, length, depths in it:
        agg.add_contig(contig, depths, length=length)

    return agg.finalize(n_bases=assembly.n_bases, n_contigs=assembly.n_contigs)


def write_contig_coverage(path: str | Path, stats: CoverageStats) -> None:
    with open_textmaybe_gzip(path, "wt") as fh:
        fh.write("contig\tlength\ttotal_coverage\tzero_coverage_bases\tmean_coverage\n")
        for c in stats.contigs:
            fh.write(
                f"{c.contig}\t{c.length}\t{c.total_coverage}\t"
                f"{c.zero_coverage_bases}\t{c.mean_coverage:.4f}\n"
            )
