"""Read-mapping metrics for an assembly.

Reads are mapped back onto the assembly with bowtie2, the resulting SAM is
streamed through the pair classifier, and per-base coverage is summarised from
a sorted BAM. Everything is reduced into a single ``ReadMappingReport``.
"""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from .assembly import AssemblySummary, load_assembly
from .bridges import SUPPORTED_BRIDGES_FILENAME
from .classifier import (
    DEFAULT_INSERT_SD,
    DEFAULT_INSERT_SIZE,
    ClassificationResult,
    classify_sam,
    realistic_distance,
)
from .coverage import MIN_CONTIG_LENGTH, analyse_coverage, write_contig_coverage
from .mapper import map_reads, sam_to_sorted_indexed_bam
from .models import BridgeSummary, CoverageStats, ReadMappingReport, ReadSources, RunningCounters
from .utils import count_fastq_records, ensure_outdir, safe_ratio, write_json
from .validation import resolve_read_sources

logger = logging.getLogger(__name__)

SUMMARY_FILENAME = "read_metrics.json"
CONTIG_COVERAGE_FILENAME = "contig_coverage.tsv.gz"


@dataclass
class ReadMetricsResult:
    report: ReadMappingReport
    counters: RunningCounters
    bridges: BridgeSummary
    coverage: CoverageStats
    outputs: Dict[str, str] = field(default_factory=dict)
    params: Dict[str, Any] = field(default_factory=dict)
    runtime_seconds: float = 0.0

    def to_summary(self) -> Dict[str, Any]:
        return {
            "read_stats": self.report.to_dict(),
            "counters": self.counters.as_dict(),
            "supported_bridges": [asdict(b) for b in self.bridges.bridges],
            "coverage": {
                "n_contigs_considered": self.coverage.n_contigs_considered,
                "mean_coverage": self.coverage.mean_coverage,
            },
            "params": self.params,
            "outputs": self.outputs,
            "runtime_seconds": self.runtime_seconds,
        }


def count_reads(reads: ReadSources) -> Tuple[int, int]:
    """Return ``(num_reads, num_pairs)`` from FASTQ line counts."""
    num_pairs = count_fastq_records(reads.left) if reads.paired else 0
    num_reads = num_pairs * 2
    if reads.unpaired is not None:
        num_reads += count_fastq_records(reads.unpaired)
    return num_reads, num_pairs


def build_report(
    *,
    num_reads: int,
    num_pairs: int,
    counters: RunningCounters,
    bridges: BridgeSummary,
    coverage: CoverageStats,
) -> ReadMappingReport:
    if num_pairs == 0:
        logger.warning("No read pairs counted; pair-based proportions are reported as 0.")
    good_proportion = safe_ratio(counters.good, num_pairs)
    return ReadMappingReport(
        num_reads=num_reads,
        num_pairs=num_pairs,
        total_mappings=counters.total,
        percent_mapping=safe_ratio(counters.total, num_pairs) * 100.0,
        good_mappings=counters.good,
        good_mapping_proportion=good_proportion,
        good_mapping_percent=good_proportion * 100.0,
        bad_mappings=counters.bad,
        potential_bridges=bridges.n_supported,
        mean_coverage=coverage.mean_coverage,
        n_uncovered_bases=coverage.n_uncovered_bases,
        p_uncovered_bases=coverage.p_uncovered_bases,
        n_uncovered_base_contigs=coverage.n_uncovered_base_contigs,
        p_uncovered_base_contigs=coverage.p_uncovered_base_contigs,
        n_uncovered_contigs=coverage.n_uncovered_contigs,
        p_uncovered_contigs=coverage.p_uncovered_contigs,
        n_lowcovered_contigs=coverage.n_lowcovered_contigs,
        p_lowcovered_contigs=coverage.p_lowcovered_contigs,
    )


def analyse_alignments(
    *,
    sam_path: str | Path,
    assembly: str | Path | AssemblySummary,
    outdir: str | Path,
    num_reads: int = 0,
    num_pairs: int = 0,
    insert_size: float = DEFAULT_INSERT_SIZE,
    insert_sd: float = DEFAULT_INSERT_SD,
    pairing: str = "adjacent",
    strict: bool = True,
    min_contig_length: int = MIN_CONTIG_LENGTH,
    threads: int = 1,
    progress: bool = True,
    resume: bool = False,
) -> ReadMetricsResult:
    """Classify an existing SAM and summarise coverage; no mapping is done."""
    t0 = time.time()
    outdir_path = ensure_outdir(outdir)
    asm = assembly if isinstance(assembly, AssemblySummary) else load_assembly(assembly)

    bridges_path = outdir_path / SUPPORTED_BRIDGES_FILENAME
    classification: ClassificationResult = classify_sam(
        sam_path,
        insert_size=insert_size,
        insert_sd=insert_sd,
        pairing=pairing,
        strict=strict,
        bridges_path=bridges_path,
        progress=progress,
        contig_lengths=asm.contig_lengths,
    )

    sorted_bam = sam_to_sorted_indexed_bam(sam_path, threads=threads, resume=resume)
    coverage = analyse_coverage(sorted_bam, asm, min_contig_length=min_contig_length, progress=progress)
    contig_cov_path = outdir_path / CONTIG_COVERAGE_FILENAME
    write_contig_coverage(contig_cov_path, coverage)

    report = build_report(
        num_reads=num_reads,
        num_pairs=num_pairs,
        counters=classification.counters,
        bridges=classification.bridges,
        coverage=coverage,
    )

    result = ReadMetricsResult(
        report=report,
        counters=classification.counters,
        bridges=classification.bridges,
        coverage=coverage,
        outputs={
            "sam": str(sam_path),
            "sorted_bam": str(sorted_bam),
            "supported_bridges": str(bridges_path),
            "contig_coverage": str(contig_cov_path),
            "summary": str(outdir_path / SUMMARY_FILENAME),
        },
        params={
            "assembly": asm.path,
            "insert_size": insert_size,
            "insert_sd": insert_sd,
            "realistic_distance": classification.realistic_distance,
            "pairing": pairing,
            "strict": bool(strict),
            "min_contig_length": int(min_contig_length),
            "records_read": classification.records_read,
            "truncated_lines": classification.truncated_lines,
            "skipped_malformed": classification.skipped_malformed,
        },
        runtime_seconds=float(time.time() - t0),
    )
    write_json(outdir_path / SUMMARY_FILENAME, result.to_summary())
    return result


def run_read_metrics(
    *,
    assembly: str | Path,
    outdir: str | Path,
    left: Optional[str | Path] = None,
    right: Optional[str | Path] = None,
    unpaired: Optional[str | Path] = None,
    insert_size: float = DEFAULT_INSERT_SIZE,
    insert_sd: float = DEFAULT_INSERT_SD,
    threads: int = 8,
    pairing: str = "adjacent",
    strict: bool = True,
    min_contig_length: int = MIN_CONTIG_LENGTH,
    progress: bool = True,
    resume: bool = False,
) -> ReadMetricsResult:
    """Map reads onto the assembly and compute all read-mapping metrics.

    Raises
    ------
    MissingInputError
        If neither a left/right pair nor unpaired reads were supplied.
    NoAlignments
        If bowtie2 produced an empty SAM.
    """
    t0 = time.time()
    reads = resolve_read_sources(left, right, unpaired)
    asm = load_assembly(assembly)
    outdir_path = ensure_outdir(outdir)

    num_reads, num_pairs = count_reads(reads)
    logger.info("Counted %d reads (%d pairs)", num_reads, num_pairs)

    mapping = map_reads(
        assembly_fa=asm.path,
        reads=reads,
        outdir=outdir_path / "mapping",
        max_insert=int(realistic_distance(insert_size, insert_sd)),
        threads=threads,
        resume=resume,
    )

    result = analyse_alignments(
        sam_path=str(mapping["sam"]),
        assembly=asm,
        outdir=outdir_path,
        num_reads=num_reads,
        num_pairs=num_pairs,
        insert_size=insert_size,
        insert_sd=insert_sd,
        pairing=pairing,
        strict=strict,
        min_contig_length=min_contig_length,
        threads=threads,
        progress=progress,
        resume=resume,
    )
    result.params["threads"] = int(threads)
    result.params["reads"] = {k: str(v) if v is not None else None for k, v in asdict(reads).items()}
    result.params["cmd_bowtie2"] = mapping["cmd_bowtie2"]
    result.runtime_seconds = float(time.time() - t0)
    write_json(outdir_path / SUMMARY_FILENAME, result.to_summary())
    return result
