from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict

import pysam

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AssemblySummary:
    """Contig names and lengths of an assembly FASTA, in file order."""

    path: str
    contig_lengths: Dict[str, int]

    @property
    def n_contigs(self) -> int:
        return len(self.contig_lengths)

    @property
    def n_bases(self) -> int:
        return sum(self.contig_lengths.values())


def ensure_faidx(fasta: str | Path) -> Path:
    """Ensure the FASTA has a .fai index and return its path."""
    fasta = Path(fasta)
    fai = fasta.with_suffix(fasta.suffix + ".fai")
    if fai.exists():
        return fai
    logger.info("Creating FASTA index: %s", fai)
    pysam.faidx(str(fasta))
    return fai


def load_assembly(fasta: str | Path) -> AssemblySummary:
    fasta = Path(fasta).expanduser().resolve()
    if not fasta.exists():
        raise FileNotFoundError(f"Assembly FASTA not found: {fasta}")
    ensure_faidx(fasta)
    with pysam.FastaFile(str(fasta)) as fa:
        lengths = {name: int(length) for name, length in zip(fa.references, fa.lengths)}
    if not lengths:
        raise ValueError(f"Assembly FASTA has no sequences: {fasta}")
    logger.info("Assembly %s: %d contigs, %d bases", fasta.name, len(lengths), sum(lengths.values()))
    return AssemblySummary(path=str(fasta), contig_lengths=lengths)
