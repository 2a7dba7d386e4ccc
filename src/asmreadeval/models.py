from __future__ import annotations

import enum
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, NamedTuple, Optional

UNMAPPED_CONTIG = "*"


@dataclass(frozen=True)
class AlignmentRecord:
    """One decoded SAM alignment line.

    Positions are 1-based as in SAM; an unmapped read has ``position == 0``
    and ``contig_id == "*"``.

    Attributes
    ----------
    read_id:
        Query template name (QNAME).
    contig_id:
        Reference contig name (RNAME) or ``"*"``.
    position:
        1-based leftmost mapping position (POS).
    sequence_length:
        Length of the read sequence (SEQ, or the CIGAR query length when SEQ is ``*``).
    is_paired:
        Template has multiple segments (0x1).
    is_primary:
        Neither secondary (0x100) nor supplementary (0x800).
    is_unmapped:
        Read unmapped (0x4).
    mate_unmapped:
        Mate unmapped (0x8).
    properly_paired:
        Mapper reported a proper pair (0x2).
    on_reverse_strand / mate_on_reverse_strand:
        Strand bits 0x10 / 0x20.
    flag:
        Raw FLAG bitfield.
    mate_contig_id / mate_position:
        RNEXT (``"="`` resolved to ``contig_id``) and PNEXT.
    """

    read_id: str
    contig_id: str
    position: int
    sequence_length: int
    is_primary: bool
    is_unmapped: bool
    mate_unmapped: bool
    properly_paired: bool
    on_reverse_strand: bool
    mate_on_reverse_strand: bool
    flag: int = 0
    is_paired: bool = True
    mate_contig_id: str = UNMAPPED_CONTIG
    mate_position: int = 0

    @property
    def is_mapped(self) -> bool:
        return not self.is_unmapped and self.contig_id != UNMAPPED_CONTIG

    @property
    def both_mapped(self) -> bool:
        return self.is_mapped and not self.mate_unmapped

    @property
    def pair_opposite_strands(self) -> bool:
        return self.on_reverse_strand != self.mate_on_reverse_strand


class MappingClass(str, enum.Enum):
    GOOD = "good"
    BAD = "bad"
    SKIPPED = "skipped"


class PairBranch(str, enum.Enum):
    """Deepest classification branch a read or pair reached."""

    PROPER_PAIR = "proper_pair"
    OVERLAP = "overlap"
    FRAGMENT = "fragment"
    ORIENTATION_FAIL = "orientation_fail"
    SINGLE = "single"
    HALF_MAPPED = "half_mapped"


@dataclass(frozen=True)
class PairOutcome:
    mapping_class: MappingClass
    branch: PairBranch

    @property
    def is_good(self) -> bool:
        return self.mapping_class is MappingClass.GOOD

    @property
    def is_bad(self) -> bool:
        return self.mapping_class is MappingClass.BAD


@dataclass
class RunningCounters:
    """Mutable tallies for one classification run.

    ``singles``, ``secondary_skipped``, ``dangling_mates`` and
    ``mate_name_mismatches`` are informational and never feed
    ``total``/``good``/``bad``.
    """

    total: int = 0
    good: int = 0
    bad: int = 0
    both_mapped: int = 0
    properly_paired: int = 0
    improperly_paired: int = 0
    same_contig: int = 0
    realistic_overlap: int = 0
    unrealistic_overlap: int = 0
    realistic_fragment: int = 0
    unrealistic_fragment: int = 0
    proper_orientation: int = 0
    improper_orientation: int = 0
    singles: int = 0
    secondary_skipped: int = 0
    dangling_mates: int = 0
    mate_name_mismatches: int = 0

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)


class BridgeKey(NamedTuple):
    """Unordered contig pair, stored with ``contig_a <= contig_b``."""

    contig_a: str
    contig_b: str

    @classmethod
    def of(cls, first: str, second: str) -> "BridgeKey":
        if second < first:
            first, second = second, first
        return cls(first, second)

    def __str__(self) -> str:
        return f"{self.contig_a}<>{self.contig_b}"


@dataclass(frozen=True)
class SupportedBridge:
    contig_a: str
    contig_b: str
    support: int


@dataclass(frozen=True)
class BridgeSummary:
    bridges: List[SupportedBridge]
    n_supported: int
    table_path: Optional[str] = None


@dataclass(frozen=True)
class ContigCoverage:
    """Coverage summary for one contig that passed the length filter."""

    contig: str
    length: int
    total_coverage: int
    zero_coverage_bases: int
    mean_coverage: float


@dataclass(frozen=True)
class CoverageStats:
    """Assembly-wide coverage statistics.

    Contig-level proportions are over the unfiltered assembly contig count and
    base-level proportions over the unfiltered assembly base count.
    """

    mean_coverage: float
    n_uncovered_bases: int
    p_uncovered_bases: float
    n_uncovered_base_contigs: int
    p_uncovered_base_contigs: float
    n_uncovered_contigs: int
    p_uncovered_contigs: float
    n_lowcovered_contigs: int
    p_lowcovered_contigs: float
    n_contigs_considered: int
    contigs: List[ContigCoverage] = field(default_factory=list)


@dataclass(frozen=True)
class ReadMappingReport:
    """Published read-mapping result for one assembly."""

    num_reads: int
    num_pairs: int
    total_mappings: int
    percent_mapping: float
    good_mappings: int
    good_mapping_proportion: float
    good_mapping_percent: float
    bad_mappings: int
    potential_bridges: int
    mean_coverage: float
    n_uncovered_bases: int
    p_uncovered_bases: float
    n_uncovered_base_contigs: int
    p_uncovered_base_contigs: float
    n_uncovered_contigs: int
    p_uncovered_contigs: float
    n_lowcovered_contigs: int
    p_lowcovered_contigs: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ReadSources:
    """Validated read inputs: a left/right pair, unpaired reads, or both."""

    left: Optional[Path] = None
    right: Optional[Path] = None
    unpaired: Optional[Path] = None

    @property
    def paired(self) -> bool:
        return self.left is not None and self.right is not None

    def label(self) -> str:
        parts = [p.name for p in (self.left, self.right, self.unpaired) if p is not None]
        return ".".join(parts)
