"""Read-pair plausibility classification.

Each primary read pair is classified as a good or bad mapping:

- properly paired (as reported by the mapper): good if mates are on opposite strands;
- improperly paired, same contig: the mates must overlap (start positions closer
  than one read length) and then be on opposite strands;
- improperly paired, different contigs: both mates must sit close enough to a
  contig end that the fragment could span the two contigs. Such pairs are good
  and count as evidence for a bridge between the contigs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional, Set

from tqdm import tqdm

from .bridges import BridgeLedger
from .errors import NoAlignments, UnknownContig
from .models import (
    AlignmentRecord,
    BridgeSummary,
    MappingClass,
    PairBranch,
    PairOutcome,
    RunningCounters,
)
from .sam import SamCursor, open_sam

logger = logging.getLogger(__name__)

PAIRING_MODES = ("adjacent", "by_name")

DEFAULT_INSERT_SIZE = 200
DEFAULT_INSERT_SD = 50


def realistic_distance(insert_size: float, insert_sd: float) -> float:
    return insert_size + 3 * insert_sd


@dataclass
class ClassificationResult:
    counters: RunningCounters
    bridges: BridgeSummary
    realistic_distance: float
    pairing: str
    records_read: int = 0
    truncated_lines: int = 0
    skipped_malformed: int = 0
    contig_lengths: Dict[str, int] = field(default_factory=dict)


class PairClassifier:
    """Classify read pairs and accumulate counters plus bridge evidence.

    One instance owns one run's ``RunningCounters`` and ``BridgeLedger``.

    Parameters
    ----------
    insert_size, insert_sd:
        Library fragment size and its standard deviation; the realistic
        distance is ``insert_size + 3 * insert_sd``.
    contig_lengths:
        Contig lengths (usually from the SAM ``@SQ`` header, completed from
        the assembly). A cross-contig pair on a contig missing here raises
        ``UnknownContig``.
    ledger:
        Bridge ledger to record into (a fresh one by default).
    """

    def __init__(
        self,
        *,
        insert_size: float = DEFAULT_INSERT_SIZE,
        insert_sd: float = DEFAULT_INSERT_SD,
        contig_lengths: Optional[Mapping[str, int]] = None,
        ledger: Optional[BridgeLedger] = None,
    ) -> None:
        if insert_size < 0 or insert_sd < 0:
            raise ValueError("insert_size and insert_sd must be >= 0")
        self.realistic_distance = realistic_distance(insert_size, insert_sd)
        self.contig_lengths: Dict[str, int] = dict(contig_lengths or {})
        self.counters = RunningCounters()
        self.ledger = ledger if ledger is not None else BridgeLedger()

    def _contig_length(self, rec: AlignmentRecord) -> int:
        try:
            return self.contig_lengths[rec.contig_id]
        except KeyError:
            raise UnknownContig(
                f"No length known for contig {rec.contig_id!r} (read {rec.read_id})",
                contig=rec.contig_id,
            ) from None

    def check_single(self, rec: AlignmentRecord) -> PairOutcome:
        """Template that is unpaired or has an unmapped read: tallied in ``singles`` only."""
        self.counters.singles += 1
        return PairOutcome(MappingClass.SKIPPED, PairBranch.SINGLE)

    def classify_pair(self, left: AlignmentRecord, right: AlignmentRecord) -> PairOutcome:
        c = self.counters
        if not (left.both_mapped and right.is_mapped):
            return PairOutcome(MappingClass.SKIPPED, PairBranch.HALF_MAPPED)

        c.total += 1
        c.both_mapped += 1
        if left.properly_paired:
            c.properly_paired += 1
            return self.check_orientation(left, right, branch=PairBranch.PROPER_PAIR)

        c.improperly_paired += 1
        if left.contig_id == right.contig_id:
            c.same_contig += 1
            return self.check_overlap_plausibility(left, right)
        return self.check_fragment_plausibility(left, right)

    def check_orientation(
        self,
        left: AlignmentRecord,
        right: AlignmentRecord,
        *,
        branch: PairBranch = PairBranch.PROPER_PAIR,
    ) -> PairOutcome:
        c = self.counters
        if left.pair_opposite_strands:
            c.proper_orientation += 1
            c.good += 1
            return PairOutcome(MappingClass.GOOD, branch)
        c.improper_orientation += 1
        c.bad += 1
        return PairOutcome(MappingClass.BAD, PairBranch.ORIENTATION_FAIL)

    def check_overlap_plausibility(self, left: AlignmentRecord, right: AlignmentRecord) -> PairOutcome:
        c = self.counters
        if abs(left.position - right.position) < left.sequence_length:
            c.realistic_overlap += 1
            return self.check_orientation(left, right, branch=PairBranch.OVERLAP)
        c.unrealistic_overlap += 1
        c.bad += 1
        return PairOutcome(MappingClass.BAD, PairBranch.OVERLAP)

    def check_fragment_plausibility(self, left: AlignmentRecord, right: AlignmentRecord) -> PairOutcome:
        c = self.counters
        ldist = min(left.position, self._contig_length(left) - left.position)
        rdist = min(right.position, self._contig_length(right) - right.position)
        if ldist + rdist <= self.realistic_distance:
            self.ledger.record(left.contig_id, right.contig_id)
            c.realistic_fragment += 1
            c.good += 1
            return PairOutcome(MappingClass.GOOD, PairBranch.FRAGMENT)
        c.unrealistic_fragment += 1
        c.bad += 1
        return PairOutcome(MappingClass.BAD, PairBranch.FRAGMENT)

    def _is_single(self, rec: AlignmentRecord) -> bool:
        return not rec.is_paired or rec.mate_unmapped or rec.is_unmapped

    def consume(self, cursor: SamCursor, *, pairing: str = "adjacent", progress: bool = False) -> RunningCounters:
        """Classify every record the cursor yields.

        ``adjacent`` expects each mate on the line after its partner;
        ``by_name`` buffers first-seen mates by read id instead.
        """
        if pairing not in PAIRING_MODES:
            raise ValueError(f"pairing must be one of {PAIRING_MODES}, got {pairing!r}")

        bar = tqdm(unit="record", desc="Classifying alignments", disable=not progress)
        try:
            if pairing == "adjacent":
                self._consume_adjacent(cursor, bar)
            else:
                self._consume_by_name(cursor, bar)
        finally:
            bar.close()
        return self.counters

    def _consume_adjacent(self, cursor: SamCursor, bar: tqdm) -> None:
        c = self.counters
        for rec in cursor:
            if not rec.is_primary:
                c.secondary_skipped += 1
            elif self._is_single(rec):
                self.check_single(rec)
                nxt = cursor.peek()
                if rec.is_paired and nxt is not None and nxt.read_id == rec.read_id and nxt.is_primary:
                    # the other read of a half- or un-mapped template
                    cursor.next()
            else:
                mate = cursor.next()
                if mate is None:
                    c.dangling_mates += 1
                    logger.debug("Stream ended before the mate of %s", rec.read_id)
                    break
                if mate.read_id != rec.read_id:
                    c.mate_name_mismatches += 1
                    logger.debug("Adjacent mates have different names: %s / %s", rec.read_id, mate.read_id)
                self.classify_pair(rec, mate)
            bar.update(cursor.records_read - bar.n)

        if c.mate_name_mismatches:
            logger.warning(
                "%d adjacent record pairs had mismatched read names; "
                "the alignment stream may not be pair-interleaved (try pairing='by_name').",
                c.mate_name_mismatches,
            )

    def _consume_by_name(self, cursor: SamCursor, bar: tqdm) -> None:
        c = self.counters
        pending: Dict[str, AlignmentRecord] = {}
        single_templates: Set[str] = set()
        for rec in cursor:
            if not rec.is_primary:
                c.secondary_skipped += 1
            elif self._is_single(rec):
                if rec.read_id in single_templates:
                    single_templates.discard(rec.read_id)
                else:
                    self.check_single(rec)
                    if rec.is_paired:
                        single_templates.add(rec.read_id)
            else:
                first = pending.pop(rec.read_id, None)
                if first is None:
                    pending[rec.read_id] = rec
                else:
                    self.classify_pair(first, rec)
            bar.update(cursor.records_read - bar.n)

        if pending:
            c.dangling_mates += len(pending)
            logger.info("%d primary records never met their mate", len(pending))


def classify_sam(
    sam_path: str | Path,
    *,
    insert_size: float = DEFAULT_INSERT_SIZE,
    insert_sd: float = DEFAULT_INSERT_SD,
    pairing: str = "adjacent",
    strict: bool = True,
    bridges_path: Optional[str | Path] = None,
    progress: bool = False,
    contig_lengths: Optional[Mapping[str, int]] = None,
) -> ClassificationResult:
    """Stream a SAM file through a fresh ``PairClassifier``.

    ``contig_lengths`` (typically the assembly's) supplies lengths for contigs
    the SAM header does not declare; header lengths take precedence.

    Raises
    ------
    NoAlignments
        If the file is missing, empty, or holds only header lines.
    MalformedRecord
        If ``strict`` and a non-final line cannot be decoded.
    UnknownContig
        If an alignment names a contig with no known length.
    """
    p = Path(sam_path)
    if not p.exists():
        raise NoAlignments(f"Alignment file not found: {p}", path=p)
    if p.stat().st_size == 0:
        raise NoAlignments(f"Alignment file is empty: {p}", path=p)

    with open_sam(p) as fh:
        cursor = SamCursor(fh, strict=strict, contig_lengths=contig_lengths)
        if cursor.at_end:
            raise NoAlignments(f"No alignment records in {p}", path=p)

        clf = PairClassifier(
            insert_size=insert_size,
            insert_sd=insert_sd,
            contig_lengths=cursor.contig_lengths,
        )
        logger.info("Classifying %s (pairing=%s, realistic distance=%s)", p, pairing, clf.realistic_distance)
        counters = clf.consume(cursor, pairing=pairing, progress=progress)

    bridges = clf.ledger.finalize(bridges_path)
    logger.info(
        "Pairs: total=%d good=%d bad=%d; supported bridges=%d",
        counters.total,
        counters.good,
        counters.bad,
        bridges.n_supported,
    )

    return ClassificationResult(
        counters=counters,
        bridges=bridges,
        realistic_distance=clf.realistic_distance,
        pairing=pairing,
        records_read=cursor.records_read,
        truncated_lines=cursor.truncated_lines,
        skipped_malformed=cursor.skipped_malformed,
        contig_lengths=dict(cursor.contig_lengths),
    )
