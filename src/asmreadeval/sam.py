"""Streaming decoder for SAM text alignment streams.

Lines are read one at a time and decoded with ``pysam.AlignedSegment.fromstring``
against the stream's own header, so arbitrarily large SAM files are processed in
bounded memory and in file order (mate adjacency from ``bowtie2 --reorder`` is
preserved). Only the fields needed for read-pair classification are kept.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import AbstractSet, Dict, Iterator, List, Mapping, Optional, TextIO, Tuple

import pysam

from .errors import MalformedRecord, UnknownContig
from .models import UNMAPPED_CONTIG, AlignmentRecord
from .utils import open_textmaybe_gzip

logger = logging.getLogger(__name__)

HEADER_PREFIX = "@"

_MANDATORY_FIELDS = 11
_RNAME_FIELD = 2
_RNEXT_FIELD = 6


def build_header(lines: List[str], extra_lengths: Optional[Mapping[str, int]] = None) -> pysam.AlignmentHeader:
    """Build a pysam header from raw ``@`` lines.

    Contigs in ``extra_lengths`` that the header does not declare are added as
    ``@SQ`` entries; lengths already present in the header win.
    """
    text = "".join(line.rstrip("\r\n") + "\n" for line in lines)
    if not text:
        text = "@HD\tVN:1.6\n"
    header = pysam.AlignmentHeader.from_text(text)

    missing = {name: n for name, n in (extra_lengths or {}).items() if name not in header.references}
    if not missing:
        return header

    d = header.to_dict()
    d.setdefault("SQ", [])
    d["SQ"].extend({"SN": name, "LN": int(n)} for name, n in missing.items())
    return pysam.AlignmentHeader.from_dict(d)


def header_contig_lengths(header: pysam.AlignmentHeader) -> Dict[str, int]:
    return {name: int(n) for name, n in zip(header.references, header.lengths)}


def record_from_segment(seg: pysam.AlignedSegment) -> AlignmentRecord:
    unmapped = seg.is_unmapped or seg.reference_id < 0
    seq_len = seg.query_length or seg.infer_query_length() or 0
    return AlignmentRecord(
        read_id=seg.query_name,
        contig_id=UNMAPPED_CONTIG if unmapped else seg.reference_name,
        position=0 if unmapped else seg.reference_start + 1,
        sequence_length=int(seq_len),
        is_primary=not (seg.is_secondary or seg.is_supplementary),
        is_unmapped=unmapped,
        mate_unmapped=seg.mate_is_unmapped,
        properly_paired=seg.is_proper_pair,
        on_reverse_strand=seg.is_reverse,
        mate_on_reverse_strand=seg.mate_is_reverse,
        flag=seg.flag,
        is_paired=seg.is_paired,
        mate_contig_id=seg.next_reference_name or UNMAPPED_CONTIG,
        mate_position=seg.next_reference_start + 1 if seg.next_reference_start >= 0 else 0,
    )


def _check_references(fields: List[str], known: AbstractSet[str], line_number: Optional[int], line: str) -> None:
    for idx in (_RNAME_FIELD, _RNEXT_FIELD):
        name = fields[idx]
        if name not in ("*", "=") and name not in known:
            raise UnknownContig(
                f"contig {name!r} has no @SQ header line and no known length",
                contig=name,
                line_number=line_number,
                line=line,
            )


def parse_sam_line(
    line: str,
    header: pysam.AlignmentHeader,
    *,
    line_number: Optional[int] = None,
    known_contigs: Optional[AbstractSet[str]] = None,
) -> AlignmentRecord:
    """Decode one SAM alignment line against ``header``.

    Raises
    ------
    UnknownContig
        If RNAME or RNEXT names a contig the header does not declare.
    MalformedRecord
        If pysam cannot parse the line, a position is negative, or no
        sequence length can be derived from SEQ or the CIGAR.
    """
    stripped = line.rstrip("\r\n")
    fields = stripped.split("\t")
    if len(fields) >= _MANDATORY_FIELDS:
        known = known_contigs if known_contigs is not None else frozenset(header.references)
        _check_references(fields, known, line_number, line)
    try:
        seg = pysam.AlignedSegment.fromstring(stripped, header)
    except (ValueError, TypeError) as e:
        raise MalformedRecord(str(e), line_number=line_number, line=line) from None

    if seg.reference_start < -1 or seg.next_reference_start < -1:
        raise MalformedRecord("POS/PNEXT is negative", line_number=line_number, line=line)

    rec = record_from_segment(seg)
    if rec.sequence_length <= 0:
        raise MalformedRecord("record has neither SEQ nor a query-consuming CIGAR", line_number=line_number, line=line)
    return rec


class SamCursor:
    """Pull-based cursor over the records of a SAM text stream.

    Header lines are consumed on construction and turned into a
    ``pysam.AlignmentHeader`` (``contig_lengths`` fills in contigs the header
    lacks). ``peek()`` exposes the next record without consuming it. A
    malformed *final* record, optionally followed by blank lines, is treated as
    a truncated stream and ignored; malformed lines elsewhere raise
    ``MalformedRecord`` (``strict=True``) or are skipped with a warning.
    """

    def __init__(
        self,
        handle: TextIO,
        *,
        strict: bool = True,
        contig_lengths: Optional[Mapping[str, int]] = None,
    ) -> None:
        self._handle = handle
        self.strict = strict
        self.records_read = 0
        self.truncated_lines = 0
        self.skipped_malformed = 0
        self._line_count = 0
        self._raw: Optional[Tuple[int, str]] = self._readline()
        self._peeked: Optional[AlignmentRecord] = None
        self._exhausted = False

        self.header_lines: List[str] = []
        while self._raw is not None and self._raw[1].startswith(HEADER_PREFIX):
            self.header_lines.append(self._raw[1].rstrip("\r\n"))
            self._raw = self._readline()
        self.header = build_header(self.header_lines, contig_lengths)
        self.contig_lengths = header_contig_lengths(self.header)
        self._known_contigs = frozenset(self.contig_lengths)

    def _readline(self) -> Optional[Tuple[int, str]]:
        line = self._handle.readline()
        if not line:
            return None
        self._line_count += 1
        return self._line_count, line

    def _skip_blank(self) -> None:
        while self._raw is not None and not self._raw[1].strip():
            self._raw = self._readline()

    def _decode_next(self) -> Optional[AlignmentRecord]:
        while self._raw is not None:
            number, line = self._raw
            self._raw = self._readline()
            if not line.strip():
                continue
            try:
                return parse_sam_line(line, self.header, line_number=number, known_contigs=self._known_contigs)
            except UnknownContig:
                raise
            except MalformedRecord as e:
                self._skip_blank()
                if self._raw is None:
                    self.truncated_lines += 1
                    logger.debug("Ignoring truncated final alignment line %d", number)
                    return None
                if self.strict:
                    raise
                self.skipped_malformed += 1
                logger.warning("Skipping malformed alignment %s", e)
        return None

    def peek(self) -> Optional[AlignmentRecord]:
        if self._peeked is None and not self._exhausted:
            self._peeked = self._decode_next()
            if self._peeked is None:
                self._exhausted = True
        return self._peeked

    def next(self) -> Optional[AlignmentRecord]:
        """Consume and return the next record, or None at end of stream."""
        rec = self.peek()
        if rec is not None:
            self._peeked = None
            self.records_read += 1
        return rec

    @property
    def at_end(self) -> bool:
        return self.peek() is None

    def __iter__(self) -> Iterator[AlignmentRecord]:
        return self

    def __next__(self) -> AlignmentRecord:
        rec = self.next()
        if rec is None:
            raise StopIteration
        return rec


def open_sam(path: str | Path) -> TextIO:
    """Open a SAM (or SAM.GZ) file for streaming text reads."""
    return open_textmaybe_gzip(path, "rt")
