import io
from pathlib import Path

import pytest

from asmreadeval.classifier import PairClassifier, classify_sam, realistic_distance
from asmreadeval.errors import MalformedRecord, NoAlignments, UnknownContig
from asmreadeval.models import AlignmentRecord, MappingClass, PairBranch
from asmreadeval.sam import SamCursor


def rec(
    read_id: str = "r1",
    contig: str = "c1",
    pos: int = 100,
    *,
    seq_len: int = 50,
    proper: bool = False,
    rev: bool = False,
    mate_rev: bool = True,
    unmapped: bool = False,
    mate_unmapped: bool = False,
    primary: bool = True,
    paired: bool = True,
) -> AlignmentRecord:
    return AlignmentRecord(
        read_id=read_id,
        contig_id="*" if unmapped else contig,
        position=0 if unmapped else pos,
        sequence_length=seq_len,
        is_primary=primary,
        is_unmapped=unmapped,
        mate_unmapped=mate_unmapped,
        properly_paired=proper,
        on_reverse_strand=rev,
        mate_on_reverse_strand=mate_rev,
        is_paired=paired,
    )


def sam_line(qname: str, flag: int, rname: str, pos: int, seq_len: int = 50) -> str:
    cigar = f"{seq_len}M" if not flag & 0x4 else "*"
    return "\t".join(
        [qname, str(flag), rname, str(pos), "42", cigar, "*", "0", "0", "A" * seq_len, "*"]
    ) + "\n"


def test_realistic_distance():
    assert realistic_distance(200, 50) == 350


def test_negative_insert_parameters_rejected():
    with pytest.raises(ValueError):
        PairClassifier(insert_size=-1)
    with pytest.raises(ValueError):
        PairClassifier(insert_sd=-1)


def test_proper_pair_opposite_strands_is_good():
    clf = PairClassifier()
    out = clf.classify_pair(rec(proper=True), rec(pos=300, proper=True, rev=True, mate_rev=False))
    assert out.mapping_class is MappingClass.GOOD
    assert out.branch is PairBranch.PROPER_PAIR
    c = clf.counters
    assert (c.total, c.good, c.bad) == (1, 1, 0)
    assert c.properly_paired == 1
    assert c.proper_orientation == 1


def test_proper_pair_same_strand_is_bad():
    clf = PairClassifier()
    out = clf.classify_pair(rec(proper=True, mate_rev=False), rec(pos=300, proper=True, mate_rev=False))
    assert out.is_bad
    assert out.branch is PairBranch.ORIENTATION_FAIL
    assert clf.counters.improper_orientation == 1


def test_improper_same_contig_non_overlapping_is_bad():
    clf = PairClassifier()
    out = clf.classify_pair(rec(pos=100), rec(pos=600, rev=True, mate_rev=False))
    assert out.is_bad
    assert out.branch is PairBranch.OVERLAP
    c = clf.counters
    assert c.improperly_paired == 1
    assert c.same_contig == 1
    assert c.unrealistic_overlap == 1
    assert (c.total, c.good, c.bad) == (1, 0, 1)


def test_improper_same_contig_overlapping_opposite_strands_is_good():
    clf = PairClassifier()
    out = clf.classify_pair(rec(pos=100), rec(pos=120, rev=True, mate_rev=False))
    assert out.is_good
    assert out.branch is PairBranch.OVERLAP
    assert clf.counters.realistic_overlap == 1
    assert clf.counters.proper_orientation == 1


def test_overlap_boundary_is_strict():
    clf = PairClassifier()
    # |100 - 150| == read length: not overlapping
    assert clf.classify_pair(rec(pos=100), rec(pos=150)).is_bad
    assert clf.counters.unrealistic_overlap == 1


def test_cross_contig_near_ends_is_good_and_recorded():
    clf = PairClassifier(insert_size=200, insert_sd=50, contig_lengths={"c1": 1000, "c2": 1000})
    out = clf.classify_pair(rec(contig="c1", pos=950), rec(contig="c2", pos=30))
    assert out.is_good
    assert out.branch is PairBranch.FRAGMENT
    assert clf.counters.realistic_fragment == 1
    assert clf.ledger[("c1", "c2")] == 1


def test_cross_contig_far_from_ends_is_bad_and_not_recorded():
    clf = PairClassifier(insert_size=200, insert_sd=50, contig_lengths={"c1": 1000, "c2": 1000})
    out = clf.classify_pair(rec(contig="c1", pos=500), rec(contig="c2", pos=500))
    assert out.is_bad
    assert clf.counters.unrealistic_fragment == 1
    assert ("c1", "c2") not in clf.ledger


def test_fragment_distance_at_threshold_is_good():
    clf = PairClassifier(insert_size=200, insert_sd=50, contig_lengths={"c1": 1000, "c2": 1000})
    # 150 + 200 == 350
    assert clf.classify_pair(rec(contig="c1", pos=850), rec(contig="c2", pos=200)).is_good


def test_fragment_without_contig_length_raises_unknown_contig():
    clf = PairClassifier(insert_size=0, insert_sd=0, contig_lengths={"c1": 1000})
    with pytest.raises(UnknownContig) as ei:
        clf.classify_pair(rec(contig="c1", pos=10), rec(contig="c2", pos=10))
    assert ei.value.contig == "c2"


def test_fragment_ignores_orientation():
    clf = PairClassifier(contig_lengths={"c1": 1000, "c2": 1000})
    out = clf.classify_pair(rec(contig="c1", pos=990, mate_rev=False), rec(contig="c2", pos=5, mate_rev=False))
    assert out.is_good


def test_half_mapped_pair_is_not_counted():
    clf = PairClassifier()
    out = clf.classify_pair(rec(mate_unmapped=True), rec(unmapped=True))
    assert out.mapping_class is MappingClass.SKIPPED
    assert clf.counters.total == 0


def test_check_single_only_touches_singles():
    clf = PairClassifier()
    out = clf.check_single(rec(paired=False))
    assert out.branch is PairBranch.SINGLE
    c = clf.counters
    assert c.singles == 1
    assert (c.total, c.good, c.bad) == (0, 0, 0)


def test_proper_pair_short_insert_counts_one_good():
    clf = PairClassifier()
    out = clf.classify_pair(rec(pos=10, proper=True), rec(pos=40, proper=True, rev=True, mate_rev=False))
    assert out.is_good
    c = clf.counters
    assert (c.total, c.good, c.bad) == (1, 1, 0)


def test_improper_nearby_mates_go_through_overlap_then_orientation():
    clf = PairClassifier()
    out = clf.classify_pair(rec(pos=100), rec(pos=102, rev=True, mate_rev=False))
    assert out.is_good
    assert out.branch is PairBranch.OVERLAP
    c = clf.counters
    assert c.realistic_overlap == 1
    assert c.proper_orientation == 1
    assert (c.total, c.good, c.bad) == (1, 1, 0)

    # same placement but both mates forward: overlap passes, orientation fails
    out = clf.classify_pair(rec(pos=100, mate_rev=False), rec(pos=102, mate_rev=False))
    assert out.branch is PairBranch.ORIENTATION_FAIL
    assert c.realistic_overlap == 2
    assert c.improper_orientation == 1


def test_mates_spanning_contig_ends_bridge_the_contigs():
    clf = PairClassifier(insert_size=200, insert_sd=50, contig_lengths={"c1": 1000, "c2": 1000})
    # min(990, 10) + min(10, 990) == 20 <= 350
    out = clf.classify_pair(rec(contig="c1", pos=990), rec(contig="c2", pos=10))
    assert out.is_good
    assert clf.ledger[("c1", "c2")] == 1
    assert clf.ledger[("c2", "c1")] == 1


def _cursor(lines, header: str = "@SQ\tSN:c1\tLN:1000\n@SQ\tSN:c2\tLN:1000\n") -> SamCursor:
    return SamCursor(io.StringIO(header + "".join(lines)))


MIXED_STREAM = [
    sam_line("p1", 99, "c1", 100),
    sam_line("p1", 147, "c1", 300),
    sam_line("p2", 67, "c1", 100),
    sam_line("p2", 131, "c1", 300),
    sam_line("p2", 67 | 0x100, "c2", 10),
    sam_line("s1", 73, "c1", 400),
    sam_line("s1", 133, "c1", 400),
    sam_line("u1", 0, "c1", 500),
    sam_line("b1", 97, "c1", 960),
    sam_line("b1", 145, "c2", 20),
    sam_line("b2", 97, "c2", 990),
    sam_line("b2", 145, "c1", 5),
]


def test_consume_adjacent_mixed_stream():
    clf = PairClassifier(contig_lengths={"c1": 1000, "c2": 1000})
    c = clf.consume(_cursor(MIXED_STREAM))
    assert c.total == 4
    assert c.good == 3
    assert c.bad == 1
    assert c.total == c.good + c.bad
    assert c.singles == 2
    assert c.secondary_skipped == 1
    assert c.dangling_mates == 0
    assert c.mate_name_mismatches == 0
    assert clf.ledger[("c2", "c1")] == 2


def test_consume_by_name_matches_adjacent_on_interleaved_input():
    a = PairClassifier(contig_lengths={"c1": 1000, "c2": 1000})
    a.consume(_cursor(MIXED_STREAM), pairing="adjacent")
    b = PairClassifier(contig_lengths={"c1": 1000, "c2": 1000})
    b.consume(_cursor(MIXED_STREAM), pairing="by_name")
    assert a.counters.as_dict() == b.counters.as_dict()


def test_consume_by_name_handles_non_adjacent_mates():
    lines = [
        sam_line("p1", 99, "c1", 100),
        sam_line("p2", 99, "c1", 200),
        sam_line("p1", 147, "c1", 300),
        sam_line("p2", 147, "c1", 400),
    ]
    by_name = PairClassifier()
    by_name.consume(_cursor(lines), pairing="by_name")
    assert by_name.counters.total == 2
    assert by_name.counters.good == 2

    adjacent = PairClassifier()
    adjacent.consume(_cursor(lines), pairing="adjacent")
    assert adjacent.counters.mate_name_mismatches == 2


def test_consume_counts_dangling_final_mate():
    clf = PairClassifier()
    c = clf.consume(_cursor([sam_line("p1", 99, "c1", 100), sam_line("p1", 147, "c1", 300), sam_line("p2", 99, "c1", 100)]))
    assert c.total == 1
    assert c.dangling_mates == 1


def test_consume_rejects_unknown_pairing():
    with pytest.raises(ValueError):
        PairClassifier().consume(_cursor([]), pairing="nearest")


def _write(path: Path, lines) -> Path:
    path.write_text("@SQ\tSN:c1\tLN:1000\n@SQ\tSN:c2\tLN:1000\n" + "".join(lines), encoding="utf-8")
    return path


def test_classify_sam_writes_supported_bridges(tmp_path: Path):
    sam = _write(tmp_path / "in.sam", MIXED_STREAM)
    out = tmp_path / "bridges.csv"
    result = classify_sam(sam, bridges_path=out)
    assert result.counters.total == 4
    assert result.bridges.n_supported == 1
    assert out.read_text(encoding="utf-8") == "c1,c2,2\n"
    assert result.contig_lengths == {"c1": 1000, "c2": 1000}
    assert result.records_read == len(MIXED_STREAM)


def test_classify_sam_missing_or_empty_raises(tmp_path: Path):
    with pytest.raises(NoAlignments):
        classify_sam(tmp_path / "nope.sam")

    empty = tmp_path / "empty.sam"
    empty.write_text("", encoding="utf-8")
    with pytest.raises(NoAlignments):
        classify_sam(empty)

    header_only = _write(tmp_path / "header.sam", [])
    with pytest.raises(NoAlignments):
        classify_sam(header_only)


def test_classify_sam_strict_and_lenient(tmp_path: Path):
    lines = list(MIXED_STREAM[:2]) + ["not a sam line\n"] + list(MIXED_STREAM[2:4])
    sam = _write(tmp_path / "bad.sam", lines)
    with pytest.raises(MalformedRecord):
        classify_sam(sam)

    result = classify_sam(sam, strict=False)
    assert result.skipped_malformed == 1
    assert result.counters.total == 2


def test_classify_headerless_sam_uses_supplied_contig_lengths(tmp_path: Path):
    sam = tmp_path / "headerless.sam"
    sam.write_text(
        "".join(
            [
                sam_line("x1", 97, "c1", 500),
                sam_line("x1", 145, "c2", 500),
                sam_line("x2", 97, "c1", 500),
                sam_line("x2", 145, "c2", 500),
            ]
        ),
        encoding="utf-8",
    )
    with pytest.raises(UnknownContig):
        classify_sam(sam, insert_size=200, insert_sd=50)

    result = classify_sam(sam, insert_size=200, insert_sd=50, contig_lengths={"c1": 1000, "c2": 1000})
    c = result.counters
    assert c.unrealistic_fragment == 2
    assert c.realistic_fragment == 0
    assert (c.total, c.good, c.bad) == (2, 0, 2)
    assert result.bridges.n_supported == 0
    assert result.contig_lengths == {"c1": 1000, "c2": 1000}
