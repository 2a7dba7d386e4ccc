from __future__ import annotations

import random
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pysam

from .utils import ensure_outdir, write_json

READ_LEN = 50

# (name, length); "tiny" is below the coverage length filter, "contig3" gets no reads
_CONTIGS: List[Tuple[str, int]] = [
    ("contig1", 1000),
    ("contig2", 1000),
    ("contig3", 800),
    ("tiny", 150),
]

# mate1 flag, mate2 flag
_PROPER_FR = (99, 147)
_PROPER_SAME_STRAND = (67, 131)
_DISCORDANT_FR = (97, 145)
_MATE_UNMAPPED = (73, 133)


def _write_fasta(path: Path, records: List[Tuple[str, str]]) -> None:
    lines: List[str] = []
    for name, seq in records:
        lines.append(f">{name}")
        for i in range(0, len(seq), 60):
            lines.append(seq[i : i + 60])
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


def _make_read(
    name: str,
    flag: int,
    ref_id: int,
    start0: int,
    seq: str,
    *,
    mate_ref_id: int,
    mate_start0: int,
    mapped: bool = True,
) -> pysam.AlignedSegment:
    a = pysam.AlignedSegment()
    a.query_name = name
    a.query_sequence = seq
    a.flag = flag
    a.reference_id = ref_id
    a.reference_start = start0
    a.next_reference_id = mate_ref_id
    a.next_reference_start = mate_start0
    a.query_qualities = pysam.qualitystring_to_array("I" * len(seq))
    if mapped:
        a.mapping_quality = 42
        a.cigartuples = [(0, len(seq))]
    else:
        a.mapping_quality = 0
    return a


def make_toy_data(*, outdir: str | Path, seed: int = 7) -> Dict[str, str]:
    """Create a tiny assembly, pair-interleaved SAM, and FASTQ pair for demos/tests.

    The SAM holds 44 both-mapped pairs (42 good, 2 bad), one template with an
    unmapped mate, and two discordant pairs bridging contig1 and contig2.

    Returns
    -------
    dict
        Paths to the generated files.
    """
    outdir_p = ensure_outdir(outdir)
    rng = random.Random(seed)

    seqs = {name: "".join(rng.choice("ACGT") for _ in range(n)) for name, n in _CONTIGS}
    ref_ids = {name: i for i, (name, _) in enumerate(_CONTIGS)}

    assembly_fa = outdir_p / "toy_assembly.fa"
    _write_fasta(assembly_fa, [(name, seqs[name]) for name, _ in _CONTIGS])
    pysam.faidx(str(assembly_fa))

    templates: List[Tuple[str, Tuple[int, int], str, int, str, int, Optional[bool]]] = []
    for i in range(30):
        templates.append((f"c1_proper_{i}", _PROPER_FR, "contig1", 25 * i, "contig1", 25 * i + 150, None))
    for i in range(10):
        templates.append((f"c2_proper_{i}", _PROPER_FR, "contig2", 40 * i, "contig2", 40 * i + 150, None))
    templates.append(("bridge_0", _DISCORDANT_FR, "contig1", 939, "contig2", 19, None))
    templates.append(("bridge_1", _DISCORDANT_FR, "contig1", 929, "contig2", 9, None))
    templates.append(("far_0", _DISCORDANT_FR, "contig1", 499, "contig2", 499, None))
    templates.append(("samestrand_0", _PROPER_SAME_STRAND, "contig2", 600, "contig2", 700, None))
    templates.append(("single_0", _MATE_UNMAPPED, "contig1", 299, "contig1", 299, False))

    reads: List[pysam.AlignedSegment] = []
    fq1: List[str] = []
    fq2: List[str] = []
    for name, (flag1, flag2), ctg1, s1, ctg2, s2, mate_mapped in templates:
        seq1 = seqs[ctg1][s1 : s1 + READ_LEN]
        seq2 = seqs[ctg2][s2 : s2 + READ_LEN]
        reads.append(
            _make_read(name, flag1, ref_ids[ctg1], s1, seq1, mate_ref_id=ref_ids[ctg2], mate_start0=s2)
        )
        reads.append(
            _make_read(
                name,
                flag2,
                ref_ids[ctg2],
                s2,
                seq2,
                mate_ref_id=ref_ids[ctg1],
                mate_start0=s1,
                mapped=mate_mapped is not False,
            )
        )
        fq1.append(f"@{name}/1\n{seq1}\n+\n{'I' * len(seq1)}\n")
        fq2.append(f"@{name}/2\n{seq2}\n+\n{'I' * len(seq2)}\n")

    header = {
        "HD": {"VN": "1.6", "SO": "unsorted"},
        "SQ": [{"SN": name, "LN": n} for name, n in _CONTIGS],
    }
    sam_path = outdir_p / "toy_reads.sam"
    with pysam.AlignmentFile(str(sam_path), "w", header=header) as sam:
        for r in reads:
            sam.write(r)

    left_fq = outdir_p / "toy_1.fq"
    right_fq = outdir_p / "toy_2.fq"
    left_fq.write_text("".join(fq1), encoding="utf-8")
    right_fq.write_text("".join(fq2), encoding="utf-8")

    summary = {
        "assembly": str(assembly_fa),
        "sam": str(sam_path),
        "left": str(left_fq),
        "right": str(right_fq),
        "outdir": str(outdir_p),
    }

    write_json(outdir_p / "toy_summary.json", summary)
    return summary
