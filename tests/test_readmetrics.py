import json
from pathlib import Path

import pytest

from asmreadeval import readmetrics
from asmreadeval.errors import MissingInputError
from asmreadeval.models import ReadSources
from asmreadeval.readmetrics import analyse_alignments, count_reads, run_read_metrics
from asmreadeval.toy_data import make_toy_data


def test_count_reads_paired_and_unpaired(tmp_path: Path):
    left = tmp_path / "r1.fq"
    right = tmp_path / "r2.fq"
    single = tmp_path / "u.fq"
    left.write_text("@a\nACGT\n+\nIIII\n@b\nACGT\n+\nIIII\n", encoding="utf-8")
    right.write_text("@a\nACGT\n+\nIIII\n@b\nACGT\n+\nIIII\n", encoding="utf-8")
    single.write_text("@c\nACGT\n+\nIIII\n", encoding="utf-8")

    assert count_reads(ReadSources(left=left, right=right)) == (4, 2)
    assert count_reads(ReadSources(unpaired=single)) == (1, 0)
    assert count_reads(ReadSources(left=left, right=right, unpaired=single)) == (5, 2)


def test_analyse_alignments_on_toy_data(tmp_path: Path):
    toy = make_toy_data(outdir=tmp_path / "toy")
    num_reads, num_pairs = count_reads(ReadSources(left=Path(toy["left"]), right=Path(toy["right"])))
    assert num_pairs == 45

    outdir = tmp_path / "out"
    result = analyse_alignments(
        sam_path=toy["sam"],
        assembly=toy["assembly"],
        outdir=outdir,
        num_reads=num_reads,
        num_pairs=num_pairs,
        progress=False,
    )

    report = result.report
    assert report.total_mappings == 44
    assert report.good_mappings == 42
    assert report.bad_mappings == 2
    assert report.total_mappings == report.good_mappings + report.bad_mappings
    assert report.potential_bridges == 1
    assert report.percent_mapping == pytest.approx(44 / 45 * 100)
    assert report.good_mapping_proportion == pytest.approx(42 / 45)
    assert result.counters.singles == 1
    assert result.counters.realistic_fragment == 2
    assert result.counters.unrealistic_fragment == 1
    assert result.counters.improper_orientation == 1

    assert report.n_uncovered_contigs == 1
    assert report.p_uncovered_contigs == pytest.approx(0.25)
    assert report.n_lowcovered_contigs == 3
    assert result.coverage.n_contigs_considered == 3

    bridges_csv = outdir / "supported_bridges.csv"
    assert bridges_csv.read_text(encoding="utf-8") == "contig1,contig2,2\n"
    assert (outdir / "contig_coverage.tsv.gz").exists()

    summary = json.loads((outdir / "read_metrics.json").read_text(encoding="utf-8"))
    assert summary["read_stats"]["good_mappings"] == 42
    assert summary["supported_bridges"] == [{"contig_a": "contig1", "contig_b": "contig2", "support": 2}]
    assert summary["params"]["realistic_distance"] == 350


def test_zero_pairs_gives_zero_proportions(tmp_path: Path):
    toy = make_toy_data(outdir=tmp_path / "toy")
    result = analyse_alignments(
        sam_path=toy["sam"],
        assembly=toy["assembly"],
        outdir=tmp_path / "out",
        progress=False,
    )
    assert result.report.num_pairs == 0
    assert result.report.percent_mapping == 0.0
    assert result.report.good_mapping_proportion == 0.0
    assert result.report.total_mappings == 44


def test_run_read_metrics_requires_reads(tmp_path: Path):
    toy = make_toy_data(outdir=tmp_path / "toy")
    with pytest.raises(MissingInputError):
        run_read_metrics(assembly=toy["assembly"], outdir=tmp_path / "out")
    with pytest.raises(MissingInputError):
        run_read_metrics(assembly=toy["assembly"], outdir=tmp_path / "out", left=toy["left"])


def test_run_read_metrics_with_stubbed_mapper(tmp_path: Path, monkeypatch):
    toy = make_toy_data(outdir=tmp_path / "toy")
    calls = {}

    def fake_map_reads(**kwargs):
        calls.update(kwargs)
        return {"sam": toy["sam"], "cmd_bowtie2": ["bowtie2", "--reorder"]}

    monkeypatch.setattr(readmetrics, "map_reads", fake_map_reads)

    outdir = tmp_path / "run"
    result = run_read_metrics(
        assembly=toy["assembly"],
        outdir=outdir,
        left=toy["left"],
        right=toy["right"],
        threads=2,
        progress=False,
    )

    assert calls["max_insert"] == 350
    assert calls["reads"].paired
    assert result.report.num_pairs == 45
    assert result.report.num_reads == 90
    assert result.report.good_mappings == 42

    summary = json.loads((outdir / "read_metrics.json").read_text(encoding="utf-8"))
    assert summary["params"]["threads"] == 2
    assert summary["params"]["cmd_bowtie2"] == ["bowtie2", "--reorder"]
