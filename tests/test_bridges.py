from pathlib import Path

from asmreadeval.bridges import BridgeLedger
from asmreadeval.models import BridgeKey


def test_bridge_key_is_order_independent():
    assert BridgeKey.of("b", "a") == BridgeKey.of("a", "b")
    assert str(BridgeKey.of("c2", "c1")) == "c1<>c2"


def test_record_counts_both_orders_together():
    ledger = BridgeLedger()
    assert ledger.record("c2", "c1") == 1
    assert ledger.record("c1", "c2") == 2
    assert len(ledger) == 1
    assert ledger[("c1", "c2")] == 2
    assert ledger[("c1", "c3")] == 0
    assert ("c2", "c1") in ledger
    assert "c1" not in ledger


def test_finalize_keeps_only_multiply_supported(tmp_path: Path):
    ledger = BridgeLedger()
    for _ in range(3):
        ledger.record("x", "y")
    ledger.record("a", "b")
    ledger.record("c", "d")
    ledger.record("d", "c")

    out = tmp_path / "sub" / "supported_bridges.csv"
    summary = ledger.finalize(out)
    assert summary.n_supported == 2
    assert [(b.contig_a, b.contig_b, b.support) for b in summary.bridges] == [("c", "d", 2), ("x", "y", 3)]
    assert out.read_text(encoding="utf-8").splitlines() == ["c,d,2", "x,y,3"]
    assert summary.table_path == str(out)


def test_finalize_is_idempotent(tmp_path: Path):
    ledger = BridgeLedger()
    ledger.record("a", "b")
    ledger.record("b", "a")
    first = ledger.finalize(tmp_path / "one.csv")
    second = ledger.finalize(tmp_path / "two.csv")
    assert first.bridges == second.bridges
    assert (tmp_path / "one.csv").read_text() == (tmp_path / "two.csv").read_text()


def test_finalize_without_support_writes_empty_table(tmp_path: Path):
    ledger = BridgeLedger()
    ledger.record("a", "b")
    out = tmp_path / "supported_bridges.csv"
    summary = ledger.finalize(out)
    assert summary.n_supported == 0
    assert out.exists()
    assert out.read_text(encoding="utf-8") == ""


def test_finalize_without_path_writes_nothing():
    summary = BridgeLedger().finalize()
    assert summary.n_supported == 0
    assert summary.table_path is None


def test_finalize_quotes_contig_names_with_commas(tmp_path: Path):
    ledger = BridgeLedger()
    ledger.record("a,1", "b")
    ledger.record("b", "a,1")
    out = tmp_path / "supported_bridges.csv"
    ledger.finalize(out)
    assert out.read_text(encoding="utf-8") == '"a,1",b,2\n'
