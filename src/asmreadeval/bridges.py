from __future__ import annotations

import csv
import logging
from pathlib import Path
from typing import Dict, Iterator, Optional, Tuple

from .models import BridgeKey, BridgeSummary, SupportedBridge

logger = logging.getLogger(__name__)

SUPPORTED_BRIDGES_FILENAME = "supported_bridges.csv"
MIN_SUPPORT = 2


class BridgeLedger:
    """Read-pair support counts for candidate joins between two contigs.

    Keys are unordered: ``record("c2", "c1")`` and ``record("c1", "c2")``
    increment the same entry.
    """

    def __init__(self) -> None:
        self._counts: Dict[BridgeKey, int] = {}

    def record(self, contig_a: str, contig_b: str) -> int:
        key = BridgeKey.of(contig_a, contig_b)
        self._counts[key] = self._counts.get(key, 0) + 1
        return self._counts[key]

    def __len__(self) -> int:
        return len(self._counts)

    def __contains__(self, pair: object) -> bool:
        if not isinstance(pair, tuple) or len(pair) != 2:
            return False
        return BridgeKey.of(*pair) in self._counts

    def __getitem__(self, pair: Tuple[str, str]) -> int:
        return self._counts.get(BridgeKey.of(*pair), 0)

    def items(self) -> Iterator[Tuple[BridgeKey, int]]:
        return iter(sorted(self._counts.items()))

    def finalize(self, path: Optional[str | Path] = None) -> BridgeSummary:
        """Return the bridges seen in more than one pair, optionally writing them.

        The table has no header; each row is ``contig_a,contig_b,support``.
        """
        bridges = [
            SupportedBridge(contig_a=key.contig_a, contig_b=key.contig_b, support=count)
            for key, count in self.items()
            if count >= MIN_SUPPORT
        ]

        table_path: Optional[str] = None
        if path is not None:
            out = Path(path)
            out.parent.mkdir(parents=True, exist_ok=True)
            with open(out, "wt", encoding="utf-8", newline="") as fh:
                writer = csv.writer(fh, lineterminator="\n")
                writer.writerows((b.contig_a, b.contig_b, b.support) for b in bridges)
            table_path = str(out)
            logger.info("Wrote %d supported bridges to %s", len(bridges), out)

        return BridgeSummary(bridges=bridges, n_supported=len(bridges), table_path=table_path)
