from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from .errors import MissingInputError
from .models import ReadSources

logger = logging.getLogger(__name__)


def _existing(path: Optional[str | Path], role: str) -> Optional[Path]:
    if path is None or str(path) == "":
        return None
    p = Path(path).expanduser().resolve()
    if not p.exists():
        raise FileNotFoundError(f"{role} read file does not exist: {p}")
    return p


def resolve_read_sources(
    left: Optional[str | Path] = None,
    right: Optional[str | Path] = None,
    unpaired: Optional[str | Path] = None,
) -> ReadSources:
    """Validate read inputs: a left/right pair, unpaired reads, or both.

    Raises MissingInputError if no usable source was given, or if only one
    side of a pair was supplied.
    """
    lp = _existing(left, "Left")
    rp = _existing(right, "Right")
    up = _existing(unpaired, "Unpaired")

    if (lp is None) != (rp is None):
        raise MissingInputError(
            "Paired reads need both --left and --right:\n"
            f"left: {left}\nright: {right}"
        )
    if lp is None and up is None:
        raise MissingInputError(
            "Read files not supplied:\n"
            f"left: {left}\nright: {right}\nunpaired: {unpaired}"
        )
    if lp is not None and lp == rp:
        logger.warning("Left and right read files are the same file: %s", lp)
    return ReadSources(left=lp, right=rp, unpaired=up)
