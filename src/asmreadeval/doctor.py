"""Environment self-checks behind ``asmreadeval doctor``.

Pair classification and coverage only need pysam. ``asmreadeval run`` also
maps the reads, which needs bowtie2 and bowtie2-build on PATH.
"""

from __future__ import annotations

import logging
import platform
import shutil
from dataclasses import dataclass
from typing import Dict, Optional

import numpy as np
import pysam

from .external import BOWTIE2_HINT, ExternalCommandError, tool_version

logger = logging.getLogger(__name__)

REQUIRED_TOOLS = ("bowtie2", "bowtie2-build")


@dataclass(frozen=True)
class CheckResult:
    name: str
    ok: bool
    detail: str
    howto: Optional[str] = None


def check_python() -> CheckResult:
    return CheckResult(name="python", ok=True, detail=f"Python {platform.python_version()}")


def check_pysam() -> CheckResult:
    return CheckResult(name="pysam", ok=True, detail=f"pysam {pysam.__version__}, numpy {np.__version__}")


def check_aligner(name: str) -> CheckResult:
    """A bowtie2 executable is usable when it is on PATH and answers ``--version``."""
    if shutil.which(name) is None:
        return CheckResult(name=name, ok=False, detail="not found in PATH", howto=BOWTIE2_HINT)
    try:
        detail = tool_version(name)
    except (ExternalCommandError, OSError) as e:
        logger.debug("%s --version failed: %s", name, e)
        return CheckResult(name=name, ok=False, detail=f"present but not usable: {e}", howto=BOWTIE2_HINT)
    return CheckResult(name=name, ok=True, detail=detail)


def collect_checks() -> Dict[str, CheckResult]:
    checks: Dict[str, CheckResult] = {
        "python": check_python(),
        "pysam": check_pysam(),
    }
    for tool in REQUIRED_TOOLS:
        checks[tool] = check_aligner(tool)
    return checks
