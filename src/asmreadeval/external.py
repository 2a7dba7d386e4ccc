"""Thin wrappers around the external mapping tools (bowtie2, bowtie2-build).

Everything else in asmreadeval is done in-process with pysam; these helpers
exist so that a missing or failing aligner produces a readable message that
names the tool and quotes the end of its stderr.
"""

from __future__ import annotations

import logging
import shlex
import shutil
import subprocess
from pathlib import Path
from typing import List, Optional, Sequence

logger = logging.getLogger(__name__)

BOWTIE2_HINT = (
    "Install bowtie2. Ubuntu: sudo apt-get install -y bowtie2\n"
    "Conda/mamba: mamba install -c bioconda bowtie2"
)

_STDERR_TAIL_LINES = 20


class ExternalCommandError(RuntimeError):
    """Raised when an aligner exits non-zero."""

    def __init__(self, message: str, *, cmd: Sequence[str], returncode: int, stderr: Optional[str] = None) -> None:
        super().__init__(message)
        self.cmd = [str(x) for x in cmd]
        self.returncode = int(returncode)
        self.stderr = stderr

    @property
    def tool(self) -> str:
        return Path(self.cmd[0]).name if self.cmd else ""


def cmd_to_str(cmd: Sequence[str]) -> str:
    return " ".join(shlex.quote(str(x)) for x in cmd)


def require_executable(exe: str, *, hint: Optional[str] = BOWTIE2_HINT) -> str:
    """Return the full path of ``exe`` or raise FileNotFoundError with an install hint."""
    found = shutil.which(exe)
    if found is None:
        msg = f"Required executable '{exe}' was not found in your PATH."
        if hint:
            msg += "\n\n" + hint
        raise FileNotFoundError(msg)
    return found


def stderr_tail(stderr: Optional[str], n_lines: int = _STDERR_TAIL_LINES) -> str:
    if not stderr or not stderr.strip():
        return "(empty)"
    lines = stderr.rstrip().splitlines()
    if len(lines) <= n_lines:
        return "\n".join(lines)
    return "...\n" + "\n".join(lines[-n_lines:])


def run_command(
    cmd: Sequence[str],
    *,
    cwd: Optional[str | Path] = None,
    check: bool = True,
    log_stderr: bool = False,
) -> subprocess.CompletedProcess:
    """Run an aligner command with captured text output.

    With ``log_stderr`` the tool's stderr is echoed to the log at INFO;
    bowtie2 prints its alignment rate summary there.

    Raises
    ------
    ExternalCommandError
        If ``check`` and the command exits non-zero.
    """
    argv: List[str] = [str(x) for x in cmd]
    logger.debug("Running command: %s", cmd_to_str(argv))

    cp = subprocess.run(
        argv,
        cwd=str(cwd) if cwd is not None else None,
        check=False,
        capture_output=True,
        text=True,
    )

    if log_stderr and cp.stderr and cp.stderr.strip():
        for line in cp.stderr.strip().splitlines():
            logger.info("%s: %s", Path(argv[0]).name, line)

    if check and cp.returncode != 0:
        raise ExternalCommandError(
            f"{Path(argv[0]).name} failed (exit code {cp.returncode}).\n\n"
            f"Command:\n  {cmd_to_str(argv)}\n\n"
            f"STDERR (tail):\n{stderr_tail(cp.stderr)}",
            cmd=argv,
            returncode=cp.returncode,
            stderr=cp.stderr,
        )

    return cp


def tool_version(exe: str) -> str:
    """First line of ``<exe> --version``."""
    cp = run_command([exe, "--version"], check=True)
    out = (cp.stdout or "").strip()
    return out.splitlines()[0].strip() if out else exe
