"""Exceptions raised by the read-mapping evaluation core."""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class AsmReadEvalError(Exception):
    """Base exception for asmreadeval errors."""


class MissingInputError(AsmReadEvalError):
    """Raised when no usable read source was supplied."""


class MalformedRecord(AsmReadEvalError):
    """Raised when an alignment line cannot be decoded."""

    def __init__(self, message: str, *, line_number: Optional[int] = None, line: Optional[str] = None) -> None:
        if line_number is not None:
            message = f"line {line_number}: {message}"
        super().__init__(message)
        self.line_number = line_number
        self.line = line


class NoAlignments(AsmReadEvalError):
    """Raised when the alignment stream is absent or holds no records."""

    def __init__(self, message: str, *, path: Optional[str | Path] = None) -> None:
        super().__init__(message)
        self.path = str(path) if path is not None else None


class CoverageComputationError(AsmReadEvalError):
    """Raised when a contig's coverage cannot be summarised."""

    def __init__(self, message: str, *, contig: Optional[str] = None) -> None:
        super().__init__(message)
        self.contig = contig


class UnknownContig(MalformedRecord):
    """Raised when an alignment names a contig whose length is unknown."""

    def __init__(
        self,
        message: str,
        *,
        contig: str,
        line_number: Optional[int] = None,
        line: Optional[str] = None,
    ) -> None:
        super().__init__(message, line_number=line_number, line=line)
        self.contig = contig
