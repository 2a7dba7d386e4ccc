"""asmreadeval: read-mapping based quality evaluation for sequence assemblies.

Public API is intentionally small; most users should use the CLI:

    asmreadeval run --assembly contigs.fa --left r1.fq --right r2.fq --outdir ...

"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
