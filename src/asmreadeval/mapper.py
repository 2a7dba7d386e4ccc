"""bowtie2 short-read mapping and SAM -> sorted/indexed BAM conversion."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import pysam

from .external import require_executable, run_command
from .models import ReadSources
from .utils import ensure_outdir

logger = logging.getLogger(__name__)

_INDEX_SUFFIXES = (".1.bt2", ".2.bt2", ".3.bt2", ".4.bt2", ".rev.1.bt2", ".rev.2.bt2")


def index_prefix(assembly_fa: str | Path, outdir: str | Path) -> Path:
    return Path(outdir) / Path(assembly_fa).stem


def index_exists(prefix: Path) -> bool:
    return all(Path(str(prefix) + s).exists() for s in _INDEX_SUFFIXES)


def build_index_command(assembly_fa: str | Path, prefix: str | Path, *, threads: int = 8) -> List[str]:
    return ["bowtie2-build", "--threads", str(int(threads)), str(assembly_fa), str(prefix)]


def build_map_command(
    *,
    prefix: str | Path,
    reads: ReadSources,
    out_sam: str | Path,
    max_insert: int,
    threads: int = 8,
    extra_args: Optional[Sequence[str]] = None,
) -> List[str]:
    """bowtie2 command line; ``--reorder`` keeps mates on adjacent SAM lines."""
    cmd = [
        "bowtie2",
        "--very-sensitive",
        "--reorder",
        "-p",
        str(int(threads)),
        "-I",
        "0",
        "-X",
        str(int(max_insert)),
        "-x",
        str(prefix),
    ]
    if reads.paired:
        cmd += ["-1", str(reads.left), "-2", str(reads.right)]
    if reads.unpaired is not None:
        cmd += ["-U", str(reads.unpaired)]
    cmd += ["-S", str(out_sam)]
    cmd += list(map(str, extra_args or []))
    return cmd


def build_index(
    assembly_fa: str | Path,
    *,
    outdir: str | Path,
    threads: int = 8,
    resume: bool = True,
) -> Path:
    """Build (or reuse) a bowtie2 index for the assembly and return its prefix."""
    prefix = index_prefix(assembly_fa, outdir)
    if resume and index_exists(prefix):
        logger.info("Reusing bowtie2 index: %s", prefix)
        return prefix

    require_executable("bowtie2-build")
    ensure_outdir(prefix.parent)
    logger.info("Building bowtie2 index: %s", prefix)
    run_command(build_index_command(assembly_fa, prefix, threads=threads), check=True)
    return prefix


def map_reads(
    *,
    assembly_fa: str | Path,
    reads: ReadSources,
    outdir: str | Path,
    max_insert: int,
    threads: int = 8,
    resume: bool = False,
    dry_run: bool = False,
) -> Dict[str, object]:
    """Map reads to the assembly with bowtie2, writing a SAM file.

    Returns
    -------
    dict
        ``sam`` path, executed commands and runtime. With ``dry_run`` the
        commands are planned but not executed.
    """
    t0 = time.time()
    outdir = Path(outdir).expanduser().resolve()
    prefix = index_prefix(assembly_fa, outdir / "index")
    out_sam = outdir / f"{reads.label()}.{Path(assembly_fa).stem}.sam"

    cmds = {
        "bowtie2_build": build_index_command(assembly_fa, prefix, threads=threads),
        "bowtie2": build_map_command(
            prefix=prefix, reads=reads, out_sam=out_sam, max_insert=max_insert, threads=threads
        ),
    }

    summary: Dict[str, object] = {
        "sam": str(out_sam),
        "index_prefix": str(prefix),
        "threads": int(threads),
        "max_insert": int(max_insert),
        "cmd_bowtie2_build": cmds["bowtie2_build"],
        "cmd_bowtie2": cmds["bowtie2"],
        "runtime_seconds": 0.0,
    }

    if dry_run:
        summary["dry_run"] = True
        return summary

    if resume and out_sam.exists() and out_sam.stat().st_size > 0:
        logger.info("Resume enabled: SAM already exists: %s", out_sam)
        summary["skipped"] = True
        return summary

    build_index(assembly_fa, outdir=prefix.parent, threads=threads, resume=True)

    require_executable("bowtie2")
    logger.info("Mapping reads with bowtie2 -> %s", out_sam)
    run_command(cmds["bowtie2"], check=True, log_stderr=True)

    summary["runtime_seconds"] = float(time.time() - t0)
    return summary


def sam_to_sorted_indexed_bam(sam_path: str | Path, *, threads: int = 1, resume: bool = False) -> Path:
    """Coordinate-sort a SAM into ``<stem>.sorted.bam`` and index it."""
    sam_path = Path(sam_path)
    sorted_bam = sam_path.with_suffix(".sorted.bam")
    bai = sorted_bam.with_suffix(sorted_bam.suffix + ".bai")
    if resume and sorted_bam.exists() and bai.exists():
        logger.info("Resume enabled: sorted BAM already exists: %s", sorted_bam)
        return sorted_bam

    logger.info("Sorting %s -> %s", sam_path.name, sorted_bam.name)
    pysam.sort("-@", str(max(1, int(threads))), "-o", str(sorted_bam), str(sam_path))
    pysam.index(str(sorted_bam))
    return sorted_bam
