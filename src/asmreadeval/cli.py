from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Dict, Optional, Sequence

from . import __version__
from .assembly import load_assembly
from .classifier import DEFAULT_INSERT_SD, DEFAULT_INSERT_SIZE, PAIRING_MODES, classify_sam, realistic_distance
from .coverage import MIN_CONTIG_LENGTH
from .doctor import REQUIRED_TOOLS, collect_checks
from .external import ExternalCommandError, cmd_to_str
from .mapper import map_reads
from .plotting import plot_contig_coverage_hist, plot_mapping_classes, plot_pair_branches
from .readmetrics import SUMMARY_FILENAME, ReadMetricsResult, analyse_alignments, count_reads, run_read_metrics
from .report import render_report
from .toy_data import make_toy_data
from .utils import ensure_outdir
from .validation import resolve_read_sources


def _setup_logging(verbosity: int, *, logfile: Optional[Path] = None) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    log_fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    logging.basicConfig(level=level, format=log_fmt, stream=sys.stderr)

    if logfile is not None:
        logfile.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(logfile)
        fh.setLevel(level)
        fh.setFormatter(logging.Formatter(log_fmt))
        logging.getLogger().addHandler(fh)


def _path_exists(p: str) -> str:
    if not Path(p).exists():
        raise argparse.ArgumentTypeError(f"Path does not exist: {p}")
    return p


def _log_path(outdir: Path, name: str) -> Path:
    return outdir / "logs" / name


def _handle_error(err: Exception, *, log_path: Optional[Path] = None) -> int:
    if isinstance(err, ExternalCommandError):
        msg = str(err)
    else:
        msg = f"{err.__class__.__name__}: {err}"

    sys.stderr.write(msg + "\n")
    if log_path is not None:
        sys.stderr.write(f"See log: {log_path}\n")
    return 2


def _add_classifier_args(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--insert-size",
        type=float,
        default=DEFAULT_INSERT_SIZE,
        help="Mean fragment (insert) size of the read pairs.",
    )
    p.add_argument(
        "--insert-sd",
        type=float,
        default=DEFAULT_INSERT_SD,
        help="Standard deviation of the insert size.",
    )
    p.add_argument(
        "--pairing",
        choices=list(PAIRING_MODES),
        default="adjacent",
        help="How mates are found: adjacent SAM lines (default) or by read name.",
    )
    p.add_argument(
        "--lenient",
        action="store_true",
        help="Skip malformed SAM lines instead of aborting.",
    )


def _add_coverage_args(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--min-contig-length",
        type=int,
        default=MIN_CONTIG_LENGTH,
        help="Contigs shorter than this are ignored in coverage statistics.",
    )


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="asmreadeval",
        description=(
            "asmreadeval: evaluate an assembly by mapping reads back onto it. "
            "Classifies read pairs as good/bad mappings, detects contig bridges, "
            "and summarises per-contig coverage."
        ),
    )
    p.add_argument("--version", action="version", version=f"asmreadeval {__version__}")

    sub = p.add_subparsers(dest="cmd", required=True)

    # -----------------
    # quickstart
    # -----------------
    sub.add_parser(
        "quickstart",
        help="Print ready-to-run recipes for common scenarios.",
    )

    # -----------------
    # make-toy-data
    # -----------------
    t = sub.add_parser(
        "make-toy-data",
        help="Generate a tiny assembly, SAM, and FASTQ pair for demos/tests.",
    )
    t.add_argument("--outdir", required=True, help="Output directory for toy data.")
    t.add_argument("--dry-run", action="store_true", help="Validate paths without writing files.")

    # -----------------
    # classify
    # -----------------
    c = sub.add_parser(
        "classify",
        help="Classify read pairs in a SAM file and report counters and supported bridges.",
    )
    c.add_argument("--sam", required=True, type=_path_exists, help="Input SAM (.sam/.sam.gz), pair-interleaved.")
    c.add_argument(
        "--assembly",
        type=_path_exists,
        default=None,
        help="Assembly FASTA; supplies contig lengths missing from the SAM header.",
    )
    c.add_argument(
        "--bridges-out",
        default=None,
        help="Optional path for the supported bridges table (CSV).",
    )
    _add_classifier_args(c)
    c.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v/-vv).")

    # -----------------
    # analyse
    # -----------------
    a = sub.add_parser(
        "analyse",
        help="Read-mapping metrics from an existing SAM (classification + coverage + report).",
    )
    a.add_argument("--sam", required=True, type=_path_exists, help="Input SAM (.sam/.sam.gz), pair-interleaved.")
    a.add_argument("--assembly", required=True, type=_path_exists, help="Assembly FASTA the SAM was mapped to.")
    a.add_argument("--outdir", required=True, help="Output directory.")
    a.add_argument("--left", type=_path_exists, default=None, help="Left reads (FASTQ), used for read counts.")
    a.add_argument("--right", type=_path_exists, default=None, help="Right reads (FASTQ), used for read counts.")
    a.add_argument("--unpaired", type=_path_exists, default=None, help="Unpaired reads (FASTQ), used for read counts.")
    _add_classifier_args(a)
    _add_coverage_args(a)
    a.add_argument("--threads", type=int, default=1, help="Threads for BAM sorting.")
    a.add_argument("--dry-run", action="store_true", help="Validate inputs and print planned outputs.")
    a.add_argument("--resume", action="store_true", help="Skip if outputs already exist.")
    a.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v/-vv).")

    # -----------------
    # run
    # -----------------
    r = sub.add_parser(
        "run",
        help="Map reads with bowtie2 and compute all read-mapping metrics.",
    )
    r.add_argument("--assembly", required=True, type=_path_exists, help="Assembly FASTA.")
    r.add_argument("--left", type=_path_exists, default=None, help="Left reads (FASTQ/FASTQ.GZ).")
    r.add_argument("--right", type=_path_exists, default=None, help="Right reads (FASTQ/FASTQ.GZ).")
    r.add_argument("--unpaired", type=_path_exists, default=None, help="Unpaired reads (FASTQ/FASTQ.GZ).")
    r.add_argument("--outdir", required=True, help="Output directory.")
    r.add_argument("--threads", type=int, default=8, help="Threads for bowtie2 and BAM sorting.")
    _add_classifier_args(r)
    _add_coverage_args(r)
    r.add_argument("--dry-run", action="store_true", help="Validate inputs and print commands.")
    r.add_argument("--resume", action="store_true", help="Skip completed steps when outputs exist.")
    r.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v/-vv).")

    # -----------------
    # doctor
    # -----------------
    d = sub.add_parser(
        "doctor",
        help="Check your environment for required external tools (bowtie2).",
    )
    d.add_argument("--dry-run", action="store_true", help="Print checks without exiting nonzero.")
    d.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v/-vv).")

    return p


# -----------------
# Command handlers
# -----------------

def cmd_quickstart() -> int:
    lines = [
        "asmreadeval quickstart (copy/paste):",
        "",
        "1) Paired reads (full pipeline; needs bowtie2):",
        "   asmreadeval run \\",
        "     --assembly contigs.fa \\",
        "     --left reads_1.fq.gz --right reads_2.fq.gz \\",
        "     --insert-size 300 --insert-sd 60 \\",
        "     --outdir results/",
        "   Outputs: results/report.html, results/read_metrics.json, results/supported_bridges.csv",
        "",
        "2) Existing SAM (no mapping):",
        "   asmreadeval analyse \\",
        "     --sam reads.sam --assembly contigs.fa \\",
        "     --left reads_1.fq.gz --right reads_2.fq.gz \\",
        "     --outdir results/",
        "",
        "3) Just the pair classification:",
        "   asmreadeval classify --sam reads.sam --bridges-out supported_bridges.csv",
        "",
        "Tip: use --dry-run to validate inputs and print the exact external commands.",
    ]
    print("\n".join(lines))
    return 0


def cmd_make_toy_data(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    if args.dry_run:
        print(f"Would write toy data into: {outdir}")
        return 0

    summary = make_toy_data(outdir=outdir)
    print(json.dumps(summary, indent=2))
    return 0


def cmd_classify(args: argparse.Namespace) -> int:
    _setup_logging(args.verbose, logfile=None)

    try:
        contig_lengths = load_assembly(args.assembly).contig_lengths if args.assembly else None
        result = classify_sam(
            args.sam,
            insert_size=float(args.insert_size),
            insert_sd=float(args.insert_sd),
            pairing=str(args.pairing),
            strict=not bool(args.lenient),
            bridges_path=args.bridges_out,
            progress=False,
            contig_lengths=contig_lengths,
        )
        out = {
            "counters": result.counters.as_dict(),
            "potential_bridges": result.bridges.n_supported,
            "realistic_distance": result.realistic_distance,
            "records_read": result.records_read,
            "truncated_lines": result.truncated_lines,
            "skipped_malformed": result.skipped_malformed,
        }
        print(json.dumps(out, indent=2, sort_keys=True))
        return 0
    except Exception as e:
        return _handle_error(e, log_path=None)


def _write_plots_and_report(outdir: Path, result: ReadMetricsResult) -> Path:
    plots_dir = outdir / "plots"
    plots_dir.mkdir(parents=True, exist_ok=True)

    classes_png = plots_dir / "mapping_classes.png"
    branches_png = plots_dir / "pair_branches.png"
    coverage_png = plots_dir / "contig_coverage.png"

    counters = result.counters.as_dict()
    plot_mapping_classes(counters=counters, out_png=classes_png)
    plot_pair_branches(counters=counters, out_png=branches_png)
    plot_contig_coverage_hist(
        mean_coverages=[c.mean_coverage for c in result.coverage.contigs],
        out_png=coverage_png,
    )

    plots_rel: Dict[str, str] = {
        "mapping_classes": str(Path("plots") / classes_png.name),
        "pair_branches": str(Path("plots") / branches_png.name),
        "contig_coverage": str(Path("plots") / coverage_png.name),
    }

    return render_report(
        outdir=outdir,
        version=__version__,
        summary=result.to_summary(),
        plots=plots_rel,
    )


def cmd_analyse(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    log_path = _log_path(outdir, "analyse.log")
    _setup_logging(args.verbose, logfile=None if args.dry_run else log_path)

    logger = logging.getLogger("asmreadeval")
    logger.info("asmreadeval %s", __version__)

    try:
        num_reads, num_pairs = 0, 0
        if args.left or args.right or args.unpaired:
            reads = resolve_read_sources(args.left, args.right, args.unpaired)
            num_reads, num_pairs = count_reads(reads)

        if args.dry_run:
            print("Dry-run: inputs look OK.")
            print("No external commands required for analyse.")
            print(f"Read pairs counted: {num_pairs}")
            print("Planned outputs:")
            print(f"  report.html -> {outdir / 'report.html'}")
            print(f"  {SUMMARY_FILENAME} -> {outdir / SUMMARY_FILENAME}")
            print(f"  supported_bridges.csv -> {outdir / 'supported_bridges.csv'}")
            return 0

        outdir = ensure_outdir(outdir)
        if args.resume and (outdir / SUMMARY_FILENAME).exists():
            logger.info("Resume enabled: %s already exists in %s", SUMMARY_FILENAME, outdir)
            print(str(outdir / "report.html"))
            return 0

        result = analyse_alignments(
            sam_path=args.sam,
            assembly=args.assembly,
            outdir=outdir,
            num_reads=num_reads,
            num_pairs=num_pairs,
            insert_size=float(args.insert_size),
            insert_sd=float(args.insert_sd),
            pairing=str(args.pairing),
            strict=not bool(args.lenient),
            min_contig_length=int(args.min_contig_length),
            threads=int(args.threads),
            progress=True,
            resume=bool(args.resume),
        )

        report_path = _write_plots_and_report(outdir, result)
        logger.info("Report written: %s", report_path)
        print(str(report_path))
        return 0
    except Exception as e:
        return _handle_error(e, log_path=log_path)


def _print_command_list(cmds: Sequence[Sequence[str]]) -> None:
    for cmd in cmds:
        print("  " + cmd_to_str(cmd))


def cmd_run(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    log_path = _log_path(outdir, "run.log")
    _setup_logging(args.verbose, logfile=None if args.dry_run else log_path)

    logger = logging.getLogger("asmreadeval")
    logger.info("asmreadeval %s", __version__)

    try:
        if args.dry_run:
            reads = resolve_read_sources(args.left, args.right, args.unpaired)
            plan = map_reads(
                assembly_fa=Path(args.assembly).expanduser().resolve(),
                reads=reads,
                outdir=outdir / "mapping",
                max_insert=int(realistic_distance(float(args.insert_size), float(args.insert_sd))),
                threads=int(args.threads),
                dry_run=True,
            )
            print("Planned commands:")
            _print_command_list([plan["cmd_bowtie2_build"], plan["cmd_bowtie2"]])
            print("Planned outputs:")
            print(f"  {outdir / 'report.html'}")
            print(f"  {outdir / SUMMARY_FILENAME}")
            return 0

        if args.resume and (outdir / SUMMARY_FILENAME).exists():
            logger.info("Resume enabled: %s already exists in %s", SUMMARY_FILENAME, outdir)
            print(str(outdir / "report.html"))
            return 0

        result = run_read_metrics(
            assembly=args.assembly,
            outdir=outdir,
            left=args.left,
            right=args.right,
            unpaired=args.unpaired,
            insert_size=float(args.insert_size),
            insert_sd=float(args.insert_sd),
            threads=int(args.threads),
            pairing=str(args.pairing),
            strict=not bool(args.lenient),
            min_contig_length=int(args.min_contig_length),
            progress=True,
            resume=bool(args.resume),
        )

        report_path = _write_plots_and_report(outdir, result)
        logger.info("Report written: %s", report_path)
        print(str(report_path))
        return 0
    except Exception as e:
        return _handle_error(e, log_path=log_path)


def cmd_doctor(args: argparse.Namespace) -> int:
    _setup_logging(args.verbose, logfile=None)

    checks = collect_checks()

    lines = []
    ok_all = True
    for name in ("python", "pysam") + REQUIRED_TOOLS:
        r = checks[name]
        status = "OK" if r.ok else "MISSING"
        lines.append(f"{name:13s} : {status:7s}  {r.detail}")
        if not r.ok:
            ok_all = False

    print("\n".join(lines))

    for name in REQUIRED_TOOLS:
        r = checks[name]
        if not r.ok and r.howto:
            print("\n---")
            print(f"How to install/fix '{name}':")
            print(r.howto)

    if args.dry_run:
        return 0
    return 0 if ok_all else 1


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.cmd == "quickstart":
        return cmd_quickstart()
    if args.cmd == "make-toy-data":
        return cmd_make_toy_data(args)
    if args.cmd == "classify":
        return cmd_classify(args)
    if args.cmd == "analyse":
        return cmd_analyse(args)
    if args.cmd == "run":
        return cmd_run(args)
    if args.cmd == "doctor":
        return cmd_doctor(args)

    parser.error(f"Unknown command: {args.cmd}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
