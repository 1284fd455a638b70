#!/usr/bin/env python3
"""
Map assembly scaffolds to a sex-chromosome reference and call X/Y scaffolds.

This script optionally aligns a query assembly against a target FASTA that
contains the two sex chromosomes (minimap2, PAF output), then filters the PAF
by target name, mapping quality and alignment block length, builds
non-overlapping query coverage per scaffold per chromosome and classifies each
scaffold. Outputs, logs and metadata are written to
`output/01_xy_map_filter/` following the repository execution conventions.

Steps
-----
1. minimap2 mapping of `--query` onto `--target`, unless `--filter-only` or
   the PAF already exists and `--force` is not set; `minimap2` is only required
   on PATH when mapping actually runs.
2. `--paf -` reads alignments from stdin (requires `--filter-only`).
3. PAF filtering on `--chr1`/`--chr2`, `--min-mapq` and `--min-aln`.
4. Per-scaffold merged coverage and call table (`scaffold_XY_calls.tsv`).
5. Fraction scatter plot and `metadata.json`.

Output columns
--------------
    scaffold  scaffold_len  <label1>_cov_bp  <label2>_cov_bp  <label1>_frac
    <label2>_frac  <label1>_hits  <label2>_hits  call

Usage
-----
    python code/01_xy_map_filter.py \
        --chr1 chrX --chr2 chrY \
        --query data/assembly.fa --target data/sex_chroms.fa \
        --threads 16
"""

import argparse
import logging
import subprocess
import time
from pathlib import Path
from typing import List, Optional

from paf_filter import FilterSettings, FilterStats, read_filtered_intervals, sort_intervals
from pipeline_utils import (
    assemble_metadata,
    check_dependencies,
    configure_logging,
    resolve_path,
    run_command,
    to_relative_path,
)
from scaffold_calls import (
    ClassifierConfig,
    build_calls_table,
    log_call_counts,
    plot_fraction_scatter,
    write_calls_table,
)

STDIN_PAF = Path("-")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse and validate CLI arguments."""
    parser = argparse.ArgumentParser(
        description=(
            "Map scaffolds to a sex-chromosome reference (minimap2) and classify "
            "chr1/chr2 scaffolds from PAF by non-overlapping coverage."
        )
    )
    parser.add_argument(
        "--chr1",
        "--x",
        dest="chr1",
        required=True,
        help="Target sequence name for chromosome 1 (PAF target column 6).",
    )
    parser.add_argument(
        "--chr2",
        "--y",
        dest="chr2",
        required=True,
        help="Target sequence name for chromosome 2 (PAF target column 6).",
    )
    parser.add_argument("--label1", default="X", help="Label for chr1 in outputs/calls.")
    parser.add_argument("--label2", default="Y", help="Label for chr2 in outputs/calls.")
    parser.add_argument("--query", type=Path, help="Query assembly FASTA.")
    parser.add_argument("--target", type=Path, help="Target reference FASTA containing chr1 and chr2.")
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("output/01_xy_map_filter"),
        help="Destination directory for pipeline outputs.",
    )
    parser.add_argument(
        "--paf",
        type=Path,
        default=None,
        help="PAF path (mapping output; filtering input). Default: <output-dir>/xy_map.paf",
    )
    parser.add_argument(
        "--out",
        type=Path,
        default=None,
        help="Scaffold call table. Default: <output-dir>/scaffold_XY_calls.tsv",
    )
    parser.add_argument(
        "--min-mapq",
        type=int,
        default=30,
        help="Keep hits with MAPQ >= this value.",
    )
    parser.add_argument(
        "--min-aln",
        type=int,
        default=55000,
        help="Keep hits with alignment block length (PAF column 11) >= this value.",
    )
    parser.add_argument(
        "--min-frac",
        type=float,
        default=0.8,
        help="Minimum covered fraction to call <label>_only / <label>_enriched.",
    )
    parser.add_argument(
        "--dominance",
        type=float,
        default=2.0,
        help="Fold enrichment of one fraction over the other required for <label>_enriched.",
    )
    parser.add_argument(
        "--chr1-frac-threshold",
        "--x-frac-threshold",
        dest="chr1_frac_threshold",
        type=float,
        default=None,
        help="Explicit threshold to flag a scaffold as chr1-like (default: --min-frac).",
    )
    parser.add_argument(
        "--chr2-frac-threshold",
        "--y-frac-threshold",
        dest="chr2_frac_threshold",
        type=float,
        default=None,
        help="Explicit threshold to flag a scaffold as chr2-like (default: --min-frac).",
    )
    parser.add_argument("--threads", type=int, default=16, help="minimap2 threads.")
    parser.add_argument("--preset", default="asm10", help="minimap2 preset.")
    parser.add_argument(
        "--secondary",
        choices=["yes", "no"],
        default="no",
        help="Keep secondary alignments in minimap2 output.",
    )
    parser.add_argument(
        "--filter-only",
        action="store_true",
        help="Skip minimap2 and only classify from an existing --paf.",
    )
    parser.add_argument(
        "--skip-plot",
        action="store_true",
        help="Do not render the coverage fraction scatter plot.",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Re-run mapping even if the PAF already exists.",
    )
    args = parser.parse_args(argv)

    if args.threads <= 0:
        parser.error("--threads must be a positive integer")
    if args.min_mapq < 0:
        parser.error("--min-mapq must be an integer >= 0")
    if args.min_aln < 0:
        parser.error("--min-aln must be an integer >= 0")
    if args.chr1 == args.chr2:
        parser.error("--chr1 and --chr2 must name different target sequences")
    if args.label1 == args.label2:
        parser.error("--label1 and --label2 must differ")
    if args.paf == STDIN_PAF and not args.filter_only:
        parser.error("--paf - (stdin) requires --filter-only")
    if not args.filter_only and (args.query is None or args.target is None):
        parser.error("--query and --target are required unless --filter-only")
    return args


def map_scaffolds(
    query_fasta: Path,
    target_fasta: Path,
    paf_path: Path,
    threads: int,
    preset: str,
    secondary: str,
    force: bool,
) -> Path:
    """Align query scaffolds to the target with minimap2, writing PAF.

    minimap2 writes into `<paf>.tmp`, which replaces `paf_path` only after a
    zero exit, so an existing PAF is always a complete one.
    """
    if paf_path.exists() and not force:
        logging.info("PAF already exists at %s; skipping minimap2.", paf_path)
        return paf_path
    for fasta, kind in [(query_fasta, "Query"), (target_fasta, "Target")]:
        if not fasta.exists():
            raise FileNotFoundError(f"{kind} FASTA not readable: {fasta}")
    check_dependencies(["minimap2"])

    paf_path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = paf_path.with_name(paf_path.name + ".tmp")
    logging.info("Running minimap2...")
    try:
        with tmp_path.open("w") as handle:
            run_command(
                [
                    "minimap2",
                    "-t",
                    str(threads),
                    "-x",
                    preset,
                    f"--secondary={secondary}",
                    target_fasta,
                    query_fasta,
                ],
                stdout=handle,
            )
    except subprocess.CalledProcessError:
        tmp_path.unlink(missing_ok=True)
        raise
    tmp_path.replace(paf_path)
    logging.info("Mapping complete: %s", paf_path)
    return paf_path


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)

    repo_root = Path(__file__).resolve().parents[1]

    output_dir = resolve_path(args.output_dir, repo_root)
    figure_dir = output_dir / "figures"
    log_dir = output_dir / "logs"
    output_dir.mkdir(parents=True, exist_ok=True)

    configure_logging(log_dir / "pipeline.log")
    script_start = time.time()

    try:
        if args.paf == STDIN_PAF:
            paf_path = STDIN_PAF
        elif args.paf:
            paf_path = resolve_path(args.paf, repo_root)
        else:
            paf_path = output_dir / "xy_map.paf"
        out_path = resolve_path(args.out, repo_root) if args.out else output_dir / "scaffold_XY_calls.tsv"

        settings = FilterSettings(
            target1_name=args.chr1,
            target2_name=args.chr2,
            min_mapping_quality=args.min_mapq,
            min_alignment_length=args.min_aln,
        )
        config = ClassifierConfig.from_options(
            target1_name=args.chr1,
            target2_name=args.chr2,
            label1=args.label1,
            label2=args.label2,
            min_frac=args.min_frac,
            threshold1=args.chr1_frac_threshold,
            threshold2=args.chr2_frac_threshold,
            dominance_ratio=args.dominance,
        )

        logging.info("chr1 target: %s (label: %s)", config.target1_name, config.label1)
        logging.info("chr2 target: %s (label: %s)", config.target2_name, config.label2)
        logging.info("PAF: %s", paf_path)
        logging.info("Output: %s", out_path)
        logging.info(
            "chr1 threshold: %s ; chr2 threshold: %s ; dominance: %s",
            config.threshold1,
            config.threshold2,
            config.dominance_ratio,
        )

        if args.filter_only:
            logging.info("--filter-only enabled; skipping minimap2")
        else:
            map_scaffolds(
                resolve_path(args.query, repo_root),
                resolve_path(args.target, repo_root),
                paf_path,
                threads=args.threads,
                preset=args.preset,
                secondary=args.secondary,
                force=args.force,
            )

        logging.info("Filtering PAF by target/mapq/alnlen...")
        stats = FilterStats()
        intervals = sort_intervals(read_filtered_intervals(paf_path, settings, stats))
        stats.log_summary()

        logging.info("Building non-overlapping coverage per scaffold...")
        calls = build_calls_table(intervals, config)
        write_calls_table(calls, out_path)
        log_call_counts(calls)

        figures: List[Path] = []
        if not args.skip_plot and not calls.empty:
            figures.append(plot_fraction_scatter(calls, config, figure_dir / "scaffold_fractions.png"))

        assemble_metadata(
            Path(__file__).name,
            script_start,
            params={
                "chr1": config.target1_name,
                "chr2": config.target2_name,
                "label1": config.label1,
                "label2": config.label2,
                "query": to_relative_path(resolve_path(args.query, repo_root), repo_root) if args.query else None,
                "target": to_relative_path(resolve_path(args.target, repo_root), repo_root) if args.target else None,
                "paf": to_relative_path(paf_path, repo_root),
                "min_mapq": settings.min_mapping_quality,
                "min_aln": settings.min_alignment_length,
                "chr1_frac_threshold": config.threshold1,
                "chr2_frac_threshold": config.threshold2,
                "dominance": config.dominance_ratio,
                "threads": args.threads,
                "preset": args.preset,
                "secondary": args.secondary,
                "filter_only": args.filter_only,
                "force": args.force,
            },
            outputs={
                "alignments": [paf_path],
                "tables": [out_path],
                "figures": figures,
                "logs": [log_dir / "pipeline.log"],
            },
            metadata_path=output_dir / "metadata.json",
            repo_root=repo_root,
        )

        logging.info("Done. Wrote: %s", out_path)

    except Exception as exc:  # pylint: disable=broad-except
        logging.exception("XY map/filter pipeline failed: %s", exc)
        raise


if __name__ == "__main__":
    main()
