#!/usr/bin/env python3
"""
Summarise scaffold sex-chromosome calls (call-table driven).

This optional step complements `01_xy_map_filter.py` by aggregating its
per-scaffold call table into per-call totals (scaffold counts, assembly length,
covered bases, mean fractions, hit totals), writing one scaffold list per
confident call and plotting assembly length by call. Outputs, logs and metadata
are saved under `output/02_call_summary/`.
"""

import argparse
import logging
import time
from pathlib import Path
from typing import List, Optional

from call_summary import (
    load_calls_table,
    plot_call_lengths,
    summarise_calls,
    write_called_scaffold_lists,
)
from pipeline_utils import assemble_metadata, configure_logging, resolve_path, to_relative_path


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse CLI arguments."""
    parser = argparse.ArgumentParser(
        description="Summarize per-scaffold X/Y calls into per-call totals and figures."
    )
    parser.add_argument(
        "--calls",
        type=Path,
        default=Path("output/01_xy_map_filter/scaffold_XY_calls.tsv"),
        help="Scaffold call table produced by step 01.",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("output/02_call_summary"),
        help="Destination directory for tables, scaffold lists and figures.",
    )
    parser.add_argument(
        "--skip-plot",
        action="store_true",
        help="Do not render the per-call length bar chart.",
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)

    repo_root = Path(__file__).resolve().parents[1]

    output_dir = resolve_path(args.output_dir, repo_root)
    tables_dir = output_dir / "tables"
    lists_dir = output_dir / "scaffold_lists"
    figures_dir = output_dir / "figures"
    logs_dir = output_dir / "logs"
    output_dir.mkdir(parents=True, exist_ok=True)
    tables_dir.mkdir(parents=True, exist_ok=True)

    configure_logging(logs_dir / "pipeline.log")
    script_start = time.time()

    try:
        calls_path = resolve_path(args.calls, repo_root)
        calls_df, label1, label2 = load_calls_table(calls_path)
        logging.info("Loaded %d scaffolds (labels %s/%s) from %s", len(calls_df), label1, label2, calls_path)

        summary_df = summarise_calls(calls_df, label1, label2)
        summary_path = tables_dir / "call_summary.tsv"
        summary_df.to_csv(summary_path, sep="\t", index=False, float_format="%.6f")
        for row in summary_df.itertuples(index=False):
            logging.info("%s: %d scaffolds, %d bp", row.call, row.scaffolds, row.total_bp)

        list_paths = write_called_scaffold_lists(calls_df, label1, label2, lists_dir)

        figures: List[Path] = []
        if not args.skip_plot:
            figures.append(plot_call_lengths(summary_df, figures_dir / "call_lengths.png"))

        assemble_metadata(
            Path(__file__).name,
            script_start,
            params={
                "calls": to_relative_path(calls_path, repo_root),
                "label1": label1,
                "label2": label2,
            },
            outputs={
                "tables": [summary_path],
                "scaffold_lists": list_paths,
                "figures": figures,
                "logs": [logs_dir / "pipeline.log"],
            },
            metadata_path=output_dir / "metadata.json",
            repo_root=repo_root,
        )

        logging.info("Call summary complete. Outputs written to %s", output_dir)

    except Exception as exc:  # pylint: disable=broad-except
        logging.exception("Call summary pipeline failed: %s", exc)
        raise


if __name__ == "__main__":
    main()
