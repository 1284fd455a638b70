"""Aggregate a scaffold call table into per-call totals and figures."""

import re
from pathlib import Path
from typing import List, Tuple

import numpy as np
import pandas as pd

NO_CALL = "-"
_COV_SUFFIX = "_cov_bp"


def infer_labels(columns: List[str]) -> Tuple[str, str]:
    """Recover (label1, label2) from the `<label>_cov_bp` column names."""
    labels = [col[: -len(_COV_SUFFIX)] for col in columns if col.endswith(_COV_SUFFIX)]
    if len(labels) != 2:
        raise ValueError(
            f"Expected exactly two '*{_COV_SUFFIX}' columns, found {len(labels)}."
        )
    return labels[0], labels[1]


def load_calls_table(calls_path: Path) -> Tuple[pd.DataFrame, str, str]:
    """Load a call table written by 01_xy_map_filter.py and validate its columns."""
    if not calls_path.exists():
        raise FileNotFoundError(f"Call table not found: {calls_path}")
    df = pd.read_csv(calls_path, sep="\t", dtype={"scaffold": str, "call": str}, keep_default_na=False)
    label1, label2 = infer_labels(list(df.columns))
    required_cols = {"scaffold", "scaffold_len", "call"} | {
        f"{label}_{suffix}" for label in (label1, label2) for suffix in ("cov_bp", "frac", "hits")
    }
    missing_cols = required_cols - set(df.columns)
    if missing_cols:
        raise ValueError(
            f"Call table missing required columns: {', '.join(sorted(missing_cols))}"
        )
    return df, label1, label2


def call_order(label1: str, label2: str) -> List[str]:
    return [
        f"{label1}_only",
        f"{label1}_enriched",
        f"{label2}_only",
        f"{label2}_enriched",
        NO_CALL,
    ]


def summarise_calls(df: pd.DataFrame, label1: str, label2: str) -> pd.DataFrame:
    """Per-call scaffold counts, total length, mean fractions and hit totals.

    Every call category appears in the result, with zero counts when absent.
    """
    order = call_order(label1, label2)
    unknown = sorted(set(df["call"]) - set(order))
    if unknown:
        raise ValueError(f"Unexpected call labels: {', '.join(unknown)}")

    summary = (
        df.groupby("call")
        .agg(
            scaffolds=("scaffold", "count"),
            total_bp=("scaffold_len", "sum"),
            **{
                f"{label1}_cov_bp": (f"{label1}_cov_bp", "sum"),
                f"{label2}_cov_bp": (f"{label2}_cov_bp", "sum"),
                f"mean_{label1}_frac": (f"{label1}_frac", "mean"),
                f"mean_{label2}_frac": (f"{label2}_frac", "mean"),
                f"{label1}_hits": (f"{label1}_hits", "sum"),
                f"{label2}_hits": (f"{label2}_hits", "sum"),
            },
        )
        .reindex(order)
    )
    count_cols = [col for col in summary.columns if not col.startswith("mean_")]
    summary[count_cols] = summary[count_cols].fillna(0).astype(np.int64)
    total_bp = summary["total_bp"].sum()
    summary["fraction_of_assembly_bp"] = summary["total_bp"] / total_bp if total_bp > 0 else 0.0
    return summary.rename_axis("call").reset_index()


def _safe_filename(label: str) -> str:
    return re.sub(r"[^A-Za-z0-9_.-]+", "_", label)


def plot_call_lengths(summary: pd.DataFrame, figure_path: Path) -> Path:
    """Bar chart of total scaffold length (Mb) per call."""
    figure_path.parent.mkdir(parents=True, exist_ok=True)
    try:
        import matplotlib.pyplot as plt
        import seaborn as sns
    except ImportError as err:
        raise ImportError("matplotlib and seaborn are required for visualization.") from err

    plot_df = summary.assign(total_mb=summary["total_bp"] / 1e6)
    fig, ax = plt.subplots(figsize=(8, 5))
    sns.barplot(data=plot_df, x="call", y="total_mb", order=list(plot_df["call"]), color="#2878B5", ax=ax)
    for patch, n in zip(ax.patches, plot_df["scaffolds"]):
        ax.annotate(
            f"n={n}",
            (patch.get_x() + patch.get_width() / 2, patch.get_height()),
            ha="center",
            va="bottom",
            fontsize=8,
        )
    ax.set_xlabel("Call")
    ax.set_ylabel("Total scaffold length (Mb)")
    ax.set_title("Assembly length by sex-chromosome call")
    fig.tight_layout()
    fig.savefig(figure_path, dpi=300)
    plt.close(fig)
    return figure_path


def write_called_scaffold_lists(df: pd.DataFrame, label1: str, label2: str, list_dir: Path) -> List[Path]:
    """Write one scaffold-name list per non-empty call (excluding `-`)."""
    list_dir.mkdir(parents=True, exist_ok=True)
    paths = []
    for call in call_order(label1, label2)[:-1]:
        names = df.loc[df["call"] == call, "scaffold"]
        if names.empty:
            continue
        path = list_dir / f"{_safe_filename(call)}.scaffolds.txt"
        path.write_text("\n".join(names) + "\n")
        paths.append(path)
    return paths
