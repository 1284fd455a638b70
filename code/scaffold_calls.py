"""
Non-overlapping coverage and X/Y-style classification of scaffolds.

Filtered PAF intervals are consumed in one pass, sorted by
(scaffold, target, start). Within each (scaffold, target) group overlapping or
abutting query spans are merged so that a scaffold's covered fraction on a
target can never exceed 1.0 because of redundant alignments. Per scaffold the
two covered fractions are then turned into a single call:

    <label1>_only / <label2>_only          hits on one target only, fraction >= threshold
    <label1>_enriched / <label2>_enriched  hits on both, one fraction >= threshold and
                                           >= dominance_ratio x the other
    -                                      anything else

Rows are emitted in lexicographic scaffold order.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd

from paf_filter import FilteredInterval

NO_CALL = "-"


@dataclass(frozen=True)
class ClassifierConfig:
    """Target names, display labels and call thresholds.

    Use `from_options` to resolve the per-target thresholds against the shared
    `min_frac` default.
    """

    target1_name: str
    target2_name: str
    label1: str = "X"
    label2: str = "Y"
    threshold1: float = 0.8
    threshold2: float = 0.8
    dominance_ratio: float = 2.0

    def __post_init__(self) -> None:
        if self.label1 == self.label2:
            raise ValueError(
                f"Labels must differ (both are {self.label1!r}); they name the output columns."
            )

    @classmethod
    def from_options(
        cls,
        target1_name: str,
        target2_name: str,
        label1: str = "X",
        label2: str = "Y",
        min_frac: float = 0.8,
        threshold1: Optional[float] = None,
        threshold2: Optional[float] = None,
        dominance_ratio: float = 2.0,
    ) -> "ClassifierConfig":
        return cls(
            target1_name=target1_name,
            target2_name=target2_name,
            label1=label1,
            label2=label2,
            threshold1=min_frac if threshold1 is None else threshold1,
            threshold2=min_frac if threshold2 is None else threshold2,
            dominance_ratio=dominance_ratio,
        )

    @property
    def columns(self) -> List[str]:
        l1, l2 = self.label1, self.label2
        return [
            "scaffold",
            "scaffold_len",
            f"{l1}_cov_bp",
            f"{l2}_cov_bp",
            f"{l1}_frac",
            f"{l2}_frac",
            f"{l1}_hits",
            f"{l2}_hits",
            "call",
        ]


@dataclass
class CoverageAccumulator:
    """Flushed non-overlapping bases and raw hit count for one (scaffold, target)."""

    covered_bases: int = 0
    hit_count: int = 0


@dataclass
class ScaffoldRecord:
    """Per-scaffold length plus one accumulator per target."""

    scaffold: str
    scaffold_length: int
    coverage: Dict[str, CoverageAccumulator] = field(default_factory=dict)

    def accumulator(self, target: str) -> CoverageAccumulator:
        return self.coverage.setdefault(target, CoverageAccumulator())

    def covered_bases(self, target: str) -> int:
        acc = self.coverage.get(target)
        return acc.covered_bases if acc else 0

    def hit_count(self, target: str) -> int:
        acc = self.coverage.get(target)
        return acc.hit_count if acc else 0


@dataclass
class OpenInterval:
    """The merge run currently being extended for one (scaffold, target) key."""

    scaffold: str
    target: str
    start: int
    end: int

    @property
    def key(self) -> Tuple[str, str]:
        return (self.scaffold, self.target)


class ScaffoldCoverageBuilder:
    """Single-pass merge of sorted intervals into per-scaffold coverage.

    The builder is a two-state machine: either no interval is open, or one
    merge run is open for a (scaffold, target) key. An open run is added to
    `covered_bases` only when it is flushed, i.e. when the next interval does
    not touch it, when the key changes, or in `finish`.

    Input must already be sorted by (scaffold, target, start); this is not
    checked.
    """

    def __init__(self) -> None:
        self._records: Dict[str, ScaffoldRecord] = {}
        self._open: Optional[OpenInterval] = None
        self._finished = False

    def add(self, interval: FilteredInterval) -> None:
        if self._finished:
            raise RuntimeError("Cannot add intervals after finish().")
        record = self._records.get(interval.scaffold)
        if record is None:
            record = ScaffoldRecord(interval.scaffold, interval.query_length)
            self._records[interval.scaffold] = record
        record.accumulator(interval.target).hit_count += 1

        current = self._open
        if current is not None and current.key == (interval.scaffold, interval.target):
            if interval.start <= current.end:
                current.end = max(current.end, interval.end)
                return
        self._flush()
        self._open = OpenInterval(interval.scaffold, interval.target, interval.start, interval.end)

    def add_all(self, intervals: Iterable[FilteredInterval]) -> "ScaffoldCoverageBuilder":
        for interval in intervals:
            self.add(interval)
        return self

    def finish(self) -> List[ScaffoldRecord]:
        """Flush the last open run and return scaffolds in name order."""
        self._flush()
        self._finished = True
        return self.scaffolds()

    def scaffolds(self) -> List[ScaffoldRecord]:
        return [self._records[name] for name in sorted(self._records)]

    def _flush(self) -> None:
        current = self._open
        if current is None:
            return
        span = current.end - current.start
        if span > 0:
            self._records[current.scaffold].accumulator(current.target).covered_bases += span
        self._open = None


def merge_covered_bases(spans: Iterable[Tuple[int, int]]) -> int:
    """Non-overlapping base count of start-sorted (start, end) spans of one group."""
    builder = ScaffoldCoverageBuilder()
    for start, end in spans:
        builder.add(FilteredInterval("_", "_", 0, start, end))
    records = builder.finish()
    return records[0].covered_bases("_") if records else 0


def coverage_fraction(covered_bases: int, scaffold_length: int) -> float:
    return covered_bases / scaffold_length if scaffold_length > 0 else 0.0


def classify_scaffold(
    cov1_bp: int,
    cov2_bp: int,
    frac1: float,
    frac2: float,
    config: ClassifierConfig,
) -> str:
    """Return the call label for one scaffold.

    The target1 enrichment test runs first, so a scaffold passing both tests
    (only possible with dominance_ratio < 1) is called for target1.
    """
    if cov1_bp <= 0 and cov2_bp <= 0:
        return NO_CALL
    if cov2_bp <= 0:
        return f"{config.label1}_only" if frac1 >= config.threshold1 else NO_CALL
    if cov1_bp <= 0:
        return f"{config.label2}_only" if frac2 >= config.threshold2 else NO_CALL
    if frac1 >= config.threshold1 and frac1 >= frac2 * config.dominance_ratio:
        return f"{config.label1}_enriched"
    if frac2 >= config.threshold2 and frac2 >= frac1 * config.dominance_ratio:
        return f"{config.label2}_enriched"
    return NO_CALL


def calls_from_records(records: List[ScaffoldRecord], config: ClassifierConfig) -> pd.DataFrame:
    """Assemble the output table from finished scaffold records."""
    columns = config.columns
    cov1_col, cov2_col, frac1_col, frac2_col, hits1_col, hits2_col = columns[2:8]
    df = pd.DataFrame(
        {
            "scaffold": [rec.scaffold for rec in records],
            "scaffold_len": [rec.scaffold_length for rec in records],
            cov1_col: [rec.covered_bases(config.target1_name) for rec in records],
            cov2_col: [rec.covered_bases(config.target2_name) for rec in records],
            hits1_col: [rec.hit_count(config.target1_name) for rec in records],
            hits2_col: [rec.hit_count(config.target2_name) for rec in records],
        }
    )
    for col in ["scaffold_len", cov1_col, cov2_col, hits1_col, hits2_col]:
        df[col] = df[col].astype(np.int64)

    for cov_col, frac_col in [(cov1_col, frac1_col), (cov2_col, frac2_col)]:
        df[frac_col] = np.array(
            [coverage_fraction(cov, length) for cov, length in zip(df[cov_col], df["scaffold_len"])],
            dtype=float,
        )

    df["call"] = [
        classify_scaffold(c1, c2, f1, f2, config)
        for c1, c2, f1, f2 in zip(df[cov1_col], df[cov2_col], df[frac1_col], df[frac2_col])
    ]
    return df[columns]


def build_calls_table(intervals: Iterable[FilteredInterval], config: ClassifierConfig) -> pd.DataFrame:
    """Merge sorted intervals and classify every scaffold seen."""
    records = ScaffoldCoverageBuilder().add_all(intervals).finish()
    logging.info("Built non-overlapping coverage for %d scaffolds.", len(records))
    return calls_from_records(records, config)


def log_call_counts(df: pd.DataFrame) -> None:
    for call, count in df["call"].value_counts().sort_index().items():
        logging.info("Call %s: %d scaffolds", call, count)


def write_calls_table(df: pd.DataFrame, output_path: Path) -> None:
    """Write the call table as TSV with six-decimal fractions."""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(output_path, sep="\t", index=False, float_format="%.6f")


def plot_fraction_scatter(
    df: pd.DataFrame,
    config: ClassifierConfig,
    figure_path: Path,
) -> Path:
    """Scatter of target1 vs target2 covered fraction, coloured by call."""
    figure_path.parent.mkdir(parents=True, exist_ok=True)
    try:
        import matplotlib.pyplot as plt
    except ImportError as err:
        raise ImportError("matplotlib is required for visualization.") from err

    frac1_col, frac2_col = f"{config.label1}_frac", f"{config.label2}_frac"
    fig, ax = plt.subplots(figsize=(7, 6))
    cmap = plt.get_cmap("tab10")
    for i, (call, group) in enumerate(df.groupby("call", sort=True)):
        ax.scatter(
            group[frac1_col],
            group[frac2_col],
            label=f"{call} (n={len(group)})",
            s=np.clip(np.sqrt(group["scaffold_len"].to_numpy(dtype=float)) / 20.0, 5, 200),
            alpha=0.7,
            color="lightgrey" if call == NO_CALL else cmap(i % 10),
            edgecolors="black",
            linewidths=0.3,
        )
    ax.axvline(config.threshold1, color="gray", linestyle="--", linewidth=0.8)
    ax.axhline(config.threshold2, color="gray", linestyle="--", linewidth=0.8)
    ax.set_xlim(-0.02, 1.02)
    ax.set_ylim(-0.02, 1.02)
    ax.set_xlabel(f"{config.label1} covered fraction ({config.target1_name})")
    ax.set_ylabel(f"{config.label2} covered fraction ({config.target2_name})")
    ax.set_title("Scaffold coverage by reference target")
    ax.legend(loc="best", fontsize="small", frameon=False)
    fig.tight_layout()
    fig.savefig(figure_path, dpi=300)
    plt.close(fig)
    return figure_path
