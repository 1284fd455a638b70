"""
Record filter for PAF alignments of assembly scaffolds against a two-sequence
reference (e.g. the X and Y chromosomes).

PAF columns used (1-based, tab-delimited):
    1   query (scaffold) name
    2   query length
    3   query start
    4   query end
    6   target name
    11  alignment block length
    12  mapping quality

Columns beyond 12 (SAM-style tags) are ignored. Lines with fewer than 12
fields, or whose numeric columns do not parse, are skipped without aborting.
"""

import gzip
import logging
import sys
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, TextIO

PAF_MIN_FIELDS = 12


@dataclass(frozen=True)
class AlignmentRecord:
    """One parsed PAF line; start/end may arrive in either order."""

    query_name: str
    query_length: int
    query_start: int
    query_end: int
    target_name: str
    alignment_block_length: int
    mapping_quality: int


@dataclass(frozen=True)
class FilteredInterval:
    """A retained query span on one of the two targets, with start < end."""

    scaffold: str
    target: str
    query_length: int
    start: int
    end: int
    mapping_quality: int = 0
    alignment_block_length: int = 0

    @property
    def span(self) -> int:
        return self.end - self.start


@dataclass(frozen=True)
class FilterSettings:
    """Target names and hit thresholds applied to every PAF record."""

    target1_name: str
    target2_name: str
    min_mapping_quality: int = 30
    min_alignment_length: int = 55000

    def __post_init__(self) -> None:
        if not self.target1_name or not self.target2_name:
            raise ValueError("Both target names must be non-empty.")
        if self.target1_name == self.target2_name:
            raise ValueError(
                f"Target names must differ (both are {self.target1_name!r})."
            )
        if self.min_mapping_quality < 0:
            raise ValueError("min_mapping_quality must be an integer >= 0.")
        if self.min_alignment_length < 0:
            raise ValueError("min_alignment_length must be an integer >= 0.")

    @property
    def targets(self) -> tuple:
        return (self.target1_name, self.target2_name)


@dataclass
class FilterStats:
    """Per-reason tallies collected while streaming a PAF."""

    lines: int = 0
    malformed: int = 0
    wrong_target: int = 0
    low_mapq: int = 0
    short_alignment: int = 0
    degenerate: int = 0
    kept: int = 0

    def log_summary(self) -> None:
        logging.info(
            "PAF lines read: %d; kept %d hits (malformed %d, other target %d, "
            "low MAPQ %d, short alignment %d, zero-length %d).",
            self.lines,
            self.kept,
            self.malformed,
            self.wrong_target,
            self.low_mapq,
            self.short_alignment,
            self.degenerate,
        )


def parse_paf_line(line: str) -> Optional[AlignmentRecord]:
    """Parse the columns of one PAF line needed for classification.

    Returns None for lines with fewer than 12 fields or non-integer numeric
    columns.
    """
    fields = line.rstrip("\r\n").split("\t")
    if len(fields) < PAF_MIN_FIELDS:
        return None
    try:
        return AlignmentRecord(
            query_name=fields[0],
            query_length=int(fields[1]),
            query_start=int(fields[2]),
            query_end=int(fields[3]),
            target_name=fields[5],
            alignment_block_length=int(fields[10]),
            mapping_quality=int(fields[11]),
        )
    except ValueError:
        return None


def _rejection_reason(record: AlignmentRecord, settings: FilterSettings) -> Optional[str]:
    if record.target_name not in settings.targets:
        return "wrong_target"
    if record.mapping_quality < settings.min_mapping_quality:
        return "low_mapq"
    if record.alignment_block_length < settings.min_alignment_length:
        return "short_alignment"
    if record.query_start == record.query_end:
        return "degenerate"
    return None


def filter_record(record: AlignmentRecord, settings: FilterSettings) -> Optional[FilteredInterval]:
    """Apply target, MAPQ and block-length filters and normalise coordinates."""
    if _rejection_reason(record, settings) is not None:
        return None
    start, end = sorted((record.query_start, record.query_end))
    return FilteredInterval(
        scaffold=record.query_name,
        target=record.target_name,
        query_length=record.query_length,
        start=start,
        end=end,
        mapping_quality=record.mapping_quality,
        alignment_block_length=record.alignment_block_length,
    )


def filter_records(
    lines: Iterable[str],
    settings: FilterSettings,
    stats: Optional[FilterStats] = None,
) -> Iterator[FilteredInterval]:
    """Stream surviving intervals from raw PAF lines.

    Duplicate alignments are kept; they are merged later for coverage but
    each one still counts as a hit.
    """
    if stats is None:
        stats = FilterStats()
    for line_num, line in enumerate(lines, 1):
        if not line.strip():
            continue
        stats.lines += 1
        record = parse_paf_line(line)
        if record is None:
            stats.malformed += 1
            logging.debug("Skipping malformed PAF line %d", line_num)
            continue
        reason = _rejection_reason(record, settings)
        if reason is not None:
            setattr(stats, reason, getattr(stats, reason) + 1)
            continue
        stats.kept += 1
        yield filter_record(record, settings)


@contextmanager
def open_paf(paf_path: Path | str) -> Iterator[TextIO]:
    """Open a PAF for reading; `.gz` is decompressed and `-` means stdin."""
    if str(paf_path) == "-":
        yield sys.stdin
        return
    path = Path(paf_path)
    if not path.exists():
        raise FileNotFoundError(f"PAF not readable: {path}")
    if path.suffix == ".gz":
        handle = gzip.open(path, "rt")
    else:
        handle = path.open("r")
    with handle:
        yield handle


def read_filtered_intervals(
    paf_path: Path | str,
    settings: FilterSettings,
    stats: Optional[FilterStats] = None,
) -> Iterator[FilteredInterval]:
    """Stream filtered intervals from a PAF file."""
    with open_paf(paf_path) as handle:
        yield from filter_records(handle, settings, stats)


def sort_intervals(intervals: Iterable[FilteredInterval]) -> List[FilteredInterval]:
    """Order intervals by (scaffold, target, start, end) for the coverage pass."""
    return sorted(intervals, key=lambda iv: (iv.scaffold, iv.target, iv.start, iv.end))
