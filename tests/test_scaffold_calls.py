import pytest

from paf_filter import FilteredInterval
from scaffold_calls import (
    ClassifierConfig,
    ScaffoldCoverageBuilder,
    build_calls_table,
    classify_scaffold,
    coverage_fraction,
    merge_covered_bases,
    plot_fraction_scatter,
    write_calls_table,
)


def iv(scaffold, target, start, end, qlen=1000):
    return FilteredInterval(scaffold, target, qlen, start, end)


@pytest.fixture
def config():
    return ClassifierConfig.from_options("chrX", "chrY", min_frac=0.8, dominance_ratio=2.0)


def test_from_options_resolves_shared_threshold():
    cfg = ClassifierConfig.from_options("chrX", "chrY", min_frac=0.6, threshold2=0.3)
    assert cfg.threshold1 == 0.6
    assert cfg.threshold2 == 0.3
    assert cfg.label1 == "X"
    assert cfg.label2 == "Y"


def test_overlapping_intervals_merge_instead_of_summing():
    assert merge_covered_bases([(100, 400), (300, 700)]) == 600


def test_adjacent_intervals_merge_and_gaps_flush():
    assert merge_covered_bases([(0, 100), (100, 200), (250, 300)]) == 250


def test_merge_is_idempotent():
    spans = [(0, 50), (20, 80), (100, 150), (120, 130), (400, 500)]
    covered = merge_covered_bases(spans)
    merged = [(0, 80), (100, 150), (400, 500)]
    assert covered == merge_covered_bases(merged) == 230


def test_merge_invariant_to_order_of_equal_starts():
    assert merge_covered_bases([(10, 20), (10, 90), (50, 60)]) == merge_covered_bases(
        [(10, 90), (10, 20), (50, 60)]
    )


def test_merge_empty_input():
    assert merge_covered_bases([]) == 0


def test_builder_counts_every_hit_and_flushes_on_key_change():
    builder = ScaffoldCoverageBuilder()
    builder.add_all(
        [
            iv("q1", "chrX", 0, 300),
            iv("q1", "chrX", 100, 200),
            iv("q1", "chrX", 100, 200),
            iv("q1", "chrY", 250, 400),
            iv("q2", "chrX", 0, 10, qlen=50),
        ]
    )
    q1, q2 = builder.finish()

    assert q1.scaffold_length == 1000
    assert q1.covered_bases("chrX") == 300
    assert q1.hit_count("chrX") == 3
    assert q1.covered_bases("chrY") == 150
    assert q1.hit_count("chrY") == 1
    assert q2.covered_bases("chrX") == 10
    assert q2.covered_bases("chrY") == 0
    assert q2.hit_count("chrY") == 0


def test_builder_rejects_adds_after_finish():
    builder = ScaffoldCoverageBuilder()
    builder.finish()
    with pytest.raises(RuntimeError):
        builder.add(iv("q1", "chrX", 0, 1))


def test_builder_first_length_wins():
    builder = ScaffoldCoverageBuilder()
    builder.add_all([iv("q1", "chrX", 0, 10, qlen=100), iv("q1", "chrX", 5, 20, qlen=999)])
    (record,) = builder.finish()
    assert record.scaffold_length == 100


def test_coverage_fraction_zero_length():
    assert coverage_fraction(50, 0) == 0.0
    assert coverage_fraction(50, 200) == 0.25


@pytest.mark.parametrize(
    "cov1, cov2, frac1, frac2, expected",
    [
        (0, 0, 0.0, 0.0, "-"),
        (600, 0, 0.9, 0.0, "X_only"),
        (600, 0, 0.5, 0.0, "-"),
        (0, 900, 0.0, 0.9, "Y_only"),
        (0, 100, 0.0, 0.1, "-"),
        (900, 300, 0.9, 0.3, "X_enriched"),
        (300, 900, 0.3, 0.9, "Y_enriched"),
        (500, 400, 0.5, 0.4, "-"),
        (900, 500, 0.9, 0.5, "-"),
    ],
)
def test_classify_scaffold_rules(config, cov1, cov2, frac1, frac2, expected):
    assert classify_scaffold(cov1, cov2, frac1, frac2, config) == expected


def test_classify_tie_breaks_to_target1():
    cfg = ClassifierConfig.from_options("chrX", "chrY", min_frac=0.8, dominance_ratio=1.0)
    assert classify_scaffold(800, 800, 0.8, 0.8, cfg) == "X_enriched"


def test_classify_uses_per_target_thresholds():
    cfg = ClassifierConfig.from_options("chrX", "chrY", min_frac=0.8, threshold2=0.5)
    assert classify_scaffold(0, 500, 0.0, 0.5, cfg) == "Y_only"
    assert classify_scaffold(500, 0, 0.5, 0.0, cfg) == "-"


def test_build_calls_table_scenarios():
    cfg = ClassifierConfig.from_options("chrX", "chrY", min_frac=0.8, threshold1=0.5)
    intervals = [
        iv("q1", "chrX", 0, 600),
        iv("q2", "chrX", 100, 400),
        iv("q2", "chrX", 300, 700),
        iv("q3", "chrX", 0, 900),
        iv("q3", "chrY", 0, 300),
        iv("q4", "chrX", 0, 500),
        iv("q4", "chrY", 0, 400),
    ]
    df = build_calls_table(intervals, cfg).set_index("scaffold")

    assert list(df.index) == ["q1", "q2", "q3", "q4"]
    assert df.loc["q1", "X_cov_bp"] == 600
    assert df.loc["q1", "Y_cov_bp"] == 0
    assert df.loc["q1", "call"] == "X_only"
    assert df.loc["q2", "X_cov_bp"] == 600
    assert df.loc["q2", "X_hits"] == 2
    assert df.loc["q3", "X_frac"] == pytest.approx(0.9)
    assert df.loc["q3", "Y_frac"] == pytest.approx(0.3)
    assert df.loc["q3", "call"] == "X_enriched"
    # 0.5 passes threshold1 here but 0.5 < 0.4 * 2
    assert df.loc["q4", "call"] == "-"


def test_build_calls_table_coverage_never_exceeds_length(config):
    intervals = [
        iv("q1", "chrX", 0, 800),
        iv("q1", "chrX", 0, 1000),
        iv("q1", "chrX", 200, 1000),
        iv("q1", "chrY", 0, 1000),
        iv("q1", "chrY", 999, 1000),
    ]
    row = build_calls_table(intervals, config).iloc[0]
    assert row["X_cov_bp"] == 1000
    assert row["Y_cov_bp"] == 1000
    assert row["X_frac"] <= 1.0
    assert row["X_hits"] == 3
    assert row["Y_hits"] == 2


def test_zero_length_scaffold_has_zero_fraction(config):
    df = build_calls_table([iv("q0", "chrX", 0, 100, qlen=0)], config)
    assert df.loc[0, "X_frac"] == 0.0
    assert df.loc[0, "call"] == "-"


def test_write_calls_table_format(tmp_path):
    cfg = ClassifierConfig.from_options("chrZ", "chrW", label1="Z", label2="W", min_frac=0.5)
    df = build_calls_table([iv("scf_b", "chrZ", 0, 600), iv("scf_a", "chrW", 0, 1)], cfg)
    out = tmp_path / "calls" / "calls.tsv"
    write_calls_table(df, out)

    lines = out.read_text().splitlines()
    assert lines[0].split("\t") == [
        "scaffold",
        "scaffold_len",
        "Z_cov_bp",
        "W_cov_bp",
        "Z_frac",
        "W_frac",
        "Z_hits",
        "W_hits",
        "call",
    ]
    assert lines[1] == "scf_a\t1000\t0\t1\t0.000000\t0.001000\t0\t1\t-"
    assert lines[2] == "scf_b\t1000\t600\t0\t0.600000\t0.000000\t1\t0\tZ_only"


def test_empty_input_writes_header_only(tmp_path, config):
    df = build_calls_table([], config)
    out = tmp_path / "calls.tsv"
    write_calls_table(df, out)
    assert out.read_text().splitlines() == ["\t".join(config.columns)]


def test_plot_fraction_scatter_writes_png(tmp_path, config):
    df = build_calls_table([iv("q1", "chrX", 0, 900), iv("q2", "chrY", 0, 100)], config)
    path = plot_fraction_scatter(df, config, tmp_path / "fig" / "fractions.png")
    assert path.exists()
    assert path.stat().st_size > 0


def test_identical_labels_rejected():
    with pytest.raises(ValueError, match="Labels must differ"):
        ClassifierConfig.from_options("chrA", "chrB", label1="S", label2="S")


def test_table_fractions_come_from_coverage_fraction(monkeypatch, config):
    import scaffold_calls

    calls = []

    def recording_fraction(covered, length):
        calls.append((covered, length))
        return coverage_fraction(covered, length)

    monkeypatch.setattr(scaffold_calls, "coverage_fraction", recording_fraction)
    df = build_calls_table([iv("q1", "chrX", 0, 900), iv("q1", "chrY", 0, 100)], config)

    assert sorted(calls) == [(100, 1000), (900, 1000)]
    assert df.loc[0, "X_frac"] == pytest.approx(0.9)
    assert df.loc[0, "call"] == "X_enriched"
