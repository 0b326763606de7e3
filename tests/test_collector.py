import pandas as pd

from kvbench.benchmarks.collector import SUMMARY_COLUMNS, BenchmarkResultCollector
from kvbench.benchmarks.stats import Histogram, ScenarioResult


def _result(name, histogram=None, mb_per_s=12.5):
    return ScenarioResult(
        name=name,
        ops=100,
        bytes=11600,
        elapsed_s=0.5,
        micros_per_op=5000.0,
        mb_per_s=mb_per_s,
        message="",
        histogram=histogram,
    )


def test_empty_collector_has_summary_columns():
    frame = BenchmarkResultCollector().build_dataframe()
    assert frame.empty
    assert list(frame.columns) == SUMMARY_COLUMNS


def test_summary_and_histogram_frames(tmp_path):
    hist = Histogram()
    for value in (3.0, 30.0, 300.0):
        hist.add(value)
    collector = BenchmarkResultCollector([_result("fillseq", hist)])
    collector.add(_result("stats", mb_per_s=None))

    summary = collector.build_dataframe()
    assert summary["scenario"].tolist() == ["fillseq", "stats"]
    assert summary.loc[0, "p99_us"] <= 300.0
    assert pd.isna(summary.loc[1, "mb_per_s"])

    histograms = collector.build_histogram_dataframe()
    assert histograms["scenario"].unique().tolist() == ["fillseq"]
    assert histograms["count"].sum() == 3

    artefacts = collector.write(tmp_path / "out")
    assert set(artefacts) == {"summary", "histograms"}
    assert pd.read_csv(artefacts["summary"]).shape[0] == 2
