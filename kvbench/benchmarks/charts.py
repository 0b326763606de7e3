from __future__ import annotations

import logging
from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns

LOGGER = logging.getLogger("kvbench.benchmark.charts")

sns.set_style("whitegrid")
plt.rcParams["figure.dpi"] = 100
plt.rcParams["savefig.dpi"] = 150
plt.rcParams["font.size"] = 10
plt.rcParams["axes.labelsize"] = 11
plt.rcParams["axes.titlesize"] = 13

WRITE_COLOR = "#2E86AB"
READ_COLOR = "#F18F01"


def render_results(
    summary: pd.DataFrame,
    histograms: pd.DataFrame,
    output_dir: Path,
) -> list[Path]:
    """Render the scenario overview chart and one latency chart per scenario."""
    output_dir.mkdir(parents=True, exist_ok=True)
    charts: list[Path] = []
    if summary.empty:
        LOGGER.warning("No scenario results available for charts")
        return charts

    charts.append(_render_overview_chart(summary, output_dir / "scenarios.png"))
    if not histograms.empty:
        for scenario, frame in histograms.groupby("scenario", sort=False):
            chart_path = output_dir / f"latency_{scenario}.png"
            charts.append(_render_latency_chart(str(scenario), frame, chart_path))
    return charts


def _scenario_color(name: str) -> str:
    return READ_COLOR if name.startswith("read") else WRITE_COLOR


def _render_overview_chart(summary: pd.DataFrame, chart_path: Path) -> Path:
    """Micros/op and MB/s per scenario, side by side."""
    fig, (ax_latency, ax_rate) = plt.subplots(1, 2, figsize=(14, 6))
    names = summary["scenario"].astype(str).tolist()
    colors = [_scenario_color(name) for name in names]

    bars = ax_latency.bar(
        names,
        summary["micros_per_op"],
        color=colors,
        alpha=0.85,
        edgecolor="white",
        linewidth=1.5,
    )
    ax_latency.set_ylabel("Microseconds per operation", fontweight="semibold")
    ax_latency.set_title("Average Latency by Scenario", fontweight="bold", pad=15)
    for bar in bars:
        height = bar.get_height()
        ax_latency.text(
            bar.get_x() + bar.get_width() / 2.0,
            height,
            f"{height:.1f}",
            ha="center",
            va="bottom",
            fontsize=8,
        )

    rates = pd.to_numeric(summary["mb_per_s"], errors="coerce").fillna(0.0)
    ax_rate.bar(names, rates, color=colors, alpha=0.85, edgecolor="white", linewidth=1.5)
    ax_rate.set_ylabel("Throughput (MB/s)", fontweight="semibold")
    ax_rate.set_title("Throughput by Scenario", fontweight="bold", pad=15)

    for ax in (ax_latency, ax_rate):
        ax.tick_params(axis="x", labelrotation=45)
        ax.grid(True, alpha=0.3, axis="y", linestyle="--")
        ax.spines["top"].set_visible(False)
        ax.spines["right"].set_visible(False)

    plt.tight_layout()
    fig.savefig(chart_path, bbox_inches="tight", facecolor="white")
    plt.close(fig)
    LOGGER.info("Rendering chart %s", chart_path)
    return chart_path


def _render_latency_chart(scenario: str, frame: pd.DataFrame, chart_path: Path) -> Path:
    """Bucket counts on a log latency axis with the cumulative share overlaid."""
    fig, ax = plt.subplots(figsize=(10, 6))

    left = frame["left_us"].to_numpy(dtype=float)
    right = frame["right_us"].to_numpy(dtype=float)
    # open-ended last bucket is drawn one octave wide
    right = np.where(np.isinf(right), left * 2, right)
    right = np.maximum(right, 1.0)
    left = np.maximum(left, right / 2)
    widths = right - left
    counts = frame["count"].to_numpy()

    ax.bar(
        left,
        counts,
        width=widths,
        align="edge",
        color=_scenario_color(scenario),
        alpha=0.8,
        edgecolor="white",
    )
    ax.set_xscale("log")
    ax.set_xlabel("Latency (microseconds)", fontweight="semibold")
    ax.set_ylabel("Operations", fontweight="semibold")
    ax.set_title(f"Latency Distribution: {scenario}", fontweight="bold", pad=15)

    cumulative = np.cumsum(counts) / max(counts.sum(), 1) * 100.0
    share = ax.twinx()
    share.plot(right, cumulative, color="#C73E1D", marker="o", markersize=3)
    share.set_ylabel("Cumulative %", fontweight="semibold")
    share.set_ylim(0, 100)
    share.grid(False)

    plt.tight_layout()
    fig.savefig(chart_path, bbox_inches="tight", facecolor="white")
    plt.close(fig)
    LOGGER.info("Rendering chart %s", chart_path)
    return chart_path
