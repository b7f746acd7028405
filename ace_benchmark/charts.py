from __future__ import annotations

import logging
from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import pandas as pd
import seaborn as sns

from .orchestrator import RunSummary

LOGGER = logging.getLogger("ace_benchmark.charts")

sns.set_style("whitegrid")
plt.rcParams["figure.dpi"] = 100
plt.rcParams["savefig.dpi"] = 200
plt.rcParams["font.size"] = 10
plt.rcParams["axes.labelsize"] = 11
plt.rcParams["axes.titlesize"] = 13
plt.rcParams["legend.fontsize"] = 9

TPS_COLUMNS: dict[str, str] = {
    "TPS create": "Create",
    "TPS read": "Read",
    "TPS update": "Update",
    "TPS delete": "Delete",
    "TPS ping": "Ping",
}

OPERATION_COLORS = {
    "Create": "#2E86AB",
    "Read": "#A23B72",
    "Update": "#F18F01",
    "Delete": "#C73E1D",
    "Ping": "#6A994E",
}


def _decimal_comma(value: str) -> float:
    return float(value.replace(",", "."))


def load_throughput_report(path: Path) -> pd.DataFrame:
    return pd.read_csv(path, sep=";", converters={"Time": _decimal_comma})


def load_storage_report(path: Path) -> pd.DataFrame:
    return pd.read_csv(path, sep=";", converters={"Time": _decimal_comma})


def has_report_data(path: Path | None) -> bool:
    """A report file only gains content once its first row has been written."""
    return path is not None and path.exists() and path.stat().st_size > 0


def summarise_throughput(df: pd.DataFrame) -> dict[str, float]:
    """Mean throughput per operation plus the overall figure."""
    if df.empty:
        return {}
    columns = list(TPS_COLUMNS) + ["TPS overall"]
    return {column: float(df[column].mean()) for column in columns if column in df.columns}


def render_run_charts(summary: RunSummary, output_dir: Path) -> list[Path]:
    """Render the charts of one finished run next to its reports."""
    paths: list[Path] = []
    if has_report_data(summary.report_path):
        df = load_throughput_report(summary.report_path)
        chart_path = output_dir / f"{summary.report_path.stem}_throughput.png"
        if render_throughput_chart(df, chart_path, title=summary.name):
            paths.append(chart_path)
    else:
        LOGGER.warning("No throughput rows recorded for %s", summary.name)

    if summary.storage_path is not None and not has_report_data(summary.storage_path):
        LOGGER.warning("No storage rows recorded for %s", summary.name)
    elif summary.storage_path is not None:
        df = load_storage_report(summary.storage_path)
        chart_path = output_dir / f"{summary.storage_path.stem}_storage.png"
        if render_storage_chart(df, chart_path, title=summary.name):
            paths.append(chart_path)
    return paths


def render_throughput_chart(df: pd.DataFrame, chart_path: Path, title: str) -> bool:
    if df.empty:
        LOGGER.warning("No throughput data available for %s", chart_path.name)
        return False

    long_df = df.melt(
        id_vars=["Time"],
        value_vars=[column for column in TPS_COLUMNS if column in df.columns],
        var_name="operation",
        value_name="tps",
    )
    long_df["operation"] = long_df["operation"].map(TPS_COLUMNS)
    # Operations with a zero rate stay flat at zero and only clutter the legend
    active = long_df.groupby("operation")["tps"].transform("max") > 0
    long_df = long_df[active]

    fig, ax = plt.subplots(figsize=(12, 6))
    if not long_df.empty:
        sns.lineplot(
            data=long_df,
            x="Time",
            y="tps",
            hue="operation",
            palette=OPERATION_COLORS,
            marker="o",
            ax=ax,
        )
    ax.plot(df["Time"], df["TPS overall"], color="#333333", linestyle="--", label="Overall")
    ax.set_title(f"Throughput: {title}", fontweight="bold", pad=15)
    ax.set_xlabel("Time (s)", fontweight="semibold")
    ax.set_ylabel("Operations per second", fontweight="semibold")
    ax.legend(loc="best", frameon=True)
    ax.set_ylim(bottom=0)

    fig.savefig(chart_path, bbox_inches="tight", facecolor="white", edgecolor="none")
    plt.close(fig)
    LOGGER.info("Rendering chart %s", chart_path)
    return True


def render_storage_chart(df: pd.DataFrame, chart_path: Path, title: str) -> bool:
    if df.empty:
        LOGGER.warning("No storage data available for %s", chart_path.name)
        return False

    fig, (size_ax, bpr_ax) = plt.subplots(1, 2, figsize=(14, 5))
    sns.lineplot(data=df, x="Time", y="Table size", hue="Table name", marker="o", ax=size_ax)
    size_ax.set_title("Table size", fontweight="bold")
    size_ax.set_xlabel("Time (s)")
    size_ax.set_ylabel("Bytes")

    sns.lineplot(data=df, x="Time", y="Bytes per record", hue="Table name", marker="o", ax=bpr_ax)
    bpr_ax.set_title("Bytes per record", fontweight="bold")
    bpr_ax.set_xlabel("Time (s)")
    bpr_ax.set_ylabel("Bytes")

    fig.suptitle(f"Storage: {title}", fontweight="bold")
    fig.savefig(chart_path, bbox_inches="tight", facecolor="white", edgecolor="none")
    plt.close(fig)
    LOGGER.info("Rendering chart %s", chart_path)
    return True
