from pathlib import Path

from ace_benchmark.charts import (
    has_report_data,
    load_storage_report,
    load_throughput_report,
    render_run_charts,
    summarise_throughput,
)
from ace_benchmark.orchestrator import RunSummary

THROUGHPUT = (
    "Name;Threads;Initial size;Time;Num creates;Num reads;Num updates;Num deletes;"
    "TPS create;TPS read;TPS update;TPS delete;TPS ping;TPS overall\n"
    "mixed;4;10;0,5;10;20;0;0;20;40;0;0;0;60\n"
    "mixed;4;10;1,0;30;50;0;0;40;60;0;0;0;100\n"
)

STORAGE = (
    "Time;Table name;Table size;Number of records;Bytes per record;Database size\n"
    "0,0;domain;512;1;512.0;2048\n"
    "0,0;pseudonym;1600;10;160.0;2048\n"
    "0,0;auditevent;96;1;96.0;2048\n"
    "1,5;domain;512;1;512.0;4096\n"
    "1,5;pseudonym;3200;20;160.0;4096\n"
    "1,5;auditevent;384;4;96.0;4096\n"
)


def _write(tmp_path: Path, name: str, content: str) -> Path:
    path = tmp_path / name
    path.write_text(content, encoding="utf-8")
    return path


def test_throughput_report_parses_decimal_comma(tmp_path):
    df = load_throughput_report(_write(tmp_path, "run.csv", THROUGHPUT))
    assert list(df["Time"]) == [0.5, 1.0]
    assert list(df["TPS overall"]) == [60, 100]


def test_storage_report_keeps_period_decimals(tmp_path):
    df = load_storage_report(_write(tmp_path, "storage.csv", STORAGE))
    assert list(df["Time"].unique()) == [0.0, 1.5]
    assert df["Bytes per record"].dtype.kind == "f"


def test_summarise_throughput_means(tmp_path):
    df = load_throughput_report(_write(tmp_path, "run.csv", THROUGHPUT))
    summary = summarise_throughput(df)
    assert summary["TPS create"] == 30.0
    assert summary["TPS overall"] == 80.0


def test_render_run_charts_writes_pngs(tmp_path):
    summary = RunSummary(
        name="mixed",
        report_path=_write(tmp_path, "mixed-2024.csv", THROUGHPUT),
        storage_path=_write(tmp_path, "mixed_DB_STORAGE-2024.csv", STORAGE),
    )

    paths = render_run_charts(summary, tmp_path)

    assert [path.name for path in paths] == [
        "mixed-2024_throughput.png",
        "mixed_DB_STORAGE-2024_storage.png",
    ]
    assert all(path.stat().st_size > 0 for path in paths)


def test_render_skips_empty_report(tmp_path):
    header_only = THROUGHPUT.splitlines()[0] + "\n"
    summary = RunSummary(
        name="empty",
        report_path=_write(tmp_path, "empty.csv", header_only),
        storage_path=None,
    )
    assert render_run_charts(summary, tmp_path) == []


def test_render_skips_reports_that_never_received_a_row(tmp_path):
    summary = RunSummary(
        name="short",
        report_path=_write(tmp_path, "short.csv", ""),
        storage_path=_write(tmp_path, "short_DB_STORAGE.csv", ""),
    )
    assert render_run_charts(summary, tmp_path) == []
    assert not has_report_data(summary.report_path)
    assert not has_report_data(tmp_path / "missing.csv")
    assert not has_report_data(None)
