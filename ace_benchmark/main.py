from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path

from .config import BenchmarkPlan, ConfigurationError, load_plan
from .connector.base import ConnectorError, ConnectorFactory
from .connector.memory import InMemoryConnectorFactory
from .orchestrator import Orchestrator

LOGGER = logging.getLogger("ace_benchmark")

CONNECTORS = ("ace", "memory")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="ACE Benchmark Driver")
    parser.add_argument(
        "--config",
        default=os.environ.get("BENCHMARK_CONFIG_PATH"),
        help="YAML file describing the benchmark plan and service connection",
    )
    parser.add_argument(
        "--output-dir",
        default=os.environ.get("BENCHMARK_OUTPUT_DIR", "results"),
        help="Directory to store benchmark reports and charts",
    )
    parser.add_argument(
        "--connector",
        choices=CONNECTORS,
        default=os.environ.get("BENCHMARK_CONNECTOR", "ace"),
        help="Service connector to drive (memory runs against a local dict)",
    )
    parser.add_argument(
        "--shared-connector",
        action="store_true",
        help="Share one connector between all workers instead of one per worker",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=_env_int("BENCHMARK_SEED"),
        help="Base seed for the per-worker random generators",
    )
    parser.add_argument(
        "--no-charts",
        action="store_true",
        help="Skip chart rendering after each run",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only print the planned runs without executing them",
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("BENCHMARK_LOG_LEVEL", "INFO"),
        help="Logging level",
    )
    return parser.parse_args(argv)


def _env_int(name: str) -> int | None:
    value = os.environ.get(name)
    if value is None or value == "":
        return None
    try:
        return int(value)
    except ValueError:
        print(f"invalid {name} value {value!r}; ignoring", file=sys.stderr)
        return None


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def build_connector_factory(kind: str, plan: BenchmarkPlan) -> ConnectorFactory:
    if kind == "memory":
        return InMemoryConnectorFactory()
    if kind == "ace":
        from .connector.ace import ACEConnectorFactory

        return ACEConnectorFactory.from_mapping(plan.connector_settings)
    raise ConfigurationError(f"Unknown connector: {kind}")


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    setup_logging(args.log_level)

    try:
        plan = load_plan(args.config)
        factory = None if args.dry_run else build_connector_factory(args.connector, plan)
    except ConfigurationError as exc:
        LOGGER.error("Invalid configuration: %s", exc)
        return 2

    if args.dry_run:
        _print_plan(plan)
        return 0

    output_dir = Path(args.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    LOGGER.info("Benchmark output directory: %s", output_dir)
    LOGGER.info("Connector: %s (%s)", args.connector, "shared" if args.shared_connector else "per worker")

    manifest: dict[str, dict] = {}
    exit_code = 0
    for config in plan:
        orchestrator = Orchestrator(
            config,
            factory,
            output_dir,
            share_connector=args.shared_connector,
            seed=args.seed,
        )
        try:
            summary = orchestrator.run()
        except ConnectorError:
            LOGGER.exception("Run %s aborted by connector failure", config.name)
            exit_code = 1
            continue

        entry = {
            "report": str(summary.report_path),
            "storage_report": str(summary.storage_path) if summary.storage_path else None,
            "counts": summary.counts,
            "failed_workers": summary.failed_workers,
            "duration_ms": summary.duration_ms,
        }
        if not args.no_charts:
            entry.update(_render_charts(summary, output_dir))
        manifest[config.name] = entry

        if summary.interrupted:
            LOGGER.warning("Interrupted; skipping remaining runs")
            exit_code = 130
            break

    manifest_path = output_dir / "benchmark_manifest.json"
    with open(manifest_path, "w", encoding="utf-8") as f:
        json.dump(manifest, f, indent=2)
    LOGGER.info("Benchmark manifest written to %s", manifest_path)
    return exit_code


def _render_charts(summary, output_dir: Path) -> dict[str, object]:
    from .charts import (
        has_report_data,
        load_throughput_report,
        render_run_charts,
        summarise_throughput,
    )

    charts = render_run_charts(summary, output_dir)
    mean_tps: dict[str, float] = {}
    if has_report_data(summary.report_path):
        mean_tps = summarise_throughput(load_throughput_report(summary.report_path))
    if mean_tps:
        LOGGER.info(
            "Mean throughput for %s: %s",
            summary.name,
            ", ".join(f"{column}={value:.1f}" for column, value in mean_tps.items()),
        )
    return {"charts": [str(path) for path in charts], "mean_tps": mean_tps}


def _print_plan(plan: BenchmarkPlan) -> None:
    for config in plan:
        print(
            f"  - {config.name}: create={config.create_rate} read={config.read_rate} "
            f"update={config.update_rate} delete={config.delete_rate} ping={config.ping_rate} "
            f"workers={config.num_workers} duration={config.max_duration_ms}ms "
            f"initial={config.initial_pool_size} interval={config.reporting_interval_ms}ms "
            f"storage={'on' if config.report_db_space else 'off'}"
        )


if __name__ == "__main__":
    sys.exit(main())
