from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator

import yaml

LOGGER = logging.getLogger("ace_benchmark.config")

RATE_FIELDS: tuple[str, ...] = (
    "create_rate",
    "read_rate",
    "update_rate",
    "delete_rate",
    "ping_rate",
)

NUMERIC_FIELDS: tuple[str, ...] = RATE_FIELDS + (
    "num_workers",
    "max_duration_ms",
    "initial_pool_size",
    "reporting_interval_ms",
    "db_space_interval_ms",
)

# YAML scenario keys mapped onto RunConfig fields
SCENARIO_RATE_KEYS: dict[str, str] = {
    "createRate": "create_rate",
    "readRate": "read_rate",
    "updateRate": "update_rate",
    "deleteRate": "delete_rate",
    "pingRate": "ping_rate",
}


class ConfigurationError(ValueError):
    """Raised when a run configuration or benchmark plan is invalid."""


@dataclass(frozen=True)
class RunConfig:
    """Validated, immutable description of a single benchmark run."""

    name: str
    create_rate: int = 0
    read_rate: int = 0
    update_rate: int = 0
    delete_rate: int = 0
    ping_rate: int = 0
    num_workers: int = 1
    max_duration_ms: int = 0
    initial_pool_size: int = 0
    reporting_interval_ms: int = 1_000
    report_db_space: bool = False
    db_space_interval_ms: int = 10_000

    def __post_init__(self) -> None:
        _validate(self)

    @property
    def rates(self) -> tuple[int, int, int, int, int]:
        return (
            self.create_rate,
            self.read_rate,
            self.update_rate,
            self.delete_rate,
            self.ping_rate,
        )

    @classmethod
    def builder(cls) -> RunConfigBuilder:
        return RunConfigBuilder()


@dataclass
class RunConfigBuilder:
    """Mutable accumulator for :class:`RunConfig` fields.

    Fields may be assigned directly or through :meth:`set`, which returns the
    builder so calls can be chained. Nothing is validated until :meth:`build`.
    """

    name: str | None = None
    create_rate: int = 0
    read_rate: int = 0
    update_rate: int = 0
    delete_rate: int = 0
    ping_rate: int = 0
    num_workers: int = 1
    max_duration_ms: int = 0
    initial_pool_size: int = 0
    reporting_interval_ms: int = 1_000
    report_db_space: bool = False
    db_space_interval_ms: int = 10_000

    def set(self, **values: Any) -> RunConfigBuilder:
        known = {f.name for f in dataclasses.fields(self)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ConfigurationError(f"Unknown configuration field(s): {', '.join(unknown)}")
        for key, value in values.items():
            setattr(self, key, value)
        return self

    def build(self) -> RunConfig:
        if self.name is None:
            raise ConfigurationError("Run name must be set")
        return RunConfig(**dataclasses.asdict(self))


@dataclass
class BenchmarkPlan:
    """Ordered list of runs plus the connector settings they share."""

    runs: list[RunConfig] = field(default_factory=list)
    connector_settings: dict[str, Any] = field(default_factory=dict)

    def __iter__(self) -> Iterator[RunConfig]:
        return iter(self.runs)

    def __len__(self) -> int:
        return len(self.runs)


def _validate(config: RunConfig) -> None:
    for name in NUMERIC_FIELDS:
        value = getattr(config, name)
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigurationError(f"{name} must be an integer, got {value!r}")
        if value < 0:
            raise ConfigurationError("All number values must be zero or positive")

    if not isinstance(config.report_db_space, bool):
        raise ConfigurationError("report_db_space must be a boolean")

    if sum(config.rates) != 100:
        raise ConfigurationError(
            f"All rates combined must add up to exactly one hundred, got {sum(config.rates)}"
        )

    if not isinstance(config.name, str) or not config.name.strip():
        raise ConfigurationError("Run name must not be empty")

    if config.reporting_interval_ms <= 0:
        raise ConfigurationError("Reporting interval must be greater than zero")

    if config.report_db_space and config.db_space_interval_ms <= 0:
        raise ConfigurationError("Database storage reporting interval must be greater than zero")

    if config.initial_pool_size == 0 and (
        config.read_rate > 0 or config.update_rate > 0 or config.delete_rate > 0
    ):
        raise ConfigurationError(
            "If read, update or delete is set, the number of pre-created records must be positive"
        )


def load_plan(path: str | Path | None) -> BenchmarkPlan:
    """Load a benchmark plan from YAML, or return the default plan."""
    if not path:
        return default_benchmark_plan()

    plan_path = Path(path)
    try:
        raw = yaml.safe_load(plan_path.read_text(encoding="utf-8")) or {}
    except OSError as exc:
        raise ConfigurationError(f"Unable to read benchmark plan {plan_path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Malformed benchmark plan {plan_path}: {exc}") from exc

    LOGGER.info("Loaded benchmark plan from %s", plan_path)
    return plan_from_mapping(raw)


def plan_from_mapping(raw: dict[str, Any]) -> BenchmarkPlan:
    if not isinstance(raw, dict):
        raise ConfigurationError("Benchmark plan must be a mapping")

    benchmark = raw.get("benchmark")
    if not isinstance(benchmark, dict):
        raise ConfigurationError("Benchmark plan is missing the 'benchmark' section")

    scenarios = benchmark.get("scenarios") or []
    if not isinstance(scenarios, list) or not scenarios:
        raise ConfigurationError("Benchmark plan must list at least one scenario")

    num_workers = _required(benchmark, "numThreads")
    repetitions = benchmark.get("numberOfRepetitions", 1)
    if not isinstance(repetitions, int) or repetitions < 1:
        raise ConfigurationError("numberOfRepetitions must be a positive integer")

    shared = {
        "num_workers": num_workers,
        "max_duration_ms": _required(benchmark, "maxTime"),
        "initial_pool_size": benchmark.get("initialDbSize", 0),
        "reporting_interval_ms": _required(benchmark, "reportingInterval"),
        "report_db_space": bool(benchmark.get("reportDbSpace", False)),
        "db_space_interval_ms": benchmark.get("reportingIntervalDbSpace", 10_000),
    }

    runs: list[RunConfig] = []
    for scenario in scenarios:
        if not isinstance(scenario, dict) or not scenario.get("name"):
            raise ConfigurationError(f"Scenario entries need a name: {scenario!r}")
        rates = {
            field_name: scenario.get(key, 0) for key, field_name in SCENARIO_RATE_KEYS.items()
        }
        for _ in range(repetitions):
            runs.append(
                RunConfigBuilder()
                .set(name=f"{scenario['name']}-{num_workers}-threads", **rates, **shared)
                .build()
            )

    connector_settings = raw.get("ace") or {}
    if not isinstance(connector_settings, dict):
        raise ConfigurationError("The 'ace' section must be a mapping")

    return BenchmarkPlan(runs=runs, connector_settings=dict(connector_settings))


def default_benchmark_plan() -> BenchmarkPlan:
    """Return the built-in suite of scenarios."""

    base = RunConfigBuilder().set(
        num_workers=8,
        max_duration_ms=60_000,
        initial_pool_size=1_000,
        reporting_interval_ms=1_000,
        db_space_interval_ms=10_000,
    )
    scenarios = {
        "create-only": (100, 0, 0, 0, 0),
        "read-heavy": (10, 80, 5, 5, 0),
        "mixed": (25, 25, 25, 25, 0),
        "ping": (0, 0, 0, 0, 100),
    }

    runs = []
    for name, rates in scenarios.items():
        builder = dataclasses.replace(base)
        builder.set(name=f"{name}-{base.num_workers}-threads", **dict(zip(RATE_FIELDS, rates)))
        runs.append(builder.build())
    return BenchmarkPlan(runs=runs)


def _required(section: dict[str, Any], key: str) -> Any:
    if key not in section:
        raise ConfigurationError(f"Benchmark plan is missing '{key}'")
    return section[key]
