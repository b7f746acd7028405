"""
Benchmark driver for the ACE pseudonymisation service.

This package drives a weighted mix of create/read/update/delete/ping operations
from a pool of worker threads against a remote record service, and writes
periodic throughput and storage reports as semicolon-delimited text.
"""

from .config import BenchmarkPlan, ConfigurationError, RunConfig, RunConfigBuilder
from .orchestrator import Orchestrator, RunSummary

__all__ = [
    "BenchmarkPlan",
    "ConfigurationError",
    "Orchestrator",
    "RunConfig",
    "RunConfigBuilder",
    "RunSummary",
]
