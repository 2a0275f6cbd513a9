"""Databend suites benchmark trigger: stage a release or pull request build,
install it and run the benchmark query suites against it."""

__version__ = "0.1.0"

# Core components
from benchsuite.context import RunContext, RunParameters, RunnerProvider, Source
from benchsuite.queries.base import BenchmarkQuery, QueryResult
from benchsuite.runner.execute import run_queries, run_dataset
from benchsuite.trigger import (
    BenchmarkJob,
    JobOptions,
    JobOutcome,
    Matrix,
    Step,
    trigger_for_pull_request,
)

__all__ = [
    # Version
    "__version__",
    # Core
    "RunContext",
    "RunParameters",
    "RunnerProvider",
    "Source",
    "BenchmarkQuery",
    "QueryResult",
    # Execution
    "run_queries",
    "run_dataset",
    "BenchmarkJob",
    "JobOptions",
    "JobOutcome",
    "Matrix",
    "Step",
    "trigger_for_pull_request",
]
