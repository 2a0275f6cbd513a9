"""Conditional benchmark trigger.

A run is gated, planned into an ordered list of steps per dataset of the
matrix, and executed strictly sequentially. Any step failure aborts the
job; nothing is retried.
"""

import math
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError

from benchsuite import db, events
from benchsuite.config import (
    BENCHMARK_LABEL,
    BENCHMARK_STEP_TIMEOUT,
    BUILD_PROFILE,
    DEFAULT_DATASETS,
    DEFAULT_DB_URL,
    DEFAULT_INSTALL_DIR,
    DEFAULT_OUT_DIR,
    DEFAULT_TARGET,
    DEFAULT_TRIES,
    ENV_DB_URL,
    JOB_TIMEOUT,
    MAX_PARALLEL,
    build_db_url,
    get_env,
)
from benchsuite.context import RunContext, RunParameters, Source
from benchsuite.exceptions import (
    BenchmarkStepError,
    BenchSuiteError,
    ConfigurationError,
    JobTimeoutError,
)
from benchsuite.logging_config import get_logger
from benchsuite.process import build_env
from benchsuite.queries.registry import load_queries_dir, queries_for
from benchsuite.report.generate import generate
from benchsuite.runner.aggregate import build_results, collect, summarize, write_outputs
from benchsuite.runner.execute import run_queries
from benchsuite.services import Deployment
from benchsuite.staging import artifacts, checkout, install

logger = get_logger("trigger")


@dataclass
class Step:
    """One step of a job; ``action`` receives the step's effective timeout in seconds."""

    name: str
    action: Callable[[Optional[float]], Any]
    timeout: Optional[float] = None


@dataclass
class Matrix:
    datasets: Sequence[str] = DEFAULT_DATASETS
    fail_fast: bool = True
    max_parallel: int = MAX_PARALLEL

    def __post_init__(self):
        if self.max_parallel != MAX_PARALLEL:
            raise ConfigurationError(
                f"max_parallel must be {MAX_PARALLEL}, got {self.max_parallel}"
            )
        self.datasets = tuple(self.datasets)
        if not self.datasets:
            raise ConfigurationError("Matrix needs at least one dataset")
        if len(set(self.datasets)) != len(self.datasets):
            raise ConfigurationError(f"Duplicate datasets in matrix: {list(self.datasets)}")


@dataclass
class JobOptions:
    workdir: str = "."
    out_dir: str = DEFAULT_OUT_DIR
    target: str = DEFAULT_TARGET
    install_dir: str = DEFAULT_INSTALL_DIR
    use_sudo: bool = True
    skip_checkout: bool = False
    start_services: bool = True
    query_config: Optional[str] = None
    queries_dir: Optional[str] = None
    db_url: Optional[str] = None
    tries: int = DEFAULT_TRIES
    overwrite: bool = False
    echo_sql: bool = False
    job_timeout: float = JOB_TIMEOUT
    step_timeout: float = BENCHMARK_STEP_TIMEOUT

    def __post_init__(self):
        if self.tries < 1:
            raise ConfigurationError(f"tries must be at least 1, got {self.tries}")


@dataclass
class JobOutcome:
    skipped: bool
    reason: str = ""
    datasets: Dict[str, str] = field(default_factory=dict)  # dataset -> "success" | "failure"
    report_path: Optional[str] = None


def release_gate(params: RunParameters) -> bool:
    """Direct invocations only run for releases."""
    return params.source is Source.RELEASE


def label_gate(labels: Sequence[str], label: str = BENCHMARK_LABEL) -> bool:
    """Pull requests only run when they carry the benchmark label."""
    return label in labels


def resolve_db_url(options: JobOptions) -> str:
    return options.db_url or get_env(ENV_DB_URL) or build_db_url() or DEFAULT_DB_URL


class BenchmarkJob:
    """Stages a databend build for ``params`` and benchmarks it per dataset."""

    def __init__(
        self,
        params: RunParameters,
        options: Optional[JobOptions] = None,
        matrix: Optional[Matrix] = None,
        engine_factory: Callable = db.make_engine,
        deployment_factory: Callable = Deployment,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.params = params
        self.options = options or JobOptions()
        self.matrix = matrix or Matrix()
        self.engine_factory = engine_factory
        self.deployment_factory = deployment_factory
        self.clock = clock
        self.ctx = RunContext(
            run_id=params.run_id,
            out_dir=Path(self.options.out_dir),
            extra={"params": params.to_dict()},
        )
        self._deadline: Optional[float] = None

    def job_env(self) -> Dict[str, str]:
        return build_env(
            {
                "BUILD_PROFILE": BUILD_PROFILE,
                "RUNNER_PROVIDER": self.params.runner_provider.value,
            }
        )

    # Planning

    def plan(self, dataset: str) -> List[Step]:
        """Ordered steps for one matrix instance."""
        steps: List[Step] = []
        if not self.options.skip_checkout:
            if self.params.is_release:
                steps.append(Step("Checkout default branch", self._checkout))
            else:
                ref = checkout.ref_for(self.params)
                steps.append(Step(f"Checkout {ref}", self._checkout))

        if self.params.is_release:
            steps.append(Step("Download artifact for release", self._stage))
        else:
            steps.append(Step("Download artifact for pr", self._stage))

        steps.append(Step("Setup Databend Binary", self._install))
        steps.append(
            Step(
                f"Benchmark {dataset}",
                lambda timeout: self._benchmark(dataset, timeout),
                timeout=self.options.step_timeout,
            )
        )
        return steps

    # Step actions

    def _checkout(self, timeout):
        return checkout.checkout(self.params, self.options.workdir, env=self.job_env(), timeout=timeout)

    def _stage(self, timeout):
        return artifacts.stage_artifact(
            self.params,
            self.options.workdir,
            target=self.options.target,
            env=self.job_env(),
            timeout=timeout,
        )

    def _install(self, timeout):
        source_dir = artifacts.binaries_dir(self.options.workdir)
        install.install_binaries(
            source_dir, self.options.install_dir, use_sudo=self.options.use_sudo, timeout=timeout
        )
        return install.print_versions(self.options.install_dir, env=self.job_env(), timeout=timeout)

    def _queries(self, dataset: str):
        if self.options.queries_dir:
            return load_queries_dir(str(Path(self.options.queries_dir) / dataset), dataset)
        queries = list(queries_for(dataset))
        if not queries:
            raise ConfigurationError(f"No queries registered for dataset '{dataset}'")
        return queries

    def _benchmark(self, dataset: str, timeout: Optional[float]):
        deadline = self.clock() + timeout if timeout is not None else None
        queries = self._queries(dataset)

        def _run():
            db_url = resolve_db_url(self.options)
            try:
                engine = self.engine_factory(db_url, echo=self.options.echo_sql)
            except SQLAlchemyError as e:
                raise ConfigurationError(f"Cannot create engine for query endpoint: {e}") from e
            try:
                try:
                    db.ping(engine)
                except SQLAlchemyError as e:
                    raise BenchmarkStepError(f"Query endpoint is not reachable: {e}") from e
                return run_queries(
                    engine,
                    self.ctx,
                    self.params,
                    dataset,
                    queries,
                    tries=self.options.tries,
                    deadline=deadline,
                    overwrite=self.options.overwrite,
                    clock=self.clock,
                )
            finally:
                engine.dispose()

        if not self.options.start_services:
            return _run()
        with self.deployment_factory(
            bin_dir=self.options.install_dir,
            query_config=self.options.query_config,
            log_dir=self.ctx.run_dir / "logs",
            env=self.job_env(),
        ):
            return _run()

    # Execution

    def _effective_timeout(self, step: Step) -> float:
        remaining = self._deadline - self.clock()
        if remaining <= 0:
            raise JobTimeoutError(
                f"Job exceeded {self.options.job_timeout:.0f}s before step '{step.name}'"
            )
        return min(step.timeout if step.timeout is not None else math.inf, remaining)

    def _run_step(self, step: Step):
        timeout = self._effective_timeout(step)
        logger.info(f"Step: {step.name}", extra={"step": step.name, "timeout": timeout})
        started = self.clock()
        result = step.action(timeout)
        elapsed = self.clock() - started
        if elapsed > timeout:
            raise JobTimeoutError(f"Step '{step.name}' took {elapsed:.0f}s, limit {timeout:.0f}s")
        return result

    def run_instance(self, dataset: str) -> None:
        """Run every planned step for one dataset; the job timeout covers the whole instance."""
        self._deadline = self.clock() + self.options.job_timeout
        for step in self.plan(dataset):
            self._run_step(step)

    def run(self) -> JobOutcome:
        outcome = JobOutcome(skipped=False)
        first_error: Optional[BenchSuiteError] = None
        logger.info(
            f"Benchmarking {self.params.source.value} {self.params.source_id} at {self.params.sha}",
            extra=self.params.to_dict(),
        )
        try:
            for dataset in self.matrix.datasets:
                try:
                    self.run_instance(dataset)
                    outcome.datasets[dataset] = "success"
                except BenchSuiteError as e:
                    outcome.datasets[dataset] = "failure"
                    logger.error(f"Dataset {dataset} failed: {e}", extra={"dataset": dataset})
                    first_error = first_error or e
                    if self.matrix.fail_fast:
                        break
        finally:
            outcome.report_path = self.write_report()

        if first_error is not None:
            raise first_error
        return outcome

    def write_report(self) -> Optional[str]:
        collected = collect(self.ctx)
        if not collected["items"]:
            return None
        summary = summarize(collected)
        results = build_results(collected, params=self._result_params())
        write_outputs(self.ctx, results, summary)
        return generate(self.ctx, summary, results)

    def _result_params(self) -> Dict[str, str]:
        d = self.ctx.extra["params"]
        return {k: d[k] for k in ("sha", "run_id", "source", "source_id", "version")}


def trigger(
    params: RunParameters,
    options: Optional[JobOptions] = None,
    matrix: Optional[Matrix] = None,
    **job_kwargs,
) -> JobOutcome:
    """Direct invocation: runs only for releases."""
    if not release_gate(params):
        reason = f"source is '{params.source.value}', job only runs for releases"
        logger.info(f"Skipping benchmark: {reason}")
        return JobOutcome(skipped=True, reason=reason)
    return BenchmarkJob(params, options, matrix, **job_kwargs).run()


def trigger_for_pull_request(
    event: Dict[str, Any],
    run_id: str,
    version: str,
    sha: Optional[str] = None,
    options: Optional[JobOptions] = None,
    matrix: Optional[Matrix] = None,
    **job_kwargs,
) -> JobOutcome:
    """Label invocation: benchmarks a pull request only when it carries the label.

    The PR is benchmarked with ``source=pr`` on a GitHub-hosted runner; the
    release gate does not apply on this path.
    """
    if not label_gate(events.pr_labels(event)):
        reason = f"pull request is not labelled '{BENCHMARK_LABEL}'"
        logger.info(f"Skipping benchmark: {reason}")
        return JobOutcome(skipped=True, reason=reason)
    params = events.params_from_pull_request(event, run_id=run_id, version=version, sha=sha)
    return BenchmarkJob(params, options, matrix, **job_kwargs).run()
