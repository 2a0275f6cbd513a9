import argparse
import sys

from benchsuite.config import (
    DEFAULT_DATASETS,
    DEFAULT_INSTALL_DIR,
    DEFAULT_OUT_DIR,
    DEFAULT_TARGET,
    DEFAULT_TRIES,
)
from benchsuite.context import RunContext, RunParameters
from benchsuite.events import load_event
from benchsuite.exceptions import BenchSuiteError
from benchsuite.logging_config import get_logger, setup_logging
from benchsuite.report.generate import generate
from benchsuite.runner.aggregate import build_results, collect, summarize, write_outputs
from benchsuite.trigger import (
    BenchmarkJob,
    JobOptions,
    Matrix,
    release_gate,
    trigger,
    trigger_for_pull_request,
)

logger = get_logger("cli")


def _params(args) -> RunParameters:
    return RunParameters(
        sha=args.sha,
        run_id=args.run_id,
        source=args.source,
        source_id=args.source_id,
        version=args.version,
        runner_provider=args.runner_provider,
    )


def _options(args) -> JobOptions:
    return JobOptions(
        workdir=args.workdir,
        out_dir=args.out,
        target=args.target,
        install_dir=args.install_dir,
        use_sudo=not args.no_sudo,
        skip_checkout=args.skip_checkout,
        start_services=not args.no_services,
        query_config=args.query_config,
        queries_dir=args.queries_dir,
        db_url=args.db_url,
        tries=args.tries,
        overwrite=args.overwrite,
        echo_sql=args.echo_sql,
    )


def _matrix(args) -> Matrix:
    return Matrix(datasets=args.dataset or DEFAULT_DATASETS)


def _report_outcome(outcome):
    if outcome.skipped:
        print(f"Skipped: {outcome.reason}")
        return
    for dataset, status in outcome.datasets.items():
        print(f"{dataset}: {status}")
    if outcome.report_path:
        print(f"Report at: {outcome.report_path}")


def _run(args):
    outcome = trigger(_params(args), _options(args), _matrix(args))
    _report_outcome(outcome)


def _on_pull_request(args):
    event = load_event(args.event_path)
    outcome = trigger_for_pull_request(
        event,
        run_id=args.run_id,
        version=args.version,
        sha=args.sha,
        options=_options(args),
        matrix=_matrix(args),
    )
    _report_outcome(outcome)


def _plan(args):
    params = _params(args)
    if not release_gate(params) and not args.labelled:
        print(f"Job would be skipped: source is '{params.source.value}'")
        return
    job = BenchmarkJob(params, _options(args), _matrix(args))
    for dataset in job.matrix.datasets:
        print(f"[{dataset}]")
        for i, step in enumerate(job.plan(dataset), 1):
            suffix = f" (timeout {step.timeout:.0f}s)" if step.timeout else ""
            print(f"  {i}. {step.name}{suffix}")


def _final_report(args):
    ctx = RunContext(run_id=args.run_id, out_dir=args.out)
    collected = collect(ctx)
    if not collected["items"]:
        raise BenchSuiteError(f"No results found for run '{args.run_id}' in {args.out}")
    summary = summarize(collected)
    results = build_results(collected)
    write_outputs(ctx, results, summary)
    path = generate(ctx, summary, results)
    print(f"Final report at: {path}")


def _add_job_args(p, with_params: bool = True):
    if with_params:
        p.add_argument("--sha", required=True, type=str, help="Git sha of benchmark")
        p.add_argument("--run-id", required=True, type=str, help="The run id of benchmark")
        p.add_argument("--source", required=True, choices=["pr", "release"])
        p.add_argument("--source-id", required=True, type=str, help="PR number or release tag")
        p.add_argument("--version", required=True, type=str, help="The version of databend to run")
        p.add_argument("--runner-provider", required=True, choices=["aws", "gcp", "github"])
    p.add_argument("--dataset", action="append", help=f"Matrix dataset (repeatable, default: {', '.join(DEFAULT_DATASETS)})")
    p.add_argument("--tries", type=int, default=DEFAULT_TRIES)
    p.add_argument("--out", type=str, default=DEFAULT_OUT_DIR)
    p.add_argument("--workdir", type=str, default=".")
    p.add_argument("--target", type=str, default=DEFAULT_TARGET)
    p.add_argument("--install-dir", type=str, default=DEFAULT_INSTALL_DIR)
    p.add_argument("--no-sudo", action="store_true", help="Never use sudo to install binaries")
    p.add_argument("--skip-checkout", action="store_true", help="Source is already checked out")
    p.add_argument("--no-services", action="store_true", help="Benchmark an already running databend-query")
    p.add_argument("--query-config", type=str, help="databend-query config file")
    p.add_argument("--queries-dir", type=str, help="Directory with <dataset>/*.sql query files")
    p.add_argument("--db-url", type=str, help="Query endpoint URL (or set BENCH_DB_URL)")
    p.add_argument("--overwrite", action="store_true", help="Allow re-running into an existing run id")
    p.add_argument("--echo-sql", action="store_true", help="Echo SQLAlchemy SQL for debugging")


def main(argv=None):
    p = argparse.ArgumentParser(prog="benchsuite", description="Databend suites benchmark trigger")
    p.add_argument("--log-level", type=str, default=None)
    p.add_argument("--log-dir", type=str, default=None)
    subs = p.add_subparsers(dest="cmd", required=True)

    p1 = subs.add_parser("run", help="Run the benchmark for the given inputs")
    _add_job_args(p1)
    p1.set_defaults(func=_run)

    p2 = subs.add_parser("on-pull-request", help="Run the benchmark for a labelled pull request")
    p2.add_argument("--event-path", type=str, help="Event payload (or set GITHUB_EVENT_PATH)")
    p2.add_argument("--sha", type=str, help="Commit to benchmark (defaults to the PR head)")
    p2.add_argument("--run-id", required=True, type=str)
    p2.add_argument("--version", required=True, type=str)
    _add_job_args(p2, with_params=False)
    p2.set_defaults(func=_on_pull_request)

    p3 = subs.add_parser("plan", help="Print the steps a run would execute")
    _add_job_args(p3)
    p3.add_argument("--labelled", action="store_true", help="Plan as the label-triggered PR job")
    p3.set_defaults(func=_plan)

    p4 = subs.add_parser("report", help="Aggregate results and write the final report")
    p4.add_argument("--run-id", required=True, type=str)
    p4.add_argument("--out", type=str, default=DEFAULT_OUT_DIR)
    p4.set_defaults(func=_final_report)

    args = p.parse_args(argv)
    setup_logging(level=args.log_level, log_dir=args.log_dir)
    try:
        args.func(args)
    except BenchSuiteError as e:
        logger.error(f"{args.cmd} failed: {e}")
        sys.exit(1)

if __name__ == "__main__":
    main()
