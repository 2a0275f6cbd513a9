import json
import types
from unittest.mock import MagicMock, Mock, patch

import pytest
from sqlalchemy import create_engine

import benchsuite
from benchsuite.exceptions import (
    ArtifactNotFoundError,
    BenchmarkStepError,
    ConfigurationError,
    JobTimeoutError,
)
from benchsuite.queries.base import BenchmarkQuery
from benchsuite.trigger import (
    BenchmarkJob,
    JobOptions,
    Matrix,
    Step,
    label_gate,
    release_gate,
    trigger,
    trigger_for_pull_request,
)


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


def _step_names(job, dataset="internal"):
    return [s.name for s in job.plan(dataset)]


class TestGates:
    def test_release_gate(self, release_params, pr_params):
        assert release_gate(release_params) is True
        assert release_gate(pr_params) is False

    def test_label_gate(self):
        assert label_gate(["ci-benchmark-suites", "pr-bugfix"]) is True
        assert label_gate(["pr-bugfix"]) is False
        assert label_gate([]) is False


class TestMatrix:
    def test_defaults(self):
        matrix = Matrix()
        assert matrix.datasets == ("internal",)
        assert matrix.fail_fast is True
        assert matrix.max_parallel == 1

    def test_concurrency_capped_at_one(self):
        with pytest.raises(ConfigurationError, match="max_parallel"):
            Matrix(max_parallel=2)

    def test_empty_rejected(self):
        with pytest.raises(ConfigurationError):
            Matrix(datasets=[])

    def test_duplicates_rejected(self):
        with pytest.raises(ConfigurationError, match="Duplicate"):
            Matrix(datasets=["internal", "internal"])


class TestJobOptions:
    @pytest.mark.parametrize("tries", [0, -1])
    def test_tries_must_be_positive(self, tries):
        with pytest.raises(ConfigurationError, match="tries"):
            JobOptions(tries=tries)


def test_package_keeps_trigger_submodule():
    assert isinstance(benchsuite.trigger, types.ModuleType)
    assert callable(benchsuite.trigger.trigger)


class TestPlan:
    def test_release_plan(self, release_params):
        names = _step_names(BenchmarkJob(release_params))

        assert names == [
            "Checkout default branch",
            "Download artifact for release",
            "Setup Databend Binary",
            "Benchmark internal",
        ]

    def test_pr_plan(self, pr_params):
        names = _step_names(BenchmarkJob(pr_params))

        assert names == [
            "Checkout refs/pull/15234/merge",
            "Download artifact for pr",
            "Setup Databend Binary",
            "Benchmark internal",
        ]

    @pytest.mark.parametrize("fixture", ["release_params", "pr_params"])
    def test_exactly_one_checkout_and_download(self, fixture, request):
        names = _step_names(BenchmarkJob(request.getfixturevalue(fixture)))

        assert sum(n.startswith("Checkout") for n in names) == 1
        assert sum(n.startswith("Download artifact") for n in names) == 1

    def test_skip_checkout(self, pr_params):
        names = _step_names(BenchmarkJob(pr_params, JobOptions(skip_checkout=True)))
        assert not any(n.startswith("Checkout") for n in names)

    def test_benchmark_step_has_step_timeout(self, pr_params):
        step = BenchmarkJob(pr_params).plan("internal")[-1]
        assert step.timeout == 30 * 60


class TestJobEnv:
    def test_exports_profile_and_provider(self, release_params):
        env = BenchmarkJob(release_params).job_env()
        assert env["BUILD_PROFILE"] == "release"
        assert env["RUNNER_PROVIDER"] == "aws"


class TestExecution:
    def _job(self, params, tmp_path, clock=None, matrix=None, **options):
        options.setdefault("out_dir", str(tmp_path / "runs"))
        return BenchmarkJob(params, JobOptions(**options), matrix, clock=clock or FakeClock())

    def test_steps_run_in_order(self, pr_params, tmp_path):
        job = self._job(pr_params, tmp_path)
        calls = []
        job.plan = lambda dataset: [
            Step("a", lambda t: calls.append(("a", dataset))),
            Step("b", lambda t: calls.append(("b", dataset))),
        ]

        outcome = job.run()

        assert calls == [("a", "internal"), ("b", "internal")]
        assert outcome.skipped is False
        assert outcome.datasets == {"internal": "success"}
        assert outcome.report_path is None

    def test_step_timeout_clamped_to_remaining_job_time(self, pr_params, tmp_path):
        clock = FakeClock()
        job = self._job(pr_params, tmp_path, clock=clock, job_timeout=100, step_timeout=30)
        seen = []

        def slow(timeout):
            seen.append(timeout)
            clock.now += 80

        job.plan = lambda dataset: [Step("slow", slow), Step("bench", lambda t: seen.append(t), timeout=30)]

        job.run()

        assert seen == [100, 20]

    def test_job_timeout_exhausted(self, pr_params, tmp_path):
        clock = FakeClock()
        job = self._job(pr_params, tmp_path, clock=clock, job_timeout=10)
        second = Mock()

        def slow(timeout):
            clock.now += 10

        job.plan = lambda dataset: [Step("slow", slow), Step("next", second)]

        with pytest.raises(JobTimeoutError):
            job.run()
        second.assert_not_called()

    def test_step_overrunning_its_timeout(self, pr_params, tmp_path):
        clock = FakeClock()
        job = self._job(pr_params, tmp_path, clock=clock)

        def overrun(timeout):
            clock.now += timeout + 1

        job.plan = lambda dataset: [Step("bench", overrun, timeout=5)]

        with pytest.raises(JobTimeoutError, match="bench"):
            job.run()

    def test_fail_fast_stops_remaining_datasets(self, pr_params, tmp_path):
        job = self._job(pr_params, tmp_path, matrix=Matrix(datasets=["a", "b"]))
        ran = []

        def plan(dataset):
            def action(timeout):
                ran.append(dataset)
                raise ArtifactNotFoundError("asset missing")

            return [Step("stage", action)]

        job.plan = plan

        with pytest.raises(ArtifactNotFoundError):
            job.run()
        assert ran == ["a"]

    def test_without_fail_fast_runs_all_then_raises(self, pr_params, tmp_path):
        job = self._job(pr_params, tmp_path, matrix=Matrix(datasets=["a", "b"], fail_fast=False))
        ran = []

        def plan(dataset):
            def action(timeout):
                ran.append(dataset)
                if dataset == "a":
                    raise ArtifactNotFoundError("asset missing")

            return [Step("stage", action)]

        job.plan = plan

        with pytest.raises(ArtifactNotFoundError):
            job.run()
        assert ran == ["a", "b"]

    def test_full_pr_run(self, pr_params, tmp_path):
        queries = tmp_path / "queries" / "internal"
        queries.mkdir(parents=True)
        (queries / "q01.sql").write_text("SELECT 1")
        (queries / "q02.sql").write_text("SELECT 2")
        engine_factory = Mock(side_effect=lambda url, echo=False: create_engine("sqlite://"))

        with patch("benchsuite.staging.checkout.checkout") as co, patch(
            "benchsuite.staging.artifacts.stage_artifact"
        ) as stage, patch("benchsuite.staging.install.install_binaries") as inst, patch(
            "benchsuite.staging.install.print_versions"
        ) as versions:
            job = BenchmarkJob(
                pr_params,
                JobOptions(
                    out_dir=str(tmp_path / "runs"),
                    queries_dir=str(tmp_path / "queries"),
                    start_services=False,
                    db_url="databend://root:@localhost:8000/default",
                    tries=2,
                ),
                engine_factory=engine_factory,
            )
            outcome = job.run()

        co.assert_called_once()
        stage.assert_called_once()
        inst.assert_called_once()
        versions.assert_called_once()
        engine_factory.assert_called_once_with("databend://root:@localhost:8000/default", echo=False)
        assert outcome.datasets == {"internal": "success"}
        report = open(outcome.report_path, encoding="utf-8").read()
        assert "| internal | q01 | ok |" in report
        results = json.loads((tmp_path / "runs" / "2002" / "final" / "results.json").read_text())
        assert results["source_id"] == "15234"
        assert results["version"] == pr_params.version

    def test_install_step_forwards_timeout(self, release_params, tmp_path):
        job = BenchmarkJob(release_params, JobOptions(out_dir=str(tmp_path / "runs"), install_dir="/opt/bin"))

        with patch("benchsuite.staging.install.install_binaries") as inst, patch(
            "benchsuite.staging.install.print_versions"
        ) as versions:
            job._install(120)

        assert inst.call_args.kwargs["timeout"] == 120
        assert versions.call_args.kwargs["timeout"] == 120

    def test_benchmark_deadline_follows_job_clock(self, pr_params, tmp_path):
        job = BenchmarkJob(
            pr_params,
            JobOptions(out_dir=str(tmp_path / "runs"), start_services=False),
            engine_factory=lambda url, echo=False: create_engine("sqlite://"),
            clock=FakeClock(0),
        )
        job._queries = lambda dataset: [BenchmarkQuery("q01", dataset, "SELECT 1")]

        results = job._benchmark("internal", timeout=300)

        assert [r.success for r in results] == [True]

    def test_invalid_endpoint_url(self, pr_params, tmp_path):
        job = BenchmarkJob(
            pr_params,
            JobOptions(out_dir=str(tmp_path / "runs"), start_services=False, db_url="nosuchdialect://x"),
        )
        job._queries = lambda dataset: []

        with pytest.raises(ConfigurationError, match="Cannot create engine"):
            job._benchmark("internal", timeout=60)

    def test_services_wrap_benchmark(self, pr_params, tmp_path):
        deployment = MagicMock()
        job = BenchmarkJob(
            pr_params,
            JobOptions(out_dir=str(tmp_path / "runs"), install_dir="/opt/bin"),
            engine_factory=lambda url, echo=False: create_engine("sqlite://"),
            deployment_factory=deployment,
        )
        job._queries = lambda dataset: []

        job._benchmark("internal", timeout=60)

        assert deployment.call_args.kwargs["bin_dir"] == "/opt/bin"
        deployment.return_value.__enter__.assert_called_once()
        deployment.return_value.__exit__.assert_called_once()

    def test_unreachable_endpoint(self, pr_params, tmp_path):
        job = BenchmarkJob(
            pr_params,
            JobOptions(out_dir=str(tmp_path / "runs"), start_services=False),
            engine_factory=lambda url, echo=False: create_engine("sqlite:////nonexistent/dir/db.sqlite"),
        )
        job._queries = lambda dataset: []

        with patch("benchsuite.retry.time.sleep"):
            with pytest.raises(BenchmarkStepError, match="not reachable"):
                job._benchmark("internal", timeout=60)


class TestTrigger:
    def test_pr_source_is_skipped_on_direct_invocation(self, pr_params):
        with patch.object(BenchmarkJob, "run") as run:
            outcome = trigger(pr_params)

        assert outcome.skipped is True
        assert "releases" in outcome.reason
        run.assert_not_called()

    def test_release_runs(self, release_params):
        with patch.object(BenchmarkJob, "run") as run:
            trigger(release_params)
        run.assert_called_once()

    def test_unlabelled_pull_request_is_skipped(self, pr_event):
        pr_event["pull_request"]["labels"] = [{"name": "pr-docs"}]
        with patch.object(BenchmarkJob, "run") as run:
            outcome = trigger_for_pull_request(pr_event, run_id="9", version="v1")

        assert outcome.skipped is True
        run.assert_not_called()

    def test_labelled_pull_request_runs_as_pr(self, pr_event):
        with patch.object(BenchmarkJob, "__init__", return_value=None) as init, patch.object(
            BenchmarkJob, "run"
        ) as run:
            trigger_for_pull_request(pr_event, run_id="9", version="v1.2.601")

        params = init.call_args.args[0]
        assert params.source.value == "pr"
        assert params.source_id == "15234"
        assert params.runner_provider.value == "github"
        run.assert_called_once()
