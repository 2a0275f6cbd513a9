import pytest
from sqlalchemy import create_engine

from benchsuite.context import RunContext, RunnerProvider, RunParameters, Source


@pytest.fixture
def release_params():
    """Run parameters of a tagged release run."""
    return RunParameters(
        sha="3f2a9c1",
        run_id="1001",
        source=Source.RELEASE,
        source_id="v1.2.600-nightly",
        version="v1.2.600-nightly",
        runner_provider=RunnerProvider.AWS,
    )


@pytest.fixture
def pr_params():
    """Run parameters of a label-triggered pull request run."""
    return RunParameters(
        sha="9e8d7c6",
        run_id="2002",
        source=Source.PR,
        source_id="15234",
        version="v1.2.601-pr",
        runner_provider=RunnerProvider.GITHUB,
    )


@pytest.fixture
def run_ctx(tmp_path):
    return RunContext(run_id="2002", out_dir=tmp_path / "runs")


@pytest.fixture
def sqlite_engine():
    engine = create_engine("sqlite://")
    yield engine
    engine.dispose()


@pytest.fixture
def pr_event():
    return {
        "action": "labeled",
        "number": 15234,
        "pull_request": {
            "number": 15234,
            "head": {"sha": "9e8d7c6"},
            "labels": [{"name": "ci-benchmark-suites"}, {"name": "pr-feature"}],
        },
    }
