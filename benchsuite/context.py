"""Run parameters and execution context for benchmark runs."""

from dataclasses import dataclass, field, asdict
from enum import Enum
from pathlib import Path
from typing import Any, Dict

from benchsuite.config import DEFAULT_OUT_DIR
from benchsuite.exceptions import ConfigurationError


class Source(Enum):
    """What triggered the run: a pull request or a tagged release."""

    PR = "pr"
    RELEASE = "release"


class RunnerProvider(Enum):
    """Where the runner executing the job is hosted."""

    AWS = "aws"
    GCP = "gcp"
    GITHUB = "github"


def _parse_enum(enum_cls, value, field_name: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ConfigurationError(
            f"Invalid {field_name} '{value}' (expected one of: {allowed})"
        )


@dataclass(frozen=True)
class RunParameters:
    """Identifiers describing one benchmark invocation.

    ``source_id`` is the pull request number for ``Source.PR`` and the
    release tag for ``Source.RELEASE``.
    """

    sha: str
    run_id: str
    source: Source
    source_id: str
    version: str
    runner_provider: RunnerProvider

    def __post_init__(self):
        for name in ("sha", "run_id", "source_id", "version"):
            value = getattr(self, name)
            if value is None or not str(value).strip():
                raise ConfigurationError(f"Missing required run parameter '{name}'")
            object.__setattr__(self, name, str(value).strip())

        object.__setattr__(self, "source", _parse_enum(Source, self.source, "source"))
        object.__setattr__(
            self,
            "runner_provider",
            _parse_enum(RunnerProvider, self.runner_provider, "runner_provider"),
        )

        if self.source is Source.PR and not (
            self.source_id.isdigit() and int(self.source_id) > 0
        ):
            raise ConfigurationError(
                f"Pull request source_id must be a positive number, got '{self.source_id}'"
            )

    @property
    def is_release(self) -> bool:
        return self.source is Source.RELEASE

    @property
    def is_pr(self) -> bool:
        return self.source is Source.PR

    def to_dict(self) -> Dict[str, str]:
        d = asdict(self)
        d["source"] = self.source.value
        d["runner_provider"] = self.runner_provider.value
        return d


@dataclass
class RunContext:
    """Benchmark run context with run_id, output directory, and extra data."""
    run_id: str
    out_dir: Path = Path(DEFAULT_OUT_DIR)
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def run_dir(self) -> Path:
        return Path(self.out_dir) / self.run_id

    @property
    def datasets_dir(self) -> Path:
        return self.run_dir / "datasets"

    @property
    def final_dir(self) -> Path:
        return self.run_dir / "final"
