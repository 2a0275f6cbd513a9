"""Derive run parameters from a GitHub pull request event payload."""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from benchsuite.config import get_env
from benchsuite.context import RunnerProvider, RunParameters, Source
from benchsuite.exceptions import ConfigurationError


def load_event(path: Optional[str] = None) -> Dict[str, Any]:
    """Read the event payload from ``path`` or ``$GITHUB_EVENT_PATH``."""
    path = path or get_env("GITHUB_EVENT_PATH")
    if not path:
        raise ConfigurationError("Missing event payload (use --event-path or set GITHUB_EVENT_PATH)")
    try:
        with open(Path(path), "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Unable to read event payload {path}: {e}") from e


def _pull_request(event: Dict[str, Any]) -> Dict[str, Any]:
    pr = event.get("pull_request")
    if not isinstance(pr, dict):
        raise ConfigurationError("Event payload has no pull_request")
    return pr


def pr_labels(event: Dict[str, Any]) -> List[str]:
    pr = event.get("pull_request") or {}
    if not isinstance(pr, dict):
        raise ConfigurationError("Event payload pull_request is not an object")
    labels = pr.get("labels") or []
    if not isinstance(labels, list) or not all(isinstance(label, dict) for label in labels):
        raise ConfigurationError(f"Malformed pull request labels: {labels!r}")
    return [label.get("name") for label in labels if label.get("name")]


def params_from_pull_request(
    event: Dict[str, Any],
    run_id: str,
    version: str,
    sha: Optional[str] = None,
) -> RunParameters:
    """Run parameters for the label-triggered PR benchmark.

    ``sha`` defaults to the PR head commit.
    """
    pr = _pull_request(event)
    number = pr.get("number", event.get("number"))
    if number is None:
        raise ConfigurationError("Pull request event has no number")
    if sha is None:
        sha = (pr.get("head") or {}).get("sha")
    return RunParameters(
        sha=sha,
        run_id=run_id,
        source=Source.PR,
        source_id=str(number),
        version=version,
        runner_provider=RunnerProvider.GITHUB,
    )
