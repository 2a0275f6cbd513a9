"""Subprocess helpers for the external commands a run shells out to."""

import os
import subprocess  # nosec B404
from typing import Dict, List, Optional, Sequence

from benchsuite.config import COMMAND_TIMEOUT
from benchsuite.exceptions import CommandError, JobTimeoutError
from benchsuite.logging_config import get_logger

logger = get_logger("process")


def build_env(extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """Current environment overlaid with ``extra``."""
    env = dict(os.environ)
    if extra:
        env.update({k: str(v) for k, v in extra.items()})
    return env


def run_command(
    cmd: Sequence[str],
    cwd: Optional[str] = None,
    env: Optional[Dict[str, str]] = None,
    timeout: Optional[float] = COMMAND_TIMEOUT,
) -> subprocess.CompletedProcess:
    """Run ``cmd`` to completion and return the completed process.

    Raises:
        CommandError: the command could not be started or exited non-zero
        JobTimeoutError: the command did not finish within ``timeout`` seconds
    """
    argv: List[str] = [str(c) for c in cmd]
    logger.info(f"Running: {' '.join(argv)}", extra={"command": argv, "cwd": cwd})

    try:
        result = subprocess.run(  # nosec B603
            argv,
            cwd=cwd,
            env=env,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as e:
        raise JobTimeoutError(
            f"Command '{argv[0]}' timed out after {timeout:.0f}s"
        ) from e
    except (FileNotFoundError, OSError) as e:
        raise CommandError(f"Failed to start '{argv[0]}': {e}") from e

    if result.returncode != 0:
        stderr = (result.stderr or "").strip()
        logger.error(
            f"Command '{argv[0]}' exited with {result.returncode}: {stderr}",
            extra={"command": argv, "returncode": result.returncode},
        )
        raise CommandError(
            f"Command '{' '.join(argv)}' exited with {result.returncode}: {stderr}",
            returncode=result.returncode,
            stderr=stderr,
        )

    if result.stdout:
        logger.debug(result.stdout.strip())
    return result
