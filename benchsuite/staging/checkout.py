"""Check out the code a benchmark runs against.

Releases run from the default branch; pull requests run from the merge ref
GitHub maintains at ``refs/pull/<number>/merge``.
"""

from typing import Dict, Optional

from benchsuite.context import RunParameters, Source
from benchsuite.exceptions import CheckoutError, CommandError
from benchsuite.logging_config import get_logger
from benchsuite.process import run_command

logger = get_logger("staging.checkout")


def ref_for(params: RunParameters) -> Optional[str]:
    """Git ref to check out, or None for the default branch."""
    if params.source is Source.PR:
        return f"refs/pull/{params.source_id}/merge"
    return None


def default_branch(workdir: str, remote: str = "origin", timeout: Optional[float] = 30) -> str:
    """Resolve the remote's default branch name, falling back to ``main``."""
    try:
        result = run_command(
            ["git", "symbolic-ref", "--short", f"refs/remotes/{remote}/HEAD"],
            cwd=workdir,
            timeout=timeout,
        )
    except CommandError:
        logger.debug(f"No {remote}/HEAD symbolic ref, assuming main")
        return "main"
    name = result.stdout.strip()
    prefix = f"{remote}/"
    return name[len(prefix):] if name.startswith(prefix) else name


def checkout(
    params: RunParameters,
    workdir: str = ".",
    env: Optional[Dict[str, str]] = None,
    timeout: Optional[float] = None,
) -> str:
    """Check out the source for ``params`` in ``workdir`` and return the ref used."""
    ref = ref_for(params)
    try:
        if ref is None:
            branch = default_branch(workdir, timeout=timeout)
            run_command(["git", "fetch", "origin", branch], cwd=workdir, env=env, timeout=timeout)
            run_command(
                ["git", "checkout", "-B", branch, f"origin/{branch}"],
                cwd=workdir,
                env=env,
                timeout=timeout,
            )
            ref = branch
        else:
            run_command(["git", "fetch", "origin", ref], cwd=workdir, env=env, timeout=timeout)
            run_command(
                ["git", "checkout", "--detach", "FETCH_HEAD"],
                cwd=workdir,
                env=env,
                timeout=timeout,
            )
    except CommandError as e:
        raise CheckoutError(f"Checkout of {ref or 'default branch'} failed: {e}") from e

    logger.info(
        f"Checked out {ref} for {params.source.value} {params.source_id}",
        extra={"ref": ref, "source": params.source.value},
    )
    return ref
