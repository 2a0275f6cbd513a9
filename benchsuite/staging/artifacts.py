"""Stage databend binaries from a tagged release or a pull request build."""

import os
import shutil
import stat
import tarfile
from pathlib import Path, PurePosixPath
from typing import Dict, List, Optional

from benchsuite.config import (
    BINARY_PREFIX,
    BUILD_PROFILE,
    DEFAULT_TARGET,
    REQUIRED_BINARIES,
)
from benchsuite.context import RunParameters, Source
from benchsuite.exceptions import (
    ArtifactNotFoundError,
    BinaryMissingError,
    CommandError,
)
from benchsuite.logging_config import get_logger
from benchsuite.process import run_command

logger = get_logger("staging.artifacts")


def release_asset_name(version: str, target: str = DEFAULT_TARGET) -> str:
    return f"databend-{version}-{target}.tar.gz"


def pr_artifact_name(sha: str, target: str = DEFAULT_TARGET, profile: str = BUILD_PROFILE) -> str:
    return f"{profile}-{sha}-{target}"


def binaries_dir(workdir: str, profile: str = BUILD_PROFILE) -> Path:
    return Path(workdir) / "target" / profile


def download_release(
    version: str,
    target: str = DEFAULT_TARGET,
    workdir: str = ".",
    env: Optional[Dict[str, str]] = None,
    timeout: Optional[float] = None,
) -> Path:
    """Download the release archive for ``version`` into ``<workdir>/distro``."""
    distro = Path(workdir) / "distro"
    distro.mkdir(parents=True, exist_ok=True)
    asset = release_asset_name(version, target)

    try:
        run_command(
            ["gh", "release", "download", version, "--pattern", asset, "--dir", str(distro)],
            cwd=workdir,
            env=env,
            timeout=timeout,
        )
    except CommandError as e:
        raise ArtifactNotFoundError(f"Release asset {asset} could not be downloaded: {e}") from e

    archive = distro / asset
    if not archive.is_file():
        raise ArtifactNotFoundError(f"Release asset {asset} not found in {distro}")
    logger.info(f"Downloaded {asset}", extra={"archive": str(archive)})
    return archive


def _stripped_path(name: str, prefix: str) -> Optional[PurePosixPath]:
    parts = [p for p in PurePosixPath(name).parts if p not in ("", ".")]
    if not parts or parts[0] != prefix or len(parts) < 2:
        return None
    rel = PurePosixPath(*parts[1:])
    if rel.is_absolute() or ".." in rel.parts:
        return None
    return rel


def _make_executable(path: Path) -> None:
    mode = path.stat().st_mode
    path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


def extract_binaries(archive: Path, dest: Path, member_dir: str = "bin") -> List[Path]:
    """Extract ``<member_dir>/*`` from ``archive`` into ``dest`` with the first
    path component stripped, then mark ``databend-*`` executable."""
    dest = Path(dest)
    dest.mkdir(parents=True, exist_ok=True)
    extracted: List[Path] = []

    try:
        with tarfile.open(archive, "r:*") as tar:
            for member in tar.getmembers():
                if not member.isfile():
                    continue
                rel = _stripped_path(member.name, member_dir)
                if rel is None:
                    continue
                out = dest.joinpath(*rel.parts)
                out.parent.mkdir(parents=True, exist_ok=True)
                src = tar.extractfile(member)
                if src is None:
                    continue
                with src, open(out, "wb") as f:
                    shutil.copyfileobj(src, f)
                os.chmod(out, member.mode & 0o777 or 0o644)
                extracted.append(out)
    except (tarfile.TarError, OSError) as e:
        raise ArtifactNotFoundError(f"Failed to extract {archive}: {e}") from e

    if not extracted:
        raise BinaryMissingError(f"No {member_dir}/ entries found in {archive}")

    for path in dest.glob(f"{BINARY_PREFIX}*"):
        if path.is_file():
            _make_executable(path)

    logger.info(
        f"Extracted {len(extracted)} files from {archive.name} into {dest}",
        extra={"files": [p.name for p in extracted]},
    )
    return extracted


def download_pr_artifact(
    sha: str,
    target: str = DEFAULT_TARGET,
    workdir: str = ".",
    env: Optional[Dict[str, str]] = None,
    timeout: Optional[float] = None,
) -> Path:
    """Fetch the prebuilt artifact of commit ``sha`` into ``target/<profile>``."""
    dest = binaries_dir(workdir)
    dest.mkdir(parents=True, exist_ok=True)
    name = pr_artifact_name(sha, target)

    try:
        run_command(
            ["gh", "run", "download", "--name", name, "--dir", str(dest)],
            cwd=workdir,
            env=env,
            timeout=timeout,
        )
    except CommandError as e:
        raise ArtifactNotFoundError(f"Build artifact {name} could not be downloaded: {e}") from e

    # Artifact uploads drop the executable bit
    for path in dest.glob(f"{BINARY_PREFIX}*"):
        if path.is_file():
            _make_executable(path)

    logger.info(f"Downloaded build artifact {name}", extra={"dest": str(dest)})
    return dest


def verify_binaries(directory: Path, required=REQUIRED_BINARIES) -> List[Path]:
    """Return the paths of ``required`` binaries in ``directory``."""
    directory = Path(directory)
    missing = [name for name in required if not (directory / name).is_file()]
    if missing:
        raise BinaryMissingError(
            f"Missing binaries in {directory}: {', '.join(missing)}"
        )
    return [directory / name for name in required]


def stage_artifact(
    params: RunParameters,
    workdir: str = ".",
    target: str = DEFAULT_TARGET,
    env: Optional[Dict[str, str]] = None,
    timeout: Optional[float] = None,
) -> Path:
    """Stage the binaries for ``params`` and return the directory holding them."""
    dest = binaries_dir(workdir)
    if params.source is Source.RELEASE:
        archive = download_release(params.source_id, target, workdir, env=env, timeout=timeout)
        extract_binaries(archive, dest)
    else:
        download_pr_artifact(params.sha, target, workdir, env=env, timeout=timeout)
    verify_binaries(dest)
    return dest
