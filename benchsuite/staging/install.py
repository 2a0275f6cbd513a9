"""Install staged binaries into a shared system path."""

import os
import shutil
from pathlib import Path
from typing import Dict, List, Optional

from benchsuite.config import BINARY_PREFIX, DEFAULT_INSTALL_DIR, REQUIRED_BINARIES
from benchsuite.exceptions import BinaryMissingError, CommandError, InstallError
from benchsuite.logging_config import get_logger
from benchsuite.process import run_command

logger = get_logger("staging.install")


def _needs_sudo(install_dir: Path) -> bool:
    return hasattr(os, "geteuid") and os.geteuid() != 0 and not os.access(install_dir, os.W_OK)


def install_binaries(
    source_dir: Path,
    install_dir: str = DEFAULT_INSTALL_DIR,
    use_sudo: bool = True,
    timeout: Optional[float] = None,
) -> List[Path]:
    """Copy every ``databend-*`` file from ``source_dir`` into ``install_dir``."""
    source_dir = Path(source_dir)
    install_path = Path(install_dir)
    binaries = sorted(p for p in source_dir.glob(f"{BINARY_PREFIX}*") if p.is_file())
    if not binaries:
        raise BinaryMissingError(f"No {BINARY_PREFIX}* binaries in {source_dir}")

    installed: List[Path] = []
    try:
        if use_sudo and _needs_sudo(install_path):
            run_command(["sudo", "cp", *[str(b) for b in binaries], str(install_path) + "/"], timeout=timeout)
            installed = [install_path / b.name for b in binaries]
        else:
            install_path.mkdir(parents=True, exist_ok=True)
            for binary in binaries:
                installed.append(Path(shutil.copy2(binary, install_path / binary.name)))
    except (CommandError, OSError) as e:
        raise InstallError(f"Failed to install binaries into {install_path}: {e}") from e

    logger.info(
        f"Installed {len(installed)} binaries into {install_path}",
        extra={"binaries": [p.name for p in installed]},
    )
    return installed


def print_versions(
    install_dir: str = DEFAULT_INSTALL_DIR,
    binaries=REQUIRED_BINARIES,
    env: Optional[Dict[str, str]] = None,
    timeout: Optional[float] = 60,
) -> Dict[str, str]:
    """Run ``<binary> --version`` for each installed binary."""
    versions: Dict[str, str] = {}
    for name in binaries:
        path = Path(install_dir) / name
        try:
            result = run_command([str(path), "--version"], env=env, timeout=timeout)
        except CommandError as e:
            raise InstallError(f"{name} did not report a version: {e}") from e
        versions[name] = result.stdout.strip()
        print(versions[name])
        logger.info(f"{name}: {versions[name]}")
    return versions
