"""Start and stop a standalone databend-meta / databend-query deployment."""

import os
import signal
import socket
import subprocess  # nosec B404
from pathlib import Path
from typing import Dict, List, Optional

from benchsuite.config import DEFAULT_INSTALL_DIR, META_PORT, QUERY_HTTP_PORT
from benchsuite.exceptions import ServiceStartError
from benchsuite.logging_config import get_logger
from benchsuite.retry import readiness_retry

logger = get_logger("services")


def is_port_open(port: int, host: str = "127.0.0.1") -> bool:
    """Check if a port is open/accessible"""
    try:
        with socket.create_connection((host, port), timeout=1):
            return True
    except OSError:
        return False


class ServiceProcess:
    """A background service process that is ready once ``port`` accepts connections."""

    def __init__(
        self,
        name: str,
        argv: List[str],
        port: int,
        log_dir: Optional[Path] = None,
        env: Optional[Dict[str, str]] = None,
    ):
        self.name = name
        self.argv = argv
        self.port = port
        self.log_dir = Path(log_dir) if log_dir else None
        self.env = env
        self.process: Optional[subprocess.Popen] = None
        self._log_file = None

    def _wait_ready(self):
        @readiness_retry
        def _check_ready():
            if self.process is not None and self.process.poll() is not None:
                # Exited before becoming ready; not retryable
                return False
            if not is_port_open(self.port):
                raise ServiceStartError(f"{self.name} not listening on port {self.port} yet")
            return True

        return _check_ready()

    def start(self) -> "ServiceProcess":
        if is_port_open(self.port):
            raise ServiceStartError(f"Port {self.port} already in use, cannot start {self.name}")

        stdout = subprocess.DEVNULL
        if self.log_dir is not None:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            self._log_file = open(self.log_dir / f"{self.name}.out", "ab")
            stdout = self._log_file

        logger.info(f"Starting {self.name}: {' '.join(self.argv)}", extra={"service": self.name})
        try:
            self.process = subprocess.Popen(  # nosec B603
                self.argv,
                stdout=stdout,
                stderr=subprocess.STDOUT,
                env=self.env,
                start_new_session=True,
            )
        except OSError as e:
            self._close_log()
            raise ServiceStartError(f"Failed to start {self.name}: {e}") from e

        try:
            ready = self._wait_ready()
        except ServiceStartError:
            self.stop()
            raise
        if not ready:
            code = self.process.returncode
            self.stop()
            raise ServiceStartError(f"{self.name} exited with {code} before becoming ready")

        logger.info(f"{self.name} ready on port {self.port}", extra={"service": self.name})
        return self

    def stop(self):
        if self.process:
            if self.process.poll() is None:
                try:
                    os.killpg(os.getpgid(self.process.pid), signal.SIGTERM)
                    self.process.wait(timeout=10)
                except subprocess.TimeoutExpired:
                    try:
                        os.killpg(os.getpgid(self.process.pid), signal.SIGKILL)
                        self.process.wait(timeout=5)
                    except ProcessLookupError:
                        pass
                except ProcessLookupError:
                    pass
            self.process = None
            logger.info(f"{self.name} stopped", extra={"service": self.name})
        self._close_log()

    def _close_log(self):
        if self._log_file is not None:
            self._log_file.close()
            self._log_file = None

    def __enter__(self):
        return self.start()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()


class Deployment:
    """databend-meta plus one databend-query node, started in that order."""

    def __init__(
        self,
        bin_dir: str = DEFAULT_INSTALL_DIR,
        query_config: Optional[str] = None,
        log_dir: Optional[Path] = None,
        env: Optional[Dict[str, str]] = None,
        meta_port: int = META_PORT,
        query_port: int = QUERY_HTTP_PORT,
    ):
        meta_argv = [str(Path(bin_dir) / "databend-meta"), "--single", "--log-level=ERROR"]
        query_argv = [str(Path(bin_dir) / "databend-query")]
        if query_config:
            query_argv += ["-c", query_config]
        self.services = [
            ServiceProcess("databend-meta", meta_argv, meta_port, log_dir, env),
            ServiceProcess("databend-query", query_argv, query_port, log_dir, env),
        ]

    def start(self) -> "Deployment":
        started = []
        try:
            for service in self.services:
                service.start()
                started.append(service)
        except ServiceStartError:
            for service in reversed(started):
                service.stop()
            raise
        return self

    def stop(self):
        for service in reversed(self.services):
            service.stop()

    def __enter__(self):
        return self.start()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
