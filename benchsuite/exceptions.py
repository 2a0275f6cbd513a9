"""Custom exception hierarchy for the benchsuite trigger."""


class BenchSuiteError(Exception):
    """Base exception for all benchsuite errors."""

    pass


class ConfigurationError(BenchSuiteError):
    """Raised when run parameters or configuration are invalid or missing."""

    pass


class CommandError(BenchSuiteError):
    """Raised when an external command exits non-zero or cannot be started."""

    def __init__(self, message: str, returncode: int = None, stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class CheckoutError(BenchSuiteError):
    """Raised when the source checkout fails."""

    pass


class ArtifactNotFoundError(BenchSuiteError):
    """Raised when a release asset or build artifact cannot be downloaded."""

    pass


class BinaryMissingError(BenchSuiteError):
    """Raised when expected binaries are absent after staging."""

    pass


class InstallError(BenchSuiteError):
    """Raised when binaries cannot be installed or do not report a version."""

    pass


class ServiceStartError(BenchSuiteError):
    """Raised when databend-meta or databend-query does not become ready."""

    pass


class BenchmarkStepError(BenchSuiteError):
    """Raised when the benchmark step finishes with failed queries."""

    pass


class JobTimeoutError(BenchSuiteError):
    """Raised when a step or the whole job exceeds its time budget."""

    pass


class RunIdCollisionError(BenchSuiteError):
    """Raised when run ID already has results and cannot be overwritten."""

    pass
