"""Configuration management with environment variable loading and endpoint URL building."""

import os
from typing import Optional
from pathlib import Path

def load_env_file():
    """Load environment variables from .env file if it exists."""
    env_file = Path(__file__).parent.parent / ".env"
    if env_file.exists():
        with open(env_file, 'r') as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith('#') and '=' in line:
                    key, value = line.split('=', 1)
                    if key not in os.environ:  # Don't override existing env vars
                        os.environ[key] = value

def get_env(name: str, default: Optional[str] = None) -> Optional[str]:
    """Get environment variable with optional default."""
    return os.environ.get(name, default)

def build_db_url() -> Optional[str]:
    """Build databend URL from DATABEND_HOST, DATABEND_PORT, DATABEND_USER,
    DATABEND_PASSWORD and DATABEND_DATABASE env vars."""
    host = get_env("DATABEND_HOST")
    port = get_env("DATABEND_PORT")
    if not (host and port):
        return None
    user = get_env("DATABEND_USER", "root")
    password = get_env("DATABEND_PASSWORD", "")
    database = get_env("DATABEND_DATABASE", "default")
    return f"databend://{user}:{password}@{host}:{port}/{database}?sslmode=disable"

# Load .env file on import
load_env_file()

# Core Configuration Constants
DEFAULT_OUT_DIR = "./benchmark_runs"
"""str: Default directory for storing benchmark results and reports."""

ENV_DB_URL = "BENCH_DB_URL"
"""str: Environment variable name for complete query endpoint override."""

DEFAULT_DB_URL = "databend://root:@localhost:8000/default?sslmode=disable"
"""str: Query endpoint of a locally started databend-query."""

# Build
DEFAULT_TARGET = "x86_64-unknown-linux-gnu"
BUILD_PROFILE = "release"

# Binaries staged from an artifact and installed system-wide
BINARY_PREFIX = "databend-"
REQUIRED_BINARIES = ("databend-query", "databend-meta")
DEFAULT_INSTALL_DIR = "/usr/local/bin"

# Pull request label that fans a PR out into the benchmark
BENCHMARK_LABEL = "ci-benchmark-suites"

# Matrix
DEFAULT_DATASETS = ("internal",)
MAX_PARALLEL = 1

# Timeouts (seconds)
JOB_TIMEOUT = 60 * 60
BENCHMARK_STEP_TIMEOUT = 30 * 60
COMMAND_TIMEOUT = 10 * 60

# Benchmark
DEFAULT_TRIES = 3

# Service ports of a standalone deployment
META_PORT = 9191
QUERY_HTTP_PORT = 8000
