"""Benchmark query suites, keyed by dataset name."""

from benchsuite.queries.base import BenchmarkQuery, QueryResult
from benchsuite.queries.registry import (
    register_query,
    register_map,
    queries_for,
    list_registered,
    load_queries_dir,
)
from benchsuite.queries import internal  # noqa: F401

__all__ = [
    "BenchmarkQuery",
    "QueryResult",
    "register_query",
    "register_map",
    "queries_for",
    "list_registered",
    "load_queries_dir",
]
