"""Query registration and discovery."""

from pathlib import Path
from typing import Any, Dict, Iterable, List, Tuple

from benchsuite.exceptions import ConfigurationError
from .base import BenchmarkQuery

# Internal registry: (query_id, dataset, sql, params)
_REGISTRY: List[Tuple[str, str, str, Dict[str, Any]]] = []


def register_query(*, dataset: str, query_id: str, sql: str, **params) -> None:
    """Register one benchmark query for ``dataset``."""
    for rid, ds, _, _ in _REGISTRY:
        if rid == query_id and ds == dataset:
            raise ConfigurationError(
                f"Query '{query_id}' already registered for dataset '{dataset}'"
            )
    _REGISTRY.append((query_id, dataset, sql, dict(params)))


def register_map(*, dataset: str, queries: Dict[str, str]) -> None:
    """Register several queries for one dataset, in insertion order."""
    for query_id, sql in queries.items():
        register_query(dataset=dataset, query_id=query_id, sql=sql)


def queries_for(dataset: str) -> Iterable[BenchmarkQuery]:
    """Get all queries registered for dataset."""
    for rid, ds, sql, params in _REGISTRY:
        if ds == dataset:
            yield BenchmarkQuery(rid, ds, sql, **params)


def registered_datasets() -> List[str]:
    return sorted({ds for _, ds, _, _ in _REGISTRY})


def list_registered() -> List[Dict[str, Any]]:
    """List all registered queries."""
    return [
        {"query_id": rid, "dataset": ds, "sql": sql, "params": params}
        for rid, ds, sql, params in _REGISTRY
    ]


def load_queries_dir(path: str, dataset: str) -> List[BenchmarkQuery]:
    """Load ``*.sql`` files of a directory as queries, ordered by file name.

    The file stem becomes the query id.
    """
    directory = Path(path)
    if not directory.is_dir():
        raise ConfigurationError(f"Queries directory not found: {directory}")

    queries = []
    for sql_file in sorted(directory.glob("*.sql")):
        sql = sql_file.read_text(encoding="utf-8").strip()
        if sql:
            queries.append(BenchmarkQuery(sql_file.stem, dataset, sql))
    if not queries:
        raise ConfigurationError(f"No .sql files in {directory}")
    return queries
