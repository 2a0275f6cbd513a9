import json
import os
import time
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from benchsuite import db
from benchsuite.config import DEFAULT_TRIES
from benchsuite.context import RunContext, RunParameters
from benchsuite.exceptions import (
    BenchmarkStepError,
    ConfigurationError,
    JobTimeoutError,
    RunIdCollisionError,
)
from benchsuite.logging_config import get_logger
from benchsuite.queries.base import BenchmarkQuery, QueryResult
from benchsuite.queries.registry import queries_for

logger = get_logger("runner")


def _ensure_dir(path: str, check_collision: bool = True) -> None:
    """Create directory, optionally checking for run_id collisions."""
    if check_collision and os.path.isdir(path):
        for _, _, files in os.walk(path):
            if any(f.endswith(".jsonl") for f in files):
                raise RunIdCollisionError(f"Run directory already exists with data: {path}")
    os.makedirs(path, exist_ok=True)


def _check_deadline(deadline: Optional[float], what: str, clock: Callable[[], float] = time.monotonic) -> None:
    if deadline is not None and clock() >= deadline:
        raise JobTimeoutError(f"Benchmark step timed out before {what}")


def _execute_single_query(
    engine,
    query: BenchmarkQuery,
    params: RunParameters,
    tries: int,
    deadline: Optional[float],
    clock: Callable[[], float] = time.monotonic,
) -> QueryResult:
    """Run ``query`` ``tries`` times and return its timings."""
    timings: List[float] = []
    rows = None
    executed_at = datetime.now().isoformat()
    try:
        for attempt in range(tries):
            _check_deadline(deadline, f"{query.query_id} try {attempt + 1}", clock)
            start_time = time.perf_counter()
            rows = db.execute(engine, query.sql)
            timings.append(round(time.perf_counter() - start_time, 3))
    except SQLAlchemyError as e:
        logger.warning(
            f"Query {query.query_id} failed: {str(e)}",
            extra={"query_id": query.query_id, "error": str(e)},
        )
        return query.result(
            False,
            timings=timings,
            message=f"Query error: {str(e)}",
            executed_at=executed_at,
            **_metadata(params),
        )

    logger.info(
        f"Query {query.query_id} best {min(timings):.3f}s over {tries} tries",
        extra={"query_id": query.query_id, "timings": timings},
    )
    return query.result(
        True,
        timings=timings,
        rows=rows,
        executed_at=executed_at,
        **_metadata(params),
    )


def _metadata(params: RunParameters) -> dict:
    return {
        "sha": params.sha,
        "run_id": params.run_id,
        "source": params.source.value,
        "source_id": params.source_id,
    }


def run_queries(
    engine,
    ctx: RunContext,
    params: RunParameters,
    dataset: str,
    queries: List[BenchmarkQuery],
    tries: int = DEFAULT_TRIES,
    deadline: Optional[float] = None,
    overwrite: bool = False,
    clock: Callable[[], float] = time.monotonic,
) -> List[QueryResult]:
    """Execute ``queries`` sequentially and write one JSONL result per query.

    Raises:
        RunIdCollisionError: the dataset already has results and overwrite is off
        JobTimeoutError: ``clock()`` reached ``deadline``
        BenchmarkStepError: at least one query failed
    """
    if tries < 1:
        raise ConfigurationError(f"tries must be at least 1, got {tries}")

    overall_start = time.time()
    dataset_dir = os.path.join(ctx.datasets_dir, dataset)
    _ensure_dir(dataset_dir, check_collision=not overwrite)

    with open(os.path.join(dataset_dir, "expected_queries.json"), "w") as f:
        json.dump([{"query_id": q.query_id, "sql": q.sql} for q in queries], f, indent=2)

    logger.info(
        f"Executing {len(queries)} queries for dataset '{dataset}' ({tries} tries each)",
        extra={"dataset": dataset, "query_count": len(queries), "tries": tries},
    )

    results: List[QueryResult] = []
    for query in queries:
        res = _execute_single_query(engine, query, params, tries, deadline, clock)
        results.append(res)

        query_dir = os.path.join(dataset_dir, query.query_id)
        _ensure_dir(query_dir, check_collision=False)
        with open(os.path.join(query_dir, "results.jsonl"), "a", encoding="utf-8") as f:
            f.write(json.dumps(res.to_dict()) + "\n")

    total_time = time.time() - overall_start
    failed = [r.query_id for r in results if not r.success]
    logger.info(
        f"Completed {len(results)} queries in {total_time:.2f}s ({len(failed)} failed)",
        extra={"dataset": dataset, "total_time": total_time, "failed": failed},
    )
    if failed:
        raise BenchmarkStepError(
            f"{len(failed)} of {len(results)} queries failed for dataset '{dataset}': "
            f"{', '.join(failed)}"
        )
    return results


def run_dataset(
    engine,
    ctx: RunContext,
    params: RunParameters,
    dataset: str,
    tries: int = DEFAULT_TRIES,
    deadline: Optional[float] = None,
    overwrite: bool = False,
) -> List[QueryResult]:
    """Execute the queries registered for ``dataset``."""
    queries = list(queries_for(dataset))
    if not queries:
        raise BenchmarkStepError(f"No queries registered for dataset '{dataset}'")
    return run_queries(engine, ctx, params, dataset, queries, tries, deadline, overwrite)
