"""Benchmark query and per-query result records."""

from dataclasses import dataclass, asdict, field
from typing import Any, Dict, List, Optional


@dataclass
class QueryResult:
    query_id: str
    dataset: str
    sql: str
    success: bool
    timings: List[float] = field(default_factory=list)
    message: str = ""
    rows: Optional[int] = None
    executed_at: Optional[str] = None  # ISO timestamp of the first try
    # Run metadata
    sha: Optional[str] = None
    run_id: Optional[str] = None
    source: Optional[str] = None
    source_id: Optional[str] = None

    @property
    def best(self) -> Optional[float]:
        return min(self.timings) if self.timings else None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class BenchmarkQuery:
    def __init__(self, query_id: str, dataset: str, sql: str, **params: Any) -> None:
        self.query_id = query_id
        self.dataset = dataset
        self.sql = sql.strip().rstrip(";")
        self.params: Dict[str, Any] = params

    def result(self, success: bool, **kwargs) -> QueryResult:
        return QueryResult(
            query_id=self.query_id,
            dataset=self.dataset,
            sql=self.sql,
            success=success,
            **kwargs,
        )

    def __repr__(self) -> str:
        return f"BenchmarkQuery({self.query_id!r}, dataset={self.dataset!r})"
