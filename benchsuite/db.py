"""Query endpoint connection and query utilities."""

from typing import Any, Dict, Optional
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine

from benchsuite.retry import connection_retry


def make_engine(db_url: str, echo: bool = False) -> Engine:
    """Create SQLAlchemy engine for the benchmark endpoint.

    A single pooled connection is enough since queries run one at a time.
    """
    return create_engine(
        db_url,
        echo=echo,
        pool_size=1,
        max_overflow=0,
        pool_pre_ping=True,
    )

def fetch_one(engine: Engine, sql: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Execute SQL and return first row as dict."""
    with engine.connect() as conn:
        row = conn.execute(text(sql), params or {}).mappings().first()
        return dict(row or {})

def execute(engine: Engine, sql: str) -> int:
    """Execute SQL, drain the result and return the number of rows seen."""
    with engine.connect() as conn:
        result = conn.execute(text(sql))
        if not result.returns_rows:
            return 0
        return len(result.fetchall())

@connection_retry
def ping(engine: Engine) -> bool:
    """Open a connection and run a trivial query."""
    fetch_one(engine, "SELECT 1 AS ok")
    return True
