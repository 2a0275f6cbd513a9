import glob
import json
import os
import platform
from datetime import date
from typing import Dict, List, Optional

import pandas as pd

from benchsuite.context import RunContext
from benchsuite.exceptions import BenchSuiteError
from benchsuite.logging_config import get_logger

logger = get_logger("runner.aggregate")

SUMMARY_COLUMNS = ["dataset", "query_id", "success", "tries", "min", "mean", "median", "max"]


def collect(ctx: RunContext) -> Dict:
    base = os.path.join(ctx.datasets_dir)
    items: List[Dict] = []
    datasets_set = set()
    if os.path.isdir(base):
        # structure: datasets/<dataset>/<query_id>/results.jsonl
        for path in sorted(glob.glob(os.path.join(base, "*", "*", "results.jsonl"))):
            with open(path, "r", encoding="utf-8") as f:
                lines = [line for line in f.read().splitlines() if line.strip()]
            # Only the most recent result counts
            if not lines:
                continue
            try:
                obj = json.loads(lines[-1])
            except json.JSONDecodeError as e:
                logger.warning(f"Skipping unreadable result file {path}: {e}")
                continue
            items.append(obj)
            datasets_set.add(obj.get("dataset"))
    return {"items": items, "datasets": sorted(d for d in datasets_set if d)}


def summarize(collected: Dict) -> pd.DataFrame:
    """Per-query timing statistics, one row per (dataset, query_id)."""
    rows = []
    for it in collected.get("items", []):
        timings = pd.Series(it.get("timings") or [], dtype="float64")
        rows.append(
            {
                "dataset": it.get("dataset"),
                "query_id": it.get("query_id"),
                "success": bool(it.get("success", False)),
                "tries": int(timings.size),
                "min": timings.min() if timings.size else None,
                "mean": timings.mean() if timings.size else None,
                "median": timings.median() if timings.size else None,
                "max": timings.max() if timings.size else None,
            }
        )
    df = pd.DataFrame(rows, columns=SUMMARY_COLUMNS)
    return df.sort_values(["dataset", "query_id"]).reset_index(drop=True)


def totals(summary: pd.DataFrame) -> Dict:
    if summary.empty:
        return {"queries": 0, "failed": 0, "total_min": 0.0, "total_median": 0.0}
    success = summary["success"].astype(bool)
    ok = summary[success]
    return {
        "queries": int(len(summary)),
        "failed": int((~success).sum()),
        "total_min": round(float(ok["min"].sum()), 3) if len(ok) else 0.0,
        "total_median": round(float(ok["median"].sum()), 3) if len(ok) else 0.0,
    }


def build_results(
    collected: Dict,
    params: Optional[Dict] = None,
    machine: Optional[str] = None,
    cluster_size: int = 1,
) -> Dict:
    """ClickBench-style result document; ``result`` holds per-try timings in query order."""
    items = sorted(collected.get("items", []), key=lambda it: (it.get("dataset") or "", it.get("query_id") or ""))
    params = params or _params_from_items(items)
    return {
        "system": "Databend",
        "date": date.today().isoformat(),
        "machine": machine or platform.machine(),
        "cluster_size": cluster_size,
        "comment": "",
        "tags": ["Rust", "column-oriented", "analytical"],
        "datasets": collected.get("datasets", []),
        "queries": [it.get("query_id") for it in items],
        "result": [it.get("timings") if it.get("success") else [None] for it in items],
        **params,
    }


def _params_from_items(items: List[Dict]) -> Dict:
    if not items:
        return {}
    first = items[0]
    return {k: first.get(k) for k in ("sha", "run_id", "source", "source_id")}


def write_outputs(ctx: RunContext, results: Dict, summary: pd.DataFrame) -> str:
    out_dir = str(ctx.final_dir)
    os.makedirs(out_dir, exist_ok=True)
    try:
        with open(os.path.join(out_dir, "results.json"), "w", encoding="utf-8") as f:
            json.dump(results, f, ensure_ascii=False, indent=2)
        summary_doc = {
            "totals": totals(summary),
            "queries": json.loads(summary.to_json(orient="records")),
        }
        with open(os.path.join(out_dir, "summary.json"), "w", encoding="utf-8") as f:
            json.dump(summary_doc, f, ensure_ascii=False, indent=2)
    except OSError as e:
        raise BenchSuiteError(f"Failed to write outputs to {out_dir}: {e}") from e
    return out_dir
