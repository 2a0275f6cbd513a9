import os
import datetime

import pandas as pd

from benchsuite import __version__
from benchsuite.runner.aggregate import totals


def _replace_tokens(s: str, **tokens) -> str:
    for k, v in tokens.items():
        s = s.replace("{{" + k + "}}", str(v))
    return s


def _fmt(value) -> str:
    if value is None or pd.isna(value):
        return "-"
    return f"{float(value):.3f}"


def render_table(summary: pd.DataFrame) -> str:
    lines = [
        "| Dataset | Query | Status | Min (s) | Median (s) | Max (s) |",
        "|---|---|---|---:|---:|---:|",
    ]
    for row in summary.itertuples(index=False):
        status = "ok" if row.success else "failed"
        lines.append(
            f"| {row.dataset} | {row.query_id} | {status} | "
            f"{_fmt(row.min)} | {_fmt(row.median)} | {_fmt(row.max)} |"
        )
    return "\n".join(lines)


def generate(ctx, summary: pd.DataFrame, results: dict, base_dir: str = None) -> str:
    """Write ``report.md`` for the run and return its path."""
    base = base_dir if base_dir is not None else str(ctx.final_dir)
    os.makedirs(base, exist_ok=True)
    assets = os.path.join(os.path.dirname(__file__), "assets")

    with open(os.path.join(assets, "report.md"), "r", encoding="utf-8") as f:
        template = f.read()

    t = totals(summary)
    report = _replace_tokens(
        template,
        TITLE="Databend Suites Benchmark",
        SOURCE=results.get("source") or "-",
        SOURCE_ID=results.get("source_id") or "",
        SHA=results.get("sha") or "-",
        RUN_ID=results.get("run_id") or ctx.run_id,
        QUERIES=t["queries"],
        FAILED=t["failed"],
        TOTAL_MIN=f"{t['total_min']:.3f}",
        TOTAL_MEDIAN=f"{t['total_median']:.3f}",
        TABLE=render_table(summary),
        GENERATED_AT=datetime.datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        VERSION=__version__,
    )

    path = os.path.join(base, "report.md")
    with open(path, "w", encoding="utf-8") as f:
        f.write(report)
    return path
