"""The ``internal`` dataset: queries over generated data, no load step needed."""

from benchsuite.queries.registry import register_map

register_map(
    dataset="internal",
    queries={
        "q01_count_numbers": "SELECT count(*) FROM numbers(1000000000)",
        "q02_sum_numbers": "SELECT sum(number) FROM numbers(1000000000)",
        "q03_avg_numbers": "SELECT avg(number) FROM numbers(1000000000)",
        "q04_min_max": "SELECT min(number), max(number) FROM numbers(1000000000)",
        "q05_group_by_mod": (
            "SELECT number % 3 AS c, count(*) FROM numbers(1000000000) GROUP BY c ORDER BY c"
        ),
        "q06_group_by_high_cardinality": (
            "SELECT number % 1000000 AS k, sum(number) FROM numbers(100000000) "
            "GROUP BY k ORDER BY k LIMIT 10"
        ),
        "q07_count_distinct": "SELECT count(DISTINCT number % 100000) FROM numbers(100000000)",
        "q08_order_by_limit": (
            "SELECT number FROM numbers(100000000) ORDER BY number DESC LIMIT 10"
        ),
        "q09_string_functions": (
            "SELECT count(*) FROM numbers(100000000) "
            "WHERE to_string(number) LIKE '%77%'"
        ),
        "q10_self_join": (
            "SELECT count(*) FROM numbers(10000000) a "
            "JOIN numbers(10000000) b ON a.number = b.number"
        ),
        "q11_system_tables": "SELECT count(*) FROM system.tables",
        "q12_system_functions": "SELECT count(*) FROM system.functions",
    },
)
