"""Database query functions for the birth data API.

Executes parameterized queries and aggregations against the DuckDB
birth_data table. All functions are read-only.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import duckdb

RECORD_COLUMNS = "region_code, region_name, gender, year, value"
RECORD_ORDER = "ORDER BY year, region_code, gender"


@dataclass(frozen=True)
class BirthDataFilter:
    """Conjunctive filter over birth records.

    Fields left as None place no constraint on the query.
    """

    year: int | None = None
    gender: str | None = None
    region_code: str | None = None

    def where_clause(self) -> tuple[str, list[Any]]:
        """Build the SQL WHERE clause and parameters for this filter."""
        conditions: list[str] = []
        params: list[Any] = []

        if self.year is not None:
            conditions.append("year = ?")
            params.append(self.year)
        if self.gender is not None:
            conditions.append("gender = ?")
            params.append(self.gender)
        if self.region_code is not None:
            conditions.append("region_code = ?")
            params.append(self.region_code)

        if not conditions:
            return "", params
        return "WHERE " + " AND ".join(conditions), params


def _records(rows: list[tuple[Any, ...]]) -> list[dict[str, Any]]:
    return [
        {
            "region_code": row[0],
            "region_name": row[1],
            "gender": row[2],
            "year": row[3],
            "value": row[4],
        }
        for row in rows
    ]


def query_records(
    conn: duckdb.DuckDBPyConnection,
    birth_filter: BirthDataFilter | None = None,
) -> list[dict[str, Any]]:
    """Query birth records matching a filter.

    Args:
        conn: DuckDB connection with birth_data table
        birth_filter: Optional filter; None returns every record

    Returns:
        List of record dicts ordered by year, region_code, gender
    """
    where_clause, params = (birth_filter or BirthDataFilter()).where_clause()
    rows = conn.execute(
        f"SELECT {RECORD_COLUMNS} FROM birth_data {where_clause} {RECORD_ORDER}",
        params,
    ).fetchall()
    return _records(rows)


def aggregate_by_region_year(
    conn: duckdb.DuckDBPyConnection,
    region_codes: Sequence[str] | None = None,
) -> list[dict[str, Any]]:
    """Sum births per (region_code, year).

    Region name is taken from the first-inserted row of each group.

    Args:
        conn: DuckDB connection with birth_data table
        region_codes: Optional restriction to these regions

    Returns:
        List of dicts with region_code, region_name, year and total_births,
        ordered by year then region_code
    """
    where_clause = ""
    params: list[Any] = []
    if region_codes is not None:
        placeholders = ", ".join("?" * len(region_codes))
        where_clause = f"WHERE region_code IN ({placeholders})"
        params.extend(region_codes)

    rows = conn.execute(
        f"""
        SELECT
            region_code,
            arg_min(region_name, rowid) AS region_name,
            year,
            SUM(value) AS total_births
        FROM birth_data
        {where_clause}
        GROUP BY region_code, year
        ORDER BY year, region_code
        """,
        params,
    ).fetchall()

    return [
        {
            "region_code": row[0],
            "region_name": row[1],
            "year": row[2],
            "total_births": int(row[3]),
        }
        for row in rows
    ]


def trends_by_year_gender(conn: duckdb.DuckDBPyConnection) -> list[dict[str, Any]]:
    """Sum births per (year, gender), ordered by year then gender."""
    rows = conn.execute("""
        SELECT year, gender, SUM(value) AS total_births
        FROM birth_data
        GROUP BY year, gender
        ORDER BY year, gender
    """).fetchall()

    return [{"year": row[0], "gender": row[1], "total_births": int(row[2])} for row in rows]


def top_regions(
    conn: duckdb.DuckDBPyConnection,
    year: int,
    limit: int = 10,
) -> list[dict[str, Any]]:
    """Get the regions with the most births in a year.

    Args:
        conn: DuckDB connection with birth_data table
        year: Year to rank
        limit: Maximum number of regions to return

    Returns:
        List of dicts with region_code, region_name and total_births,
        ordered by total_births descending (ties broken by region_code)
    """
    rows = conn.execute(
        """
        SELECT
            region_code,
            arg_min(region_name, rowid) AS region_name,
            SUM(value) AS total_births
        FROM birth_data
        WHERE year = ?
        GROUP BY region_code
        ORDER BY total_births DESC, region_code
        LIMIT ?
        """,
        [year, limit],
    ).fetchall()

    return [
        {"region_code": row[0], "region_name": row[1], "total_births": int(row[2])}
        for row in rows
    ]


def birth_statistics(conn: duckdb.DuckDBPyConnection) -> dict[str, Any]:
    """Get sum, average, max and min of births across all records.

    Returns:
        Dict with total_births, average_births, max_births, min_births and
        record_count. Aggregates other than the total are None when the
        store is empty.
    """
    result = conn.execute("""
        SELECT SUM(value), AVG(value), MAX(value), MIN(value), COUNT(*)
        FROM birth_data
    """).fetchone()
    assert result is not None
    total, average, maximum, minimum, count = result

    return {
        "total_births": int(total) if total is not None else 0,
        "average_births": float(average) if average is not None else None,
        "max_births": maximum,
        "min_births": minimum,
        "record_count": count,
    }
