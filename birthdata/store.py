"""Idempotent writes of birth records to DuckDB."""

import logging
from collections.abc import Iterable

import duckdb

from birthdata.errors import PersistFailed
from birthdata.normalize import BirthRecord

logger = logging.getLogger(__name__)

UPSERT_SQL = """
    INSERT INTO birth_data (region_code, region_name, gender, year, value)
    VALUES (?, ?, ?, ?, ?)
    ON CONFLICT (region_code, gender, year)
    DO UPDATE SET value = excluded.value, region_name = excluded.region_name
"""


def upsert_records(conn: duckdb.DuckDBPyConnection, records: Iterable[BirthRecord]) -> int:
    """Insert or update records keyed on (region_code, gender, year).

    Each record is written by a single statement, so a record is never
    partially updated. The batch is not wrapped in a transaction: if a write
    fails, records written before it stay committed.

    Args:
        conn: DuckDB connection with the birth_data table
        records: Normalized records to write

    Returns:
        Number of records upserted

    Raises:
        PersistFailed: If a write fails; ``applied`` holds the count written
            before the failure
    """
    applied = 0
    for record in records:
        try:
            conn.execute(
                UPSERT_SQL,
                [
                    record.region_code,
                    record.region_name,
                    record.gender,
                    record.year,
                    record.value,
                ],
            )
        except duckdb.Error as e:
            logger.error(f"Upsert failed at {record.key} after {applied} records: {e}")
            raise PersistFailed(
                f"Failed to write birth data after {applied} records: {e}", applied=applied
            ) from e
        applied += 1

    logger.info(f"Upserted {applied} records")
    return applied


def count_records(conn: duckdb.DuckDBPyConnection) -> int:
    """Get total record count in the store.

    Args:
        conn: DuckDB connection with the birth_data table

    Returns:
        Number of rows in birth_data
    """
    result = conn.execute("SELECT COUNT(*) FROM birth_data").fetchone()
    return result[0] if result else 0
