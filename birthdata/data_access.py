"""DuckDB connection management with configuration."""

from pathlib import Path

import duckdb

from birthdata.config import DatabaseConfig

BIRTH_DATA_SCHEMA = """
    CREATE TABLE IF NOT EXISTS birth_data (
        region_code VARCHAR NOT NULL,
        region_name VARCHAR NOT NULL,
        gender VARCHAR NOT NULL,
        year INTEGER NOT NULL,
        value BIGINT NOT NULL,
        PRIMARY KEY (region_code, gender, year)
    )
"""


def init_schema(conn: duckdb.DuckDBPyConnection) -> None:
    """Create the birth_data table if it doesn't exist.

    The primary key on (region_code, gender, year) is the natural key that
    upserts conflict on.
    """
    conn.execute(BIRTH_DATA_SCHEMA)


def create_configured_connection(config: DatabaseConfig) -> duckdb.DuckDBPyConnection:
    """Create DuckDB connection with standard configuration and schema.

    Applies memory limits and threading, then ensures the birth_data table
    exists.

    Args:
        config: Database section of the configuration

    Returns:
        Configured DuckDB connection

    Example:
        >>> from birthdata.config import Config
        >>> config = Config.from_file("config.toml")
        >>> conn = create_configured_connection(config.database)
        >>> conn.execute("SELECT COUNT(*) FROM birth_data").fetchone()
        (0,)
    """
    if config.path != ":memory:":
        Path(config.path).parent.mkdir(parents=True, exist_ok=True)

    conn = duckdb.connect(config.path)

    conn.execute(f"SET memory_limit = '{config.memory_limit}'")
    conn.execute(f"SET threads = {config.threads}")

    init_schema(conn)

    return conn
