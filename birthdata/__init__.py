"""SCB birth statistics: ETL into DuckDB and a read API."""
