"""Birth data service: refresh pipeline and read operations.

BirthDataService ties together the SCB client, the record normalizer, the
upsert writer and the all-records cache. A refresh runs:

    fetch → normalize → upsert → invalidate cache

Fetching completes before any write begins. Errors abort the current refresh
and leave both the store and the cache in their previous state (apart from
upserts already committed when a write fails).

Usage:
    python -m birthdata.service [--config config.toml]
    # Or via the console script:
    birthdata-refresh
"""

import argparse
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import duckdb

from birthdata.api.queries import (
    BirthDataFilter,
    aggregate_by_region_year,
    birth_statistics,
    query_records,
    top_regions,
    trends_by_year_gender,
)
from birthdata.cache import RecordCache
from birthdata.config import Config, ScbConfig
from birthdata.data_access import create_configured_connection
from birthdata.errors import InvalidRequest
from birthdata.normalize import RecordNormalizer
from birthdata.regions import get_region_names
from birthdata.scb_client import fetch_birth_data
from birthdata.store import upsert_records

logger = logging.getLogger(__name__)

DEFAULT_TOP_LIMIT = 10


@dataclass(frozen=True)
class RefreshResult:
    """Outcome of one refresh."""

    applied: int
    skipped: int

    @property
    def message(self) -> str:
        return f"Birth data updated. Processed {self.applied} data points."


class BirthDataService:
    """Read operations and refresh over the birth_data store.

    Args:
        conn: DuckDB connection with the birth_data table
        cache: Cache for the unfiltered all-records query
        normalizer: Normalizer with the region name table preloaded
        scb_config: SCB query settings used by refresh()
        region_codes: Regions to request from SCB; defaults to every region
            the normalizer knows a name for
    """

    def __init__(
        self,
        conn: duckdb.DuckDBPyConnection,
        cache: RecordCache,
        normalizer: RecordNormalizer,
        scb_config: ScbConfig | None = None,
        region_codes: Sequence[str] | None = None,
    ) -> None:
        self.conn = conn
        self.cache = cache
        self.normalizer = normalizer
        self.scb_config = scb_config or ScbConfig()
        self.region_codes = (
            list(region_codes) if region_codes is not None else sorted(normalizer.region_names)
        )

    @classmethod
    def from_config(
        cls,
        config: Config,
        conn: duckdb.DuckDBPyConnection,
        region_names: Mapping[str, str] | None = None,
    ) -> "BirthDataService":
        """Build a service with a fresh cache from configuration."""
        names = get_region_names() if region_names is None else region_names
        return cls(
            conn=conn,
            cache=RecordCache(ttl_seconds=config.cache.ttl_seconds),
            normalizer=RecordNormalizer(names),
            scb_config=config.scb,
        )

    def refresh(self) -> RefreshResult:
        """Fetch from SCB, normalize, upsert and invalidate the cache.

        Records already in the store whose key is absent from the new batch
        are kept as they are.

        Raises:
            FetchFailed: If the SCB request fails
            PersistFailed: If a store write fails partway through
        """
        return self.apply(self.fetch())

    def fetch(self) -> dict[str, Any]:
        """Request the configured regions from SCB without touching the store.

        Safe to run on a worker thread while reads use the connection.

        Raises:
            FetchFailed: If the SCB request fails
        """
        logger.info("Refreshing birth data from SCB")
        return fetch_birth_data(self.scb_config, self.region_codes)

    def apply(self, raw: Mapping[str, Any]) -> RefreshResult:
        """Normalize a fetched SCB response, upsert it and invalidate the cache.

        Raises:
            PersistFailed: If a store write fails partway through
        """
        normalized = self.normalizer.normalize(raw)
        applied = upsert_records(self.conn, normalized.records)
        self.cache.invalidate()

        result = RefreshResult(applied=applied, skipped=normalized.skipped)
        logger.info(f"Refresh complete: {result.applied} applied, {result.skipped} skipped")
        return result

    def list_all(self) -> list[dict[str, Any]]:
        """Get every record, served from the cache when it is warm."""
        records = self.cache.get()
        if records is not None:
            logger.debug("All-records cache hit")
            return records

        logger.debug("All-records cache miss, querying store")
        records = query_records(self.conn)
        self.cache.set(records)
        return records

    def by_region(self, region_code: str) -> list[dict[str, Any]]:
        return query_records(self.conn, BirthDataFilter(region_code=region_code))

    def filter(self, birth_filter: BirthDataFilter) -> list[dict[str, Any]]:
        return query_records(self.conn, birth_filter)

    def aggregate_by_region_year(self) -> list[dict[str, Any]]:
        return aggregate_by_region_year(self.conn)

    def trends(self) -> list[dict[str, Any]]:
        return trends_by_year_gender(self.conn)

    def compare(self, region_codes: Sequence[str]) -> list[dict[str, Any]]:
        """Aggregate by region and year for the given regions only.

        Raises:
            InvalidRequest: If no region codes are given
        """
        codes = [code.strip() for code in region_codes if code and code.strip()]
        if not codes:
            raise InvalidRequest("No region codes given for comparison")
        return aggregate_by_region_year(self.conn, region_codes=codes)

    def top(self, year: int | None, limit: int = DEFAULT_TOP_LIMIT) -> list[dict[str, Any]]:
        """Get the regions with the most births in a year.

        Raises:
            InvalidRequest: If year is missing or limit is below 1
        """
        if year is None:
            raise InvalidRequest("No year given for the top list")
        if limit < 1:
            raise InvalidRequest(f"Limit must be at least 1, got {limit}")
        return top_regions(self.conn, year=year, limit=limit)

    def statistics(self) -> dict[str, Any]:
        return birth_statistics(self.conn)


def main() -> None:
    """Run one refresh from the command line."""
    parser = argparse.ArgumentParser(description="Refresh SCB birth data")
    parser.add_argument(
        "--config", "-c", type=str, default="config.toml", help="Config file (default: config.toml)"
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)

    config = Config.load(args.config)
    print(f"Refreshing birth data into {config.database.path}...")

    conn = create_configured_connection(config.database)
    try:
        service = BirthDataService.from_config(config, conn)
        result = service.refresh()
    finally:
        conn.close()

    print(f"✓ {result.message} Skipped {result.skipped} rows.")


if __name__ == "__main__":
    main()
