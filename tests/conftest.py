"""Shared pytest fixtures for birthdata tests."""

import io
import json
from collections.abc import Callable, Generator
from typing import Any
from urllib.request import Request

import duckdb
import pytest

from birthdata.config import Config
from birthdata.data_access import init_schema
from birthdata.normalize import BirthRecord


@pytest.fixture
def test_config() -> Config:
    """Create test configuration with safe defaults.

    Returns:
        Config object with an in-memory database
    """
    config = Config()
    # Override for tests
    config.database.path = ":memory:"
    config.database.memory_limit = "512MB"
    config.database.threads = 1
    config.scb.api_url = "https://scb.test/FoddaK"
    config.scb.timeout_seconds = 5
    return config


@pytest.fixture
def duckdb_conn() -> Generator[duckdb.DuckDBPyConnection]:
    """In-memory DuckDB with the birth_data table.

    Yields:
        DuckDB connection

    Note:
        Connection is automatically closed after test
    """
    conn = duckdb.connect(":memory:")
    init_schema(conn)
    yield conn
    conn.close()


@pytest.fixture
def region_names() -> dict[str, str]:
    """Small region code → name table."""
    return {
        "0114": "Upplands Väsby",
        "0180": "Stockholm",
        "1280": "Malmö",
        "1480": "Göteborg",
    }


@pytest.fixture
def sample_records() -> list[BirthRecord]:
    """Births for three municipalities, both sexes, two years."""
    rows = [
        ("0180", "Stockholm", "1", 2019, 5000),
        ("0180", "Stockholm", "2", 2019, 4800),
        ("0180", "Stockholm", "1", 2020, 5100),
        ("0180", "Stockholm", "2", 2020, 4900),
        ("1280", "Malmö", "1", 2019, 2100),
        ("1280", "Malmö", "2", 2019, 2000),
        ("1280", "Malmö", "1", 2020, 2200),
        ("1280", "Malmö", "2", 2020, 2050),
        ("0114", "Upplands Väsby", "1", 2020, 250),
        ("0114", "Upplands Väsby", "2", 2020, 240),
    ]
    return [
        BirthRecord(region_code=c, region_name=n, gender=g, year=y, value=v)
        for c, n, g, y, v in rows
    ]


class FakeResponse(io.BytesIO):
    """Minimal stand-in for the object urlopen returns."""

    def __enter__(self) -> "FakeResponse":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


@pytest.fixture
def scb_response() -> Callable[..., Callable[..., FakeResponse]]:
    """Build a fake urlopen returning the given SCB rows.

    Requests made through the fake are recorded on its ``requests`` list.
    """

    def build(rows: list[dict[str, Any]] | None = None, body: Any = None) -> Callable[..., Any]:
        payload = body if body is not None else {"columns": [], "data": rows or []}
        requests: list[Request] = []

        def fake_urlopen(req: Request, timeout: float | None = None) -> FakeResponse:
            requests.append(req)
            raw = payload if isinstance(payload, bytes) else json.dumps(payload).encode("utf-8")
            return FakeResponse(raw)

        fake_urlopen.requests = requests  # type: ignore[attr-defined]
        return fake_urlopen

    return build
