"""Tests for the birth data service: refresh pipeline and read operations."""

import json
import urllib.request
from collections.abc import Callable
from typing import Any

import duckdb
import pytest

from birthdata.api.queries import BirthDataFilter
from birthdata.cache import RecordCache
from birthdata.config import Config
from birthdata.errors import FetchFailed, InvalidRequest, PersistFailed
from birthdata.normalize import BirthRecord, RecordNormalizer
from birthdata.service import BirthDataService
from birthdata.store import count_records, upsert_records


class CountingConnection:
    """Wraps a connection and counts execute calls."""

    def __init__(self, conn: duckdb.DuckDBPyConnection) -> None:
        self.conn = conn
        self.calls = 0

    def execute(self, sql: str, params: object = None) -> duckdb.DuckDBPyConnection:
        self.calls += 1
        return self.conn.execute(sql, params)


@pytest.fixture
def service(
    duckdb_conn: duckdb.DuckDBPyConnection,
    region_names: dict[str, str],
    test_config: Config,
) -> BirthDataService:
    return BirthDataService(
        conn=duckdb_conn,
        cache=RecordCache(ttl_seconds=3600),
        normalizer=RecordNormalizer(region_names),
        scb_config=test_config.scb,
    )


@pytest.fixture
def loaded_service(
    service: BirthDataService, sample_records: list[BirthRecord]
) -> BirthDataService:
    upsert_records(service.conn, sample_records)
    return service


class TestRefresh:
    """Tests for fetch → normalize → upsert → invalidate."""

    def test_end_to_end_single_row(
        self,
        service: BirthDataService,
        scb_response: Callable[..., Any],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """One SCB row becomes exactly one stored record that list_all returns."""
        fake = scb_response([{"key": ["0114", "1", "2020"], "values": ["123"]}])
        monkeypatch.setattr(urllib.request, "urlopen", fake)

        result = service.refresh()

        assert result.applied == 1
        assert result.skipped == 0
        assert service.list_all() == [
            {
                "region_code": "0114",
                "region_name": "Upplands Väsby",
                "gender": "1",
                "year": 2020,
                "value": 123,
            }
        ]

    def test_requests_every_known_region(
        self,
        service: BirthDataService,
        region_names: dict[str, str],
        scb_response: Callable[..., Any],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        fake = scb_response([])
        monkeypatch.setattr(urllib.request, "urlopen", fake)

        service.refresh()

        body = json.loads(fake.requests[0].data)
        assert body["query"][0]["selection"]["values"] == sorted(region_names)

    def test_skipped_rows_reported(
        self,
        service: BirthDataService,
        scb_response: Callable[..., Any],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        rows = [
            {"key": ["0114", "1", "2020"], "values": ["10"]},
            {"key": ["0114", "2", "2020"], "values": [".."]},
            {"key": ["0180", "1", "2020"], "values": []},
        ]
        monkeypatch.setattr(urllib.request, "urlopen", scb_response(rows))

        result = service.refresh()

        assert result.applied == 1
        assert result.skipped == 2
        assert count_records(service.conn) == 1

    def test_refresh_twice_is_idempotent(
        self,
        service: BirthDataService,
        scb_response: Callable[..., Any],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        rows = [
            {"key": ["0114", "1", "2020"], "values": ["10"]},
            {"key": ["0114", "2", "2020"], "values": ["11"]},
        ]
        monkeypatch.setattr(urllib.request, "urlopen", scb_response(rows))

        service.refresh()
        first = service.filter(BirthDataFilter())
        service.refresh()

        assert service.filter(BirthDataFilter()) == first
        assert count_records(service.conn) == 2

    def test_refresh_invalidates_cache(
        self,
        loaded_service: BirthDataService,
        scb_response: Callable[..., Any],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """After a refresh the next list_all sees the new data."""
        before = loaded_service.list_all()
        rows = [{"key": ["1480", "1", "2020"], "values": ["3000"]}]
        monkeypatch.setattr(urllib.request, "urlopen", scb_response(rows))

        loaded_service.refresh()
        after = loaded_service.list_all()

        assert after is not before
        assert len(after) == len(before) + 1

    def test_refresh_invalidates_even_without_changes(
        self,
        loaded_service: BirthDataService,
        scb_response: Callable[..., Any],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        loaded_service.list_all()
        monkeypatch.setattr(urllib.request, "urlopen", scb_response([]))

        loaded_service.refresh()

        assert loaded_service.cache.get() is None

    def test_fetch_failure_leaves_cache_and_store(
        self, loaded_service: BirthDataService, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        cached = loaded_service.list_all()

        def failing_urlopen(req: urllib.request.Request, timeout: float | None = None) -> Any:
            raise TimeoutError("timed out")

        monkeypatch.setattr(urllib.request, "urlopen", failing_urlopen)

        with pytest.raises(FetchFailed):
            loaded_service.refresh()

        assert loaded_service.cache.get() is cached
        assert count_records(loaded_service.conn) == len(cached)

    def test_persist_failure_leaves_cache(
        self,
        service: BirthDataService,
        scb_response: Callable[..., Any],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        cached = service.list_all()
        service.conn.execute("DROP TABLE birth_data")
        rows = [{"key": ["0114", "1", "2020"], "values": ["10"]}]
        monkeypatch.setattr(urllib.request, "urlopen", scb_response(rows))

        with pytest.raises(PersistFailed):
            service.refresh()

        assert service.cache.get() is cached


class TestListAll:
    """Tests for the cached all-records read."""

    def test_repeated_calls_hit_cache(self, loaded_service: BirthDataService) -> None:
        """Without invalidation, list_all returns the same list without querying."""
        counting = CountingConnection(loaded_service.conn)
        loaded_service.conn = counting  # type: ignore[assignment]

        first = loaded_service.list_all()
        second = loaded_service.list_all()

        assert second is first
        assert counting.calls == 1

    def test_invalidate_forces_requery(self, loaded_service: BirthDataService) -> None:
        counting = CountingConnection(loaded_service.conn)
        loaded_service.conn = counting  # type: ignore[assignment]

        first = loaded_service.list_all()
        loaded_service.cache.invalidate()
        second = loaded_service.list_all()

        assert second is not first
        assert second == first
        assert counting.calls == 2
        assert loaded_service.cache.get() is second

    def test_expired_entry_requeried(
        self, duckdb_conn: duckdb.DuckDBPyConnection, region_names: dict[str, str]
    ) -> None:
        now = [0.0]
        service = BirthDataService(
            conn=duckdb_conn,
            cache=RecordCache(ttl_seconds=10, clock=lambda: now[0]),
            normalizer=RecordNormalizer(region_names),
        )
        first = service.list_all()
        now[0] = 10.0
        assert service.list_all() is not first

    def test_other_reads_do_not_touch_cache(self, loaded_service: BirthDataService) -> None:
        loaded_service.by_region("0180")
        loaded_service.aggregate_by_region_year()
        loaded_service.filter(BirthDataFilter(year=2020))
        assert loaded_service.cache.get() is None


class TestReadOperations:
    """Tests for filter and aggregation reads."""

    def test_by_region(self, loaded_service: BirthDataService) -> None:
        records = loaded_service.by_region("1280")
        assert len(records) == 4
        assert {r["region_code"] for r in records} == {"1280"}

    def test_by_unknown_region_is_empty(self, loaded_service: BirthDataService) -> None:
        assert loaded_service.by_region("9999") == []

    def test_aggregate_sums_genders(self, service: BirthDataService) -> None:
        """Two genders for one region and year sum into one group."""
        upsert_records(
            service.conn,
            [
                BirthRecord("0114", "Upplands Väsby", "1", 2016, 10),
                BirthRecord("0114", "Upplands Väsby", "2", 2016, 5),
            ],
        )
        assert service.aggregate_by_region_year() == [
            {
                "region_code": "0114",
                "region_name": "Upplands Väsby",
                "year": 2016,
                "total_births": 15,
            }
        ]

    def test_aggregate_order(self, loaded_service: BirthDataService) -> None:
        """Groups are ordered by year, then region code."""
        keys = [(r["year"], r["region_code"]) for r in loaded_service.aggregate_by_region_year()]
        assert keys == [
            (2019, "0180"),
            (2019, "1280"),
            (2020, "0114"),
            (2020, "0180"),
            (2020, "1280"),
        ]

    def test_trends(self, loaded_service: BirthDataService) -> None:
        assert loaded_service.trends() == [
            {"year": 2019, "gender": "1", "total_births": 7100},
            {"year": 2019, "gender": "2", "total_births": 6800},
            {"year": 2020, "gender": "1", "total_births": 7550},
            {"year": 2020, "gender": "2", "total_births": 7190},
        ]

    def test_compare_restricts_regions(self, loaded_service: BirthDataService) -> None:
        result = loaded_service.compare(["0114", "1280"])
        assert {r["region_code"] for r in result} == {"0114", "1280"}
        assert [(r["year"], r["region_code"]) for r in result] == [
            (2019, "1280"),
            (2020, "0114"),
            (2020, "1280"),
        ]

    @pytest.mark.parametrize("codes", [[], [""], ["  ", ""]])
    def test_compare_empty_set_rejected_before_query(
        self, loaded_service: BirthDataService, codes: list[str]
    ) -> None:
        counting = CountingConnection(loaded_service.conn)
        loaded_service.conn = counting  # type: ignore[assignment]

        with pytest.raises(InvalidRequest):
            loaded_service.compare(codes)

        assert counting.calls == 0

    def test_top_orders_by_total(self, service: BirthDataService) -> None:
        """Totals 30, 10, 20 with limit 2 give [30, 20]."""
        upsert_records(
            service.conn,
            [
                BirthRecord("0114", "Upplands Väsby", "1", 2020, 30),
                BirthRecord("0180", "Stockholm", "1", 2020, 10),
                BirthRecord("1280", "Malmö", "1", 2020, 20),
                BirthRecord("1280", "Malmö", "1", 2019, 999),
            ],
        )
        result = service.top(year=2020, limit=2)
        assert [r["total_births"] for r in result] == [30, 20]
        assert [r["region_code"] for r in result] == ["0114", "1280"]

    def test_top_default_limit(self, service: BirthDataService) -> None:
        upsert_records(
            service.conn,
            [BirthRecord(f"{i:04d}", "Unknown", "1", 2020, i) for i in range(1, 16)],
        )
        assert len(service.top(year=2020)) == 10

    def test_top_without_year_rejected(self, loaded_service: BirthDataService) -> None:
        with pytest.raises(InvalidRequest, match="year"):
            loaded_service.top(year=None)

    def test_top_rejects_non_positive_limit(self, loaded_service: BirthDataService) -> None:
        with pytest.raises(InvalidRequest, match="Limit"):
            loaded_service.top(year=2020, limit=0)

    def test_statistics(self, service: BirthDataService) -> None:
        upsert_records(
            service.conn,
            [
                BirthRecord("0114", "Upplands Väsby", "1", 2020, 10),
                BirthRecord("0114", "Upplands Väsby", "2", 2020, 20),
                BirthRecord("0180", "Stockholm", "1", 2020, 60),
            ],
        )
        assert service.statistics() == {
            "total_births": 90,
            "average_births": 30.0,
            "max_births": 60,
            "min_births": 10,
            "record_count": 3,
        }

    def test_statistics_empty_store(self, service: BirthDataService) -> None:
        assert service.statistics() == {
            "total_births": 0,
            "average_births": None,
            "max_births": None,
            "min_births": None,
            "record_count": 0,
        }

    @pytest.mark.parametrize(
        ("birth_filter", "expected"),
        [
            (BirthDataFilter(), 10),
            (BirthDataFilter(year=2020), 6),
            (BirthDataFilter(gender="2"), 5),
            (BirthDataFilter(region_code="0180"), 4),
            (BirthDataFilter(year=2020, gender="1", region_code="1280"), 1),
            (BirthDataFilter(year=2018), 0),
        ],
    )
    def test_filter(
        self, loaded_service: BirthDataService, birth_filter: BirthDataFilter, expected: int
    ) -> None:
        """Supplied filters are combined with AND; omitted ones match everything."""
        assert len(loaded_service.filter(birth_filter)) == expected
