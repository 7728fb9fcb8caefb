"""Tests for the HTTP surface."""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from tscache.api import MISSING_PARAMS_MESSAGE, create_app, parse_query
from tscache.exceptions import QueryValidationError
from tscache.materializer import RangeMaterializer
from tscache.store import MemoryCacheStore

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)

PARAMS = {
    "symbol": "ABC",
    "period": "1m",
    "start": "2024-01-01T00:00:00Z",
    "end": "2024-01-01T00:02:00Z",
}


@pytest.fixture
def client(store: MemoryCacheStore, fetcher) -> TestClient:
    return TestClient(create_app(RangeMaterializer(store, fetcher)))


class TestParseQuery:
    """Tests for parse_query()."""

    def test_valid_query(self) -> None:
        query = parse_query("ABC", "1m", PARAMS["start"], PARAMS["end"])

        assert query.symbol == "ABC"
        assert query.start == T0
        assert query.end == T0 + timedelta(minutes=2)

    @pytest.mark.parametrize("missing", ["symbol", "period", "start", "end"])
    def test_missing_parameter_raises(self, missing: str) -> None:
        params = {**PARAMS, missing: None}

        with pytest.raises(QueryValidationError, match="required"):
            parse_query(**params)

    def test_start_after_end_raises(self) -> None:
        with pytest.raises(QueryValidationError, match="after"):
            parse_query("ABC", "1m", PARAMS["end"], PARAMS["start"])


class TestTimeseriesEndpoint:
    """Tests for GET /timeseries."""

    def test_returns_series(self, client: TestClient, fetcher) -> None:
        response = client.get("/timeseries", params=PARAMS)

        assert response.status_code == 200
        assert response.json() == [
            {"symbol": "ABC", "t": "2024-01-01T00:00:00Z"},
            {"symbol": "ABC", "t": "2024-01-01T00:01:00Z"},
        ]
        assert len(fetcher.calls) == 2

    def test_repeat_request_served_from_cache(
        self, client: TestClient, fetcher
    ) -> None:
        first = client.get("/timeseries", params=PARAMS)
        second = client.get("/timeseries", params=PARAMS)

        assert second.json() == first.json()
        assert len(fetcher.calls) == 2

    @pytest.mark.parametrize("missing", ["symbol", "period", "start", "end"])
    def test_missing_parameter_is_400(self, client: TestClient, missing: str) -> None:
        params = {k: v for k, v in PARAMS.items() if k != missing}

        response = client.get("/timeseries", params=params)

        assert response.status_code == 400
        assert response.json() == {"error": MISSING_PARAMS_MESSAGE}

    def test_malformed_timestamp_is_400(self, client: TestClient) -> None:
        response = client.get("/timeseries", params={**PARAMS, "start": "yesterday"})

        assert response.status_code == 400
        assert "Invalid timestamp" in response.json()["error"]

    def test_year_only_dates_query_that_year(self, client: TestClient, fetcher) -> None:
        response = client.get(
            "/timeseries", params={**PARAMS, "start": "2024", "end": "2024"}
        )

        assert response.status_code == 200
        assert response.json() == [{"symbol": "ABC", "t": "2024-01-01T00:00:00Z"}]
        assert fetcher.calls[0][2] == T0

    def test_range_at_end_of_time_is_400(self, client: TestClient, fetcher) -> None:
        last = "9999-12-31T23:59:30Z"

        response = client.get("/timeseries", params={**PARAMS, "start": last, "end": last})

        assert response.status_code == 400
        assert "last representable unit" in response.json()["error"]
        assert fetcher.calls == []

    def test_upstream_failure_is_500(
        self, store: MemoryCacheStore, make_fetcher
    ) -> None:
        fetcher = make_fetcher(fail_at={T0 + timedelta(minutes=1)})
        client = TestClient(create_app(RangeMaterializer(store, fetcher)))

        response = client.get("/timeseries", params=PARAMS)

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to fetch data from external API"}

    def test_stats_endpoint(self, client: TestClient) -> None:
        client.get("/timeseries", params=PARAMS)
        client.get("/timeseries", params=PARAMS)

        stats = client.get("/stats").json()

        assert stats["materializer"]["requests"] == 2
        assert stats["materializer"]["aggregate_hits"] == 1
        assert stats["materializer"]["unit_fetches"] == 2
        assert stats["cache"]["keys"] == 3
