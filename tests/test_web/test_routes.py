"""Tests for the HTTP layer: routes, response shapes and error mapping."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from analyzer.exceptions import ErrorKind, UpstreamError, ValidationError
from analyzer.models import CoinSummary, HistoryRecord
from analyzer.web.app import STATUS_BY_KIND, create_app

HISTORY_PARAMS = {
    "coin": "bitcoin",
    "from": "2024-01-01T00:00:00Z",
    "to": "2024-01-01T04:00:00Z",
    "interval": "1h",
}

RECORDS = [
    HistoryRecord(
        timestamp="2024-01-01T00:00:00.000Z",
        open=100.0,
        high=102.0,
        low=99.0,
        close=102.0,
        volume=40.0,
        pct_change=None,
    ),
    HistoryRecord(
        timestamp="2024-01-01T01:00:00.000Z",
        open=103.0,
        high=103.0,
        low=103.0,
        close=103.0,
        volume=10.0,
        pct_change=0.98,
    ),
]


@pytest.fixture
def history_service() -> MagicMock:
    service = MagicMock()
    service.source_name = "coingecko"
    service.get_history = AsyncMock(return_value=RECORDS)
    service.get_coins = AsyncMock(
        return_value=[CoinSummary(id="bitcoin", symbol="btc", name="Bitcoin")]
    )
    service.invalidate_history = AsyncMock(return_value="history:coin:bitcoin")
    return service


@pytest.fixture
def client(history_service: MagicMock) -> TestClient:
    app = create_app()
    app.state.history_service = history_service
    app.state.cache = MagicMock(remote_enabled=False)
    return TestClient(app, raise_server_exceptions=False)


class TestHistoryEndpoint:
    def test_success(self, client: TestClient, history_service: MagicMock) -> None:
        response = client.get("/history", params=HISTORY_PARAMS)

        assert response.status_code == 200
        body = response.json()
        assert body[0] == {
            "timestamp": "2024-01-01T00:00:00.000Z",
            "open": 100.0,
            "high": 102.0,
            "low": 99.0,
            "close": 102.0,
            "volume": 40.0,
            "pctChange": None,
        }
        assert body[1]["pctChange"] == 0.98
        history_service.get_history.assert_awaited_once_with(
            "bitcoin", "2024-01-01T00:00:00Z", "2024-01-01T04:00:00Z", "1h"
        )

    def test_empty_result(self, client: TestClient, history_service: MagicMock) -> None:
        history_service.get_history.return_value = []

        response = client.get("/history", params=HISTORY_PARAMS)

        assert response.status_code == 200
        assert response.json() == []

    def test_missing_params_pass_through_as_none(
        self, client: TestClient, history_service: MagicMock
    ) -> None:
        history_service.get_history.side_effect = ValidationError(
            "Missing required query params: coin, from, to, interval",
            details="missing: from, to, interval",
        )

        response = client.get("/history", params={"coin": "bitcoin"})

        assert response.status_code == 400
        assert response.json() == {
            "error": "Missing required query params: coin, from, to, interval",
            "details": "missing: from, to, interval",
        }
        history_service.get_history.assert_awaited_once_with("bitcoin", None, None, None)

    def test_validation_error_without_details(
        self, client: TestClient, history_service: MagicMock
    ) -> None:
        history_service.get_history.side_effect = ValidationError('"from" must be before "to".')

        response = client.get("/history", params=HISTORY_PARAMS)

        assert response.status_code == 400
        assert response.json() == {"error": '"from" must be before "to".'}

    def test_upstream_error_is_502(self, client: TestClient, history_service: MagicMock) -> None:
        history_service.get_history.side_effect = UpstreamError(
            "CoinGecko API error: 503 Service Unavailable",
            status=503,
            details="upstream body",
        )

        response = client.get("/history", params=HISTORY_PARAMS)

        assert response.status_code == 502
        assert response.json()["error"] == "CoinGecko API error: 503 Service Unavailable"

    def test_unexpected_error_is_500(self, client: TestClient, history_service: MagicMock) -> None:
        history_service.get_history.side_effect = RuntimeError("boom")

        response = client.get("/history", params=HISTORY_PARAMS)

        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error", "details": "boom"}

    def test_invalidate(self, client: TestClient, history_service: MagicMock) -> None:
        response = client.delete("/history", params=HISTORY_PARAMS)

        assert response.status_code == 200
        assert response.json() == {"invalidated": "history:coin:bitcoin"}


class TestOtherEndpoints:
    def test_coins(self, client: TestClient) -> None:
        response = client.get("/coins")

        assert response.status_code == 200
        assert response.json()[0]["id"] == "bitcoin"

    def test_coins_upstream_failure(self, client: TestClient, history_service: MagicMock) -> None:
        history_service.get_coins.side_effect = UpstreamError("CoinGecko connection failed")

        response = client.get("/coins")

        assert response.status_code == 502

    def test_health(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "source": "coingecko", "remote_cache": False}


def test_every_error_kind_has_a_status() -> None:
    assert set(STATUS_BY_KIND) == set(ErrorKind)
    assert STATUS_BY_KIND[ErrorKind.VALIDATION] == 400
    assert STATUS_BY_KIND[ErrorKind.UPSTREAM] == 502
