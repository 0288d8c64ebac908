"""Tests for HistoryService orchestration.

Uses a mocked SourceAdapter and a real local-only Cache on a fake clock.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from analyzer.cache.keys import COINS_CACHE_KEY, history_key
from analyzer.cache.store import Cache
from analyzer.config import CacheSettings
from analyzer.exceptions import UpstreamError, ValidationError
from analyzer.history.request import parse_request
from analyzer.history.service import HistoryService
from analyzer.models import CoinSummary, Sample

T0 = 1_704_067_200_000  # 2024-01-01T00:00:00Z
FROM = "2024-01-01T00:00:00Z"
TO = "2024-01-01T04:00:00Z"


def _scenario_samples() -> list[Sample]:
    prices = [100.0, 101.0, 99.0, 102.0, 103.0]
    return [
        Sample(timestamp_ms=T0 + i * 15 * 60_000, price=p, volume=10.0)
        for i, p in enumerate(prices)
    ]


@pytest.fixture
def source() -> MagicMock:
    src = MagicMock()
    src.name = "coingecko"
    src.fetch_samples = AsyncMock(return_value=_scenario_samples())
    return src


@pytest.fixture
def coin_list() -> MagicMock:
    provider = MagicMock()
    provider.fetch_coins = AsyncMock(
        return_value=[
            CoinSummary(id="bitcoin", symbol="btc", name="Bitcoin", current_price=42000.0),
            CoinSummary(id="ethereum", symbol="eth", name="Ethereum", current_price=2300.0),
        ]
    )
    return provider


@pytest.fixture
def cache(fake_clock) -> Cache:
    return Cache(remote=None, clock=fake_clock)


@pytest.fixture
def service(source, cache, coin_list, fake_clock) -> HistoryService:
    return HistoryService(
        source=source,
        cache=cache,
        cache_settings=CacheSettings(),
        coin_list=coin_list,
        clock=fake_clock,
    )


class TestGetHistory:
    @pytest.mark.asyncio
    async def test_hourly_buckets(self, service: HistoryService, source: MagicMock) -> None:
        records = await service.get_history("bitcoin", FROM, TO, "1h")

        assert len(records) == 2
        first, second = records
        assert first.timestamp == "2024-01-01T00:00:00.000Z"
        assert (first.open, first.high, first.low, first.close) == (100.0, 102.0, 99.0, 102.0)
        assert first.volume == 40.0
        assert first.pct_change is None
        assert second.timestamp == "2024-01-01T01:00:00.000Z"
        assert second.close == 103.0
        assert second.pct_change == pytest.approx(0.98, abs=0.01)

        window = source.fetch_samples.call_args.args[0]
        assert window.coin == "bitcoin"
        assert window.bucket_width_ms == 3_600_000

    @pytest.mark.asyncio
    async def test_second_request_served_from_cache(
        self, service: HistoryService, source: MagicMock
    ) -> None:
        first = await service.get_history("bitcoin", FROM, TO, "1h")
        second = await service.get_history("bitcoin", FROM, TO, "1h")

        assert first == second
        source.fetch_samples.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_equivalent_timestamps_share_cache_entry(
        self, service: HistoryService, source: MagicMock
    ) -> None:
        await service.get_history("bitcoin", FROM, TO, "1h")
        await service.get_history("bitcoin", "2024-01-01T00:00:00+00:00", TO, "1h")

        source.fetch_samples.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_different_interval_is_a_separate_entry(
        self, service: HistoryService, source: MagicMock
    ) -> None:
        await service.get_history("bitcoin", FROM, TO, "1h")
        records = await service.get_history("bitcoin", FROM, TO, "15m")

        assert source.fetch_samples.await_count == 2
        assert len(records) == 5

    @pytest.mark.asyncio
    async def test_validation_error_skips_upstream(
        self, service: HistoryService, source: MagicMock
    ) -> None:
        with pytest.raises(ValidationError):
            await service.get_history("bitcoin", TO, FROM, "1h")

        with pytest.raises(ValidationError):
            await service.get_history("bitcoin", FROM, TO, "1w")

        source.fetch_samples.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_upstream_error_propagates_and_is_not_cached(
        self, service: HistoryService, source: MagicMock
    ) -> None:
        source.fetch_samples.side_effect = UpstreamError("CoinGecko API error: 503", status=503)

        with pytest.raises(UpstreamError):
            await service.get_history("bitcoin", FROM, TO, "1h")

        source.fetch_samples.side_effect = None
        records = await service.get_history("bitcoin", FROM, TO, "1h")

        assert len(records) == 2
        assert source.fetch_samples.await_count == 2

    @pytest.mark.asyncio
    async def test_empty_result_is_cached(
        self, service: HistoryService, source: MagicMock
    ) -> None:
        source.fetch_samples.return_value = []

        assert await service.get_history("bitcoin", FROM, TO, "1h") == []
        assert await service.get_history("bitcoin", FROM, TO, "1h") == []
        source.fetch_samples.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_cache_entry_expires(
        self, service: HistoryService, source: MagicMock, fake_clock
    ) -> None:
        await service.get_history("bitcoin", FROM, TO, "1h")

        # Window end is later than the fake "now", so the recent TTL applies
        fake_clock.advance(300 * 1000)
        await service.get_history("bitcoin", FROM, TO, "1h")

        assert source.fetch_samples.await_count == 2

    @pytest.mark.asyncio
    async def test_invalidate_forces_refetch(
        self, service: HistoryService, source: MagicMock
    ) -> None:
        await service.get_history("bitcoin", FROM, TO, "1h")
        key = await service.invalidate_history("bitcoin", FROM, TO, "1h")
        await service.get_history("bitcoin", FROM, TO, "1h")

        assert key.startswith("history:")
        assert source.fetch_samples.await_count == 2

    @pytest.mark.asyncio
    async def test_malformed_cached_rows_are_a_miss(
        self, service: HistoryService, source: MagicMock, cache: Cache
    ) -> None:
        key = history_key(parse_request("bitcoin", FROM, TO, "1h"))
        await cache.set(key, [{"timestamp": "x"}], 300)

        records = await service.get_history("bitcoin", FROM, TO, "1h")

        assert len(records) == 2
        source.fetch_samples.assert_awaited_once()
        # The refetched result replaces the bad entry
        assert (await cache.get(key))[0]["open"] == 100.0

    @pytest.mark.asyncio
    async def test_non_list_cached_value_is_a_miss(
        self, service: HistoryService, source: MagicMock, cache: Cache
    ) -> None:
        key = history_key(parse_request("bitcoin", FROM, TO, "1h"))
        await cache.set(key, 42, 300)

        records = await service.get_history("bitcoin", FROM, TO, "1h")

        assert len(records) == 2
        source.fetch_samples.assert_awaited_once()


class TestGetCoins:
    @pytest.mark.asyncio
    async def test_coins_cached(
        self, service: HistoryService, coin_list: MagicMock, cache: Cache
    ) -> None:
        first = await service.get_coins()
        second = await service.get_coins()

        assert [c.id for c in first] == ["bitcoin", "ethereum"]
        assert second == first
        coin_list.fetch_coins.assert_awaited_once()
        assert await cache.get(COINS_CACHE_KEY) is not None

    @pytest.mark.asyncio
    async def test_coins_refetched_after_ttl(
        self, service: HistoryService, coin_list: MagicMock, fake_clock
    ) -> None:
        await service.get_coins()
        fake_clock.advance(120 * 1000)
        await service.get_coins()

        assert coin_list.fetch_coins.await_count == 2

    @pytest.mark.asyncio
    async def test_malformed_cached_coins_are_a_miss(
        self, service: HistoryService, coin_list: MagicMock, cache: Cache
    ) -> None:
        await cache.set(COINS_CACHE_KEY, [{"symbol": "btc"}], 120)

        coins = await service.get_coins()

        assert [c.id for c in coins] == ["bitcoin", "ethereum"]
        coin_list.fetch_coins.assert_awaited_once()


def test_source_name(service: HistoryService) -> None:
    assert service.source_name == "coingecko"
