from __future__ import annotations

import asyncio
from decimal import Decimal
from typing import Any, Dict, List, Optional

import requests

from yield_strategy_engine.config.settings import DataSourceConfig
from yield_strategy_engine.datalake.schemas import YieldSource
from yield_strategy_engine.ingestion.yields import (
    STRATEGY_MAPPINGS,
    LiveYieldService,
    YieldMapping,
    calculate_apy,
    find_matching_pool,
)
from yield_strategy_engine.monitoring.metrics import METRICS
from yield_strategy_engine.utils.constants import BASE


class FakeResponse:
    def __init__(self, payload: Any, status_code: int = 200) -> None:
        self._payload = payload
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self) -> Any:
        return self._payload


class FakeSession:
    def __init__(self, payload: Any = None, error: Optional[Exception] = None, status_code: int = 200) -> None:
        self.headers: Dict[str, str] = {}
        self.payload = payload
        self.error = error
        self.status_code = status_code
        self.requests: List[str] = []

    def get(self, url: str, timeout: float) -> FakeResponse:
        self.requests.append(url)
        if self.error is not None:
            raise self.error
        return FakeResponse(self.payload, self.status_code)


POOLS = [
    {"chain": "Base", "project": "aave-v3", "symbol": "WETH", "tvlUsd": 900_000_000, "apy": 2.1, "apyBase": 2.0},
    {"chain": "Base", "project": "aave-v3", "symbol": "USDC", "tvlUsd": 100_000_000, "apy": 5.04, "apyBase": 4.2},
    {"chain": "Base", "project": "morpho-v1", "symbol": "RE7USDC", "tvlUsd": 20_000_000, "apy": 9.26},
    {"chain": "Flow", "project": "ankr-staking", "symbol": "ANKRFLOW", "tvlUsd": 5_000_000, "apy": 11.0},
    {"chain": "Flow", "project": "ankr-staking", "symbol": "OTHER", "tvlUsd": 9_000_000, "apy": 12.35},
]


def _service(session: FakeSession, **kwargs) -> LiveYieldService:
    return LiveYieldService(DataSourceConfig(), session=session, **kwargs)


def test_live_values_with_per_strategy_fallbacks() -> None:
    METRICS.reset()
    session = FakeSession({"status": "success", "data": POOLS})
    yields = _service(session).fetch_by_id()

    assert len(yields) == len(STRATEGY_MAPPINGS)
    assert yields["AaveV3Supply"] == Decimal("5.0")
    assert yields["AaveV3SupplyLeveraged"] == Decimal("8.4")
    assert yields["Re7Strategy"] == Decimal("9.3")
    assert yields["AnkrFlowStaking"] == Decimal("12.4")
    assert yields["MorphoSupply"] == Decimal("8.5")
    assert yields["StCeloStaking"] == Decimal("3.3")
    assert session.headers["User-Agent"]
    assert METRICS.get("yield_fetch_success") == 1
    assert METRICS.snapshot()["gauges"]["yield_live_strategies"] == 4.0


def test_unreachable_aggregator_returns_fallback_map() -> None:
    METRICS.reset()
    session = FakeSession(error=requests.ConnectionError("connection refused"))
    yields = _service(session).fetch_by_id()

    assert yields == {mapping.strategy_id: mapping.fallback_apy for mapping in STRATEGY_MAPPINGS}
    assert METRICS.get("yield_fetch_fallback") == 1


def test_malformed_payloads_fall_back() -> None:
    for session in (
        FakeSession({"status": "success"}),
        FakeSession(["not", "a", "dict"]),
        FakeSession({"data": POOLS}, status_code=503),
    ):
        yields = _service(session).fetch_by_id()
        assert yields["AaveV3Supply"] == Decimal("4.5")
        assert yields["AsterdexBNBStaking"] == Decimal("6.0")


def test_cached_results_skip_http_until_expiry() -> None:
    now = [1_000.0]
    session = FakeSession({"data": POOLS})
    service = _service(session, timer=lambda: now[0])

    first = service.fetch_all()
    second = service.fetch_all()
    assert first == second
    assert len(session.requests) == 1

    now[0] += DataSourceConfig().cache_ttl_seconds + 1
    service.fetch_all()
    assert len(session.requests) == 2


def test_failed_fetch_is_not_cached() -> None:
    session = FakeSession(error=requests.Timeout("slow"))
    service = _service(session)
    service.fetch_all()
    service.fetch_all()
    assert len(session.requests) == 2


def test_get_quote_reports_source() -> None:
    session = FakeSession({"data": POOLS})
    service = _service(session)

    fresh = service.get_quote("AaveV3Supply")
    assert fresh.source == YieldSource.DEFILLAMA
    assert service.get_quote("AaveV3Supply").source == YieldSource.CACHE
    assert service.get_quote("MorphoSupply").apy == Decimal("8.5")

    unmapped = service.get_quote("BBQStrategy")
    assert unmapped.source == YieldSource.FALLBACK
    assert unmapped.apy == Decimal("7.14")
    assert len(session.requests) == 1


def test_fetch_all_async_matches_sync() -> None:
    session = FakeSession({"data": POOLS})
    service = _service(session)
    assert asyncio.run(service.fetch_all_async()) == service.fetch_all()


def test_pool_matching_prefers_symbol_then_tvl() -> None:
    mapping = YieldMapping("X", "Base", "aave-v3", "usdc", Decimal("1"), BASE)
    assert find_matching_pool(POOLS, mapping)["symbol"] == "USDC"

    unknown_symbol = YieldMapping("X", "Base", "aave-v3", "DAI", Decimal("1"), BASE)
    assert find_matching_pool(POOLS, unknown_symbol)["symbol"] == "WETH"

    missing = YieldMapping("X", "Celo", "aave-v3", "USDC", Decimal("1"), BASE)
    assert find_matching_pool(POOLS, missing) is None


def test_leveraged_apy_doubles_base_yield() -> None:
    mapping = YieldMapping("L", "Base", "aave-v3", "USDC", Decimal("8"), BASE, leveraged=True)
    assert calculate_apy(mapping, {"apy": 5.0, "apyBase": 4.25}) == Decimal("8.5")
    assert calculate_apy(mapping, {"apy": 3.0}) == Decimal("6.0")


def test_clear_cache_forces_refetch() -> None:
    session = FakeSession({"data": POOLS})
    service = _service(session)
    service.fetch_all()
    service.clear_cache()
    service.fetch_all()
    assert len(session.requests) == 2
