"""Live APY lookup against the DefiLlama yields aggregator with static fallbacks."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

import requests
from cachetools import TTLCache

from ..config.settings import DataSourceConfig, get_app_config
from ..datalake.schemas import StrategyIdentity, YieldQuote, YieldSource
from ..errors import ExternalDataUnavailable
from ..monitoring.logger import get_logger
from ..monitoring.metrics import METRICS
from ..strategy.catalog import get_strategy
from ..utils.constants import ARBITRUM, BASE, BSC, CELO, CHAIN_NAMES, FLOW, POLYGON

ONE_DECIMAL = Decimal("0.1")


@dataclass(slots=True, frozen=True)
class YieldMapping:
    """How one strategy is located in the aggregator's pool list."""

    strategy_id: str
    chain: str
    project: str
    symbol: Optional[str]
    fallback_apy: Decimal
    chain_id: int
    leveraged: bool = False


def _mapping(
    strategy_id: str,
    project: str,
    symbol: Optional[str],
    fallback: str,
    chain_id: int,
    *,
    leveraged: bool = False,
) -> YieldMapping:
    return YieldMapping(strategy_id, CHAIN_NAMES[chain_id], project, symbol, Decimal(fallback), chain_id, leveraged)


STRATEGY_MAPPINGS: List[YieldMapping] = [
    _mapping("AaveV3Supply", "aave-v3", "USDC", "4.5", BASE),
    _mapping("AaveV3SupplyLeveraged", "aave-v3", "USDC", "8.0", BASE, leveraged=True),
    _mapping("MorphoSupply", "morpho-blue", "USDC", "8.5", BASE),
    _mapping("FluidSupply", "fluid", "USDC", "5.7", BASE),
    _mapping("Re7Strategy", "morpho-v1", "RE7USDC", "8.2", BASE),
    _mapping("IporFusionSupply", "ipor-fusion", "USDC", "18.9", BASE),
    _mapping("AvantisVaultSupply", "avantis", "USDC", "20.2", BASE),
    _mapping("StCeloStaking", "aave-v3", "USDC", "3.3", CELO),
    _mapping("AaveV3SupplyCelo", "aave-v3", "CELO", "2.5", CELO),
    _mapping("AaveV3SupplyBSC", "aave-v3", "WBNB", "1.6", BSC),
    _mapping("AaveV3SupplyPolygon", "aave-v3", "USDC", "3.8", POLYGON),
    _mapping("AaveV3SupplyArbitrum", "aave-v3", "USDC", "4.2", ARBITRUM),
    _mapping("AnkrFlowStaking", "ankr-staking", None, "10.8", FLOW),
    _mapping("AsterdexBNBStaking", "asterdex", "BNB", "6.0", BSC),
]


def identity_for(mapping: YieldMapping) -> StrategyIdentity:
    metadata = get_strategy(mapping.strategy_id)
    if metadata is not None:
        return metadata.identity
    return StrategyIdentity(
        id=mapping.strategy_id,
        protocol_name=mapping.project,
        chain_id=mapping.chain_id,
        display_name=mapping.strategy_id,
    )


def _number(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except (ArithmeticError, ValueError):
        return None


def find_matching_pool(pools: Iterable[Mapping[str, Any]], mapping: YieldMapping) -> Optional[Mapping[str, Any]]:
    """Pick the record for ``mapping``: symbol match first, otherwise the largest TVL."""

    candidates = [
        pool for pool in pools if pool.get("chain") == mapping.chain and pool.get("project") == mapping.project
    ]
    if not candidates:
        return None
    if mapping.symbol:
        wanted = mapping.symbol.upper()
        for pool in candidates:
            if wanted in str(pool.get("symbol") or "").upper():
                return pool
    return max(candidates, key=lambda pool: _number(pool.get("tvlUsd")) or Decimal(0))


def calculate_apy(mapping: YieldMapping, pool: Mapping[str, Any]) -> Decimal:
    apy = _number(pool.get("apy")) or Decimal(0)
    if mapping.leveraged:
        base = _number(pool.get("apyBase")) or apy
        apy = base * 2
    return apy.quantize(ONE_DECIMAL, rounding=ROUND_HALF_UP)


class LiveYieldService:
    """Fetches live APYs per strategy; never raises, degrades to static values."""

    def __init__(
        self,
        config: Optional[DataSourceConfig] = None,
        session: Optional[requests.Session] = None,
        *,
        mappings: Optional[Iterable[YieldMapping]] = None,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config or get_app_config().data_sources
        self._session = session or requests.Session()
        self._session.headers.update({"User-Agent": self._config.user_agent})
        self._mappings = list(mappings) if mappings is not None else list(STRATEGY_MAPPINGS)
        self._cache: TTLCache[str, YieldQuote] = TTLCache(
            maxsize=max(len(self._mappings), 1) * 2,
            ttl=self._config.cache_ttl_seconds,
            timer=timer,
        )
        self._logger = get_logger(__name__)

    @property
    def mappings(self) -> List[YieldMapping]:
        return list(self._mappings)

    def fallback_yields(self) -> Dict[StrategyIdentity, Decimal]:
        return {identity_for(mapping): mapping.fallback_apy for mapping in self._mappings}

    def clear_cache(self) -> None:
        self._cache.clear()

    def _request_pools(self) -> List[Mapping[str, Any]]:
        try:
            response = self._session.get(str(self._config.yields_url), timeout=self._config.http_timeout)
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as exc:
            raise ExternalDataUnavailable(f"Yields aggregator request failed: {exc}") from exc
        pools = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(pools, list):
            raise ExternalDataUnavailable("Yields aggregator response has no pool list")
        return [pool for pool in pools if isinstance(pool, dict)]

    def _cached_yields(self) -> Optional[Dict[StrategyIdentity, Decimal]]:
        results: Dict[StrategyIdentity, Decimal] = {}
        for mapping in self._mappings:
            quote = self._cache.get(mapping.strategy_id)
            if quote is None:
                return None
            results[identity_for(mapping)] = quote.apy
        return results

    def fetch_all(self) -> Dict[StrategyIdentity, Decimal]:
        cached = self._cached_yields()
        if cached is not None:
            METRICS.increment("yield_cache_hit")
            return cached

        with METRICS.timer("yield_fetch_latency_ms"):
            try:
                pools = self._request_pools()
            except ExternalDataUnavailable as exc:
                METRICS.increment("yield_fetch_fallback")
                self._logger.warning("%s; using fallback APY values", exc)
                return self.fallback_yields()

        self._logger.info("Fetched %s pools from the yields aggregator", len(pools))
        results: Dict[StrategyIdentity, Decimal] = {}
        live = 0
        for mapping in self._mappings:
            pool = find_matching_pool(pools, mapping)
            if pool is None:
                self._logger.info(
                    "%s: no %s pool on %s, using fallback %s%%",
                    mapping.strategy_id,
                    mapping.project,
                    mapping.chain,
                    mapping.fallback_apy,
                )
                apy, source = mapping.fallback_apy, YieldSource.FALLBACK
            else:
                apy, source = calculate_apy(mapping, pool), YieldSource.DEFILLAMA
                live += 1
            self._cache[mapping.strategy_id] = YieldQuote(strategy_id=mapping.strategy_id, apy=apy, source=source)
            results[identity_for(mapping)] = apy
        METRICS.increment("yield_fetch_success")
        METRICS.gauge("yield_live_strategies", live)
        return results

    async def fetch_all_async(self) -> Dict[StrategyIdentity, Decimal]:
        return await asyncio.to_thread(self.fetch_all)

    def fetch_by_id(self) -> Dict[str, Decimal]:
        return {identity.id: apy for identity, apy in self.fetch_all().items()}

    def get_quote(self, strategy_id: str) -> YieldQuote:
        """Return the APY for one strategy, refreshing the whole map when it is not cached."""

        quote = self._cache.get(strategy_id)
        if quote is not None:
            METRICS.increment("yield_cache_hit")
            return YieldQuote(strategy_id=strategy_id, apy=quote.apy, source=YieldSource.CACHE, fetched_at=quote.fetched_at)
        mapping = next((m for m in self._mappings if m.strategy_id == strategy_id), None)
        if mapping is None:
            metadata = get_strategy(strategy_id)
            apy = metadata.apy if metadata is not None else Decimal(0)
            return YieldQuote(strategy_id=strategy_id, apy=apy, source=YieldSource.FALLBACK)
        self.fetch_all()
        quote = self._cache.get(strategy_id)
        if quote is None:
            return YieldQuote(strategy_id=strategy_id, apy=mapping.fallback_apy, source=YieldSource.FALLBACK)
        return quote


__all__ = [
    "LiveYieldService",
    "STRATEGY_MAPPINGS",
    "YieldMapping",
    "calculate_apy",
    "find_matching_pool",
    "identity_for",
]
