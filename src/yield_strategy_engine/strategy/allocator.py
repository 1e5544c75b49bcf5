"""Risk-tiered portfolio selection and allocation weights."""

from __future__ import annotations

import random
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Iterable, List, Mapping, Optional, Sequence, Union

from ..config.settings import PortfolioConfig, get_app_config
from ..datalake.schemas import Allocation, RiskTier, StrategyIdentity
from ..monitoring.logger import get_logger
from .catalog import STRATEGY_CATALOG, StrategyMetadata, strategies_on_chain
from .risk import dynamic_risk_tier

if TYPE_CHECKING:  # pragma: no cover
    from ..ingestion.yields import LiveYieldService

LiveYields = Mapping[Union[str, StrategyIdentity], Decimal]


@dataclass(slots=True)
class StrategyCandidate:
    metadata: StrategyMetadata
    current_apy: Decimal

    @property
    def id(self) -> str:
        return self.metadata.id

    @property
    def effective_risk(self) -> RiskTier:
        return dynamic_risk_tier(self.current_apy, self.metadata.risk)


def _by_id(live_yields: Optional[LiveYields]) -> dict:
    if not live_yields:
        return {}
    return {
        (key.id if isinstance(key, StrategyIdentity) else key): Decimal(str(value))
        for key, value in live_yields.items()
    }


def _round_half_up(value: float) -> int:
    return int(Decimal(value).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def _sorted_by_apy(candidates: Iterable[StrategyCandidate]) -> List[StrategyCandidate]:
    return sorted(candidates, key=lambda candidate: candidate.current_apy, reverse=True)


class PortfolioAllocationService:
    """Selects strategies for a risk tier and splits 100% across them.

    Jitter comes from ``rng`` so a seeded ``random.Random`` makes the
    weights reproducible.
    """

    def __init__(
        self,
        config: Optional[PortfolioConfig] = None,
        *,
        catalog: Optional[Sequence[StrategyMetadata]] = None,
        yield_service: Optional["LiveYieldService"] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._config = config or get_app_config().portfolio
        self._catalog = list(catalog) if catalog is not None else list(STRATEGY_CATALOG)
        self._yield_service = yield_service
        self._rng = rng or random.Random(self._config.random_seed)
        self._logger = get_logger(__name__)

    def _enrich(self, strategies: Iterable[StrategyMetadata], live: Mapping[str, Decimal]) -> List[StrategyCandidate]:
        return [StrategyCandidate(metadata=s, current_apy=live.get(s.id) or s.apy) for s in strategies]

    def best_strategies_for_risk(
        self,
        tier: RiskTier,
        chain_id: Optional[int] = None,
        live_yields: Optional[LiveYields] = None,
    ) -> List[StrategyCandidate]:
        chain = self._config.default_chain_id if chain_id is None else chain_id
        live = _by_id(live_yields)
        on_chain = self._enrich(strategies_on_chain(chain, self._catalog), live)

        if tier == RiskTier.LOW:
            return _sorted_by_apy(c for c in on_chain if c.metadata.risk == RiskTier.LOW)[:2]

        if tier == RiskTier.MEDIUM:
            pinned_ids = set(self._config.medium_shortlist)
            # The pinned shortlist is taken regardless of chain.
            pinned = self._enrich((s for s in self._catalog if s.id in pinned_ids and s.active), live)
            if pinned:
                return _sorted_by_apy(pinned)
            return _sorted_by_apy(c for c in on_chain if c.metadata.risk == RiskTier.MEDIUM)[:3]

        high = _sorted_by_apy(c for c in on_chain if c.metadata.risk == RiskTier.HIGH)
        if len(high) >= 2:
            return high[:3]
        return _sorted_by_apy(c for c in on_chain if c.metadata.risk == RiskTier.MEDIUM)[:3]

    def calculate_allocations(self, strategies: Sequence[StrategyCandidate], tier: RiskTier) -> List[int]:
        count = len(strategies)
        if count == 0:
            return []
        if count == 1:
            return [100]

        if count == 2:
            total = float(strategies[0].current_apy + strategies[1].current_apy)
            base = float(strategies[0].current_apy) / total * 100 if total > 0 else 50.0
            jitter = self._rng.randint(-10, 9)
            first = max(30, min(70, _round_half_up(base + jitter)))
            return [first, 100 - first]

        if count == 3:
            if tier == RiskTier.HIGH:
                top = 50 + self._rng.randint(0, 10)
                remaining = 100 - top
                second = int(remaining * 0.4) + self._rng.randint(0, 9)
                return [top, second, 100 - top - second]

            total = float(sum(s.current_apy for s in strategies))
            if total > 0:
                weights = [_round_half_up(float(s.current_apy) / total * 100) for s in strategies]
            else:
                weights = [33, 33, 33]
            weights[0] += 100 - sum(weights)
            weights = [max(20, min(50, w)) for w in weights]
            factor = 100 / sum(weights)
            weights = [_round_half_up(w * factor) for w in weights]
            weights[0] += 100 - sum(weights)
            return weights

        share = 100 // count
        weights = [share] * count
        weights[0] += 100 - share * count
        return weights

    def select_for_risk(
        self,
        tier: RiskTier,
        chain_id: Optional[int] = None,
        live_yields: Optional[LiveYields] = None,
    ) -> List[Allocation]:
        if live_yields is None and self._yield_service is not None:
            live_yields = self._yield_service.fetch_by_id()
        selected = self.best_strategies_for_risk(tier, chain_id, live_yields)
        weights = self.calculate_allocations(selected, tier)
        allocations = [
            Allocation(strategy=candidate.metadata.identity, percent=weight)
            for candidate, weight in zip(selected, weights)
        ]
        self._logger.info(
            "Selected %s strategies for %s risk: %s",
            len(allocations),
            tier.value,
            ", ".join(f"{a.strategy.id}={a.percent}%" for a in allocations),
        )
        return allocations


__all__ = ["LiveYields", "PortfolioAllocationService", "StrategyCandidate"]
