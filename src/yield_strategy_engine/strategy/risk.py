"""Risk tiering: APY thresholds and a heuristic per-strategy risk score."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Union

from ..datalake.schemas import RiskTier
from ..utils.constants import BASE
from .catalog import StrategyMetadata

LOW_APY_CEILING = Decimal("6.5")
MEDIUM_APY_CEILING = Decimal("8.5")

_BASE_SCORES: Dict[RiskTier, float] = {
    RiskTier.LOW: 0.2,
    RiskTier.MEDIUM: 0.5,
    RiskTier.HIGH: 0.8,
}

Number = Union[Decimal, float, int]


def dynamic_risk_tier(apy: Optional[Number], fallback: RiskTier = RiskTier.MEDIUM) -> RiskTier:
    """Tier from the current APY; ``fallback`` (the static label) when no APY is known."""

    if apy is None:
        return fallback
    value = Decimal(str(apy))
    if value <= LOW_APY_CEILING:
        return RiskTier.LOW
    if value <= MEDIUM_APY_CEILING:
        return RiskTier.MEDIUM
    return RiskTier.HIGH


def score_to_tier(score: float) -> RiskTier:
    if score <= 0.35:
        return RiskTier.LOW
    if score <= 0.65:
        return RiskTier.MEDIUM
    return RiskTier.HIGH


@dataclass(slots=True)
class RiskAssessment:
    level: RiskTier
    score: float
    confidence: str
    reasoning: List[str] = field(default_factory=list)
    source: str = "hardcoded"


class RiskCalculator:
    """Adjusts the static risk label by APY, protocol, leverage and chain."""

    def __init__(self, home_chain_id: int = BASE) -> None:
        self._home_chain_id = home_chain_id

    def assess(self, strategy: StrategyMetadata, apy: Optional[Number] = None) -> RiskAssessment:
        current = float(strategy.apy if apy is None else apy)
        score = _BASE_SCORES.get(strategy.risk, 0.5)
        reasoning: List[str] = []

        if current > 15:
            score += 0.2
            reasoning.append(f"High APY ({current}%) increases risk")
        elif current < 3:
            score -= 0.1
            reasoning.append(f"Conservative APY ({current}%) reduces risk")

        protocol = strategy.protocol_name.lower()
        if "aave" in protocol:
            score -= 0.1
            reasoning.append("Established protocol (AAVE) reduces risk")
        elif "morpho" in protocol:
            reasoning.append("Institutional-grade Morpho vault")

        if strategy.id == "AaveV3SupplyLeveraged":
            score += 0.3
            reasoning.append("Leveraged position increases risk")
        if strategy.id == "Re7Strategy":
            score -= 0.05
            reasoning.append("Institutional-grade Re7 Labs management")
        if strategy.id == "MultiStrategy":
            score -= 0.1
            reasoning.append("Diversified multi-strategy approach reduces risk")

        if strategy.chain_id != self._home_chain_id:
            score += 0.1
            reasoning.append("Cross-chain strategy adds bridge risk")

        score = max(0.0, min(1.0, score))
        if len(reasoning) > 2:
            confidence = "high"
        elif reasoning:
            confidence = "medium"
        else:
            confidence = "low"
        return RiskAssessment(
            level=score_to_tier(score),
            score=score,
            confidence=confidence,
            reasoning=reasoning,
            source="calculated" if reasoning else "hardcoded",
        )

    def assess_many(self, strategies: Iterable[StrategyMetadata]) -> Dict[str, RiskAssessment]:
        return {strategy.id: self.assess(strategy) for strategy in strategies}

    def risk_distribution(self, strategies: Iterable[StrategyMetadata]) -> Dict[str, int]:
        distribution = {tier.value: 0 for tier in RiskTier}
        total = 0
        for strategy in strategies:
            distribution[self.assess(strategy).level.value] += 1
            total += 1
        distribution["total"] = total
        return distribution


def risk_distribution(strategies: Iterable[StrategyMetadata]) -> Dict[str, int]:
    return RiskCalculator().risk_distribution(strategies)


__all__ = [
    "RiskAssessment",
    "RiskCalculator",
    "dynamic_risk_tier",
    "risk_distribution",
    "score_to_tier",
]
