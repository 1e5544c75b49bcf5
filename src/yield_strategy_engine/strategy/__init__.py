"""Strategy package exports."""

from .allocator import PortfolioAllocationService, StrategyCandidate
from .catalog import STRATEGY_CATALOG, StrategyMetadata, get_strategy, resolve_strategy_id
from .risk import RiskAssessment, RiskCalculator, dynamic_risk_tier, risk_distribution

__all__ = [
    "PortfolioAllocationService",
    "RiskAssessment",
    "RiskCalculator",
    "STRATEGY_CATALOG",
    "StrategyCandidate",
    "StrategyMetadata",
    "dynamic_risk_tier",
    "get_strategy",
    "resolve_strategy_id",
    "risk_distribution",
]
