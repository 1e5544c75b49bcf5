"""Static catalog of the strategies the engine can deploy into."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from ..datalake.schemas import RiskTier, StrategyIdentity
from ..utils.constants import ARBITRUM, BASE, BSC, CELO, FLOW, MANTLE, POLYGON


@dataclass(slots=True, frozen=True)
class StrategyMetadata:
    id: str
    title: str
    protocol_name: str
    chain_id: int
    apy: Decimal
    risk: RiskTier
    token_name: str = "USDC"
    active: bool = True
    sequential: bool = False

    @property
    def identity(self) -> StrategyIdentity:
        return StrategyIdentity(
            id=self.id,
            protocol_name=self.protocol_name,
            chain_id=self.chain_id,
            display_name=self.title,
        )


def _entry(
    strategy_id: str,
    title: str,
    protocol: str,
    apy: str,
    risk: RiskTier,
    *,
    chain_id: int = BASE,
    token: str = "USDC",
    sequential: bool = False,
) -> StrategyMetadata:
    return StrategyMetadata(
        id=strategy_id,
        title=title,
        protocol_name=protocol,
        chain_id=chain_id,
        apy=Decimal(apy),
        risk=risk,
        token_name=token,
        sequential=sequential,
    )


LOW, MEDIUM, HIGH = RiskTier.LOW, RiskTier.MEDIUM, RiskTier.HIGH

STRATEGY_CATALOG: List[StrategyMetadata] = [
    _entry("USDCYieldStrategy", "USDC Yield", "USDC Yield Layer", "7.06", MEDIUM, chain_id=MANTLE, sequential=True),
    _entry("Re7Strategy", "Pro", "Morpho", "8.2", MEDIUM),
    _entry("BBQStrategy", "High Yield", "Morpho", "7.14", MEDIUM),
    _entry("CSStrategy", "Reactor", "Morpho", "7.27", MEDIUM),
    _entry("ExtraFiStrategy", "xLend", "Morpho", "7.23", MEDIUM),
    _entry("SteakhousePrimeStrategy", "Prime", "Morpho", "7.16", MEDIUM),
    _entry("HighYieldClearStarStrategy", "HY Clear", "Morpho", "7.21", MEDIUM),
    _entry("CianVaultSupply", "Yield Layer", "CIAN", "7.08", MEDIUM, chain_id=MANTLE),
    _entry("AaveV3Supply", "Conservative", "AAVE", "4.5", LOW),
    _entry("MorphoSupply", "OptLend", "Morpho", "8.5", MEDIUM),
    _entry("AaveV3SupplyLeveraged", "Enhanced", "AAVE", "8.0", MEDIUM),
    _entry("FluidSupply", "Dynamic", "Fluid", "5.7", LOW),
    _entry("AvantisVaultSupply", "Perps Vault", "Avantis", "20.2", HIGH),
    _entry("HarvestFortyAcresUSDC", "40 Acres", "Harvest", "11.5", MEDIUM),
    _entry("HarvestAutopilotUSDC", "Autopilot", "Harvest", "7.54", LOW),
    _entry("StCeloStaking", "AAVE/USDC-Celo", "StCelo", "3.3", LOW, chain_id=CELO, token="CELO"),
    _entry("AaveV3SupplyCelo", "AAVE/Celo", "AAVE", "2.5", MEDIUM, chain_id=CELO, token="CELO"),
    _entry("AaveV3SupplyUSDTCelo", "AAVE/USDT-Celo", "AAVE", "1.01", LOW, chain_id=CELO, token="USDT"),
    _entry("AaveV3SupplyBSC", "AAVE/BNB", "AAVE", "1.6", MEDIUM, chain_id=BSC, token="WBNB"),
    _entry("AaveV3SupplyPolygon", "AAVE/USDC-Poly", "AAVE", "3.8", MEDIUM, chain_id=POLYGON),
    _entry("AaveV3SupplyArbitrum", "AAVE/USDC-Arb", "AAVE", "4.2", MEDIUM, chain_id=ARBITRUM),
    _entry("AnkrFlowStaking", "Flow LST", "Ankr", "10.8", LOW, chain_id=FLOW, token="FLOW"),
]

_BY_ID: Dict[str, StrategyMetadata] = {entry.id: entry for entry in STRATEGY_CATALOG}
_BY_TITLE: Dict[str, StrategyMetadata] = {entry.title.lower(): entry for entry in STRATEGY_CATALOG}

# Older position records stored vault-qualified or display names.
LEGACY_ALIASES: Dict[str, str] = {
    "HarvestVaultSupply_fortyAcresUSDC": "HarvestFortyAcresUSDC",
    "HarvestVaultSupply_autopilotUSDC": "HarvestAutopilotUSDC",
}


def resolve_strategy_id(name: str) -> str:
    """Map a canonical id, legacy alias, or display title to the canonical id."""

    if name in _BY_ID:
        return name
    if name in LEGACY_ALIASES:
        return LEGACY_ALIASES[name]
    by_title = _BY_TITLE.get(name.lower())
    if by_title is not None:
        return by_title.id
    return name


def get_strategy(strategy_id: str) -> Optional[StrategyMetadata]:
    return _BY_ID.get(resolve_strategy_id(strategy_id))


def strategies_on_chain(chain_id: int, catalog: Optional[Iterable[StrategyMetadata]] = None) -> List[StrategyMetadata]:
    source = STRATEGY_CATALOG if catalog is None else catalog
    return [entry for entry in source if entry.active and entry.chain_id == chain_id]


__all__ = [
    "LEGACY_ALIASES",
    "STRATEGY_CATALOG",
    "StrategyMetadata",
    "get_strategy",
    "resolve_strategy_id",
    "strategies_on_chain",
]
