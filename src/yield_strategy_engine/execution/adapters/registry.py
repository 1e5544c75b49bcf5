"""Strategy id to adapter registry."""

from __future__ import annotations

from decimal import Decimal
from typing import Callable, Dict, List, Optional

from ...errors import UnsupportedChainError, ValidationError
from ...strategy.catalog import get_strategy, resolve_strategy_id
from ...utils import constants as C
from ..chain_client import ChainReader
from .base import StrategyAdapter
from .lending import AaveV3SupplyAdapter, MorphoBlueSupplyAdapter
from .staking import AnkrFlowStakingAdapter, StCeloStakingAdapter
from .vaults import Erc4626VaultAdapter, HarvestVaultAdapter

AdapterFactory = Callable[[str, int, ChainReader], StrategyAdapter]

# Estimates used by getProfit when on-chain reads fail.
PROFIT_APY_OVERRIDES: Dict[str, Decimal] = {
    "Re7Strategy": Decimal("0.10"),
    "SteakhousePrimeStrategy": Decimal("0.072"),
    "CianVaultSupply": Decimal("0.0708"),
}

_AAVE_TOKENS = {
    "AaveV3Supply": (C.USDC, C.BASE),
    "AaveV3SupplyLeveraged": (C.USDC, C.BASE),
    "AaveV3SupplyCelo": (C.CELO_TOKEN, C.CELO),
    "AaveV3SupplyUSDTCelo": (C.USDT, C.CELO),
    "AaveV3SupplyBSC": (C.WBNB, C.BSC),
    "AaveV3SupplyPolygon": (C.USDC, C.POLYGON),
    "AaveV3SupplyArbitrum": (C.USDC, C.ARBITRUM),
}


def _profit_apy(strategy_id: str, default: str = "0.07") -> Decimal:
    if strategy_id in PROFIT_APY_OVERRIDES:
        return PROFIT_APY_OVERRIDES[strategy_id]
    metadata = get_strategy(strategy_id)
    if metadata is None:
        return Decimal(default)
    return metadata.apy / Decimal(100)


def _aave(strategy_id: str, chain_id: int, reader: ChainReader) -> StrategyAdapter:
    token, _ = _AAVE_TOKENS[strategy_id]
    return AaveV3SupplyAdapter(strategy_id, chain_id, token, reader, estimated_apy=_profit_apy(strategy_id))


def _metamorpho(strategy_id: str, chain_id: int, reader: ChainReader) -> StrategyAdapter:
    return Erc4626VaultAdapter(
        strategy_id,
        chain_id,
        C.USDC,
        reader,
        C.METAMORPHO_VAULTS[strategy_id],
        estimated_apy=_profit_apy(strategy_id),
    )


def _harvest(strategy_id: str, chain_id: int, reader: ChainReader) -> StrategyAdapter:
    return HarvestVaultAdapter(
        strategy_id,
        chain_id,
        C.USDC,
        reader,
        C.HARVEST_VAULTS[strategy_id],
        estimated_apy=_profit_apy(strategy_id),
    )


def _default_factories() -> Dict[str, AdapterFactory]:
    factories: Dict[str, AdapterFactory] = {}
    for strategy_id in _AAVE_TOKENS:
        factories[strategy_id] = _aave
    for strategy_id in C.METAMORPHO_VAULTS:
        factories[strategy_id] = _metamorpho
    for strategy_id in C.HARVEST_VAULTS:
        factories[strategy_id] = _harvest
    factories["MorphoSupply"] = lambda sid, chain, reader: MorphoBlueSupplyAdapter(sid, chain, reader)
    factories["FluidSupply"] = lambda sid, chain, reader: Erc4626VaultAdapter(
        sid, chain, C.USDC, reader, C.FLUID_VAULTS, estimated_apy=_profit_apy(sid)
    )
    factories["CianVaultSupply"] = lambda sid, chain, reader: Erc4626VaultAdapter(
        sid,
        chain,
        C.USDC,
        reader,
        C.CIAN_VAULTS,
        estimated_apy=_profit_apy(sid),
        share_conversion="convertToShares",
    )
    factories["AvantisVaultSupply"] = lambda sid, chain, reader: Erc4626VaultAdapter(
        sid,
        chain,
        C.USDC,
        reader,
        C.AVANTIS_VAULTS,
        estimated_apy=_profit_apy(sid),
        supports_withdraw=False,
        share_decimals=6,
    )
    factories["IporFusionSupply"] = lambda sid, chain, reader: Erc4626VaultAdapter(
        sid,
        chain,
        C.USDC,
        reader,
        C.IPOR_VAULTS,
        estimated_apy=Decimal("0.189"),
        supports_withdraw=False,
        deposits_enabled=False,
    )
    factories["StCeloStaking"] = lambda sid, chain, reader: StCeloStakingAdapter(
        sid, chain, reader, estimated_apy=_profit_apy(sid)
    )
    factories["AnkrFlowStaking"] = lambda sid, chain, reader: AnkrFlowStakingAdapter(
        sid, chain, reader, estimated_apy=_profit_apy(sid)
    )
    return factories


class AdapterRegistry:
    """Builds adapters by strategy id and checks chain support before use."""

    def __init__(
        self,
        reader: ChainReader,
        factories: Optional[Dict[str, AdapterFactory]] = None,
    ) -> None:
        self._reader = reader
        self._factories = dict(factories) if factories is not None else _default_factories()

    def register(self, strategy_id: str, factory: AdapterFactory) -> None:
        self._factories[strategy_id] = factory

    def known_ids(self) -> List[str]:
        return sorted(self._factories)

    def default_chain(self, strategy_id: str) -> int:
        metadata = get_strategy(strategy_id)
        if metadata is not None:
            return metadata.chain_id
        if strategy_id in _AAVE_TOKENS:
            return _AAVE_TOKENS[strategy_id][1]
        return C.BASE

    def get(self, strategy_id: str, chain_id: Optional[int] = None) -> StrategyAdapter:
        canonical = resolve_strategy_id(strategy_id)
        factory = self._factories.get(canonical)
        if factory is None:
            raise ValidationError(f"Strategy {strategy_id} has no registered adapter")
        target_chain = self.default_chain(canonical) if chain_id is None else chain_id
        adapter = factory(canonical, target_chain, self._reader)
        if not adapter.is_chain_supported(target_chain):
            raise UnsupportedChainError(canonical, target_chain)
        return adapter


__all__ = ["AdapterFactory", "AdapterRegistry", "PROFIT_APY_OVERRIDES"]
