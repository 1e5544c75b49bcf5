"""Per-protocol strategy adapters and the registry that selects them."""

from .base import StrategyAdapter
from .lending import AaveV3SupplyAdapter, MorphoBlueSupplyAdapter
from .registry import AdapterRegistry
from .staking import AnkrFlowStakingAdapter, StCeloStakingAdapter
from .vaults import Erc4626VaultAdapter, HarvestVaultAdapter

__all__ = [
    "AaveV3SupplyAdapter",
    "AdapterRegistry",
    "AnkrFlowStakingAdapter",
    "Erc4626VaultAdapter",
    "HarvestVaultAdapter",
    "MorphoBlueSupplyAdapter",
    "StCeloStakingAdapter",
    "StrategyAdapter",
]
