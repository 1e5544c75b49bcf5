"""Lending-pool adapters: Aave V3 supply and Morpho Blue market supply."""

from __future__ import annotations

from decimal import Decimal
from typing import List, Mapping, Optional, Tuple

from ...datalake.schemas import Position, StrategyCall, Token
from ...errors import MarketResolutionError
from ...monitoring.logger import get_logger
from ...utils.constants import AAVE_V3_POOLS, MORPHO_BLUE, MORPHO_USDC_MARKET_ID, USDC
from ..chain_client import ChainReader, read_address, read_uint
from ..encoding import encode_call, erc20_approve
from .base import (
    contract_for,
    estimated_profit,
    require_asset,
    require_positive,
    to_units,
)

ZERO = "0x0000000000000000000000000000000000000000"
MARKET_PARAMS = "(address,address,address,address,uint256)"


class AaveV3SupplyAdapter:
    """Supply and withdraw an ERC-20 reserve on an Aave V3 pool."""

    def __init__(
        self,
        strategy_id: str,
        chain_id: int,
        token: Token,
        reader: ChainReader,
        *,
        estimated_apy: Decimal = Decimal("0.045"),
        pools: Mapping[int, str] = AAVE_V3_POOLS,
    ) -> None:
        self.strategy_id = strategy_id
        self.chain_id = chain_id
        self.token = token
        self._reader = reader
        self._estimated_apy = estimated_apy
        self._pools = pools
        self._logger = get_logger(__name__)

    def is_chain_supported(self, chain_id: int) -> bool:
        return chain_id in self._pools

    @property
    def pool(self) -> str:
        return contract_for(self._pools, self.chain_id, self.strategy_id)

    async def invest_calls(
        self, amount: int, user: str, asset: Optional[str] = None
    ) -> List[StrategyCall]:
        require_positive(amount, self.strategy_id)
        asset = require_asset(asset, self.token, self.chain_id, self.strategy_id)
        return [
            erc20_approve(asset, self.pool, amount),
            encode_call(
                self.pool,
                "supply(address,uint256,address,uint16)",
                [asset, amount, user, 0],
            ),
        ]

    async def redeem_calls(
        self, amount: int, user: str, underlying_asset: Optional[str] = None
    ) -> List[StrategyCall]:
        require_positive(amount, self.strategy_id)
        asset = require_asset(underlying_asset, self.token, self.chain_id, self.strategy_id)
        withdraw_amount = amount
        try:
            balance = await self._a_token_balance(asset, user)
        except Exception as exc:  # noqa: BLE001
            self._logger.warning("%s: aToken balance unavailable, withdrawing %s: %s", self.strategy_id, amount, exc)
        else:
            if 0 < balance < amount:
                withdraw_amount = balance
        return [
            encode_call(
                self.pool,
                "withdraw(address,uint256,address)",
                [asset, withdraw_amount, user],
            )
        ]

    async def get_profit(self, user: str, position: Position) -> Decimal:
        try:
            asset = self.token.address_on(self.chain_id)
            if asset is None:
                raise LookupError(f"{self.token.name} has no address on chain {self.chain_id}")
            balance = await self._a_token_balance(asset, user)
            return to_units(balance, self.token.decimals) - Decimal(position.amount)
        except Exception as exc:  # noqa: BLE001
            self._logger.warning("%s getProfit fell back to estimate: %s", self.strategy_id, exc)
            return estimated_profit(position, self._estimated_apy)

    async def _a_token_balance(self, asset: str, user: str) -> int:
        a_token = await read_address(
            self._reader, self.chain_id, self.pool, "getReserveAToken(address)", [asset]
        )
        return await read_uint(self._reader, self.chain_id, a_token, "balanceOf(address)", [user])


class MorphoBlueSupplyAdapter:
    """Supply USDC to a single Morpho Blue market identified by its market id."""

    PROFIT_APY = Decimal("0.067")

    def __init__(
        self,
        strategy_id: str,
        chain_id: int,
        reader: ChainReader,
        *,
        market_id: str = MORPHO_USDC_MARKET_ID,
        token: Token = USDC,
        contracts: Mapping[int, str] = MORPHO_BLUE,
    ) -> None:
        self.strategy_id = strategy_id
        self.chain_id = chain_id
        self.token = token
        self.market_id = market_id
        self._reader = reader
        self._contracts = contracts
        self._logger = get_logger(__name__)

    def is_chain_supported(self, chain_id: int) -> bool:
        return chain_id in self._contracts

    @property
    def morpho(self) -> str:
        return contract_for(self._contracts, self.chain_id, self.strategy_id)

    async def market_params(self) -> Tuple[str, str, str, str, int]:
        try:
            result = await self._reader.call(
                self.chain_id,
                self.morpho,
                "idToMarketParams(bytes32)",
                [bytes.fromhex(self.market_id[2:])],
                ("address", "address", "address", "address", "uint256"),
            )
        except Exception as exc:  # noqa: BLE001
            raise MarketResolutionError(self.market_id, str(exc)) from exc
        loan_token, collateral_token, oracle, irm, lltv = result
        if str(loan_token).lower() == ZERO:
            raise MarketResolutionError(self.market_id, "loan token is the zero address")
        return (loan_token, collateral_token, oracle, irm, int(lltv))

    async def invest_calls(
        self, amount: int, user: str, asset: Optional[str] = None
    ) -> List[StrategyCall]:
        require_positive(amount, self.strategy_id)
        asset = require_asset(asset, self.token, self.chain_id, self.strategy_id)
        params = await self.market_params()
        return [
            erc20_approve(asset, self.morpho, amount),
            encode_call(
                self.morpho,
                f"supply({MARKET_PARAMS},uint256,uint256,address,bytes)",
                [params, amount, 0, user, b""],
            ),
        ]

    async def redeem_calls(
        self, amount: int, user: str, underlying_asset: Optional[str] = None
    ) -> List[StrategyCall]:
        require_positive(amount, self.strategy_id)
        params = await self.market_params()
        return [
            encode_call(
                self.morpho,
                f"withdraw({MARKET_PARAMS},uint256,uint256,address,address)",
                [params, amount, 0, user, user],
            )
        ]

    async def get_profit(self, user: str, position: Position) -> Decimal:
        if position.created_at is None:
            self._logger.warning("%s: position creation date missing, returning 0 profit", self.strategy_id)
        return estimated_profit(position, self.PROFIT_APY)


__all__ = ["AaveV3SupplyAdapter", "MorphoBlueSupplyAdapter"]
