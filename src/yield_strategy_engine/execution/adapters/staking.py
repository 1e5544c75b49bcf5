"""Liquid-staking adapters: stCELO on Celo and ankrFLOW on Flow EVM."""

from __future__ import annotations

from decimal import Decimal
from typing import List, Mapping, Optional

from ...datalake.schemas import Position, StrategyCall, Token
from ...errors import ValidationError
from ...monitoring.logger import get_logger
from ...utils.constants import ANKR_FLOW, CELO_TOKEN, FLOW_TOKEN, ST_CELO_MANAGER
from ..chain_client import ChainReader, read_uint
from ..encoding import encode_call, erc20_approve
from .base import contract_for, estimated_profit, require_positive, to_units


async def _shares_for(
    reader: ChainReader,
    chain_id: int,
    contract: str,
    conversion: str,
    amount: int,
    balance: int,
    logger,
) -> int:
    """Convert an underlying amount to liquid-staking shares, capped at the held balance."""

    try:
        shares = await read_uint(reader, chain_id, contract, f"{conversion}(uint256)", [amount])
    except Exception as exc:  # noqa: BLE001
        logger.warning("%s failed, redeeming the full balance: %s", conversion, exc)
        return balance
    return min(shares, balance)


class StCeloStakingAdapter:
    """Stake CELO through the stCELO manager."""

    def __init__(
        self,
        strategy_id: str,
        chain_id: int,
        reader: ChainReader,
        *,
        token: Token = CELO_TOKEN,
        contracts: Mapping[int, str] = ST_CELO_MANAGER,
        estimated_apy: Decimal = Decimal("0.033"),
    ) -> None:
        self.strategy_id = strategy_id
        self.chain_id = chain_id
        self.token = token
        self._reader = reader
        self._contracts = contracts
        self._estimated_apy = estimated_apy
        self._logger = get_logger(__name__)

    def is_chain_supported(self, chain_id: int) -> bool:
        return chain_id in self._contracts

    @property
    def manager(self) -> str:
        return contract_for(self._contracts, self.chain_id, self.strategy_id)

    async def invest_calls(
        self, amount: int, user: str, asset: Optional[str] = None
    ) -> List[StrategyCall]:
        require_positive(amount, self.strategy_id)
        calls: List[StrategyCall] = []
        if asset:
            expected = self.token.address_on(self.chain_id)
            if expected is None or asset.lower() != expected.lower():
                raise ValidationError(f"{self.strategy_id}: asset {asset} is not CELO")
            calls.append(erc20_approve(asset, self.manager, amount))
        calls.append(encode_call(self.manager, "deposit()", [], value=amount))
        return calls

    async def redeem_calls(
        self, amount: int, user: str, underlying_asset: Optional[str] = None
    ) -> List[StrategyCall]:
        require_positive(amount, self.strategy_id)
        balance = await read_uint(self._reader, self.chain_id, self.manager, "balanceOf(address)", [user])
        if balance <= 0:
            raise ValidationError(f"{self.strategy_id}: {user} holds no stCELO")
        shares = await _shares_for(
            self._reader, self.chain_id, self.manager, "toStakedCelo", amount, balance, self._logger
        )
        return [encode_call(self.manager, "withdraw(uint256)", [shares])]

    async def get_profit(self, user: str, position: Position) -> Decimal:
        try:
            balance = await read_uint(self._reader, self.chain_id, self.manager, "balanceOf(address)", [user])
            value = await read_uint(self._reader, self.chain_id, self.manager, "toCelo(uint256)", [balance])
            return to_units(value, self.token.decimals) - Decimal(position.amount)
        except Exception as exc:  # noqa: BLE001
            self._logger.warning("%s getProfit fell back to estimate: %s", self.strategy_id, exc)
            return estimated_profit(position, self._estimated_apy)


class AnkrFlowStakingAdapter:
    """Stake native FLOW for ankrFLOW; a single payable call with no approval."""

    def __init__(
        self,
        strategy_id: str,
        chain_id: int,
        reader: ChainReader,
        *,
        token: Token = FLOW_TOKEN,
        contracts: Mapping[int, str] = ANKR_FLOW,
        estimated_apy: Decimal = Decimal("0.108"),
    ) -> None:
        self.strategy_id = strategy_id
        self.chain_id = chain_id
        self.token = token
        self._reader = reader
        self._contracts = contracts
        self._estimated_apy = estimated_apy
        self._logger = get_logger(__name__)

    def is_chain_supported(self, chain_id: int) -> bool:
        return chain_id in self._contracts

    @property
    def ankr_flow(self) -> str:
        return contract_for(self._contracts, self.chain_id, self.strategy_id)

    async def invest_calls(
        self, amount: int, user: str, asset: Optional[str] = None
    ) -> List[StrategyCall]:
        require_positive(amount, self.strategy_id)
        if asset:
            raise ValidationError(f"{self.strategy_id}: FLOW is native, no asset address is accepted")
        return [encode_call(self.ankr_flow, "stake()", [], value=amount)]

    async def redeem_calls(
        self, amount: int, user: str, underlying_asset: Optional[str] = None
    ) -> List[StrategyCall]:
        require_positive(amount, self.strategy_id)
        balance = await read_uint(self._reader, self.chain_id, self.ankr_flow, "balanceOf(address)", [user])
        if balance <= 0:
            raise ValidationError(f"{self.strategy_id}: {user} holds no ankrFLOW")
        shares = await _shares_for(
            self._reader, self.chain_id, self.ankr_flow, "bondsToShares", amount, balance, self._logger
        )
        return [encode_call(self.ankr_flow, "unstake(uint256)", [shares])]

    async def get_profit(self, user: str, position: Position) -> Decimal:
        try:
            balance = await read_uint(self._reader, self.chain_id, self.ankr_flow, "balanceOf(address)", [user])
            value = await read_uint(
                self._reader, self.chain_id, self.ankr_flow, "sharesToBonds(uint256)", [balance]
            )
            return to_units(value, self.token.decimals) - Decimal(position.amount)
        except Exception as exc:  # noqa: BLE001
            self._logger.warning("%s getProfit fell back to estimate: %s", self.strategy_id, exc)
            return estimated_profit(position, self._estimated_apy)


__all__ = ["AnkrFlowStakingAdapter", "StCeloStakingAdapter"]
