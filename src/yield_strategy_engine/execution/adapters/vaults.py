"""Vault adapters: ERC-4626 share vaults and Harvest fToken vaults."""

from __future__ import annotations

from decimal import Decimal
from typing import List, Mapping, Optional

from ...datalake.schemas import Position, StrategyCall, Token
from ...errors import StrategyEngineError, ValidationError
from ...monitoring.logger import get_logger
from ..chain_client import ChainReader, read_uint
from ..encoding import encode_call, erc20_approve
from .base import (
    contract_for,
    estimated_profit,
    require_asset,
    require_positive,
    to_units,
)


class Erc4626VaultAdapter:
    """Deposit into and withdraw from an ERC-4626 vault.

    Redemption prefers ``withdraw(assets, receiver, owner)`` so the user gets
    exactly the requested underlying amount. When the vault does not expose it,
    or ``maxWithdraw`` cannot cover the request, the adapter converts the amount
    to shares (``previewWithdraw`` or ``convertToShares``, then the
    ``totalSupply / totalAssets`` ratio) and calls ``redeem``.
    """

    def __init__(
        self,
        strategy_id: str,
        chain_id: int,
        token: Token,
        reader: ChainReader,
        vaults: Mapping[int, str],
        *,
        estimated_apy: Decimal = Decimal("0.07"),
        supports_withdraw: bool = True,
        deposits_enabled: bool = True,
        share_conversion: str = "previewWithdraw",
        share_decimals: int = 18,
    ) -> None:
        self.strategy_id = strategy_id
        self.chain_id = chain_id
        self.token = token
        self._reader = reader
        self._vaults = vaults
        self._estimated_apy = estimated_apy
        self._supports_withdraw = supports_withdraw
        self._deposits_enabled = deposits_enabled
        self._share_conversion = share_conversion
        self._share_decimals = share_decimals
        self._logger = get_logger(__name__)

    def is_chain_supported(self, chain_id: int) -> bool:
        return chain_id in self._vaults

    @property
    def vault(self) -> str:
        return contract_for(self._vaults, self.chain_id, self.strategy_id)

    async def invest_calls(
        self, amount: int, user: str, asset: Optional[str] = None
    ) -> List[StrategyCall]:
        if not self._deposits_enabled:
            raise ValidationError(f"{self.strategy_id}: deposits are disabled, only withdrawals are supported")
        require_positive(amount, self.strategy_id)
        asset = require_asset(asset, self.token, self.chain_id, self.strategy_id)
        return [
            erc20_approve(asset, self.vault, amount),
            encode_call(self.vault, "deposit(uint256,address)", [amount, user]),
        ]

    async def redeem_calls(
        self, amount: int, user: str, underlying_asset: Optional[str] = None
    ) -> List[StrategyCall]:
        require_positive(amount, self.strategy_id)
        if self._supports_withdraw and await self._can_withdraw(amount, user):
            return [encode_call(self.vault, "withdraw(uint256,address,address)", [amount, user, user])]
        shares = await self.get_shares_for_amount(amount)
        try:
            balance = await read_uint(self._reader, self.chain_id, self.vault, "balanceOf(address)", [user])
        except Exception as exc:  # noqa: BLE001
            self._logger.debug("%s: share balance unavailable: %s", self.strategy_id, exc)
        else:
            shares = min(shares, balance) if balance > 0 else shares
        if shares <= 0:
            raise ValidationError(f"{self.strategy_id}: no shares to redeem for {amount}")
        self._logger.info("%s: redeeming %s shares for %s underlying", self.strategy_id, shares, amount)
        return [encode_call(self.vault, "redeem(uint256,address,address)", [shares, user, user])]

    async def _can_withdraw(self, amount: int, user: str) -> bool:
        try:
            limit = await read_uint(self._reader, self.chain_id, self.vault, "maxWithdraw(address)", [user])
        except Exception as exc:  # noqa: BLE001
            self._logger.warning("%s: maxWithdraw unavailable, using share redemption: %s", self.strategy_id, exc)
            return False
        return limit >= amount

    async def get_shares_for_amount(self, amount: int) -> int:
        try:
            return await read_uint(
                self._reader, self.chain_id, self.vault, f"{self._share_conversion}(uint256)", [amount]
            )
        except Exception as exc:  # noqa: BLE001
            self._logger.warning("%s: %s failed, using supply ratio: %s", self.strategy_id, self._share_conversion, exc)
        try:
            total_assets = await read_uint(self._reader, self.chain_id, self.vault, "totalAssets()")
            total_supply = await read_uint(self._reader, self.chain_id, self.vault, "totalSupply()")
        except Exception as exc:  # noqa: BLE001
            raise StrategyEngineError(f"{self.strategy_id}: unable to convert {amount} to shares: {exc}") from exc
        if total_assets == 0:
            return 0
        return amount * total_supply // total_assets

    async def preview_redeem(self, shares: int) -> int:
        try:
            return await read_uint(self._reader, self.chain_id, self.vault, "previewRedeem(uint256)", [shares])
        except Exception as exc:  # noqa: BLE001
            self._logger.warning("%s: previewRedeem failed: %s", self.strategy_id, exc)
            return 0

    async def current_share_price(self) -> Decimal:
        try:
            assets = await read_uint(
                self._reader,
                self.chain_id,
                self.vault,
                "convertToAssets(uint256)",
                [10**self._share_decimals],
            )
        except Exception as exc:  # noqa: BLE001
            self._logger.warning("%s: share price unavailable: %s", self.strategy_id, exc)
            return Decimal(1)
        return to_units(assets, self.token.decimals)

    async def get_profit(self, user: str, position: Position) -> Decimal:
        try:
            shares = await read_uint(self._reader, self.chain_id, self.vault, "balanceOf(address)", [user])
            assets = await read_uint(
                self._reader, self.chain_id, self.vault, "convertToAssets(uint256)", [shares]
            )
            return to_units(assets, self.token.decimals) - Decimal(position.amount)
        except Exception as exc:  # noqa: BLE001
            self._logger.warning("%s getProfit fell back to estimate: %s", self.strategy_id, exc)
            return estimated_profit(position, self._estimated_apy)


class HarvestVaultAdapter:
    """Harvest Finance fToken vault: ``deposit(amount)`` and ``withdraw(shares)``."""

    def __init__(
        self,
        strategy_id: str,
        chain_id: int,
        token: Token,
        reader: ChainReader,
        vaults: Mapping[int, str],
        *,
        estimated_apy: Decimal = Decimal("0.075"),
    ) -> None:
        self.strategy_id = strategy_id
        self.chain_id = chain_id
        self.token = token
        self._reader = reader
        self._vaults = vaults
        self._estimated_apy = estimated_apy
        self._logger = get_logger(__name__)

    def is_chain_supported(self, chain_id: int) -> bool:
        return chain_id in self._vaults

    @property
    def vault(self) -> str:
        return contract_for(self._vaults, self.chain_id, self.strategy_id)

    async def invest_calls(
        self, amount: int, user: str, asset: Optional[str] = None
    ) -> List[StrategyCall]:
        require_positive(amount, self.strategy_id)
        asset = require_asset(asset, self.token, self.chain_id, self.strategy_id)
        return [
            erc20_approve(asset, self.vault, amount),
            encode_call(self.vault, "deposit(uint256)", [amount]),
        ]

    async def redeem_calls(
        self, amount: int, user: str, underlying_asset: Optional[str] = None
    ) -> List[StrategyCall]:
        require_positive(amount, self.strategy_id)
        shares = await read_uint(self._reader, self.chain_id, self.vault, "balanceOf(address)", [user])
        if shares <= 0:
            raise ValidationError(f"{self.strategy_id}: {user} holds no vault shares")
        try:
            underlying = await read_uint(
                self._reader,
                self.chain_id,
                self.vault,
                "underlyingBalanceWithInvestmentForHolder(address)",
                [user],
            )
        except Exception as exc:  # noqa: BLE001
            self._logger.warning("%s: underlying balance unavailable, redeeming all shares: %s", self.strategy_id, exc)
            underlying = 0
        if underlying > amount:
            shares = amount * shares // underlying
        return [encode_call(self.vault, "withdraw(uint256)", [shares])]

    async def get_profit(self, user: str, position: Position) -> Decimal:
        try:
            underlying = await read_uint(
                self._reader,
                self.chain_id,
                self.vault,
                "underlyingBalanceWithInvestmentForHolder(address)",
                [user],
            )
            return to_units(underlying, self.token.decimals) - Decimal(position.amount)
        except Exception as exc:  # noqa: BLE001
            self._logger.warning("%s getProfit fell back to estimate: %s", self.strategy_id, exc)
            return estimated_profit(position, self._estimated_apy)


__all__ = ["Erc4626VaultAdapter", "HarvestVaultAdapter"]
