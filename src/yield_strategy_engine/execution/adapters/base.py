"""Shared interface and helpers for strategy adapters."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Mapping, Optional, Protocol

from ...datalake.schemas import Position, StrategyCall, Token
from ...errors import ValidationError

DAYS_PER_YEAR = Decimal(365)


class StrategyAdapter(Protocol):
    """Protocol implemented by every per-protocol adapter."""

    strategy_id: str
    chain_id: int
    token: Token

    async def invest_calls(
        self, amount: int, user: str, asset: Optional[str] = None
    ) -> List[StrategyCall]:
        """Return the ordered calls that deploy ``amount`` base units for ``user``."""

    async def redeem_calls(
        self, amount: int, user: str, underlying_asset: Optional[str] = None
    ) -> List[StrategyCall]:
        """Return the ordered calls that withdraw ``amount`` base units of the underlying."""

    async def get_profit(self, user: str, position: Position) -> Decimal:
        """Best-effort profit in token units. Never raises."""

    def is_chain_supported(self, chain_id: int) -> bool:
        ...


def contract_for(contracts: Mapping[int, str], chain_id: int, strategy_id: str) -> str:
    try:
        return contracts[chain_id]
    except KeyError as exc:
        raise ValidationError(f"{strategy_id}: no contract on chain {chain_id}") from exc


def require_positive(amount: int, strategy_id: str) -> None:
    if amount <= 0:
        raise ValidationError(f"{strategy_id}: amount must be positive, received {amount}")


def require_asset(asset: Optional[str], token: Token, chain_id: int, strategy_id: str) -> str:
    """Check that ``asset`` is the token this strategy accepts on ``chain_id``."""

    expected = token.address_on(chain_id)
    if not asset:
        raise ValidationError(f"{strategy_id}: asset is required")
    if expected is None or asset.lower() != expected.lower():
        raise ValidationError(
            f"{strategy_id}: asset {asset} is not supported, expected {token.name} ({expected})"
        )
    return expected


def to_units(raw: int, decimals: int) -> Decimal:
    return Decimal(int(raw)) / (Decimal(10) ** decimals)


def elapsed_days(created_at: Optional[datetime], now: Optional[datetime] = None) -> Optional[int]:
    """Whole days since ``created_at``, rounded up."""

    if created_at is None:
        return None
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    current = now or datetime.now(timezone.utc)
    seconds = abs((current - created_at).total_seconds())
    return math.ceil(seconds / 86_400)


def estimated_profit(position: Position, apy: Decimal, now: Optional[datetime] = None) -> Decimal:
    """Profit implied by a static APY over the position's age, or 0 when the age is unknown."""

    days = elapsed_days(position.created_at, now)
    if not days:
        return Decimal(0)
    return Decimal(position.amount) * Decimal(apy) / DAYS_PER_YEAR * days


__all__ = [
    "StrategyAdapter",
    "contract_for",
    "elapsed_days",
    "estimated_profit",
    "require_asset",
    "require_positive",
    "to_units",
]
