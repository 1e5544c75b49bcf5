"""Protocol fee calculation and the fee-forwarding call."""

from __future__ import annotations

from typing import List, Optional, Sequence

from ..config.settings import ZERO_ADDRESS, FeeConfig, get_app_config
from ..datalake.schemas import FeeBreakdown, StrategyCall
from ..errors import ValidationError
from .encoding import erc20_transfer, native_transfer

PERMILLE = 1000


def calculate_fee(amount: int, fee_rate: int) -> FeeBreakdown:
    """Split ``amount`` into the fee and the remainder using permille integer math."""

    if amount < 0:
        raise ValidationError("Amount must not be negative")
    if fee_rate < 0 or fee_rate > PERMILLE:
        raise ValidationError(f"Fee rate {fee_rate} is outside 0..{PERMILLE}")
    fee = amount * fee_rate // PERMILLE
    return FeeBreakdown(fee=fee, amount_after_fee=amount - fee)


class FeeEngine:
    """Computes fees and builds the transfer that forwards them to the collector."""

    def __init__(self, config: Optional[FeeConfig] = None) -> None:
        self._config = config or get_app_config().fees

    @property
    def collector(self) -> str:
        return self._config.collector_address

    @property
    def fee_rate(self) -> int:
        return self._config.fee_rate_permille

    def calculate_fee(self, amount: int, fee_rate: Optional[int] = None) -> FeeBreakdown:
        return calculate_fee(amount, self.fee_rate if fee_rate is None else fee_rate)

    def build_fee_call(self, asset: Optional[str], is_native: bool, fee: int) -> StrategyCall:
        if fee > 0 and self.collector.lower() == ZERO_ADDRESS:
            raise ValidationError("A fee is due but no fee collector address is configured")
        if is_native:
            return native_transfer(self.collector, fee)
        if not asset:
            raise ValidationError("An ERC-20 fee call requires the asset address")
        return erc20_transfer(asset, self.collector, fee)

    def append_fee_call(
        self,
        calls: Sequence[StrategyCall],
        *,
        asset: Optional[str],
        is_native: bool,
        fee: int,
    ) -> List[StrategyCall]:
        result = list(calls)
        if fee > 0:
            result.append(self.build_fee_call(asset, is_native, fee))
        return result


__all__ = ["FeeEngine", "PERMILLE", "calculate_fee"]
