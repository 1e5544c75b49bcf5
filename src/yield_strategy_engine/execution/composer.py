"""Compose several weighted strategies into one ordered call list."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from ..datalake.schemas import StrategyCall
from ..errors import ValidationError
from ..monitoring.logger import get_logger
from .adapters.base import StrategyAdapter


@dataclass(slots=True)
class ComposerEntry:
    adapter: StrategyAdapter
    percent: int

    @property
    def strategy_id(self) -> str:
        return self.adapter.strategy_id


class MultiStrategyComposer:
    """Splits an amount across adapters by allocation percentage.

    Allocations are expected to sum to 100. A smaller total leaves the
    remainder undeployed; this is logged but not rejected.
    """

    def __init__(self, entries: Optional[Iterable[Tuple[StrategyAdapter, int]]] = None) -> None:
        self._entries: List[ComposerEntry] = []
        self._logger = get_logger(__name__)
        for adapter, percent in entries or ():
            self.add(adapter, percent)

    def add(self, adapter: StrategyAdapter, percent: int) -> "MultiStrategyComposer":
        if percent < 0 or percent > 100:
            raise ValidationError(f"Allocation for {adapter.strategy_id} must be within 0..100, got {percent}")
        self._entries.append(ComposerEntry(adapter=adapter, percent=int(percent)))
        return self

    @property
    def entries(self) -> Sequence[ComposerEntry]:
        return tuple(self._entries)

    @property
    def total_percent(self) -> int:
        return sum(entry.percent for entry in self._entries)

    def split(self, total_amount: int) -> List[int]:
        return [total_amount * entry.percent // 100 for entry in self._entries]

    def _check_total(self) -> None:
        total = self.total_percent
        if total != 100:
            self._logger.warning(
                "Allocations sum to %s%%; %s%% of the amount stays in the wallet",
                total,
                max(0, 100 - total),
            )

    async def invest_calls(
        self, total_amount: int, user: str, asset: Optional[str] = None
    ) -> List[StrategyCall]:
        if not self._entries:
            raise ValidationError("No strategies have been added to the composer")
        self._check_total()
        calls: List[StrategyCall] = []
        for entry, sub_amount in zip(self._entries, self.split(total_amount)):
            if sub_amount <= 0:
                self._logger.info("Skipping %s: allocation rounds to zero", entry.strategy_id)
                continue
            calls.extend(await entry.adapter.invest_calls(sub_amount, user, asset))
        return calls

    async def redeem_calls(
        self, total_amount: int, user: str, underlying_asset: Optional[str] = None
    ) -> List[StrategyCall]:
        if not self._entries:
            raise ValidationError("No strategies have been added to the composer")
        self._check_total()
        calls: List[StrategyCall] = []
        for entry, sub_amount in zip(self._entries, self.split(total_amount)):
            if sub_amount <= 0:
                continue
            calls.extend(await entry.adapter.redeem_calls(sub_amount, user, underlying_asset))
        return calls


__all__ = ["ComposerEntry", "MultiStrategyComposer"]
