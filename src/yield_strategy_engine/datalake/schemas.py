"""Data models shared by the adapters, orchestrators, allocation, and ledger layers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Mapping, Optional


@dataclass(slots=True, frozen=True)
class StrategyCall:
    """A single on-chain call: target, calldata, and native value in wei."""

    to: str
    data: bytes = b""
    value: int = 0


@dataclass(slots=True, frozen=True)
class StrategyIdentity:
    """Stable key joining allocation decisions, live yields, and adapters."""

    id: str
    protocol_name: str
    chain_id: int
    display_name: str


@dataclass(slots=True)
class Allocation:
    strategy: StrategyIdentity
    percent: int


class RiskTier(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class PositionStatus(str, Enum):
    ACTIVE = "active"
    CLOSED = "closed"


class TransactionType(str, Enum):
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"


class YieldSource(str, Enum):
    DEFILLAMA = "defillama"
    FALLBACK = "fallback"
    CACHE = "cache"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class Position:
    """A user's recorded stake in one strategy on one chain."""

    id: int
    owner: str
    strategy_id: str
    chain_id: int
    token_name: str
    amount: Decimal
    entry_price: Decimal = Decimal("1")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    status: PositionStatus = PositionStatus.ACTIVE


@dataclass(slots=True)
class PositionDelta:
    owner: str
    amount: Decimal
    token_name: str
    chain_id: int
    strategy_id: str


@dataclass(slots=True)
class TransactionEntry:
    owner: str
    chain_id: int
    strategy_id: str
    hash: str
    amount: Decimal
    token_name: str
    type: TransactionType
    recorded_at: datetime = field(default_factory=utcnow)


@dataclass(slots=True)
class YieldQuote:
    strategy_id: str
    apy: Decimal
    source: YieldSource
    fetched_at: datetime = field(default_factory=utcnow)


@dataclass(slots=True)
class Receipt:
    transaction_hash: str
    status: str
    block_number: Optional[int] = None

    @property
    def succeeded(self) -> bool:
        return self.status == "success"


@dataclass(slots=True, frozen=True)
class Token:
    """An asset the engine can deposit, keyed by chain."""

    name: str
    decimals: int
    is_native: bool = False
    addresses: Mapping[int, str] = field(default_factory=dict)

    def address_on(self, chain_id: int) -> Optional[str]:
        return self.addresses.get(chain_id)


@dataclass(slots=True)
class FeeBreakdown:
    fee: int
    amount_after_fee: int


@dataclass(slots=True)
class ExecutionResult:
    """Outcome of one confirmed batched operation."""

    transaction_hash: str
    chain_id: int
    calls: List[StrategyCall]
    fee: int = 0
    amount_after_fee: int = 0


@dataclass(slots=True)
class FlowResult:
    """Outcome of a sequential multi-transaction flow."""

    transaction_hashes: List[str] = field(default_factory=list)
    completed_steps: List[str] = field(default_factory=list)
    outputs: Dict[str, int] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return bool(self.completed_steps)


__all__ = [
    "Allocation",
    "ExecutionResult",
    "FeeBreakdown",
    "FlowResult",
    "Position",
    "PositionDelta",
    "PositionStatus",
    "Receipt",
    "RiskTier",
    "StrategyCall",
    "StrategyIdentity",
    "Token",
    "TransactionEntry",
    "TransactionType",
    "YieldQuote",
    "YieldSource",
    "utcnow",
]
