"""Exception hierarchy raised by adapters, the composer, and the orchestrators."""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional, Sequence

if TYPE_CHECKING:  # pragma: no cover
    from .execution.sequential import Attempt


class StrategyEngineError(RuntimeError):
    """Base class for every error surfaced by the engine."""


class ValidationError(StrategyEngineError):
    """A required parameter is missing or does not match the protocol."""


class UnsupportedChainError(StrategyEngineError):
    def __init__(self, strategy_id: str, chain_id: int) -> None:
        super().__init__(f"Strategy {strategy_id} is not deployed on chain {chain_id}")
        self.strategy_id = strategy_id
        self.chain_id = chain_id


class MarketResolutionError(StrategyEngineError):
    def __init__(self, market_id: str, reason: str = "market parameters resolved to zero") -> None:
        super().__init__(f"Unable to resolve market {market_id}: {reason}")
        self.market_id = market_id


class ChainSwitchError(StrategyEngineError):
    def __init__(self, chain_id: int, cause: Optional[BaseException] = None) -> None:
        message = f"Unable to switch to chain {chain_id}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
        self.chain_id = chain_id


class ExecutionReverted(StrategyEngineError):
    """A batched operation failed to submit or was mined with a non-success receipt.

    Executors that submit a batch one transaction at a time may have confirmed
    earlier calls before the failing one; those hashes are kept in
    ``confirmed_hashes`` and nothing is rolled back.
    """

    def __init__(
        self,
        transaction_hash: Optional[str],
        status: str = "reverted",
        *,
        failed_index: Optional[int] = None,
        confirmed_hashes: Sequence[str] = (),
        cause: Optional[BaseException] = None,
    ) -> None:
        self.transaction_hash = transaction_hash
        self.status = status
        self.failed_index = failed_index
        self.confirmed_hashes: List[str] = list(confirmed_hashes)
        if transaction_hash:
            detail = f"Transaction {transaction_hash} failed with status {status}"
        else:
            detail = f"Submission failed with status {status}"
        if failed_index is not None:
            detail += f" at call {failed_index}"
        if cause is not None:
            detail += f": {cause}"
        if self.confirmed_hashes:
            detail += f"; {len(self.confirmed_hashes)} earlier call(s) confirmed and were not rolled back"
        super().__init__(detail)

    @property
    def funds_moved(self) -> bool:
        return bool(self.confirmed_hashes)


class StepExecutionError(StrategyEngineError):
    """A sequential flow step exhausted its primary, fallback, and retry candidates."""

    def __init__(
        self,
        step: str,
        last_hash: Optional[str] = None,
        attempts: Sequence["Attempt"] = (),
        completed_steps: Sequence[str] = (),
        transaction_hashes: Sequence[str] = (),
    ) -> None:
        self.step = step
        self.last_hash = last_hash
        self.attempts: List["Attempt"] = list(attempts)
        self.completed_steps: List[str] = list(completed_steps)
        self.transaction_hashes: List[str] = list(transaction_hashes)
        detail = f"Step '{step}' failed after {len(self.attempts)} attempt(s)"
        if last_hash:
            detail += f"; last transaction {last_hash}"
        if self.completed_steps:
            detail += f"; completed steps {', '.join(self.completed_steps)} were not rolled back"
        super().__init__(detail)

    @property
    def funds_moved(self) -> bool:
        return bool(self.transaction_hashes)


class ExternalDataUnavailable(StrategyEngineError):
    """The yields aggregator could not be reached or parsed."""


__all__ = [
    "ChainSwitchError",
    "ExecutionReverted",
    "ExternalDataUnavailable",
    "MarketResolutionError",
    "StepExecutionError",
    "StrategyEngineError",
    "UnsupportedChainError",
    "ValidationError",
]
