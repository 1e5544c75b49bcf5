"""Request-level execution: build calls, submit, confirm, and record the outcome."""

from __future__ import annotations

from decimal import Decimal
from typing import List, Optional, Sequence

from ..datalake.ledger import PositionLedger
from ..datalake.schemas import (
    ExecutionResult,
    FlowResult,
    PositionDelta,
    Receipt,
    StrategyCall,
    Token,
    TransactionEntry,
    TransactionType,
)
from ..errors import ChainSwitchError, ExecutionReverted, UnsupportedChainError, ValidationError
from ..monitoring.logger import correlation_scope, get_logger
from ..monitoring.metrics import METRICS
from ..strategy.catalog import resolve_strategy_id
from .adapters.base import StrategyAdapter, to_units
from .adapters.registry import AdapterRegistry
from .composer import MultiStrategyComposer
from .fees import FeeEngine
from .flows import FLOW_FACTORIES
from .wallet import OperationHandle, WalletExecutor


class TransactionOrchestrator:
    """Drives invest, multi-invest, and redeem requests through the wallet executor.

    Each request is one logical operation: fee split, call construction,
    optional chain switch, submission, and receipt confirmation. Ledger
    updates happen only after a successful receipt.
    """

    def __init__(
        self,
        executor: WalletExecutor,
        registry: AdapterRegistry,
        *,
        fees: Optional[FeeEngine] = None,
        ledger: Optional[PositionLedger] = None,
    ) -> None:
        self._executor = executor
        self._registry = registry
        self._fees = fees or FeeEngine()
        self._ledger = ledger
        self._logger = get_logger(__name__)

    async def send_and_wait(self, calls: Sequence[StrategyCall], chain_id: Optional[int] = None) -> Receipt:
        """Submit ``calls`` as one operation on ``chain_id`` and wait for its receipt.

        Any failure after the chain switch surfaces as ``ExecutionReverted`` with
        the failing call index and the hashes that had already confirmed.
        """

        if not calls:
            raise ValidationError("No calls found")
        target = chain_id if chain_id is not None else self._executor.active_chain_id
        await self._ensure_chain(target)
        with METRICS.timer("batched_execution_latency_ms"):
            try:
                handle = await self._executor.send_calls(list(calls))
            except Exception as exc:  # noqa: BLE001
                raise self._batch_failure(None, "submission_failed", target, len(calls), cause=exc) from exc
            if handle.error is not None:
                pending = handle.transaction_hashes[len(handle.receipts):]
                last_hash = pending[-1] if pending else None
                raise self._batch_failure(
                    last_hash, "submission_failed", target, len(calls), handle=handle, cause=handle.error
                ) from handle.error
            receipt = await self._executor.wait_for_operation(handle)
        if not receipt.succeeded:
            raise self._batch_failure(receipt.transaction_hash, receipt.status, target, len(calls), handle=handle)
        METRICS.increment("batched_execution_success")
        self._logger.info(
            "Operation confirmed",
            extra={"transaction_hash": receipt.transaction_hash, "chain_id": target, "calls": len(calls)},
        )
        return receipt

    async def invest(
        self,
        strategy_id: str,
        amount: int,
        token: Token,
        user: Optional[str] = None,
        *,
        chain_id: Optional[int] = None,
    ) -> ExecutionResult:
        owner = user or self._executor.address
        with correlation_scope():
            adapter = self._registry.get(strategy_id, chain_id)
            breakdown = self._fees.calculate_fee(amount)
            asset = self._asset_for(token, adapter.chain_id)
            calls = await adapter.invest_calls(breakdown.amount_after_fee, owner, asset)
            calls = self._finalize(calls, token, adapter.chain_id, breakdown.fee)
            self._logger.info(
                "Investing %s %s into %s on chain %s",
                breakdown.amount_after_fee,
                token.name,
                adapter.strategy_id,
                adapter.chain_id,
            )
            receipt = await self.send_and_wait(calls, adapter.chain_id)
            units = to_units(breakdown.amount_after_fee, token.decimals)
            self._record(owner, adapter.strategy_id, adapter.chain_id, token, units, receipt, TransactionType.DEPOSIT)
            return ExecutionResult(
                transaction_hash=receipt.transaction_hash,
                chain_id=adapter.chain_id,
                calls=calls,
                fee=breakdown.fee,
                amount_after_fee=breakdown.amount_after_fee,
            )

    async def multi_invest(
        self,
        composer: MultiStrategyComposer,
        amount: int,
        token: Token,
        user: Optional[str] = None,
        chain_id: Optional[int] = None,
    ) -> ExecutionResult:
        owner = user or self._executor.address
        target = chain_id if chain_id is not None else self._executor.active_chain_id
        with correlation_scope():
            for entry in composer.entries:
                if not entry.adapter.is_chain_supported(target):
                    raise UnsupportedChainError(entry.strategy_id, target)
            breakdown = self._fees.calculate_fee(amount)
            asset = self._asset_for(token, target)
            calls = await composer.invest_calls(breakdown.amount_after_fee, owner, asset)
            calls = self._finalize(calls, token, target, breakdown.fee)
            self._logger.info(
                "Investing %s %s across %s strategies on chain %s",
                breakdown.amount_after_fee,
                token.name,
                len(composer.entries),
                target,
            )
            receipt = await self.send_and_wait(calls, target)
            for entry, sub_amount in zip(composer.entries, composer.split(breakdown.amount_after_fee)):
                units = to_units(sub_amount, token.decimals)
                self._record(owner, entry.strategy_id, target, token, units, receipt, TransactionType.DEPOSIT)
            return ExecutionResult(
                transaction_hash=receipt.transaction_hash,
                chain_id=target,
                calls=calls,
                fee=breakdown.fee,
                amount_after_fee=breakdown.amount_after_fee,
            )

    async def redeem(
        self,
        strategy_id: str,
        amount: int,
        token: Token,
        user: Optional[str] = None,
        position_id: Optional[int] = None,
        *,
        chain_id: Optional[int] = None,
    ) -> ExecutionResult:
        owner = user or self._executor.address
        with correlation_scope():
            adapter = self._registry.get(strategy_id, chain_id)
            breakdown = self._fees.calculate_fee(amount)
            asset = self._asset_for(token, adapter.chain_id)
            calls = await adapter.redeem_calls(breakdown.amount_after_fee, owner, asset)
            calls = self._finalize(calls, token, adapter.chain_id, breakdown.fee)
            self._logger.info(
                "Redeeming %s %s from %s on chain %s",
                breakdown.amount_after_fee,
                token.name,
                adapter.strategy_id,
                adapter.chain_id,
            )
            receipt = await self.send_and_wait(calls, adapter.chain_id)
            if self._ledger is not None:
                if position_id is not None:
                    self._ledger.close_position(position_id)
                self._ledger.record_transaction(
                    TransactionEntry(
                        owner=owner,
                        chain_id=adapter.chain_id,
                        strategy_id=adapter.strategy_id,
                        hash=receipt.transaction_hash,
                        amount=to_units(breakdown.amount_after_fee, token.decimals),
                        token_name=token.name,
                        type=TransactionType.WITHDRAW,
                    )
                )
            return ExecutionResult(
                transaction_hash=receipt.transaction_hash,
                chain_id=adapter.chain_id,
                calls=calls,
                fee=breakdown.fee,
                amount_after_fee=breakdown.amount_after_fee,
            )

    async def invest_sequential(
        self,
        strategy_id: str,
        amount: int,
        token: Token,
    ) -> FlowResult:
        """Run a strategy that needs a multi-transaction flow instead of one batch."""

        factory = FLOW_FACTORIES.get(resolve_strategy_id(strategy_id))
        if factory is None:
            raise ValidationError(f"Strategy {strategy_id} has no sequential flow")
        owner = self._executor.address
        with correlation_scope():
            flow = factory(self._executor)
            await self._ensure_chain(flow.chain_id)
            result = await flow.run(amount)
            if flow.position_step not in result.completed_steps:
                self._logger.warning(
                    "%s finished without %s; no position recorded",
                    flow.strategy_id,
                    flow.position_step,
                    extra={"transaction_hashes": result.transaction_hashes, "completed_steps": result.completed_steps},
                )
                return result
            if self._ledger is not None:
                units = to_units(amount, token.decimals)
                self._ledger.record_position(
                    PositionDelta(
                        owner=owner,
                        amount=units,
                        token_name=token.name,
                        chain_id=flow.chain_id,
                        strategy_id=flow.strategy_id,
                    )
                )
                self._ledger.record_transaction(
                    TransactionEntry(
                        owner=owner,
                        chain_id=flow.chain_id,
                        strategy_id=flow.strategy_id,
                        hash=result.transaction_hashes[-1],
                        amount=units,
                        token_name=token.name,
                        type=TransactionType.DEPOSIT,
                    )
                )
            return result

    async def total_profit(self, adapter: StrategyAdapter, user: Optional[str] = None) -> Decimal:
        """Sum best-effort profit over the user's open positions in ``adapter``."""

        if self._ledger is None:
            return Decimal(0)
        owner = user or self._executor.address
        total = Decimal(0)
        for position in self._ledger.list_positions(owner):
            if position.strategy_id == adapter.strategy_id and position.chain_id == adapter.chain_id:
                total += await adapter.get_profit(owner, position)
        return total

    async def _ensure_chain(self, target: int) -> None:
        if target == self._executor.active_chain_id:
            return
        try:
            await self._executor.switch_chain(target)
        except ChainSwitchError:
            self._logger.error("Chain switch to %s failed; nothing was submitted", target)
            raise
        except Exception as exc:  # noqa: BLE001
            self._logger.error("Chain switch to %s failed; nothing was submitted", target)
            raise ChainSwitchError(target, exc) from exc

    def _batch_failure(
        self,
        transaction_hash: Optional[str],
        status: str,
        chain_id: int,
        call_count: int,
        *,
        handle: Optional[OperationHandle] = None,
        cause: Optional[BaseException] = None,
    ) -> ExecutionReverted:
        confirmed = handle.confirmed_hashes if handle is not None else []
        error = ExecutionReverted(
            transaction_hash,
            status,
            failed_index=handle.failed_index if handle is not None else None,
            confirmed_hashes=confirmed,
            cause=cause,
        )
        METRICS.increment("batched_execution_reverted")
        self._logger.error(
            "Strategy execution failed: %s",
            error,
            extra={
                "transaction_hash": transaction_hash,
                "chain_id": chain_id,
                "calls": call_count,
                "failed_index": error.failed_index,
                "funds_moved": error.funds_moved,
            },
        )
        return error

    @staticmethod
    def _asset_for(token: Token, chain_id: int) -> Optional[str]:
        if token.is_native:
            return None
        address = token.address_on(chain_id)
        if address is None:
            raise ValidationError(f"{token.name} has no address on chain {chain_id}")
        return address

    def _finalize(self, calls: List[StrategyCall], token: Token, chain_id: int, fee: int) -> List[StrategyCall]:
        if not calls:
            raise ValidationError("No calls found")
        return self._fees.append_fee_call(
            calls,
            asset=None if token.is_native else token.address_on(chain_id),
            is_native=token.is_native,
            fee=fee,
        )

    def _record(
        self,
        owner: str,
        strategy_id: str,
        chain_id: int,
        token: Token,
        amount: Decimal,
        receipt: Receipt,
        kind: TransactionType,
    ) -> None:
        if self._ledger is None:
            return
        self._ledger.record_position(
            PositionDelta(
                owner=owner,
                amount=amount,
                token_name=token.name,
                chain_id=chain_id,
                strategy_id=strategy_id,
            )
        )
        self._ledger.record_transaction(
            TransactionEntry(
                owner=owner,
                chain_id=chain_id,
                strategy_id=strategy_id,
                hash=receipt.transaction_hash,
                amount=amount,
                token_name=token.name,
                type=kind,
            )
        )


__all__ = ["TransactionOrchestrator"]
