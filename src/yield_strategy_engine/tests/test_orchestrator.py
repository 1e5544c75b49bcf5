from __future__ import annotations

import asyncio
from decimal import Decimal
from pathlib import Path
from typing import List, Optional, Sequence

import pytest

from yield_strategy_engine.config.settings import ExecutionConfig, FeeConfig, RPCConfig, WalletConfig
from yield_strategy_engine.datalake.ledger import SQLiteLedger
from yield_strategy_engine.datalake.schemas import PositionStatus, Receipt, StrategyCall, Token, TransactionType
from yield_strategy_engine.errors import ChainSwitchError, ExecutionReverted, UnsupportedChainError, ValidationError
from yield_strategy_engine.execution.adapters import AdapterRegistry
from yield_strategy_engine.execution.composer import MultiStrategyComposer
from yield_strategy_engine.execution.encoding import decode_result, function_selector
from yield_strategy_engine.execution.fees import FeeEngine
from yield_strategy_engine.execution.orchestrator import TransactionOrchestrator
from yield_strategy_engine.execution.wallet import LocalAccountExecutor, OperationHandle, load_account
from yield_strategy_engine.monitoring.metrics import METRICS
from yield_strategy_engine.utils.constants import BASE, CELO, CELO_TOKEN, USDC

USER = "0x1111111111111111111111111111111111111111"
COLLECTOR = "0x2222222222222222222222222222222222222222"


class FakeReader:
    async def call(self, chain_id, to, signature, args=(), output_types=("uint256",)):
        raise RuntimeError("no chain in tests")

    async def get_native_balance(self, chain_id, owner):
        return 0


class FakeExecutor:
    """Records batched submissions; ``status`` decides every receipt."""

    def __init__(self, chain_id: int = BASE, status: str = "success", switch_error: Optional[Exception] = None):
        self._chain_id = chain_id
        self.status = status
        self.switch_error = switch_error
        self.batches: List[List[StrategyCall]] = []
        self.switches: List[int] = []

    @property
    def address(self) -> str:
        return USER

    @property
    def active_chain_id(self) -> int:
        return self._chain_id

    async def switch_chain(self, chain_id: int) -> None:
        self.switches.append(chain_id)
        if self.switch_error is not None:
            raise self.switch_error
        self._chain_id = chain_id

    async def send_calls(self, calls: Sequence[StrategyCall]) -> OperationHandle:
        self.batches.append(list(calls))
        return OperationHandle(chain_id=self._chain_id, transaction_hashes=[f"0x{len(self.batches):064x}"])

    async def wait_for_operation(self, handle: OperationHandle) -> Receipt:
        return Receipt(transaction_hash=handle.transaction_hashes[-1], status=self.status)


def _orchestrator(executor: FakeExecutor, tmp_path: Path, fee_rate: int = 0) -> TransactionOrchestrator:
    return TransactionOrchestrator(
        executor,
        AdapterRegistry(FakeReader()),
        fees=FeeEngine(FeeConfig(fee_rate_permille=fee_rate, collector_address=COLLECTOR)),
        ledger=SQLiteLedger(tmp_path / "ledger.sqlite3"),
    )


def test_invest_submits_batch_and_records_position(tmp_path: Path) -> None:
    METRICS.reset()
    executor = FakeExecutor()
    orchestrator = _orchestrator(executor, tmp_path)

    result = asyncio.run(orchestrator.invest("AaveV3Supply", 2_500_000, USDC))

    assert result.chain_id == BASE
    assert result.fee == 0
    assert len(executor.batches) == 1
    assert len(executor.batches[0]) == 2
    assert executor.switches == []
    assert METRICS.get("batched_execution_success") == 1

    ledger = SQLiteLedger(tmp_path / "ledger.sqlite3")
    (position,) = ledger.list_positions(USER)
    assert position.strategy_id == "AaveV3Supply"
    assert position.amount == Decimal("2.5")
    (entry,) = ledger.list_transactions(USER)
    assert entry.hash == result.transaction_hash
    assert entry.type == TransactionType.DEPOSIT


def test_invest_appends_fee_transfer_last(tmp_path: Path) -> None:
    executor = FakeExecutor()
    orchestrator = _orchestrator(executor, tmp_path, fee_rate=10)

    result = asyncio.run(orchestrator.invest("AaveV3Supply", 1_000_000, USDC))

    assert result.fee == 10_000
    assert result.amount_after_fee == 990_000
    batch = executor.batches[0]
    assert len(batch) == 3
    fee_call = batch[-1]
    assert fee_call.data[:4] == function_selector("transfer(address,uint256)")
    recipient, amount = decode_result(["address", "uint256"], fee_call.data[4:])
    assert recipient.lower() == COLLECTOR
    assert amount == 10_000


def test_reverted_batch_raises_and_records_nothing(tmp_path: Path) -> None:
    METRICS.reset()
    executor = FakeExecutor(status="reverted")
    orchestrator = _orchestrator(executor, tmp_path)

    with pytest.raises(ExecutionReverted) as excinfo:
        asyncio.run(orchestrator.invest("AaveV3Supply", 1_000_000, USDC))

    assert excinfo.value.status == "reverted"
    assert METRICS.get("batched_execution_reverted") == 1
    assert SQLiteLedger(tmp_path / "ledger.sqlite3").list_positions(USER) == []


def test_chain_switch_happens_before_submission(tmp_path: Path) -> None:
    executor = FakeExecutor(chain_id=BASE)
    orchestrator = _orchestrator(executor, tmp_path)

    result = asyncio.run(orchestrator.invest("AaveV3SupplyCelo", 10**18, CELO_TOKEN))

    assert executor.switches == [CELO]
    assert result.chain_id == CELO


def test_failed_chain_switch_submits_nothing(tmp_path: Path) -> None:
    executor = FakeExecutor(chain_id=CELO, switch_error=RuntimeError("user rejected"))
    orchestrator = _orchestrator(executor, tmp_path)

    with pytest.raises(ChainSwitchError):
        asyncio.run(orchestrator.invest("AaveV3Supply", 1_000_000, USDC))
    assert executor.batches == []


def test_send_and_wait_rejects_empty_call_list(tmp_path: Path) -> None:
    orchestrator = _orchestrator(FakeExecutor(), tmp_path)
    with pytest.raises(ValidationError, match="No calls found"):
        asyncio.run(orchestrator.send_and_wait([]))


def test_token_without_address_on_chain_is_rejected(tmp_path: Path) -> None:
    executor = FakeExecutor()
    orchestrator = _orchestrator(executor, tmp_path)
    with pytest.raises(ValidationError):
        asyncio.run(orchestrator.invest("AaveV3SupplyArbitrum", 1_000, Token(name="XYZ", decimals=6)))
    assert executor.batches == []


def test_multi_invest_records_each_strategy(tmp_path: Path) -> None:
    executor = FakeExecutor()
    orchestrator = _orchestrator(executor, tmp_path)
    registry = AdapterRegistry(FakeReader())
    composer = MultiStrategyComposer(
        [(registry.get("AaveV3Supply"), 60), (registry.get("FluidSupply"), 40)]
    )

    asyncio.run(orchestrator.multi_invest(composer, 1_000_000, USDC))

    assert len(executor.batches) == 1
    assert len(executor.batches[0]) == 4
    positions = SQLiteLedger(tmp_path / "ledger.sqlite3").list_positions(USER)
    assert {p.strategy_id: p.amount for p in positions} == {
        "AaveV3Supply": Decimal("0.6"),
        "FluidSupply": Decimal("0.4"),
    }


def test_multi_invest_rejects_unsupported_chain(tmp_path: Path) -> None:
    executor = FakeExecutor(chain_id=CELO)
    orchestrator = _orchestrator(executor, tmp_path)
    registry = AdapterRegistry(FakeReader())
    composer = MultiStrategyComposer([(registry.get("FluidSupply"), 100)])

    with pytest.raises(UnsupportedChainError) as excinfo:
        asyncio.run(orchestrator.multi_invest(composer, 1_000_000, USDC))
    assert excinfo.value.strategy_id == "FluidSupply"
    assert excinfo.value.chain_id == CELO
    assert executor.batches == []


def test_redeem_closes_position_and_logs_withdrawal(tmp_path: Path) -> None:
    executor = FakeExecutor()
    orchestrator = _orchestrator(executor, tmp_path)
    asyncio.run(orchestrator.invest("AaveV3Supply", 1_000_000, USDC))
    ledger = SQLiteLedger(tmp_path / "ledger.sqlite3")
    (position,) = ledger.list_positions(USER)

    result = asyncio.run(orchestrator.redeem("AaveV3Supply", 1_000_000, USDC, position_id=position.id))

    (call,) = result.calls
    assert call.data[:4] == function_selector("withdraw(address,uint256,address)")
    assert ledger.list_positions(USER) == []
    (closed,) = ledger.list_positions(USER, include_closed=True)
    assert closed.status == PositionStatus.CLOSED
    withdrawals = ledger.list_transactions(USER, TransactionType.WITHDRAW)
    assert [w.hash for w in withdrawals] == [result.transaction_hash]


def test_total_profit_uses_adapter_estimates(tmp_path: Path) -> None:
    executor = FakeExecutor()
    orchestrator = _orchestrator(executor, tmp_path)
    asyncio.run(orchestrator.invest("AaveV3Supply", 1_000_000, USDC))

    adapter = AdapterRegistry(FakeReader()).get("AaveV3Supply")
    profit = asyncio.run(orchestrator.total_profit(adapter))
    assert profit > 0


TEST_KEY = "4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"


class OneByOneExecutor(LocalAccountExecutor):
    """Local executor whose submissions follow a script.

    Each entry is a receipt status, or an exception raised by
    ``send_transaction`` for that call.
    """

    def __init__(self, script: List[object]) -> None:
        super().__init__(
            load_account(WalletConfig(private_key=TEST_KEY)),
            BASE,
            rpc_config=RPCConfig(),
            execution_config=ExecutionConfig(),
        )
        self.script = list(script)
        self.statuses = {}

    async def get_pending_nonce(self) -> int:
        return 0

    async def send_transaction(self, call: StrategyCall, nonce: int) -> str:
        outcome = self.script.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        tx_hash = f"0x{nonce + 1:064x}"
        self.statuses[tx_hash] = outcome
        return tx_hash

    async def wait_for_receipt(self, transaction_hash: str) -> Receipt:
        return Receipt(transaction_hash=transaction_hash, status=self.statuses[transaction_hash])


def _local_orchestrator(executor: LocalAccountExecutor, tmp_path: Path) -> TransactionOrchestrator:
    return TransactionOrchestrator(
        executor,
        AdapterRegistry(FakeReader()),
        fees=FeeEngine(FeeConfig(collector_address=COLLECTOR)),
        ledger=SQLiteLedger(tmp_path / "ledger.sqlite3"),
    )


def test_submission_error_mid_batch_reports_confirmed_calls(tmp_path: Path) -> None:
    METRICS.reset()
    executor = OneByOneExecutor(["success", RuntimeError("execution reverted: estimate_gas failed")])
    orchestrator = _local_orchestrator(executor, tmp_path)

    with pytest.raises(ExecutionReverted) as excinfo:
        asyncio.run(orchestrator.invest("AaveV3Supply", 1_000_000, USDC))

    error = excinfo.value
    assert error.status == "submission_failed"
    assert error.failed_index == 1
    assert error.transaction_hash is None
    assert error.confirmed_hashes == [f"0x{1:064x}"]
    assert error.funds_moved
    assert isinstance(error.__cause__, RuntimeError)
    assert METRICS.get("batched_execution_reverted") == 1
    assert SQLiteLedger(tmp_path / "ledger.sqlite3").list_positions(USER) == []


def test_revert_mid_batch_keeps_earlier_hashes(tmp_path: Path) -> None:
    executor = OneByOneExecutor(["success", "reverted"])
    orchestrator = _local_orchestrator(executor, tmp_path)

    with pytest.raises(ExecutionReverted) as excinfo:
        asyncio.run(orchestrator.invest("AaveV3Supply", 1_000_000, USDC))

    error = excinfo.value
    assert error.transaction_hash == f"0x{2:064x}"
    assert error.status == "reverted"
    assert error.failed_index == 1
    assert error.confirmed_hashes == [f"0x{1:064x}"]
    assert "not rolled back" in str(error)


def test_submission_error_on_first_call_moves_no_funds(tmp_path: Path) -> None:
    executor = OneByOneExecutor([RuntimeError("insufficient funds for gas")])
    orchestrator = _local_orchestrator(executor, tmp_path)

    with pytest.raises(ExecutionReverted) as excinfo:
        asyncio.run(orchestrator.invest("AaveV3Supply", 1_000_000, USDC))

    assert excinfo.value.failed_index == 0
    assert not excinfo.value.funds_moved
