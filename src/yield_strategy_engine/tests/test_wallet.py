from __future__ import annotations

import asyncio
from typing import List

import pytest

from yield_strategy_engine.config.settings import ExecutionConfig, RPCConfig, WalletConfig
from yield_strategy_engine.datalake.schemas import Receipt, StrategyCall
from yield_strategy_engine.errors import ValidationError
from yield_strategy_engine.execution.chain_client import Web3ChainReader
from yield_strategy_engine.execution.wallet import LocalAccountExecutor, OperationHandle, load_account

TEST_KEY = "4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"


class ScriptedExecutor(LocalAccountExecutor):
    """Local executor with the network calls replaced by a script of receipt statuses."""

    def __init__(self, statuses: List[str]) -> None:
        super().__init__(
            load_account(WalletConfig(private_key=TEST_KEY)),
            8453,
            rpc_config=RPCConfig(),
            execution_config=ExecutionConfig(),
        )
        self.statuses = list(statuses)
        self.submitted: List[int] = []

    async def get_pending_nonce(self) -> int:
        return 40

    async def send_transaction(self, call: StrategyCall, nonce: int) -> str:
        self.submitted.append(nonce)
        return f"0x{nonce:064x}"

    async def wait_for_receipt(self, transaction_hash: str) -> Receipt:
        return Receipt(transaction_hash=transaction_hash, status=self.statuses.pop(0))


def _calls(count: int) -> List[StrategyCall]:
    return [StrategyCall(to=f"0x{i + 1:040x}") for i in range(count)]


def test_load_account_accepts_key_with_or_without_prefix() -> None:
    plain = load_account(WalletConfig(private_key=TEST_KEY))
    prefixed = load_account(WalletConfig(private_key=f"0x{TEST_KEY}"))
    assert plain.address == prefixed.address
    assert plain.address.startswith("0x")


def test_load_account_requires_key() -> None:
    with pytest.raises(ValidationError):
        load_account(WalletConfig())


def test_send_calls_submits_in_order_with_consecutive_nonces() -> None:
    executor = ScriptedExecutor(["success", "success", "success"])

    handle = asyncio.run(executor.send_calls(_calls(3)))
    receipt = asyncio.run(executor.wait_for_operation(handle))

    assert executor.submitted == [40, 41, 42]
    assert receipt.succeeded
    assert receipt.transaction_hash == handle.transaction_hashes[-1]


def test_send_calls_stops_at_first_revert() -> None:
    executor = ScriptedExecutor(["success", "reverted", "success"])

    handle = asyncio.run(executor.send_calls(_calls(3)))
    receipt = asyncio.run(executor.wait_for_operation(handle))

    assert executor.submitted == [40, 41]
    assert not receipt.succeeded
    assert receipt.transaction_hash == f"0x{41:064x}"
    assert handle.failed_index == 1
    assert handle.confirmed_hashes == [f"0x{40:064x}"]


def test_wait_for_operation_rejects_empty_handle() -> None:
    executor = ScriptedExecutor([])
    with pytest.raises(ValidationError):
        asyncio.run(executor.wait_for_operation(OperationHandle(chain_id=8453)))


def test_reader_builds_one_client_per_chain() -> None:
    reader = Web3ChainReader(RPCConfig())
    assert reader.client(8453) is reader.client(8453)
    assert reader.client(8453) is not reader.client(5000)
    with pytest.raises(KeyError):
        reader.client(999_999)


def test_send_calls_records_submission_error_on_handle() -> None:
    class FailingSecondCall(ScriptedExecutor):
        async def send_transaction(self, call: StrategyCall, nonce: int) -> str:
            if nonce == 41:
                raise RuntimeError("gas estimation failed")
            return await super().send_transaction(call, nonce)

    executor = FailingSecondCall(["success", "success"])

    handle = asyncio.run(executor.send_calls(_calls(3)))

    assert executor.submitted == [40]
    assert handle.failed_index == 1
    assert isinstance(handle.error, RuntimeError)
    assert handle.confirmed_hashes == [f"0x{40:064x}"]
