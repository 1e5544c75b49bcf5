"""Wallet-execution boundary and a local private-key implementation."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence

from eth_account import Account
from eth_account.signers.local import LocalAccount
from eth_utils import to_checksum_address

from ..config.settings import ExecutionConfig, RPCConfig, WalletConfig, get_app_config
from ..datalake.schemas import Receipt, StrategyCall
from ..errors import ChainSwitchError, ValidationError
from ..monitoring.logger import get_logger
from .chain_client import Web3ChainReader, token_balance


@dataclass(slots=True)
class OperationHandle:
    """Reference to a submitted batch; resolved to a receipt by the executor.

    ``failed_index`` and ``error`` are set when a call could not be submitted
    or confirmed, so the orchestrator can report what already went through.
    """

    chain_id: int
    transaction_hashes: List[str] = field(default_factory=list)
    receipts: List[Receipt] = field(default_factory=list)
    failed_index: Optional[int] = None
    error: Optional[BaseException] = None

    @property
    def confirmed_hashes(self) -> List[str]:
        return [receipt.transaction_hash for receipt in self.receipts if receipt.succeeded]


class WalletExecutor(Protocol):
    """Submission surface the orchestrators drive."""

    @property
    def address(self) -> str:
        ...

    @property
    def active_chain_id(self) -> int:
        ...

    async def switch_chain(self, chain_id: int) -> None:
        ...

    async def send_calls(self, calls: Sequence[StrategyCall]) -> OperationHandle:
        ...

    async def wait_for_operation(self, handle: OperationHandle) -> Receipt:
        ...

    async def send_transaction(self, call: StrategyCall, nonce: int) -> str:
        ...

    async def wait_for_receipt(self, transaction_hash: str) -> Receipt:
        ...

    async def get_pending_nonce(self) -> int:
        ...

    async def get_token_balance(self, token: str) -> int:
        ...

    async def get_native_balance(self) -> int:
        ...


def load_account(config: Optional[WalletConfig] = None) -> LocalAccount:
    cfg = config or get_app_config().wallet
    if not cfg.private_key:
        raise ValidationError("Wallet configuration error - WALLET__PRIVATE_KEY is not set")
    key = cfg.private_key.strip()
    if not key.startswith("0x"):
        key = f"0x{key}"
    return Account.from_key(key)


class LocalAccountExecutor:
    """Signs and submits calls one transaction at a time from a local account.

    An externally owned account cannot execute a call list atomically, so
    ``send_calls`` submits each call and waits for it before the next one and
    stops at the first non-success receipt.
    """

    def __init__(
        self,
        account: LocalAccount,
        chain_id: int,
        *,
        reader: Optional[Web3ChainReader] = None,
        rpc_config: Optional[RPCConfig] = None,
        execution_config: Optional[ExecutionConfig] = None,
    ) -> None:
        app_config = get_app_config() if rpc_config is None or execution_config is None else None
        self._account = account
        self._chain_id = chain_id
        self._reader = reader or Web3ChainReader(rpc_config or app_config.rpc)
        self._execution = execution_config or app_config.execution
        self._logger = get_logger(__name__)

    @property
    def address(self) -> str:
        return self._account.address

    @property
    def active_chain_id(self) -> int:
        return self._chain_id

    async def switch_chain(self, chain_id: int) -> None:
        try:
            reported = await self._reader.client(chain_id).eth.chain_id
        except Exception as exc:  # noqa: BLE001
            raise ChainSwitchError(chain_id, exc) from exc
        if int(reported) != chain_id:
            raise ChainSwitchError(chain_id, RuntimeError(f"endpoint reports chain {reported}"))
        self._chain_id = chain_id
        self._logger.info("Switched execution chain to %s", chain_id)

    async def send_calls(self, calls: Sequence[StrategyCall]) -> OperationHandle:
        handle = OperationHandle(chain_id=self._chain_id)
        nonce = await self.get_pending_nonce()
        for index, call in enumerate(calls):
            try:
                tx_hash = await self.send_transaction(call, nonce)
                handle.transaction_hashes.append(tx_hash)
                receipt = await self.wait_for_receipt(tx_hash)
            except Exception as exc:  # noqa: BLE001
                handle.failed_index = index
                handle.error = exc
                self._logger.error(
                    "Call %s of %s failed before confirmation: %s",
                    index,
                    len(calls),
                    exc,
                    extra={"confirmed": len(handle.confirmed_hashes)},
                )
                break
            handle.receipts.append(receipt)
            if not receipt.succeeded:
                handle.failed_index = index
                break
            nonce += 1
        return handle

    async def wait_for_operation(self, handle: OperationHandle) -> Receipt:
        if not handle.receipts:
            raise ValidationError("Operation handle carries no submitted transactions")
        for receipt in handle.receipts:
            if not receipt.succeeded:
                return receipt
        return handle.receipts[-1]

    async def send_transaction(self, call: StrategyCall, nonce: int) -> str:
        w3 = self._reader.client(self._chain_id)
        tx: Dict[str, Any] = {
            "from": self.address,
            "to": to_checksum_address(call.to),
            "data": call.data,
            "value": call.value,
            "nonce": nonce,
            "chainId": self._chain_id,
        }
        estimated = await w3.eth.estimate_gas(tx)
        tx["gas"] = int(estimated * self._execution.gas_limit_multiplier)
        tx["gasPrice"] = await w3.eth.gas_price
        signed = self._account.sign_transaction(tx)
        tx_hash = await w3.eth.send_raw_transaction(signed.raw_transaction)
        hex_hash = tx_hash.to_0x_hex() if hasattr(tx_hash, "to_0x_hex") else tx_hash.hex()
        self._logger.info("Submitted transaction %s with nonce %s", hex_hash, nonce)
        return hex_hash

    async def wait_for_receipt(self, transaction_hash: str) -> Receipt:
        w3 = self._reader.client(self._chain_id)
        raw = await w3.eth.wait_for_transaction_receipt(
            transaction_hash,
            timeout=self._execution.receipt_timeout_seconds,
            poll_latency=self._execution.receipt_poll_interval_seconds,
        )
        status = "success" if int(raw["status"]) == 1 else "reverted"
        return Receipt(
            transaction_hash=transaction_hash,
            status=status,
            block_number=raw.get("blockNumber"),
        )

    async def get_pending_nonce(self) -> int:
        w3 = self._reader.client(self._chain_id)
        return int(await w3.eth.get_transaction_count(self.address, "pending"))

    async def get_token_balance(self, token: str) -> int:
        return await token_balance(self._reader, self._chain_id, token, self.address)

    async def get_native_balance(self) -> int:
        return await self._reader.get_native_balance(self._chain_id, self.address)


__all__ = ["LocalAccountExecutor", "OperationHandle", "WalletExecutor", "load_account"]
