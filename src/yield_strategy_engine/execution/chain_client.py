"""Read-only chain queries used by adapters and the sequential flows."""

from __future__ import annotations

from typing import Any, Dict, Optional, Protocol, Sequence, Tuple

from eth_utils import to_checksum_address
from tenacity import retry, stop_after_attempt, wait_fixed
from web3 import AsyncHTTPProvider, AsyncWeb3

from ..config.settings import RPCConfig, get_app_config
from ..monitoring.logger import get_logger
from ..monitoring.metrics import METRICS
from .encoding import decode_result, encode_call


class ChainReader(Protocol):
    """Typed ``eth_call`` access keyed by chain id."""

    async def call(
        self,
        chain_id: int,
        to: str,
        signature: str,
        args: Sequence[Any] = (),
        output_types: Sequence[str] = ("uint256",),
    ) -> Tuple[Any, ...]:
        ...

    async def get_native_balance(self, chain_id: int, owner: str) -> int:
        ...


async def read_uint(
    reader: ChainReader, chain_id: int, to: str, signature: str, args: Sequence[Any] = ()
) -> int:
    result = await reader.call(chain_id, to, signature, args, ("uint256",))
    return int(result[0])


async def read_address(
    reader: ChainReader, chain_id: int, to: str, signature: str, args: Sequence[Any] = ()
) -> str:
    result = await reader.call(chain_id, to, signature, args, ("address",))
    return to_checksum_address(result[0])


async def token_balance(reader: ChainReader, chain_id: int, token: str, owner: str) -> int:
    return await read_uint(reader, chain_id, token, "balanceOf(address)", [owner])


class Web3ChainReader:
    """:class:`ChainReader` backed by one ``AsyncWeb3`` client per configured chain."""

    def __init__(self, config: Optional[RPCConfig] = None) -> None:
        self._config = config or get_app_config().rpc
        self._clients: Dict[int, AsyncWeb3] = {}
        self._logger = get_logger(__name__)

    def client(self, chain_id: int) -> AsyncWeb3:
        if chain_id not in self._clients:
            provider = AsyncHTTPProvider(
                self._config.url_for(chain_id),
                request_kwargs={"timeout": self._config.request_timeout},
            )
            self._clients[chain_id] = AsyncWeb3(provider)
        return self._clients[chain_id]

    @retry(stop=stop_after_attempt(3), wait=wait_fixed(1), reraise=True)
    async def call(
        self,
        chain_id: int,
        to: str,
        signature: str,
        args: Sequence[Any] = (),
        output_types: Sequence[str] = ("uint256",),
    ) -> Tuple[Any, ...]:
        request = encode_call(to, signature, args)
        try:
            raw = await self.client(chain_id).eth.call({"to": request.to, "data": request.data})
        except Exception as exc:  # noqa: BLE001
            METRICS.increment("chain_read_failure")
            self._logger.warning("eth_call %s on %s (chain %s) failed: %s", signature, to, chain_id, exc)
            raise
        return decode_result(output_types, bytes(raw))

    @retry(stop=stop_after_attempt(3), wait=wait_fixed(1), reraise=True)
    async def get_native_balance(self, chain_id: int, owner: str) -> int:
        return int(await self.client(chain_id).eth.get_balance(to_checksum_address(owner)))


__all__ = ["ChainReader", "Web3ChainReader", "read_address", "read_uint", "token_balance"]
