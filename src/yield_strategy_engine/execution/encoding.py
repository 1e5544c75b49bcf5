"""Pure ABI encoding of protocol calls into :class:`StrategyCall` descriptors."""

from __future__ import annotations

from functools import lru_cache
from typing import Any, List, Sequence, Tuple

from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from eth_utils import keccak, to_checksum_address

from ..datalake.schemas import StrategyCall


def _split_signature(signature: str) -> Tuple[str, List[str]]:
    name, _, rest = signature.partition("(")
    if not rest.endswith(")"):
        raise ValueError(f"Malformed function signature: {signature}")
    return name, _split_types(rest[:-1])


def _split_types(body: str) -> List[str]:
    """Split a comma separated ABI type list, honouring nested tuples."""

    types: List[str] = []
    depth = 0
    current = ""
    for char in body:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        if char == "," and depth == 0:
            types.append(current)
            current = ""
            continue
        current += char
    if current:
        types.append(current)
    return types


def _normalize(abi_type: str, value: Any) -> Any:
    if abi_type == "address":
        return to_checksum_address(value)
    if abi_type.startswith("(") and abi_type.endswith(")"):
        inner = _split_types(abi_type[1:-1])
        return tuple(_normalize(item, element) for item, element in zip(inner, value))
    return value


@lru_cache(maxsize=256)
def function_selector(signature: str) -> bytes:
    """Return the 4-byte selector of a canonical signature such as ``approve(address,uint256)``."""

    return keccak(text=signature)[:4]


def encode_arguments(types: Sequence[str], args: Sequence[Any]) -> bytes:
    if len(types) != len(args):
        raise ValueError(f"Expected {len(types)} arguments, received {len(args)}")
    normalized = [_normalize(abi_type, value) for abi_type, value in zip(types, args)]
    return abi_encode(list(types), normalized)


def encode_call(to: str, signature: str, args: Sequence[Any] = (), value: int = 0) -> StrategyCall:
    _, types = _split_signature(signature)
    data = function_selector(signature) + encode_arguments(types, args)
    return StrategyCall(to=to_checksum_address(to), data=data, value=int(value))


def decode_result(types: Sequence[str], data: bytes) -> Tuple[Any, ...]:
    return tuple(abi_decode(list(types), bytes(data)))


def erc20_approve(token: str, spender: str, amount: int) -> StrategyCall:
    return encode_call(token, "approve(address,uint256)", [spender, amount])


def erc20_transfer(token: str, recipient: str, amount: int) -> StrategyCall:
    return encode_call(token, "transfer(address,uint256)", [recipient, amount])


def native_transfer(recipient: str, amount: int) -> StrategyCall:
    return StrategyCall(to=to_checksum_address(recipient), data=b"", value=int(amount))


__all__ = [
    "decode_result",
    "encode_arguments",
    "encode_call",
    "erc20_approve",
    "erc20_transfer",
    "function_selector",
    "native_transfer",
]
