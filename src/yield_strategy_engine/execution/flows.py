"""USDC yield flow on Mantle: swap USDC to USDe, deposit it, then wrap and deposit MNT."""

from __future__ import annotations

import time
from decimal import Decimal
from typing import Any, Callable, List, Mapping, Optional, Union

from ..config.settings import ExecutionConfig, get_app_config
from ..datalake.schemas import FlowResult, StrategyCall, Token
from ..errors import ValidationError
from ..monitoring.logger import get_logger
from ..utils.constants import AGNI_ROUTER, LENDLE_MARKET, MANTLE, USDC, USDE, WMNT
from .adapters.base import contract_for, require_positive
from .encoding import encode_call, erc20_approve, native_transfer
from .sequential import FlowContext, FlowStep, SequentialFlow
from .wallet import WalletExecutor

EXACT_INPUT_SINGLE = "exactInputSingle((address,address,uint24,address,uint256,uint256,uint256,uint160))"
LENDING_DEPOSIT = "deposit(address,uint256,address,uint16)"
LENDING_SUPPLY = "supply(address,uint256,address,uint16)"
NATIVE_DECIMALS = 18


def to_base_units(amount: Union[Decimal, float, str], decimals: int) -> int:
    return int(Decimal(str(amount)) * (Decimal(10) ** decimals))


class MantleYieldFlow:
    """Sequential USDC yield strategy.

    Approve the router, swap USDC to USDe across the configured fee tiers,
    deposit the received USDe into the lending market, then wrap a fixed
    amount of native MNT and deposit the WMNT. Both deposits fall back from
    ``deposit`` to ``supply``.
    """

    strategy_id = "USDCYieldStrategy"
    # Step whose completion means the input amount ended up in the position.
    position_step = "deposit_output"

    def __init__(
        self,
        executor: WalletExecutor,
        *,
        config: Optional[ExecutionConfig] = None,
        chain_id: int = MANTLE,
        router: Optional[str] = None,
        market: Optional[str] = None,
        input_token: Token = USDC,
        output_token: Token = USDE,
        wrapped_native: Token = WMNT,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._executor = executor
        self._config = config or get_app_config().execution
        self.chain_id = chain_id
        self.token = input_token
        self._router = router or contract_for(AGNI_ROUTER, chain_id, self.strategy_id)
        self._market = market or contract_for(LENDLE_MARKET, chain_id, self.strategy_id)
        self._input = self._address(input_token)
        self._output = self._address(output_token)
        self._wrapped = self._address(wrapped_native)
        self._clock = clock
        self.last_flow: Optional[SequentialFlow] = None
        self._logger = get_logger(__name__)

    def _address(self, token: Token) -> str:
        address = token.address_on(self.chain_id)
        if address is None:
            raise ValidationError(f"{token.name} has no address on chain {self.chain_id}")
        return address

    @property
    def native_amount(self) -> int:
        return to_base_units(self._config.native_deposit_amount, NATIVE_DECIMALS)

    @property
    def gas_buffer(self) -> int:
        return to_base_units(self._config.native_gas_buffer, NATIVE_DECIMALS)

    async def precheck(self, amount: int) -> None:
        require_positive(amount, self.strategy_id)
        balance = await self._executor.get_token_balance(self._input)
        if balance < amount:
            raise ValidationError(
                f"Insufficient {self.token.name} balance. Need {amount}, found {balance}"
            )
        native = await self._executor.get_native_balance()
        required = self.native_amount + self.gas_buffer
        if native < required:
            raise ValidationError(
                f"Insufficient native balance. Need {required} (deposit plus gas), found {native}"
            )

    def build_steps(self, amount: int) -> List[FlowStep]:
        router, market = self._router, self._market
        token_in, token_out, wrapped = self._input, self._output, self._wrapped
        native_amount = self.native_amount

        async def approve_router(ctx: FlowContext, _: Any) -> StrategyCall:
            return erc20_approve(token_in, router, amount)

        async def swap(ctx: FlowContext, fee_tier: int) -> StrategyCall:
            deadline = int(self._clock()) + self._config.swap_deadline_seconds
            params = (token_in, token_out, fee_tier, ctx.user, deadline, amount, 0, 0)
            return encode_call(router, EXACT_INPUT_SINGLE, [params])

        async def approve_output(ctx: FlowContext, _: Any) -> Optional[StrategyCall]:
            received = await ctx.executor.get_token_balance(token_out)
            ctx.values["output_balance"] = received
            if received <= 0:
                return None
            return erc20_approve(token_out, market, received)

        def lending_call(signature: str, asset: str, key: Optional[str]):
            async def build(ctx: FlowContext, _: Any) -> Optional[StrategyCall]:
                value = ctx.values.get(key, 0) if key else native_amount
                if value <= 0:
                    return None
                return encode_call(market, signature, [asset, value, ctx.user, 0])

            return build

        async def wrap_native(ctx: FlowContext, _: Any) -> StrategyCall:
            return native_transfer(wrapped, native_amount)

        async def approve_wrapped(ctx: FlowContext, _: Any) -> StrategyCall:
            return erc20_approve(wrapped, market, native_amount)

        return [
            FlowStep("approve_router", approve_router),
            FlowStep("swap", swap, retry_domain=tuple(self._config.swap_fee_tiers)),
            FlowStep("approve_output", approve_output, fatal=False),
            FlowStep(
                "deposit_output",
                lending_call(LENDING_DEPOSIT, token_out, "output_balance"),
                fallback=lending_call(LENDING_SUPPLY, token_out, "output_balance"),
                fatal=False,
            ),
            FlowStep("wrap_native", wrap_native),
            FlowStep("approve_wrapped", approve_wrapped),
            FlowStep(
                "deposit_wrapped",
                lending_call(LENDING_DEPOSIT, wrapped, None),
                fallback=lending_call(LENDING_SUPPLY, wrapped, None),
            ),
        ]

    async def run(self, amount: int) -> FlowResult:
        await self.precheck(amount)
        user = self._executor.address
        self._logger.info(
            "Running %s: swap %s %s, deposit %s wei of wrapped native",
            self.strategy_id,
            amount,
            self.token.name,
            self.native_amount,
        )
        flow = SequentialFlow(self._executor, self.build_steps(amount), name=self.strategy_id)
        self.last_flow = flow
        return await flow.run(FlowContext(executor=self._executor, user=user, chain_id=self.chain_id))


FLOW_FACTORIES: Mapping[str, Callable[..., MantleYieldFlow]] = {
    MantleYieldFlow.strategy_id: MantleYieldFlow,
}


__all__ = ["FLOW_FACTORIES", "MantleYieldFlow", "to_base_units"]
