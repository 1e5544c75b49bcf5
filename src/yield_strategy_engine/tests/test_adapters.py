from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Sequence, Tuple

import pytest

from yield_strategy_engine.datalake.schemas import Position
from yield_strategy_engine.errors import (
    MarketResolutionError,
    UnsupportedChainError,
    ValidationError,
)
from yield_strategy_engine.execution.adapters import (
    AaveV3SupplyAdapter,
    AdapterRegistry,
    AnkrFlowStakingAdapter,
    Erc4626VaultAdapter,
    HarvestVaultAdapter,
    MorphoBlueSupplyAdapter,
)
from yield_strategy_engine.execution.encoding import decode_result, function_selector
from yield_strategy_engine.utils.constants import BASE, CELO, FLOW, POLYGON, USDC

USER = "0x1111111111111111111111111111111111111111"
A_TOKEN = "0x4e65fE4DbA92790696d040ac24Aa414708F5c0AB"
VAULT = "0x12AFDeFb2237a5963e7BAb3e2D46ad0eee70406e"
USDC_BASE = USDC.address_on(BASE)


class FakeReader:
    """Answers ``eth_call`` by signature; an Exception value is raised instead."""

    def __init__(self, responses: Dict[str, Any]) -> None:
        self.responses = responses
        self.calls: List[Tuple[str, str, Tuple[Any, ...]]] = []

    async def call(
        self,
        chain_id: int,
        to: str,
        signature: str,
        args: Sequence[Any] = (),
        output_types: Sequence[str] = ("uint256",),
    ) -> Tuple[Any, ...]:
        self.calls.append((to, signature, tuple(args)))
        if signature not in self.responses:
            raise RuntimeError(f"execution reverted: {signature}")
        value = self.responses[signature]
        if isinstance(value, Exception):
            raise value
        if callable(value):
            value = value(*args)
        return value if isinstance(value, tuple) else (value,)

    async def get_native_balance(self, chain_id: int, owner: str) -> int:
        return 0


def _selector(call) -> bytes:
    return call.data[:4]


def _position(amount: str, created_at) -> Position:
    return Position(
        id=1,
        owner=USER,
        strategy_id="test",
        chain_id=BASE,
        token_name="USDC",
        amount=Decimal(amount),
        created_at=created_at,
    )


def test_aave_invest_approves_then_supplies() -> None:
    adapter = AaveV3SupplyAdapter("AaveV3Supply", BASE, USDC, FakeReader({}))
    calls = asyncio.run(adapter.invest_calls(1_000_000, USER, USDC_BASE))

    assert len(calls) == 2
    assert calls[0].to == USDC_BASE
    assert _selector(calls[0]) == function_selector("approve(address,uint256)")
    assert calls[1].to == adapter.pool
    assert _selector(calls[1]) == function_selector("supply(address,uint256,address,uint16)")
    asset, amount, on_behalf, referral = decode_result(
        ["address", "uint256", "address", "uint16"], calls[1].data[4:]
    )
    assert asset.lower() == USDC_BASE.lower()
    assert amount == 1_000_000
    assert on_behalf.lower() == USER
    assert referral == 0


def test_aave_rejects_wrong_asset_and_zero_amount() -> None:
    adapter = AaveV3SupplyAdapter("AaveV3Supply", BASE, USDC, FakeReader({}))
    with pytest.raises(ValidationError):
        asyncio.run(adapter.invest_calls(1_000, USER, "0x0000000000000000000000000000000000000001"))
    with pytest.raises(ValidationError):
        asyncio.run(adapter.invest_calls(1_000, USER, None))
    with pytest.raises(ValidationError):
        asyncio.run(adapter.invest_calls(0, USER, USDC_BASE))


def test_aave_redeem_caps_at_atoken_balance() -> None:
    reader = FakeReader({"getReserveAToken(address)": A_TOKEN, "balanceOf(address)": 400})
    adapter = AaveV3SupplyAdapter("AaveV3Supply", BASE, USDC, reader)
    (call,) = asyncio.run(adapter.redeem_calls(1_000, USER, USDC_BASE))

    assert _selector(call) == function_selector("withdraw(address,uint256,address)")
    _, amount, _ = decode_result(["address", "uint256", "address"], call.data[4:])
    assert amount == 400


def test_aave_redeem_keeps_amount_when_balance_unreadable() -> None:
    adapter = AaveV3SupplyAdapter("AaveV3Supply", BASE, USDC, FakeReader({}))
    (call,) = asyncio.run(adapter.redeem_calls(1_000, USER, USDC_BASE))
    _, amount, _ = decode_result(["address", "uint256", "address"], call.data[4:])
    assert amount == 1_000


def test_aave_profit_from_balance_and_fallback_estimate() -> None:
    reader = FakeReader({"getReserveAToken(address)": A_TOKEN, "balanceOf(address)": 1_050_000})
    adapter = AaveV3SupplyAdapter("AaveV3Supply", BASE, USDC, reader)
    profit = asyncio.run(adapter.get_profit(USER, _position("1", None)))
    assert profit == Decimal("0.05")

    failing = AaveV3SupplyAdapter(
        "AaveV3Supply", BASE, USDC, FakeReader({}), estimated_apy=Decimal("0.0365")
    )
    created = datetime.now(timezone.utc) - timedelta(days=10) + timedelta(minutes=1)
    estimate = asyncio.run(failing.get_profit(USER, _position("1000", created)))
    assert estimate == pytest.approx(Decimal("1.0"))
    assert asyncio.run(failing.get_profit(USER, _position("1000", None))) == 0


def test_morpho_resolves_market_params() -> None:
    loan = USDC_BASE
    params = (loan, "0x4200000000000000000000000000000000000006", VAULT, A_TOKEN, 860000000000000000)
    reader = FakeReader({"idToMarketParams(bytes32)": params})
    adapter = MorphoBlueSupplyAdapter("MorphoSupply", BASE, reader)

    calls = asyncio.run(adapter.invest_calls(500, USER, USDC_BASE))
    assert len(calls) == 2
    assert calls[1].to == adapter.morpho
    _, _, args = reader.calls[0]
    assert args[0] == bytes.fromhex(adapter.market_id[2:])


def test_morpho_zero_loan_token_raises() -> None:
    zero = "0x0000000000000000000000000000000000000000"
    reader = FakeReader({"idToMarketParams(bytes32)": (zero, zero, zero, zero, 0)})
    adapter = MorphoBlueSupplyAdapter("MorphoSupply", BASE, reader)
    with pytest.raises(MarketResolutionError):
        asyncio.run(adapter.invest_calls(500, USER, USDC_BASE))


def test_erc4626_redeem_prefers_withdraw() -> None:
    reader = FakeReader({"maxWithdraw(address)": 10**9})
    adapter = Erc4626VaultAdapter("Re7Strategy", BASE, USDC, reader, {BASE: VAULT})
    (call,) = asyncio.run(adapter.redeem_calls(1_000, USER, USDC_BASE))

    assert _selector(call) == function_selector("withdraw(uint256,address,address)")
    assets, receiver, owner = decode_result(["uint256", "address", "address"], call.data[4:])
    assert assets == 1_000
    assert receiver.lower() == owner.lower() == USER


def test_erc4626_redeem_converts_with_supply_ratio() -> None:
    reader = FakeReader(
        {
            "maxWithdraw(address)": 10,
            "previewWithdraw(uint256)": RuntimeError("not implemented"),
            "totalAssets()": 2_000,
            "totalSupply()": 1_000,
            "balanceOf(address)": 10**12,
        }
    )
    adapter = Erc4626VaultAdapter("Re7Strategy", BASE, USDC, reader, {BASE: VAULT})
    (call,) = asyncio.run(adapter.redeem_calls(1_000, USER, USDC_BASE))

    assert _selector(call) == function_selector("redeem(uint256,address,address)")
    shares, _, _ = decode_result(["uint256", "address", "address"], call.data[4:])
    assert shares == 500


def test_erc4626_redeem_caps_shares_at_balance() -> None:
    reader = FakeReader({"previewWithdraw(uint256)": 900, "balanceOf(address)": 300})
    adapter = Erc4626VaultAdapter(
        "AvantisVaultSupply", BASE, USDC, reader, {BASE: VAULT}, supports_withdraw=False
    )
    (call,) = asyncio.run(adapter.redeem_calls(1_000, USER, USDC_BASE))
    shares, _, _ = decode_result(["uint256", "address", "address"], call.data[4:])
    assert shares == 300
    assert all(signature != "maxWithdraw(address)" for _, signature, _ in reader.calls)


def test_erc4626_share_conversion_round_trip() -> None:
    total_assets, total_supply = 1_234_567, 1_000_000
    reader = FakeReader(
        {
            "previewWithdraw(uint256)": lambda amount: -(-amount * total_supply // total_assets),
            "previewRedeem(uint256)": lambda shares: shares * total_assets // total_supply,
        }
    )
    adapter = Erc4626VaultAdapter("Re7Strategy", BASE, USDC, reader, {BASE: VAULT})
    for amount in (1, 999, 1_000_000, 123_456_789):
        shares = asyncio.run(adapter.get_shares_for_amount(amount))
        redeemed = asyncio.run(adapter.preview_redeem(shares))
        assert abs(redeemed - amount) <= 1


def test_deposit_disabled_vault_rejects_invest() -> None:
    registry = AdapterRegistry(FakeReader({}))
    adapter = registry.get("IporFusionSupply")
    with pytest.raises(ValidationError):
        asyncio.run(adapter.invest_calls(1_000, USER, USDC_BASE))


def test_harvest_redeem_scales_shares() -> None:
    reader = FakeReader(
        {
            "balanceOf(address)": 1_000,
            "underlyingBalanceWithInvestmentForHolder(address)": 4_000,
        }
    )
    adapter = HarvestVaultAdapter("HarvestFortyAcresUSDC", BASE, USDC, reader, {BASE: VAULT})
    (call,) = asyncio.run(adapter.redeem_calls(2_000, USER, USDC_BASE))
    assert _selector(call) == function_selector("withdraw(uint256)")
    (shares,) = decode_result(["uint256"], call.data[4:])
    assert shares == 500


def test_ankr_flow_is_native_only() -> None:
    adapter = AnkrFlowStakingAdapter("AnkrFlowStaking", FLOW, FakeReader({}))
    (call,) = asyncio.run(adapter.invest_calls(10**18, USER))
    assert call.value == 10**18
    assert _selector(call) == function_selector("stake()")
    with pytest.raises(ValidationError):
        asyncio.run(adapter.invest_calls(10**18, USER, USDC_BASE))


def test_registry_resolves_aliases_and_default_chains() -> None:
    registry = AdapterRegistry(FakeReader({}))

    harvest = registry.get("HarvestVaultSupply_fortyAcresUSDC")
    assert harvest.strategy_id == "HarvestFortyAcresUSDC"
    assert harvest.chain_id == BASE

    celo = registry.get("AaveV3SupplyCelo")
    assert celo.chain_id == CELO

    with pytest.raises(UnsupportedChainError):
        registry.get("AvantisVaultSupply", POLYGON)
    with pytest.raises(ValidationError):
        registry.get("NotAStrategy")


def test_erc4626_share_price_defaults_to_one_when_unreadable() -> None:
    reader = FakeReader({"convertToAssets(uint256)": lambda shares: shares * 1_050_000 // 10**18})
    adapter = Erc4626VaultAdapter("MorphoSupply", BASE, USDC, reader, {BASE: VAULT})
    assert asyncio.run(adapter.current_share_price()) == Decimal("1.05")

    broken = Erc4626VaultAdapter("MorphoSupply", BASE, USDC, FakeReader({}), {BASE: VAULT})
    assert asyncio.run(broken.current_share_price()) == Decimal(1)


def test_registry_accepts_custom_factories() -> None:
    registry = AdapterRegistry(FakeReader({}))
    assert "AaveV3Supply" in registry.known_ids()

    registry.register(
        "CustomVault",
        lambda sid, chain, reader: Erc4626VaultAdapter(sid, chain, USDC, reader, {BASE: VAULT}),
    )

    assert "CustomVault" in registry.known_ids()
    adapter = registry.get("CustomVault")
    assert adapter.chain_id == BASE
    assert adapter.vault == VAULT
