"""Static chain, token, and protocol contract tables."""

from __future__ import annotations

from typing import Mapping

from ..datalake.schemas import Token

ETHEREUM = 1
BSC = 56
POLYGON = 137
FLOW = 747
MANTLE = 5000
BASE = 8453
ARBITRUM = 42161
CELO = 42220

# Chain names follow the yields aggregator's spelling ("Binance", not "BSC").
CHAIN_NAMES: Mapping[int, str] = {
    ETHEREUM: "Ethereum",
    BSC: "Binance",
    POLYGON: "Polygon",
    FLOW: "Flow",
    MANTLE: "Mantle",
    BASE: "Base",
    ARBITRUM: "Arbitrum",
    CELO: "Celo",
}

USDC = Token(
    name="USDC",
    decimals=6,
    addresses={
        ETHEREUM: "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48",
        ARBITRUM: "0xaf88d065e77c8cC2239327C5EDb3A432268e5831",
        BASE: "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
        BSC: "0x8AC76a51cc950d9822D68b83fE1Ad97B32Cd580d",
        POLYGON: "0x3c499c542cEF5E3811e1192ce70d8cC03d5c3359",
        CELO: "0xcebA9300f2b948710d2653dD7B07f33A8B32118C",
        MANTLE: "0x09Bc4E0D864854c6aFB6eB9A9cdF58aC190D0dF9",
    },
)
USDT = Token(
    name="USDT",
    decimals=6,
    addresses={
        ARBITRUM: "0xFd086bC7CD5C481DCC9C85ebE478A1C0b69FCbb9",
        BASE: "0xfde4C96c8593536E31F229EA8f37b2ADa2699bb2",
        BSC: "0x55d398326f99059fF775485246999027B3197955",
        CELO: "0x48065fbBE25f71C9282ddf5e1cD6D6A887483D5e",
    },
)
CELO_TOKEN = Token(
    name="CELO",
    decimals=18,
    addresses={CELO: "0x471EcE3750Da237f93B8E339c536989b8978a438"},
)
WBNB = Token(
    name="WBNB",
    decimals=18,
    addresses={BSC: "0xbb4CdB9CBd36B01bD1cBaEBF2De08d9173bc095c"},
)
USDE = Token(
    name="USDe",
    decimals=18,
    addresses={MANTLE: "0x5d3a1Ff2b6BAb83b63cd9AD0787074081a52ef34"},
)
WMNT = Token(
    name="WMNT",
    decimals=18,
    addresses={MANTLE: "0x78c1b0C915c4FAA5FffA6CAbf0219DA63d7f4cb8"},
)
FLOW_TOKEN = Token(name="FLOW", decimals=18, is_native=True)


AAVE_V3_POOLS: Mapping[int, str] = {
    BASE: "0xA238Dd80C259a72e81d7e4664a9801593F98d1c5",
    CELO: "0x3E59A31363E2ad014dcbc521c4a0d5757d9f3402",
    BSC: "0x6807dc923806fE8Fd134338EABCA509979a7e0cB",
    POLYGON: "0x794a61358D6845594F94dc1DB02A252b5b4814aD",
    ARBITRUM: "0x794a61358D6845594F94dc1DB02A252b5b4814aD",
}

MORPHO_BLUE: Mapping[int, str] = {BASE: "0xBBBBBbbBBb9cC5e90e3b3Af64bdAF62C37EEFFCb"}
MORPHO_USDC_MARKET_ID = "0x8793cf302b8ffd655ab97bd1c695dbd967807e8367a65cb2f4edaf1380ba1bda"

METAMORPHO_VAULTS: Mapping[str, Mapping[int, str]] = {
    "Re7Strategy": {BASE: "0x12AFDeFb2237a5963e7BAb3e2D46ad0eee70406e"},
    "BBQStrategy": {BASE: "0xBEEFA7B88064FeEF0cEe02AAeBBd95D30df3878F"},
    "CSStrategy": {BASE: "0x1D3b1Cd0a0f242d598834b3F2d126dC6bd774657"},
    "ExtraFiStrategy": {BASE: "0x23479229e52Ab6aaD312D0B03DF9F33B46753B5e"},
    "SteakhousePrimeStrategy": {BASE: "0xBEEFE94c8aD530842bfE7d8B397938fFc1cb83b2"},
    "HighYieldClearStarStrategy": {BASE: "0xE74c499fA461AF1844fCa84204490877787cED56"},
}

FLUID_VAULTS: Mapping[int, str] = {BASE: "0xf42f5795D9ac7e9D757dB633D693cD548Cfd9169"}
IPOR_VAULTS: Mapping[int, str] = {BASE: "0x1166250d1d6b5a1dbb73526257f6bb2bbe235295"}
AVANTIS_VAULTS: Mapping[int, str] = {BASE: "0x944766f715b51967E56aFdE5f0Aa76cEaCc9E7f9"}
CIAN_VAULTS: Mapping[int, str] = {MANTLE: "0x6B2BA8F249cC1376f2A02A9FaF8BEcA5D7718DCf"}

HARVEST_VAULTS: Mapping[str, Mapping[int, str]] = {
    "HarvestFortyAcresUSDC": {BASE: "0xC777031D50F632083Be7080e51E390709062263E"},
    "HarvestAutopilotUSDC": {BASE: "0x0d877Dc7C8Fa3aD980DfDb18B48eC9F8768359C4"},
}

ST_CELO_MANAGER: Mapping[int, str] = {CELO: "0x0239b96D10a434a56CC9E09383077A0490cF9398"}
ANKR_FLOW: Mapping[int, str] = {FLOW: "0xFE8189A3016cb6A3668b8ccdAC520CE572D4287a"}

AGNI_ROUTER: Mapping[int, str] = {MANTLE: "0x319B69888b0d11cEC22caA5034e25FfFBDc88421"}
LENDLE_MARKET: Mapping[int, str] = {MANTLE: "0xecce86d3D3f1b33Fe34794708B7074CDe4aBe9d4"}


__all__ = [
    "AAVE_V3_POOLS",
    "AGNI_ROUTER",
    "ANKR_FLOW",
    "ARBITRUM",
    "AVANTIS_VAULTS",
    "BASE",
    "BSC",
    "CELO",
    "CELO_TOKEN",
    "CHAIN_NAMES",
    "CIAN_VAULTS",
    "ETHEREUM",
    "FLOW",
    "FLOW_TOKEN",
    "FLUID_VAULTS",
    "HARVEST_VAULTS",
    "IPOR_VAULTS",
    "LENDLE_MARKET",
    "MANTLE",
    "METAMORPHO_VAULTS",
    "MORPHO_BLUE",
    "MORPHO_USDC_MARKET_ID",
    "POLYGON",
    "ST_CELO_MANAGER",
    "USDC",
    "USDE",
    "USDT",
    "WBNB",
    "WMNT",
]
