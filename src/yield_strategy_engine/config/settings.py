"""Configuration management for the strategy execution engine."""

from __future__ import annotations

import os
import tomllib
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, cast

from pydantic import AnyHttpUrl, BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CONFIG_FILE = Path("config/app.toml")
CONFIG_FILE_ENV_VAR = "APP_CONFIG_FILE"
MODE_ENV_VAR = "ENGINE_MODE"
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


class AppMode(str, Enum):
    """Supported runtime modes."""

    DRY_RUN = "dry_run"
    LIVE = "live"
    TESTNET = "testnet"


def _resolve_config_path() -> Path:
    env_value = os.getenv(CONFIG_FILE_ENV_VAR)
    if env_value:
        candidate = Path(env_value)
        if not candidate.is_absolute():
            candidate = Path.cwd() / candidate
        return candidate
    return Path.cwd() / DEFAULT_CONFIG_FILE


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    result: Dict[str, Any] = {**base}
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(cast(Dict[str, Any], result[key]), value)
        else:
            result[key] = value
    return result


def _select_profile(data: Dict[str, Any]) -> Dict[str, Any]:
    if not data:
        return {}
    base_section = cast(Dict[str, Any], data.get("default", {}))
    requested_mode = os.getenv(MODE_ENV_VAR)
    if not requested_mode:
        mode_section = base_section.get("mode")
        if isinstance(mode_section, dict):
            requested_mode = cast(str, mode_section.get("active", AppMode.DRY_RUN.value))
        elif isinstance(mode_section, str):
            requested_mode = mode_section
    requested_mode = (requested_mode or AppMode.DRY_RUN.value).lower()

    if requested_mode in data and requested_mode != "default":
        return _deep_merge(base_section, cast(Dict[str, Any], data[requested_mode]))
    if base_section:
        return base_section
    return data


def _load_toml_config() -> Tuple[Dict[str, Any], Optional[Path]]:
    path = _resolve_config_path()
    if not path.exists():
        return {}, None
    with path.open("rb") as handle:
        payload = tomllib.load(handle)
    if not isinstance(payload, dict):
        return {}, path
    merged = dict(_select_profile(payload))
    mode_section = merged.get("mode")
    if isinstance(mode_section, dict):
        mode_section = dict(mode_section)
        mode_section.setdefault("config_file", str(path))
        merged["mode"] = mode_section
    else:
        merged["mode"] = {"config_file": str(path)}
    return merged, path


class ModeConfig(BaseModel):
    """Runtime mode and operational toggles."""

    active: AppMode = Field(default=AppMode.DRY_RUN)
    config_file: Optional[Path] = None


class RPCConfig(BaseModel):
    """Per-chain JSON-RPC endpoints used for reads and submissions."""

    urls: Dict[int, AnyHttpUrl] = Field(
        default_factory=lambda: {
            1: "https://eth.llamarpc.com",
            56: "https://bsc-dataseed.binance.org",
            137: "https://polygon-rpc.com",
            747: "https://mainnet.evm.nodes.onflow.org",
            5000: "https://rpc.mantle.xyz",
            8453: "https://mainnet.base.org",
            42161: "https://arb1.arbitrum.io/rpc",
            42220: "https://forno.celo.org",
        }
    )
    request_timeout: float = Field(default=12.0, ge=1.0, le=60.0)

    @field_validator("request_timeout", mode="before")
    @classmethod
    def _parse_request_timeout(cls, value) -> float:
        if isinstance(value, str):
            return float(value)
        return value

    def url_for(self, chain_id: int) -> str:
        try:
            return str(self.urls[chain_id])
        except KeyError as exc:
            raise KeyError(f"No RPC endpoint configured for chain {chain_id}") from exc


class DataSourceConfig(BaseModel):
    """Configuration for the external yields aggregator."""

    yields_url: AnyHttpUrl = Field(default="https://yields.llama.fi/pools")
    user_agent: str = Field(default="Mozilla/5.0 (compatible; yield-strategy-engine)")
    http_timeout: float = Field(default=10.0, ge=1.0, le=45.0)
    cache_ttl_seconds: int = Field(default=300, ge=0)


class FeeConfig(BaseModel):
    """Protocol fee charged on investments, expressed in permille of the amount."""

    fee_rate_permille: int = Field(default=0, ge=0, le=1000)
    collector_address: str = Field(default=ZERO_ADDRESS)

    @field_validator("collector_address", mode="before")
    @classmethod
    def _default_collector(cls, value: Optional[str]) -> str:
        return value or ZERO_ADDRESS


class ExecutionConfig(BaseModel):
    """Settings for submission, confirmation, and the sequential flow."""

    receipt_timeout_seconds: float = Field(default=180.0, ge=1.0)
    receipt_poll_interval_seconds: float = Field(default=1.0, gt=0.0)
    swap_fee_tiers: List[int] = Field(default_factory=lambda: [100, 500, 2500, 10000])
    swap_deadline_seconds: int = Field(default=1200, ge=1)
    native_deposit_amount: float = Field(default=1.0, ge=0.0)
    native_gas_buffer: float = Field(default=0.5, ge=0.0)
    gas_limit_multiplier: float = Field(default=1.2, ge=1.0)

    @field_validator("swap_fee_tiers")
    @classmethod
    def _ordered_tiers(cls, value: List[int]) -> List[int]:
        if not value:
            raise ValueError("swap_fee_tiers must not be empty")
        return list(value)


class PortfolioConfig(BaseModel):
    """Allocation policy knobs."""

    default_chain_id: int = 8453
    medium_shortlist: List[str] = Field(
        default_factory=lambda: ["HarvestFortyAcresUSDC", "MorphoSupply", "AaveV3SupplyLeveraged"]
    )
    random_seed: Optional[int] = None


class WalletConfig(BaseModel):
    private_key: Optional[str] = None


class StorageConfig(BaseModel):
    database_path: Path = Path("./ledger.sqlite3")


class MonitoringConfig(BaseModel):
    log_level: str = "INFO"


class AppConfig(BaseSettings):
    """Aggregated application configuration."""

    mode: ModeConfig = Field(default_factory=ModeConfig)
    rpc: RPCConfig = Field(default_factory=RPCConfig)
    data_sources: DataSourceConfig = Field(default_factory=DataSourceConfig)
    fees: FeeConfig = Field(default_factory=FeeConfig)
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    portfolio: PortfolioConfig = Field(default_factory=PortfolioConfig)
    wallet: WalletConfig = Field(default_factory=WalletConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        def file_settings(_: Optional[BaseSettings] = None) -> Dict[str, Any]:
            payload, _ = _load_toml_config()
            return payload

        # Environment variables win over the static config file.
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            file_settings,
            file_secret_settings,
        )

    @model_validator(mode="after")
    def _apply_legacy_env(self) -> "AppConfig":
        collector = os.getenv("FEE_RECEIVER_ADDRESS")
        if collector and self.fees.collector_address == ZERO_ADDRESS:
            self.fees.collector_address = collector
        return self


@lru_cache(maxsize=1)
def get_app_config() -> AppConfig:
    """Create a cached application configuration object."""

    return AppConfig()


__all__ = [
    "AppConfig",
    "AppMode",
    "DataSourceConfig",
    "ExecutionConfig",
    "FeeConfig",
    "ModeConfig",
    "MonitoringConfig",
    "PortfolioConfig",
    "RPCConfig",
    "StorageConfig",
    "WalletConfig",
    "ZERO_ADDRESS",
    "get_app_config",
]
