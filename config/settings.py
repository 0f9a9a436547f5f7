"""
Global settings configurable via environment variables.

Every value is resolved with the same precedence: explicit override, then the
environment, then the built-in default.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional

TESTNET_API_BASE = "https://api.testnet.paradex.trade"
PROD_API_BASE = "https://api.prod.paradex.trade"
ENVIRONMENTS = ("testnet", "prod")


class ConfigError(ValueError):
    """Raised when a configuration value cannot be parsed."""


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "1", "yes")


def resolve(
    env_key: str,
    default: Any,
    override: Any = None,
    cast: Callable[[Any], Any] = str,
) -> Any:
    """
    Resolve a single setting.

    Args:
        env_key: Environment variable consulted when no override is given.
        default: Value used when neither override nor environment is set.
        override: Explicit value from the caller; wins when not None.
        cast: Conversion applied to override and environment values.
    """
    if override is not None:
        raw = override
    else:
        raw = os.getenv(env_key)
        if raw is None or str(raw).strip() == "":
            return default
    try:
        return cast(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid value for {env_key}: {raw!r}") from exc


def _optional_float(value: Any) -> Optional[float]:
    if value is None or str(value).strip() == "":
        return None
    return float(value)


REQUEST_TIMEOUT = resolve("REQUEST_TIMEOUT", 10.0, cast=float)


@dataclass(frozen=True)
class ExchangeSettings:
    enabled: bool
    environment: str
    private_key: str
    account_address: str
    ethereum_address: str
    api_base_url: str
    chain_id: str
    timeout: float

    @property
    def is_testnet(self) -> bool:
        return self.environment == "testnet"


def load_exchange_settings(overrides: Optional[Mapping[str, Any]] = None) -> ExchangeSettings:
    """Build exchange settings from overrides, PARADEX_* variables and defaults."""
    o = dict(overrides or {})
    environment = resolve("PARADEX_ENVIRONMENT", "testnet", o.get("environment")).lower()
    if environment not in ENVIRONMENTS:
        raise ConfigError(f"PARADEX_ENVIRONMENT must be one of {ENVIRONMENTS}, got {environment!r}")
    default_base = TESTNET_API_BASE if environment == "testnet" else PROD_API_BASE
    default_chain = "PRIVATE_SN_POTC_SEPOLIA" if environment == "testnet" else "PRIVATE_SN_PARACLEAR_MAINNET"
    return ExchangeSettings(
        enabled=resolve("PARADEX_ENABLED", False, o.get("enabled"), cast=parse_bool),
        environment=environment,
        private_key=resolve("PARADEX_PRIVATE_KEY", "", o.get("private_key")),
        account_address=resolve("PARADEX_ACCOUNT_ADDRESS", "", o.get("account_address")),
        ethereum_address=resolve("PARADEX_ETHEREUM_ADDRESS", "", o.get("ethereum_address")),
        api_base_url=resolve("PARADEX_API_BASE_URL", default_base, o.get("api_base_url")).rstrip("/"),
        chain_id=resolve("PARADEX_CHAIN_ID", default_chain, o.get("chain_id")),
        timeout=resolve("REQUEST_TIMEOUT", REQUEST_TIMEOUT, o.get("timeout"), cast=float),
    )


@dataclass(frozen=True)
class ExecutionConfig:
    """Sizing, exposure and exit parameters consumed by the orchestrators."""

    leverage: float = 10.0
    position_size_percent: float = 35.0
    position_size_usd: Optional[float] = None
    min_position_size_usd: float = 10.0
    max_position_size_usd: float = 150.0
    max_exposure_percent: float = 80.0
    max_positions: int = 20

    dynamic_position_sizing: bool = True
    max_position_size_boost: float = 1.5
    min_position_size_reduction: float = 0.7
    performance_adaptation: bool = True
    high_win_rate_threshold: float = 0.65

    take_profit_roe: float = 1.5
    take_profit_roe_high: Optional[float] = 2.5
    dynamic_tp_enabled: bool = True
    atr_tp_multiplier: float = 2.5

    paper_trading_on_error: bool = True
    max_hold_time_minutes: float = 5.0
    confirm_limit_fill: bool = False


# field name -> (environment variable, cast)
_EXECUTION_ENV = {
    "leverage": ("SCALPER_LEVERAGE", float),
    "position_size_percent": ("SCALPER_POSITION_SIZE_PERCENT", float),
    "position_size_usd": ("SCALPER_POSITION_SIZE_USD", _optional_float),
    "min_position_size_usd": ("SCALPER_MIN_POSITION_SIZE_USD", float),
    "max_position_size_usd": ("SCALPER_MAX_POSITION_SIZE_USD", float),
    "max_exposure_percent": ("SCALPER_MAX_EXPOSURE_PERCENT", float),
    "max_positions": ("SCALPER_MAX_POSITIONS", int),
    "dynamic_position_sizing": ("SCALPER_DYNAMIC_POSITION_SIZING", parse_bool),
    "max_position_size_boost": ("SCALPER_MAX_POSITION_SIZE_BOOST", float),
    "min_position_size_reduction": ("SCALPER_MIN_POSITION_SIZE_REDUCTION", float),
    "performance_adaptation": ("SCALPER_PERFORMANCE_ADAPTATION", parse_bool),
    "high_win_rate_threshold": ("SCALPER_HIGH_WIN_RATE_THRESHOLD", float),
    "take_profit_roe": ("SCALPER_TAKE_PROFIT_ROE", float),
    "take_profit_roe_high": ("SCALPER_TAKE_PROFIT_ROE_HIGH", _optional_float),
    "dynamic_tp_enabled": ("SCALPER_DYNAMIC_TP_ENABLED", parse_bool),
    "atr_tp_multiplier": ("SCALPER_ATR_TP_MULTIPLIER", float),
    "paper_trading_on_error": ("SCALPER_PAPER_TRADING_ON_ERROR", parse_bool),
    "max_hold_time_minutes": ("SCALPER_MAX_HOLD_TIME_MINUTES", float),
    "confirm_limit_fill": ("SCALPER_CONFIRM_LIMIT_FILL", parse_bool),
}


def load_execution_config(overrides: Optional[Mapping[str, Any]] = None) -> ExecutionConfig:
    """Build the execution config from overrides, SCALPER_* variables and dataclass defaults."""
    o = dict(overrides or {})
    unknown = set(o) - set(_EXECUTION_ENV)
    if unknown:
        raise ConfigError(f"Unknown execution settings: {sorted(unknown)}")
    defaults = ExecutionConfig()
    values = {
        name: resolve(env_key, getattr(defaults, name), o.get(name), cast=cast)
        for name, (env_key, cast) in _EXECUTION_ENV.items()
    }
    config = ExecutionConfig(**values)
    if config.leverage <= 0:
        raise ConfigError("SCALPER_LEVERAGE must be positive")
    if config.min_position_size_usd > config.max_position_size_usd:
        raise ConfigError("SCALPER_MIN_POSITION_SIZE_USD exceeds SCALPER_MAX_POSITION_SIZE_USD")
    return config
