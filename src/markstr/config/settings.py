"""TOML config loading, profiles, and structlog setup."""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path
from typing import Any

from markstr.models.market import DEFAULT_WITHDRAW_TIMEOUT, MarketFees
from markstr.models.network import Network

# Default config search path (project root or cwd)
_CONFIG_DIR = Path(__file__).resolve().parent.parent.parent.parent / "config"


def _load_toml(path: Path) -> dict[str, Any]:
    with open(path, "rb") as f:
        return tomllib.load(f)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into base. Override values take precedence."""
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _find_config_dir(config_dir: Path | None = None) -> Path:
    if config_dir is not None:
        return config_dir
    cwd_config = Path.cwd() / "config"
    if cwd_config.exists():
        return cwd_config
    return _CONFIG_DIR


def load_config(profile: str | None = None, config_dir: Path | None = None) -> dict[str, Any]:
    """Load merged config from default.toml and optional profile overlay."""
    directory = _find_config_dir(config_dir)
    default_path = directory / "default.toml"
    base = _load_toml(default_path) if default_path.exists() else {}
    if profile:
        profile_path = directory / f"{profile}.toml"
        if profile_path.exists():
            base = _deep_merge(base, _load_toml(profile_path))
    return base


def get_settings(profile: str | None = None, config_dir: Path | None = None) -> Settings:
    """Return Settings instance from merged config."""
    return Settings.from_dict(load_config(profile, config_dir))


class Settings:
    """Application settings from TOML config."""

    def __init__(
        self,
        *,
        network: dict[str, Any] | None = None,
        fees: dict[str, Any] | None = None,
        market: dict[str, Any] | None = None,
        storage: dict[str, Any] | None = None,
        logging: dict[str, Any] | None = None,
    ):
        self.network_section = network or {}
        self.fees = fees or {}
        self.market = market or {}
        self.storage = storage or {}
        self.logging = logging or {}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Settings:
        return cls(
            network=raw.get("network"),
            fees=raw.get("fees"),
            market=raw.get("market"),
            storage=raw.get("storage"),
            logging=raw.get("logging"),
        )

    # Convenience accessors with defaults
    @property
    def network(self) -> Network:
        return Network.parse(self.network_section.get("name", "regtest"))

    @property
    def tx_version(self) -> int:
        """Explicit override, else the network's policy version."""
        value = self.network_section.get("tx_version")
        return int(value) if value is not None else self.network.tx_version

    def market_fees(self) -> MarketFees:
        return MarketFees(
            fee_per_deposit_output=int(self.fees.get("fee_per_deposit_output", 1000)),
            fee_per_withdraw_output=int(self.fees.get("fee_per_withdraw_output", 600)),
            administrator_fee=int(self.fees.get("administrator_fee", 0)),
            administrator_address=self.fees.get("administrator_address") or None,
        )

    @property
    def withdraw_timeout(self) -> int:
        return int(self.market.get("withdraw_timeout", DEFAULT_WITHDRAW_TIMEOUT))

    @property
    def db_path(self) -> str:
        return self.storage.get("db_path", "data/markstr.duckdb")

    @property
    def logging_level(self) -> str:
        return self.logging.get("level", "INFO").upper()

    @property
    def logging_format(self) -> str:
        return self.logging.get("format", "console")

    @property
    def logging_level_num(self) -> int:
        return getattr(logging, self.logging_level, logging.INFO)


def configure_logging(settings: Settings) -> None:
    """Configure structlog with settings. Call once at application entry."""
    import structlog

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if settings.logging_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(settings.logging_level_num),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
