import json
import os
from pathlib import Path
from typing import Any

from eth_utils import to_checksum_address
from loguru import logger
from pydantic import BaseModel, Field, field_validator

from n0ir_zap.core.constants.aerodrome import (
    BASE_USDC,
    DEFAULT_ORACLE_CONNECTORS,
    DEFAULT_ORACLE_THRESHOLD_FILTER,
    DEFAULT_ROUTE_CONNECTORS,
    SLIPSTREAM_TICK_SPACING_CANDIDATES,
)
from n0ir_zap.core.constants.base import (
    DEFAULT_POOL_CACHE_TTL_S,
    DEFAULT_SLIPPAGE_BPS,
    MAX_SLIPPAGE_BPS,
)
from n0ir_zap.core.constants.chains import CHAIN_ID_BASE

_CONFIG_ENV_KEYS = ("N0IR_CONFIG_PATH", "N0IR_CONFIG")
_DEFAULT_CONFIG_FILENAME = "config.json"
_DEFAULT_STAKE_LEDGER_FILENAME = "stake_ledger.json"
_WALLET_PRIVATE_KEY = "wallet_private_key"


def _find_project_root(start: Path) -> Path | None:
    cur = start.resolve()
    for parent in [cur, *cur.parents]:
        if (parent / "pyproject.toml").exists():
            return parent
    return None


def _project_root() -> Path | None:
    return _find_project_root(Path.cwd()) or _find_project_root(Path(__file__).parent)


def resolve_config_path(path: str | Path | None = None) -> Path:
    if path is not None:
        return Path(path).expanduser()

    env_path = next(
        (os.getenv(k, "").strip() for k in _CONFIG_ENV_KEYS if os.getenv(k)), ""
    )
    if env_path:
        p = Path(env_path).expanduser()
        if p.is_absolute():
            return p
        root = _project_root()
        return (root / p) if root else p

    root = _project_root()
    return (root / _DEFAULT_CONFIG_FILENAME) if root else Path(_DEFAULT_CONFIG_FILENAME)


def load_config_json(
    path: str | Path | None = None, *, require_exists: bool = False
) -> dict[str, Any]:
    cfg_path = resolve_config_path(path)
    if not cfg_path.exists():
        if require_exists:
            raise FileNotFoundError(f"Config file not found: {cfg_path}")
        return {}
    try:
        return json.loads(cfg_path.read_text())
    except json.JSONDecodeError as exc:
        logger.warning(f"Ignoring unreadable config {cfg_path}: {exc}")
        return {}


CONFIG: dict[str, Any] = load_config_json()


def set_config(config: dict[str, Any]) -> None:
    """Replace the global CONFIG dict in-place.

    This allows code that imported CONFIG at module import time to see updates.
    """
    CONFIG.clear()
    CONFIG.update(config)


def load_config(
    path: str | Path | None = None, *, require_exists: bool = False
) -> None:
    """Load config from disk into the global CONFIG dict."""
    set_config(load_config_json(path, require_exists=require_exists))


def set_rpc_urls(rpc_urls):
    CONFIG["rpc_urls"] = rpc_urls


def get_rpc_urls() -> dict[str, Any]:
    return CONFIG.get("rpc_urls", {})


def load_wallet_private_key(path: str | Path | None = None) -> str | None:
    config = CONFIG if path is None else load_config_json(path)
    value = config.get(_WALLET_PRIVATE_KEY)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


class ZapSettings(BaseModel):
    """Tunables for the zap core, read from the ``zap`` section of the config."""

    chain_id: int = CHAIN_ID_BASE
    deposit_asset: str = BASE_USDC
    default_slippage_bps: int = Field(default=DEFAULT_SLIPPAGE_BPS, ge=1, le=10_000)
    max_slippage_bps: int = Field(default=MAX_SLIPPAGE_BPS, ge=1, le=10_000)
    pool_cache_ttl_s: int = Field(default=DEFAULT_POOL_CACHE_TTL_S, ge=1)
    tick_spacings: list[int] = Field(
        default_factory=lambda: list(SLIPSTREAM_TICK_SPACING_CANDIDATES)
    )
    route_connectors: list[str] = Field(
        default_factory=lambda: list(DEFAULT_ROUTE_CONNECTORS)
    )
    oracle_connectors: list[str] = Field(
        default_factory=lambda: list(DEFAULT_ORACLE_CONNECTORS)
    )
    oracle_threshold_filter: int = DEFAULT_ORACLE_THRESHOLD_FILTER
    oracle_address: str | None = None
    stake_ledger_path: str | None = None

    @field_validator("deposit_asset", "oracle_address")
    @classmethod
    def _checksum(cls, value: str | None) -> str | None:
        return to_checksum_address(value) if value else value

    @field_validator("route_connectors", "oracle_connectors")
    @classmethod
    def _checksum_list(cls, value: list[str]) -> list[str]:
        return [to_checksum_address(v) for v in value]

    @field_validator("tick_spacings")
    @classmethod
    def _ascending(cls, value: list[int]) -> list[int]:
        spacings = sorted({int(v) for v in value})
        if not spacings or spacings[0] <= 0:
            raise ValueError("tick_spacings must be positive")
        return spacings


def get_zap_settings() -> ZapSettings:
    return ZapSettings(**CONFIG.get("zap", {}))


def resolve_stake_ledger_path(
    settings: ZapSettings, config_path: str | Path | None = None
) -> Path:
    """Where staked-position owners are persisted.

    Defaults to ``stake_ledger.json`` beside the config file so that a position
    staked by one process can be closed by the next.
    """
    if settings.stake_ledger_path:
        return Path(settings.stake_ledger_path).expanduser()
    return resolve_config_path(config_path).parent / _DEFAULT_STAKE_LEDGER_FILENAME
