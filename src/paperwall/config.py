"""Configuration system for Paperwall.

Loads settings from ``~/.paperwall/config.yaml`` (or ``$PAPERWALL_HOME``),
supports environment variable expansion, and locates the files the wallet
and receipt store live in.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from paperwall.networks import DEFAULT_NETWORK
from paperwall.wallet.modes import EncryptionModeName


# ---------------------------------------------------------------------------
# Environment-variable expansion helper
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)\}")


def _expand_env_vars(value: str) -> str:
    """Replace ``${VAR_NAME}`` placeholders with their environment values.

    If the variable is not set the placeholder is left as-is so that
    validation can catch it later.
    """

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        return os.environ.get(var_name, match.group(0))

    return _ENV_VAR_RE.sub(_replace, value)


def _expand_env_recursive(obj: object) -> object:
    """Walk an arbitrary nested structure and expand env vars in strings."""
    if isinstance(obj, str):
        return _expand_env_vars(obj)
    if isinstance(obj, dict):
        return {k: _expand_env_recursive(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_expand_env_recursive(item) for item in obj]
    return obj


# ---------------------------------------------------------------------------
# Pydantic v2 models
# ---------------------------------------------------------------------------


class PaymentsConfig(BaseModel):
    """Outbound payment submission settings."""

    request_timeout: float = 30.0
    # Hostnames exempt from the HTTPS / private-IP rule (local development only)
    allow_insecure_hosts: list[str] = Field(default_factory=list)


_USDC_AMOUNT_RE = re.compile(r"[0-9]+(\.[0-9]+)?")


class BudgetConfig(BaseModel):
    """Spending limits checked before every payment is signed.

    Amounts are human-readable USDC strings (``"0.05"``).  ``None`` means no
    limit of that kind.  Daily totals reset at midnight UTC.
    """

    per_request_max: Optional[str] = None
    daily_max: Optional[str] = None
    total_max: Optional[str] = None
    # Refuse to pay when no limit and no per-call max price is set
    require_limits: bool = False

    @field_validator("per_request_max", "daily_max", "total_max", mode="before")
    @classmethod
    def _usdc_amount(cls, value: object) -> Optional[str]:
        # YAML reads an unquoted 0.50 as a float
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            value = str(value)
        if value is not None and not (isinstance(value, str) and _USDC_AMOUNT_RE.fullmatch(value)):
            raise ValueError(f"expected a USDC amount like '0.05', got {value!r}")
        return value

    @property
    def is_configured(self) -> bool:
        return any(v is not None for v in (self.per_request_max, self.daily_max, self.total_max))


class PaperwallConfig(BaseModel):
    """Root configuration object."""

    default_network: str = DEFAULT_NETWORK
    default_mode: EncryptionModeName = EncryptionModeName.MACHINE_BOUND
    log_level: str = "WARNING"
    payments: PaymentsConfig = Field(default_factory=PaymentsConfig)
    budget: BudgetConfig = Field(default_factory=BudgetConfig)

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        return value.upper()


# ---------------------------------------------------------------------------
# Public helpers
# ---------------------------------------------------------------------------

CONFIG_DIR_NAME = ".paperwall"
CONFIG_FILENAME = "config.yaml"
WALLET_FILENAME = "wallet.json"
DATABASE_FILENAME = "paperwall.db"


def get_config_dir(*, create: bool = True) -> Path:
    """Return the Paperwall home directory.

    ``$PAPERWALL_HOME`` wins over ``~/.paperwall``.  When *create* is true
    the directory is created owner-only (0700).
    """
    override = os.environ.get("PAPERWALL_HOME")
    config_dir = Path(override).expanduser() if override else Path.home() / CONFIG_DIR_NAME
    if create and not config_dir.exists():
        config_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
    return config_dir


def load_config(path: Path | None = None) -> PaperwallConfig:
    """Load and validate configuration from a YAML file.

    A missing file yields the defaults.  Environment variable placeholders
    (``${VAR}``) are expanded before validation.
    """
    if path is None:
        path = get_config_dir(create=False) / CONFIG_FILENAME
    if not path.exists():
        return PaperwallConfig()
    raw_text = path.read_text(encoding="utf-8")
    raw_data = yaml.safe_load(raw_text) or {}
    expanded = _expand_env_recursive(raw_data)
    return PaperwallConfig.model_validate(expanded)


def save_config(config: PaperwallConfig, path: Path) -> None:
    """Serialize a :class:`PaperwallConfig` to a YAML file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    data = config.model_dump(mode="json", exclude_none=True)
    with open(path, "w", encoding="utf-8") as fh:
        yaml.dump(data, fh, default_flow_style=False, sort_keys=False)
