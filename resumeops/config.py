"""Application configuration loaded from config.yaml + environment variables."""

from __future__ import annotations

import yaml
from pathlib import Path
from pydantic import Field
from pydantic_settings import BaseSettings

_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config.yaml"


def _load_yaml() -> dict:
    if _CONFIG_PATH.exists():
        with open(_CONFIG_PATH) as f:
            return yaml.safe_load(f) or {}
    return {}


_yaml = _load_yaml()


class RevisionPolicyConfig(BaseSettings):
    free_revisions_limit: int = 2
    urgent_deadline_days: int = 2
    express_deadline_days: int = 1


class PaymentConfig(BaseSettings):
    expiry_days: int = 7
    default_currency: str = "USD"


class OrderConfig(BaseSettings):
    number_prefix: str = "SKX"


class Settings(BaseSettings):
    database_url: str = "sqlite+aiosqlite:///data/resumeops.db"
    log_level: str = "INFO"
    revision_policy: RevisionPolicyConfig = Field(default_factory=RevisionPolicyConfig)
    payments: PaymentConfig = Field(default_factory=PaymentConfig)
    orders: OrderConfig = Field(default_factory=OrderConfig)

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "env_prefix": "RESUMEOPS_"}


def get_settings() -> Settings:
    """Build Settings by merging YAML defaults with env overrides."""
    y = _yaml
    rp = RevisionPolicyConfig(**y.get("revision_policy", {}))
    pay = PaymentConfig(**y.get("payments", {}))
    orders = OrderConfig(**y.get("orders", {}))
    db_url = y.get("database", {}).get("url", "sqlite+aiosqlite:///data/resumeops.db")
    return Settings(
        database_url=db_url,
        log_level=y.get("log_level", "INFO"),
        revision_policy=rp,
        payments=pay,
        orders=orders,
    )
