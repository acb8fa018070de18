"""
Configuration management using pydantic-settings.

Every field can be overridden with a WES_-prefixed environment variable or a
.env file, e.g. WES_RPC_URL=http://node:8545.
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from wescore.constants import SIGHASH_ALL


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="WES_", env_file=".env", env_file_encoding="utf-8", case_sensitive=False
    )

    rpc_url: str = "http://localhost:8545"
    rpc_timeout: float = Field(default=30.0, gt=0)

    log_level: str = "INFO"

    # Transport-level retry, applied to read-only queries only
    retry_max_attempts: int = Field(default=3, ge=0)
    retry_initial_delay: float = Field(default=1.0, ge=0)
    retry_max_delay: float = Field(default=10.0, ge=0)
    retry_multiplier: float = Field(default=2.0, ge=1)

    # UTXO snapshot cache, 0 disables it
    utxo_cache_ttl: float = Field(default=0.0, ge=0)
    cache_max_entries: int = Field(default=1000, ge=1)

    batch_size: int = Field(default=50, ge=1)
    batch_concurrency: int = Field(default=5, ge=1)

    # Native-coin fee model, all zero by default
    fee_base: int = Field(default=0, ge=0)
    fee_per_input: int = Field(default=0, ge=0)
    fee_per_output: int = Field(default=0, ge=0)

    sighash_type: str = SIGHASH_ALL


def get_settings() -> Settings:
    return Settings()
