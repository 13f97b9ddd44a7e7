"""
Configuration for the AMP wallet.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from ampcore.constants import DEFAULT_REALM, DEFAULT_SUBACCOUNT_ID, get_network_params
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from ampwallet.wallet.storage import DEFAULT_SEED_FILE


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="AMP_", env_file=".env", env_file_encoding="utf-8", case_sensitive=False
    )

    network: Literal["mainnet", "testnet", "regtest"] = "testnet"

    # Empty means the default Green endpoint for the network
    url: str = ""
    realm: str = DEFAULT_REALM

    seed_file: Path = DEFAULT_SEED_FILE
    subaccount: int = Field(default=DEFAULT_SUBACCOUNT_ID, ge=0)
    min_confirmations: int = Field(default=0, ge=0)

    log_level: str = "INFO"

    def get_url(self) -> str:
        return self.url or get_network_params(self.network).url


def get_settings() -> Settings:
    return Settings()
