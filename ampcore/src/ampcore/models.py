"""
Data models for Green backend responses using Pydantic for validation.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

NETWORK_ALIASES = {
    "bitcoin": "mainnet",
    "liquid": "mainnet",
    "liquidv1": "mainnet",
    "liquidtestnet": "testnet",
}


class NetworkType(str, Enum):
    MAINNET = "mainnet"
    TESTNET = "testnet"
    REGTEST = "regtest"

    @classmethod
    def parse(cls, value: NetworkType | str) -> NetworkType:
        """Accept a NetworkType or a name, including the 'bitcoin' alias of mainnet."""
        if isinstance(value, cls):
            return value
        name = str(value).lower()
        return cls(NETWORK_ALIASES.get(name, name))


class UnspentOutput(BaseModel):
    """An unspent output owned by one of our subaccounts, as listed by the backend."""

    txhash: str = Field(..., min_length=64, max_length=64)
    pt_idx: int = Field(..., ge=0)
    value: int = Field(..., ge=0)
    subaccount: int = 0
    pointer: int = 0
    block_height: int | None = None
    script_type: int | None = None
    user_status: int | None = None
    subtype: int | None = None
    script: str = ""
    asset_tag: str = ""
    commitment: str = ""
    nonce_commitment: str = ""
    surj_proof: str = ""
    range_proof: str = ""

    @field_validator("txhash")
    @classmethod
    def validate_txhash(cls, v: str) -> str:
        bytes.fromhex(v)
        return v.lower()

    def confirmations(self, tip_height: int) -> int:
        """Confirmation count at the given chain tip (0 while unconfirmed)."""
        if not self.block_height:
            return 0
        return max(tip_height - self.block_height + 1, 0)


class AddressRecord(BaseModel):
    """One of our receiving addresses (``get_my_addresses``)."""

    ad: str
    script: str
    pointer: int
    branch: int = 1
    addr_type: str = ""
    script_type: int | None = None
    subtype: Any = None
    num_tx: int = 0


class FundAddressResponse(BaseModel):
    """Result of ``vault.fund``.

    The backend reports ``addr_type`` as p2wsh, but the address it returns is
    the P2SH-wrapped form.
    """

    script: str
    address: str = ""
    pointer: int = 0
    branch: int = 1
    addr_type: str = ""
    subtype: Any = None


class SpendLimits(BaseModel):
    total: int = 0
    per_tx: int = 0
    is_fiat: bool = False


class SendRawTransactionResponse(BaseModel):
    txhash: str
    tx: str = ""
    limit_decrease: int = 0
    limits: SpendLimits = Field(default_factory=SpendLimits)


class Subaccount(BaseModel):
    name: str = ""
    pointer: int
    receiving_id: str = ""
    type: str = ""
    has_txs: bool = False
    required_ca: int = 0


class LoginResponse(BaseModel):
    """The subset of the login reply this wallet reads."""

    block_height: int = 0
    block_hash: str = ""
    chain_code: str = ""
    public_key: str = ""
    gait_path: str = ""
    receiving_id: str = ""
    first_login: bool = False
    has_txs: bool = False
    dust: int = 0
    min_fee: int = 0
    subaccounts: list[Subaccount] = Field(default_factory=list)
    limits: SpendLimits = Field(default_factory=SpendLimits)

    def subaccount(self, pointer: int) -> Subaccount | None:
        for sub in self.subaccounts:
            if sub.pointer == pointer:
                return sub
        return None
