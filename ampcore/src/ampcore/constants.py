"""
Liquid network parameters and Green backend protocol constants.

BIP32 key versions follow the Bitcoin network of the same name, while the
address versions and policy asset ids are those of the Liquid chains.
"""

from __future__ import annotations

from dataclasses import dataclass

from ampcore.models import NetworkType

# BIP32 extended key version bytes
MAINNET_XPRV = bytes.fromhex("0488ade4")
MAINNET_XPUB = bytes.fromhex("0488b21e")
TESTNET_TPRV = bytes.fromhex("04358394")
TESTNET_TPUB = bytes.fromhex("043587cf")

HARDENED_OFFSET = 0x80000000

# Green login and registration
CHALLENGE_PREFIX = "greenaddress.it      login "
GAIT_GENERATION_NONCE = b"GreenAddress.it HD wallet path"
LOGIN_KEY_INDEX = 0x4741B11E
USER_AGENT = "[v2,sw,csv,csv_opt]"
ACTION_PREFIX = "com.greenaddress"
DEFAULT_REALM = "realm1"

# AMP subaccounts
AMP_SUBACCOUNT_NAME = "AMP"
AMP_SUBACCOUNT_TYPE = "2of2_no_recovery"
DEFAULT_SUBACCOUNT_ID = 1
# Backend-fixed account branch; the purpose step is intentionally not hardened
AMP_ACCOUNT_BRANCH = "84/1'"
# First receiving address of the subaccount funds the spend
AMP_ADDRESS_POINTER = 1

SIGHASH_ALL = 0x01


@dataclass(frozen=True)
class NetworkParams:
    """Address, key and asset parameters for one Liquid network."""

    name: NetworkType
    xprv_version: bytes
    xpub_version: bytes
    p2pkh_version: int
    p2sh_version: int
    confidential_prefix: int
    bech32_hrp: str
    policy_asset: str
    url: str


LIQUID_MAINNET = NetworkParams(
    name=NetworkType.MAINNET,
    xprv_version=MAINNET_XPRV,
    xpub_version=MAINNET_XPUB,
    p2pkh_version=57,
    p2sh_version=39,
    confidential_prefix=12,
    bech32_hrp="ex",
    policy_asset="6f0279e9ed041c3d710a9f57d0c02928416460c4b722ae3457a11eec381c526d",
    url="wss://green-liquid-mainnet.blockstream.com/v2/ws",
)

LIQUID_TESTNET = NetworkParams(
    name=NetworkType.TESTNET,
    xprv_version=TESTNET_TPRV,
    xpub_version=TESTNET_TPUB,
    p2pkh_version=36,
    p2sh_version=19,
    confidential_prefix=23,
    bech32_hrp="tex",
    policy_asset="144c654344aa716d6f3abcc1ca90e5641e4e2a7f633bc09fe3baf64585819a49",
    url="wss://green-liquid-testnet.blockstream.com/v2/ws",
)

LIQUID_REGTEST = NetworkParams(
    name=NetworkType.REGTEST,
    xprv_version=TESTNET_TPRV,
    xpub_version=TESTNET_TPUB,
    p2pkh_version=235,
    p2sh_version=75,
    confidential_prefix=4,
    bech32_hrp="ert",
    policy_asset="5ac9f65c0efcc4775e0baec4ec03abdde22473cd3cf33c0419ca290e0751b225",
    url="ws://127.0.0.1:8080/v2/ws",
)

NETWORKS: dict[NetworkType, NetworkParams] = {
    NetworkType.MAINNET: LIQUID_MAINNET,
    NetworkType.TESTNET: LIQUID_TESTNET,
    NetworkType.REGTEST: LIQUID_REGTEST,
}


def get_network_params(network: NetworkType | str) -> NetworkParams:
    """Look up parameters by network tag; raises ValueError for unknown names."""
    return NETWORKS[NetworkType.parse(network)]
