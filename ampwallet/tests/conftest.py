"""
Pytest configuration and fixtures for ampwallet tests.
"""

import pytest
from ampcore.constants import LIQUID_TESTNET, NetworkParams
from coincurve import PrivateKey

from ampwallet.wallet.address import script_to_p2sh_address
from ampwallet.wallet.bip32 import AmpSigner


@pytest.fixture
def test_mnemonic() -> str:
    """Test mnemonic (BIP39 test vector)"""
    return (
        "abandon abandon abandon abandon abandon abandon "
        "abandon abandon abandon abandon abandon about"
    )


@pytest.fixture
def test_seed() -> bytes:
    """BIP32 test vector 1 seed"""
    return bytes.fromhex("000102030405060708090a0b0c0d0e0f")


@pytest.fixture
def testnet() -> NetworkParams:
    return LIQUID_TESTNET


@pytest.fixture
def signer(test_seed: bytes) -> AmpSigner:
    return AmpSigner.from_seed(test_seed, "testnet")


@pytest.fixture
def server_pubkey() -> bytes:
    return PrivateKey(b"\x01" * 32).public_key.format(compressed=True)


@pytest.fixture
def witness_script(signer: AmpSigner, server_pubkey: bytes) -> bytes:
    """2-of-2 multisig between a backend key and our first address key."""
    user_pubkey = signer.spending_key(1).get_public_key_bytes()
    # OP_2 <server> <user> OP_2 OP_CHECKMULTISIG
    return (
        bytes([0x52, 0x21])
        + server_pubkey
        + bytes([0x21])
        + user_pubkey
        + bytes([0x52, 0xAE])
    )


@pytest.fixture
def recipient_address() -> str:
    """P2SH address of a pay-to-pubkey script for an unrelated key."""
    other_key = PrivateKey(b"\x02" * 32).public_key.format(compressed=True)
    return script_to_p2sh_address(b"\x21" + other_key + b"\xac", LIQUID_TESTNET)
