"""
Green login handshake helpers.

The backend issues a challenge for the P2PKH address of our master public key;
we answer with a low-R signature from a dedicated login key.
"""

from __future__ import annotations

from ampcore.constants import LOGIN_KEY_INDEX, NetworkParams
from ampcore.crypto import base58check_encode, encode_signature_der, format_challenge_hash, hash160

from ampwallet.wallet.bip32 import AmpSigner, HDKey


def challenge_address(public_key: bytes, network: NetworkParams) -> str:
    """P2PKH address of a public key, used to request a login challenge."""
    return base58check_encode(bytes([network.p2pkh_version]) + hash160(public_key))


def derive_login_key(signer: AmpSigner) -> HDKey:
    """The login key sits at a fixed index unrelated to any spending path."""
    return signer.derive(LOGIN_KEY_INDEX)


def sign_challenge(login_key: HDKey, challenge_hash: bytes) -> bytes:
    return login_key.sign(challenge_hash, low_r=True)


def answer_challenge(signer: AmpSigner, challenge: str) -> bytes:
    """Hash, sign and DER-encode a login challenge in one step."""
    challenge_hash = format_challenge_hash(challenge)
    login_key = derive_login_key(signer)
    try:
        return encode_signature_der(sign_challenge(login_key, challenge_hash))
    finally:
        login_key.wipe()
