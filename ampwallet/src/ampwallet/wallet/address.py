"""
Script and address utilities for Liquid (P2SH, P2WSH, P2PKH).
"""

from __future__ import annotations

import hashlib

import bech32
from ampcore.constants import NetworkParams
from ampcore.crypto import CryptoError, base58check_decode, base58check_encode, hash160

OP_0 = 0x00
OP_PUSHDATA1 = 0x4C
OP_PUSHDATA2 = 0x4D
OP_PUSHDATA4 = 0x4E
OP_DUP = 0x76
OP_EQUAL = 0x87
OP_EQUALVERIFY = 0x88
OP_HASH160 = 0xA9
OP_CHECKSIG = 0xAC


class AddressError(Exception):
    pass


def push_data(data: bytes) -> bytes:
    """Encode a single minimal data push."""
    length = len(data)
    if length <= 75:
        return bytes([length]) + data
    if length <= 0xFF:
        return bytes([OP_PUSHDATA1, length]) + data
    if length <= 0xFFFF:
        return bytes([OP_PUSHDATA2]) + length.to_bytes(2, "little") + data
    return bytes([OP_PUSHDATA4]) + length.to_bytes(4, "little") + data


def script_to_p2wsh_scriptpubkey(script: bytes) -> bytes:
    """
    Create P2WSH scriptPubKey from witness script.

    Args:
        script: The witness script bytes

    Returns:
        P2WSH scriptPubKey (OP_0 <32-byte-hash>)
    """
    script_hash = hashlib.sha256(script).digest()
    return bytes([OP_0, 0x20]) + script_hash


def script_to_p2sh_scriptpubkey(script: bytes) -> bytes:
    """P2SH scriptPubKey: OP_HASH160 <20-byte-hash> OP_EQUAL"""
    return bytes([OP_HASH160, 0x14]) + hash160(script) + bytes([OP_EQUAL])


def pubkey_to_p2pkh_scriptpubkey(pubkey: bytes) -> bytes:
    """OP_DUP OP_HASH160 <20-byte-pubkeyhash> OP_EQUALVERIFY OP_CHECKSIG"""
    return bytes([OP_DUP, OP_HASH160, 0x14]) + hash160(pubkey) + bytes([OP_EQUALVERIFY, OP_CHECKSIG])


def p2sh_script_sig(redeem_script: bytes) -> bytes:
    """scriptSig for a P2SH output whose redeem script needs no other data."""
    return push_data(redeem_script)


def script_to_p2sh_address(script: bytes, network: NetworkParams) -> str:
    return base58check_encode(bytes([network.p2sh_version]) + hash160(script))


def script_to_p2wsh_address(script: bytes, network: NetworkParams) -> str:
    """Unconfidential bech32 P2WSH address for a witness script."""
    address = bech32.encode(network.bech32_hrp, 0, hashlib.sha256(script).digest())
    if address is None:
        raise AddressError(f"Failed to encode P2WSH address for {script.hex()}")
    return address


def address_to_scriptpubkey(address: str, network: NetworkParams) -> bytes:
    """
    Convert a Liquid address to scriptPubKey.

    Supports:
    - P2WPKH / P2WSH (unconfidential bech32, e.g. tex1q...)
    - P2PKH / P2SH (base58)
    - Confidential base58 addresses (the blinding key is dropped)
    """
    hrp = network.bech32_hrp
    if address.lower().startswith(hrp + "1"):
        witver, witprog = bech32.decode(hrp, address)
        if witver is None or witprog is None:
            raise AddressError(f"Invalid bech32 address: {address}")

        program = bytes(witprog)
        if witver == 0 and len(program) in (20, 32):
            return bytes([OP_0, len(program)]) + program
        raise AddressError(f"Unsupported witness version: {witver}")

    try:
        decoded = base58check_decode(address)
    except CryptoError as e:
        raise AddressError(f"Invalid address: {address}") from e

    if len(decoded) == 55 and decoded[0] == network.confidential_prefix:
        # prefix | version | 33-byte blinding pubkey | 20-byte hash
        version = decoded[1]
        payload = decoded[35:]
    elif len(decoded) == 21:
        version = decoded[0]
        payload = decoded[1:]
    else:
        raise AddressError(f"Unexpected address payload length {len(decoded)}: {address}")

    if version == network.p2pkh_version:
        return bytes([OP_DUP, OP_HASH160, 0x14]) + payload + bytes([OP_EQUALVERIFY, OP_CHECKSIG])
    if version == network.p2sh_version:
        return bytes([OP_HASH160, 0x14]) + payload + bytes([OP_EQUAL])

    raise AddressError(f"Address version {version} does not belong to {network.name.value}")


def scriptpubkey_to_address(scriptpubkey: bytes, network: NetworkParams) -> str:
    """Convert scriptPubKey to an unconfidential address."""
    if (
        len(scriptpubkey) == 23
        and scriptpubkey[0] == OP_HASH160
        and scriptpubkey[1] == 0x14
        and scriptpubkey[-1] == OP_EQUAL
    ):
        return base58check_encode(bytes([network.p2sh_version]) + scriptpubkey[2:22])

    if (
        len(scriptpubkey) == 25
        and scriptpubkey[:3] == bytes([OP_DUP, OP_HASH160, 0x14])
        and scriptpubkey[-2:] == bytes([OP_EQUALVERIFY, OP_CHECKSIG])
    ):
        return base58check_encode(bytes([network.p2pkh_version]) + scriptpubkey[3:23])

    if len(scriptpubkey) in (22, 34) and scriptpubkey[0] == OP_0 and scriptpubkey[1] == len(
        scriptpubkey
    ) - 2:
        result = bech32.encode(network.bech32_hrp, 0, scriptpubkey[2:])
        if result is None:
            raise AddressError(f"Failed to encode segwit address: {scriptpubkey.hex()}")
        return result

    raise AddressError(f"Unsupported scriptPubKey: {scriptpubkey.hex()}")
