"""
Cryptographic primitives for the Green login handshake and Elements signing.
"""

from __future__ import annotations

import hashlib
import hmac

import base58

from ampcore.constants import CHALLENGE_PREFIX, GAIT_GENERATION_NONCE

# secp256k1 curve order
SECP256K1_N = int("FFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141", 16)

MESSAGE_MAGIC = b"\x18Bitcoin Signed Message:\n"
MAX_MESSAGE_LENGTH = 252


class CryptoError(Exception):
    pass


class MessageTooLong(CryptoError):
    pass


class MalformedSignature(CryptoError):
    pass


def sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def hash256(data: bytes) -> bytes:
    return hashlib.sha256(hashlib.sha256(data).digest()).digest()


def hash160(data: bytes) -> bytes:
    """RIPEMD160(SHA256(data))"""
    h = hashlib.new("ripemd160")
    h.update(hashlib.sha256(data).digest())
    return h.digest()


def hmac_sha512(key: bytes, data: bytes) -> bytes:
    return hmac.new(key, data, hashlib.sha512).digest()


def base58check_encode(payload: bytes) -> str:
    return base58.b58encode_check(payload).decode("ascii")


def base58check_decode(data: str) -> bytes:
    try:
        return base58.b58decode_check(data)
    except ValueError as e:
        raise CryptoError(f"Invalid base58check string: {e}") from e


def bitcoin_message_hash(message: str) -> bytes:
    """
    Hash a message using Bitcoin's message signing format.

    Format: SHA256(SHA256("\\x18Bitcoin Signed Message:\\n" + len + message))

    Only single-byte lengths are accepted, so the message body is limited to
    252 bytes.
    """
    msg_bytes = message.encode("utf-8")

    if len(msg_bytes) > MAX_MESSAGE_LENGTH:
        raise MessageTooLong(
            f"Message is {len(msg_bytes)} bytes, maximum is {MAX_MESSAGE_LENGTH}"
        )

    full_msg = MESSAGE_MAGIC + bytes([len(msg_bytes)]) + msg_bytes
    return hash256(full_msg)


def format_challenge_hash(challenge: str) -> bytes:
    """Hash a login challenge the way the backend verifies it."""
    return bitcoin_message_hash(CHALLENGE_PREFIX + challenge)


def gait_path_bytes(chain_code: bytes, public_key: bytes) -> bytes:
    """Registration path identifier: HMAC-SHA512(nonce, chain_code || pubkey)."""
    return hmac_sha512(GAIT_GENERATION_NONCE, chain_code + public_key)


def _der_integer(value: bytes) -> bytes:
    stripped = value.lstrip(b"\x00")
    if stripped[0] & 0x80:
        stripped = b"\x00" + stripped
    return b"\x02" + bytes([len(stripped)]) + stripped


def encode_signature_der(signature: bytes) -> bytes:
    """
    Encode a 64-byte compact signature (r || s) as a strict DER sequence.

    Integers are minimally encoded, with a 0x00 pad when the leading byte has
    its high bit set (BIP66).
    """
    if len(signature) != 64:
        raise MalformedSignature(f"Expected 64-byte signature, got {len(signature)}")

    r, s = signature[:32], signature[32:]
    for name, component in (("r", r), ("s", s)):
        value = int.from_bytes(component, "big")
        if value == 0:
            raise MalformedSignature(f"Signature {name} is zero")
        if value >= SECP256K1_N:
            raise MalformedSignature(f"Signature {name} is not below the curve order")

    body = _der_integer(r) + _der_integer(s)
    return b"\x30" + bytes([len(body)]) + body


def decode_signature_der(der: bytes) -> bytes:
    """Decode a strict DER signature into the 64-byte compact form."""
    try:
        if der[0] != 0x30 or der[1] != len(der) - 2:
            raise MalformedSignature("Invalid DER sequence header")

        offset = 2
        parts = []
        for _ in range(2):
            if der[offset] != 0x02:
                raise MalformedSignature("Expected DER integer")
            length = der[offset + 1]
            value = der[offset + 2 : offset + 2 + length]
            if len(value) != length or length == 0:
                raise MalformedSignature("Truncated DER integer")
            if len(value) > 1 and value[0] == 0x00 and not value[1] & 0x80:
                raise MalformedSignature("Non-minimal DER integer")
            parts.append(int.from_bytes(value, "big"))
            offset += 2 + length

        if offset != len(der):
            raise MalformedSignature("Trailing bytes after DER signature")
    except IndexError as e:
        raise MalformedSignature("Truncated DER signature") from e

    r, s = parts
    if not 0 < r < SECP256K1_N or not 0 < s < SECP256K1_N:
        raise MalformedSignature("Signature component out of range")
    return r.to_bytes(32, "big") + s.to_bytes(32, "big")
