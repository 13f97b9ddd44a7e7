"""
Tests for ampcore.crypto
"""

import hashlib
import hmac

import pytest
import wallycore as wally
from coincurve import PrivateKey

from ampcore.constants import CHALLENGE_PREFIX
from ampcore.crypto import (
    SECP256K1_N,
    CryptoError,
    MalformedSignature,
    MessageTooLong,
    base58check_decode,
    base58check_encode,
    bitcoin_message_hash,
    decode_signature_der,
    encode_signature_der,
    format_challenge_hash,
    gait_path_bytes,
    hash160,
    hash256,
)


class TestHashes:
    def test_hash256_empty_input(self):
        # SHA256(SHA256("")) = known value
        expected = bytes.fromhex("5df6e0e2761359d30a8275058e299fcc0381534545f55cf43e41983f5d4c9456")
        assert hash256(b"") == expected

    def test_hash160_length(self):
        assert len(hash160(b"\x02" + b"\x00" * 32)) == 20


class TestMessageHash:
    def test_matches_manual_construction(self):
        message = "hello"
        preimage = b"\x18Bitcoin Signed Message:\n" + bytes([5]) + b"hello"
        expected = hashlib.sha256(hashlib.sha256(preimage).digest()).digest()
        assert bitcoin_message_hash(message) == expected

    def test_252_byte_message_is_accepted_and_stable(self):
        message = "a" * 252
        first = bitcoin_message_hash(message)
        assert len(first) == 32
        assert bitcoin_message_hash(message) == first

    def test_253_byte_message_rejected(self):
        with pytest.raises(MessageTooLong):
            bitcoin_message_hash("a" * 253)

    def test_length_counts_utf8_bytes(self):
        # 126 two-byte characters = 252 bytes, one more pushes it over
        bitcoin_message_hash("é" * 126)
        with pytest.raises(MessageTooLong):
            bitcoin_message_hash("é" * 127)


class TestChallengeHash:
    def test_prefix_is_part_of_body(self):
        challenge = "1234567890"
        assert format_challenge_hash(challenge) == bitcoin_message_hash(
            CHALLENGE_PREFIX + challenge
        )

    @pytest.mark.parametrize("challenge", ["1234567890", "4815162342", "7" * 100])
    def test_matches_libwally_message_hash(self, challenge):
        expected = wally.format_bitcoin_message(
            (CHALLENGE_PREFIX + challenge).encode(), wally.BITCOIN_MESSAGE_FLAG_HASH
        )
        assert format_challenge_hash(challenge) == bytes(expected)

    def test_body_limit_includes_prefix(self):
        room = 252 - len(CHALLENGE_PREFIX)
        first = format_challenge_hash("7" * room)
        assert format_challenge_hash("7" * room) == first

        with pytest.raises(MessageTooLong):
            format_challenge_hash("7" * (room + 1))


class TestGaitPath:
    def test_hmac_of_chain_code_and_pubkey(self):
        chain_code = bytes(range(32))
        pubkey = b"\x02" + bytes(range(32))
        expected = hmac.new(
            b"GreenAddress.it HD wallet path", chain_code + pubkey, hashlib.sha512
        ).digest()
        assert gait_path_bytes(chain_code, pubkey) == expected
        assert len(gait_path_bytes(chain_code, pubkey)) == 64


class TestDerEncoding:
    def test_high_bit_gets_padding(self):
        r = bytes([0x80]) + bytes(31)
        s = bytes(31) + b"\x01"
        der = encode_signature_der(r + s)

        assert der[0] == 0x30
        assert der[1] == len(der) - 2 == 38
        # r: 0x02 0x21 0x00 0x80 ...
        assert der[2:5] == bytes([0x02, 0x21, 0x00])
        assert der[5] == 0x80
        # s: minimal single byte
        assert der[-3:] == bytes([0x02, 0x01, 0x01])

    def test_leading_zeros_stripped(self):
        r = bytes(2) + bytes([0x7F]) + b"\x11" * 29
        s = b"\x22" * 32
        der = encode_signature_der(r + s)
        assert der[2:4] == bytes([0x02, 30])
        assert der[4] == 0x7F

    def test_rejects_zero_component(self):
        with pytest.raises(MalformedSignature):
            encode_signature_der(bytes(32) + b"\x01" * 32)
        with pytest.raises(MalformedSignature):
            encode_signature_der(b"\x01" * 32 + bytes(32))

    def test_rejects_component_at_curve_order(self):
        n = SECP256K1_N.to_bytes(32, "big")
        with pytest.raises(MalformedSignature):
            encode_signature_der(n + b"\x01" * 32)
        with pytest.raises(MalformedSignature):
            encode_signature_der(b"\x01" * 32 + b"\xff" * 32)

    def test_rejects_wrong_length(self):
        with pytest.raises(MalformedSignature):
            encode_signature_der(b"\x01" * 63)

    def test_matches_libsecp256k1_der(self):
        key = PrivateKey(b"\x11" * 32)
        msg_hash = hashlib.sha256(b"der test").digest()
        der = key.sign(msg_hash, hasher=None)

        compact = decode_signature_der(der)
        assert len(compact) == 64
        assert encode_signature_der(compact) == der

    def test_decode_rejects_garbage(self):
        with pytest.raises(MalformedSignature):
            decode_signature_der(b"\x30\x02\x02")
        with pytest.raises(MalformedSignature):
            decode_signature_der(b"\x31\x06\x02\x01\x01\x02\x01\x01")


class TestBase58Check:
    def test_checksum_verified(self):
        encoded = base58check_encode(b"\x24" + b"\x00" * 20)
        assert base58check_decode(encoded) == b"\x24" + b"\x00" * 20

        corrupted = encoded[:-1] + ("1" if encoded[-1] != "1" else "2")
        with pytest.raises(CryptoError):
            base58check_decode(corrupted)
