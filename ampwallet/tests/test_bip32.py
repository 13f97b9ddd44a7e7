"""
Tests for BIP32 key derivation, serialization and signing.
"""

import hashlib

import pytest
from ampcore.constants import HARDENED_OFFSET, LIQUID_MAINNET
from ampcore.crypto import base58check_decode, base58check_encode

from ampwallet.wallet.bip32 import (
    AmpSigner,
    HDKey,
    InvalidExtendedKey,
    InvalidPath,
    InvalidSeedLength,
    PrivateMaterialRequired,
    UnrecognizedNetwork,
    parse_path,
)


class TestMasterKey:
    def test_bip32_vector_1_master(self, test_seed):
        master = HDKey.from_seed(test_seed, "mainnet")

        assert master.get_private_key_bytes().hex() == (
            "e8f32e723decf4051aefac8e2c93c9c5b214313817cdb01a1494b917c8436b35"
        )
        assert master.chain_code.hex() == (
            "873dff81c02f525623fd1fe5167eac3a55a049de3d314bb42ee227ffed37d508"
        )
        assert master.get_public_key_bytes().hex() == (
            "0339a36013301597daef41fbe593a02cc513d0b55527ec2df1050e2e8ff49c85c2"
        )
        assert master.depth == 0
        assert master.child_number == 0

    def test_bip32_vector_1_first_hardened_child(self, test_seed):
        child = HDKey.from_seed(test_seed, "mainnet").derive_path("m/0'")

        assert child.get_private_key_bytes().hex() == (
            "edb2e14f9ee77d26dd93b4ecede8d16ed408ce149b6cd80b0715a2d911a0afea"
        )
        assert child.chain_code.hex() == (
            "47fdacbd0f1097043b78c63c20c34ef4ed9a111d980047ad16282c7ae6236141"
        )
        assert child.get_public_key_bytes().hex() == (
            "035a784662a4a20a65bf6aab9ae98a6c068a81c52e4b032c0fb5400c706cfccc56"
        )
        assert child.depth == 1
        assert child.child_number == HARDENED_OFFSET

    @pytest.mark.parametrize("length", [16, 32, 64])
    def test_accepted_seed_lengths(self, length):
        HDKey.from_seed(b"\x42" * length, "testnet")

    @pytest.mark.parametrize("length", [0, 15, 65])
    def test_rejected_seed_lengths(self, length):
        with pytest.raises(InvalidSeedLength):
            HDKey.from_seed(b"\x42" * length, "testnet")

    def test_unknown_network(self, test_seed):
        with pytest.raises(UnrecognizedNetwork):
            HDKey.from_seed(test_seed, "dogecoin")

    def test_bitcoin_is_mainnet_alias(self, test_seed):
        key = HDKey.from_seed(test_seed, "bitcoin")
        assert key.network is LIQUID_MAINNET
        assert key.to_base58().startswith("xprv")


class TestPaths:
    def test_absolute_and_relative_paths_match(self, signer):
        absolute = signer.derive_path("m/84'/1'/0'")
        relative = signer.derive_path("84h/1h/0h")
        assert absolute.get_public_key_bytes() == relative.get_public_key_bytes()

    def test_parse_path(self):
        assert parse_path("m/84/1'/3'") == [84, 1 + HARDENED_OFFSET, 3 + HARDENED_OFFSET]
        assert parse_path("m") == []

    @pytest.mark.parametrize("path", ["m/abc", "m/-1", "m/1''x", f"m/{HARDENED_OFFSET}"])
    def test_invalid_paths(self, path):
        with pytest.raises(InvalidPath):
            parse_path(path)

    def test_derivation_is_deterministic(self, test_seed):
        a = AmpSigner.from_seed(test_seed, "testnet").derive_path("84/1'/1'/1/1")
        b = AmpSigner.from_seed(test_seed, "testnet").derive_path("84/1'/1'/1/1")
        assert a.get_private_key_bytes() == b.get_private_key_bytes()
        assert a.chain_code == b.chain_code

    def test_derive_leaves_parent_untouched(self, signer):
        before = signer.node.to_base58()
        signer.derive(5)
        signer.derive_path("1'/2")
        assert signer.node.to_base58() == before


class TestPublicDerivation:
    def test_neutered_matches_private_derivation(self, signer):
        account = signer.account_key(1)
        public_account = account.neutered()

        private_child = account.derive(1).derive(7)
        public_child = public_account.derive(1).derive(7)

        assert not public_child.is_private
        assert public_child.get_public_key_bytes() == private_child.get_public_key_bytes()
        assert public_child.chain_code == private_child.chain_code

    def test_hardened_requires_private_material(self, signer):
        public_root = signer.node.neutered()
        with pytest.raises(PrivateMaterialRequired):
            public_root.derive(HARDENED_OFFSET)

    def test_wiped_key_cannot_derive_hardened(self, signer):
        key = signer.account_key(1)
        key.wipe()
        assert not key.is_private
        with pytest.raises(PrivateMaterialRequired):
            key.derive_path("0'")
        with pytest.raises(PrivateMaterialRequired):
            key.sign(b"\x00" * 32)


class TestSerialization:
    def test_private_roundtrip(self, signer):
        encoded = signer.node.to_base58()
        assert encoded.startswith("tprv")

        parsed = HDKey.from_base58(encoded, "testnet")
        assert parsed.get_private_key_bytes() == signer.node.get_private_key_bytes()
        assert parsed.chain_code == signer.node.chain_code

    def test_public_roundtrip(self, signer):
        account = signer.account_key(1)
        encoded = account.neutered_base58()
        assert encoded.startswith("tpub")

        parsed = HDKey.from_base58(encoded, "testnet")
        assert not parsed.is_private
        assert parsed.depth == 3
        assert parsed.child_number == 1 + HARDENED_OFFSET
        assert parsed.parent_fingerprint == account.parent_fingerprint
        assert parsed.get_public_key_bytes() == account.get_public_key_bytes()

    def test_version_must_match_network(self, signer):
        with pytest.raises(InvalidExtendedKey):
            HDKey.from_base58(signer.node.to_base58(), "mainnet")

    def test_bad_checksum(self, signer):
        encoded = signer.node.to_base58()
        corrupted = encoded[:-1] + ("1" if encoded[-1] != "1" else "2")
        with pytest.raises(InvalidExtendedKey):
            HDKey.from_base58(corrupted, "testnet")


class TestNetworkConversion:
    def test_testnet_key_converted_to_mainnet(self, signer):
        tprv = signer.node.to_base58()

        converted = AmpSigner.from_base58_xpriv(tprv, "mainnet", force_network_conversion=True)

        assert converted.node.get_private_key_bytes() == signer.node.get_private_key_bytes()
        assert converted.get_chain_code() == signer.get_chain_code()
        assert converted.node.to_base58().startswith("xprv")
        assert converted.node.depth == 0

    def test_same_network_without_conversion(self, signer):
        loaded = AmpSigner.from_base58_xpriv(signer.node.to_base58(), "testnet")
        assert loaded.get_pubkey() == signer.get_pubkey()

    def test_mismatch_without_conversion_fails(self, signer):
        with pytest.raises(InvalidExtendedKey):
            AmpSigner.from_base58_xpriv(signer.node.to_base58(), "mainnet")

    def test_extended_public_key_is_rejected(self, signer):
        tpub = signer.node.neutered_base58()
        assert tpub.startswith("tpub")

        with pytest.raises(InvalidExtendedKey):
            AmpSigner.from_base58_xpriv(tpub, "testnet")

    def test_unrecognized_version(self, signer):
        payload = base58check_decode(signer.node.to_base58())
        encoded = base58check_encode(b"\x00\x00\x00\x00" + payload[4:])
        with pytest.raises(UnrecognizedNetwork):
            AmpSigner.from_base58_xpriv(encoded, "testnet", force_network_conversion=True)

    def test_mainnet_version_is_detected(self, test_seed):
        xprv = HDKey.from_seed(test_seed, "mainnet").to_base58()
        converted = AmpSigner.from_base58_xpriv(xprv, "regtest", force_network_conversion=True)
        assert converted.node.to_base58().startswith("tprv")
        assert converted.get_pubkey() == HDKey.from_seed(test_seed, "regtest").get_public_key_bytes()


class TestSigning:
    def test_low_r_signatures(self, signer):
        key = signer.spending_key(1)
        for i in range(16):
            msg_hash = hashlib.sha256(f"low r {i}".encode()).digest()
            signature = key.sign(msg_hash, low_r=True)

            assert len(signature) == 64
            assert signature[0] < 0x80
            assert key.verify(signature, msg_hash)

    def test_signing_is_deterministic(self, signer):
        msg_hash = hashlib.sha256(b"deterministic").digest()
        assert signer.sign(msg_hash, low_r=True) == signer.sign(msg_hash, low_r=True)
        assert signer.sign(msg_hash) == signer.sign(msg_hash)

    def test_rejects_wrong_hash_length(self, signer):
        with pytest.raises(ValueError):
            signer.sign(b"\x00" * 31)

    def test_verify_rejects_other_message(self, signer):
        signature = signer.sign(hashlib.sha256(b"one").digest())
        assert not signer.node.verify(signature, hashlib.sha256(b"two").digest())


class TestAmpKeys:
    def test_account_key_path(self, signer):
        account = signer.account_key(1)
        expected = signer.derive_path("84/1'/1'")
        assert account.get_public_key_bytes() == expected.get_public_key_bytes()
        assert account.depth == 3

    def test_spending_key_reuses_subaccount_as_branch(self, signer):
        spending = signer.spending_key(2, pointer=5)
        expected = signer.derive_path("84/1'/2'/2/5")
        assert spending.get_public_key_bytes() == expected.get_public_key_bytes()

    def test_default_pointer(self, signer):
        assert (
            signer.spending_key(1).get_public_key_bytes()
            == signer.spending_key(1, pointer=1).get_public_key_bytes()
        )
