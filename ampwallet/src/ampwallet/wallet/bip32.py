"""
BIP32 HD key derivation and signing for AMP wallets.

Keys carry a network tag that selects the BIP32 version bytes used when they
are serialized (xprv/xpub on mainnet, tprv/tpub on testnet and regtest).
"""

from __future__ import annotations

from ampcore.constants import (
    AMP_ACCOUNT_BRANCH,
    AMP_ADDRESS_POINTER,
    HARDENED_OFFSET,
    NetworkParams,
    get_network_params,
)
from ampcore.crypto import (
    SECP256K1_N,
    CryptoError,
    base58check_decode,
    base58check_encode,
    decode_signature_der,
    encode_signature_der,
    hash160,
    hmac_sha512,
)
from ampcore.models import NetworkType
from coincurve import PrivateKey, PublicKey
from coincurve._libsecp256k1 import ffi, lib

MIN_SEED_LENGTH = 16
MAX_SEED_LENGTH = 64


class KeyTreeError(Exception):
    pass


class InvalidSeedLength(KeyTreeError):
    pass


class UnrecognizedNetwork(KeyTreeError):
    pass


class InvalidExtendedKey(KeyTreeError):
    pass


class InvalidPath(KeyTreeError):
    pass


class PrivateMaterialRequired(KeyTreeError):
    pass


def resolve_network(network: NetworkType | str) -> NetworkParams:
    try:
        return get_network_params(network)
    except (KeyError, ValueError) as e:
        raise UnrecognizedNetwork(f"Unrecognized network '{network}'") from e


def parse_path(path: str) -> list[int]:
    """
    Parse path notation into raw indices.

    Accepts both absolute ("m/84'/1'/0'") and root-relative ("84/1'/0'")
    forms; ' or h marks a hardened step.
    """
    parts = path.split("/")
    if parts and parts[0] == "m":
        parts = parts[1:]

    indices = []
    for part in parts:
        if not part:
            continue

        hardened = part.endswith("'") or part.endswith("h")
        index_str = part.rstrip("'h")
        if not index_str.isdigit():
            raise InvalidPath(f"Invalid path segment '{part}' in '{path}'")

        index = int(index_str)
        if index >= HARDENED_OFFSET:
            raise InvalidPath(f"Index {index} out of range in '{path}'")

        if hardened:
            index += HARDENED_OFFSET
        indices.append(index)

    return indices


class HDKey:
    """
    Hierarchical Deterministic Key node.

    Nodes are immutable: deriving a child returns a new HDKey and leaves the
    parent untouched. A node without a private key is public-only and can only
    derive non-hardened children.
    """

    def __init__(
        self,
        private_key: PrivateKey | None,
        chain_code: bytes,
        network: NetworkParams,
        depth: int = 0,
        parent_fingerprint: bytes = b"\x00\x00\x00\x00",
        child_number: int = 0,
        public_key: PublicKey | None = None,
    ):
        if private_key is None and public_key is None:
            raise KeyTreeError("A key node needs a private or a public key")
        if len(chain_code) != 32:
            raise KeyTreeError(f"Invalid chain code length: {len(chain_code)}")

        self._private_key = private_key
        self._public_key = public_key if public_key is not None else private_key.public_key
        self.chain_code = chain_code
        self.network = network
        self.depth = depth
        self.parent_fingerprint = parent_fingerprint
        self.child_number = child_number

    @property
    def private_key(self) -> PrivateKey | None:
        """Return the coincurve PrivateKey instance, or None for public-only nodes."""
        return self._private_key

    @property
    def public_key(self) -> PublicKey:
        """Return the coincurve PublicKey instance."""
        return self._public_key

    @property
    def is_private(self) -> bool:
        return self._private_key is not None

    @property
    def fingerprint(self) -> bytes:
        return hash160(self.get_public_key_bytes())[:4]

    @classmethod
    def from_seed(cls, seed: bytes, network: NetworkType | str = NetworkType.TESTNET) -> HDKey:
        """Create master HD key from seed"""
        if not MIN_SEED_LENGTH <= len(seed) <= MAX_SEED_LENGTH:
            raise InvalidSeedLength(
                f"Seed must be {MIN_SEED_LENGTH}-{MAX_SEED_LENGTH} bytes, got {len(seed)}"
            )

        params = resolve_network(network)
        hmac_result = hmac_sha512(b"Bitcoin seed", seed)
        return cls.from_private_key(hmac_result[:32], hmac_result[32:], params)

    @classmethod
    def from_private_key(
        cls, key_bytes: bytes, chain_code: bytes, network: NetworkParams
    ) -> HDKey:
        """Create a root node from a raw (private scalar, chain code) pair."""
        if not 0 < int.from_bytes(key_bytes, "big") < SECP256K1_N:
            raise KeyTreeError("Private key out of range")
        return cls(PrivateKey(key_bytes), chain_code, network)

    @classmethod
    def from_base58(cls, encoded: str, network: NetworkType | str) -> HDKey:
        """
        Parse a serialized extended key.

        The version bytes must belong to the given network.
        """
        params = resolve_network(network)
        try:
            data = base58check_decode(encoded)
        except CryptoError as e:
            raise InvalidExtendedKey(str(e)) from e

        if len(data) != 78:
            raise InvalidExtendedKey(f"Invalid extended key length: {len(data)}")

        version = data[0:4]
        depth = data[4]
        parent_fingerprint = data[5:9]
        child_number = int.from_bytes(data[9:13], "big")
        chain_code = data[13:45]
        key_data = data[45:78]

        if depth == 0 and (parent_fingerprint != b"\x00" * 4 or child_number != 0):
            raise InvalidExtendedKey("Root key with non-zero parent fingerprint or index")

        if version == params.xprv_version:
            if key_data[0] != 0x00:
                raise InvalidExtendedKey("Invalid private key prefix")
            secret = key_data[1:]
            if not 0 < int.from_bytes(secret, "big") < SECP256K1_N:
                raise InvalidExtendedKey("Private key out of range")
            private_key: PrivateKey | None = PrivateKey(secret)
            public_key = None
        elif version == params.xpub_version:
            private_key = None
            try:
                public_key = PublicKey(key_data)
            except ValueError as e:
                raise InvalidExtendedKey(f"Invalid public key: {e}") from e
        else:
            raise InvalidExtendedKey(
                f"Version {version.hex()} does not match network {params.name.value}"
            )

        return cls(
            private_key,
            chain_code,
            params,
            depth=depth,
            parent_fingerprint=parent_fingerprint,
            child_number=child_number,
            public_key=public_key,
        )

    def derive_path(self, path: str) -> HDKey:
        """
        Derive child key from path notation (e.g., "m/84'/1'/0'" or "84/1'/0'")
        ' indicates hardened derivation
        """
        key = self
        for index in parse_path(path):
            key = key.derive(index)
        return key

    def derive(self, index: int) -> HDKey:
        """Derive a child key at the given raw index (>= 2**31 is hardened)"""
        if not 0 <= index <= 0xFFFFFFFF:
            raise InvalidPath(f"Index {index} out of range")

        hardened = index >= HARDENED_OFFSET

        if hardened:
            if self._private_key is None:
                raise PrivateMaterialRequired(
                    f"Hardened derivation at index {index - HARDENED_OFFSET}' "
                    "requires a private key"
                )
            data = b"\x00" + self._private_key.secret + index.to_bytes(4, "big")
        else:
            data = self.get_public_key_bytes() + index.to_bytes(4, "big")

        hmac_result = hmac_sha512(self.chain_code, data)
        key_offset = hmac_result[:32]
        child_chain = hmac_result[32:]

        offset_int = int.from_bytes(key_offset, "big")
        if offset_int >= SECP256K1_N:
            raise KeyTreeError(f"Invalid child key at index {index}")

        if self._private_key is not None:
            parent_key_int = int.from_bytes(self._private_key.secret, "big")
            child_key_int = (parent_key_int + offset_int) % SECP256K1_N

            if child_key_int == 0:
                raise KeyTreeError(f"Invalid child key at index {index}")

            child_private: PrivateKey | None = PrivateKey(child_key_int.to_bytes(32, "big"))
            child_public = None
        else:
            child_private = None
            try:
                child_public = self._public_key.add(key_offset)
            except ValueError as e:
                raise KeyTreeError(f"Invalid child key at index {index}") from e

        return HDKey(
            child_private,
            child_chain,
            self.network,
            depth=self.depth + 1,
            parent_fingerprint=self.fingerprint,
            child_number=index,
            public_key=child_public,
        )

    def neutered(self) -> HDKey:
        """Return a public-only copy of this node."""
        return HDKey(
            None,
            self.chain_code,
            self.network,
            depth=self.depth,
            parent_fingerprint=self.parent_fingerprint,
            child_number=self.child_number,
            public_key=self._public_key,
        )

    def to_base58(self) -> str:
        """Serialize as an extended key (private form if private material is held)"""
        if self._private_key is not None:
            version = self.network.xprv_version
            key_data = b"\x00" + self._private_key.secret
        else:
            version = self.network.xpub_version
            key_data = self.get_public_key_bytes()

        payload = (
            version
            + bytes([self.depth])
            + self.parent_fingerprint
            + self.child_number.to_bytes(4, "big")
            + self.chain_code
            + key_data
        )
        return base58check_encode(payload)

    def neutered_base58(self) -> str:
        return self.neutered().to_base58()

    def get_private_key_bytes(self) -> bytes:
        """Get private key as 32 bytes"""
        if self._private_key is None:
            raise PrivateMaterialRequired("Public-only key has no private key")
        return self._private_key.secret

    def get_public_key_bytes(self, compressed: bool = True) -> bytes:
        """Get public key bytes"""
        return self._public_key.format(compressed=compressed)

    def sign(self, message_hash: bytes, low_r: bool = False) -> bytes:
        """
        ECDSA-sign a 32-byte hash, returning the 64-byte compact form (r || s).

        Nonces are RFC6979. With low_r, a counter is fed to the nonce function
        as extra entropy until r has its top bit clear.
        """
        if self._private_key is None:
            raise PrivateMaterialRequired("Signing requires a private key")
        if len(message_hash) != 32:
            raise ValueError(f"Message hash must be 32 bytes, got {len(message_hash)}")

        signature = decode_signature_der(self._private_key.sign(message_hash, hasher=None))

        counter = 0
        while low_r and signature[0] > 0x7F:
            counter += 1
            # rfc6979 with extra data is reached through coincurve's private cffi bindings
            extra_entropy = ffi.new("unsigned char[32]", counter.to_bytes(32, "little"))
            der = self._private_key.sign(
                message_hash,
                hasher=None,
                custom_nonce=(lib.secp256k1_nonce_function_rfc6979, extra_entropy),
            )
            signature = decode_signature_der(der)

        return signature

    def verify(self, signature: bytes, message_hash: bytes) -> bool:
        """Verify a compact or DER signature over a 32-byte hash."""
        der = encode_signature_der(signature) if len(signature) == 64 else signature
        return self._public_key.verify(der, message_hash, hasher=None)

    def wipe(self) -> None:
        """Drop private material; the node stays usable as a public-only key."""
        self._private_key = None

    def __repr__(self) -> str:
        return (
            f"HDKey(depth={self.depth}, child_number={self.child_number}, "
            f"public_key={self.get_public_key_bytes().hex()}, private={self.is_private})"
        )


class AmpSigner:
    """
    Holder of the wallet's root key.

    All AMP keys (login key, subaccount account keys, spending keys) are
    derived from this root.
    """

    def __init__(self, node: HDKey):
        self.node = node

    @property
    def network(self) -> NetworkType:
        return self.node.network.name

    @property
    def network_params(self) -> NetworkParams:
        return self.node.network

    @classmethod
    def from_seed(cls, seed: bytes, network: NetworkType | str = NetworkType.TESTNET) -> AmpSigner:
        return cls(HDKey.from_seed(seed, network))

    @classmethod
    def from_base58_xpriv(
        cls,
        encoded: str,
        network: NetworkType | str,
        force_network_conversion: bool = False,
    ) -> AmpSigner:
        """
        Load a root from a serialized extended private key.

        With force_network_conversion, the key's own network is detected from
        its version bytes and the raw (scalar, chain code) pair is re-tagged
        with the target network.
        """
        params = resolve_network(network)

        if not force_network_conversion:
            node = HDKey.from_base58(encoded, params.name)
            if not node.is_private:
                raise InvalidExtendedKey("Expected an extended private key")
            return cls(node)

        try:
            version = base58check_decode(encoded)[:4]
        except CryptoError as e:
            raise InvalidExtendedKey(str(e)) from e

        if version == get_network_params(NetworkType.MAINNET).xprv_version:
            source = NetworkType.MAINNET
        elif version == get_network_params(NetworkType.TESTNET).xprv_version:
            source = NetworkType.TESTNET
        else:
            raise UnrecognizedNetwork(f"Unrecognized private key version {version.hex()}")

        original = HDKey.from_base58(encoded, source)
        return cls(
            HDKey.from_private_key(original.get_private_key_bytes(), original.chain_code, params)
        )

    def get_pubkey(self) -> bytes:
        return self.node.get_public_key_bytes()

    def get_chain_code(self) -> bytes:
        return self.node.chain_code

    def derive_path(self, path: str) -> HDKey:
        return self.node.derive_path(path)

    def derive(self, index: int) -> HDKey:
        return self.node.derive(index)

    def sign(self, message_hash: bytes, low_r: bool = False) -> bytes:
        return self.node.sign(message_hash, low_r)

    def account_key(self, subaccount: int) -> HDKey:
        """Account key registered with the backend for an AMP subaccount."""
        return self.derive_path(f"{AMP_ACCOUNT_BRANCH}/{subaccount}'")

    def spending_key(self, subaccount: int, pointer: int = AMP_ADDRESS_POINTER) -> HDKey:
        """
        Key for one of the subaccount's addresses.

        The backend places the subaccount index again as the branch below the
        account key, then the address pointer.
        """
        return self.account_key(subaccount).derive(subaccount).derive(pointer)

    def neutered_base58(self) -> str:
        return self.node.neutered_base58()
