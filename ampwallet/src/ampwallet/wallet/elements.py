"""
Elements (Liquid) transaction serialization and segwit v0 signing.

Outputs carry asset, value and nonce fields that are either explicit or
confidential commitments. This wallet only produces explicit values, but the
parser accepts both layouts so backend transactions can be inspected.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ampcore.constants import SIGHASH_ALL
from ampcore.crypto import encode_signature_der, hash256

from ampwallet.wallet.bip32 import HDKey

OUTPOINT_ISSUANCE_FLAG = 1 << 31
OUTPOINT_PEGIN_FLAG = 1 << 30
OUTPOINT_INDEX_MASK = 0x3FFFFFFF
NULL_INDEX = 0xFFFFFFFF

EXPLICIT_PREFIX = 0x01
CONFIDENTIAL_VALUE_PREFIXES = (0x08, 0x09)
CONFIDENTIAL_ASSET_PREFIXES = (0x0A, 0x0B)
CONFIDENTIAL_NONCE_PREFIXES = (0x02, 0x03)


class TransactionParseError(Exception):
    pass


class TransactionSigningError(Exception):
    pass


def read_varint(data: bytes, offset: int) -> tuple[int, int]:
    first = data[offset]
    offset += 1

    if first < 0xFD:
        return first, offset
    if first == 0xFD:
        value = int.from_bytes(data[offset : offset + 2], "little")
        return value, offset + 2
    if first == 0xFE:
        value = int.from_bytes(data[offset : offset + 4], "little")
        return value, offset + 4
    value = int.from_bytes(data[offset : offset + 8], "little")
    return value, offset + 8


def encode_varint(value: int) -> bytes:
    if value < 0xFD:
        return bytes([value])
    if value <= 0xFFFF:
        return b"\xfd" + value.to_bytes(2, "little")
    if value <= 0xFFFFFFFF:
        return b"\xfe" + value.to_bytes(4, "little")
    return b"\xff" + value.to_bytes(8, "little")


def var_slice(data: bytes) -> bytes:
    return encode_varint(len(data)) + data


def satoshi_to_confidential_value(amount: int) -> bytes:
    """Explicit value: 0x01 followed by the amount as big-endian uint64."""
    if not 0 <= amount < 1 << 64:
        raise ValueError(f"Amount out of range: {amount}")
    return bytes([EXPLICIT_PREFIX]) + amount.to_bytes(8, "big")


def confidential_value_to_satoshi(value: bytes) -> int:
    if len(value) != 9 or value[0] != EXPLICIT_PREFIX:
        raise ValueError("Value is not explicit")
    return int.from_bytes(value[1:], "big")


def asset_id_to_bytes(asset_id: str) -> bytes:
    """Explicit asset field from a display-order (big-endian hex) asset id."""
    asset = bytes.fromhex(asset_id)
    if len(asset) != 32:
        raise ValueError(f"Asset id must be 32 bytes, got {len(asset)}")
    return bytes([EXPLICIT_PREFIX]) + asset[::-1]


def bytes_to_asset_id(asset: bytes) -> str:
    if len(asset) != 33 or asset[0] != EXPLICIT_PREFIX:
        raise ValueError("Asset is not explicit")
    return asset[1:][::-1].hex()


def _confidential_field(data: bytes) -> bytes:
    # Empty fields are serialized as the single null byte
    return data if data else b"\x00"


def _read_confidential(
    data: bytes, offset: int, explicit_size: int, confidential_prefixes: tuple[int, ...]
) -> tuple[bytes, int]:
    prefix = data[offset]
    if prefix == 0x00:
        return b"", offset + 1
    if prefix == EXPLICIT_PREFIX:
        size = explicit_size
    elif prefix in confidential_prefixes:
        size = 33
    else:
        raise TransactionParseError(f"Invalid confidential field prefix {prefix:#04x}")

    value = data[offset : offset + size]
    if len(value) != size:
        raise TransactionParseError("Truncated confidential field")
    return value, offset + size


def _read_slice(data: bytes, offset: int) -> tuple[bytes, int]:
    length, offset = read_varint(data, offset)
    value = data[offset : offset + length]
    if len(value) != length:
        raise TransactionParseError("Truncated field")
    return value, offset + length


def _read_stack(data: bytes, offset: int) -> tuple[list[bytes], int]:
    count, offset = read_varint(data, offset)
    items = []
    for _ in range(count):
        item, offset = _read_slice(data, offset)
        items.append(item)
    return items, offset


@dataclass
class TxInput:
    txid_le: bytes
    vout: int
    script_sig: bytes = b""
    sequence: int = 0xFFFFFFFF
    is_pegin: bool = False
    witness: list[bytes] = field(default_factory=list)
    issuance_range_proof: bytes = b""
    inflation_range_proof: bytes = b""
    pegin_witness: list[bytes] = field(default_factory=list)

    @property
    def txid(self) -> str:
        return self.txid_le[::-1].hex()

    def outpoint(self) -> bytes:
        return self.txid_le + self.vout.to_bytes(4, "little")

    def has_witness(self) -> bool:
        return bool(
            self.witness
            or self.pegin_witness
            or self.issuance_range_proof
            or self.inflation_range_proof
        )

    def serialize(self) -> bytes:
        index = self.vout
        if self.is_pegin and index != NULL_INDEX:
            index |= OUTPOINT_PEGIN_FLAG
        return (
            self.txid_le
            + index.to_bytes(4, "little")
            + var_slice(self.script_sig)
            + self.sequence.to_bytes(4, "little")
        )

    def serialize_witness(self) -> bytes:
        return (
            var_slice(self.issuance_range_proof)
            + var_slice(self.inflation_range_proof)
            + encode_varint(len(self.witness))
            + b"".join(var_slice(item) for item in self.witness)
            + encode_varint(len(self.pegin_witness))
            + b"".join(var_slice(item) for item in self.pegin_witness)
        )


@dataclass
class TxOutput:
    asset: bytes
    value: bytes
    script: bytes = b""
    nonce: bytes = b""
    surjection_proof: bytes = b""
    range_proof: bytes = b""

    @property
    def explicit_value(self) -> int | None:
        if len(self.value) == 9 and self.value[0] == EXPLICIT_PREFIX:
            return int.from_bytes(self.value[1:], "big")
        return None

    @property
    def is_fee(self) -> bool:
        return not self.script

    def has_witness(self) -> bool:
        return bool(self.surjection_proof or self.range_proof)

    def serialize(self) -> bytes:
        return (
            _confidential_field(self.asset)
            + _confidential_field(self.value)
            + _confidential_field(self.nonce)
            + var_slice(self.script)
        )

    def serialize_witness(self) -> bytes:
        return var_slice(self.surjection_proof) + var_slice(self.range_proof)


@dataclass
class Transaction:
    version: int = 2
    inputs: list[TxInput] = field(default_factory=list)
    outputs: list[TxOutput] = field(default_factory=list)
    locktime: int = 0

    def has_witness(self) -> bool:
        return any(inp.has_witness() for inp in self.inputs) or any(
            out.has_witness() for out in self.outputs
        )

    def serialize(self, include_witness: bool = True) -> bytes:
        with_witness = include_witness and self.has_witness()

        result = self.version.to_bytes(4, "little")
        # Elements always writes the flag byte
        result += b"\x01" if with_witness else b"\x00"

        result += encode_varint(len(self.inputs))
        result += b"".join(inp.serialize() for inp in self.inputs)

        result += encode_varint(len(self.outputs))
        result += b"".join(out.serialize() for out in self.outputs)

        result += self.locktime.to_bytes(4, "little")

        if with_witness:
            result += b"".join(inp.serialize_witness() for inp in self.inputs)
            result += b"".join(out.serialize_witness() for out in self.outputs)

        return result

    def to_hex(self) -> str:
        return self.serialize().hex()

    def txid(self) -> str:
        return hash256(self.serialize(include_witness=False))[::-1].hex()


def deserialize_transaction(tx_bytes: bytes) -> Transaction:
    try:
        offset = 0
        version = int.from_bytes(tx_bytes[offset : offset + 4], "little")
        offset += 4

        flag = tx_bytes[offset]
        offset += 1
        if flag not in (0, 1):
            raise TransactionParseError(f"Invalid witness flag {flag}")

        input_count, offset = read_varint(tx_bytes, offset)
        inputs: list[TxInput] = []

        for _ in range(input_count):
            txid_le = tx_bytes[offset : offset + 32]
            offset += 32

            index = int.from_bytes(tx_bytes[offset : offset + 4], "little")
            offset += 4

            is_pegin = False
            if index != NULL_INDEX:
                if index & OUTPOINT_ISSUANCE_FLAG:
                    raise TransactionParseError("Asset issuance inputs are not supported")
                is_pegin = bool(index & OUTPOINT_PEGIN_FLAG)
                index &= OUTPOINT_INDEX_MASK

            script_sig, offset = _read_slice(tx_bytes, offset)

            sequence = int.from_bytes(tx_bytes[offset : offset + 4], "little")
            offset += 4

            inputs.append(TxInput(txid_le, index, script_sig, sequence, is_pegin=is_pegin))

        output_count, offset = read_varint(tx_bytes, offset)
        outputs: list[TxOutput] = []

        for _ in range(output_count):
            asset, offset = _read_confidential(tx_bytes, offset, 33, CONFIDENTIAL_ASSET_PREFIXES)
            value, offset = _read_confidential(tx_bytes, offset, 9, CONFIDENTIAL_VALUE_PREFIXES)
            nonce, offset = _read_confidential(tx_bytes, offset, 33, CONFIDENTIAL_NONCE_PREFIXES)
            script, offset = _read_slice(tx_bytes, offset)

            outputs.append(TxOutput(asset=asset, value=value, script=script, nonce=nonce))

        locktime = int.from_bytes(tx_bytes[offset : offset + 4], "little")
        offset += 4

        if flag == 1:
            for inp in inputs:
                inp.issuance_range_proof, offset = _read_slice(tx_bytes, offset)
                inp.inflation_range_proof, offset = _read_slice(tx_bytes, offset)
                inp.witness, offset = _read_stack(tx_bytes, offset)
                inp.pegin_witness, offset = _read_stack(tx_bytes, offset)
            for out in outputs:
                out.surjection_proof, offset = _read_slice(tx_bytes, offset)
                out.range_proof, offset = _read_slice(tx_bytes, offset)

        if offset != len(tx_bytes):
            raise TransactionParseError(f"{len(tx_bytes) - offset} trailing bytes")

        return Transaction(version, inputs, outputs, locktime)

    except TransactionParseError:
        raise
    except Exception as e:
        raise TransactionParseError(f"Failed to parse transaction: {e}") from e


def compute_sighash_segwit(
    tx: Transaction,
    input_index: int,
    script_code: bytes,
    value: bytes,
    sighash_type: int = SIGHASH_ALL,
) -> bytes:
    """
    Elements segwit v0 signature hash (BIP143 with an extra hashIssuances).

    ``value`` is the spent output's serialized value field (explicit or
    commitment). Only SIGHASH_ALL is supported.
    """
    if sighash_type != SIGHASH_ALL:
        raise TransactionSigningError(f"Unsupported sighash type {sighash_type:#x}")
    if input_index >= len(tx.inputs):
        raise TransactionSigningError("Input index out of range")

    hash_prevouts = hash256(b"".join(inp.outpoint() for inp in tx.inputs))
    hash_sequence = hash256(b"".join(inp.sequence.to_bytes(4, "little") for inp in tx.inputs))
    # One null byte per input without an asset issuance
    hash_issuances = hash256(b"\x00" * len(tx.inputs))
    hash_outputs = hash256(b"".join(out.serialize() for out in tx.outputs))

    target_input = tx.inputs[input_index]

    preimage = (
        tx.version.to_bytes(4, "little")
        + hash_prevouts
        + hash_sequence
        + hash_issuances
        + target_input.outpoint()
        + var_slice(script_code)
        + value
        + target_input.sequence.to_bytes(4, "little")
        + hash_outputs
        + tx.locktime.to_bytes(4, "little")
        + sighash_type.to_bytes(4, "little")
    )

    return hash256(preimage)


def sign_p2wsh_input(
    tx: Transaction,
    input_index: int,
    witness_script: bytes,
    value: bytes,
    key: HDKey,
    sighash_type: int = SIGHASH_ALL,
) -> bytes:
    """Sign a P2WSH (or P2SH-P2WSH) input.

    Args:
        tx: The transaction to sign
        input_index: Index of the input to sign
        witness_script: The witness script, used verbatim as the scriptCode
        value: Serialized value field of the output being spent
        key: HD key holding the private key
        sighash_type: Sighash type (default SIGHASH_ALL = 1)

    Returns:
        DER-encoded signature with sighash type byte appended
    """
    sighash = compute_sighash_segwit(tx, input_index, witness_script, value, sighash_type)
    signature = encode_signature_der(key.sign(sighash))

    if not key.verify(signature, sighash):
        raise TransactionSigningError("Produced signature does not verify")

    return signature + bytes([sighash_type])
