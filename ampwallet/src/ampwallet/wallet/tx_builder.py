"""
Transaction builder for spending unconfidential AMP outputs.

Builds a transaction spending one P2SH-P2WSH 2-of-2 output to:
- the recipient
- an explicit fee output
- change back to the same P2SH script (when non-zero)

The spend goes through COMPOSING -> SIGNED -> FINALIZED -> SUBMITTED; any
failure abandons the whole attempt.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from ampcore.constants import DEFAULT_SUBACCOUNT_ID, SIGHASH_ALL, NetworkParams
from loguru import logger

from ampwallet.wallet.address import (
    address_to_scriptpubkey,
    p2sh_script_sig,
    script_to_p2sh_scriptpubkey,
    script_to_p2wsh_scriptpubkey,
)
from ampwallet.wallet.bip32 import AmpSigner
from ampwallet.wallet.elements import (
    Transaction,
    TxInput,
    TxOutput,
    asset_id_to_bytes,
    satoshi_to_confidential_value,
    sign_p2wsh_input,
)


class TxBuilderError(Exception):
    pass


class InvalidAmount(TxBuilderError):
    pass


class FeeExceedsInput(TxBuilderError):
    pass


class InsufficientFunds(TxBuilderError):
    pass


class TxStateError(TxBuilderError):
    pass


class TxState(str, Enum):
    COMPOSING = "composing"
    SIGNED = "signed"
    FINALIZED = "finalized"
    SUBMITTED = "submitted"


@dataclass
class SpendRequest:
    """An unconfidential output to spend and where to send it."""

    witness_script: bytes
    txid: str
    vout: int
    utxo_value: int
    amount: int
    recipient_address: str
    fee: int

    @property
    def change(self) -> int:
        return self.utxo_value - self.amount - self.fee


@dataclass
class InputMetadata:
    """What the signer needs to know about the output an input spends."""

    witness_utxo: TxOutput
    witness_script: bytes
    redeem_script: bytes
    partial_sigs: dict[bytes, bytes] = field(default_factory=dict)


def check_spend_amounts(utxo_value: int, amount: int, fee: int) -> int:
    """Validate amounts and return the change value (possibly zero)."""
    if fee >= utxo_value:
        raise FeeExceedsInput(
            f"The fee needs to be smaller than the value of the utxo being sent "
            f"({fee} >= {utxo_value})"
        )

    if amount + fee > utxo_value:
        raise InsufficientFunds(
            "The amount needed for the recipient and fees exceeds the value of the utxo "
            f"being sent ({amount} + {fee} > {utxo_value})"
        )

    if amount <= 0:
        raise InvalidAmount(f"Amount must be positive, got {amount}")
    if fee <= 0:
        raise InvalidAmount(f"Fee must be positive, got {fee}")

    return utxo_value - amount - fee


class CovenantTxBuilder:
    """
    Builds, signs and finalizes a single-input AMP spend.

    The transaction is composed in the constructor. Amount checks run before
    any output is created.
    """

    def __init__(
        self,
        request: SpendRequest,
        network: NetworkParams,
        asset_id: str | None = None,
    ):
        self.change = check_spend_amounts(request.utxo_value, request.amount, request.fee)

        self.request = request
        self.network = network
        self.asset = asset_id_to_bytes(asset_id or network.policy_asset)
        self.state = TxState.COMPOSING

        # The 2-of-2 witness program is nested in P2SH
        self.witness_script = request.witness_script
        self.p2wsh_script = script_to_p2wsh_scriptpubkey(self.witness_script)
        self.p2sh_script = script_to_p2sh_scriptpubkey(self.p2wsh_script)

        try:
            txid_le = bytes.fromhex(request.txid)[::-1]
        except ValueError as e:
            raise TxBuilderError(f"Invalid txid: {request.txid}") from e
        if len(txid_le) != 32:
            raise TxBuilderError(f"Invalid txid length: {len(txid_le)}")

        self.tx = Transaction(version=2, locktime=0)
        self.tx.inputs.append(TxInput(txid_le=txid_le, vout=request.vout))

        self._add_output(request.amount, address_to_scriptpubkey(request.recipient_address, network))
        self._add_output(request.fee, b"")
        if self.change > 0:
            self._add_output(self.change, self.p2sh_script)

        total = sum(out.explicit_value or 0 for out in self.tx.outputs)
        if total != request.utxo_value:
            raise TxBuilderError(f"Outputs sum to {total}, input is {request.utxo_value}")

        self.input_metadata = [
            InputMetadata(
                witness_utxo=TxOutput(
                    asset=self.asset,
                    value=satoshi_to_confidential_value(request.utxo_value),
                    script=self.p2wsh_script,
                ),
                witness_script=self.witness_script,
                redeem_script=self.p2wsh_script,
            )
        ]

        logger.debug(
            f"Composed spend of {request.txid}:{request.vout}: "
            f"{request.amount} to recipient, fee {request.fee}, change {self.change}"
        )

    def _add_output(self, value: int, script: bytes) -> None:
        self.tx.outputs.append(
            TxOutput(
                asset=self.asset,
                value=satoshi_to_confidential_value(value),
                script=script,
                nonce=b"",
            )
        )

    def _require_state(self, expected: TxState) -> None:
        if self.state != expected:
            raise TxStateError(f"Transaction is {self.state.value}, expected {expected.value}")

    def sign(self, signer: AmpSigner, subaccount: int = DEFAULT_SUBACCOUNT_ID) -> bytes:
        """Sign input 0 with the subaccount's first address key."""
        self._require_state(TxState.COMPOSING)

        key = signer.spending_key(subaccount)
        try:
            pubkey = key.get_public_key_bytes()
            if pubkey not in self.witness_script:
                logger.warning(
                    f"Spending key {pubkey.hex()} does not appear in the witness script"
                )

            metadata = self.input_metadata[0]
            signature = sign_p2wsh_input(
                self.tx,
                0,
                metadata.witness_script,
                metadata.witness_utxo.value,
                key,
                SIGHASH_ALL,
            )
            metadata.partial_sigs[pubkey] = signature
        finally:
            key.wipe()

        self.state = TxState.SIGNED
        return signature

    def finalize(self) -> Transaction:
        """
        Attach the unlocking data.

        scriptSig is a single push of the P2WSH script, and the witness is
        the signature followed by the witness script.
        """
        self._require_state(TxState.SIGNED)

        for inp, metadata in zip(self.tx.inputs, self.input_metadata):
            (signature,) = metadata.partial_sigs.values()
            inp.script_sig = p2sh_script_sig(metadata.redeem_script)
            inp.witness = [signature, metadata.witness_script]

        self.state = TxState.FINALIZED
        return self.tx

    def to_hex(self) -> str:
        if self.state not in (TxState.FINALIZED, TxState.SUBMITTED):
            raise TxStateError(f"Transaction is {self.state.value}, expected finalized")
        return self.tx.to_hex()

    def blinding_nonces(self) -> list[str]:
        """One empty placeholder per output; values are explicit."""
        return [""] * len(self.tx.outputs)

    def mark_submitted(self) -> None:
        self._require_state(TxState.FINALIZED)
        self.state = TxState.SUBMITTED


def build_spend(
    request: SpendRequest,
    signer: AmpSigner,
    network: NetworkParams,
    subaccount: int = DEFAULT_SUBACCOUNT_ID,
) -> CovenantTxBuilder:
    """Compose, sign and finalize a spend, ready for submission."""
    builder = CovenantTxBuilder(request, network)
    builder.sign(signer, subaccount)
    builder.finalize()
    return builder
