"""
AMP wallet service.

Sequences the login handshake, subaccount provisioning, address and output
lookups, and building and submitting spends.

Key layout (relative to the root key):
- login key: 0x4741b11e
- AMP account key: 84/1'/{subaccount}'
- address keys: 84/1'/{subaccount}'/{subaccount}/{pointer}
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from ampcore.constants import DEFAULT_SUBACCOUNT_ID
from ampcore.models import (
    AddressRecord,
    FundAddressResponse,
    LoginResponse,
    NetworkType,
    SendRawTransactionResponse,
    UnspentOutput,
)
from loguru import logger

from ampwallet.backends.base import AccountAlreadyExists, RemoteSession
from ampwallet.wallet.auth import answer_challenge, challenge_address
from ampwallet.wallet.bip32 import AmpSigner
from ampwallet.wallet.storage import (
    DEFAULT_SEED_FILE,
    generate_mnemonic,
    load_mnemonic,
    mnemonic_to_seed,
    save_mnemonic,
)
from ampwallet.wallet.tx_builder import SpendRequest, build_spend


class AmpWallet:
    """
    AMP wallet bound to one signer, one backend session and one subaccount.

    Every backend operation runs inside ``session_scope``, which connects
    (and logs in) on entry and always disconnects on exit. Scopes nest, so a
    sequence of operations can share one connection.
    """

    def __init__(
        self,
        signer: AmpSigner,
        session: RemoteSession,
        subaccount: int = DEFAULT_SUBACCOUNT_ID,
        min_confirmations: int = 0,
    ):
        self.signer = signer
        self.session = session
        self.subaccount = subaccount
        self.min_confirmations = min_confirmations
        self.login_response: LoginResponse | None = None

        self._scope_depth = 0
        self._authenticated = False

    @property
    def network(self) -> NetworkType:
        return self.signer.network

    @classmethod
    def from_mnemonic(
        cls,
        mnemonic: str,
        session: RemoteSession,
        network: NetworkType | str = NetworkType.TESTNET,
        **kwargs: Any,
    ) -> AmpWallet:
        signer = AmpSigner.from_seed(mnemonic_to_seed(mnemonic), network)
        return cls(signer, session, **kwargs)

    @classmethod
    def create(
        cls,
        session: RemoteSession,
        network: NetworkType | str = NetworkType.TESTNET,
        seed_file: Path = DEFAULT_SEED_FILE,
        **kwargs: Any,
    ) -> AmpWallet:
        """Generate a new recovery phrase, persist it and load the wallet."""
        mnemonic = generate_mnemonic()
        save_mnemonic(mnemonic, seed_file)
        return cls.from_mnemonic(mnemonic, session, network, **kwargs)

    @classmethod
    def from_seed_file(
        cls,
        session: RemoteSession,
        network: NetworkType | str = NetworkType.TESTNET,
        seed_file: Path = DEFAULT_SEED_FILE,
        **kwargs: Any,
    ) -> AmpWallet:
        return cls.from_mnemonic(load_mnemonic(seed_file), session, network, **kwargs)

    @asynccontextmanager
    async def session_scope(self, authenticate: bool = True) -> AsyncIterator[RemoteSession]:
        outermost = self._scope_depth == 0
        if outermost:
            await self.session.connect()

        self._scope_depth += 1
        try:
            if authenticate and not self._authenticated:
                await self._login()
            yield self.session
        finally:
            self._scope_depth -= 1
            if outermost:
                self._authenticated = False
                await self.session.disconnect()

    async def _login(self) -> LoginResponse:
        pubkey = self.signer.get_pubkey()
        address = challenge_address(pubkey, self.signer.network_params)
        challenge = await self.session.get_challenge(address)

        signature = answer_challenge(self.signer, challenge)
        response = await self.session.authenticate(signature)

        self._authenticated = True
        self.login_response = response
        logger.info(f"Logged in as {pubkey.hex()[:16]}...")
        return response

    async def register(self) -> bool:
        """Register the root public key and chain code with the backend."""
        async with self.session_scope(authenticate=False) as session:
            registered = await session.register(
                self.signer.get_pubkey(), self.signer.get_chain_code()
            )
        logger.info(f"Registration {'succeeded' if registered else 'was not accepted'}")
        return registered

    async def login(self) -> LoginResponse:
        async with self.session_scope(authenticate=False):
            return await self._login()

    async def create_amp_subaccount(self) -> str:
        """Create the AMP subaccount; returns its AMP id."""
        account_key = self.signer.account_key(self.subaccount)
        xpub = account_key.neutered_base58()
        account_key.wipe()

        async with self.session_scope() as session:
            amp_id = await session.create_subaccount(self.subaccount, xpub)

        logger.info(f"Created AMP subaccount {self.subaccount}: {amp_id}")
        return amp_id

    async def ensure_amp_subaccount(self) -> str | None:
        """Create the AMP subaccount unless the backend already has it."""
        try:
            return await self.create_amp_subaccount()
        except AccountAlreadyExists:
            logger.info("Subaccount exists, skipping subaccount creation...")
            return None

    async def get_new_address(self) -> FundAddressResponse:
        async with self.session_scope() as session:
            return await session.fund_address(self.subaccount)

    async def list_addresses(self) -> list[AddressRecord]:
        async with self.session_scope() as session:
            return await session.list_addresses(self.subaccount)

    async def get_unspent_outputs(self) -> list[UnspentOutput]:
        async with self.session_scope() as session:
            return await session.get_unspent_outputs(self.min_confirmations, self.subaccount, True)

    async def spend_unconfidential_output(
        self, request: SpendRequest
    ) -> SendRawTransactionResponse:
        """
        Spend an unconfidential output of the subaccount.

        The transaction is built and signed before connecting, so amount
        errors never reach the backend.
        """
        builder = build_spend(request, self.signer, self.signer.network_params, self.subaccount)
        tx_hex = builder.to_hex()

        async with self.session_scope() as session:
            result = await session.send_raw_tx(tx_hex, builder.blinding_nonces())

        builder.mark_submitted()
        logger.info(f"Transaction sent: {result.txhash}")
        return result

    async def create_watch_only(self, username: str, password: str) -> Any:
        async with self.session_scope() as session:
            return await session.create_watch_only(username, password)
