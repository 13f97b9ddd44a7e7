"""
Base remote session interface for the Green backend.

Implementations provide the transport (connect, disconnect, call); the named
backend operations are built on top of ``call`` here.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from ampcore.constants import (
    ACTION_PREFIX,
    AMP_SUBACCOUNT_NAME,
    AMP_SUBACCOUNT_TYPE,
    USER_AGENT,
)
from ampcore.crypto import gait_path_bytes
from ampcore.models import (
    AddressRecord,
    FundAddressResponse,
    LoginResponse,
    SendRawTransactionResponse,
    UnspentOutput,
)


class SessionError(Exception):
    pass


class TransportError(SessionError):
    """The connection failed or dropped."""


class LoginRejected(SessionError):
    pass


class RemoteCallError(SessionError):
    """
    The backend answered a call with an error.

    ``benign`` marks outcomes a caller may safely ignore.
    """

    benign = False

    def __init__(
        self,
        procedure: str,
        error: str,
        error_args: list[Any] | None = None,
        error_kwargs: dict[str, Any] | None = None,
    ):
        self.procedure = procedure
        self.error = error
        self.error_args = list(error_args or [])
        self.error_kwargs = dict(error_kwargs or {})
        detail = ", ".join(str(a) for a in self.error_args)
        super().__init__(f"{procedure} failed: {error}" + (f" ({detail})" if detail else ""))

    def mentions(self, text: str) -> bool:
        return any(text in str(arg) for arg in self.error_args) or text in self.error


class AccountAlreadyExists(RemoteCallError):
    benign = True


class NotAuthorized(RemoteCallError):
    pass


def classify_remote_error(
    procedure: str,
    error: str,
    error_args: list[Any] | None = None,
    error_kwargs: dict[str, Any] | None = None,
) -> RemoteCallError:
    """Pick the most specific RemoteCallError for a backend error."""
    exc = RemoteCallError(procedure, error, error_args, error_kwargs)
    if exc.mentions("Subaccount already exists"):
        return AccountAlreadyExists(procedure, error, error_args, error_kwargs)
    if error.endswith("#notauthorized"):
        return NotAuthorized(procedure, error, error_args, error_kwargs)
    return exc


def procedure(name: str) -> str:
    return f"{ACTION_PREFIX}.{name}"


class RemoteSession(ABC):
    """
    Remote session with a Green backend.

    Calls are issued one at a time; there is no timeout or retry policy.
    """

    @abstractmethod
    async def connect(self) -> None:
        """Open the connection and join the realm"""

    @abstractmethod
    async def disconnect(self) -> None:
        """Leave the realm and close the connection"""

    @abstractmethod
    def is_connected(self) -> bool:
        """True while calls can be issued"""

    @abstractmethod
    async def call(self, name: str, args: list[Any] | None = None) -> Any:
        """Invoke a remote procedure by its full name"""

    async def __aenter__(self) -> RemoteSession:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.disconnect()

    async def get_challenge(self, address: str) -> str:
        challenge = await self.call(procedure("login.get_trezor_challenge"), [address, True])
        return str(challenge)

    async def authenticate(self, der_signature: bytes) -> LoginResponse:
        result = await self.call(
            procedure("login.authenticate"),
            [der_signature.hex(), True, "GA", "", USER_AGENT],
        )
        if not result:
            raise LoginRejected("Backend rejected the login signature")
        if isinstance(result, dict):
            return LoginResponse.model_validate(result)
        return LoginResponse()

    async def register(self, master_pubkey: bytes, chain_code: bytes) -> bool:
        gait_path = gait_path_bytes(chain_code, master_pubkey).hex()
        result = await self.call(
            procedure("login.register"),
            [master_pubkey.hex(), chain_code.hex(), USER_AGENT, gait_path],
        )
        return bool(result)

    async def create_subaccount(self, index: int, xpub: str) -> str:
        """Create an AMP subaccount; returns its receiving (AMP) id."""
        result = await self.call(
            procedure("txs.create_subaccount_v2"),
            [index, AMP_SUBACCOUNT_NAME, AMP_SUBACCOUNT_TYPE, [xpub]],
        )
        return str(result)

    async def fund_address(
        self, subaccount: int, return_pointer: bool = True, addr_type: str = "p2wsh"
    ) -> FundAddressResponse:
        result = await self.call(procedure("vault.fund"), [subaccount, return_pointer, addr_type])
        if isinstance(result, str):
            return FundAddressResponse(script=result)
        return FundAddressResponse.model_validate(result)

    async def get_unspent_outputs(
        self, min_confirmations: int, subaccount: int, all_coins: bool = True
    ) -> list[UnspentOutput]:
        result = await self.call(
            procedure("txs.get_all_unspent_outputs"),
            [min_confirmations, subaccount, "any", all_coins],
        )
        return [UnspentOutput.model_validate(item) for item in result or []]

    async def list_addresses(self, subaccount: int) -> list[AddressRecord]:
        result = await self.call(procedure("addressbook.get_my_addresses"), [subaccount, None])
        return [AddressRecord.model_validate(item) for item in result or []]

    async def send_raw_tx(
        self, tx_hex: str, blinding_nonces: list[str]
    ) -> SendRawTransactionResponse:
        result = await self.call(
            procedure("vault.send_raw_tx"),
            [tx_hex, None, {"blinding_nonces": blinding_nonces}],
        )
        return SendRawTransactionResponse.model_validate(result)

    async def sign_raw_tx(self, tx_hex: str, blinding_nonces: list[str]) -> dict[str, Any]:
        """Ask the backend to co-sign without broadcasting."""
        result = await self.call(
            procedure("vault.sign_raw_tx"),
            [tx_hex, None, {"blinding_nonces": blinding_nonces}],
        )
        return dict(result or {})

    async def create_watch_only(self, username: str, password: str) -> Any:
        # Credentials are hashed by the backend; no local blob key is used
        return await self.call(procedure("addressbook.sync_custom"), [username, password, ""])

    async def get_watch_only_username(self) -> Any:
        return await self.call(procedure("addressbook.get_sync_status"), [])
