"""
AMP Wallet CLI - Register, provision an AMP subaccount and spend from it.
"""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Annotated, TypeVar

import typer
from ampcore.crypto import CryptoError
from loguru import logger

from ampwallet.backends.base import SessionError
from ampwallet.backends.green import GreenSession
from ampwallet.config import Settings, get_settings
from ampwallet.wallet.address import AddressError
from ampwallet.wallet.bip32 import KeyTreeError
from ampwallet.wallet.service import AmpWallet
from ampwallet.wallet.storage import (
    SeedFileExistsError,
    SeedStorageError,
    generate_mnemonic,
    save_mnemonic,
)
from ampwallet.wallet.tx_builder import SpendRequest, TxBuilderError

T = TypeVar("T")

DEMO_AMOUNT = 10000
DEMO_FEE = 500

app = typer.Typer(
    name="amp-wallet",
    help="AMP Wallet - Green AMP subaccounts on Liquid",
    add_completion=False,
)

NetworkOption = Annotated[
    str | None, typer.Option("--network", "-n", help="mainnet | testnet | regtest")
]
UrlOption = Annotated[str | None, typer.Option("--url", help="Green backend websocket URL")]
SeedFileOption = Annotated[
    Path | None, typer.Option("--seed-file", "-f", help="Path to the recovery phrase file")
]
SubaccountOption = Annotated[
    int | None, typer.Option("--subaccount", "-s", help="AMP subaccount index")
]
LogLevelOption = Annotated[str | None, typer.Option("--log-level", "-l", help="Log level")]


def setup_logging(level: str = "INFO") -> None:
    """Configure loguru logging."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
    )


def load_settings(
    network: str | None = None,
    url: str | None = None,
    seed_file: Path | None = None,
    subaccount: int | None = None,
    log_level: str | None = None,
) -> Settings:
    """Environment settings with command-line overrides applied."""
    overrides = {
        "network": network,
        "url": url,
        "seed_file": seed_file,
        "subaccount": subaccount,
        "log_level": log_level,
    }
    settings = get_settings()
    settings = Settings.model_validate(
        settings.model_dump() | {k: v for k, v in overrides.items() if v is not None}
    )
    setup_logging(settings.log_level)
    return settings


def open_wallet(settings: Settings, create: bool = False) -> AmpWallet:
    """Load the wallet from its seed file, creating the file first if asked."""
    session = GreenSession(settings.get_url(), settings.realm)
    kwargs = {
        "network": settings.network,
        "seed_file": settings.seed_file,
        "subaccount": settings.subaccount,
        "min_confirmations": settings.min_confirmations,
    }
    try:
        if create and not settings.seed_file.exists():
            return AmpWallet.create(session, **kwargs)
        return AmpWallet.from_seed_file(session, **kwargs)
    except (SeedStorageError, KeyTreeError) as e:
        logger.error(str(e))
        raise typer.Exit(1)


def run_wallet_task(task: Callable[[], Awaitable[T]]) -> T:
    """Run a coroutine, turning wallet errors into a non-zero exit."""
    try:
        return asyncio.run(task())
    except (
        SessionError,
        TxBuilderError,
        AddressError,
        KeyTreeError,
        CryptoError,
        SeedStorageError,
    ) as e:
        logger.error(str(e))
        raise typer.Exit(1)


@app.command()
def create(
    seed_file: SeedFileOption = None,
    log_level: LogLevelOption = None,
) -> None:
    """Generate a new recovery phrase and save it (never overwrites)."""
    settings = load_settings(seed_file=seed_file, log_level=log_level)
    try:
        save_mnemonic(generate_mnemonic(), settings.seed_file)
    except SeedFileExistsError as e:
        logger.error(str(e))
        raise typer.Exit(1)


@app.command()
def register(
    network: NetworkOption = None,
    url: UrlOption = None,
    seed_file: SeedFileOption = None,
    log_level: LogLevelOption = None,
) -> None:
    """Register the wallet's root key with the backend."""
    settings = load_settings(network, url, seed_file, log_level=log_level)
    wallet = open_wallet(settings)
    registered = run_wallet_task(wallet.register)
    typer.echo("registered" if registered else "not registered")


@app.command()
def login(
    network: NetworkOption = None,
    url: UrlOption = None,
    seed_file: SeedFileOption = None,
    log_level: LogLevelOption = None,
) -> None:
    """Log in and show the wallet summary."""
    settings = load_settings(network, url, seed_file, log_level=log_level)
    wallet = open_wallet(settings)
    response = run_wallet_task(wallet.login)
    typer.echo(f"Block height: {response.block_height}")
    for sub in response.subaccounts:
        typer.echo(f"Subaccount {sub.pointer}: {sub.name} ({sub.type}) {sub.receiving_id}")


@app.command("create-subaccount")
def create_subaccount(
    network: NetworkOption = None,
    url: UrlOption = None,
    seed_file: SeedFileOption = None,
    subaccount: SubaccountOption = None,
    log_level: LogLevelOption = None,
) -> None:
    """Create the AMP subaccount (skipped if it already exists)."""
    settings = load_settings(network, url, seed_file, subaccount, log_level)
    wallet = open_wallet(settings)
    amp_id = run_wallet_task(wallet.ensure_amp_subaccount)
    if amp_id:
        typer.echo(f"AMP ID: {amp_id}")


@app.command("new-address")
def new_address(
    network: NetworkOption = None,
    url: UrlOption = None,
    seed_file: SeedFileOption = None,
    subaccount: SubaccountOption = None,
    log_level: LogLevelOption = None,
) -> None:
    """Request a new receiving address."""
    settings = load_settings(network, url, seed_file, subaccount, log_level)
    wallet = open_wallet(settings)
    response = run_wallet_task(wallet.get_new_address)
    typer.echo(f"{response.address or response.script} (pointer {response.pointer})")


@app.command()
def addresses(
    network: NetworkOption = None,
    url: UrlOption = None,
    seed_file: SeedFileOption = None,
    subaccount: SubaccountOption = None,
    log_level: LogLevelOption = None,
) -> None:
    """List the subaccount's addresses."""
    settings = load_settings(network, url, seed_file, subaccount, log_level)
    wallet = open_wallet(settings)
    for record in run_wallet_task(wallet.list_addresses):
        typer.echo(f"{record.pointer:>4}  {record.ad}  txs={record.num_tx}  script={record.script}")


@app.command()
def utxos(
    network: NetworkOption = None,
    url: UrlOption = None,
    seed_file: SeedFileOption = None,
    subaccount: SubaccountOption = None,
    log_level: LogLevelOption = None,
) -> None:
    """List the subaccount's unspent outputs."""
    settings = load_settings(network, url, seed_file, subaccount, log_level)
    wallet = open_wallet(settings)
    for utxo in run_wallet_task(wallet.get_unspent_outputs):
        typer.echo(f"{utxo.txhash}:{utxo.pt_idx}  {utxo.value} sats  height={utxo.block_height}")


@app.command()
def send(
    txid: Annotated[str, typer.Option("--txid", help="Transaction id of the output to spend")],
    vout: Annotated[int, typer.Option("--vout", help="Output index")],
    value: Annotated[int, typer.Option("--value", help="Value of the output in sats")],
    witness_script: Annotated[
        str, typer.Option("--witness-script", help="Hex witness script of the address")
    ],
    amount: Annotated[int, typer.Option("--amount", "-a", help="Amount to send in sats")],
    recipient: Annotated[str, typer.Option("--recipient", "-r", help="Recipient address")],
    fee: Annotated[int, typer.Option("--fee", help="Fee in sats")] = DEMO_FEE,
    network: NetworkOption = None,
    url: UrlOption = None,
    seed_file: SeedFileOption = None,
    subaccount: SubaccountOption = None,
    log_level: LogLevelOption = None,
) -> None:
    """Spend an unconfidential output of the AMP subaccount."""
    settings = load_settings(network, url, seed_file, subaccount, log_level)
    try:
        script = bytes.fromhex(witness_script)
    except ValueError:
        logger.error("Witness script must be hex")
        raise typer.Exit(1)

    request = SpendRequest(
        witness_script=script,
        txid=txid,
        vout=vout,
        utxo_value=value,
        amount=amount,
        recipient_address=recipient,
        fee=fee,
    )
    wallet = open_wallet(settings)
    result = run_wallet_task(lambda: wallet.spend_unconfidential_output(request))
    typer.echo(result.txhash)


@app.command()
def run(
    network: NetworkOption = None,
    url: UrlOption = None,
    seed_file: SeedFileOption = None,
    subaccount: SubaccountOption = None,
    log_level: LogLevelOption = None,
) -> None:
    """
    End-to-end flow: create or load the wallet, register, log in, provision the
    AMP subaccount, wait for funding and spend the first output.
    """
    settings = load_settings(network, url, seed_file, subaccount, log_level)
    wallet = open_wallet(settings, create=True)

    async def provision() -> str:
        await wallet.register()
        async with wallet.session_scope():
            await wallet.ensure_amp_subaccount()
            records = await wallet.list_addresses()
        if not records:
            raise SessionError("Backend returned no addresses for the subaccount")
        return records[-1].ad

    funding_address = run_wallet_task(provision)
    typer.echo(
        "Send testnet L-BTC to the following address "
        f"(use liquidtestnet.com for faucet):\n{funding_address}"
    )
    typer.prompt(
        "Press enter once your transaction is confirmed...", default="", show_default=False
    )

    async def spend() -> str:
        async with wallet.session_scope():
            records = await wallet.list_addresses()
            if not records:
                raise SessionError("Backend returned no addresses for the subaccount")
            outputs = await wallet.get_unspent_outputs()
            if not outputs:
                raise SessionError("No unspent outputs found for the subaccount")

            oldest = records[-1]
            request = SpendRequest(
                witness_script=bytes.fromhex(oldest.script),
                txid=outputs[0].txhash,
                vout=outputs[0].pt_idx,
                utxo_value=outputs[0].value,
                amount=DEMO_AMOUNT,
                recipient_address=records[0].ad,
                fee=DEMO_FEE,
            )
            result = await wallet.spend_unconfidential_output(request)
        return result.model_dump_json()

    typer.echo(f"Transaction sent successfully: {run_wallet_task(spend)}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
