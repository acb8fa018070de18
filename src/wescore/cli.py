"""
WES wallet CLI - create keystores, check balances and send transfers.
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import httpx
import typer
from loguru import logger

from wescore.address import address_to_base58, normalize_address
from wescore.backends.jsonrpc import JsonRpcBackend
from wescore.config import get_settings
from wescore.errors import WesError
from wescore.tx_builder import FeePolicy
from wescore.wallet.keys import Wallet
from wescore.wallet.keystore import Keystore, KeystoreRecord
from wescore.wallet.selection import filter_utxos
from wescore.wallet.service import WalletService

app = typer.Typer(
    name="wes-wallet",
    help="WES wallet management",
    add_completion=False,
)

DEFAULT_KEYSTORE = Path.home() / ".wes" / "keystore.json"


def setup_logging(level: str | None = None) -> None:
    """Configure loguru logging, at WES_LOG_LEVEL unless a level is given."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=(level or get_settings().log_level).upper(),
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
    )


def _load_record(keystore: Path) -> KeystoreRecord:
    if not keystore.exists():
        logger.error(f"Keystore not found: {keystore}")
        raise typer.Exit(1)
    try:
        return KeystoreRecord.load(keystore)
    except ValueError as e:
        logger.error(f"Invalid keystore file {keystore}: {e}")
        raise typer.Exit(1) from e


def _unlock(keystore: Path, password: str | None) -> Wallet:
    record = _load_record(keystore)
    if password is None:
        password = typer.prompt("Keystore password", hide_input=True)
    try:
        return Keystore().recover(record, password)
    except WesError as e:
        logger.error(f"Could not unlock keystore: {e}")
        raise typer.Exit(1) from e


@app.command()
def generate(
    output_file: Path = typer.Option(
        DEFAULT_KEYSTORE, "--output", "-o", help="Keystore file to write"
    ),
    password: str | None = typer.Option(
        None, "--password", envvar="WES_KEYSTORE_PASSWORD", help="Keystore password"
    ),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing keystore"),
    log_level: str | None = typer.Option(None, "--log-level", "-l"),
) -> None:
    """Generate a new key and store it in an encrypted keystore."""
    setup_logging(log_level)

    if output_file.exists() and not force:
        logger.error(f"{output_file} already exists, use --force to overwrite")
        raise typer.Exit(1)
    if password is None:
        password = typer.prompt("Keystore password", hide_input=True, confirmation_prompt=True)

    wallet = Wallet.generate()
    Keystore().create(wallet, password).save(output_file)

    typer.echo(f"Address (hex):    {wallet.address_hex}")
    typer.echo(f"Address (base58): {wallet.address_base58}")
    typer.echo(f"Keystore:         {output_file}")


@app.command()
def info(
    keystore: Path = typer.Option(DEFAULT_KEYSTORE, "--keystore", "-k"),
    log_level: str | None = typer.Option(None, "--log-level", "-l"),
) -> None:
    """Show the address stored in a keystore without unlocking it."""
    setup_logging(log_level)
    record = _load_record(keystore)
    address = normalize_address(record.address)

    typer.echo(f"Address (hex):    0x{address.hex()}")
    typer.echo(f"Address (base58): {address_to_base58(address)}")
    typer.echo(f"Keystore version: {record.version}")


@app.command()
def balance(
    address: str | None = typer.Option(None, "--address", "-a", help="Address to query"),
    keystore: Path = typer.Option(DEFAULT_KEYSTORE, "--keystore", "-k"),
    token_id: str | None = typer.Option(None, "--token", help="Token id, native coin if unset"),
    rpc_url: str | None = typer.Option(None, "--rpc-url", envvar="WES_RPC_URL"),
    log_level: str | None = typer.Option(None, "--log-level", "-l"),
) -> None:
    """Show the balance of an address."""
    setup_logging(log_level)
    if address is None:
        address = _load_record(keystore).address
    try:
        target = normalize_address(address)
    except ValueError as e:
        logger.error(str(e))
        raise typer.Exit(1) from e

    try:
        total = asyncio.run(_query_balance(target, token_id, rpc_url))
    except WesError as e:
        logger.error(str(e))
        raise typer.Exit(1) from e
    except httpx.HTTPError as e:
        logger.error(f"Settlement node request failed: {e}")
        raise typer.Exit(1) from e
    typer.echo(f"Balance: {total} ({token_id or 'native'})")


async def _query_balance(address: bytes, token_id: str | None, rpc_url: str | None) -> int:
    settings = get_settings()
    if rpc_url:
        settings.rpc_url = rpc_url
    backend = JsonRpcBackend.from_settings(settings)
    try:
        utxos = await backend.get_utxos(address_to_base58(address))
    finally:
        await backend.close()

    return sum(u.amount for u in filter_utxos(utxos, token_id))


@app.command()
def send(
    to_address: str = typer.Argument(..., help="Recipient address (hex or base58)"),
    amount: int = typer.Argument(..., help="Amount in base units"),
    keystore: Path = typer.Option(DEFAULT_KEYSTORE, "--keystore", "-k"),
    password: str | None = typer.Option(None, "--password", envvar="WES_KEYSTORE_PASSWORD"),
    token_id: str | None = typer.Option(None, "--token", help="Token id, native coin if unset"),
    rpc_url: str | None = typer.Option(None, "--rpc-url", envvar="WES_RPC_URL"),
    log_level: str | None = typer.Option(None, "--log-level", "-l"),
) -> None:
    """Send a transfer signed with the keystore key."""
    setup_logging(log_level)
    wallet = _unlock(keystore, password)

    try:
        tx_hash = asyncio.run(_send(wallet, to_address, amount, token_id, rpc_url))
    except (WesError, ValueError) as e:
        logger.error(str(e))
        raise typer.Exit(1) from e
    except httpx.HTTPError as e:
        logger.error(f"Settlement node request failed: {e}")
        raise typer.Exit(1) from e

    typer.echo(f"Transaction submitted: {tx_hash}")


async def _send(
    wallet: Wallet, to_address: str, amount: int, token_id: str | None, rpc_url: str | None
) -> str | None:
    settings = get_settings()
    if rpc_url:
        settings.rpc_url = rpc_url
    service = WalletService(
        wallet,
        JsonRpcBackend.from_settings(settings),
        fee_policy=FeePolicy(settings.fee_base, settings.fee_per_input, settings.fee_per_output),
        batch_size=settings.batch_size,
        batch_concurrency=settings.batch_concurrency,
        sighash_type=settings.sighash_type,
    )
    try:
        result = await service.transfer(to_address, amount, token_id)
    finally:
        await service.close()
    return result.tx_hash


def main() -> None:
    app()


if __name__ == "__main__":
    main()
