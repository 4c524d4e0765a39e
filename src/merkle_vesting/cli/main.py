#!/usr/bin/env python3
"""
Merkle Vesting CLI - distributor tooling

Commands:
- leaf: print the leaf hash of one allocation
- build-tree: build a Merkle tree from an allocation file and emit root + proofs
- verify-proof: check a proof against a root before submitting a claim
- show-ledger: inspect a persisted ledger snapshot
"""

from __future__ import annotations

import csv
import json
import logging
import sys
from pathlib import Path
from typing import Any

import click
from rich import box
from rich.console import Console
from rich.table import Table

from ..blockchain.merkle import MerkleTree, hash_leaf, verify
from ..core.config import ConfigurationError, get_config
from ..core.exceptions import StorageError, VestingError, get_error_context
from ..core.logging_config import setup_logging
from ..database.storage_manager import StorageManager

logger = logging.getLogger(__name__)
console = Console()


def _handle_cli_error(exc: Exception, exit_code: int = 1) -> None:
    """Centralized CLI error handler for consistent messaging/exit codes."""
    logger.error("CLI error: %s", exc, extra=get_error_context(exc), exc_info=True)
    console.print(f"[bold red]Error:[/] {exc}")
    sys.exit(exit_code)


def _parse_amount(raw: Any) -> int:
    try:
        return int(str(raw).strip())
    except ValueError:
        raise click.ClickException(f"Invalid amount: {raw!r}")


def load_allocations(path: Path) -> list[tuple[str, int]]:
    """
    Read allocations from a JSON or CSV file.

    JSON: a list of {"address": ..., "amount": ...} objects.
    CSV: "address,amount" rows, with an optional header row.
    """
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".json":
        try:
            entries = json.loads(text)
        except json.JSONDecodeError as exc:
            raise click.ClickException(f"Invalid JSON in {path}: {exc}")
        if not isinstance(entries, list):
            raise click.ClickException("Allocation JSON must be a list of objects")
        try:
            return [(entry["address"], _parse_amount(entry["amount"])) for entry in entries]
        except (KeyError, TypeError):
            raise click.ClickException("Each allocation needs 'address' and 'amount'")

    allocations = []
    for row in csv.reader(text.splitlines()):
        if not row or not row[0].strip():
            continue
        if row[0].strip().lower() == "address":
            continue
        if len(row) < 2:
            raise click.ClickException(f"Malformed CSV row: {row}")
        allocations.append((row[0].strip(), _parse_amount(row[1])))
    return allocations


def load_proof(path: Path, address: str, amount: int) -> list[str]:
    """Look up the proof for (address, amount) in a build-tree output file."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise click.ClickException(f"Invalid JSON in {path}: {exc}")
    if not isinstance(data, dict) or not isinstance(data.get("claims", []), list):
        raise click.ClickException(f"{path} is not build-tree output")

    try:
        for entry in data.get("claims", []):
            if (
                str(entry["address"]).lower() == address.lower()
                and int(entry["amount"]) == amount
            ):
                return list(entry["proof"])
    except (KeyError, TypeError, ValueError):
        raise click.ClickException("Each claim needs 'address', 'amount' and 'proof'")
    raise click.ClickException(f"No proof for {address} / {amount} in {path}")


@click.group()
@click.option("--json-output", is_flag=True, help="Output raw JSON")
@click.option(
    "--network",
    type=click.Choice(["testnet", "mainnet"]),
    envvar="MERKLE_VESTING_NETWORK",
    default="testnet",
    show_default=True,
)
@click.option("--log-level", default=None, help="Override the configured log level")
@click.pass_context
def cli(ctx: click.Context, json_output: bool, network: str, log_level: str | None):
    """Merkle vesting distributor tooling."""
    ctx.ensure_object(dict)
    try:
        config = get_config(network)
    except ConfigurationError as exc:
        raise click.ClickException(str(exc))
    setup_logging(
        name="merkle_vesting",
        log_file=config.LOG_FILE,
        level=log_level or config.LOG_LEVEL,
        environment=config.LOG_ENVIRONMENT,
        enable_console=False,
    )
    ctx.obj["config"] = config
    ctx.obj["json_output"] = json_output


@cli.command("leaf")
@click.argument("address")
@click.argument("amount", type=str)
def leaf_command(address: str, amount: str):
    """Print the leaf hash for ADDRESS receiving AMOUNT."""
    try:
        click.echo("0x" + hash_leaf(address, _parse_amount(amount)).hex())
    except VestingError as exc:
        _handle_cli_error(exc)


@cli.command("build-tree")
@click.argument("allocations", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Write root and proofs to this JSON file",
)
@click.pass_context
def build_tree(ctx: click.Context, allocations: Path, output: Path | None):
    """
    Build a Merkle tree from an ALLOCATIONS file (JSON or CSV).

    Example:
        merkle-vesting build-tree phase0.csv -o phase0-proofs.json
    """
    try:
        tree = MerkleTree(load_allocations(allocations))
    except (VestingError, ValueError) as exc:
        _handle_cli_error(exc)
        return

    data = tree.to_dict()
    if output:
        output.write_text(json.dumps(data, indent=2), encoding="utf-8")
        logger.info("Wrote %d proofs to %s", len(tree.allocations), output)

    if ctx.obj.get("json_output"):
        click.echo(json.dumps(data, indent=2))
        return

    console.print(f"[bold green]Root:[/] {data['root']}")
    console.print(f"Allocations: {len(tree.allocations)}  Depth: {len(tree.tree) - 1}")
    if output:
        console.print(f"Proofs written to [cyan]{output}[/]")


@cli.command("verify-proof")
@click.argument("address")
@click.argument("amount", type=str)
@click.option("--root", required=True, help="Committed Merkle root (0x-hex)")
@click.option("--proof", "proof", multiple=True, help="Sibling hash, repeat in leaf-to-root order")
@click.option(
    "--proof-file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="build-tree output to take the proof from",
)
@click.pass_context
def verify_proof(
    ctx: click.Context,
    address: str,
    amount: str,
    root: str,
    proof: tuple[str, ...],
    proof_file: Path | None,
):
    """Check that ADDRESS may claim AMOUNT under ROOT."""
    parsed_amount = _parse_amount(amount)
    siblings = list(proof)
    if proof_file:
        siblings = load_proof(proof_file, address, parsed_amount)

    try:
        valid = verify(address, parsed_amount, siblings, root)
    except VestingError as exc:
        _handle_cli_error(exc)
        return

    if ctx.obj.get("json_output"):
        click.echo(json.dumps({"address": address, "amount": str(parsed_amount), "valid": valid}))
    elif valid:
        console.print("[bold green]Proof is valid[/]")
    else:
        console.print("[bold red]Proof is invalid[/]")
    if not valid:
        sys.exit(2)


@cli.command("show-ledger")
@click.option(
    "--db",
    type=click.Path(dir_okay=False, path_type=Path),
    help="SQLite state database (defaults to the configured path)",
)
@click.option("--key", default=None, help="Storage key of the snapshot")
@click.pass_context
def show_ledger(ctx: click.Context, db: Path | None, key: str | None):
    """Show the vestings and claim counts of a persisted ledger."""
    config = ctx.obj["config"]
    db_path = db or Path(config.STATE_DB_PATH)
    if not db_path.exists():
        raise click.ClickException(f"State database not found: {db_path}")

    try:
        with StorageManager(db_path) as storage:
            data = storage.get(key or config.STATE_KEY)
    except StorageError as exc:
        _handle_cli_error(exc)
        return
    if data is None:
        raise click.ClickException("No ledger snapshot stored")

    if ctx.obj.get("json_output"):
        click.echo(json.dumps(data, indent=2))
        return

    claims_per_vesting: dict[int, int] = {}
    for indices in data.get("claimed", {}).values():
        for index in indices:
            claims_per_vesting[index] = claims_per_vesting.get(index, 0) + 1

    table = Table(title=f"Ledger {data['address']}", box=box.ROUNDED)
    table.add_column("#", justify="right")
    table.add_column("Root")
    table.add_column("Start")
    table.add_column("Balance / Total", justify="right")
    table.add_column("Paused")
    table.add_column("Claims", justify="right")
    for index, vesting in enumerate(data["vestings"]):
        table.add_row(
            str(index),
            vesting["merkle_root"][:18] + "...",
            str(vesting["start_time"]),
            f"{vesting['balance']} / {vesting['total_reward']}",
            "yes" if vesting["paused"] else "no",
            str(claims_per_vesting.get(index, 0)),
        )
    console.print(table)
    console.print(f"Owner: {data['owner']}")


def main():
    """Main CLI entry point"""
    try:
        cli(obj={})
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user[/]")
        sys.exit(130)


if __name__ == "__main__":
    main()
