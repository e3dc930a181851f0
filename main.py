#!/usr/bin/env python3
import os
import sys
import typing as t
from contextlib import contextmanager
from pathlib import Path

from clii import App
from rich import print
from verystable.rpc import BitcoinRPC

import logging

from bitvault.config import BitvaultConfig, rpc_url
from bitvault.errors import BitvaultError, StoreError
from bitvault.ledger import Ledger
from bitvault.store import VaultStore
from bitvault.transactions import build_recovery, sign_trigger
from bitvault.vault import Vault

loglevel = "DEBUG" if os.environ.get("DEBUG") else "INFO"
log = logging.getLogger("bitvault")
logging.basicConfig(filename="bitvault.log", level=loglevel)

cli = App(description="Create and operate OP_VAULT vaults.")
cli.add_arg("--config", "-c", default="./config.json", help="path to config.json")


@contextmanager
def _exit_on_error() -> t.Iterator[None]:
    try:
        yield
    except BitvaultError as e:
        log.exception("command failed")
        print(f"[red bold]!![/] {e}")
        sys.exit(1)


def load_config() -> BitvaultConfig:
    cfg_file = Path(cli.args.config)
    if not cfg_file.exists():
        print("call ./createconfig.py")
        sys.exit(1)
    return BitvaultConfig.load(cfg_file)


def get_ledger(config: BitvaultConfig) -> Ledger:
    return Ledger(BitcoinRPC(net_name=config.network, service_url=rpc_url()))


def load_vault(config: BitvaultConfig, store: VaultStore, name: str) -> Vault:
    """Rebuild the named vault from the seed and check it against the store."""
    if not (rec := store.get(name)):
        raise StoreError(f"no vault named '{name}'")

    vault = config.vault_for_label(config.load_seed(), name)
    if (addr := vault.address(config.network)) != rec.address:
        raise StoreError(
            f"vault '{name}' derives to {addr}, but {rec.address} is on record "
            "- wrong seed or spend delay?")
    return vault


@cli.cmd
def create_vault(name: str, skip_import: bool = False):
    """Create a new vault and remember its address under `name`."""
    with _exit_on_error():
        config = load_config()
        store = VaultStore.open(config.vault_db_path)
        vault = config.vault_for_label(config.load_seed(), name)
        address = vault.address(config.network)

        if store.get(name):
            raise StoreError(f"a vault named '{name}' already exists")

        # Only record the vault once the node is watching it.
        if not skip_import:
            get_ledger(config).import_address(address)

        store.insert(name, address)
        log.info("created vault %s at %s", name, address)

        print(f"[green bold]$$[/] New vault address: {address}")


@cli.cmd
def list_vault():
    """List every vault that has been created."""
    with _exit_on_error():
        config = load_config()
        records = VaultStore.open(config.vault_db_path).read_all()

        print(f"Found {len(records)} results")
        for rec in records:
            print(f"{rec.label}: {rec.address}")


@cli.cmd
def trigger(name: str, dry_run: bool = False):
    """Start the withdrawal process for every coin in the vault `name`."""
    with _exit_on_error():
        config = load_config()
        store = VaultStore.open(config.vault_db_path)
        vault = load_vault(config, store, name)
        ledger = get_ledger(config)

        utxos = ledger.list_unspent(vault.address(config.network))
        if not utxos:
            print(f"no coins found in vault {name}")
            sys.exit(1)

        for utxo in utxos:
            spend = sign_trigger(vault, utxo.outpoint, utxo.value_sats)
            if dry_run:
                print(spend.tohex())
                continue

            txid = ledger.broadcast(spend.tohex())
            print(
                f"[bold]<-[/] triggered {utxo.outpoint_str} ({utxo.value_sats} sats) "
                f"(txid={txid}), withdrawable in {vault.spend_delay} blocks")


@cli.cmd
def recover(name: str, dry_run: bool = False):
    """Sweep every coin in the vault `name` to its recovery address."""
    with _exit_on_error():
        config = load_config()
        store = VaultStore.open(config.vault_db_path)
        vault = load_vault(config, store, name)
        ledger = get_ledger(config)

        utxos = ledger.list_unspent(vault.address(config.network))
        if not utxos:
            print(f"no coins found in vault {name}")
            sys.exit(1)

        print("\nRecovering...")
        for u in utxos:
            print(f"  - {u.outpoint_str} ({u.value_sats} sats)")

        spend = build_recovery(vault, [(u.outpoint, u.value_sats) for u in utxos])
        if dry_run:
            print(spend.tohex())
            return

        txid = ledger.broadcast(spend.tohex())
        print(
            f"recovery txn ({txid}) to {vault.recovery_address(config.network)} "
            "now in mempool - mine some blocks")


if __name__ == "__main__":
    cli.run()
