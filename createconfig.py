#!/usr/bin/env python3
import json
import secrets
import sys
from pathlib import Path

from clii import App
from rich import print

from bitvault.config import BitvaultConfig
from bitvault.taptree import NETWORK_HRPS

cli = App('createconfig', description="Write config.json and the seed for bitvault.")


def store_seed(secrets_path: Path, config_id: str, seed: bytes) -> None:
    """Add `seed` under `config_id`, keeping seeds for other configs intact."""
    secd = json.loads(secrets_path.read_text()) if secrets_path.exists() else {}
    if config_id in secd:
        print(f"[yellow]replacing the existing seed for {config_id}[/]")
    secd[config_id] = {'seed': seed.hex()}
    secrets_path.write_text(json.dumps(secd, indent=2))


@cli.main
def main(
    spend_delay: int = 10,
    network: str = 'regtest',
    filepath: str = './config.json',
    secretspath: str = './secrets.json',
    vaultdbpath: str = './vaults.json',
    seed_hex: str = '',
) -> None:
    """
    Create the configuration that every vault of this wallet shares.

    All vault keys are derived from one seed, which lands in `secretspath`
    (sensitive). `filepath` only holds the spend delay, network and paths.
    """
    if network not in NETWORK_HRPS:
        print(f"[red]unknown network {network}; pick one of {', '.join(NETWORK_HRPS)}[/]")
        sys.exit(1)

    cfg_path = Path(filepath)
    if cfg_path.exists() and input(f"{filepath} exists - overwrite? [yn] ") != 'y':
        sys.exit(1)

    if seed_hex:
        seed = bytes.fromhex(seed_hex)
    else:
        # Fine for regtest; not a key ceremony.
        seed = secrets.token_bytes(32)
        print("[yellow]!![/] generated a fresh seed; don't put real money behind it")

    config = BitvaultConfig(
        spend_delay=spend_delay,
        network=network,
        vault_db_path=Path(vaultdbpath),
        secrets_filepath=Path(secretspath),
    )
    config.save(cfg_path)
    store_seed(config.secrets_filepath, config.id, seed)

    print(f"[green]wrote {cfg_path} and the seed for {config.id} to {secretspath}[/]")


if __name__ == "__main__":
    cli.run()
