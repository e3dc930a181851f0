import hashlib
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path, PosixPath

from bip32 import BIP32
from verystable.serialization import VSJson

from .errors import StoreError
from .vault import KeyPair, Vault

log = logging.getLogger("bitvault.config")

# Override this if you're not running with docker-compose.
DEFAULT_RPC_URL = "http://bitcoin:18443"

RECOVERY_PATH_PREFIX = "m/0h"
UNVAULT_PATH_PREFIX = "m/1h"


def rpc_url() -> str:
    return os.environ.get("BITCOIN_RPC_URL", DEFAULT_RPC_URL)


def label_to_index(label: str) -> int:
    """Map a vault label onto a hardened BIP-32 child index."""
    digest = hashlib.sha256(label.encode()).digest()
    return int.from_bytes(digest[:4], "big") & 0x7fffffff


@dataclass
class BitvaultConfig:
    """
    Static, non-secret configuration shared by all vaults created by this wallet.
    """
    spend_delay: int = 10
    network: str = "regtest"
    vault_db_path: Path = Path("./vaults.json")
    secrets_filepath: Path = Path("./secrets.json")

    def __post_init__(self) -> None:
        if not 0 < self.spend_delay <= 0xffff:
            raise ValueError(f"spend delay out of range: {self.spend_delay}")

    @property
    def id(self) -> str:
        """A string that uniquely IDs this configuration within secrets.json."""
        return f"{self.network}-{self.spend_delay}"

    def save(self, filepath: Path) -> None:
        filepath.write_text(VSJson.dumps(self, indent=2))
        log.info("saved config to %s", filepath)

    @classmethod
    def load(cls, filepath: Path) -> "BitvaultConfig":
        obj = VSJson.loads(filepath.read_text())
        if not isinstance(obj, cls):
            raise StoreError(f"{filepath} does not contain a bitvault config")
        return obj

    def load_seed(self) -> bytes:
        try:
            secdict = json.loads(self.secrets_filepath.read_text())[self.id]
            return bytes.fromhex(secdict["seed"])
        except (OSError, KeyError, ValueError) as e:
            raise StoreError(
                f"unable to find secrets for config {self.id} in "
                f"{self.secrets_filepath}") from e

    def vault_for_label(self, seed: bytes, label: str) -> Vault:
        """
        Re-derive the keys for the vault called `label` and rebuild it. Signing
        material is never persisted, only the seed it derives from.
        """
        b32 = BIP32.from_seed(seed)
        idx = label_to_index(label)
        recovery = KeyPair(b32.get_privkey_from_path(f"{RECOVERY_PATH_PREFIX}/{idx}h"))
        unvault = KeyPair(b32.get_privkey_from_path(f"{UNVAULT_PATH_PREFIX}/{idx}h"))

        return Vault.from_keys(
            self.spend_delay, recovery.pubkey, unvault,
            recovery_secret=recovery.secret)


# Wire up JSON serialization for the classes above.
VSJson.add_allowed_classes(BitvaultConfig, Path, PosixPath)
