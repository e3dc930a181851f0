import logging
import secrets
import typing as t
from dataclasses import dataclass, field
from functools import cached_property

from verystable import core
from verystable.core.messages import CTransaction, CTxOut
from verystable.core.script import CScript

from . import bip119, scripts
from .taptree import SpendTree, output_key_to_address

log = logging.getLogger("bitvault.vault")


@dataclass(frozen=True)
class KeyPair:
    secret: bytes = field(repr=False)

    def __post_init__(self):
        if len(self.secret) != 32:
            raise ValueError(f"secret must be 32 bytes, got {len(self.secret)}")
        key = core.key.ECKey()
        key.set(self.secret, compressed=True)
        if not key.is_valid:
            raise ValueError("secret is not a valid secp256k1 private key")

    @classmethod
    def generate(cls) -> "KeyPair":
        while True:
            # Out-of-range secrets are astronomically rare; just draw again.
            try:
                return cls(secrets.token_bytes(32))
            except ValueError:
                continue

    @cached_property
    def pubkey(self) -> bytes:
        """32-byte x-only public key."""
        xonly, _ = core.key.compute_xonly_pubkey(self.secret)
        return xonly


@dataclass(frozen=True)
class Vault:
    """The spending policy of a vaulted coin: recover at any time, or trigger."""

    spend_delay: int
    recovery_key: bytes
    unvault_key: KeyPair
    recovery_script: CScript
    trigger_script: CScript
    tree: SpendTree

    # Only present when the recovery key was generated or derived locally; needed
    # for key-path spends.
    recovery_secret: bytes | None = field(default=None, repr=False, compare=False)

    @classmethod
    def create(cls, spend_delay: int) -> "Vault":
        """Create a vault with freshly generated recovery and unvault keys."""
        recovery = KeyPair.generate()
        return cls.from_keys(
            spend_delay, recovery.pubkey, KeyPair.generate(),
            recovery_secret=recovery.secret)

    @classmethod
    def from_keys(
        cls,
        spend_delay: int,
        recovery_key: bytes,
        unvault_key: KeyPair,
        recovery_secret: bytes | None = None,
    ) -> "Vault":
        recovery_script = scripts.recovery_script(recovery_key)
        trigger_script = scripts.trigger_script(unvault_key.pubkey, spend_delay)
        vault = cls(
            spend_delay=spend_delay,
            recovery_key=recovery_key,
            unvault_key=unvault_key,
            recovery_script=recovery_script,
            trigger_script=trigger_script,
            tree=SpendTree.build(recovery_script, trigger_script, recovery_key),
            recovery_secret=recovery_secret,
        )
        log.debug("constructed vault %s (delay=%d)", vault.address(), spend_delay)
        return vault

    @property
    def vault_script(self) -> CScript:
        return self.tree.scriptPubKey

    @cached_property
    def recovery_spk(self) -> CScript:
        return scripts.recovery_spk(self.recovery_key)

    def address(self, network: str = "regtest") -> str:
        return self.tree.address(network)

    def recovery_address(self, network: str = "regtest") -> str:
        return output_key_to_address(self.recovery_spk[2:], network)


@dataclass(frozen=True)
class VaultTrigger:
    """Where a vault coin goes once the withdrawal process has started."""

    target_hash: bytes
    withdraw_script: CScript
    withdrawal_template: CTransaction = field(repr=False, compare=False)
    tree: SpendTree

    # The owning vault; only used to look up its scripts and keys.
    vault: Vault = field(repr=False, compare=False)

    @classmethod
    def derive(
        cls,
        vault: Vault,
        destinations: t.Sequence[CTxOut] = (),
    ) -> "VaultTrigger":
        template = bip119.withdrawal_template(vault.spend_delay, destinations)
        target_hash = bip119.standard_template_hash(template, 0)
        withdraw_script = scripts.withdraw_script(target_hash, vault.spend_delay)

        trigger = cls(
            target_hash=target_hash,
            withdraw_script=withdraw_script,
            withdrawal_template=template,
            tree=SpendTree.build(
                vault.recovery_script, withdraw_script, vault.recovery_key),
            vault=vault,
        )
        log.debug(
            "derived trigger for vault %s: target hash %s",
            vault.address(), target_hash.hex())
        return trigger

    @property
    def recovery_script(self) -> CScript:
        return self.vault.recovery_script

    @property
    def trigger_output_script(self) -> CScript:
        return self.tree.scriptPubKey

    def address(self, network: str = "regtest") -> str:
        return self.tree.address(network)
