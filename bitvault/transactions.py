r"""
Construction of the transactions that move a vault coin along its lifecycle:

    vault --trigger--> trigger output --(spend delay)--> withdrawal template
      \                    \
       `----recover---------`---> recovery destination
"""
import logging
import typing as t

from verystable.core.messages import COutPoint, CTransaction, CTxIn, CTxOut
from verystable.core.script import CScript, SIGHASH_DEFAULT, bn2vch
from verystable.wallet import Outpoint, txid_to_int

from . import bip119
from .errors import SighashError
from .signer import FinalizedSpend, UnsignedSpend, with_witness
from .taptree import SpendTree
from .vault import Vault, VaultTrigger

log = logging.getLogger("bitvault.transactions")

# Marks "nothing revaulted" in the trigger witness.
NO_REVAULT = bn2vch(0)


def _coutpoint(outpoint: Outpoint) -> COutPoint:
    return COutPoint(txid_to_int(outpoint.txid), outpoint.n)


def vout_selector(idx: int) -> bytes:
    return CScript([idx]) if idx != 0 else b""


def revault_indicator(revault_vout_idx: int | None) -> bytes:
    return NO_REVAULT if revault_vout_idx is None else bn2vch(revault_vout_idx)


def build_trigger_spend(
    vault: Vault,
    vault_outpoint: Outpoint,
    amount_sats: int,
    trigger: VaultTrigger | None = None,
    revault_sats: int = 0,
    hash_type: int = SIGHASH_DEFAULT,
) -> UnsignedSpend:
    """
    Build the unsigned transaction moving the vault coin at `vault_outpoint` into
    the trigger output. If `revault_sats` is nonzero, that amount is paid back to
    the vault in a second output.

    The trigger is signed with `hash_type`, SIGHASH_DEFAULT unless told
    otherwise; pass SIGHASH_ALL to match signers that always append the type byte.
    """
    trigger = trigger or VaultTrigger.derive(vault)
    if not 0 <= revault_sats < amount_sats:
        raise SighashError(
            f"revault amount {revault_sats} must be below the vault amount {amount_sats}")

    tx = CTransaction()
    tx.version = 2
    tx.nLockTime = 0
    tx.vin = [CTxIn(_coutpoint(vault_outpoint), nSequence=vault.spend_delay)]
    tx.vout = [CTxOut(amount_sats - revault_sats, trigger.trigger_output_script)]
    trigger_vout_idx = 0
    revault_vout_idx = None

    if revault_sats:
        tx.vout.append(CTxOut(revault_sats, vault.vault_script))
        revault_vout_idx = len(tx.vout) - 1

    return UnsignedSpend(
        tx,
        CTxOut(amount_sats, vault.vault_script),
        leaf_script=vault.trigger_script,
        control_block=vault.tree.control_block(vault.trigger_script),
        witness_prefix=(
            revault_indicator(revault_vout_idx),
            vout_selector(trigger_vout_idx),
        ),
        hash_type=hash_type,
    )


def sign_trigger(
    vault: Vault,
    vault_outpoint: Outpoint,
    amount_sats: int,
    trigger: VaultTrigger | None = None,
    revault_sats: int = 0,
) -> FinalizedSpend:
    """Build, sign and finalize a trigger spend with the vault's unvault key."""
    unsigned = build_trigger_spend(
        vault, vault_outpoint, amount_sats, trigger, revault_sats=revault_sats)
    final = unsigned.sighash().sign(vault.unvault_key.secret).finalize()
    log.info(
        "signed trigger %s spending vault coin %s (%d sats)",
        final.txid, vault_outpoint, amount_sats)
    return final


def build_withdrawal(
    trigger: VaultTrigger,
    trigger_outpoint: Outpoint,
    amount_sats: int,
) -> FinalizedSpend:
    """
    Spend a matured trigger output into the withdrawal template it commits to.
    No signature is involved; the template hash is the authorization.
    """
    tx = CTransaction(trigger.withdrawal_template)
    tx.vin[0].prevout = _coutpoint(trigger_outpoint)

    # Prevouts aren't part of the template hash, so this must still match.
    assert bip119.standard_template_hash(tx, 0) == trigger.target_hash

    return FinalizedSpend(
        with_witness(tx, [[
            trigger.withdraw_script,
            trigger.tree.control_block(trigger.withdraw_script),
        ]]),
        [CTxOut(amount_sats, trigger.trigger_output_script)],
    )


def build_recovery(
    source: Vault | VaultTrigger,
    outpoints: t.Sequence[tuple[Outpoint, int]],
) -> FinalizedSpend:
    """
    Sweep vault or trigger coins (each given as `(outpoint, amount_sats)`) to the
    recovery destination using the recovery leaf.
    """
    if not outpoints:
        raise SighashError("nothing to recover")

    vault = source if isinstance(source, Vault) else source.vault
    tree: SpendTree = source.tree
    recov_vout_idx = 0

    tx = CTransaction()
    tx.version = 2
    tx.vin = [CTxIn(_coutpoint(op)) for op, _ in outpoints]
    tx.vout = [CTxOut(sum(amt for _, amt in outpoints), vault.recovery_spk)]

    stack = [
        bn2vch(recov_vout_idx),
        vault.recovery_script,
        tree.control_block(vault.recovery_script),
    ]
    final = FinalizedSpend(
        with_witness(tx, [stack] * len(outpoints)),
        [CTxOut(amt, tree.scriptPubKey) for _, amt in outpoints],
    )
    log.info(
        "built recovery %s sweeping %d coin(s) to %s",
        final.txid, len(outpoints), vault.recovery_address())
    return final


def build_key_path_spend(
    source: Vault | VaultTrigger,
    outpoint: Outpoint,
    amount_sats: int,
    destinations: t.Sequence[CTxOut],
    hash_type: int = SIGHASH_DEFAULT,
) -> UnsignedSpend:
    """
    A spend of a vault or trigger coin through the key path; only the holder of
    the recovery secret can sign it.
    """
    tx = CTransaction()
    tx.version = 2
    tx.vin = [CTxIn(_coutpoint(outpoint))]
    tx.vout = [CTxOut(o.nValue, o.scriptPubKey) for o in destinations]

    return UnsignedSpend(
        tx,
        CTxOut(amount_sats, source.tree.scriptPubKey),
        tweak=source.tree.tweak,
        hash_type=hash_type,
    )
