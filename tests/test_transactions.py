import warnings
from pathlib import Path

import pytest
from verystable.core.messages import CTxOut
from verystable.wallet import Outpoint

from bitvault import transactions
from bitvault.bip119 import standard_template_hash
from bitvault.errors import SighashError
from bitvault.taptree import control_block_commits_to
from bitvault.transactions import (
    NO_REVAULT, build_recovery, build_withdrawal, revault_indicator, sign_trigger,
)
from bitvault.vault import VaultTrigger

from .conftest import decode_tx

AMOUNT = 100_000


def test_revault_indicator():
    assert revault_indicator(None) == NO_REVAULT == b""
    assert revault_indicator(1) == b"\x01"


class TestWithdrawal:
    def test_spends_into_committed_template(self, vault, vault_outpoint):
        trigger = VaultTrigger.derive(vault)
        trigger_tx = sign_trigger(vault, vault_outpoint, AMOUNT, trigger)
        final = build_withdrawal(trigger, Outpoint(trigger_tx.txid, 0), AMOUNT)
        tx = final.tx

        assert standard_template_hash(tx, 0) == trigger.target_hash
        assert tx.vin[0].nSequence == vault.spend_delay
        assert tx.vout == []
        assert final.witness == [
            trigger.withdraw_script,
            trigger.tree.control_block(trigger.withdraw_script),
        ]
        assert control_block_commits_to(
            trigger.withdraw_script, final.witness[1],
            bytes(trigger_tx.tx.vout[0].scriptPubKey))

    def test_with_destinations(self, vault, vault_outpoint):
        dest = CTxOut(AMOUNT, vault.recovery_spk)
        trigger = VaultTrigger.derive(vault, [dest])
        final = build_withdrawal(trigger, Outpoint("bb" * 32, 0), AMOUNT)

        assert len(final.tx.vout) == 1
        assert final.tx.vout[0].nValue == AMOUNT
        assert standard_template_hash(final.tx, 0) == trigger.target_hash

    def test_template_left_untouched(self, vault):
        trigger = VaultTrigger.derive(vault)
        build_withdrawal(trigger, Outpoint("bb" * 32, 3), AMOUNT)
        assert trigger.withdrawal_template.vin[0].prevout.n == 0xffffffff


class TestRecovery:
    def test_from_vault(self, vault, vault_outpoint):
        others = Outpoint("cc" * 32, 1)
        final = build_recovery(vault, [(vault_outpoint, AMOUNT), (others, 5_000)])
        tx = final.tx

        assert len(tx.vin) == 2
        assert len(tx.vout) == 1
        assert tx.vout[0].nValue == AMOUNT + 5_000
        assert tx.vout[0].scriptPubKey == vault.recovery_spk

        for wit in tx.wit.vtxinwit:
            stack = wit.scriptWitness.stack
            assert stack == [
                b"",
                vault.recovery_script,
                vault.tree.control_block(vault.recovery_script),
            ]

    def test_from_trigger(self, vault, vault_outpoint):
        trigger = VaultTrigger.derive(vault)
        trigger_tx = sign_trigger(vault, vault_outpoint, AMOUNT, trigger)
        final = build_recovery(trigger, [(Outpoint(trigger_tx.txid, 0), AMOUNT)])

        [recov_leaf, cb] = final.witness[1:]
        assert recov_leaf == vault.recovery_script
        assert cb == trigger.tree.control_block(vault.recovery_script)
        assert cb != vault.tree.control_block(vault.recovery_script)
        assert control_block_commits_to(
            recov_leaf, cb, bytes(trigger.trigger_output_script))

    def test_serializes(self, vault, vault_outpoint):
        final = build_recovery(vault, [(vault_outpoint, AMOUNT)])
        assert decode_tx(final.tohex()).rehash() == final.txid

    def test_nothing_to_recover(self, vault):
        with pytest.raises(SighashError):
            build_recovery(vault, [])


def test_module_compiles_without_warnings():
    path = Path(transactions.__file__)
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        compile(path.read_text(), str(path), "exec")
    assert "\\" in transactions.__doc__
