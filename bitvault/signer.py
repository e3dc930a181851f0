"""
Signing a single-input taproot spend, one stage at a time:

    UnsignedSpend -> SighashedSpend -> SignedSpend -> FinalizedSpend

Each stage is a new immutable value; intermediate signing state (the sighash,
the bare signature) never appears on a FinalizedSpend.
"""
import logging
from dataclasses import dataclass, field
from functools import cached_property

from verystable import core
from verystable.core import script
from verystable.core.messages import CTransaction, CTxInWitness, CTxOut
from verystable.core.script import (
    CScript, CScriptInvalidError, SIGHASH_ALL, SIGHASH_DEFAULT, bn2vch,
)

from .errors import ExtractError, SighashError, SigningError
from .taptree import control_block_commits_to

log = logging.getLogger("bitvault.signer")

__all__ = [
    "bn2vch",
    "with_witness",
    "UnsignedSpend",
    "SighashedSpend",
    "SignedSpend",
    "FinalizedSpend",
]

ALLOWED_HASH_TYPES = (SIGHASH_DEFAULT, SIGHASH_ALL)


def _copy_tx(tx: CTransaction) -> CTransaction:
    return CTransaction(tx)


def with_witness(tx: CTransaction, stacks: list[list[bytes]]) -> CTransaction:
    """Return a copy of `tx` carrying one witness stack per input."""
    new = _copy_tx(tx)
    new.wit.vtxinwit = []
    for stack in stacks:
        wit = CTxInWitness()
        wit.scriptWitness.stack = list(stack)
        new.wit.vtxinwit.append(wit)
    return new


@dataclass(frozen=True)
class UnsignedSpend:
    """
    A transaction with exactly one input, plus everything needed to sign it.

    For a script-path spend, `leaf_script` and `control_block` are set and
    `witness_prefix` holds the items that go beneath the signature. For a
    key-path spend they are left empty and `tweak` must be set.

    `hash_type` defaults to SIGHASH_DEFAULT, which signs with a bare 64-byte
    signature. SIGHASH_ALL commits to the same data but appends the type byte,
    giving the 65-byte form some other vault tools produce.
    """
    tx: CTransaction = field(compare=False)
    spent_output: CTxOut = field(compare=False)
    leaf_script: CScript | None = None
    control_block: bytes | None = None
    witness_prefix: tuple[bytes, ...] = ()
    tweak: bytes | None = None
    hash_type: int = SIGHASH_DEFAULT

    @property
    def is_script_path(self) -> bool:
        return self.leaf_script is not None

    def _check(self) -> None:
        if len(self.tx.vin) != 1:
            raise SighashError(f"expected exactly one input, got {len(self.tx.vin)}")
        if self.spent_output is None:
            raise SighashError("missing the output being spent")
        if self.spent_output.nValue < 0:
            raise SighashError(f"negative spent amount {self.spent_output.nValue}")
        if self.hash_type not in ALLOWED_HASH_TYPES:
            raise SighashError(f"unsupported sighash type {self.hash_type:#x}")

        spk = bytes(self.spent_output.scriptPubKey)
        if self.is_script_path:
            if not self.control_block:
                raise SighashError("script-path spend without a control block")
            if not control_block_commits_to(self.leaf_script, self.control_block, spk):
                raise SighashError(
                    "control block does not commit to the spent output "
                    f"{spk.hex()}")
        elif self.tweak is None:
            raise SighashError("key-path spend without a taproot tweak")

    def sighash(self) -> "SighashedSpend":
        self._check()
        try:
            msg = script.TaprootSignatureHash(
                self.tx,
                [self.spent_output],
                hash_type=self.hash_type,
                input_index=0,
                scriptpath=self.is_script_path,
                leaf_script=self.leaf_script,
            )
        except (AssertionError, CScriptInvalidError) as e:
            raise SighashError(f"unable to compute signature hash: {e!r}") from e

        return SighashedSpend(self, msg)


@dataclass(frozen=True)
class SighashedSpend:
    unsigned: UnsignedSpend
    sighash: bytes

    def sign(self, secret: bytes) -> "SignedSpend":
        """
        Sign with `secret`. Script-path spends are signed with the key as-is;
        key-path spends with the key tweaked by the tree's tweak.
        """
        u = self.unsigned
        signing_key = secret
        if not u.is_script_path:
            assert u.tweak
            if (tweaked := core.key.tweak_add_privkey(secret, u.tweak)) is None:
                raise SigningError("unable to tweak signing key")
            signing_key = tweaked

        xonly, _ = core.key.compute_xonly_pubkey(signing_key)
        if xonly is None:
            raise SigningError("invalid signing key")

        if u.is_script_path:
            if xonly not in list(u.leaf_script):
                raise SigningError(
                    f"key {xonly.hex()} does not appear in the leaf script")
        elif xonly != bytes(u.spent_output.scriptPubKey)[2:]:
            raise SigningError(f"key {xonly.hex()} does not control the spent output")

        sig = core.key.sign_schnorr(signing_key, self.sighash)
        if sig is None or not core.key.verify_schnorr(xonly, sig, self.sighash):
            raise SigningError("produced a signature that does not verify")

        if u.hash_type != SIGHASH_DEFAULT:
            sig += bytes([u.hash_type])

        log.debug("signed sighash %s with %s", self.sighash.hex(), xonly.hex())
        return SignedSpend(self, sig, xonly)


@dataclass(frozen=True)
class SignedSpend:
    sighashed: SighashedSpend
    signature: bytes
    pubkey: bytes

    def finalize(self) -> "FinalizedSpend":
        u = self.sighashed.unsigned
        if u.is_script_path:
            assert u.control_block
            stack = [*u.witness_prefix, self.signature, u.leaf_script, u.control_block]
        else:
            stack = [self.signature]

        return FinalizedSpend(
            with_witness(u.tx, [stack]),
            [u.spent_output],
            signer=self.pubkey,
            leaf_script=u.leaf_script,
        )


@dataclass(frozen=True)
class FinalizedSpend:
    tx: CTransaction = field(compare=False)
    spent_outputs: list[CTxOut] = field(compare=False)

    # Set when the witness carries a signature that can be re-verified.
    signer: bytes | None = None
    leaf_script: CScript | None = None

    @property
    def witness(self) -> list[bytes]:
        """The witness stack of the first input."""
        return list(self.tx.wit.vtxinwit[0].scriptWitness.stack)

    @cached_property
    def txid(self) -> str:
        return self.tx.rehash()

    def verify(self, spent_outputs: list[CTxOut] | None = None) -> None:
        """
        Re-derive the signature hash against `spent_outputs` (defaulting to the
        ones this spend was built with) and check the signature against it.
        """
        if self.signer is None:
            return
        spent_outputs = spent_outputs or self.spent_outputs
        if len(spent_outputs) != len(self.tx.vin):
            raise SighashError(
                f"got {len(spent_outputs)} spent outputs for {len(self.tx.vin)} inputs")

        is_script_path = self.leaf_script is not None
        sig = self.witness[-3] if is_script_path else self.witness[0]
        hash_type = sig[64] if len(sig) == 65 else SIGHASH_DEFAULT
        msg = script.TaprootSignatureHash(
            self.tx,
            spent_outputs,
            hash_type=hash_type,
            input_index=0,
            scriptpath=is_script_path,
            leaf_script=self.leaf_script,
        )
        if not core.key.verify_schnorr(self.signer, sig[:64], msg):
            raise SigningError(
                "signature does not commit to the given spent outputs")

    def extract(self, spent_outputs: list[CTxOut] | None = None) -> bytes:
        """Serialize the finished transaction, with witnesses."""
        wits = self.tx.wit.vtxinwit
        if len(wits) != len(self.tx.vin) or any(w.is_null() for w in wits):
            raise ExtractError("every input needs a final witness before extraction")
        if spent_outputs is not None:
            self.verify(spent_outputs)
        return self.tx.serialize()

    def tohex(self) -> str:
        return self.extract().hex()
