"""
A taproot output with exactly two script leaves at depth one.

Every vault output has two spending conditions - recovery and one time-gated
path - so this never needs the general tree builder.
"""
import logging
from dataclasses import dataclass, field

from verystable.core import script
from verystable.core.crypto import secp256k1
from verystable.core.script import CScript, LEAF_VERSION_TAPSCRIPT
from verystable.core.segwit_addr import encode_segwit_address
from verystable.script import TaprootInfo

from .errors import ScriptError, TreeBuildError
from .scripts import check_pushes

log = logging.getLogger("bitvault.taptree")

NETWORK_HRPS = {
    "mainnet": "bc",
    "testnet": "tb",
    "signet": "tb",
    "regtest": "bcrt",
}

_LEAF_NAMES = ("a", "b")


def output_key_to_address(output_key: bytes, network: str = "regtest") -> str:
    if (hrp := NETWORK_HRPS.get(network)) is None:
        raise ValueError(f"unrecognized network '{network}'")
    addr = encode_segwit_address(hrp, 1, output_key)
    assert addr
    return addr


def control_block_commits_to(
    leaf_script: bytes, control_block: bytes, spk: bytes,
) -> bool:
    """
    Whether `control_block` proves that `leaf_script` sits in a depth-one tree
    whose output key is the one paid to by the P2TR `spk`.
    """
    if len(control_block) != 65 or len(spk) != 34 or spk[:2] != b"\x51\x20":
        return False
    if control_block[0] & 0xfe != LEAF_VERSION_TAPSCRIPT:
        return False

    internal_key = control_block[1:33]
    if secp256k1.GE.from_bytes_xonly(internal_key) is None:
        return False

    # Rebuild the tree around the sibling hash the control block carries.
    sibling = control_block[33:65]
    info = script.taproot_construct(
        internal_key, [("leaf", bytes(leaf_script)), lambda _: sibling])
    return info.scriptPubKey == spk and info.negflag == control_block[0] & 1


@dataclass(frozen=True)
class SpendTree:
    internal_key: bytes
    leaves: tuple[CScript, CScript]
    info: TaprootInfo = field(compare=False, repr=False)

    @classmethod
    def build(cls, leaf_a: bytes, leaf_b: bytes, internal_key: bytes) -> "SpendTree":
        if len(internal_key) != 32 or secp256k1.GE.from_bytes_xonly(internal_key) is None:
            raise TreeBuildError(f"invalid internal key {internal_key.hex()}")

        leaves = []
        for leaf in (leaf_a, leaf_b):
            try:
                leaves.append(check_pushes(CScript(bytes(leaf))))
            except ScriptError as e:
                raise TreeBuildError(f"bad leaf script: {e}") from e

        if leaves[0] == leaves[1]:
            raise TreeBuildError("both leaves are the same script")

        info = script.taproot_construct(
            internal_key, [(name, leaf) for name, leaf in zip(_LEAF_NAMES, leaves)])
        log.debug(
            "built tree with root %s -> %s",
            info.merkle_root.hex(), info.output_pubkey.hex())
        return cls(internal_key, (leaves[0], leaves[1]), info)

    @property
    def leaf_hashes(self) -> tuple[bytes, bytes]:
        a, b = (self.info.leaves[name].leaf_hash for name in _LEAF_NAMES)
        return a, b

    @property
    def merkle_root(self) -> bytes:
        return self.info.merkle_root

    @property
    def tweak(self) -> bytes:
        return self.info.tweak

    @property
    def output_key(self) -> bytes:
        return self.info.output_pubkey

    @property
    def parity(self) -> int:
        return self.info.negflag

    @property
    def scriptPubKey(self) -> CScript:
        return self.info.scriptPubKey

    def address(self, network: str = "regtest") -> str:
        return output_key_to_address(self.output_key, network)

    def control_block(self, leaf_script: bytes) -> bytes:
        """Proof that `leaf_script` is committed to by this tree's output key."""
        try:
            idx = self.leaves.index(CScript(bytes(leaf_script)))
        except ValueError:
            raise TreeBuildError("script is not a leaf of this tree") from None
        return self.info.controlblock_for_script_spend(_LEAF_NAMES[idx])
