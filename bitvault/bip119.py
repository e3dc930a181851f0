"""
BIP-119 standard template hash: the digest that OP_CHECKTEMPLATEVERIFY compares
against the spending transaction.
"""
import struct
import typing as t

from verystable.core.messages import (
    COutPoint, CTransaction, CTxIn, CTxOut, ser_compact_size, ser_string, sha256,
)

__all__ = [
    "ser_compact_size",
    "standard_template_hash",
    "null_outpoint",
    "withdrawal_template",
]


def null_outpoint() -> COutPoint:
    return COutPoint(0, 0xffffffff)


def standard_template_hash(tx: CTransaction, input_index: int) -> bytes:
    r = b""
    r += struct.pack("<i", tx.version)
    r += struct.pack("<I", tx.nLockTime)

    # The scriptSig commitment only exists when some input actually has one.
    if any(inp.scriptSig for inp in tx.vin):
        r += sha256(b"".join(ser_string(inp.scriptSig) for inp in tx.vin))

    r += struct.pack("<I", len(tx.vin))
    r += sha256(b"".join(struct.pack("<I", inp.nSequence) for inp in tx.vin))
    r += struct.pack("<I", len(tx.vout))
    r += sha256(b"".join(
        struct.pack("<q", out.nValue) + ser_string(out.scriptPubKey)
        for out in tx.vout))
    r += struct.pack("<I", input_index)
    return sha256(r)


def withdrawal_template(
    spend_delay: int,
    destinations: t.Sequence[CTxOut] = (),
) -> CTransaction:
    """
    The transaction shape that a trigger output commits to. With no destinations
    this is the canonical template: one input, no outputs.
    """
    tx = CTransaction()
    tx.version = 2
    tx.nLockTime = 0
    tx.vin = [CTxIn(null_outpoint(), nSequence=spend_delay)]
    tx.vout = [CTxOut(o.nValue, o.scriptPubKey) for o in destinations]
    return tx
