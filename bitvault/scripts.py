"""
Leaf scripts for the vault and trigger trees.

    vault tree:    recover  |  trigger
    trigger tree:  recover  |  withdraw
"""

from verystable import core
from verystable.core import script
from verystable.core.script import CScript, CScriptInvalidError, MAX_SCRIPT_ELEMENT_SIZE

from .errors import ScriptError

RECOVERY_TAG = "VaultRecoverySPK"

# What the trigger output's withdraw leaf does, and what OP_VAULT checks the
# trigger output against.
LEAF_UPDATE_SCRIPT_BODY = (
    script.OP_CHECKSEQUENCEVERIFY, script.OP_DROP, script.OP_CHECKTEMPLATEVERIFY,
)  # yapf: disable

# Number of leading leaf-update items (spend delay, target hash) that OP_VAULT
# pulls off the witness and prepends to LEAF_UPDATE_SCRIPT_BODY.
LEAF_UPDATE_NUM_PUSHES = 2


def check_pushes(cscript: CScript) -> CScript:
    """Raise ScriptError if any push in `cscript` is oversized or truncated."""
    try:
        for _, data, _ in cscript.raw_iter():
            if data is not None and len(data) > MAX_SCRIPT_ELEMENT_SIZE:
                raise ScriptError(
                    f"push of {len(data)} bytes exceeds {MAX_SCRIPT_ELEMENT_SIZE}")
    except CScriptInvalidError as e:
        raise ScriptError(f"malformed script: {e}") from e
    return cscript


def _check_key(key: bytes, name: str) -> None:
    if len(key) != 32:
        raise ScriptError(f"{name} must be a 32-byte x-only key, got {len(key)} bytes")


def _check_delay(spend_delay: int) -> None:
    # Height-based relative locktimes only have 16 bits.
    if not 0 < spend_delay <= 0xffff:
        raise ScriptError(f"spend delay must be within 1..65535, got {spend_delay}")


def recovery_spk(recovery_key: bytes) -> CScript:
    """The recovery destination: a key-path-only P2TR output of the recovery key."""
    _check_key(recovery_key, "recovery key")
    return script.taproot_construct(recovery_key).scriptPubKey


def recovery_hash(spk: bytes) -> bytes:
    # Tags the bare scriptPubKey. Some OP_VAULT implementations, such as the one
    # in Bitcoin Core's functional tests, tag ser_string(spk) instead; recovery
    # transactions built here won't validate against those.
    return core.key.TaggedHash(RECOVERY_TAG, bytes(spk))


def recovery_script(recovery_key: bytes) -> CScript:
    recov_hash = recovery_hash(recovery_spk(recovery_key))
    return check_pushes(CScript([recov_hash, script.OP_VAULT_RECOVER]))


def trigger_script(unvault_key: bytes, spend_delay: int) -> CScript:
    _check_key(unvault_key, "unvault key")
    _check_delay(spend_delay)

    return check_pushes(CScript([
        unvault_key, script.OP_CHECKSIGVERIFY, spend_delay,
        LEAF_UPDATE_NUM_PUSHES, CScript(LEAF_UPDATE_SCRIPT_BODY), script.OP_VAULT,
    ]))  # yapf: disable


def withdraw_script(target_hash: bytes, spend_delay: int) -> CScript:
    if len(target_hash) != 32:
        raise ScriptError(f"target hash must be 32 bytes, got {len(target_hash)}")
    _check_delay(spend_delay)

    return check_pushes(CScript([
        target_hash, spend_delay, *LEAF_UPDATE_SCRIPT_BODY,
    ]))  # yapf: disable
