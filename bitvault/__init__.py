import verystable

# OP_VAULT, OP_VAULT_RECOVER and OP_CHECKTEMPLATEVERIFY are patched into
# verystable's script module; every script we build depends on them.
verystable.softforks.activate_bip345_vault()
verystable.softforks.activate_bip119_ctv()
