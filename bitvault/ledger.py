"""
A thin adapter over bitcoind's RPC interface. The core only ever needs coins
at an address, and somewhere to send finished transactions.
"""
import http.client
import logging
import typing as t
from contextlib import contextmanager
from dataclasses import dataclass

from verystable.rpc import BitcoinRPC, JSONRPCError
from verystable.wallet import Outpoint, Utxo, btc_to_sats

from .errors import LedgerError

log = logging.getLogger("bitvault.ledger")


@contextmanager
def _rpc_errors(what: str) -> t.Iterator[None]:
    """Turn node and transport failures into a LedgerError describing `what`."""
    try:
        yield
    except JSONRPCError as e:
        raise LedgerError(f"{what}: {e.msg} (code {e.code})", code=e.code) from e
    except (OSError, http.client.HTTPException) as e:
        # No structured error from the node; it may not even be reachable.
        raise LedgerError(f"{what}: {e}") from e


@dataclass
class Ledger:
    rpc: BitcoinRPC
    label: str = "bitvault"

    def import_address(self, address: str) -> None:
        """Make the node's wallet watch `address` so its coins can be listed."""
        desc = f"addr({address})"
        with _rpc_errors(f"failed to import {address}"):
            checksum = self.rpc.getdescriptorinfo(desc)["checksum"]
            [result] = self.rpc.importdescriptors([{
                "desc": f"{desc}#{checksum}",
                "label": self.label,
                "timestamp": "now",
            }])

        if not result.get("success"):
            if err := result.get("error"):
                raise LedgerError(
                    f"failed to import {address}: {err.get('message')}",
                    code=err.get("code"))
            raise LedgerError(
                f"could not import {address}: an unexpected error occurred")
        log.info("imported watch-only descriptor for %s", address)

    def list_unspent(self, address: str) -> list[Utxo]:
        with _rpc_errors(f"failed to list coins for {address}"):
            height = self.rpc.getblockcount()
            got = self.rpc.listunspent(1, 9999999, [address])

        return [
            Utxo(
                Outpoint(u["txid"], u["vout"]),
                address,
                btc_to_sats(u["amount"]),
                height - u["confirmations"] + 1,
            )
            for u in got
        ]

    def broadcast(self, tx_hex: str) -> str:
        with _rpc_errors("node rejected transaction"):
            txid = self.rpc.sendrawtransaction(tx_hex)
        log.info("broadcast transaction %s", txid)
        return txid

    def get_new_address(self) -> str:
        with _rpc_errors("failed to get a new address"):
            return self.rpc.getnewaddress(self.label)

    def generate_to_address(self, address: str, num_blocks: int = 101) -> list[str]:
        with _rpc_errors(f"failed to mine to {address}"):
            return self.rpc.generatetoaddress(num_blocks, address)
