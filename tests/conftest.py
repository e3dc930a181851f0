import pytest
from verystable.core.messages import CTransaction
from verystable.rpc import JSONRPCError
from verystable.script import CTransaction as VSTransaction
from verystable.wallet import Outpoint

import bitvault  # noqa: F401 (activates OP_VAULT and OP_CHECKTEMPLATEVERIFY)
from bitvault.vault import KeyPair, Vault

SPEND_DELAY = 10


@pytest.fixture
def recovery_keypair() -> KeyPair:
    return KeyPair(b"\x02" * 32)


@pytest.fixture
def unvault_keypair() -> KeyPair:
    return KeyPair(b"\x01" * 32)


@pytest.fixture
def vault(recovery_keypair, unvault_keypair) -> Vault:
    return Vault.from_keys(
        SPEND_DELAY, recovery_keypair.pubkey, unvault_keypair,
        recovery_secret=recovery_keypair.secret)


@pytest.fixture
def vault_outpoint() -> Outpoint:
    return Outpoint("aa" * 32, 0)


class FakeRPC:
    """Stands in for a bitcoind RPC connection."""

    def __init__(self, unspent=(), errors=None):
        self.unspent = list(unspent)
        self.errors = errors or {}
        self.sent: list[str] = []
        self.imported: list[dict] = []
        self.import_result = {"success": True}

    def _maybe_fail(self, method: str) -> None:
        if err := self.errors.get(method):
            if isinstance(err, Exception):
                raise err
            raise JSONRPCError(err)

    def getblockcount(self) -> int:
        self._maybe_fail("getblockcount")
        return 200

    def listunspent(self, minconf, maxconf, addrs) -> list[dict]:
        self._maybe_fail("listunspent")
        return [u for u in self.unspent if u["address"] in addrs]

    def sendrawtransaction(self, tx_hex: str) -> str:
        self._maybe_fail("sendrawtransaction")
        self.sent.append(tx_hex)
        return VSTransaction.fromhex(tx_hex).rehash()

    def getdescriptorinfo(self, desc: str) -> dict:
        self._maybe_fail("getdescriptorinfo")
        return {"checksum": "qwertyui"}

    def importdescriptors(self, requests: list[dict]) -> list[dict]:
        self._maybe_fail("importdescriptors")
        self.imported.extend(requests)
        return [self.import_result]

    def getnewaddress(self, label: str) -> str:
        self._maybe_fail("getnewaddress")
        return "bcrt1qfake"

    def generatetoaddress(self, num: int, address: str) -> list[str]:
        self._maybe_fail("generatetoaddress")
        return ["00" * 32] * num


@pytest.fixture
def fake_rpc() -> FakeRPC:
    return FakeRPC()


def decode_tx(tx_hex: str) -> CTransaction:
    return VSTransaction.fromhex(tx_hex)
