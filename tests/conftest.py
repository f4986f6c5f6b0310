import hashlib
from typing import Dict, List, Optional
from unittest.mock import MagicMock

import pytest
import requests
from eth_account import Account as EthAccount
from eth_account.messages import encode_defunct
from hexbytes import HexBytes
from web3 import Web3

from pof_storage.blockchain import Account, BalanceOracle, CollateralManager
from pof_storage.settings import Settings
from pof_storage.storage import ContentStoreClient, session_message
from pof_storage.workflow import StorageWorkflow

PRIVATE_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
USDFC = Web3.to_checksum_address("0xb3042734b608a1b16e9e86b374a3f3e389b4cdf0")
PAYMENTS = Web3.to_checksum_address("0x0e690d3e60b0576d01352ab03b258115eb84a047")
WARM_STORAGE = Web3.to_checksum_address("0x80617b65fd2eea1d7fde2b4f85977670690ed348")
STORAGE_URL = "http://storage.test"
TX_HASH = HexBytes(b"\x12" * 32)
ONE = 10**18


def recover_signer(text: str, signature: str) -> str:
    """Address behind a personal_sign signature, as the storage service checks it."""
    return EthAccount.recover_message(encode_defunct(text=text), signature=HexBytes(signature))


class FakeResponse:
    def __init__(self, status_code: int, json_body=None, content: bytes = b""):
        self.status_code = status_code
        self._json = json_body
        self.content = content
        self.text = content.decode("utf-8", errors="replace") if content else str(json_body)

    def json(self):
        if self._json is None:
            raise ValueError("no json body")
        return self._json


class FakeStorageService:
    """In-memory stand-in for the warm-storage HTTP service."""

    def __init__(self):
        self.pieces: Dict[str, bytes] = {}
        self.calls: List[tuple] = []
        self.providers = [
            {"id": 1, "name": "ezpdp", "active": True, "serviceProvider": "0x0000000000000000000000000000000000000001"},
            {"id": 2, "name": "pdp-two", "active": False, "serviceProvider": "0x0000000000000000000000000000000000000002"},
        ]
        self.size_override: Optional[int] = None
        self.offline = False
        self.upload_status = 200

    def session(self) -> "FakeSession":
        return FakeSession(self)

    @staticmethod
    def piece_cid(data: bytes) -> str:
        return "bafkzcibd" + hashlib.sha256(data).hexdigest()[:48]


class FakeSession:
    def __init__(self, service: FakeStorageService):
        self.service = service
        self.headers: Dict[str, str] = {}
        self.closed = False

    def _authorized(self) -> bool:
        address = self.headers.get("X-Account-Address", "")
        message = session_message(address, self.headers.get("X-Session-Issued-At", ""))
        return recover_signer(message, self.headers["X-Session-Signature"]) == address

    def post(self, url, files=None, timeout=None):
        self.service.calls.append(("POST", url))
        if self.service.offline:
            raise requests.ConnectionError("storage service unreachable")
        if not self._authorized():
            return FakeResponse(401, content=b"bad session signature")
        if self.service.upload_status != 200:
            return FakeResponse(self.service.upload_status, content=b"provider failure")
        data = files["file"][1]
        cid = self.service.piece_cid(data)
        self.service.pieces[cid] = data
        size = len(data) if self.service.size_override is None else self.service.size_override
        return FakeResponse(200, {"pieceCid": cid, "size": size})

    def get(self, url, timeout=None):
        self.service.calls.append(("GET", url))
        if self.service.offline:
            raise requests.ConnectionError("storage service unreachable")
        if url.endswith("/providers"):
            return FakeResponse(200, {"providers": self.service.providers})
        cid = url.rsplit("/", 1)[-1]
        if cid not in self.service.pieces:
            return FakeResponse(404, content=b"piece not found")
        return FakeResponse(200, content=self.service.pieces[cid])

    def close(self):
        self.closed = True


def make_ledger(usdfc_raw: int = 5 * ONE, native_raw: int = 2 * ONE, status: int = 1):
    """MagicMock web3 with an ERC-20 token and payments contract behind it."""
    token = MagicMock(name="usdfc")
    token.address = USDFC
    token.functions.balanceOf.return_value.call.return_value = usdfc_raw
    token.functions.decimals.return_value.call.return_value = 18
    token.functions.name.return_value.call.return_value = "USD for Filecoin Community"
    token.functions.nonces.return_value.call.return_value = 0

    payments = MagicMock(name="payments")
    payments.address = PAYMENTS
    payments.functions.depositWithPermitAndApproveOperator.return_value.build_transaction.return_value = {
        "to": PAYMENTS,
        "value": 0,
        "data": "0x",
        "gas": 300000,
        "maxFeePerGas": 2000,
        "maxPriorityFeePerGas": 1000,
        "nonce": 0,
        "chainId": 314159,
    }

    w3 = MagicMock(name="w3")
    w3.eth.contract.side_effect = lambda address, abi: token if address == USDFC else payments
    w3.eth.get_balance.return_value = native_raw
    w3.eth.chain_id = 314159
    w3.eth.block_number = 3_000_000
    w3.eth.get_transaction_count.return_value = 0
    w3.eth.send_raw_transaction.return_value = TX_HASH
    w3.eth.wait_for_transaction_receipt.return_value = {"status": status, "transactionHash": TX_HASH}
    return w3, token, payments


@pytest.fixture
def account() -> Account:
    return Account.from_key(PRIVATE_KEY)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        PRIVATE_KEY=PRIVATE_KEY,
        USDFC_ADDRESS=USDFC,
        PAYMENTS_ADDRESS=PAYMENTS,
        WARM_STORAGE_ADDRESS=WARM_STORAGE,
        STORAGE_API_URL=STORAGE_URL,
    )


@pytest.fixture
def service() -> FakeStorageService:
    return FakeStorageService()


@pytest.fixture
def store(service) -> ContentStoreClient:
    return ContentStoreClient(STORAGE_URL, session_factory=service.session)


@pytest.fixture
def ledger():
    return make_ledger()


@pytest.fixture
def oracle(ledger) -> BalanceOracle:
    w3, _, _ = ledger
    return BalanceOracle(w3, USDFC)


@pytest.fixture
def collateral(ledger, oracle) -> CollateralManager:
    w3, _, _ = ledger
    return CollateralManager(w3, oracle, PAYMENTS)


@pytest.fixture
def workflow(settings, ledger, store) -> StorageWorkflow:
    w3, _, _ = ledger
    return StorageWorkflow(settings, w3=w3, store=store)


@pytest.fixture
def tx_hash_hex() -> str:
    return Web3.to_hex(TX_HASH)
