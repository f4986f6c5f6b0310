# pof_storage/blockchain.py
import json
import logging
import os
import time
from contextlib import contextmanager
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Optional, Tuple, Union

from eth_account import Account as EthAccount
from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount
from eth_keys.exceptions import ValidationError as KeyValidationError
from hexbytes import HexBytes
from requests.exceptions import RequestException
from web3 import Web3
from web3.exceptions import TimeExhausted, Web3Exception

from .errors import (
    ConfigurationError,
    ConnectivityError,
    InsufficientCollateralError,
    InvalidAccountError,
    TransactionPendingError,
    TransactionRejectedError,
)
from .settings import EPOCHS_PER_MONTH, MAX_UINT256, USDFC_FAUCET_URL

log = logging.getLogger(__name__)

# load ABIs shipped with the package
HERE = os.path.dirname(__file__)


def _load_abi(name: str):
    with open(os.path.join(HERE, "abi", f"{name}.json")) as f:
        artifact = json.load(f)
    return artifact.get("abi", artifact)  # if the file is just the abi array


ERC20_ABI = _load_abi("ERC20Permit")
PAYMENTS_ABI = _load_abi("Payments")

NATIVE_DECIMALS = 18
PERMIT_TTL_SECONDS = 3600

Amount = Union[Decimal, str, int, float]


def connect(rpc_url: str) -> Web3:
    return Web3(Web3.HTTPProvider(rpc_url))


@contextmanager
def _rpc(what: str):
    """Translate transport failures from the RPC node into ConnectivityError."""
    try:
        yield
    except (RequestException, OSError) as e:
        raise ConnectivityError(f"{what}: ledger RPC unreachable ({e})") from e


def to_units(raw: int, decimals: int) -> Decimal:
    value = Decimal(int(raw)).scaleb(-decimals)
    # "5" rather than "5.000000000000000000"
    if value == value.to_integral_value():
        return value.quantize(Decimal(1))
    return value.normalize()


def from_units(amount: Amount, decimals: int) -> int:
    """Convert a human amount ("2.5") into integer base units, refusing to round."""
    value = Decimal(str(amount)).scaleb(decimals)
    if value != value.to_integral_value():
        raise ValueError(f"{amount} has more than {decimals} decimal places")
    return int(value)


@dataclass(frozen=True)
class Account:
    signer: LocalAccount

    @classmethod
    def from_key(cls, credential: str) -> "Account":
        key = (credential or "").strip()
        if key and not key.startswith("0x"):
            key = "0x" + key
        try:
            signer = EthAccount.from_key(key)
        except (ValueError, TypeError, KeyValidationError) as e:
            raise InvalidAccountError(
                "PRIVATE_KEY is not a valid private key (expected 64 hex characters)"
            ) from e
        return cls(signer=signer)

    @property
    def address(self) -> str:
        return self.signer.address

    def sign_text(self, text: str) -> str:
        """personal_sign over `text`, returned as 0x-prefixed hex."""
        signed = self.signer.sign_message(encode_defunct(text=text))
        return Web3.to_hex(signed.signature)


class Asset(str, Enum):
    NATIVE = "tFIL"
    USDFC = "USDFC"


@dataclass(frozen=True)
class Balance:
    asset: Asset
    amount: Decimal
    raw: int


class BalanceOracle:
    """Read-only balance queries against the ledger. Nothing is cached."""

    def __init__(self, w3: Web3, token_address: Optional[str] = None):
        self.w3 = w3
        self._token = None
        if token_address:
            self._token = w3.eth.contract(address=Web3.to_checksum_address(token_address), abi=ERC20_ABI)

    def token(self):
        if self._token is None:
            raise ConfigurationError("USDFC_ADDRESS is not configured")
        return self._token

    def get_balance(self, account: Account, asset: Asset) -> Balance:
        if not isinstance(account, Account):
            raise InvalidAccountError(f"Expected an Account, got {type(account).__name__}")
        with _rpc(f"reading {asset.value} balance"):
            if asset is Asset.NATIVE:
                raw = self.w3.eth.get_balance(account.address)
                decimals = NATIVE_DECIMALS
            else:
                token = self.token()
                raw = token.functions.balanceOf(account.address).call()
                decimals = token.functions.decimals().call()
        return Balance(asset=asset, amount=to_units(raw, decimals), raw=int(raw))

    def chain_id(self) -> int:
        with _rpc("reading chain id"):
            return int(self.w3.eth.chain_id)

    def latest_block(self) -> int:
        with _rpc("reading block number"):
            return int(self.w3.eth.block_number)


def send_signed_transaction_and_wait(w3: Web3, signed_tx):
    """
    Broadcast a signed transaction and block until it is mined.
    Returns the transaction receipt; a reverted receipt is an error.
    """
    try:
        tx_hash = w3.eth.send_raw_transaction(signed_tx.raw_transaction)
    except (RequestException, OSError) as e:
        raise ConnectivityError(f"broadcasting transaction: ledger RPC unreachable ({e})") from e
    except (ValueError, Web3Exception) as e:
        raise TransactionRejectedError(f"Ledger rejected transaction: {e}") from e

    tx_hex = Web3.to_hex(tx_hash)
    log.info("Transaction submitted", extra={"tx_hash": tx_hex})
    try:
        receipt = w3.eth.wait_for_transaction_receipt(tx_hash)
    except TimeExhausted as e:
        raise TransactionPendingError(tx_hex) from e
    except (RequestException, OSError) as e:
        raise ConnectivityError(f"waiting for {tx_hex}: ledger RPC unreachable ({e})") from e

    if receipt["status"] == 0:
        raise TransactionRejectedError("Transaction reverted", tx_hash=tx_hex)
    return receipt


class CollateralManager:
    """
    Deposits USDFC into the payments contract and approves a storage operator
    to draw from it, in one transaction. Every call issues a new deposit.
    """

    def __init__(
        self,
        w3: Web3,
        oracle: BalanceOracle,
        payments_address: Optional[str],
        funding_url: str = USDFC_FAUCET_URL,
    ):
        if not payments_address:
            raise ConfigurationError("PAYMENTS_ADDRESS is not configured")
        self.w3 = w3
        self.oracle = oracle
        self.funding_url = funding_url
        self.payments = w3.eth.contract(address=Web3.to_checksum_address(payments_address), abi=PAYMENTS_ABI)

    def ensure_collateral(
        self,
        account: Account,
        amount: Amount,
        operator: str,
        allowance_ceiling: int = MAX_UINT256,
        expiry_epochs: int = EPOCHS_PER_MONTH,
    ):
        try:
            amount = Decimal(str(amount))
        except InvalidOperation as e:
            raise ValueError(f"Deposit amount {amount!r} is not a number") from e
        if not amount.is_finite() or amount <= 0:
            raise ValueError("Deposit amount must be positive")

        balance = self.oracle.get_balance(account, Asset.USDFC)
        log.info(
            "Collateral balance checked",
            extra={"balance": str(balance.amount), "requested": str(amount)},
        )
        if balance.amount < amount:
            raise InsufficientCollateralError(amount, balance.amount, self.funding_url)

        token = self.oracle.token()
        with _rpc("preparing deposit"):
            raw_amount = from_units(amount, token.functions.decimals().call())
            deadline = int(time.time()) + PERMIT_TTL_SECONDS
            v, r, s = self._sign_permit(account, token, raw_amount, deadline)
            try:
                tx = self.payments.functions.depositWithPermitAndApproveOperator(
                    token.address,
                    account.address,
                    raw_amount,
                    deadline,
                    v,
                    r,
                    s,
                    Web3.to_checksum_address(operator),
                    int(allowance_ceiling),
                    int(allowance_ceiling),
                    int(expiry_epochs),
                ).build_transaction({
                    "from": account.address,
                    "nonce": self.w3.eth.get_transaction_count(account.address),
                })
            except (ValueError, Web3Exception) as e:
                raise TransactionRejectedError(f"Deposit would fail: {e}") from e

        signed = account.signer.sign_transaction(tx)
        receipt = send_signed_transaction_and_wait(self.w3, signed)
        log.info(
            "Collateral deposited",
            extra={"amount": str(amount), "operator": operator, "tx_hash": Web3.to_hex(receipt["transactionHash"])},
        )
        return receipt

    def _sign_permit(self, account: Account, token, value: int, deadline: int) -> Tuple[int, HexBytes, HexBytes]:
        """EIP-2612 permit letting the payments contract pull `value` from the account."""
        typed = {
            "types": {
                "EIP712Domain": [
                    {"name": "name", "type": "string"},
                    {"name": "version", "type": "string"},
                    {"name": "chainId", "type": "uint256"},
                    {"name": "verifyingContract", "type": "address"},
                ],
                "Permit": [
                    {"name": "owner", "type": "address"},
                    {"name": "spender", "type": "address"},
                    {"name": "value", "type": "uint256"},
                    {"name": "nonce", "type": "uint256"},
                    {"name": "deadline", "type": "uint256"},
                ],
            },
            "primaryType": "Permit",
            "domain": {
                "name": token.functions.name().call(),
                "version": "1",
                "chainId": int(self.w3.eth.chain_id),
                "verifyingContract": token.address,
            },
            "message": {
                "owner": account.address,
                "spender": self.payments.address,
                "value": value,
                "nonce": token.functions.nonces(account.address).call(),
                "deadline": deadline,
            },
        }
        signed = account.signer.sign_typed_data(full_message=typed)
        return signed.v, HexBytes(signed.r.to_bytes(32, "big")), HexBytes(signed.s.to_bytes(32, "big"))
