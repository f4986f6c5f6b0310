# pof_storage/workflow.py
import functools
import logging
import threading
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Union

from web3 import Web3

from . import samples
from .blockchain import Account, Asset, BalanceOracle, CollateralManager, connect
from .codec import decode, encode, payload_of, wrap_catalog, wrap_event, wrap_results
from .errors import ClosedSessionError, ConfigurationError, StorageIntegrityError, UninitializedError
from .schemas import (
    PROOF_OF_FUN_RESULTS,
    EventMetadata,
    MerchItem,
    ProofOfFunResults,
    ResultsDocument,
    StoredDocument,
)
from .settings import EXPLORER_URL, TFIL_FAUCET_URL, USDFC_FAUCET_URL, Settings
from .storage import ContentStoreClient, ProviderInfo, UploadReceipt

log = logging.getLogger(__name__)

MIN_NATIVE_BALANCE = Decimal("0.1")
MIN_TOKEN_BALANCE = Decimal("0.5")


class SessionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    CLOSED = "closed"


@dataclass(frozen=True)
class WorkflowEvent:
    """Structured progress record emitted by StorageWorkflow."""

    kind: str
    fields: Dict[str, Any] = field(default_factory=dict)


Listener = Callable[[WorkflowEvent], None]


@dataclass(frozen=True)
class ReadinessReport:
    address: str
    native_balance: Decimal
    token_balance: Decimal
    chain_id: int
    latest_block: int
    active_providers: int
    total_providers: int

    @property
    def has_enough_native(self) -> bool:
        return self.native_balance >= MIN_NATIVE_BALANCE

    @property
    def has_enough_token(self) -> bool:
        return self.token_balance >= MIN_TOKEN_BALANCE

    @property
    def ready(self) -> bool:
        return self.has_enough_native and self.has_enough_token and self.active_providers > 0

    @property
    def explorer_url(self) -> str:
        return EXPLORER_URL + self.address

    def recommendations(self) -> List[str]:
        out = []
        if not self.has_enough_native:
            out.append(f"Need at least {MIN_NATIVE_BALANCE} tFIL for gas: {TFIL_FAUCET_URL}")
        if not self.has_enough_token:
            out.append(f"Need at least {MIN_TOKEN_BALANCE} USDFC for storage payments: {USDFC_FAUCET_URL}")
        if self.active_providers == 0:
            out.append("No active storage providers are currently listed")
        return out


@dataclass(frozen=True)
class WorkflowReport:
    event: UploadReceipt
    results: UploadReceipt
    catalog: UploadReceipt
    verified: ResultsDocument

    @property
    def total_bytes(self) -> int:
        return self.event.size + self.results.size + self.catalog.size


def serialized(method):
    """Run `method` holding the session lock; one operation at a time per session."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            return method(self, *args, **kwargs)

    return wrapper


class StorageWorkflow:
    """
    Payment-gated upload/download session for one account.

    UNINITIALIZED -> INITIALIZED -> CLOSED; CLOSED is terminal. Operations are
    serialized on a per-session lock, and a failed step never rolls back
    uploads already made.
    """

    def __init__(
        self,
        settings: Settings,
        w3: Optional[Web3] = None,
        store: Optional[ContentStoreClient] = None,
        oracle: Optional[BalanceOracle] = None,
        collateral: Optional[CollateralManager] = None,
        listeners: Iterable[Listener] = (),
    ):
        self.settings = settings
        self.state = SessionState.UNINITIALIZED
        self.account: Optional[Account] = None
        self.store = store or ContentStoreClient(
            settings.STORAGE_API_URL,
            token=settings.STORAGE_API_TOKEN,
            timeout=settings.STORAGE_TIMEOUT,
        )
        self.oracle = oracle
        self._w3 = w3
        self._collateral = collateral
        self._listeners: List[Listener] = list(listeners)
        # reentrant: full_workflow calls the other operations
        self._lock = threading.RLock()

    # ---------- lifecycle ----------
    def __enter__(self) -> "StorageWorkflow":
        self.initialize()
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def _emit(self, kind: str, **fields) -> None:
        log.info(kind, extra={"event": kind, **fields})
        evt = WorkflowEvent(kind=kind, fields=fields)
        for listener in self._listeners:
            listener(evt)

    def _guard(self) -> None:
        if self.state is SessionState.UNINITIALIZED:
            raise UninitializedError("Workflow not initialized; call initialize() first")
        if self.state is SessionState.CLOSED:
            raise ClosedSessionError("Workflow session is closed")

    @serialized
    def initialize(self) -> None:
        if self.state is SessionState.CLOSED:
            raise ClosedSessionError("A closed workflow cannot be re-initialized")
        if self.state is SessionState.INITIALIZED:
            log.warning("Workflow already initialized")
            return

        account = Account.from_key(self.settings.PRIVATE_KEY)
        if self._w3 is None:
            self._w3 = connect(self.settings.RPC_URL)
        if self.oracle is None:
            self.oracle = BalanceOracle(self._w3, self.settings.USDFC_ADDRESS)
        self.store.open(account)

        self.account = account
        self.state = SessionState.INITIALIZED
        self._emit("session.initialized", address=account.address)

    @serialized
    def close(self) -> None:
        if self.state is SessionState.CLOSED:
            return
        self.store.close()
        self.state = SessionState.CLOSED
        self._emit("session.closed")

    # ---------- payments ----------
    @serialized
    def ensure_collateral(self, amount: Union[Decimal, str, None] = None, operator: Optional[str] = None):
        self._guard()
        amount = amount if amount is not None else self.settings.DEFAULT_DEPOSIT_AMOUNT
        operator = operator or self.settings.WARM_STORAGE_ADDRESS
        if not operator:
            raise ConfigurationError("WARM_STORAGE_ADDRESS is not configured")
        if self._collateral is None:
            self._collateral = CollateralManager(self._w3, self.oracle, self.settings.PAYMENTS_ADDRESS)

        self._emit("collateral.requested", amount=str(amount), operator=operator)
        receipt = self._collateral.ensure_collateral(self.account, amount, operator)
        self._emit("collateral.deposited", amount=str(amount), tx_hash=Web3.to_hex(receipt["transactionHash"]))
        return receipt

    @serialized
    def readiness(self) -> ReadinessReport:
        self._guard()
        native = self.oracle.get_balance(self.account, Asset.NATIVE)
        token = self.oracle.get_balance(self.account, Asset.USDFC)
        providers = self.store.providers()
        report = ReadinessReport(
            address=self.account.address,
            native_balance=native.amount,
            token_balance=token.amount,
            chain_id=self.oracle.chain_id(),
            latest_block=self.oracle.latest_block(),
            active_providers=sum(1 for p in providers if p.active),
            total_providers=len(providers),
        )
        self._emit(
            "readiness.checked",
            native_balance=str(report.native_balance),
            token_balance=str(report.token_balance),
            ready=report.ready,
        )
        return report

    # ---------- documents ----------
    def _store(self, document: StoredDocument) -> UploadReceipt:
        data = encode(document)
        self._emit("document.encoded", document_type=document.type, size=len(data))
        receipt = self.store.upload(data)
        self._emit("document.stored", document_type=document.type, piece_cid=receipt.piece_cid, size=receipt.size)
        return receipt

    @serialized
    def store_event(self, metadata: Union[EventMetadata, dict]) -> UploadReceipt:
        self._guard()
        metadata = EventMetadata.model_validate(metadata)
        return self._store(wrap_event(metadata))

    @serialized
    def store_results(self, event_id: int, results: Union[ProofOfFunResults, dict]) -> UploadReceipt:
        self._guard()
        results = ProofOfFunResults.model_validate(results)
        document = wrap_results(
            event_id,
            results,
            network=self.settings.RESULTS_NETWORK,
            contract=self.settings.PROOF_OF_FUN_ADDRESS,
        )
        return self._store(document)

    @serialized
    def store_catalog(self, items: Sequence[Union[MerchItem, dict]]) -> UploadReceipt:
        self._guard()
        return self._store(wrap_catalog([MerchItem.model_validate(i) for i in items]))

    @serialized
    def fetch(self, piece_cid: str, expected=None) -> StoredDocument:
        self._guard()
        document = decode(self.store.download(piece_cid), expected=expected)
        self._emit("document.fetched", document_type=document.type, piece_cid=piece_cid)
        return document

    @serialized
    def storage_info(self) -> List[ProviderInfo]:
        self._guard()
        providers = self.store.providers()
        self._emit("providers.listed", total=len(providers), active=sum(1 for p in providers if p.active))
        return providers

    # ---------- demo pipeline ----------
    @serialized
    def full_workflow(
        self,
        event: Optional[EventMetadata] = None,
        results: Optional[ProofOfFunResults] = None,
        items: Optional[Sequence[MerchItem]] = None,
        deposit: bool = True,
    ) -> WorkflowReport:
        """
        Deposit collateral, store one document of each kind, then download the
        results back and check they survived the round trip.
        """
        self._guard()
        event = event or samples.sample_event()
        results = results or samples.sample_results()
        items = items if items is not None else samples.sample_catalog()

        if deposit:
            self.ensure_collateral()
        self.storage_info()

        event_receipt = self.store_event(event)
        results_receipt = self.store_results(event.id, results)
        catalog_receipt = self.store_catalog(items)

        verified = self.fetch(results_receipt.piece_cid, expected=PROOF_OF_FUN_RESULTS)
        if payload_of(verified) != results or verified.event_id != event.id:
            raise StorageIntegrityError(
                f"Downloaded results from {results_receipt.piece_cid} do not match what was stored"
            )

        report = WorkflowReport(
            event=event_receipt,
            results=results_receipt,
            catalog=catalog_receipt,
            verified=verified,
        )
        self._emit("workflow.completed", total_bytes=report.total_bytes)
        return report
