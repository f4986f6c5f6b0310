# pof_storage/main.py
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from web3 import Web3

from .crud import get_receipt, init_db, list_receipts, record_receipt
from .errors import (
    ClosedSessionError,
    ConnectivityError,
    InsufficientCollateralError,
    NotFoundError,
    PofStorageError,
    SchemaMismatchError,
    StorageIntegrityError,
    StorageServiceError,
    TransactionPendingError,
    TransactionRejectedError,
    UninitializedError,
)
from .schemas import (
    EVENT_METADATA,
    MERCH_CATALOG,
    PROOF_OF_FUN_RESULTS,
    CollateralIn,
    CollateralOut,
    EventMetadata,
    MerchItem,
    ProofOfFunResults,
    ReceiptOut,
    UnknownDocument,
    WorkflowOut,
)
from .settings import get_settings
from .storage import UploadReceipt
from .tasks import build_scheduler
from .workflow import StorageWorkflow

app = FastAPI(title="Proof of Fun Storage")

_state = {"workflow": None, "scheduler": None}

_STATUS_BY_ERROR = [
    (InsufficientCollateralError, 402),
    (NotFoundError, 404),
    (SchemaMismatchError, 422),
    (ConnectivityError, 503),
    (StorageIntegrityError, 502),
    (StorageServiceError, 502),
    (TransactionRejectedError, 502),
    (TransactionPendingError, 504),
    (UninitializedError, 409),
    (ClosedSessionError, 409),
]


def status_for(exc: PofStorageError) -> int:
    for cls, status in _STATUS_BY_ERROR:
        if isinstance(exc, cls):
            return status
    return 500


@app.exception_handler(PofStorageError)
async def storage_error_handler(request: Request, exc: PofStorageError):
    body = {"detail": str(exc), "error": type(exc).__name__}
    if isinstance(exc, InsufficientCollateralError):
        body["shortfall"] = str(exc.shortfall)
        body["funding_url"] = exc.funding_url
    if isinstance(exc, (TransactionPendingError, TransactionRejectedError)) and exc.tx_hash:
        body["tx_hash"] = exc.tx_hash
    return JSONResponse(status_code=status_for(exc), content=body)


def get_workflow() -> StorageWorkflow:
    workflow = _state["workflow"]
    if workflow is None:
        raise HTTPException(status_code=503, detail="Storage workflow not initialized")
    return workflow


@app.on_event("startup")
def startup():
    settings = get_settings()
    init_db(settings.DATABASE_URL)
    workflow = StorageWorkflow(settings)
    workflow.initialize()
    _state["workflow"] = workflow

    scheduler = build_scheduler(workflow, settings.BALANCE_CHECK_MINUTES)
    scheduler.start()
    _state["scheduler"] = scheduler


@app.on_event("shutdown")
def shutdown():
    scheduler = _state["scheduler"]
    if scheduler is not None:
        scheduler.shutdown(wait=False)
    workflow = _state["workflow"]
    if workflow is not None:
        workflow.close()
    _state.update(workflow=None, scheduler=None)


def _recorded(workflow: StorageWorkflow, receipt: UploadReceipt, document_type: str) -> ReceiptOut:
    record_receipt(receipt, document_type, workflow.account.address)
    return ReceiptOut(piece_cid=receipt.piece_cid, size=receipt.size, document_type=document_type)


@app.get("/balances")
def balances(workflow: StorageWorkflow = Depends(get_workflow)):
    report = workflow.readiness()
    return {
        "address": report.address,
        "tfil": str(report.native_balance),
        "usdfc": str(report.token_balance),
        "chain_id": report.chain_id,
        "latest_block": report.latest_block,
        "active_providers": report.active_providers,
        "total_providers": report.total_providers,
        "ready": report.ready,
        "recommendations": report.recommendations(),
        "explorer_url": report.explorer_url,
    }


@app.post("/collateral", response_model=CollateralOut)
def deposit_collateral(data: CollateralIn, workflow: StorageWorkflow = Depends(get_workflow)):
    amount = data.amount or workflow.settings.DEFAULT_DEPOSIT_AMOUNT
    receipt = workflow.ensure_collateral(amount)
    return CollateralOut(tx_hash=Web3.to_hex(receipt["transactionHash"]), amount=str(amount))


@app.post("/events", response_model=ReceiptOut)
def store_event(metadata: EventMetadata, workflow: StorageWorkflow = Depends(get_workflow)):
    return _recorded(workflow, workflow.store_event(metadata), EVENT_METADATA)


@app.post("/events/{event_id}/results", response_model=ReceiptOut)
def store_results(event_id: int, results: ProofOfFunResults, workflow: StorageWorkflow = Depends(get_workflow)):
    return _recorded(workflow, workflow.store_results(event_id, results), PROOF_OF_FUN_RESULTS)


@app.post("/catalog", response_model=ReceiptOut)
def store_catalog(items: List[MerchItem], workflow: StorageWorkflow = Depends(get_workflow)):
    return _recorded(workflow, workflow.store_catalog(items), MERCH_CATALOG)


@app.get("/documents/{piece_cid}")
def fetch_document(piece_cid: str, type: Optional[str] = None, workflow: StorageWorkflow = Depends(get_workflow)):
    """Download a piece and return its decoded envelope."""
    document = workflow.fetch(piece_cid, expected=type)
    if isinstance(document, UnknownDocument):
        return document.raw
    return document.model_dump(mode="json", exclude_none=True)


@app.get("/providers")
def providers(workflow: StorageWorkflow = Depends(get_workflow)):
    return [
        {"id": p.id, "name": p.name, "active": p.active, "service_provider": p.service_provider}
        for p in workflow.storage_info()
    ]


@app.get("/receipts", response_model=List[ReceiptOut])
def receipts(limit: int = 50, document_type: Optional[str] = None):
    return list_receipts(limit=limit, document_type=document_type)


@app.get("/receipts/{piece_cid}", response_model=ReceiptOut)
def receipt(piece_cid: str):
    row = get_receipt(piece_cid)
    if row is None:
        raise HTTPException(status_code=404, detail=f"No receipt recorded for {piece_cid}")
    return row


@app.post("/workflow", response_model=WorkflowOut)
def run_workflow(deposit: bool = True, workflow: StorageWorkflow = Depends(get_workflow)):
    report = workflow.full_workflow(deposit=deposit)
    return WorkflowOut(
        event=_recorded(workflow, report.event, EVENT_METADATA),
        results=_recorded(workflow, report.results, PROOF_OF_FUN_RESULTS),
        catalog=_recorded(workflow, report.catalog, MERCH_CATALOG),
        total_bytes=report.total_bytes,
        verified_piece_cid=report.results.piece_cid,
    )
