# pof_storage/crud.py
# Caller-side record of upload receipts. The workflow itself keeps none.

from typing import List, Optional

from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine, select

from .models import StoredReceipt
from .storage import UploadReceipt

_engine: Optional[Engine] = None


def init_db(database_url: str) -> Engine:
    """Create the engine and the receipts table."""
    global _engine
    _engine = create_engine(database_url, echo=False)
    SQLModel.metadata.create_all(_engine)
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Receipt database not initialized; call init_db() first")
    return _engine


def record_receipt(receipt: UploadReceipt, document_type: str, account: str) -> StoredReceipt:
    with Session(get_engine()) as s:
        row = StoredReceipt(
            piece_cid=receipt.piece_cid,
            size=receipt.size,
            document_type=document_type,
            account=account,
        )
        s.add(row)
        s.commit()
        s.refresh(row)
        return row


def get_receipt(piece_cid: str) -> Optional[StoredReceipt]:
    with Session(get_engine()) as s:
        q = select(StoredReceipt).where(StoredReceipt.piece_cid == piece_cid)
        return s.exec(q).first()


def list_receipts(limit: int = 50, document_type: Optional[str] = None) -> List[StoredReceipt]:
    """Most recent receipts first, optionally one document type only."""
    with Session(get_engine()) as s:
        q = select(StoredReceipt)
        if document_type:
            q = q.where(StoredReceipt.document_type == document_type)
        q = q.order_by(StoredReceipt.created_at.desc(), StoredReceipt.id.desc()).limit(limit)
        return list(s.exec(q).all())
