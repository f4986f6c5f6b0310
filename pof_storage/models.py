# pof_storage/models.py
from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StoredReceipt(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    piece_cid: str = Field(index=True)
    size: int
    document_type: str
    account: str
    created_at: datetime = Field(default_factory=utcnow)
