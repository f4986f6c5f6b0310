# pof_storage/schemas.py
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, condecimal, model_validator

SCHEMA_VERSION = 1
# artifacts written before schema_version existed
LEGACY_SCHEMA_VERSION = 1

EVENT_METADATA = "event_metadata"
PROOF_OF_FUN_RESULTS = "proof_of_fun_results"
MERCH_CATALOG = "merch_catalog"

# keeps 150 as 150 and 4.5 as 4.5 in the JSON artifact
Number = Union[int, float]


# ---------- Payloads ----------
class EventMetadata(BaseModel):
    id: int
    name: str
    description: str
    location: str
    start_date: str
    end_date: str
    categories: List[str]
    contract_address: str


class CategoryRating(BaseModel):
    average: Number
    total_votes: int
    distribution: Dict[str, int]


class ProofOfFunResults(BaseModel):
    event_name: str
    total_votes: int
    total_attendees: int
    participation_rate: Number
    category_ratings: Dict[str, CategoryRating]
    overall_rating: Number
    verified_on_chain: bool


class MerchItem(BaseModel):
    id: int
    name: str
    description: str
    token_price: Number
    stock: int
    sizes: Optional[List[str]] = None
    category: str


# ---------- Envelopes ----------
class EventDocument(BaseModel):
    type: Literal["event_metadata"] = EVENT_METADATA
    timestamp: str
    data: EventMetadata
    schema_version: int = SCHEMA_VERSION


class ResultsDocument(BaseModel):
    type: Literal["proof_of_fun_results"] = PROOF_OF_FUN_RESULTS
    event_id: int
    timestamp: str
    results: ProofOfFunResults
    blockchain_verified: bool = True
    network: str
    contract: Optional[str] = None
    schema_version: int = SCHEMA_VERSION


class CatalogDocument(BaseModel):
    type: Literal["merch_catalog"] = MERCH_CATALOG
    timestamp: str
    total_items: int
    items: List[MerchItem]
    schema_version: int = SCHEMA_VERSION

    @model_validator(mode="after")
    def _count_matches(self):
        if self.total_items != len(self.items):
            raise ValueError(f"total_items={self.total_items} but {len(self.items)} items present")
        return self


class UnknownDocument(BaseModel):
    """Envelope with a type tag this client does not know; kept verbatim."""

    type: str
    timestamp: Optional[str] = None
    raw: Dict[str, Any]


StoredDocument = Union[EventDocument, ResultsDocument, CatalogDocument, UnknownDocument]


# ---------- API ----------
class ReceiptOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    piece_cid: str
    size: int
    document_type: Optional[str] = None


class CollateralIn(BaseModel):
    amount: Optional[condecimal(gt=0)] = Field(default=None, description="USDFC to deposit; defaults to DEFAULT_DEPOSIT_AMOUNT")


class CollateralOut(BaseModel):
    tx_hash: str
    amount: str


class WorkflowOut(BaseModel):
    event: ReceiptOut
    results: ReceiptOut
    catalog: ReceiptOut
    total_bytes: int
    verified_piece_cid: str
