# pof_storage/codec.py
"""Envelope construction and the canonical JSON encoding stored on the network.

Artifacts are UTF-8 JSON, pretty-printed with 2-space indentation, keys in
envelope order. Independent readers of the same pieces depend on this shape,
so `encode` must stay byte-stable for a given document.
"""
import json
from datetime import datetime, timezone
from typing import Iterable, Optional, Sequence, Union

from pydantic import ValidationError

from .errors import SchemaMismatchError
from .schemas import (
    EVENT_METADATA,
    MERCH_CATALOG,
    PROOF_OF_FUN_RESULTS,
    SCHEMA_VERSION,
    LEGACY_SCHEMA_VERSION,
    CatalogDocument,
    EventDocument,
    EventMetadata,
    MerchItem,
    ProofOfFunResults,
    ResultsDocument,
    StoredDocument,
    UnknownDocument,
)

DOCUMENT_TYPES = {
    EVENT_METADATA: EventDocument,
    PROOF_OF_FUN_RESULTS: ResultsDocument,
    MERCH_CATALOG: CatalogDocument,
}


def utc_timestamp(now: Optional[datetime] = None) -> str:
    """ISO-8601 UTC with millisecond precision, e.g. 2025-11-20T12:00:00.000Z"""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def wrap_event(metadata: EventMetadata, timestamp: Optional[str] = None) -> EventDocument:
    return EventDocument(timestamp=timestamp or utc_timestamp(), data=metadata)


def wrap_results(
    event_id: int,
    results: ProofOfFunResults,
    network: str,
    contract: Optional[str] = None,
    verified: bool = True,
    timestamp: Optional[str] = None,
) -> ResultsDocument:
    return ResultsDocument(
        event_id=event_id,
        timestamp=timestamp or utc_timestamp(),
        results=results,
        blockchain_verified=verified,
        network=network,
        contract=contract,
    )


def wrap_catalog(items: Sequence[MerchItem], timestamp: Optional[str] = None) -> CatalogDocument:
    return CatalogDocument(timestamp=timestamp or utc_timestamp(), total_items=len(items), items=list(items))


def encode(document: StoredDocument) -> bytes:
    if isinstance(document, UnknownDocument):
        payload = document.raw
    else:
        # unset optionals (contract, item sizes) are left out, not written as null
        payload = document.model_dump(mode="json", exclude_none=True)
    return json.dumps(payload, indent=2, ensure_ascii=False).encode("utf-8")


def decode(raw: bytes, expected: Union[str, Iterable[str], None] = None) -> StoredDocument:
    """
    Parse an artifact back into its typed envelope.

    Unrecognized tags come back as UnknownDocument, unless `expected` narrows
    the accepted tags, in which case anything else is a SchemaMismatchError.
    """
    try:
        obj = json.loads(bytes(raw).decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise SchemaMismatchError(f"Artifact is not UTF-8 JSON: {e}") from e
    if not isinstance(obj, dict):
        raise SchemaMismatchError(f"Artifact is not an envelope object: {type(obj).__name__}")

    tag = obj.get("type")
    if expected is not None:
        allowed = {expected} if isinstance(expected, str) else set(expected)
        if tag not in allowed:
            raise SchemaMismatchError(f"Expected document type {sorted(allowed)}, got {tag!r}")

    model = DOCUMENT_TYPES.get(tag)
    if model is None:
        return UnknownDocument(
            type=tag if isinstance(tag, str) else "",
            timestamp=obj.get("timestamp") if isinstance(obj.get("timestamp"), str) else None,
            raw=obj,
        )

    version = obj.get("schema_version", LEGACY_SCHEMA_VERSION)
    if not isinstance(version, int) or version > SCHEMA_VERSION:
        raise SchemaMismatchError(f"Unsupported schema_version {version!r} for {tag}")

    try:
        return model.model_validate({**obj, "schema_version": version})
    except ValidationError as e:
        raise SchemaMismatchError(f"Invalid {tag} document: {e}") from e


def payload_of(document: StoredDocument):
    """The typed record an envelope carries, without envelope metadata."""
    if isinstance(document, EventDocument):
        return document.data
    if isinstance(document, ResultsDocument):
        return document.results
    if isinstance(document, CatalogDocument):
        return document.items
    return document.raw
