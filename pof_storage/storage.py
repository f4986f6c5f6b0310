# pof_storage/storage.py
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional
from urllib.parse import quote

import requests
from requests.exceptions import RequestException

from .blockchain import Account
from .errors import (
    ConnectivityError,
    NotFoundError,
    StorageIntegrityError,
    StorageServiceError,
    UninitializedError,
)

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadReceipt:
    piece_cid: str
    size: int


@dataclass(frozen=True)
class ProviderInfo:
    id: int
    name: str
    active: bool
    service_provider: str


def session_message(address: str, issued_at: str) -> str:
    """Text the account signs to authenticate a storage session."""
    return f"Filecoin warm storage session\naddress: {address}\nissued-at: {issued_at}"


class ContentStoreClient:
    """
    Client for the warm-storage service: one authenticated HTTP session per
    account. Nothing downloaded is cached.
    """

    def __init__(
        self,
        api_url: str,
        token: Optional[str] = None,
        timeout: int = 60,
        session_factory: Callable[[], requests.Session] = requests.Session,
    ):
        self.api_url = api_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self._session_factory = session_factory
        self._session: Optional[requests.Session] = None

    @property
    def is_open(self) -> bool:
        return self._session is not None

    def open(self, account: Account) -> None:
        session = self._session_factory()
        session.headers.update(self._auth_headers(account))
        self._session = session
        log.info("Storage session opened", extra={"address": account.address})

    def _auth_headers(self, account: Account) -> Dict[str, str]:
        issued_at = str(int(time.time()))
        headers = {
            "X-Account-Address": account.address,
            "X-Session-Issued-At": issued_at,
            "X-Session-Signature": account.sign_text(session_message(account.address, issued_at)),
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _require_session(self) -> requests.Session:
        if self._session is None:
            raise UninitializedError("Storage session is not open; call open() first")
        return self._session

    @staticmethod
    def _check_status(res, what: str) -> None:
        if res.status_code >= 400:
            raise StorageServiceError(
                f"Storage service {what} failed: HTTP {res.status_code} {res.text[:200]}",
                status_code=res.status_code,
            )

    def upload(self, data: bytes) -> UploadReceipt:
        """Submit the whole buffer in one request and block until it is stored."""
        session = self._require_session()
        data = bytes(data)
        if not data:
            raise ValueError("Refusing to upload an empty buffer")

        try:
            res = session.post(
                f"{self.api_url}/pieces",
                files={"file": ("document.json", data, "application/json")},
                timeout=self.timeout,
            )
        except RequestException as e:
            raise ConnectivityError(f"Storage upload failed: {e}") from e
        self._check_status(res, "upload")

        try:
            body = res.json()
        except ValueError as e:
            raise StorageIntegrityError(f"Storage service returned a non-JSON upload response: {res.text[:200]}") from e
        if not isinstance(body, dict):
            raise StorageIntegrityError(f"Storage service returned an unexpected upload response: {body!r}")

        piece_cid = str(body.get("pieceCid") or "").strip()
        if not piece_cid:
            raise StorageIntegrityError(f"Storage service did not return a PieceCID: {body!r}")
        try:
            size = int(body.get("size"))
        except (TypeError, ValueError):
            size = -1
        if size != len(data):
            raise StorageIntegrityError(
                f"Uploaded {len(data)} bytes but storage service acknowledged {size} for {piece_cid}"
            )

        log.info("Piece stored", extra={"piece_cid": piece_cid, "size": size})
        return UploadReceipt(piece_cid=piece_cid, size=size)

    def download(self, piece_cid: str) -> bytes:
        session = self._require_session()
        cid = (piece_cid or "").strip()
        if not cid:
            raise ValueError("A PieceCID is required")

        try:
            res = session.get(f"{self.api_url}/piece/{quote(cid, safe='')}", timeout=self.timeout)
        except RequestException as e:
            raise ConnectivityError(f"Storage download failed: {e}") from e
        if res.status_code == 404:
            raise NotFoundError(cid)
        self._check_status(res, "download")

        log.info("Piece downloaded", extra={"piece_cid": cid, "size": len(res.content)})
        return res.content

    def providers(self) -> List[ProviderInfo]:
        session = self._require_session()
        try:
            res = session.get(f"{self.api_url}/providers", timeout=self.timeout)
        except RequestException as e:
            raise ConnectivityError(f"Listing storage providers failed: {e}") from e
        self._check_status(res, "provider listing")

        try:
            return [
                ProviderInfo(
                    id=int(p["id"]),
                    name=str(p.get("name") or ""),
                    active=bool(p.get("active")),
                    service_provider=str(p.get("serviceProvider") or ""),
                )
                for p in res.json().get("providers", [])
            ]
        except (ValueError, TypeError, KeyError, AttributeError) as e:
            raise StorageServiceError(
                f"Storage service returned a malformed provider listing: {res.text[:200]}",
                status_code=res.status_code,
            ) from e

    def close(self) -> None:
        if self._session is not None:
            self._session.close()
            self._session = None
