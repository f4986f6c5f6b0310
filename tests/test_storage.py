import pytest

from pof_storage.errors import (
    ConnectivityError,
    NotFoundError,
    StorageIntegrityError,
    StorageServiceError,
    UninitializedError,
)
from pof_storage.storage import ContentStoreClient, ProviderInfo

from .conftest import FakeResponse, STORAGE_URL

DOC = b'{\n  "type": "event_metadata",\n  "data": {"name": "Test Event"}\n}'


def test_calls_before_open_fail_without_network(store, service):
    with pytest.raises(UninitializedError):
        store.upload(DOC)
    with pytest.raises(UninitializedError):
        store.download("bafkzcibdxyz")
    with pytest.raises(UninitializedError):
        store.providers()
    assert service.calls == []


def test_upload_returns_cid_and_exact_size(store, account):
    store.open(account)
    receipt = store.upload(DOC)
    assert receipt.piece_cid.startswith("bafkzcib")
    assert receipt.size == len(DOC)


@pytest.mark.parametrize("data", [b"x", b"a" * 127, bytes(range(256)) * 40])
def test_size_integrity_for_any_buffer(store, account, data):
    store.open(account)
    assert store.upload(data).size == len(data)


def test_same_bytes_same_identifier(store, account):
    store.open(account)
    assert store.upload(DOC).piece_cid == store.upload(DOC).piece_cid
    assert store.upload(DOC).piece_cid != store.upload(DOC + b" ").piece_cid


def test_size_mismatch_is_integrity_error(store, service, account):
    service.size_override = 3
    store.open(account)
    with pytest.raises(StorageIntegrityError):
        store.upload(DOC)


def test_empty_buffer_refused(store, account):
    store.open(account)
    with pytest.raises(ValueError):
        store.upload(b"")


def test_download_round_trip_refetches(store, service, account):
    store.open(account)
    cid = store.upload(DOC).piece_cid
    assert store.download(cid) == DOC
    assert store.download(cid) == DOC
    assert service.calls.count(("GET", f"{STORAGE_URL}/piece/{cid}")) == 2


def test_download_miss_is_not_found(store, account):
    store.open(account)
    with pytest.raises(NotFoundError) as info:
        store.download("bafkzcibdmissing")
    assert info.value.piece_cid == "bafkzcibdmissing"


def test_transport_failure_is_connectivity_error(store, service, account):
    store.open(account)
    service.offline = True
    with pytest.raises(ConnectivityError):
        store.upload(DOC)
    with pytest.raises(ConnectivityError):
        store.download("bafkzcibdxyz")


def test_service_error_carries_status(store, service, account):
    service.upload_status = 503
    store.open(account)
    with pytest.raises(StorageServiceError) as info:
        store.upload(DOC)
    assert info.value.status_code == 503


def test_session_headers_are_signed_by_account(service, account):
    client = ContentStoreClient(STORAGE_URL, token="secret", session_factory=service.session)
    client.open(account)
    session = client._session
    assert session.headers["X-Account-Address"] == account.address
    assert session.headers["Authorization"] == "Bearer secret"
    assert session._authorized()


def test_providers_listing(store, account):
    store.open(account)
    providers = store.providers()
    assert providers[0] == ProviderInfo(
        id=1, name="ezpdp", active=True, service_provider="0x0000000000000000000000000000000000000001"
    )
    assert [p.active for p in providers] == [True, False]


def test_close_releases_session(store, account):
    store.open(account)
    session = store._session
    store.close()
    assert session.closed
    assert not store.is_open
    with pytest.raises(UninitializedError):
        store.upload(DOC)


def test_download_quotes_identifier_in_path(store, service, account):
    store.open(account)
    with pytest.raises(NotFoundError):
        store.download("bafk/../providers")
    assert service.calls[-1] == ("GET", f"{STORAGE_URL}/piece/bafk%2F..%2Fproviders")


def test_non_object_upload_response_is_integrity_error(store, account, monkeypatch):
    store.open(account)
    monkeypatch.setattr(store._session, "post", lambda url, files=None, timeout=None: FakeResponse(200, ["bafk"]))
    with pytest.raises(StorageIntegrityError):
        store.upload(DOC)


@pytest.mark.parametrize("body", [["ezpdp"], {"providers": [{"name": "no id"}]}, {"providers": "none"}])
def test_malformed_provider_listing_is_service_error(store, account, monkeypatch, body):
    store.open(account)
    monkeypatch.setattr(store._session, "get", lambda url, timeout=None: FakeResponse(200, body))
    with pytest.raises(StorageServiceError):
        store.providers()
