# pof_storage/errors.py
from decimal import Decimal
from typing import Optional


class PofStorageError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(PofStorageError):
    """Startup-only: required configuration is missing or invalid."""


class InvalidAccountError(PofStorageError):
    """The account credential is not a valid private key."""


class ConnectivityError(PofStorageError):
    """The ledger RPC or the storage service could not be reached.

    Transient; retrying is left to the caller.
    """


class InsufficientCollateralError(PofStorageError):
    def __init__(self, required: Decimal, available: Decimal, funding_url: str, symbol: str = "USDFC"):
        self.required = required
        self.available = available
        self.shortfall = required - available
        self.funding_url = funding_url
        self.symbol = symbol
        super().__init__(
            f"Insufficient balance: need {required} {symbol}, have {available} "
            f"(short {self.shortfall}). Get test tokens at: {funding_url}"
        )


class TransactionRejectedError(PofStorageError):
    def __init__(self, message: str, tx_hash: Optional[str] = None):
        self.tx_hash = tx_hash
        super().__init__(message if tx_hash is None else f"{message} (tx {tx_hash})")


class TransactionPendingError(PofStorageError):
    """Broadcast, but no receipt arrived in time. It may still be mined; do not resend."""

    def __init__(self, tx_hash: str):
        self.tx_hash = tx_hash
        super().__init__(f"Transaction {tx_hash} is still pending; check it on the explorer before retrying")


class StorageIntegrityError(PofStorageError):
    """The storage network acknowledged something other than what was sent."""


class StorageServiceError(PofStorageError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class NotFoundError(PofStorageError):
    def __init__(self, piece_cid: str):
        self.piece_cid = piece_cid
        super().__init__(f"No content stored under {piece_cid}")


class SchemaMismatchError(PofStorageError):
    """A downloaded document does not match any expected envelope."""


class UninitializedError(PofStorageError):
    pass


class ClosedSessionError(PofStorageError):
    pass
