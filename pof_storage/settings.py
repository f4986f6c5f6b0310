# pof_storage/settings.py
from decimal import Decimal
from functools import lru_cache
from typing import Optional

from pydantic import Field, ValidationError, condecimal
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError

CALIBRATION_RPC_URL = "https://api.calibration.node.glif.io/rpc/v1"
TFIL_FAUCET_URL = "https://faucet.calibnet.chainsafe-fil.io/"
USDFC_FAUCET_URL = "https://forest-explorer.chainsafe.dev/faucet/calibnet_usdfc"
EXPLORER_URL = "https://calibration.filscan.io/address/"

# 30 second epochs
EPOCHS_PER_DAY = 2880
EPOCHS_PER_MONTH = EPOCHS_PER_DAY * 30
MAX_UINT256 = 2**256 - 1


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore", str_strip_whitespace=True)

    PRIVATE_KEY: str = Field(min_length=1)
    RPC_URL: str = CALIBRATION_RPC_URL
    DEFAULT_DEPOSIT_AMOUNT: condecimal(gt=0) = Decimal("2.5")

    USDFC_ADDRESS: Optional[str] = None
    PAYMENTS_ADDRESS: Optional[str] = None
    WARM_STORAGE_ADDRESS: Optional[str] = None

    STORAGE_API_URL: str = "http://127.0.0.1:4702"
    STORAGE_API_TOKEN: Optional[str] = None
    STORAGE_TIMEOUT: int = 60

    PROOF_OF_FUN_ADDRESS: Optional[str] = None
    RESULTS_NETWORK: str = "Base Sepolia"

    DATABASE_URL: str = "sqlite:///./receipts.db"
    BALANCE_CHECK_MINUTES: int = 10
    LOG_LEVEL: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Load settings once per process; a missing or invalid value is fatal."""
    try:
        return Settings()
    except ValidationError as e:
        missing = [".".join(str(p) for p in err["loc"]) for err in e.errors()]
        raise ConfigurationError(
            f"Invalid or missing configuration: {', '.join(missing)}. "
            "Copy .env.example to .env and set PRIVATE_KEY."
        ) from e
