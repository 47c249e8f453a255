"""
RTI Tracker - Configuration

All settings come from environment variables. get_settings() is cached;
tests build Settings directly instead of touching the environment.
"""
import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    """Runtime configuration for the engine and API."""

    # Storage
    data_dir: Path = Path("data")
    store_backend: str = Field(default="json", pattern="^(json|sql|memory)$")
    database_url: str = "sqlite:///data/rti.db"

    # Auth
    jwt_secret_key: str = "rti-tracker-secret-key-change-in-production"
    jwt_algorithm: str = "HS256"
    access_token_expire_hours: int = 24
    internal_api_key: str = "rti-internal-key-change-in-production"

    # External collaborators
    ledger_signing_key: str = "rti-ledger-key-change-in-production"
    ipfs_url: Optional[str] = None
    gateway_timeout_seconds: float = 30.0

    # Lifecycle
    overdue_threshold_ms: int = 5 * 60 * 1000
    allow_fallback_request_id: bool = False

    log_level: str = "INFO"


@lru_cache()
def get_settings() -> Settings:
    """Build settings from the process environment."""
    data_dir = Path(os.getenv("RTI_DATA_DIR", "data"))
    return Settings(
        data_dir=data_dir,
        store_backend=os.getenv("RTI_STORE_BACKEND", "json"),
        database_url=os.getenv("DATABASE_URL", f"sqlite:///{data_dir / 'rti.db'}"),
        jwt_secret_key=os.getenv("JWT_SECRET_KEY", "rti-tracker-secret-key-change-in-production"),
        access_token_expire_hours=int(os.getenv("ACCESS_TOKEN_EXPIRE_HOURS", "24")),
        internal_api_key=os.getenv("RTI_INTERNAL_API_KEY", "rti-internal-key-change-in-production"),
        ledger_signing_key=os.getenv("RTI_LEDGER_SIGNING_KEY", "rti-ledger-key-change-in-production"),
        ipfs_url=os.getenv("RTI_IPFS_URL") or None,
        gateway_timeout_seconds=float(os.getenv("RTI_GATEWAY_TIMEOUT_SECONDS", "30")),
        overdue_threshold_ms=int(os.getenv("RTI_OVERDUE_THRESHOLD_MS", str(5 * 60 * 1000))),
        allow_fallback_request_id=_env_bool("RTI_ALLOW_FALLBACK_REQUEST_ID"),
        log_level=os.getenv("RTI_LOG_LEVEL", "INFO"),
    )
