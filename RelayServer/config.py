import os
from pathlib import Path

from core.context import RelaySettings

def _flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")

UPLOAD_DIR = os.getenv("RELAY_UPLOAD_DIR", os.path.join(os.getcwd(), "uploads"))
PUBLIC_DIR = os.getenv("RELAY_PUBLIC_DIR", os.path.join(os.getcwd(), "public"))

LISTING_TIMEOUT = float(os.getenv("RELAY_LISTING_TIMEOUT", "15"))
FETCH_TIMEOUT = float(os.getenv("RELAY_FETCH_TIMEOUT", "60"))
ACCEPT_EMPTY_LISTING = _flag("RELAY_ACCEPT_EMPTY_LISTING")
ARCHIVE_LEVEL = int(os.getenv("RELAY_ARCHIVE_LEVEL", "9"))

STAGED_MAX_AGE = float(os.getenv("RELAY_STAGED_MAX_AGE", "3600"))
SWEEP_INTERVAL = float(os.getenv("RELAY_SWEEP_INTERVAL", "300"))  # 0 disables

CORS_ORIGINS = [o.strip() for o in os.getenv("RELAY_CORS_ORIGINS", "*").split(",") if o.strip()]

HOST = os.getenv("RELAY_HOST", "0.0.0.0")
PORT = int(os.getenv("RELAY_PORT", os.getenv("PORT", "3000")))
WS_MAX_SIZE = int(os.getenv("RELAY_WS_MAX_SIZE", str(200 * 1024 * 1024)))

def load_settings() -> RelaySettings:
    return RelaySettings(
        upload_dir=Path(UPLOAD_DIR),
        listing_timeout=LISTING_TIMEOUT,
        fetch_timeout=FETCH_TIMEOUT,
        accept_empty_listing=ACCEPT_EMPTY_LISTING,
        archive_compresslevel=ARCHIVE_LEVEL,
        staged_max_age=STAGED_MAX_AGE,
        sweep_interval=SWEEP_INTERVAL,
    )
