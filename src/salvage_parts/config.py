"""Configuration for the salvage parts catalog."""

import os
from pathlib import Path


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


# Server settings
HTTP_PORT = int(os.getenv("HTTP_PORT", "8080"))
MAX_QUERY_LENGTH = 500

# Storage - configurable via environment variables
DATA_DIR = Path(os.getenv("SALVAGE_DATA_DIR", "."))
DB_PATH = Path(os.getenv("SALVAGE_DB_PATH", str(DATA_DIR / "salvage.db")))
TEMPLATES_DIR = Path(os.getenv("SALVAGE_TEMPLATES_DIR", str(DATA_DIR / "templates")))

# Reject parts whose type has no template (free-form types otherwise)
STRICT_TYPES = _env_flag("SALVAGE_STRICT_TYPES", "1")
# Reject units whose domain disagrees with the field (permissive by default)
CHECK_UNIT_DOMAINS = _env_flag("SALVAGE_CHECK_UNIT_DOMAINS", "0")

# Location hierarchy
MAX_LOCATION_DEPTH = 100  # Parent walks stop here even on corrupt data
DEFAULT_LOCATION_TYPE = "BOX"

# Federated search
PEER_TIMEOUT = float(os.getenv("PEER_TIMEOUT", "0.5"))  # Seconds, per peer
PEER_SEARCH_PATH = "/api/federated/search"
PEER_USER_AGENT = "salvage-parts"
