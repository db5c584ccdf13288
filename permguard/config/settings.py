"""
PermGuard - Runtime Configuration

Environment Variables:
  PERMGUARD_HOST          - HTTP bind address (default 127.0.0.1)
  PERMGUARD_PORT          - HTTP port (default 8775)
  PERMGUARD_OWNER         - owner address allowed to configure permissions
  PERMGUARD_DB_PATH       - SQLite policy store
  PERMGUARD_AUDIT_LOG     - JSONL audit chain (unset disables the audit chain)
  PERMGUARD_POLICY_PACK   - YAML policy pack applied at startup
  PERMGUARD_AUTH_TOKEN    - bearer token required on admin endpoints
  PERMGUARD_LOG_LEVEL     - logging level (default INFO)
  PERMGUARD_PERSIST       - save state to the store after every write (default false)
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

logger = logging.getLogger("permguard.config")

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8775
DEFAULT_DATA_DIR = Path.home() / ".permguard"

# Owner used when none is configured: nobody holds its key, so the guard is
# read-only until a stored state or PERMGUARD_OWNER provides a real owner.
NO_OWNER = "0x0000000000000000000000000000000000000000"


def _env_path(name: str) -> Optional[Path]:
    value = os.getenv(name)
    return Path(value).expanduser() if value else None


@dataclass
class GuardSettings:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    owner: str = NO_OWNER
    db_path: Optional[Path] = None
    audit_log_path: Optional[Path] = None
    policy_pack_path: Optional[Path] = None
    auth_token: str = ""
    log_level: str = "INFO"
    persist: bool = False

    @classmethod
    def from_env(cls) -> "GuardSettings":
        """Load configuration from environment variables."""
        return cls(
            host=os.getenv("PERMGUARD_HOST", DEFAULT_HOST),
            port=int(os.getenv("PERMGUARD_PORT", str(DEFAULT_PORT))),
            owner=os.getenv("PERMGUARD_OWNER", NO_OWNER),
            db_path=_env_path("PERMGUARD_DB_PATH"),
            audit_log_path=_env_path("PERMGUARD_AUDIT_LOG"),
            policy_pack_path=_env_path("PERMGUARD_POLICY_PACK"),
            auth_token=os.getenv("PERMGUARD_AUTH_TOKEN", ""),
            log_level=os.getenv("PERMGUARD_LOG_LEVEL", "INFO").upper(),
            persist=os.getenv("PERMGUARD_PERSIST", "false").lower() == "true",
        )

    @property
    def has_owner(self) -> bool:
        return self.owner.lower() != NO_OWNER

    def get_headers(self) -> dict:
        """Authentication headers for API requests."""
        if not self.auth_token:
            return {}
        return {"Authorization": f"Bearer {self.auth_token}"}


def get_settings() -> GuardSettings:
    """Get the runtime settings from the environment."""
    return GuardSettings.from_env()
