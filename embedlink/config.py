"""
EmbedLink Configuration.

Provides sensible defaults with override capability.
"""

from pydantic import BaseModel, Field, ConfigDict
from pathlib import Path
from typing import Any, Optional
import json
import logging
import os


DEFAULT_BASE_URL = "https://withpaper.com"
EMBEDDED_WALLET_PATH = "/sdk/2022-08-12/embedded-wallet"


class EmbedLinkConfig(BaseModel):
    """
    Configuration for EmbedLink channels.

    Environment variables override defaults (EMBEDLINK_* prefix).
    """

    # Target location
    base_url: str = DEFAULT_BASE_URL
    embedded_wallet_path: str = EMBEDDED_WALLET_PATH

    # Calls
    call_timeout: float = Field(default=30.0, gt=0)
    load_timeout: float = Field(default=10.0, gt=0)
    retry_attempts: int = Field(default=0, ge=0)  # caller-side only

    # Storage
    data_dir: Path = Field(default_factory=lambda: Path.home() / ".embedlink")

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def model_post_init(self, __context):
        """Apply environment variable overrides."""
        self._apply_env_overrides()
        if isinstance(self.data_dir, str):
            self.data_dir = Path(self.data_dir)

    def _apply_env_overrides(self):
        """Override config from environment variables."""
        env_map = {
            "EMBEDLINK_BASE_URL": ("base_url", str),
            "EMBEDLINK_CALL_TIMEOUT": ("call_timeout", float),
            "EMBEDLINK_LOAD_TIMEOUT": ("load_timeout", float),
            "EMBEDLINK_RETRY_ATTEMPTS": ("retry_attempts", int),
            "EMBEDLINK_DATA_DIR": ("data_dir", Path),
            "EMBEDLINK_LOG_LEVEL": ("log_level", str),
        }

        for env_var, (attr, type_fn) in env_map.items():
            value = os.environ.get(env_var)
            if value is not None:
                setattr(self, attr, type_fn(value))

    def storage_path(self, client_id: str) -> Path:
        """Full path to the key/value store of one client."""
        return self.data_dir / f"{client_id}.storage.json"

    def configure_logging(self) -> None:
        """Configure root logging from log_level/log_file."""
        logging.basicConfig(
            level=getattr(logging, self.log_level.upper(), logging.INFO),
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
            filename=self.log_file,
        )

    def to_dict(self) -> dict[str, Any]:
        """Export config to dictionary."""
        return {
            "base_url": self.base_url,
            "embedded_wallet_path": self.embedded_wallet_path,
            "call_timeout": self.call_timeout,
            "load_timeout": self.load_timeout,
            "retry_attempts": self.retry_attempts,
            "data_dir": str(self.data_dir),
            "log_level": self.log_level,
        }

    def save(self, path: Optional[Path] = None):
        """Save config to file."""
        path = path or (self.data_dir / "config.json")
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, path: Path) -> "EmbedLinkConfig":
        """Load config from file."""
        with open(path) as f:
            data = json.load(f)

        return cls(
            base_url=data.get("base_url", DEFAULT_BASE_URL),
            embedded_wallet_path=data.get("embedded_wallet_path", EMBEDDED_WALLET_PATH),
            call_timeout=data.get("call_timeout", 30.0),
            load_timeout=data.get("load_timeout", 10.0),
            retry_attempts=data.get("retry_attempts", 0),
            data_dir=Path(data.get("data_dir", Path.home() / ".embedlink")),
            log_level=data.get("log_level", "INFO"),
        )

    @classmethod
    def development(cls) -> "EmbedLinkConfig":
        """Create development config pointed at a local embedded server."""
        return cls(
            base_url="http://localhost:8765",
            data_dir=Path.home() / ".embedlink-dev",
            call_timeout=5.0,
            log_level="DEBUG",
        )

    @classmethod
    def production(cls) -> "EmbedLinkConfig":
        """Create production config with strict settings."""
        return cls(
            call_timeout=30.0,
            retry_attempts=0,
            log_level="WARNING",
        )
