import os
from dataclasses import dataclass, field
from typing import ClassVar
from dotenv import load_dotenv

from stockclient.errors import ConfigurationError

load_dotenv()

def _parse_int(env_var: str, default: int) -> int:
    try:
        return int(os.getenv(env_var, str(default)))
    except ValueError:
        return default

def _parse_str(env_var: str, default: str) -> str:
    return os.getenv(env_var, default).strip()

@dataclass(frozen=True)
class Settings:
    # Remote stock server
    SERVICE_NAME: str = field(default_factory=lambda: _parse_str("STOCK_SERVICE_NAME", "stock-server"))
    SECRET: str = field(default_factory=lambda: _parse_str("STOCK_SERVER_SECRET", ""))
    TIMEOUT_MS: int = field(default_factory=lambda: _parse_int("STOCK_SERVER_TIMEOUT_MS", 15000))

    # Inbound endpoints
    CLIENT_PATHNAME: str = field(default_factory=lambda: _parse_str("STOCK_CLIENT_PATHNAME", "/client"))
    HOST: str = field(default_factory=lambda: _parse_str("HOST", "0.0.0.0"))

    # Logging
    LOG_LEVEL: str = field(default_factory=lambda: _parse_str("LOG_LEVEL", "INFO").upper())
    LOG_FILE: str = field(default_factory=lambda: _parse_str("LOG_FILE", ""))

    # Derived properties (read-only)
    TIMEOUT_S: ClassVar[float]

    def __post_init__(self):
        if not self.SERVICE_NAME:
            raise ConfigurationError("SERVICE_NAME must not be empty")
        if self.TIMEOUT_MS <= 0:
            raise ConfigurationError(f"TIMEOUT_MS must be positive, got {self.TIMEOUT_MS}")
        if not self.CLIENT_PATHNAME.startswith("/"):
            raise ConfigurationError(f"CLIENT_PATHNAME must start with '/', got {self.CLIENT_PATHNAME!r}")

        # requests takes seconds (frozen dataclass, hence object.__setattr__)
        object.__setattr__(self, 'TIMEOUT_S', self.TIMEOUT_MS / 1000.0)

    @property
    def has_secret(self) -> bool:
        return bool(self.SECRET)

def load_settings() -> Settings:
    return Settings()
