"""
Service Configuration — environment settings and logging setup.

Reads:
    PORT                 listen port (default 3000)
    APP_ENV              development | production | test
    LOG_LEVEL            DEBUG | INFO | WARNING | ERROR
    BINANCE_API_KEY      optional default key pair, used when a request
    BINANCE_API_SECRET   names no account
    BINANCE_TIMEOUT      outbound timeout in seconds (default 15)
    BINANCE_RECV_WINDOW  default recvWindow in ms (default 5000)
    DATABASE_URL         asyncpg DSN of the account store

The vault master key (``APP_ENC_KEY``) is read by :mod:`binance_vault.vault`.
"""
import os
import sys
import logging
from typing import Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .client import Credentials
from .exceptions import ConfigurationError

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: str = "INFO") -> None:
    """Install the process-wide logging format."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        stream=sys.stdout,
        force=True,
    )
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)


class AppConfig(BaseModel):
    """Validated service configuration."""

    port: int = Field(default=3000, ge=1, le=65535)
    env: str = Field(default="development")
    log_level: str = Field(default="INFO")
    binance_api_key: Optional[str] = None
    binance_api_secret: Optional[str] = Field(default=None, repr=False)
    request_timeout: float = Field(default=15.0, ge=1, le=60)
    recv_window: int = Field(default=5000, ge=1, le=60000)
    database_url: Optional[str] = Field(default=None, repr=False)

    @field_validator("env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate the deployment environment name."""
        if v not in ("development", "production", "test"):
            raise ValueError(f"Unsupported environment: {v}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        v = v.upper()
        if v not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unsupported log level: {v}")
        return v

    @model_validator(mode="after")
    def validate_default_credentials(self) -> "AppConfig":
        """Default key and secret come as a pair."""
        if bool(self.binance_api_key) != bool(self.binance_api_secret):
            raise ValueError(
                "BINANCE_API_KEY and BINANCE_API_SECRET must be set together"
            )
        return self

    @property
    def default_credentials(self) -> Optional[Credentials]:
        if self.binance_api_key and self.binance_api_secret:
            return Credentials(
                api_key=self.binance_api_key, api_secret=self.binance_api_secret,
            )
        return None

    @classmethod
    def from_env(cls, environ: Optional[dict] = None) -> "AppConfig":
        """Create AppConfig by loading values from environment.

        Raises:
            ConfigurationError: If a value is malformed.
        """
        env = os.environ if environ is None else environ
        values = {
            "port": env.get("PORT"),
            "env": env.get("APP_ENV"),
            "log_level": env.get("LOG_LEVEL"),
            "binance_api_key": env.get("BINANCE_API_KEY"),
            "binance_api_secret": env.get("BINANCE_API_SECRET"),
            "request_timeout": env.get("BINANCE_TIMEOUT"),
            "recv_window": env.get("BINANCE_RECV_WINDOW"),
            "database_url": env.get("DATABASE_URL"),
        }
        try:
            return cls(**{k: v.strip() for k, v in values.items() if v and v.strip()})
        except ValidationError as err:
            raise ConfigurationError(str(err)) from None
