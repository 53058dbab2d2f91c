"""Binance Vault.

Encrypted storage of Binance API credentials and signed REST calls to the
Binance Spot, Futures, Options and Margin APIs.
"""
from .version import __version__
from .exceptions import (
    ErrorKind,
    BinanceVaultError,
    ConfigurationError,
    InvalidFormat,
    AuthenticationFailure,
    UpstreamFailure,
    InvalidRequest,
    InvalidCredentials,
    AccountNotFound,
    SymbolNotFound,
    Conflict,
)
from .vault import CredentialVault
from .signing import sign
from .markets import Market, TradesQuery
from .client import BinanceClient, Credentials

__all__ = [
    "__version__",
    "ErrorKind",
    "BinanceVaultError",
    "ConfigurationError",
    "InvalidFormat",
    "AuthenticationFailure",
    "UpstreamFailure",
    "InvalidRequest",
    "InvalidCredentials",
    "AccountNotFound",
    "SymbolNotFound",
    "Conflict",
    "CredentialVault",
    "sign",
    "Market",
    "TradesQuery",
    "BinanceClient",
    "Credentials",
]
