"""
Error taxonomy for Binance Vault.

Every exception raised by the package carries an ``ErrorKind``. The web
layer maps kinds to HTTP status codes; nothing below it knows about HTTP.
"""
from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Closed set of failure kinds surfaced by the package."""

    CONFIGURATION = "configuration"
    INVALID_FORMAT = "invalid_format"
    AUTHENTICATION_FAILURE = "authentication_failure"
    UPSTREAM_FAILURE = "upstream_failure"
    INVALID_REQUEST = "invalid_request"
    INVALID_CREDENTIALS = "invalid_credentials"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"


class BinanceVaultError(Exception):
    """Base class for all package errors."""

    kind: ErrorKind = ErrorKind.INVALID_REQUEST

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ConfigurationError(BinanceVaultError):
    """Missing or malformed startup configuration. Fatal."""

    kind = ErrorKind.CONFIGURATION


class InvalidFormat(BinanceVaultError):
    """An encrypted payload does not have the expected shape."""

    kind = ErrorKind.INVALID_FORMAT


class AuthenticationFailure(BinanceVaultError):
    """The authentication tag of an encrypted payload did not verify."""

    kind = ErrorKind.AUTHENTICATION_FAILURE


class UpstreamFailure(BinanceVaultError):
    """A call to the exchange failed or timed out.

    Args:
        message: Human readable message, taken from the remote payload
            when it has one.
        status: HTTP status returned by the exchange, if any.
    """

    kind = ErrorKind.UPSTREAM_FAILURE

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class InvalidRequest(BinanceVaultError):
    """Caller supplied invalid input."""

    kind = ErrorKind.INVALID_REQUEST


class InvalidCredentials(BinanceVaultError):
    """The exchange rejected a key pair during verification."""

    kind = ErrorKind.INVALID_CREDENTIALS


class AccountNotFound(BinanceVaultError):
    """No credential account matches the given id (and owner)."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, account_id: int) -> None:
        super().__init__("Account not found")
        self.account_id = account_id


class SymbolNotFound(BinanceVaultError):
    """No saved symbol matches the given id on the account."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, symbol_id: int) -> None:
        super().__init__("Symbol not found")
        self.symbol_id = symbol_id


class Conflict(BinanceVaultError):
    """The write collides with an existing unique record."""

    kind = ErrorKind.CONFLICT
