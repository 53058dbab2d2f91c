"""
Binance account store — per-user API credentials with the secret encrypted.

Rows live in ``binance_accounts`` and are read through an asyncpg-compatible
pool. The API secret is written only as the vault's ``nonce:ciphertext:tag``
string and is never part of a row returned to callers.

Security Note:
    Never log API secrets or their encrypted form. Only log account ids,
    user ids and operations.
"""
import logging
from typing import Any, Optional

from pydantic import BaseModel, Field

from .client import BinanceClient, Credentials
from .exceptions import (
    AccountNotFound,
    AuthenticationFailure,
    InvalidFormat,
    InvalidRequest,
)
from .markets import parse_model
from .vault import CredentialVault

logger = logging.getLogger("binance_vault.accounts")

_UNIQUE_VIOLATION = "23505"

# ---------------------------------------------------------------------------
# SQL statements
# ---------------------------------------------------------------------------

SCHEMA = """
CREATE TABLE IF NOT EXISTS binance_accounts (
    id BIGSERIAL PRIMARY KEY,
    user_id BIGINT NOT NULL,
    user_platform_id BIGINT NOT NULL,
    api_key TEXT NOT NULL,
    api_secret TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    is_active BOOLEAN NOT NULL DEFAULT TRUE,
    is_default BOOLEAN NOT NULL DEFAULT FALSE,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    UNIQUE (user_id, user_platform_id, description)
);
CREATE INDEX IF NOT EXISTS binance_accounts_user_idx
    ON binance_accounts (user_id, user_platform_id);
"""

_SAFE_COLUMNS = (
    "id, user_id, user_platform_id, api_key, description, "
    "is_active, is_default, created_at, updated_at"
)

_SELECT_FOR_USER = f"""
SELECT {_SAFE_COLUMNS}
FROM binance_accounts
WHERE user_id = $1
ORDER BY is_default DESC, created_at DESC
"""

_SELECT_FOR_USER_PLATFORM = f"""
SELECT {_SAFE_COLUMNS}
FROM binance_accounts
WHERE user_id = $1 AND user_platform_id = $2
ORDER BY is_default DESC, created_at DESC
"""

_SELECT_BY_ID = """
SELECT id, user_id, user_platform_id, api_key, api_secret, is_active
FROM binance_accounts
WHERE id = $1
"""

_SELECT_OWNED = f"""
SELECT {_SAFE_COLUMNS}
FROM binance_accounts
WHERE id = $1 AND user_id = $2
"""

_INSERT_ACCOUNT = f"""
INSERT INTO binance_accounts
    (user_id, user_platform_id, api_key, api_secret, description, is_active, is_default)
VALUES ($1, $2, $3, $4, $5, $6, $7)
RETURNING {_SAFE_COLUMNS}
"""

_UPDATE_ACCOUNT = f"""
UPDATE binance_accounts
SET api_key = $3,
    api_secret = COALESCE($4, api_secret),
    description = $5,
    is_active = $6,
    is_default = $7,
    updated_at = NOW()
WHERE id = $1 AND user_id = $2
RETURNING {_SAFE_COLUMNS}
"""

_CLEAR_OTHER_DEFAULTS = """
UPDATE binance_accounts
SET is_default = FALSE, updated_at = NOW()
WHERE user_id = $1 AND user_platform_id = $2 AND id <> $3 AND is_default
"""

_DELETE_ACCOUNT = """
DELETE FROM binance_accounts
WHERE id = $1 AND user_id = $2
"""


# ---------------------------------------------------------------------------
# Payload models
# ---------------------------------------------------------------------------

class AccountCreate(BaseModel):
    """Payload to register a key pair."""

    user_platform_id: int = Field(alias="userPlatformId", gt=0)
    api_key: str = Field(alias="apiKey", min_length=1, max_length=200)
    api_secret: str = Field(alias="apiSecret", min_length=1, max_length=200, repr=False)
    description: str = Field(default="", max_length=100)
    is_active: bool = Field(default=True, alias="isActive")
    is_default: bool = Field(default=False, alias="isDefault")

    model_config = {"populate_by_name": True, "str_strip_whitespace": True}


class AccountUpdate(BaseModel):
    """Partial update; fields left as None are kept."""

    api_key: Optional[str] = Field(default=None, alias="apiKey", min_length=1, max_length=200)
    api_secret: Optional[str] = Field(
        default=None, alias="apiSecret", min_length=1, max_length=200, repr=False,
    )
    description: Optional[str] = Field(default=None, max_length=100)
    is_active: Optional[bool] = Field(default=None, alias="isActive")
    is_default: Optional[bool] = Field(default=None, alias="isDefault")

    model_config = {"populate_by_name": True, "str_strip_whitespace": True}


def parse_id(value: Any, name: str) -> int:
    """Validate a row id coming from a request.

    Raises:
        InvalidRequest: If it is not a positive integer.
    """
    try:
        row_id = int(str(value).strip())
    except (TypeError, ValueError):
        row_id = 0
    if row_id <= 0:
        logger.warning("Invalid %s received: %r", name, value)
        raise InvalidRequest(f"Invalid {name}")
    return row_id


def parse_account_id(value: Any) -> int:
    return parse_id(value, "accountId")


def _is_unique_violation(err: Exception) -> bool:
    return getattr(err, "sqlstate", None) == _UNIQUE_VIOLATION


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class BinanceAccountStore:
    """Credential accounts of the users, secrets encrypted through the vault.

    Args:
        db_pool: asyncpg-compatible connection pool.
        vault: Vault used to encrypt and decrypt API secrets.
        client: When given, key pairs are verified against the exchange
            before they are stored.
    """

    def __init__(
        self,
        db_pool: Any,
        vault: CredentialVault,
        client: Optional[BinanceClient] = None,
    ):
        self._db = db_pool
        self._vault = vault
        self._client = client

    async def create_schema(self) -> None:
        async with self._db.acquire() as conn:
            await conn.execute(SCHEMA)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_for_user(
        self, user_id: int, user_platform_id: Optional[int] = None,
    ) -> list[dict]:
        """Accounts of a user, default first, then newest."""
        async with self._db.acquire() as conn:
            if user_platform_id is None:
                rows = await conn.fetch(_SELECT_FOR_USER, user_id)
            else:
                rows = await conn.fetch(
                    _SELECT_FOR_USER_PLATFORM, user_id, user_platform_id,
                )
        return [dict(row) for row in rows]

    async def get(self, user_id: int, account_id: Any) -> dict:
        """One account of a user, without the secret."""
        account_id = parse_account_id(account_id)
        async with self._db.acquire() as conn:
            row = await conn.fetchrow(_SELECT_OWNED, account_id, user_id)
        if row is None:
            raise AccountNotFound(account_id)
        return dict(row)

    async def _fetch_secret_row(self, account_id: Any) -> dict:
        account_id = parse_account_id(account_id)
        async with self._db.acquire() as conn:
            row = await conn.fetchrow(_SELECT_BY_ID, account_id)
        if row is None:
            raise AccountNotFound(account_id)
        return dict(row)

    async def get_credentials(
        self, account_id: Any, user_id: Optional[int] = None,
    ) -> Credentials:
        """Load an account and decrypt its API secret.

        Args:
            account_id: Account to load.
            user_id: When given, the account must belong to this user.

        Raises:
            InvalidRequest: Invalid id or the row lacks a key pair.
            AccountNotFound: No such account (for this user).
            InvalidFormat, AuthenticationFailure: Stored secret unreadable.
        """
        row = await self._fetch_secret_row(account_id)
        if user_id is not None and row["user_id"] != user_id:
            raise AccountNotFound(row["id"])
        if not row.get("api_key") or not row.get("api_secret"):
            raise InvalidRequest("Missing API credentials in account")
        try:
            secret = self._vault.decrypt(row["api_secret"])
        except (InvalidFormat, AuthenticationFailure) as err:
            logger.error(
                "Decrypt failed for account %s: %s", row["id"], err.kind.value,
            )
            raise
        return Credentials(api_key=row["api_key"].strip(), api_secret=secret)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create(self, user_id: int, data: Any) -> dict:
        """Verify, encrypt and store a new key pair.

        Args:
            user_id: Owner of the account.
            data: :class:`AccountCreate` or a raw mapping.

        Returns:
            The stored row, without the secret.
        """
        if not isinstance(data, AccountCreate):
            data = parse_model(AccountCreate, data)

        if self._client is not None:
            await self._client.verify_credentials(
                Credentials(api_key=data.api_key, api_secret=data.api_secret)
            )

        encrypted = self._vault.encrypt(data.api_secret)
        async with self._db.acquire() as conn:
            try:
                async with conn.transaction():
                    row = await conn.fetchrow(
                        _INSERT_ACCOUNT,
                        user_id,
                        data.user_platform_id,
                        data.api_key,
                        encrypted,
                        data.description,
                        data.is_active,
                        data.is_default,
                    )
                    if row["is_default"]:
                        await conn.execute(
                            _CLEAR_OTHER_DEFAULTS,
                            user_id, row["user_platform_id"], row["id"],
                        )
            except Exception as err:
                if _is_unique_violation(err):
                    raise InvalidRequest(
                        "Duplicated description for this platform"
                    ) from err
                raise

        logger.info("Account created: user=%s account=%s", user_id, row["id"])
        return dict(row)

    async def update(self, user_id: int, account_id: Any, data: Any) -> dict:
        """Apply a partial update. A new secret gets a fresh encryption."""
        account_id = parse_account_id(account_id)
        if not isinstance(data, AccountUpdate):
            data = parse_model(AccountUpdate, data)

        encrypted = None
        if data.api_secret is not None:
            encrypted = self._vault.encrypt(data.api_secret)

        async with self._db.acquire() as conn:
            current = await conn.fetchrow(_SELECT_OWNED, account_id, user_id)
            if current is None:
                raise AccountNotFound(account_id)
            try:
                async with conn.transaction():
                    row = await conn.fetchrow(
                        _UPDATE_ACCOUNT,
                        account_id,
                        user_id,
                        data.api_key if data.api_key is not None else current["api_key"],
                        encrypted,
                        data.description if data.description is not None else current["description"],
                        data.is_active if data.is_active is not None else current["is_active"],
                        data.is_default if data.is_default is not None else current["is_default"],
                    )
                    if row is None:
                        raise AccountNotFound(account_id)
                    if row["is_default"]:
                        await conn.execute(
                            _CLEAR_OTHER_DEFAULTS,
                            user_id, row["user_platform_id"], row["id"],
                        )
            except Exception as err:
                if _is_unique_violation(err):
                    raise InvalidRequest(
                        "Duplicated description for this platform"
                    ) from err
                raise

        logger.info("Account updated: user=%s account=%s", user_id, account_id)
        return dict(row)

    async def remove(self, user_id: int, account_id: Any) -> dict:
        account_id = parse_account_id(account_id)
        async with self._db.acquire() as conn:
            status = await conn.execute(_DELETE_ACCOUNT, account_id, user_id)
        if status == "DELETE 0":
            raise AccountNotFound(account_id)
        logger.info("Account removed: user=%s account=%s", user_id, account_id)
        return {"ok": True}
