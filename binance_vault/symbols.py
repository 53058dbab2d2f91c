"""
Symbol watchlist — symbols a user saved per account and market.

Rows live in ``binance_user_symbols`` and belong to a ``binance_accounts``
row; every operation first checks that the account belongs to the caller.
Symbols are stored upper-cased and an (account, market, symbol) triple is
unique.
"""
import logging
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from .accounts import BinanceAccountStore, _is_unique_violation, parse_id
from .exceptions import Conflict, InvalidRequest, SymbolNotFound
from .markets import Market, parse_model

logger = logging.getLogger("binance_vault.symbols")

DUPLICATE_MESSAGE = "Symbol already saved for this account/market"

# ---------------------------------------------------------------------------
# SQL statements
# ---------------------------------------------------------------------------

SCHEMA = """
CREATE TABLE IF NOT EXISTS binance_user_symbols (
    id BIGSERIAL PRIMARY KEY,
    account_id BIGINT NOT NULL REFERENCES binance_accounts (id) ON DELETE CASCADE,
    market TEXT NOT NULL,
    symbol TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    UNIQUE (account_id, market, symbol)
);
CREATE INDEX IF NOT EXISTS binance_user_symbols_account_idx
    ON binance_user_symbols (account_id, market);
"""

_COLUMNS = "id, account_id, market, symbol, created_at, updated_at"

_SELECT_FOR_ACCOUNT = f"""
SELECT {_COLUMNS}
FROM binance_user_symbols
WHERE account_id = $1
ORDER BY created_at DESC, id DESC
"""

_SELECT_FOR_ACCOUNT_MARKET = f"""
SELECT {_COLUMNS}
FROM binance_user_symbols
WHERE account_id = $1 AND market = $2
ORDER BY created_at DESC, id DESC
"""

_SELECT_ONE = f"""
SELECT {_COLUMNS}
FROM binance_user_symbols
WHERE id = $1 AND account_id = $2
"""

_INSERT_SYMBOL = f"""
INSERT INTO binance_user_symbols (account_id, market, symbol)
VALUES ($1, $2, $3)
RETURNING {_COLUMNS}
"""

_UPDATE_SYMBOL = f"""
UPDATE binance_user_symbols
SET market = $3, symbol = $4, updated_at = NOW()
WHERE id = $1 AND account_id = $2
RETURNING {_COLUMNS}
"""

_DELETE_SYMBOL = """
DELETE FROM binance_user_symbols
WHERE id = $1 AND account_id = $2
"""


# ---------------------------------------------------------------------------
# Payload models
# ---------------------------------------------------------------------------

def _market(v: Any) -> Optional[Market]:
    if v is None:
        return None
    try:
        return Market.parse(v)
    except InvalidRequest as err:
        raise ValueError(err.message) from None


class UserSymbolCreate(BaseModel):
    """Payload to save a symbol."""

    market: Market
    symbol: str = Field(min_length=1, max_length=50)

    model_config = {"str_strip_whitespace": True}

    @field_validator("market", mode="before")
    @classmethod
    def validate_market(cls, v: Any) -> Optional[Market]:
        return _market(v)

    @field_validator("symbol")
    @classmethod
    def upper_symbol(cls, v: str) -> str:
        return v.upper()


class UserSymbolUpdate(BaseModel):
    """Partial update; fields left as None are kept."""

    market: Optional[Market] = None
    symbol: Optional[str] = Field(default=None, min_length=1, max_length=50)

    model_config = {"str_strip_whitespace": True}

    @field_validator("market", mode="before")
    @classmethod
    def validate_market(cls, v: Any) -> Optional[Market]:
        return _market(v)

    @field_validator("symbol")
    @classmethod
    def upper_symbol(cls, v: Optional[str]) -> Optional[str]:
        return v.upper() if v is not None else v


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class UserSymbolStore:
    """Saved symbols of the accounts, scoped to the account owner.

    Args:
        db_pool: asyncpg-compatible connection pool.
        accounts: Store used to check account ownership.
    """

    def __init__(self, db_pool: Any, accounts: BinanceAccountStore):
        self._db = db_pool
        self._accounts = accounts

    async def create_schema(self) -> None:
        async with self._db.acquire() as conn:
            await conn.execute(SCHEMA)

    async def _owned_account_id(self, user_id: int, account_id: Any) -> int:
        account = await self._accounts.get(user_id, account_id)
        return account["id"]

    async def list_for_account(
        self, user_id: int, account_id: Any, market: Any = None,
    ) -> list[dict]:
        """Saved symbols of an account, newest first, optionally for one market."""
        account_id = await self._owned_account_id(user_id, account_id)
        async with self._db.acquire() as conn:
            if market is None or market == "":
                rows = await conn.fetch(_SELECT_FOR_ACCOUNT, account_id)
            else:
                rows = await conn.fetch(
                    _SELECT_FOR_ACCOUNT_MARKET, account_id, Market.parse(market).value,
                )
        return [dict(row) for row in rows]

    async def get(self, user_id: int, account_id: Any, symbol_id: Any) -> dict:
        account_id = await self._owned_account_id(user_id, account_id)
        symbol_id = parse_id(symbol_id, "symbolId")
        async with self._db.acquire() as conn:
            row = await conn.fetchrow(_SELECT_ONE, symbol_id, account_id)
        if row is None:
            raise SymbolNotFound(symbol_id)
        return dict(row)

    async def create(self, user_id: int, account_id: Any, data: Any) -> dict:
        """Save a symbol on an account.

        Raises:
            Conflict: If the account already has it for that market.
        """
        if not isinstance(data, UserSymbolCreate):
            data = parse_model(UserSymbolCreate, data)
        account_id = await self._owned_account_id(user_id, account_id)
        async with self._db.acquire() as conn:
            try:
                row = await conn.fetchrow(
                    _INSERT_SYMBOL, account_id, data.market.value, data.symbol,
                )
            except Exception as err:
                if _is_unique_violation(err):
                    raise Conflict(DUPLICATE_MESSAGE) from err
                raise
        logger.info(
            "Symbol saved: account=%s market=%s symbol=%s",
            account_id, data.market.value, data.symbol,
        )
        return dict(row)

    async def update(
        self, user_id: int, account_id: Any, symbol_id: Any, data: Any,
    ) -> dict:
        if not isinstance(data, UserSymbolUpdate):
            data = parse_model(UserSymbolUpdate, data)
        account_id = await self._owned_account_id(user_id, account_id)
        symbol_id = parse_id(symbol_id, "symbolId")
        async with self._db.acquire() as conn:
            current = await conn.fetchrow(_SELECT_ONE, symbol_id, account_id)
            if current is None:
                raise SymbolNotFound(symbol_id)
            try:
                row = await conn.fetchrow(
                    _UPDATE_SYMBOL,
                    symbol_id,
                    account_id,
                    data.market.value if data.market is not None else current["market"],
                    data.symbol if data.symbol is not None else current["symbol"],
                )
            except Exception as err:
                if _is_unique_violation(err):
                    raise Conflict(DUPLICATE_MESSAGE) from err
                raise
        if row is None:
            raise SymbolNotFound(symbol_id)
        return dict(row)

    async def remove(self, user_id: int, account_id: Any, symbol_id: Any) -> dict:
        account_id = await self._owned_account_id(user_id, account_id)
        symbol_id = parse_id(symbol_id, "symbolId")
        async with self._db.acquire() as conn:
            status = await conn.execute(_DELETE_SYMBOL, symbol_id, account_id)
        if status == "DELETE 0":
            raise SymbolNotFound(symbol_id)
        logger.info("Symbol removed: account=%s symbol_id=%s", account_id, symbol_id)
        return {"ok": True}
