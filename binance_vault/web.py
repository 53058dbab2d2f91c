"""
HTTP surface — aiohttp routes over the market client and the account store.

Responses use the envelope ``{"statusCode", "message", "data"}``. Package
errors are mapped to status codes here and only here; no stack traces or
internal details are returned to clients.

The acting user is read from the ``X-User-Id`` header, which the upstream
gateway sets after authenticating the caller.
"""
import logging
from typing import Any, Optional

import orjson
from aiohttp import web

from .accounts import BinanceAccountStore
from .client import BinanceClient, Credentials
from .conf import AppConfig
from .exceptions import (
    BinanceVaultError,
    ConfigurationError,
    ErrorKind,
    InvalidRequest,
)
from .markets import Market, TradesQuery
from .symbols import UserSymbolStore
from .vault import CredentialVault

logger = logging.getLogger("binance_vault.web")

USER_HEADER = "X-User-Id"

CONFIG_KEY = web.AppKey("config", AppConfig)
VAULT_KEY = web.AppKey("vault", CredentialVault)
CLIENT_KEY = web.AppKey("client", BinanceClient)
STORE_KEY = web.AppKey("accounts", BinanceAccountStore)
SYMBOLS_KEY = web.AppKey("symbols", UserSymbolStore)

STATUS_BY_KIND = {
    ErrorKind.CONFIGURATION: 500,
    ErrorKind.INVALID_FORMAT: 500,
    ErrorKind.AUTHENTICATION_FAILURE: 500,
    ErrorKind.UPSTREAM_FAILURE: 502,
    ErrorKind.INVALID_REQUEST: 400,
    ErrorKind.INVALID_CREDENTIALS: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
}

# decrypt failures are reported without detail
_DECRYPT_KINDS = (ErrorKind.INVALID_FORMAT, ErrorKind.AUTHENTICATION_FAILURE)


def _dumps(obj: Any) -> str:
    return orjson.dumps(obj, default=str).decode("utf-8")


def _envelope(status: int, message: str, data: Any = None) -> web.Response:
    body = {"statusCode": status, "message": message}
    if data is not None:
        body["data"] = data
    return web.json_response(body, status=status, dumps=_dumps)


def _ok(data: Any, status: int = 200) -> web.Response:
    return _envelope(status, "OK", data)


@web.middleware
async def error_middleware(request: web.Request, handler) -> web.StreamResponse:
    """Translate package errors into JSON responses."""
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except BinanceVaultError as err:
        status = STATUS_BY_KIND[err.kind]
        if err.kind in _DECRYPT_KINDS:
            logger.error("%s %s: stored secret unreadable", request.method, request.path)
            return _envelope(status, "Could not decrypt API secret")
        if status >= 500:
            logger.error("%s %s failed: %s", request.method, request.path, err.message)
        else:
            logger.warning("%s %s rejected: %s", request.method, request.path, err.message)
        return _envelope(status, err.message)
    except Exception as exc:
        logger.exception("Unexpected error: %s", type(exc).__name__)
        return _envelope(500, "Internal server error")


# ---------------------------------------------------------------------------
# Request helpers
# ---------------------------------------------------------------------------

def _user_id(request: web.Request) -> int:
    raw = request.headers.get(USER_HEADER, "")
    try:
        user_id = int(raw)
    except ValueError:
        user_id = 0
    if user_id <= 0:
        raise InvalidRequest(f"Missing or invalid {USER_HEADER} header")
    return user_id


def _store(request: web.Request) -> BinanceAccountStore:
    store = request.app.get(STORE_KEY)
    if store is None:
        raise ConfigurationError("Account store is not configured")
    return store


def _symbols(request: web.Request) -> UserSymbolStore:
    store = request.app.get(SYMBOLS_KEY)
    if store is None:
        raise ConfigurationError("Account store is not configured")
    return store


async def _credentials(request: web.Request) -> Credentials:
    """Credentials of ``?accountId`` owned by the caller, or the default pair."""
    account_id = request.query.get("accountId")
    if not account_id:
        default = request.app[CONFIG_KEY].default_credentials
        if default is None:
            raise InvalidRequest("accountId is required")
        return default
    user_id = _user_id(request)
    return await _store(request).get_credentials(account_id, user_id=user_id)


async def _json_body(request: web.Request) -> dict:
    try:
        body = orjson.loads(await request.read())
    except orjson.JSONDecodeError:
        raise InvalidRequest("Request body must be JSON") from None
    if not isinstance(body, dict):
        raise InvalidRequest("Request body must be a JSON object")
    return body


# ---------------------------------------------------------------------------
# Market routes
# ---------------------------------------------------------------------------

routes = web.RouteTableDef()


@routes.get("/binance/{market}/symbols")
async def symbols(request: web.Request) -> web.Response:
    client = request.app[CLIENT_KEY]
    return _ok(await client.symbols(Market.parse(request.match_info["market"])))


@routes.get("/binance/{market}/trades")
async def trades(request: web.Request) -> web.Response:
    market = Market.parse(request.match_info["market"])
    query = TradesQuery.from_query(request.query)
    credentials = await _credentials(request)
    data = await request.app[CLIENT_KEY].user_trades(market, credentials, query)
    return _ok(data)


@routes.get("/binance/{market}/account")
async def account(request: web.Request) -> web.Response:
    market = Market.parse(request.match_info["market"])
    credentials = await _credentials(request)
    data = await request.app[CLIENT_KEY].account_info(
        market, credentials, symbols=request.query.get("symbols"),
    )
    return _ok(data)


@routes.get("/binance/{market}/open-orders")
async def open_orders(request: web.Request) -> web.Response:
    market = Market.parse(request.match_info["market"])
    credentials = await _credentials(request)
    data = await request.app[CLIENT_KEY].open_orders(
        market, credentials, symbol=request.query.get("symbol"),
    )
    return _ok(data)


@routes.get("/binance/{market}/positions")
async def positions(request: web.Request) -> web.Response:
    market = Market.parse(request.match_info["market"])
    credentials = await _credentials(request)
    return _ok(await request.app[CLIENT_KEY].positions(market, credentials))


# ---------------------------------------------------------------------------
# Account routes
# ---------------------------------------------------------------------------

@routes.get("/binance/accounts")
async def list_accounts(request: web.Request) -> web.Response:
    user_id = _user_id(request)
    platform = request.query.get("userPlatformId")
    if platform is not None:
        try:
            platform = int(platform)
        except ValueError:
            raise InvalidRequest("Invalid userPlatformId") from None
    return _ok(await _store(request).list_for_user(user_id, platform))


@routes.post("/binance/accounts")
async def create_account(request: web.Request) -> web.Response:
    user_id = _user_id(request)
    row = await _store(request).create(user_id, await _json_body(request))
    return _ok(row, status=201)


@routes.get("/binance/accounts/{account_id}")
async def get_account(request: web.Request) -> web.Response:
    user_id = _user_id(request)
    return _ok(await _store(request).get(user_id, request.match_info["account_id"]))


@routes.patch("/binance/accounts/{account_id}")
async def update_account(request: web.Request) -> web.Response:
    user_id = _user_id(request)
    row = await _store(request).update(
        user_id, request.match_info["account_id"], await _json_body(request),
    )
    return _ok(row)


@routes.delete("/binance/accounts/{account_id}")
async def remove_account(request: web.Request) -> web.Response:
    user_id = _user_id(request)
    return _ok(await _store(request).remove(user_id, request.match_info["account_id"]))


# ---------------------------------------------------------------------------
# Symbol watchlist routes
# ---------------------------------------------------------------------------

@routes.get("/binance/accounts/{account_id}/symbols")
async def list_symbols(request: web.Request) -> web.Response:
    user_id = _user_id(request)
    rows = await _symbols(request).list_for_account(
        user_id, request.match_info["account_id"], request.query.get("market"),
    )
    return _ok(rows)


@routes.post("/binance/accounts/{account_id}/symbols")
async def create_symbol(request: web.Request) -> web.Response:
    user_id = _user_id(request)
    row = await _symbols(request).create(
        user_id, request.match_info["account_id"], await _json_body(request),
    )
    return _ok(row, status=201)


@routes.get("/binance/accounts/{account_id}/symbols/{symbol_id}")
async def get_symbol(request: web.Request) -> web.Response:
    user_id = _user_id(request)
    row = await _symbols(request).get(
        user_id, request.match_info["account_id"], request.match_info["symbol_id"],
    )
    return _ok(row)


@routes.patch("/binance/accounts/{account_id}/symbols/{symbol_id}")
async def update_symbol(request: web.Request) -> web.Response:
    user_id = _user_id(request)
    row = await _symbols(request).update(
        user_id,
        request.match_info["account_id"],
        request.match_info["symbol_id"],
        await _json_body(request),
    )
    return _ok(row)


@routes.delete("/binance/accounts/{account_id}/symbols/{symbol_id}")
async def remove_symbol(request: web.Request) -> web.Response:
    user_id = _user_id(request)
    return _ok(await _symbols(request).remove(
        user_id, request.match_info["account_id"], request.match_info["symbol_id"],
    ))


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------

async def _close_client(app: web.Application) -> None:
    await app[CLIENT_KEY].close()


def create_app(
    config: AppConfig,
    vault: CredentialVault,
    *,
    db_pool: Any = None,
    client: Optional[BinanceClient] = None,
) -> web.Application:
    """Build the web application.

    Args:
        config: Service configuration.
        vault: Vault holding the master key.
        db_pool: asyncpg-compatible pool; account routes answer 500 without it.
        client: Market client; one is built from ``config`` when omitted.
    """
    app = web.Application(middlewares=[error_middleware])
    app[CONFIG_KEY] = config
    app[VAULT_KEY] = vault
    app[CLIENT_KEY] = client or BinanceClient(
        timeout=config.request_timeout, recv_window=config.recv_window,
    )
    if db_pool is not None:
        app[STORE_KEY] = BinanceAccountStore(db_pool, vault, app[CLIENT_KEY])
        app[SYMBOLS_KEY] = UserSymbolStore(db_pool, app[STORE_KEY])
    app.router.add_routes(routes)
    app.on_cleanup.append(_close_client)
    return app
