"""
Binance REST client — per-market dispatch of signed and public GET calls.

Every authenticated call goes through :meth:`BinanceClient.signed_get`,
which adds ``recvWindow`` and ``timestamp``, signs the query with the
account secret and sends the API key in the ``X-MBX-APIKEY`` header.

Calls are not retried. Any non-2xx answer, transport error or timeout is
raised as :class:`~binance_vault.exceptions.UpstreamFailure`.

Security Note:
    Never log API secrets or signed query strings.
"""
import time
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional

import orjson
import aiohttp
from yarl import URL

from .exceptions import InvalidCredentials, InvalidRequest, UpstreamFailure
from .markets import (
    DEFAULT_RECV_WINDOW,
    Market,
    MarketEndpoints,
    TradesQuery,
    endpoints_for,
)
from .signing import QueryParams, build_query, sign

logger = logging.getLogger("binance_vault.client")

API_KEY_HEADER = "X-MBX-APIKEY"
DEFAULT_TIMEOUT = 15.0


@dataclass(frozen=True)
class Credentials:
    """Plaintext key pair for one request. The secret stays out of repr."""

    api_key: str
    api_secret: str = field(repr=False)


def _now_ms() -> int:
    return int(time.time() * 1000)


def extract_error_message(payload: Any, fallback: str) -> str:
    """Pick the human readable message out of an exchange error payload."""
    if isinstance(payload, dict):
        for key in ("msg", "message", "error"):
            value = payload.get(key)
            if value:
                return str(value)
    elif isinstance(payload, str) and payload.strip():
        return payload.strip()[:200]
    return fallback


def _decode_body(body: bytes) -> Any:
    if not body:
        return None
    try:
        return orjson.loads(body)
    except orjson.JSONDecodeError:
        return body.decode("utf-8", errors="replace")


class BinanceClient:
    """Async client for the Binance Spot, Futures, Options and Margin APIs.

    Args:
        session: Shared ``aiohttp.ClientSession``; one is created lazily
            (and owned) when omitted.
        timeout: Total timeout per call, in seconds.
        recv_window: ``recvWindow`` sent when the caller gives none.
        base_urls: Per-market host overrides (tests, testnet).
        clock: Source of the ``timestamp`` parameter, epoch ms.
    """

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        recv_window: int = DEFAULT_RECV_WINDOW,
        base_urls: Optional[Mapping[Market, str]] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._recv_window = recv_window
        self._base_urls = {
            Market.parse(m): url.rstrip("/") for m, url in (base_urls or {}).items()
        }
        self._clock = clock or _now_ms

    async def __aenter__(self) -> "BinanceClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    def _base_url(self, market: Market, endpoints: MarketEndpoints) -> str:
        return self._base_urls.get(market, endpoints.base_url)

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _get(
        self,
        market: Market,
        path: str,
        query: str,
        headers: Optional[dict] = None,
        fallback: str = "Binance request failed",
    ) -> Any:
        market = Market.parse(market)
        base = self._base_url(market, endpoints_for(market))
        # the query is already encoded; it must reach the wire byte-for-byte
        url = URL(f"{base}{path}?{query}" if query else f"{base}{path}", encoded=True)
        try:
            async with self._get_session().get(
                url, headers=headers, timeout=self._timeout,
            ) as resp:
                payload = _decode_body(await resp.read())
                status = resp.status
        except asyncio.TimeoutError as err:
            logger.warning("Binance %s %s timed out", market.value, path)
            raise UpstreamFailure(f"{fallback}: request timed out") from err
        except aiohttp.ClientError as err:
            logger.warning("Binance %s %s transport error: %s", market.value, path, err)
            raise UpstreamFailure(str(err) or fallback) from err

        if status >= 400:
            message = extract_error_message(payload, fallback)
            logger.warning(
                "Binance %s %s failed with status %s: %s",
                market.value, path, status, message,
            )
            raise UpstreamFailure(message, status=status)
        return payload

    async def signed_get(
        self,
        market: Market,
        path: str,
        params: QueryParams,
        credentials: Credentials,
        fallback: str = "Binance request failed",
    ) -> Any:
        """Send a ``SIGNED`` GET request.

        Args:
            market: Market whose host serves ``path``.
            path: Endpoint path, e.g. ``/fapi/v1/userTrades``.
            params: Ordered parameters; ``None`` values are not sent.
            credentials: Decrypted key pair of the account.
            fallback: Message used when the exchange gives none.

        Returns:
            Decoded JSON payload.
        """
        query = dict(params)
        if query.get("recvWindow") is None:
            query["recvWindow"] = self._recv_window
        query["timestamp"] = self._clock()
        signed = sign(query, credentials.api_secret)
        return await self._get(
            market, path, signed,
            headers={API_KEY_HEADER: credentials.api_key},
            fallback=fallback,
        )

    async def public_get(
        self,
        market: Market,
        path: str,
        params: Optional[QueryParams] = None,
        fallback: str = "Binance request failed",
    ) -> Any:
        """Send an unsigned GET request."""
        return await self._get(
            market, path, build_query(params or {}), fallback=fallback,
        )

    # ------------------------------------------------------------------
    # Account-scoped operations
    # ------------------------------------------------------------------

    async def user_trades(
        self, market: Market, credentials: Credentials, query: TradesQuery,
    ) -> Any:
        market = Market.parse(market)
        return await self.signed_get(
            market,
            endpoints_for(market).trades,
            query.to_params(),
            credentials,
            fallback=f"{market.value} userTrades failed",
        )

    async def account_info(
        self,
        market: Market,
        credentials: Credentials,
        symbols: Optional[str] = None,
    ) -> Any:
        """Balances and permissions. ``symbols`` (csv) only applies to ISOLATED."""
        market = Market.parse(market)
        params = {"symbols": symbols or None} if market is Market.ISOLATED else {}
        return await self.signed_get(
            market,
            endpoints_for(market).account,
            params,
            credentials,
            fallback=f"{market.value} account failed",
        )

    async def open_orders(
        self,
        market: Market,
        credentials: Credentials,
        symbol: Optional[str] = None,
    ) -> Any:
        market = Market.parse(market)
        endpoints = endpoints_for(market)
        params = {**endpoints.open_orders_params, "symbol": symbol or None}
        return await self.signed_get(
            market,
            endpoints.open_orders,
            params,
            credentials,
            fallback=f"{market.value} openOrders failed",
        )

    async def positions(self, market: Market, credentials: Credentials) -> Any:
        market = Market.parse(market)
        path = endpoints_for(market).positions
        if path is None:
            raise InvalidRequest(f"Market {market.value} has no positions endpoint")
        return await self.signed_get(
            market, path, {}, credentials,
            fallback=f"{market.value} positions failed",
        )

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def ping(self) -> None:
        await self.public_get(Market.SPOT, "/api/v3/ping", fallback="Spot ping failed")

    async def symbols(self, market: Market) -> list[str]:
        """Sorted tradable symbols of a market, from its exchangeInfo."""
        market = Market.parse(market)
        data = await self.public_get(
            market,
            endpoints_for(market).exchange_info,
            fallback=f"Failed to fetch {market.value} symbols",
        )
        if not isinstance(data, dict):
            data = {}
        return _symbols_from_exchange_info(market, data)

    async def verify_credentials(self, credentials: Credentials) -> None:
        """Check a key pair against the exchange before it is stored.

        A failed spot ping is only logged; the signed USD-M account call
        decides.

        Raises:
            InvalidCredentials: If the exchange rejects the signed call.
        """
        try:
            await self.ping()
        except UpstreamFailure as err:
            logger.warning("Spot ping failed (non-blocking): %s", err.message)
        try:
            await self.account_info(Market.USDM, credentials)
        except UpstreamFailure as err:
            raise InvalidCredentials(
                err.message or "Invalid Binance credentials (or IP not allowlisted)"
            ) from err


def _is_trading(item: dict) -> bool:
    return (item.get("status") or item.get("contractStatus") or "TRADING") == "TRADING"


def _first_list(data: dict, *keys: str) -> list:
    for key in keys:
        value = data.get(key)
        if isinstance(value, list) and value:
            return value
    return []


def _symbols_from_exchange_info(market: Market, data: dict) -> list[str]:
    if market is Market.OPTIONS:
        items = _first_list(data, "optionSymbols", "symbols", "optionContracts")
        out = []
        for item in items:
            if not isinstance(item, dict) or not _is_trading(item):
                continue
            name = item.get("symbol")
            if not name and item.get("baseAsset") and item.get("quoteAsset"):
                name = f"{item['baseAsset']}{item['quoteAsset']}"
            name = name or item.get("symbolName")
            if name:
                out.append(name)
        return sorted(out)

    if market is Market.COINM:
        items = _first_list(data, "symbols", "contracts")
    else:
        items = _first_list(data, "symbols")
    trading = [i for i in items if isinstance(i, dict) and _is_trading(i) and i.get("symbol")]

    if market is Market.USDM:
        return sorted(i["symbol"] for i in trading if i.get("contractType") == "PERPETUAL")
    if market is Market.COINM:
        perpetual = sorted(i["symbol"] for i in trading if i.get("contractType") == "PERPETUAL")
        return perpetual or sorted(i["symbol"] for i in trading)
    return sorted(i["symbol"] for i in trading)
