"""
Market catalog — hosts, endpoint paths and query models per Binance market.
"""
import math
from enum import Enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .exceptions import InvalidRequest

DEFAULT_RECV_WINDOW = 5000
# 2000-01-01T00:00:00Z, in ms
MIN_MS = 946684800000


class Market(str, Enum):
    USDM = "USDM"
    COINM = "COINM"
    OPTIONS = "OPTIONS"
    SPOT = "SPOT"
    CROSS = "CROSS"
    ISOLATED = "ISOLATED"

    @classmethod
    def parse(cls, value: Any) -> "Market":
        """Case-insensitive lookup.

        Raises:
            InvalidRequest: If ``value`` names no market.
        """
        if isinstance(value, cls):
            return value
        name = str(value).strip().upper()
        try:
            return cls(_MARKET_ALIASES.get(name, name))
        except ValueError:
            names = " | ".join(m.value for m in cls)
            raise InvalidRequest(f"Invalid market (use {names})") from None


# accepted long names of the margin markets
_MARKET_ALIASES = {"CROSS_MARGIN": "CROSS", "ISOLATED_MARGIN": "ISOLATED"}


@dataclass(frozen=True)
class MarketEndpoints:
    base_url: str
    trades: str
    account: str
    open_orders: str
    exchange_info: str
    positions: Optional[str] = None
    open_orders_params: Mapping[str, str] = field(default_factory=dict)


MARKETS: dict[Market, MarketEndpoints] = {
    Market.USDM: MarketEndpoints(
        base_url="https://fapi.binance.com",
        trades="/fapi/v1/userTrades",
        account="/fapi/v2/account",
        open_orders="/fapi/v1/openOrders",
        exchange_info="/fapi/v1/exchangeInfo",
        positions="/fapi/v2/positionRisk",
    ),
    Market.COINM: MarketEndpoints(
        base_url="https://dapi.binance.com",
        trades="/dapi/v1/userTrades",
        account="/dapi/v1/account",
        open_orders="/dapi/v1/openOrders",
        exchange_info="/dapi/v1/exchangeInfo",
        positions="/dapi/v1/positionRisk",
    ),
    Market.OPTIONS: MarketEndpoints(
        base_url="https://eapi.binance.com",
        trades="/eapi/v1/userTrades",
        account="/eapi/v1/account",
        open_orders="/eapi/v1/openOrders",
        exchange_info="/eapi/v1/exchangeInfo",
        positions="/eapi/v1/position",
    ),
    Market.SPOT: MarketEndpoints(
        base_url="https://api.binance.com",
        trades="/api/v3/myTrades",
        account="/api/v3/account",
        open_orders="/api/v3/openOrders",
        exchange_info="/api/v3/exchangeInfo",
    ),
    Market.CROSS: MarketEndpoints(
        base_url="https://api.binance.com",
        trades="/sapi/v1/margin/myTrades",
        account="/sapi/v1/margin/account",
        open_orders="/sapi/v1/margin/openOrders",
        exchange_info="/api/v3/exchangeInfo",
    ),
    Market.ISOLATED: MarketEndpoints(
        base_url="https://api.binance.com",
        trades="/sapi/v1/margin/isolated/myTrades",
        account="/sapi/v1/margin/isolated/account",
        open_orders="/sapi/v1/margin/openOrders",
        exchange_info="/api/v3/exchangeInfo",
        open_orders_params={"isIsolated": "TRUE"},
    ),
}


def parse_model(model: type, data: Mapping[str, Any]) -> Any:
    """Validate ``data`` against a pydantic model.

    Raises:
        InvalidRequest: With every field error joined in one message.
    """
    try:
        return model.model_validate(dict(data))
    except ValidationError as err:
        details = "; ".join(
            f"{'.'.join(str(p) for p in e['loc']) or 'body'}: {e['msg']}"
            for e in err.errors()
        )
        raise InvalidRequest(details or "Validation failed") from None


def endpoints_for(market: Market) -> MarketEndpoints:
    return MARKETS[Market.parse(market)]


def to_ms(value: Any) -> Optional[int]:
    """Convert seconds, milliseconds or an ISO-8601 string to epoch ms.

    Numbers below 1e12 are taken as seconds. Returns None when the value
    is empty or cannot be interpreted.
    """
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            number = float(value)
        except (TypeError, ValueError):
            number = None
        if number is not None:
            if not math.isfinite(number):
                return None
            return math.trunc(number * 1000) if number < 1e12 else math.trunc(number)
        try:
            dt = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


class TradesQuery(BaseModel):
    """Validated parameters of a "list my trades" call."""

    symbol: str = Field(min_length=1)
    start_time: Optional[int] = Field(default=None, alias="startTime", ge=MIN_MS)
    end_time: Optional[int] = Field(default=None, alias="endTime", ge=MIN_MS)
    from_id: Optional[int] = Field(default=None, alias="fromId")
    limit: Optional[int] = Field(default=None, ge=1, le=1000)
    recv_window: Optional[int] = Field(default=None, alias="recvWindow", ge=1, le=60000)

    model_config = {"populate_by_name": True, "str_strip_whitespace": True}

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def convert_time(cls, v: Any) -> Optional[int]:
        """Accept seconds, ms or ISO-8601 dates."""
        if v is None or v == "":
            return None
        ms = to_ms(v)
        if ms is None:
            raise ValueError(f"Invalid time value: {v!r}")
        return ms

    @model_validator(mode="after")
    def validate_range(self) -> "TradesQuery":
        """Ensure the time range is not inverted."""
        if (
            self.start_time is not None
            and self.end_time is not None
            and self.start_time > self.end_time
        ):
            raise ValueError("startTime must not be after endTime")
        return self

    @classmethod
    def from_query(cls, data: Mapping[str, Any]) -> "TradesQuery":
        """Build from a raw query mapping.

        Raises:
            InvalidRequest: If validation fails.
        """
        return parse_model(cls, data)

    def to_params(self) -> dict:
        """Exchange parameter names, in the order they are signed."""
        return {
            "symbol": self.symbol,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "fromId": self.from_id,
            "limit": self.limit,
            "recvWindow": self.recv_window,
        }
