"""
Signed Request Builder — canonical query strings with an HMAC-SHA256 signature.

Binance authenticates ``SIGNED`` endpoints by an HMAC of the exact query
string sent on the wire, so serialization is defined once here:

    sign({"symbol": "BTCUSDT", "limit": 50, "timestamp": 1}, secret)
    -> "symbol=BTCUSDT&limit=50&timestamp=1&signature=<hex>"

``None`` values are dropped, the caller's ordering is kept and ``signature``
is always last. The caller adds ``timestamp`` and ``recvWindow``.
"""
import hmac
import math
import hashlib
from decimal import Decimal
from enum import Enum
from typing import Mapping, Optional, Union
from urllib.parse import quote

Scalar = Union[str, int, float, bool, Decimal]
QueryParams = Mapping[str, Optional[Scalar]]

# Same set left unescaped by encodeURIComponent; ``-_.`` are always safe for quote.
_UNRESERVED = "!~*'()"


def stringify(value: Scalar) -> str:
    """Render a scalar the way it is sent to the exchange.

    Raises:
        TypeError: For values that are not a string, number or boolean.
        ValueError: For NaN and infinite floats.
    """
    if isinstance(value, Enum):
        value = value.value
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError(f"Cannot send non-finite number {value!r}")
        if value.is_integer():
            return str(int(value))
        # shortest round-trip digits, never exponent notation
        return format(Decimal(repr(value)), "f")
    if isinstance(value, Decimal):
        return format(value, "f")
    raise TypeError(
        f"Unsupported query value of type {type(value).__name__}"
    )


def percent_encode(text: str) -> str:
    """Percent-encode everything outside ``A-Z a-z 0-9 - _ . ! ~ * ' ( )``."""
    return quote(text, safe=_UNRESERVED)


def build_query(params: QueryParams) -> str:
    """Serialize ``params`` into ``k=v&k=v`` form, skipping ``None`` values."""
    return "&".join(
        f"{key}={percent_encode(stringify(value))}"
        for key, value in params.items()
        if value is not None
    )


def compute_signature(query: str, secret: str) -> str:
    """Hex HMAC-SHA256 of ``query`` keyed by ``secret``."""
    return hmac.new(
        secret.encode("utf-8"), query.encode("utf-8"), hashlib.sha256
    ).hexdigest()


def sign(params: QueryParams, secret: str) -> str:
    """Build the query string for ``params`` and append its signature.

    Args:
        params: Ordered request parameters. ``None`` means "not sent".
        secret: Plaintext API secret.

    Returns:
        ``"<query>&signature=<hex>"``.
    """
    query = build_query(params)
    return f"{query}&signature={compute_signature(query, secret)}"
