"""
Tests for the signed request builder.

Tests cover:
- Scalar serialization and percent-encoding
- Filtering of None values and ordering
- Determinism and published HMAC-SHA256 vectors
"""
from decimal import Decimal

import pytest

from binance_vault.markets import Market
from binance_vault.signing import (
    build_query,
    compute_signature,
    percent_encode,
    sign,
    stringify,
)

# Example key pair and request from the Binance API documentation.
DOC_SECRET = "NhqPtmdSJYdKjVHjA7PZj4Mge3R5YNiP1e3UZjInClVN65XAbvqqM6A7H5fATj0j"
DOC_QUERY = (
    "symbol=LTCBTC&side=BUY&type=LIMIT&timeInForce=GTC&quantity=1&price=0.1"
    "&recvWindow=5000&timestamp=1499827319559"
)
DOC_SIGNATURE = "c8db56825ae71d6d79447849e617115f4a920fa2acdcab2b053c4b2838bd6b71"


class TestStringify:
    """Tests for the single value serialization rule."""

    @pytest.mark.parametrize("value, expected", [
        ("BTCUSDT", "BTCUSDT"),
        ("", ""),
        (50, "50"),
        (-3, "-3"),
        (1499827319559, "1499827319559"),
        (0.1, "0.1"),
        (5.0, "5"),
        (1.5, "1.5"),
        (0.00001, "0.00001"),
        (1.23e-07, "0.000000123"),
        (-0.0005, "-0.0005"),
        (1e21, "1000000000000000000000"),
        (True, "true"),
        (False, "false"),
        (Decimal("0.00010"), "0.00010"),
        (Market.USDM, "USDM"),
    ])
    def test_values(self, value, expected):
        assert stringify(value) == expected

    @pytest.mark.parametrize("value", [None, [1, 2], {"a": 1}, object()])
    def test_unsupported_types(self, value):
        with pytest.raises(TypeError):
            stringify(value)

    @pytest.mark.parametrize("value", [float("nan"), float("inf")])
    def test_non_finite_numbers(self, value):
        with pytest.raises(ValueError):
            stringify(value)


class TestPercentEncode:
    """Tests for encodeURIComponent-compatible escaping."""

    @pytest.mark.parametrize("text, expected", [
        ("BTCUSDT", "BTCUSDT"),
        ("a b", "a%20b"),
        ("BTC/USDT", "BTC%2FUSDT"),
        ("a&b=c", "a%26b%3Dc"),
        ("BTCUSDT,ETHUSDT", "BTCUSDT%2CETHUSDT"),
        ("10:30", "10%3A30"),
        ("é", "%C3%A9"),
        ("-_.!~*'()", "-_.!~*'()"),
        ("+", "%2B"),
    ])
    def test_encoding(self, text, expected):
        assert percent_encode(text) == expected


class TestBuildQuery:
    """Tests for the canonical query string."""

    def test_none_values_are_omitted(self):
        qs = build_query({"symbol": "BTCUSDT", "startTime": None, "limit": 50})
        assert qs == "symbol=BTCUSDT&limit=50"

    def test_insertion_order_is_kept(self):
        qs = build_query({"b": 1, "a": 2, "c": 3})
        assert qs == "b=1&a=2&c=3"

    def test_falsy_values_are_kept(self):
        qs = build_query({"fromId": 0, "flag": False, "note": ""})
        assert qs == "fromId=0&flag=false&note="

    def test_empty_mapping(self):
        assert build_query({}) == ""


class TestSign:
    """Tests for the signed query string."""

    def test_filters_and_appends_signature(self):
        signed = sign({"symbol": "BTCUSDT", "startTime": None, "limit": 50}, "secret")
        qs, signature = signed.rsplit("&signature=", 1)
        assert qs == "symbol=BTCUSDT&limit=50"
        assert "startTime" not in signed
        assert len(signature) == 64
        assert signature == compute_signature(qs, "secret")

    def test_signature_is_last(self):
        signed = sign({"symbol": "BTCUSDT", "timestamp": 1, "recvWindow": 5000}, "s")
        assert signed.startswith("symbol=BTCUSDT&timestamp=1&recvWindow=5000&signature=")
        assert signed.count("signature=") == 1

    def test_deterministic(self):
        params = {"symbol": "BTCUSDT", "limit": 50, "timestamp": 1700000000000}
        assert sign(params, "secret") == sign(dict(params), "secret")

    def test_order_changes_signature(self):
        first = sign({"a": 1, "b": 2}, "secret")
        second = sign({"b": 2, "a": 1}, "secret")
        assert first != second

    def test_secret_changes_signature(self):
        params = {"symbol": "BTCUSDT"}
        assert sign(params, "one") != sign(params, "two")

    def test_documentation_vector(self):
        params = {
            "symbol": "LTCBTC",
            "side": "BUY",
            "type": "LIMIT",
            "timeInForce": "GTC",
            "quantity": 1,
            "price": 0.1,
            "recvWindow": 5000,
            "timestamp": 1499827319559,
        }
        assert sign(params, DOC_SECRET) == f"{DOC_QUERY}&signature={DOC_SIGNATURE}"

    def test_signature_of_encoded_values(self):
        """The HMAC covers the encoded text sent on the wire."""
        signed = sign({"symbols": "BTCUSDT,ETHUSDT"}, DOC_SECRET)
        qs, signature = signed.rsplit("&signature=", 1)
        assert qs == "symbols=BTCUSDT%2CETHUSDT"
        assert signature == compute_signature(qs, DOC_SECRET)


class TestComputeSignature:
    """HMAC-SHA256 against published vectors."""

    def test_rfc4231_case_2(self):
        assert compute_signature("what do ya want for nothing?", "Jefe") == (
            "5bdcc146bf60754e6a042426089575c75a003f089d2739839dec58b964ec3843"
        )

    def test_binance_documentation_vector(self):
        assert compute_signature(DOC_QUERY, DOC_SECRET) == DOC_SIGNATURE
