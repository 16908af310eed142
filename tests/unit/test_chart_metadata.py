from __future__ import annotations

import pytest

from chartexam.session.metadata import derive_chart_metadata
from chartexam.session.types import ChartMetadata, DeviceInfo, MalformedPayloadError


def _candle(open_: float, high: float, low: float, close: float) -> dict:
    return {"open": open_, "high": high, "low": low, "close": close}


def test_uptrend_metadata() -> None:
    candles = [_candle(100, 110, 90, 105), _candle(105, 130, 100, 125)]

    metadata = derive_chart_metadata("BTCUSD", "1h", candles)

    assert metadata is not None
    assert metadata.symbol == "BTCUSD"
    assert metadata.price_range == pytest.approx(40)
    # mean(high - low) = (20 + 30) / 2 = 25, divided by the 40 range
    assert metadata.volatility == pytest.approx(0.625)
    assert metadata.trend_direction == "uptrend"


def test_downtrend_and_sideways() -> None:
    falling = [_candle(10, 11, 8, 9), _candle(9, 9.5, 6, 7)]
    flat = [_candle(10, 12, 8, 10), _candle(10, 11, 9, 10)]

    assert derive_chart_metadata("X", "1d", falling).trend_direction == "downtrend"
    assert derive_chart_metadata("X", "1d", flat).trend_direction == "sideways"


def test_flat_prices_have_zero_volatility() -> None:
    metadata = derive_chart_metadata("X", "1d", [_candle(5, 5, 5, 5)])

    assert metadata is not None
    assert metadata.price_range == 0
    assert metadata.volatility == 0


def test_empty_candles_yield_none() -> None:
    assert derive_chart_metadata("X", "1d", []) is None


def test_candle_missing_close_is_malformed() -> None:
    with pytest.raises(MalformedPayloadError):
        derive_chart_metadata("X", "1d", [{"open": 1, "high": 2, "low": 0.5}])


def test_payload_constructors_accept_client_keys() -> None:
    metadata = ChartMetadata.from_payload(
        {"symbol": "EURUSD", "timeframe": "4h", "priceRange": 0.02, "trendDirection": "uptrend"}
    )
    device = DeviceInfo.from_payload({"userAgent": "UA", "screenResolution": "390x844", "isMobile": True})

    assert metadata.price_range == pytest.approx(0.02)
    assert metadata.trend_direction == "uptrend"
    assert device == DeviceInfo(user_agent="UA", screen_resolution="390x844", is_mobile=True)


def test_payload_constructors_reject_wrong_types() -> None:
    with pytest.raises(MalformedPayloadError):
        ChartMetadata.from_payload({"symbol": 42})
    with pytest.raises(MalformedPayloadError):
        ChartMetadata.from_payload({"volatility": "high"})
    with pytest.raises(MalformedPayloadError):
        DeviceInfo.from_payload(["not", "a", "mapping"])
