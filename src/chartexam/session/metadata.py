"""Chart descriptors derived from the OHLC candles shown to the user."""

from __future__ import annotations

from typing import Any, Mapping, Optional, Sequence

from chartexam.session.types import ChartMetadata, MalformedPayloadError

_PRICE_FIELDS = ("open", "high", "low", "close")


def derive_chart_metadata(
    symbol: Optional[str],
    timeframe: Optional[str],
    candles: Sequence[Mapping[str, Any]],
) -> Optional[ChartMetadata]:
    if not candles:
        return None

    prices = [
        float(candle[name])
        for candle in candles
        for name in _PRICE_FIELDS
        if candle.get(name) is not None
    ]
    if not prices:
        raise MalformedPayloadError("Candles carry no OHLC prices")
    price_range = max(prices) - min(prices)

    volatility = 0.0
    if price_range > 0:
        spread_total = sum(_field(candle, "high") - _field(candle, "low") for candle in candles)
        volatility = spread_total / len(candles) / price_range

    first_close = _field(candles[0], "close")
    last_close = _field(candles[-1], "close")
    if last_close > first_close:
        trend = "uptrend"
    elif last_close < first_close:
        trend = "downtrend"
    else:
        trend = "sideways"

    return ChartMetadata(
        symbol=symbol,
        timeframe=timeframe,
        price_range=price_range,
        volatility=volatility,
        trend_direction=trend,
    )


def _field(candle: Mapping[str, Any], name: str) -> float:
    value = candle.get(name)
    if value is None:
        raise MalformedPayloadError(f"Candle is missing '{name}'")
    return float(value)


__all__ = ["derive_chart_metadata"]
