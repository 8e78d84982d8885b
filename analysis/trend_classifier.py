#!/usr/bin/env python3
from analysis.models import IndicatorSnapshot, Trend
from constants import RSI_OVERBOUGHT, RSI_OVERSOLD


def classify_trend(indicators: IndicatorSnapshot, previous: Trend) -> Trend:
    """
    Maps an indicator snapshot plus the prior trend to the new trend.

    Rules are evaluated in order and the first match wins:
      1. short SMA above long SMA and RSI overbought -> Bullish
      2. short SMA below long SMA or RSI oversold    -> Bearish
      3. otherwise the previous trend is kept
    A missing indicator value never satisfies a comparison.
    """
    sma_short, sma_long, rsi = indicators.sma_short, indicators.sma_long, indicators.rsi
    smas_known = sma_short is not None and sma_long is not None

    if smas_known and sma_short > sma_long and rsi is not None and rsi > RSI_OVERBOUGHT:
        return Trend.BULLISH
    if (smas_known and sma_short < sma_long) or (rsi is not None and rsi < RSI_OVERSOLD):
        return Trend.BEARISH
    return previous
