# indicators.py
from typing import List, Optional, Sequence

from analysis.models import IndicatorSnapshot, PriceSample
from constants import MIN_PRICE_SAMPLES, RSI_PERIOD, SMA_LONG_PERIOD, SMA_SHORT_PERIOD
from services.errors import InsufficientDataError


def calculate_sma(prices: Sequence[float], period: int) -> Optional[float]:
    """Returns the latest simple moving average, or None on a short series."""

    if period <= 0:
        raise ValueError("SMA period must be positive")
    if len(prices) < period:
        return None
    return sum(prices[-period:]) / period


def calculate_ema(prices: Sequence[float], period: int) -> Optional[float]:
    """Latest EMA, seeded with the SMA of the first ``period`` prices."""

    if period <= 0:
        raise ValueError("EMA period must be positive")
    if len(prices) < period:
        return None

    alpha = 2 / (period + 1)
    ema = sum(prices[:period]) / period
    for price in prices[period:]:
        ema = (price - ema) * alpha + ema
    return ema


def calculate_rsi(prices: List[float], period: int = 14) -> Optional[float]:
    """Calculates the latest RSI value using Wilder smoothing."""

    if period <= 0:
        raise ValueError("RSI period must be positive")

    if len(prices) <= period:
        return None

    changes = [prices[i] - prices[i - 1] for i in range(1, len(prices))]

    gains = [max(change, 0.0) for change in changes]
    losses = [max(-change, 0.0) for change in changes]

    avg_gain = sum(gains[:period]) / period
    avg_loss = sum(losses[:period]) / period

    for gain, loss in zip(gains[period:], losses[period:]):
        avg_gain = ((avg_gain * (period - 1)) + gain) / period
        avg_loss = ((avg_loss * (period - 1)) + loss) / period

    return _rsi_from_averages(avg_gain, avg_loss)


def _rsi_from_averages(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0 and avg_gain == 0:
        return 50.0
    if avg_loss == 0:
        return 100.0
    if avg_gain == 0:
        return 0.0
    rs = avg_gain / avg_loss
    return 100 - (100 / (1 + rs))


def compute_indicators(samples: Sequence[PriceSample]) -> IndicatorSnapshot:
    """
    Computes the indicator snapshot for one asset's time-ordered price window.

    Raises InsufficientDataError when fewer than MIN_PRICE_SAMPLES samples are
    available; the caller is expected to skip classification for that tick.
    """
    if len(samples) < MIN_PRICE_SAMPLES:
        raise InsufficientDataError(len(samples), MIN_PRICE_SAMPLES)

    prices = [sample.price for sample in samples]
    return IndicatorSnapshot(
        sma_short=calculate_sma(prices, SMA_SHORT_PERIOD),
        sma_long=calculate_sma(prices, SMA_LONG_PERIOD),
        ema_short=calculate_ema(prices, SMA_SHORT_PERIOD),
        ema_long=calculate_ema(prices, SMA_LONG_PERIOD),
        rsi=calculate_rsi(prices, RSI_PERIOD),
    )
