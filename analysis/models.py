#!/usr/bin/env python3
"""Dataclasses shared by the trend engine and the swap pipeline."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from services.errors import FailureReason


class Trend(str, Enum):
    BULLISH = 'Bullish'
    BEARISH = 'Bearish'
    NONE = 'None'


class SwapMode(str, Enum):
    EXACT_IN = 'ExactIn'
    EXACT_OUT = 'ExactOut'


@dataclass(frozen=True, slots=True)
class PriceSample:
    asset: str
    price: float
    timestamp: datetime


@dataclass(slots=True)
class TrendState:
    asset: str
    trend: Trend
    updated_at: Optional[datetime]


@dataclass(frozen=True, slots=True)
class IndicatorSnapshot:
    """Latest value of each indicator series.

    Long-window series need more samples than the minimum window, so they may be
    missing (None) on a short history.
    """
    sma_short: Optional[float]
    sma_long: Optional[float]
    ema_short: Optional[float]
    ema_long: Optional[float]
    rsi: Optional[float]


@dataclass(frozen=True, slots=True)
class TrendRecomputation:
    asset: str
    indicators: IndicatorSnapshot
    previous_trend: Trend
    new_trend: Trend
    transitioned: bool
    updated_at: datetime


@dataclass(slots=True)
class SwapRequest:
    payer_address: str
    input_mint: str
    output_mint: str
    amount: int  # raw units of the input (ExactIn) or output (ExactOut) mint
    mode: SwapMode = SwapMode.EXACT_IN
    slippage_bps: int = 500
    use_relay: bool = True


@dataclass(slots=True)
class SwapResult:
    confirmed: bool
    signature: Optional[str] = None
    token_amount: int = 0
    tx_link: Optional[str] = None
    error: Optional['FailureReason'] = None
    error_detail: Optional[str] = None

    @property
    def error_message(self) -> Optional[str]:
        if self.error is None:
            return None
        return self.error.description


@dataclass(frozen=True, slots=True)
class SubscriptionIntent:
    owner_id: int
    asset: str
    auto_trade_enabled: bool


@dataclass(frozen=True, slots=True)
class TradeSettings:
    currency: str
    amount: float


@dataclass(frozen=True, slots=True)
class WalletCredentials:
    public_address: str
    signing_secret: str

    def __repr__(self) -> str:
        return f"WalletCredentials(public_address={self.public_address!r})"


@dataclass(frozen=True, slots=True)
class TokenHolding:
    asset_address: str
    ui_balance: float
    decimals: int
    raw_amount: int  # exact balance in base units


@dataclass(frozen=True, slots=True)
class TradeOutcome:
    owner_id: int
    asset: str
    side: str  # 'buy' or 'sell'
    result: SwapResult
