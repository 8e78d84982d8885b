"""Fans a trend transition out to subscriber notifications and auto-trades."""
from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from analysis.models import (
    IndicatorSnapshot,
    SubscriptionIntent,
    SwapResult,
    TradeOutcome,
    Trend,
)
from services.collaborators import Notifier, SettingsLookup, SubscriptionLookup
from services.errors import FailureReason
from services.trade_executor import TradeExecutor

logger = logging.getLogger(__name__)


class TradeOrchestrator:
    def __init__(
        self,
        executor: TradeExecutor,
        subscriptions: SubscriptionLookup,
        settings: SettingsLookup,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self.executor = executor
        self.subscriptions = subscriptions
        self.settings = settings
        self.notifier = notifier

    async def handle_transition(
        self,
        asset: str,
        trend: Trend,
        indicators: Optional[IndicatorSnapshot] = None,
    ) -> List[TradeOutcome]:
        """
        Announces the new signal to every subscriber of ``asset`` and runs an
        auto-trade for those who enabled it. Trades run concurrently and
        independently; every outcome is reported back to its owner.
        """
        if trend is Trend.NONE:
            return []

        subscriptions = await self.subscriptions.subscriptions_for_asset(asset)
        if indicators is not None:
            signal = format_signal_message(asset, trend, indicators)
            await asyncio.gather(*(self._notify(sub.owner_id, signal) for sub in subscriptions))

        traders = [sub for sub in subscriptions if sub.auto_trade_enabled]
        if not traders:
            return []
        logger.info("%s turned %s; trading for %d subscriber(s)", asset, trend.value, len(traders))
        return list(await asyncio.gather(*(self._trade_for(sub, trend) for sub in traders)))

    async def _trade_for(self, subscription: SubscriptionIntent, trend: Trend) -> TradeOutcome:
        side = 'buy' if trend is Trend.BULLISH else 'sell'
        try:
            settings = await self.settings.get_trade_settings(subscription.owner_id)
            if side == 'buy':
                result = await self.executor.execute_buy(
                    subscription.owner_id, subscription.asset, settings.amount, settings.currency
                )
            else:
                result = await self.executor.execute_sell(subscription.owner_id, subscription.asset, settings.currency)
        except Exception as exc:
            # One subscriber's failure must not abort the other trades of this transition.
            logger.exception("Unexpected error trading %s for %s", subscription.asset, subscription.owner_id)
            result = SwapResult(confirmed=False, error=FailureReason.UNCLASSIFIED_ERROR, error_detail=str(exc))

        outcome = TradeOutcome(owner_id=subscription.owner_id, asset=subscription.asset, side=side, result=result)
        await self._notify(subscription.owner_id, format_trade_message(outcome))
        return outcome

    async def _notify(self, owner_id: int, message: str) -> None:
        if self.notifier is None:
            return
        try:
            await self.notifier.notify(owner_id, message)
        except Exception as exc:
            logger.error("Error sending message to user %s: %s", owner_id, exc)


def format_signal_message(asset: str, trend: Trend, indicators: IndicatorSnapshot) -> str:
    heading = '🟢 Buy Signal' if trend is Trend.BULLISH else '🔴 Sell Signal'
    return (
        f"{heading} for {asset}\n\n"
        f"📈 Current Indicators:\n"
        f"{format_indicators(indicators)}\n\n"
        f"💡 Analysis:\n"
        f"• Short-term (9) vs Long-term (20) moving averages show the current trend\n"
        f"• RSI indicates if the token is overbought (>70) or oversold (<30)"
    )


def format_indicators(indicators: IndicatorSnapshot) -> str:
    def _fmt(value: Optional[float], digits: int) -> str:
        return f"{value:.{digits}f}" if value is not None else "n/a"

    return (
        f"• SMA (9): {_fmt(indicators.sma_short, 10)}\n"
        f"• SMA (20): {_fmt(indicators.sma_long, 10)}\n"
        f"• EMA (9): {_fmt(indicators.ema_short, 10)}\n"
        f"• EMA (20): {_fmt(indicators.ema_long, 10)}\n"
        f"• RSI: {_fmt(indicators.rsi, 2)}"
    )


def format_trade_message(outcome: TradeOutcome) -> str:
    result = outcome.result
    action = 'Bought' if outcome.side == 'buy' else 'Sold'
    if result.confirmed:
        return f"✅ {action} {outcome.asset}\nTx: {result.tx_link}"
    message = f"❌ Auto-{outcome.side} of {outcome.asset} failed: {result.error_message}"
    if result.tx_link:
        message += f"\nTx: {result.tx_link}"
    return message
