import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

import tracker as tracker_module
from analysis.models import (
    IndicatorSnapshot,
    PriceSample,
    SubscriptionIntent,
    SwapResult,
    TradeSettings,
    Trend,
    TrendState,
)
from services.errors import FailureReason
from services.trade_orchestrator import TradeOrchestrator
from tracker import TrendTracker

ASSET = "TokenMintX"
BULLISH_SNAPSHOT = IndicatorSnapshot(sma_short=1.2, sma_long=1.0, ema_short=1.1, ema_long=1.0, rsi=75.0)


class FakePriceStore:
    def __init__(self, count):
        now = datetime.now(timezone.utc)
        self.samples = [
            PriceSample(asset=ASSET, price=1.0, timestamp=now - timedelta(minutes=count - i)) for i in range(count)
        ]
        self.queries = 0

    async def fetch_price_samples(self, asset, since):
        self.queries += 1
        return [sample for sample in self.samples if sample.timestamp >= since]


class FakeTrendStore:
    def __init__(self, trend=Trend.NONE):
        self.trend = trend
        self.writes = []
        self.reject_writes = False

    async def get_trend_state(self, asset):
        return TrendState(asset=asset, trend=self.trend, updated_at=None)

    async def compare_and_set_trend(self, asset, expected, new_trend, updated_at):
        if self.reject_writes or expected != self.trend:
            return False
        self.trend = new_trend
        self.writes.append(new_trend)
        return True


@pytest.fixture
def bullish_indicators(monkeypatch):
    monkeypatch.setattr(tracker_module, "compute_indicators", lambda samples: BULLISH_SNAPSHOT)


@pytest.mark.asyncio
async def test_transition_to_bullish_triggers_orchestrator(bullish_indicators):
    trend_store = FakeTrendStore(Trend.NONE)
    orchestrator = AsyncMock()
    tracker = TrendTracker(FakePriceStore(20), trend_store, orchestrator)

    result = await tracker.recompute_trend(ASSET)

    assert result.new_trend is Trend.BULLISH
    assert result.previous_trend is Trend.NONE
    assert result.transitioned is True
    assert trend_store.trend is Trend.BULLISH
    orchestrator.handle_transition.assert_awaited_once_with(ASSET, Trend.BULLISH, BULLISH_SNAPSHOT)


@pytest.mark.asyncio
async def test_unchanged_trend_does_not_trade(bullish_indicators):
    trend_store = FakeTrendStore(Trend.BULLISH)
    orchestrator = AsyncMock()
    tracker = TrendTracker(FakePriceStore(20), trend_store, orchestrator)

    result = await tracker.recompute_trend(ASSET)

    assert result.transitioned is False
    assert trend_store.writes == [Trend.BULLISH]
    orchestrator.handle_transition.assert_not_awaited()


@pytest.mark.asyncio
async def test_insufficient_data_never_classifies():
    trend_store = FakeTrendStore(Trend.BEARISH)
    orchestrator = AsyncMock()
    tracker = TrendTracker(FakePriceStore(5), trend_store, orchestrator)

    assert await tracker.run_tick(ASSET) is None
    assert trend_store.writes == []
    assert trend_store.trend is Trend.BEARISH
    orchestrator.handle_transition.assert_not_awaited()


@pytest.mark.asyncio
async def test_lost_compare_and_set_is_not_a_transition(bullish_indicators):
    trend_store = FakeTrendStore(Trend.NONE)
    trend_store.reject_writes = True
    orchestrator = AsyncMock()
    tracker = TrendTracker(FakePriceStore(20), trend_store, orchestrator)

    result = await tracker.recompute_trend(ASSET)

    assert result.transitioned is False
    orchestrator.handle_transition.assert_not_awaited()


@pytest.mark.asyncio
async def test_overlapping_tick_is_skipped(bullish_indicators):
    release = asyncio.Event()
    entered = asyncio.Event()

    async def _slow_transition(*args):
        entered.set()
        await release.wait()
        return []

    orchestrator = AsyncMock()
    orchestrator.handle_transition.side_effect = _slow_transition
    prices = FakePriceStore(20)
    tracker = TrendTracker(prices, FakeTrendStore(Trend.NONE), orchestrator)

    first = asyncio.create_task(tracker.run_tick(ASSET))
    await entered.wait()
    skipped = await tracker.run_tick(ASSET)
    release.set()
    completed = await first

    assert skipped is None
    assert completed.transitioned is True
    assert prices.queries == 1
    orchestrator.handle_transition.assert_awaited_once()


@pytest.mark.asyncio
async def test_other_assets_are_not_blocked(bullish_indicators):
    release = asyncio.Event()
    entered = asyncio.Event()

    async def _slow_transition(asset, *args):
        if asset == ASSET:
            entered.set()
            await release.wait()
        return []

    orchestrator = AsyncMock()
    orchestrator.handle_transition.side_effect = _slow_transition
    tracker = TrendTracker(FakePriceStore(20), FakeTrendStore(Trend.NONE), orchestrator)

    first = asyncio.create_task(tracker.run_tick(ASSET))
    await entered.wait()
    other = await tracker.run_tick("OtherMint")
    release.set()
    await first

    assert other is not None


@pytest.mark.asyncio
async def test_peek_does_not_write(bullish_indicators):
    trend_store = FakeTrendStore(Trend.NONE)
    tracker = TrendTracker(FakePriceStore(20), trend_store)

    indicators, state = await tracker.peek(ASSET)

    assert indicators == BULLISH_SNAPSHOT
    assert state.trend is Trend.NONE
    assert trend_store.writes == []


@pytest.mark.asyncio
async def test_start_tracking_is_idempotent():
    tracker = TrendTracker(FakePriceStore(0), FakeTrendStore(), interval=3600)

    assert tracker.start_tracking(ASSET) is True
    assert tracker.start_tracking(ASSET) is False
    assert tracker.tracked_assets == [ASSET]

    await tracker.stop()
    assert tracker.tracked_assets == []


class FakeSubscriptions:
    def __init__(self, intents):
        self._intents = intents

    async def subscriptions_for_asset(self, asset):
        return [intent for intent in self._intents if intent.asset == asset]


class FakeSettings:
    async def get_trade_settings(self, owner_id):
        return TradeSettings("SOL", 0.25)


@pytest.mark.asyncio
async def test_bullish_transition_trades_for_every_auto_subscriber(bullish_indicators):
    async def _buy(owner_id, asset, amount, currency):
        if owner_id == 1:
            return SwapResult(confirmed=False, error=FailureReason.NO_ROUTE)
        return SwapResult(confirmed=True, signature="SIG2", token_amount=42, tx_link="https://solscan.io/tx/SIG2")

    executor = AsyncMock()
    executor.execute_buy.side_effect = _buy
    notifier = AsyncMock()
    intents = [SubscriptionIntent(1, ASSET, True), SubscriptionIntent(2, ASSET, True)]
    orchestrator = TradeOrchestrator(executor, FakeSubscriptions(intents), FakeSettings(), notifier)
    trend_store = FakeTrendStore(Trend.NONE)
    tracker = TrendTracker(FakePriceStore(20), trend_store, orchestrator)

    result = await tracker.recompute_trend(ASSET)

    assert result.transitioned is True
    assert trend_store.trend is Trend.BULLISH
    executor.execute_buy.assert_any_await(1, ASSET, 0.25, "SOL")
    executor.execute_buy.assert_any_await(2, ASSET, 0.25, "SOL")
    assert executor.execute_buy.await_count == 2
    executor.execute_sell.assert_not_awaited()

    messages = {}
    for call in notifier.notify.await_args_list:
        owner_id, text = call.args
        messages.setdefault(owner_id, []).append(text)
    assert any("Buy Signal" in text for text in messages[1])
    assert any("failed" in text and FailureReason.NO_ROUTE.description in text for text in messages[1])
    assert any(text.startswith("✅ Bought") and "SIG2" in text for text in messages[2])
