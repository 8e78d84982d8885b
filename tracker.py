# tracker.py
import asyncio
import logging
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Tuple

from analysis.models import IndicatorSnapshot, TrendRecomputation, TrendState
from analysis.trend_classifier import classify_trend
from constants import C_BLUE, C_GREEN, C_RED, C_RESET, C_YELLOW, PRICE_WINDOW_MINUTES, TRACKING_INTERVAL_SECONDS
from indicators import compute_indicators
from services.collaborators import PriceStore, TrendStateStore
from services.errors import InsufficientDataError
from services.trade_orchestrator import TradeOrchestrator

logger = logging.getLogger(__name__)


class TrendTracker:
    """
    Runs one periodic task per tracked asset: load the price window, compute
    indicators, classify, and hand transitions to the trade orchestrator.

    Each asset owns an exclusive slot (an asyncio.Lock), so two evaluations of
    the same asset never overlap; the trend read-classify-write happens inside
    that slot as a compare-and-set against the store.
    """

    def __init__(
        self,
        price_store: PriceStore,
        trend_store: TrendStateStore,
        orchestrator: Optional[TradeOrchestrator] = None,
        *,
        interval: float = TRACKING_INTERVAL_SECONDS,
        window: timedelta = timedelta(minutes=PRICE_WINDOW_MINUTES),
    ) -> None:
        self.price_store = price_store
        self.trend_store = trend_store
        self.orchestrator = orchestrator
        self.interval = interval
        self.window = window
        self._slots: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._tasks: Dict[str, asyncio.Task] = {}

    @property
    def tracked_assets(self) -> List[str]:
        return sorted(asset for asset, task in self._tasks.items() if not task.done())

    def start(self, assets: Iterable[str]) -> None:
        for asset in assets:
            self.start_tracking(asset)

    def start_tracking(self, asset: str) -> bool:
        """Starts the periodic task for ``asset``; returns False if already tracked."""
        task = self._tasks.get(asset)
        if task is not None and not task.done():
            return False
        self._tasks[asset] = asyncio.create_task(self._track(asset), name=f"track-{asset}")
        print(f"Tracking {C_BLUE}{asset}{C_RESET} every {self.interval:.0f}s")
        return True

    async def stop_tracking(self, asset: str) -> None:
        task = self._tasks.pop(asset, None)
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def stop(self) -> None:
        for asset in list(self._tasks):
            await self.stop_tracking(asset)

    async def _track(self, asset: str) -> None:
        while True:
            await self.run_tick(asset)
            await asyncio.sleep(self.interval)

    async def run_tick(self, asset: str) -> Optional[TrendRecomputation]:
        """
        One scheduler tick. Skips (returns None) when a previous evaluation of
        the same asset is still running or the price window is too short.
        """
        if self._slots[asset].locked():
            print(f"{C_YELLOW}Previous tick for {asset} still running; skipping.{C_RESET}")
            return None
        try:
            recomputation = await self.recompute_trend(asset)
        except InsufficientDataError as exc:
            print(f"{C_YELLOW}{asset}: {exc}{C_RESET}")
            return None
        except Exception as e:
            print(f"{C_RED}Error calculating indicators for {asset}: {e}{C_RESET}")
            return None
        return recomputation

    async def recompute_trend(self, asset: str, *, trade_on_transition: bool = True) -> TrendRecomputation:
        """
        Recomputes and persists the trend of ``asset``.

        Raises InsufficientDataError when the price window is too short; the
        stored trend is left untouched in that case.
        """
        async with self._slots[asset]:
            indicators, state = await self._evaluate(asset)
            new_trend = classify_trend(indicators, state.trend)
            updated_at = datetime.now(timezone.utc)

            stored = await self.trend_store.compare_and_set_trend(asset, state.trend, new_trend, updated_at)
            transitioned = stored and new_trend != state.trend
            if not stored:
                logger.warning("Trend of %s changed concurrently; not treating this tick as a transition", asset)

            arrow = {'Bullish': '📈', 'Bearish': '📉'}.get(new_trend.value, '➡️')
            print(f"{arrow} {asset} - {new_trend.value}")

            recomputation = TrendRecomputation(
                asset=asset,
                indicators=indicators,
                previous_trend=state.trend,
                new_trend=new_trend,
                transitioned=transitioned,
                updated_at=updated_at,
            )

            if transitioned and trade_on_transition and self.orchestrator is not None:
                print(f"{C_GREEN}{asset}: {state.trend.value} -> {new_trend.value}{C_RESET}")
                await self.orchestrator.handle_transition(asset, new_trend, indicators)
        return recomputation

    async def peek(self, asset: str) -> Tuple[IndicatorSnapshot, TrendState]:
        """Computes indicators and returns the stored trend without writing anything."""
        return await self._evaluate(asset)

    async def _evaluate(self, asset: str) -> Tuple[IndicatorSnapshot, TrendState]:
        state = await self.trend_store.get_trend_state(asset)
        since = datetime.now(timezone.utc) - self.window
        samples = await self.price_store.fetch_price_samples(asset, since)
        return compute_indicators(samples), state
