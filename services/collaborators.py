"""Interfaces of the external collaborators the trend engine depends on."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Protocol

from analysis.models import (
    PriceSample,
    SubscriptionIntent,
    TokenHolding,
    TradeSettings,
    Trend,
    TrendState,
    WalletCredentials,
)


class PriceStore(Protocol):
    async def fetch_price_samples(self, asset: str, since: datetime) -> List[PriceSample]: ...


class TrendStateStore(Protocol):
    async def get_trend_state(self, asset: str) -> TrendState: ...

    async def compare_and_set_trend(
        self, asset: str, expected: Trend, new_trend: Trend, updated_at: datetime
    ) -> bool: ...


class WalletLookup(Protocol):
    async def get_wallet(self, owner_id: int) -> Optional[WalletCredentials]: ...


class BalanceLookup(Protocol):
    async def get_token_holdings(self, owner_address: str) -> List[TokenHolding]: ...


class SubscriptionLookup(Protocol):
    async def subscriptions_for_asset(self, asset: str) -> List[SubscriptionIntent]: ...


class SettingsLookup(Protocol):
    async def get_trade_settings(self, owner_id: int) -> TradeSettings: ...


class Notifier(Protocol):
    async def notify(self, owner_id: int, message: str) -> None: ...
