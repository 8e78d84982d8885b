"""SQLite-backed persistence for price samples, trend state, subscriptions, settings and wallets."""
from __future__ import annotations

import asyncio
import sqlite3
import threading
from datetime import datetime, timezone
from functools import partial
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar

from analysis.models import (
    PriceSample,
    SubscriptionIntent,
    TradeSettings,
    Trend,
    TrendState,
    WalletCredentials,
)

ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"
DEFAULT_CURRENCY = "SOL"
DEFAULT_AMOUNT = 0.1

T = TypeVar("T")


def _format_ts(value: datetime) -> str:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime(ISO_FORMAT)


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.strptime(value, ISO_FORMAT).replace(tzinfo=timezone.utc)


class SQLiteRepository:
    """Provides async-friendly helpers backing the trend engine's collaborators."""

    def __init__(self, db_path: Path | str = Path("data/trend_engine.db")) -> None:
        self.db_path = Path(db_path)
        if self.db_path != Path(":memory:"):
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._connection = sqlite3.connect(
            str(self.db_path),
            detect_types=sqlite3.PARSE_DECLTYPES,
            check_same_thread=False,
        )
        self._connection.row_factory = sqlite3.Row
        self._configure()
        self._create_schema()

    def _configure(self) -> None:
        with self._lock:
            cursor = self._connection.cursor()
            try:
                cursor.execute("PRAGMA journal_mode=WAL;")
            except sqlite3.DatabaseError:
                pass
            cursor.close()

    def _create_schema(self) -> None:
        statements = [
            """
            CREATE TABLE IF NOT EXISTS price_sample (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                asset TEXT NOT NULL,
                price REAL NOT NULL,
                created_at TEXT NOT NULL
            );
            """,
            """
            CREATE INDEX IF NOT EXISTS idx_price_sample_asset_time
                ON price_sample(asset, created_at);
            """,
            """
            CREATE TABLE IF NOT EXISTS trend_state (
                asset TEXT PRIMARY KEY,
                trend TEXT NOT NULL DEFAULT 'None',
                updated_at TEXT NOT NULL
            );
            """,
            """
            CREATE TABLE IF NOT EXISTS token_subscription (
                owner_id INTEGER NOT NULL,
                asset TEXT NOT NULL,
                auto_trade INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                PRIMARY KEY (owner_id, asset)
            );
            """,
            """
            CREATE TABLE IF NOT EXISTS user_settings (
                owner_id INTEGER PRIMARY KEY,
                currency TEXT NOT NULL,
                amount REAL NOT NULL,
                updated_at TEXT NOT NULL
            );
            """,
            """
            CREATE TABLE IF NOT EXISTS wallet (
                owner_id INTEGER PRIMARY KEY,
                public_address TEXT NOT NULL,
                signing_secret TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );
            """,
        ]

        with self._lock:
            cursor = self._connection.cursor()
            for statement in statements:
                cursor.execute(statement)
            self._connection.commit()
            cursor.close()

    async def _run(self, func: Callable[..., T], *args: Any) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(func, *args))

    # --- price samples -------------------------------------------------

    async def record_price_sample(self, asset: str, price: float, created_at: Optional[datetime] = None) -> None:
        await self._run(self._record_price_sample_sync, asset, price, created_at or datetime.now(timezone.utc))

    def _record_price_sample_sync(self, asset: str, price: float, created_at: datetime) -> None:
        with self._lock:
            self._connection.execute(
                "INSERT INTO price_sample (asset, price, created_at) VALUES (?, ?, ?)",
                (asset, price, _format_ts(created_at)),
            )
            self._connection.commit()

    async def fetch_price_samples(self, asset: str, since: datetime) -> list[PriceSample]:
        return await self._run(self._fetch_price_samples_sync, asset, since)

    def _fetch_price_samples_sync(self, asset: str, since: datetime) -> list[PriceSample]:
        with self._lock:
            cursor = self._connection.cursor()
            cursor.execute(
                """
                SELECT asset, price, created_at FROM price_sample
                WHERE asset = ? AND created_at >= ?
                ORDER BY created_at ASC, id ASC
                """,
                (asset, _format_ts(since)),
            )
            rows = cursor.fetchall()
            cursor.close()
        return [
            PriceSample(asset=row["asset"], price=row["price"], timestamp=_parse_ts(row["created_at"]))
            for row in rows
        ]

    # --- trend state ---------------------------------------------------

    async def get_trend_state(self, asset: str) -> TrendState:
        return await self._run(self._get_trend_state_sync, asset)

    def _get_trend_state_sync(self, asset: str) -> TrendState:
        with self._lock:
            row = self._connection.execute(
                "SELECT trend, updated_at FROM trend_state WHERE asset = ?", (asset,)
            ).fetchone()
        if row is None:
            return TrendState(asset=asset, trend=Trend.NONE, updated_at=None)
        return TrendState(asset=asset, trend=Trend(row["trend"]), updated_at=_parse_ts(row["updated_at"]))

    async def compare_and_set_trend(
        self, asset: str, expected: Trend, new_trend: Trend, updated_at: datetime
    ) -> bool:
        """Writes ``new_trend`` only if the stored trend still equals ``expected``."""
        return await self._run(self._compare_and_set_trend_sync, asset, expected, new_trend, updated_at)

    def _compare_and_set_trend_sync(
        self, asset: str, expected: Trend, new_trend: Trend, updated_at: datetime
    ) -> bool:
        with self._lock:
            row = self._connection.execute("SELECT trend FROM trend_state WHERE asset = ?", (asset,)).fetchone()
            current = Trend(row["trend"]) if row is not None else Trend.NONE
            if current != expected:
                return False
            self._connection.execute(
                """
                INSERT INTO trend_state (asset, trend, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(asset) DO UPDATE SET trend = excluded.trend, updated_at = excluded.updated_at
                """,
                (asset, new_trend.value, _format_ts(updated_at)),
            )
            self._connection.commit()
        return True

    # --- subscriptions -------------------------------------------------

    async def add_subscription(self, owner_id: int, asset: str, auto_trade: bool = False) -> None:
        await self._run(self._add_subscription_sync, owner_id, asset, auto_trade)

    def _add_subscription_sync(self, owner_id: int, asset: str, auto_trade: bool) -> None:
        with self._lock:
            self._connection.execute(
                """
                INSERT INTO token_subscription (owner_id, asset, auto_trade, created_at) VALUES (?, ?, ?, ?)
                ON CONFLICT(owner_id, asset) DO UPDATE SET auto_trade = excluded.auto_trade
                """,
                (owner_id, asset, 1 if auto_trade else 0, _format_ts(datetime.now(timezone.utc))),
            )
            self._connection.commit()

    async def remove_subscription(self, owner_id: int, asset: str) -> bool:
        """Deletes one subscription; returns False if it did not exist."""
        return await self._run(self._remove_subscription_sync, owner_id, asset)

    def _remove_subscription_sync(self, owner_id: int, asset: str) -> bool:
        with self._lock:
            cursor = self._connection.execute(
                "DELETE FROM token_subscription WHERE owner_id = ? AND asset = ?",
                (owner_id, asset),
            )
            self._connection.commit()
        return cursor.rowcount > 0

    async def subscriptions_for_asset(self, asset: str) -> list[SubscriptionIntent]:
        return await self._run(self._subscriptions_for_asset_sync, asset)

    def _subscriptions_for_asset_sync(self, asset: str) -> list[SubscriptionIntent]:
        with self._lock:
            rows = self._connection.execute(
                "SELECT owner_id, asset, auto_trade FROM token_subscription WHERE asset = ? ORDER BY owner_id",
                (asset,),
            ).fetchall()
        return [
            SubscriptionIntent(owner_id=row["owner_id"], asset=row["asset"], auto_trade_enabled=bool(row["auto_trade"]))
            for row in rows
        ]

    async def list_tracked_assets(self) -> list[str]:
        return await self._run(self._list_tracked_assets_sync)

    def _list_tracked_assets_sync(self) -> list[str]:
        with self._lock:
            rows = self._connection.execute(
                "SELECT DISTINCT asset FROM token_subscription ORDER BY asset"
            ).fetchall()
        return [row["asset"] for row in rows]

    # --- settings & wallets --------------------------------------------

    async def set_trade_settings(self, owner_id: int, currency: str, amount: float) -> None:
        await self._run(self._set_trade_settings_sync, owner_id, currency.upper(), amount)

    def _set_trade_settings_sync(self, owner_id: int, currency: str, amount: float) -> None:
        with self._lock:
            self._connection.execute(
                """
                INSERT INTO user_settings (owner_id, currency, amount, updated_at) VALUES (?, ?, ?, ?)
                ON CONFLICT(owner_id) DO UPDATE SET
                    currency = excluded.currency, amount = excluded.amount, updated_at = excluded.updated_at
                """,
                (owner_id, currency, amount, _format_ts(datetime.now(timezone.utc))),
            )
            self._connection.commit()

    async def get_trade_settings(self, owner_id: int) -> TradeSettings:
        return await self._run(self._get_trade_settings_sync, owner_id)

    def _get_trade_settings_sync(self, owner_id: int) -> TradeSettings:
        with self._lock:
            row = self._connection.execute(
                "SELECT currency, amount FROM user_settings WHERE owner_id = ?", (owner_id,)
            ).fetchone()
        if row is None:
            return TradeSettings(currency=DEFAULT_CURRENCY, amount=DEFAULT_AMOUNT)
        return TradeSettings(currency=row["currency"], amount=row["amount"])

    async def save_wallet(self, owner_id: int, public_address: str, signing_secret: str) -> None:
        await self._run(self._save_wallet_sync, owner_id, public_address, signing_secret)

    def _save_wallet_sync(self, owner_id: int, public_address: str, signing_secret: str) -> None:
        with self._lock:
            self._connection.execute(
                """
                INSERT INTO wallet (owner_id, public_address, signing_secret, updated_at) VALUES (?, ?, ?, ?)
                ON CONFLICT(owner_id) DO UPDATE SET
                    public_address = excluded.public_address,
                    signing_secret = excluded.signing_secret,
                    updated_at = excluded.updated_at
                """,
                (owner_id, public_address, signing_secret, _format_ts(datetime.now(timezone.utc))),
            )
            self._connection.commit()

    async def get_wallet(self, owner_id: int) -> Optional[WalletCredentials]:
        return await self._run(self._get_wallet_sync, owner_id)

    def _get_wallet_sync(self, owner_id: int) -> Optional[WalletCredentials]:
        with self._lock:
            row = self._connection.execute(
                "SELECT public_address, signing_secret FROM wallet WHERE owner_id = ?", (owner_id,)
            ).fetchone()
        if row is None:
            return None
        return WalletCredentials(public_address=row["public_address"], signing_secret=row["signing_secret"])

    async def close(self) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._close_sync)

    def _close_sync(self) -> None:
        with self._lock:
            self._connection.commit()
            self._connection.close()


__all__ = ["SQLiteRepository"]
