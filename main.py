#!/usr/bin/env python3
import asyncio
import logging
import time
from datetime import timedelta

import aiohttp
from telegram import BotCommand
from telegram.ext import Application, CommandHandler
from telegram.error import TimedOut, TelegramError

import constants
from config import AppConfig, load_config
from bot.handlers import (
    help_command,
    status_command,
    subscribe_command,
    trend_command,
    unsubscribe_command,
)
from bot.notifier import TelegramNotifier
from services.collaborators import Notifier
from services.confirmation_poller import ConfirmationPoller
from services.errors import InsufficientDataError
from services.instruction_builder import InstructionBuilder
from services.jupiter_client import JupiterClient
from services.relay_broadcaster import RelayBroadcaster
from services.solana_rpc import SolanaRpcClient
from services.trade_executor import TradeExecutor
from services.trade_orchestrator import TradeOrchestrator, format_indicators
from storage import SQLiteRepository
from tracker import TrendTracker


def build_tracker(
    config: AppConfig,
    session: aiohttp.ClientSession,
    repository: SQLiteRepository,
    notifier: Notifier | None,
) -> TrendTracker:
    """Wires the swap pipeline, the orchestrator and the tracker around one HTTP session."""
    rpc = SolanaRpcClient(session, rpc_url=config.rpc_url)
    jupiter = JupiterClient(
        session,
        base_url=config.jupiter_base_url,
        api_key=config.jupiter_api_key,
        timeout=config.quote_timeout,
    )
    broadcaster = RelayBroadcaster(
        session,
        rpc,
        endpoints=constants.RELAY_ENDPOINTS,
        tip_accounts=constants.RELAY_TIP_ACCOUNTS,
        tip_lamports=config.relay_tip_lamports,
        max_attempts=constants.MAX_BROADCAST_ATTEMPTS,
        timeout=config.relay_timeout,
    )
    poller = ConfirmationPoller(rpc, timeout=config.confirm_timeout)
    executor = TradeExecutor(
        jupiter,
        InstructionBuilder(rpc),
        broadcaster,
        poller,
        wallets=repository,
        balances=rpc,
        slippage_bps=config.slippage_bps,
        use_relay=config.use_relay,
    )
    orchestrator = TradeOrchestrator(executor, subscriptions=repository, settings=repository, notifier=notifier)
    return TrendTracker(
        repository,
        repository,
        orchestrator,
        interval=config.interval,
        window=timedelta(minutes=config.window_minutes),
    )


async def post_init_hook(application: Application) -> None:
    """A hook that runs after the bot is initialized to set up shared clients and tasks."""
    # Create and store a single, shared aiohttp session
    session = aiohttp.ClientSession(headers={'User-Agent': 'TrendSignalBot/1.0'})
    application.bot_data['http_session'] = session

    config = application.bot_data['config']
    repository = application.bot_data['repository']
    tracker = build_tracker(config, session, repository, TelegramNotifier(application.bot))
    application.bot_data['tracker'] = tracker

    # Set bot commands
    commands = [
        BotCommand("subscribe", "Receive signals for a token"),
        BotCommand("unsubscribe", "Stop signals for a token"),
        BotCommand("trend", "Show a token's trend"),
        BotCommand("status", "Check bot status"),
        BotCommand("help", "Show help message"),
    ]
    try:
        await application.bot.set_my_commands(commands)
    except (TimedOut, TelegramError) as exc:
        print(
            f"{constants.C_YELLOW}Warning: unable to set Telegram bot commands ({exc})."
            f" Continuing startup without updating commands.{constants.C_RESET}"
        )

    tracker.start(await repository.list_tracked_assets())

async def post_shutdown_hook(application: Application) -> None:
    """A hook that runs on application shutdown to clean up resources."""
    tracker = application.bot_data.get('tracker')
    if tracker:
        await tracker.stop()
    session = application.bot_data.get('http_session')
    if session:
        await session.close()
    repository = application.bot_data.get('repository')
    if repository:
        await repository.close()


async def run_headless(config: AppConfig, repository: SQLiteRepository) -> None:
    """Runs the tracker without Telegram; signals and outcomes only reach the log."""
    async with aiohttp.ClientSession(headers={'User-Agent': 'TrendSignalBot/1.0'}) as session:
        tracker = build_tracker(config, session, repository, notifier=None)
        assets = await repository.list_tracked_assets()
        if not assets:
            print(f"{constants.C_YELLOW}No subscribed tokens to track.{constants.C_RESET}")
            return
        tracker.start(assets)
        try:
            await asyncio.Event().wait()
        finally:
            await tracker.stop()


async def show_trend(repository: SQLiteRepository, asset: str, window_minutes: int) -> None:
    tracker = TrendTracker(repository, repository, window=timedelta(minutes=window_minutes))
    try:
        indicators, state = await tracker.peek(asset)
    except InsufficientDataError as e:
        print(f"{constants.C_YELLOW}{asset}: {e}{constants.C_RESET}")
        return
    updated = state.updated_at.strftime("%Y-%m-%d %H:%M:%S") if state.updated_at else "never"
    print(f"Trend for {constants.C_BLUE}{asset}{constants.C_RESET}: {state.trend.value} (updated {updated})")
    print(format_indicators(indicators))


def main() -> None:
    """The main synchronous entry point for the application."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = load_config()
    repository = SQLiteRepository(config.db_path)

    if config.show_trend:
        async def _show() -> None:
            try:
                await show_trend(repository, config.show_trend, config.window_minutes)
            finally:
                await repository.close()
        asyncio.run(_show())
        return

    if not config.telegram_enabled:
        print("Telegram is not configured. The application will run in CLI-only mode.")

        async def _headless() -> None:
            try:
                await run_headless(config, repository)
            finally:
                await repository.close()
        try:
            asyncio.run(_headless())
        except KeyboardInterrupt:
            print("Stopped.")
        return

    application = (
        Application.builder()
        .token(config.telegram_bot_token)
        .post_init(post_init_hook)
        .post_shutdown(post_shutdown_hook)
        .build()
    )

    # Store config and other shared data
    application.bot_data['config'] = config
    application.bot_data['start_time'] = time.time()
    application.bot_data['repository'] = repository

    # Register command handlers
    application.add_handler(CommandHandler("start", help_command))
    application.add_handler(CommandHandler("help", help_command))
    application.add_handler(CommandHandler("status", status_command))
    application.add_handler(CommandHandler("trend", trend_command))
    application.add_handler(CommandHandler("subscribe", subscribe_command))
    application.add_handler(CommandHandler("unsubscribe", unsubscribe_command))

    application.run_polling()


if __name__ == "__main__":
    main()
