#!/usr/bin/env python3
import os
import argparse
from typing import NamedTuple, Sequence
import constants

class AppConfig(NamedTuple):
    """Typed configuration object."""
    db_path: str
    interval: int
    window_minutes: int
    slippage_bps: int
    use_relay: bool
    relay_tip_lamports: int
    quote_timeout: float
    relay_timeout: float
    confirm_timeout: float
    show_trend: str | None
    telegram_enabled: bool
    telegram_bot_token: str | None
    rpc_url: str
    jupiter_base_url: str
    jupiter_api_key: str | None


def load_config(argv: Sequence[str] | None = None) -> AppConfig:
    """
    Parses command-line arguments and loads environment variables to create a configuration object.
    """
    parser = argparse.ArgumentParser(
        description="Track price trends of Solana tokens and auto-trade on trend transitions.",
        epilog="Example: ./main.py --interval 60 --slippage-bps 300 --no-relay"
    )
    parser.add_argument('--db-path', default='data/trend_engine.db', help='SQLite database file (default: data/trend_engine.db).')
    parser.add_argument('--interval', type=int, default=constants.TRACKING_INTERVAL_SECONDS, help='Seconds between trend evaluations of each asset (default: 60).')
    parser.add_argument('--window-minutes', type=int, default=constants.PRICE_WINDOW_MINUTES, help='Length of the price window in minutes (default: 30).')
    parser.add_argument('--slippage-bps', type=int, default=constants.DEFAULT_SLIPPAGE_BPS, help='Slippage tolerance in basis points (default: 500).')
    parser.add_argument('--relay', action=argparse.BooleanOptionalAction, default=True, help='Submit swaps as relay bundles instead of direct RPC sends.')
    parser.add_argument('--relay-tip-lamports', type=int, default=constants.DEFAULT_RELAY_TIP_LAMPORTS, help='Tip paid to the relay validator in lamports (default: 1000000).')
    parser.add_argument('--quote-timeout', type=float, default=10.0, help='Timeout in seconds for quote and instruction requests (default: 10).')
    parser.add_argument('--relay-timeout', type=float, default=10.0, help='Timeout in seconds for each relay submission (default: 10).')
    parser.add_argument('--confirm-timeout', type=float, default=constants.CONFIRM_TIMEOUT_SECONDS, help='Seconds to wait for a transaction to confirm (default: 30).')
    parser.add_argument('--show-trend', metavar='ASSET', help='Print the stored trend and current indicators of ASSET and exit.')
    parser.add_argument('--no-telegram', action='store_true', help='Run the tracker without the Telegram bot.')

    args = parser.parse_args(argv)

    # Load from environment
    telegram_bot_token = os.environ.get(constants.TELEGRAM_BOT_TOKEN_ENV_VAR)
    rpc_url = os.environ.get(constants.SOLANA_RPC_ENDPOINT_ENV_VAR)
    jupiter_base_url = os.environ.get(constants.JUPITER_API_BASE_URL_ENV_VAR) or constants.JUPITER_API_BASE_URL
    jupiter_api_key = os.environ.get(constants.JUPITER_API_KEY_ENV_VAR)

    if not rpc_url and not args.show_trend:
        print(f"{constants.C_RED}{constants.SOLANA_RPC_ENDPOINT_ENV_VAR} environment variable not set.{constants.C_RESET}")
        exit(1)

    telegram_enabled = not args.no_telegram and not args.show_trend
    if telegram_enabled and not telegram_bot_token:
        print(f"{constants.C_RED}{constants.TELEGRAM_BOT_TOKEN_ENV_VAR} environment variable not set. Use --no-telegram to run without the bot.{constants.C_RESET}")
        exit(1)

    if args.interval <= 0 or args.window_minutes <= 0:
        parser.error('--interval and --window-minutes must be positive.')
    if not 0 <= args.slippage_bps <= 10_000:
        parser.error('--slippage-bps must be between 0 and 10000.')

    return AppConfig(
        db_path=args.db_path,
        interval=args.interval,
        window_minutes=args.window_minutes,
        slippage_bps=args.slippage_bps,
        use_relay=args.relay,
        relay_tip_lamports=args.relay_tip_lamports,
        quote_timeout=args.quote_timeout,
        relay_timeout=args.relay_timeout,
        confirm_timeout=args.confirm_timeout,
        show_trend=args.show_trend,
        telegram_enabled=telegram_enabled,
        telegram_bot_token=telegram_bot_token,
        rpc_url=rpc_url or "",
        jupiter_base_url=jupiter_base_url.rstrip('/'),
        jupiter_api_key=jupiter_api_key,
    )
