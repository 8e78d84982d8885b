#!/usr/bin/env python3
from typing import Dict, List, Tuple

# --- ANSI Color Codes ---
C_GREEN = '\033[92m'
C_RED = '\033[91m'
C_YELLOW = '\033[93m'
C_BLUE = '\033[94m'
C_RESET = '\033[0m'

# --- API Configuration ---
JUPITER_API_BASE_URL = 'https://api.jup.ag/swap/v1'
EXPLORER_TX_BASE_URL = 'https://solscan.io/tx'

# --- Environment Variable Names ---
TELEGRAM_BOT_TOKEN_ENV_VAR = 'TELEGRAM_BOT_TOKEN'
SOLANA_RPC_ENDPOINT_ENV_VAR = 'SOLANA_RPC_ENDPOINT'
JUPITER_API_BASE_URL_ENV_VAR = 'JUPITER_API_BASE_URL'
JUPITER_API_KEY_ENV_VAR = 'JUPITER_API_KEY'

# --- Mints & Programs ---
WSOL_ADDRESS = 'So11111111111111111111111111111111111111112'
USDC_ADDRESS = 'EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v'
TOKEN_PROGRAM_ID = 'TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA'

# Configured trade currency -> (mint, decimals)
CURRENCY_MINTS: Dict[str, Tuple[str, int]] = {
    'SOL': (WSOL_ADDRESS, 9),
    'USDC': (USDC_ADDRESS, 6),
}

# --- Relay (bundle) Configuration ---
RELAY_ENDPOINTS: List[str] = [
    'https://mainnet.block-engine.jito.wtf/api/v1/bundles',
    'https://amsterdam.mainnet.block-engine.jito.wtf/api/v1/bundles',
    'https://frankfurt.mainnet.block-engine.jito.wtf/api/v1/bundles',
    'https://ny.mainnet.block-engine.jito.wtf/api/v1/bundles',
    'https://tokyo.mainnet.block-engine.jito.wtf/api/v1/bundles',
]

RELAY_TIP_ACCOUNTS: List[str] = [
    'DfXygSm4jCyNCybVYYK6DwvWqjKee8pbDmJGcLWNDXjh',
    'ADuUkR4vqLUMWXxW9gh6D6L8pMSawimctcNZ5pGwDcEt',
    '3AVi9Tg9Uo68tJfuvoKvqKNWKkC5wPdSSdeBnizKZ6jT',
    'HFqU5x63VTqvQss8hp11i4wVV8bD44PvwucfZ2bU7gRe',
    'ADaUMid9yfUytqMBgopwjb2DTLSokTSzL1zt6iGPaS49',
    'Cw8CFyM9FkoMi7K7Crf6HNQqf4uEMzpKw6QNghXLvLkY',
    'DttWaMuVvTiduZRnguLF7jNxTgiMBZ1hyAumKUiL2KRL',
    '96gYZGLnJYVFmbjzopPSU6QiEV5fGqZNyN9nmNhvrZU5',
]

DEFAULT_RELAY_TIP_LAMPORTS = 1_000_000
MAX_BROADCAST_ATTEMPTS = 3
DIRECT_SEND_MAX_RETRIES = 3

# --- Swap Defaults ---
DEFAULT_SLIPPAGE_BPS = 500
PRIORITY_FEE_MAX_LAMPORTS = 50_000_000
PRIORITY_FEE_LEVEL = 'veryHigh'

# --- Confirmation Defaults ---
CONFIRM_TIMEOUT_SECONDS = 30.0
CONFIRM_POLL_INTERVAL_SECONDS = 1.0
STATUS_POLL_MAX_ATTEMPTS = 20
STATUS_POLL_SLEEP_SECONDS = 0.5

# --- Indicator & Tracking Defaults ---
MIN_PRICE_SAMPLES = 14
SMA_SHORT_PERIOD = 9
SMA_LONG_PERIOD = 20
RSI_PERIOD = 14
RSI_OVERBOUGHT = 70.0
RSI_OVERSOLD = 30.0
TRACKING_INTERVAL_SECONDS = 60
PRICE_WINDOW_MINUTES = 30
