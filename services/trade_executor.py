"""Swap execution pipeline: quote, build, broadcast, confirm."""
from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from decimal import ROUND_DOWN, Decimal
from typing import Awaitable, Optional, Type, TypeVar

import aiohttp
from solders.keypair import Keypair

from analysis.models import SwapMode, SwapRequest, SwapResult, WalletCredentials
from constants import CURRENCY_MINTS, DEFAULT_SLIPPAGE_BPS, EXPLORER_TX_BASE_URL
from services.collaborators import BalanceLookup, WalletLookup
from services.confirmation_poller import ConfirmationPoller
from services.errors import (
    BuildFailureError,
    FailureReason,
    QuoteUnavailableError,
    RelayRejectedError,
    RpcError,
    TradeError,
)
from services.instruction_builder import InstructionBuilder
from services.jupiter_client import JupiterClient
from services.relay_broadcaster import RelayBroadcaster

T = TypeVar("T")


class TradeExecutor:
    """Executes buys and sells for wallet owners and reports a SwapResult for each."""

    def __init__(
        self,
        quote_client: JupiterClient,
        instruction_builder: InstructionBuilder,
        broadcaster: RelayBroadcaster,
        poller: ConfirmationPoller,
        wallets: WalletLookup,
        balances: BalanceLookup,
        *,
        slippage_bps: int = DEFAULT_SLIPPAGE_BPS,
        use_relay: bool = True,
        step_timeout: float = 15.0,
    ) -> None:
        self.quote_client = quote_client
        self.instruction_builder = instruction_builder
        self.broadcaster = broadcaster
        self.poller = poller
        self.wallets = wallets
        self.balances = balances
        self.slippage_bps = slippage_bps
        self.use_relay = use_relay
        self.step_timeout = step_timeout
        self.logger = logging.getLogger(__name__)
        self.logger.setLevel(logging.INFO)

    async def execute_buy(self, owner_id: int, asset: str, amount: float, currency: str) -> SwapResult:
        """Spends ``amount`` of the configured currency on ``asset`` (ExactIn)."""
        currency_info = CURRENCY_MINTS.get(currency.upper())
        if currency_info is None:
            return _failure(FailureReason.UNSUPPORTED_CURRENCY, f"Unsupported currency {currency}")
        currency_mint, currency_decimals = currency_info

        wallet = await self.wallets.get_wallet(owner_id)
        payer = self._load_keypair(wallet)
        if payer is None:
            return _failure(FailureReason.WALLET_UNAVAILABLE, f"No usable wallet for owner {owner_id}")

        raw_amount = self._to_raw_units(Decimal(str(amount)), currency_decimals)
        if raw_amount <= 0:
            return _failure(FailureReason.NO_BALANCE, "Configured trade amount is zero")

        request = SwapRequest(
            payer_address=str(payer.pubkey()),
            input_mint=currency_mint,
            output_mint=asset,
            amount=raw_amount,
            mode=SwapMode.EXACT_IN,
            slippage_bps=self.slippage_bps,
            use_relay=self.use_relay,
        )
        return await self.execute_swap(request, payer)

    async def execute_sell(self, owner_id: int, asset: str, currency: str) -> SwapResult:
        """Sells the owner's entire holding of ``asset`` into the configured currency."""
        currency_info = CURRENCY_MINTS.get(currency.upper())
        if currency_info is None:
            return _failure(FailureReason.UNSUPPORTED_CURRENCY, f"Unsupported currency {currency}")
        currency_mint, _ = currency_info

        wallet = await self.wallets.get_wallet(owner_id)
        payer = self._load_keypair(wallet)
        if payer is None:
            return _failure(FailureReason.WALLET_UNAVAILABLE, f"No usable wallet for owner {owner_id}")

        try:
            holdings = await self._bounded(self.balances.get_token_holdings(wallet.public_address))
        except (aiohttp.ClientError, asyncio.TimeoutError, RpcError) as exc:
            self.logger.error("Balance lookup failed for owner %s: %s", owner_id, exc)
            return _failure(FailureReason.BALANCE_UNAVAILABLE, str(exc))

        holding = next((h for h in holdings if h.asset_address == asset), None)
        raw_amount = holding.raw_amount if holding is not None else 0
        if raw_amount <= 0:
            return _failure(FailureReason.NO_BALANCE, f"No {asset} balance to sell")

        request = SwapRequest(
            payer_address=str(payer.pubkey()),
            input_mint=asset,
            output_mint=currency_mint,
            amount=raw_amount,
            mode=SwapMode.EXACT_IN,
            slippage_bps=self.slippage_bps,
            use_relay=self.use_relay,
        )
        return await self.execute_swap(request, payer)

    async def execute_swap(self, request: SwapRequest, payer: Keypair) -> SwapResult:
        """
        Runs one trade attempt end to end and converts every failure into a
        classified SwapResult. Only broadcasting retries internally.
        """
        self.logger.info(
            "swap %s -> %s amount=%s mode=%s relay=%s",
            request.input_mint,
            request.output_mint,
            request.amount,
            request.mode.value,
            request.use_relay,
        )
        signature: Optional[str] = None
        try:
            route = await self._bounded(
                self.quote_client.quote(
                    request.input_mint, request.output_mint, request.amount, request.mode, request.slippage_bps
                ),
                on_timeout=QuoteUnavailableError,
            )
            self.logger.info("Quote received: in=%s out=%s", route.in_amount, route.out_amount)

            raw_instructions = await self._bounded(
                self.quote_client.swap_instructions(route, request.payer_address),
                on_timeout=BuildFailureError,
            )
            compiled = await self._bounded(
                self.instruction_builder.build(raw_instructions),
                on_timeout=BuildFailureError,
            )

            outcome = await self.broadcaster.broadcast(
                payer, compiled.instructions, compiled.lookup_tables, use_relay=request.use_relay
            )
            signature = outcome.signature
            if outcome.accepted:
                await self.poller.wait_for_confirmation(signature)
                await self.poller.poll_status(signature)
            elif signature is None or not await self._landed_anyway(signature):
                raise RelayRejectedError("All attempts failed", signature=signature)
        except TradeError as exc:
            signature = exc.signature or signature
            self.logger.error("swap failed (%s): %s", exc.reason.value, exc)
            return SwapResult(
                confirmed=False,
                signature=signature,
                tx_link=self._tx_link(signature),
                error=exc.reason,
                error_detail=exc.detail or None,
            )
        except (aiohttp.ClientError, asyncio.TimeoutError, RpcError) as exc:
            # Only confirmation polling lets these through; the outcome is unknown.
            self.logger.error("Could not confirm %s: %s", signature, exc)
            return SwapResult(
                confirmed=False,
                signature=signature,
                tx_link=self._tx_link(signature),
                error=FailureReason.CONFIRMATION_TIMEOUT,
                error_detail=str(exc) or type(exc).__name__,
            )

        self.logger.info("Solana: confirmed %s", signature)
        return SwapResult(
            confirmed=True,
            signature=signature,
            token_amount=route.out_amount,
            tx_link=self._tx_link(signature),
        )

    async def _landed_anyway(self, signature: str) -> bool:
        """Checks whether a rejected broadcast was in fact picked up."""
        try:
            await self.poller.poll_status(signature)
        except (TradeError, RpcError, aiohttp.ClientError, asyncio.TimeoutError) as exc:
            self.logger.info("Rejected broadcast %s did not land: %s", signature, exc)
            return False
        return True

    async def _bounded(self, awaitable: Awaitable[T], on_timeout: Optional[Type[TradeError]] = None) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.step_timeout)
        except asyncio.TimeoutError:
            if on_timeout is None:
                raise
            raise on_timeout(f"Timed out after {self.step_timeout:.0f}s") from None

    @staticmethod
    def _load_keypair(wallet: Optional[WalletCredentials]) -> Optional[Keypair]:
        if wallet is None:
            return None
        value = wallet.signing_secret.strip()
        if value.startswith("["):
            with contextlib.suppress(ValueError, TypeError):
                return Keypair.from_bytes(bytes(json.loads(value)))
            return None
        with contextlib.suppress(Exception):
            return Keypair.from_base58_string(value)
        return None

    @staticmethod
    def _to_raw_units(amount: Decimal, decimals: int) -> int:
        scale = Decimal(10) ** decimals
        return int((amount * scale).to_integral_value(rounding=ROUND_DOWN))

    @staticmethod
    def _tx_link(signature: Optional[str]) -> Optional[str]:
        return f"{EXPLORER_TX_BASE_URL}/{signature}" if signature else None


def _failure(reason: FailureReason, detail: str) -> SwapResult:
    return SwapResult(confirmed=False, error=reason, error_detail=detail)
