#!/usr/bin/env python3
"""Polls signature statuses until a transaction lands, fails, or the budget runs out."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict

import aiohttp

from constants import (
    CONFIRM_POLL_INTERVAL_SECONDS,
    CONFIRM_TIMEOUT_SECONDS,
    STATUS_POLL_MAX_ATTEMPTS,
    STATUS_POLL_SLEEP_SECONDS,
)
from services.error_classifier import classify_instruction_error
from services.errors import ConfirmationTimeoutError, OnChainError, RpcError
from services.solana_rpc import SolanaRpcClient

logger = logging.getLogger(__name__)


class ConfirmationPoller:
    def __init__(
        self,
        rpc: SolanaRpcClient,
        *,
        timeout: float = CONFIRM_TIMEOUT_SECONDS,
        poll_interval: float = CONFIRM_POLL_INTERVAL_SECONDS,
        max_attempts: int = STATUS_POLL_MAX_ATTEMPTS,
        retry_sleep: float = STATUS_POLL_SLEEP_SECONDS,
    ) -> None:
        self._rpc = rpc
        self._timeout = timeout
        self._poll_interval = poll_interval
        self._max_attempts = max_attempts
        self._retry_sleep = retry_sleep

    async def wait_for_confirmation(
        self,
        signature: str,
        desired_status: str = "confirmed",
        *,
        search_transaction_history: bool = False,
    ) -> Dict[str, Any]:
        """
        Polls every ``poll_interval`` seconds until ``desired_status`` (or
        ``finalized``) is reached, within the ``timeout`` budget.

        Raises OnChainError for a status carrying an error, RpcError when the
        node returns no status entries at all, and ConfirmationTimeoutError when
        the budget elapses.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._timeout

        while loop.time() < deadline:
            statuses = await self._rpc.get_signature_statuses(
                [signature], search_transaction_history=search_transaction_history
            )
            if not statuses:
                raise RpcError("Failed to get signature status")

            status = statuses[0]
            if status is not None:
                if status.get("err"):
                    raise OnChainError(classify_instruction_error(status["err"]), status["err"], signature=signature)
                confirmation = status.get("confirmationStatus")
                if confirmation in (desired_status, "finalized"):
                    return status

            await asyncio.sleep(self._poll_interval)

        raise ConfirmationTimeoutError(
            f"Transaction confirmation timeout after {self._timeout:.0f}s", signature=signature
        )

    async def poll_status(self, signature: str) -> Dict[str, Any]:
        """
        Attempt-budgeted status check with transaction history enabled.

        ``None`` means "not seen yet" and keeps polling; a status with an error
        is terminal failure; any other status is terminal success. Transport
        errors and RPC error replies are retried within the same budget; an
        empty status list fails at once.
        """
        logger.info("Checking status of %s (max %d, every %.1fs)", signature, self._max_attempts, self._retry_sleep)
        for attempt in range(1, self._max_attempts + 1):
            try:
                statuses = await self._rpc.get_signature_statuses([signature], search_transaction_history=True)
            except (aiohttp.ClientError, asyncio.TimeoutError, RpcError) as exc:
                logger.warning("Status attempt %d for %s failed: %s", attempt, signature, exc)
                await asyncio.sleep(self._retry_sleep)
                continue

            if not statuses:
                raise RpcError("Failed to get signature status")

            status = statuses[0]
            if status is None:
                await asyncio.sleep(self._retry_sleep)
                continue
            if status.get("err") is None:
                logger.info("Transaction confirmed %s", signature)
                return status
            raise OnChainError(classify_instruction_error(status["err"]), status["err"], signature=signature)

        logger.error("Max retries reached. Tx confirmation failed %s", signature)
        raise ConfirmationTimeoutError("could not confirm in time", signature=signature)
