#!/usr/bin/env python3
"""Async client for the Jupiter swap aggregation API (quote + swap-instructions)."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import aiohttp

from analysis.models import SwapMode
from constants import JUPITER_API_BASE_URL, PRIORITY_FEE_LEVEL, PRIORITY_FEE_MAX_LAMPORTS
from services.errors import BuildFailureError, NoRouteError, QuoteUnavailableError

logger = logging.getLogger(__name__)

NO_ROUTE_ERROR_CODES = {"COULD_NOT_FIND_ANY_ROUTE", "NO_ROUTES_FOUND", "TOKEN_NOT_TRADABLE"}


@dataclass(slots=True)
class SwapRoute:
    in_amount: int
    out_amount: int
    raw: Dict[str, Any]


@dataclass(slots=True)
class RawInstructionSet:
    compute_budget_instructions: List[Dict[str, Any]]
    setup_instructions: List[Dict[str, Any]]
    swap_instruction: Dict[str, Any]
    cleanup_instruction: Optional[Dict[str, Any]] = None
    address_lookup_table_addresses: List[str] = field(default_factory=list)

    def ordered(self) -> List[Dict[str, Any]]:
        payloads = [*self.compute_budget_instructions, *self.setup_instructions, self.swap_instruction]
        if self.cleanup_instruction:
            payloads.append(self.cleanup_instruction)
        return payloads


class JupiterClient:
    """Thin async wrapper over the quote and swap-instructions endpoints."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        *,
        base_url: str = JUPITER_API_BASE_URL,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
    ) -> None:
        self._session = session
        self._base_url = base_url.rstrip("/")
        self._headers = {"x-api-key": api_key} if api_key else {}
        self._timeout = timeout

    async def quote(
        self,
        input_mint: str,
        output_mint: str,
        amount: int,
        mode: SwapMode = SwapMode.EXACT_IN,
        slippage_bps: int = 500,
    ) -> SwapRoute:
        params = {
            "inputMint": input_mint,
            "outputMint": output_mint,
            "amount": str(int(amount)),
            "slippageBps": str(slippage_bps),
            "swapMode": mode.value,
        }
        logger.info("Fetching quote %s -> %s amount=%s mode=%s", input_mint, output_mint, amount, mode.value)
        try:
            async with self._session.get(
                f"{self._base_url}/quote", params=params, headers=self._headers, timeout=self._timeout
            ) as response:
                data = await response.json(content_type=None)
                status = response.status
        except (aiohttp.ClientError, ValueError) as exc:
            raise QuoteUnavailableError(f"Quote request failed: {exc}") from exc

        if not isinstance(data, dict):
            raise QuoteUnavailableError(f"Unexpected quote response: {data}")
        if data.get("error") or status >= 400:
            if _is_no_route(data):
                raise NoRouteError(str(data.get("error") or "no route"))
            raise QuoteUnavailableError(f"Quote failed: status={status} body={data}")
        try:
            return SwapRoute(in_amount=int(data["inAmount"]), out_amount=int(data["outAmount"]), raw=data)
        except (KeyError, TypeError, ValueError) as exc:
            raise QuoteUnavailableError(f"Malformed quote response: {data}") from exc

    async def swap_instructions(
        self,
        route: SwapRoute,
        payer_address: str,
        *,
        wrap_and_unwrap_sol: bool = True,
    ) -> RawInstructionSet:
        body = {
            "quoteResponse": route.raw,
            "userPublicKey": payer_address,
            "wrapAndUnwrapSol": wrap_and_unwrap_sol,
            "dynamicComputeUnitLimit": True,
            "prioritizationFeeLamports": {
                "priorityLevelWithMaxLamports": {
                    "maxLamports": PRIORITY_FEE_MAX_LAMPORTS,
                    "priorityLevel": PRIORITY_FEE_LEVEL,
                },
            },
        }
        try:
            async with self._session.post(
                f"{self._base_url}/swap-instructions", json=body, headers=self._headers, timeout=self._timeout
            ) as response:
                data = await response.json(content_type=None)
                status = response.status
        except (aiohttp.ClientError, ValueError) as exc:
            raise BuildFailureError(f"Swap-instructions request failed: {exc}") from exc

        if not isinstance(data, dict) or data.get("error") or status >= 400:
            error = data.get("error") if isinstance(data, dict) else data
            raise BuildFailureError(f"Swap-instructions error: {error}")
        if not data.get("swapInstruction"):
            raise BuildFailureError("Swap-instructions response is missing the swap instruction")

        return RawInstructionSet(
            compute_budget_instructions=data.get("computeBudgetInstructions") or [],
            setup_instructions=data.get("setupInstructions") or [],
            swap_instruction=data["swapInstruction"],
            cleanup_instruction=data.get("cleanupInstruction"),
            address_lookup_table_addresses=data.get("addressLookupTableAddresses") or [],
        )


def _is_no_route(data: Dict[str, Any]) -> bool:
    if data.get("errorCode") in NO_ROUTE_ERROR_CODES:
        return True
    return "route" in str(data.get("error", "")).lower()
