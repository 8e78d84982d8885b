#!/usr/bin/env python3
"""Minimal async JSON-RPC client for a Solana node."""
import asyncio
import base64
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from aiohttp import ClientSession

from analysis.models import TokenHolding
from constants import DIRECT_SEND_MAX_RETRIES, TOKEN_PROGRAM_ID
from services.errors import RpcError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LatestBlockhash:
    blockhash: str
    last_valid_block_height: int


class SolanaRpcClient:
    """Wraps the handful of node methods the trade pipeline needs."""

    def __init__(self, session: ClientSession, *, rpc_url: str, timeout: float = 10.0) -> None:
        self._session = session
        self._rpc_url = rpc_url
        self._timeout = timeout
        self._id_lock = asyncio.Lock()
        self._next_request_id = 1

    async def get_latest_blockhash(self, commitment: str = "processed") -> LatestBlockhash:
        result = await self._rpc_call("getLatestBlockhash", [{"commitment": commitment}])
        value = result.get("value") if isinstance(result, dict) else None
        if not isinstance(value, dict) or not value.get("blockhash"):
            raise RpcError(f"Unexpected getLatestBlockhash response: {result}")
        return LatestBlockhash(
            blockhash=value["blockhash"],
            last_valid_block_height=int(value.get("lastValidBlockHeight", 0)),
        )

    async def get_account_data(self, address: str) -> Optional[bytes]:
        """Returns raw account data, or None when the account does not exist."""
        result = await self._rpc_call("getAccountInfo", [address, {"encoding": "base64"}])
        value = result.get("value") if isinstance(result, dict) else None
        if not value:
            return None
        data = value.get("data")
        if not isinstance(data, list) or not data:
            raise RpcError(f"Unexpected account data for {address}: {data}")
        return base64.b64decode(data[0])

    async def get_signature_statuses(
        self,
        signatures: List[str],
        *,
        search_transaction_history: bool = False,
    ) -> List[Optional[Dict[str, Any]]]:
        result = await self._rpc_call(
            "getSignatureStatuses",
            [signatures, {"searchTransactionHistory": search_transaction_history}],
        )
        if not isinstance(result, dict):
            raise RpcError(f"Unexpected getSignatureStatuses response: {result}")
        return result.get("value") or []

    async def send_transaction(self, raw_transaction: bytes, *, max_retries: int = DIRECT_SEND_MAX_RETRIES) -> str:
        encoded = base64.b64encode(raw_transaction).decode("ascii")
        result = await self._rpc_call(
            "sendTransaction",
            [encoded, {"encoding": "base64", "skipPreflight": True, "maxRetries": max_retries}],
        )
        if not isinstance(result, str):
            raise RpcError(f"Unexpected sendTransaction response: {result}")
        return result

    async def get_token_holdings(self, owner_address: str) -> List[TokenHolding]:
        """Lists every SPL token account of ``owner_address`` with a positive balance."""
        result = await self._rpc_call(
            "getTokenAccountsByOwner",
            [owner_address, {"programId": TOKEN_PROGRAM_ID}, {"encoding": "jsonParsed"}],
        )
        holdings: List[TokenHolding] = []
        for account in (result or {}).get("value", []):
            try:
                info = account["account"]["data"]["parsed"]["info"]
                amount = info["tokenAmount"]
                holding = TokenHolding(
                    asset_address=info["mint"],
                    ui_balance=float(amount.get("uiAmount") or 0.0),
                    decimals=int(amount["decimals"]),
                    raw_amount=int(amount["amount"]),
                )
            except (KeyError, TypeError, ValueError):
                logger.warning("Skipping unparseable token account for %s", owner_address)
                continue
            if holding.raw_amount > 0:
                holdings.append(holding)
        return holdings

    async def _rpc_call(self, method: str, params: list) -> Any:
        request_id = await self._get_request_id()
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": request_id,
        }
        async with self._session.post(self._rpc_url, json=payload, timeout=self._timeout) as response:
            response.raise_for_status()
            try:
                data = await response.json()
            except ValueError as exc:
                raise RpcError(f"Invalid JSON in {method} response: {exc}") from exc
        if not isinstance(data, dict):
            raise RpcError(f"Unexpected {method} response: {data}")
        if 'error' in data:
            raise RpcError(f"RPC error for {method}: {data['error']}")
        return data.get('result')

    async def _get_request_id(self) -> int:
        async with self._id_lock:
            request_id = self._next_request_id
            self._next_request_id += 1
        return request_id
