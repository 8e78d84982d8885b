#!/usr/bin/env python3
"""Signs and broadcasts swap transactions through relay bundles or a direct node."""
from __future__ import annotations

import asyncio
import base64
import logging
import random
from dataclasses import dataclass
from typing import List, Optional, Sequence

import aiohttp
from solders.address_lookup_table_account import AddressLookupTableAccount
from solders.hash import Hash
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from solders.transaction import VersionedTransaction

from constants import (
    DEFAULT_RELAY_TIP_LAMPORTS,
    MAX_BROADCAST_ATTEMPTS,
    RELAY_ENDPOINTS,
    RELAY_TIP_ACCOUNTS,
)
from services.errors import BuildFailureError, RpcError
from services.solana_rpc import SolanaRpcClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class EndpointResult:
    """Outcome of submitting one bundle to one relay endpoint."""
    endpoint: str
    accepted: bool
    bundle_id: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True, slots=True)
class BroadcastOutcome:
    accepted: bool
    signature: Optional[str]
    attempts: int


class RelayBroadcaster:
    def __init__(
        self,
        session: aiohttp.ClientSession,
        rpc: SolanaRpcClient,
        *,
        endpoints: Sequence[str] = RELAY_ENDPOINTS,
        tip_accounts: Sequence[str] = RELAY_TIP_ACCOUNTS,
        tip_lamports: int = DEFAULT_RELAY_TIP_LAMPORTS,
        max_attempts: int = MAX_BROADCAST_ATTEMPTS,
        timeout: float = 10.0,
        max_concurrency: Optional[int] = None,
    ) -> None:
        self._session = session
        self._rpc = rpc
        self._endpoints = list(endpoints)
        self._tip_accounts = [Pubkey.from_string(account) for account in tip_accounts]
        self._tip_lamports = tip_lamports
        self._max_attempts = max_attempts
        self._timeout = timeout
        self._semaphore = asyncio.Semaphore(max_concurrency or max(len(self._endpoints), 1))

    async def broadcast(
        self,
        payer: Keypair,
        instructions: Sequence[Instruction],
        lookup_tables: Sequence[AddressLookupTableAccount],
        *,
        use_relay: bool = True,
    ) -> BroadcastOutcome:
        """
        Runs up to ``max_attempts`` build-sign-broadcast cycles.

        Every attempt fetches a fresh blockhash and re-signs, so a retry never
        resends a payload tied to an expired blockhash. The last attempted
        signature is returned even when nothing was accepted.
        """
        last_signature: Optional[str] = None
        for attempt in range(1, self._max_attempts + 1):
            try:
                latest = await self._rpc.get_latest_blockhash()
            except (aiohttp.ClientError, asyncio.TimeoutError, RpcError) as exc:
                logger.warning("Attempt %d: could not fetch blockhash: %s", attempt, exc)
                continue

            blockhash = Hash.from_string(latest.blockhash)
            transaction = self._compile(payer, instructions, lookup_tables, blockhash)
            last_signature = str(transaction.signatures[0])

            if use_relay:
                accepted = await self._submit_bundle(payer, transaction, blockhash)
            else:
                accepted = await self._submit_direct(transaction)

            if accepted:
                logger.info("Attempt %d accepted, signature %s", attempt, last_signature)
                return BroadcastOutcome(accepted=True, signature=last_signature, attempts=attempt)
            logger.warning("Attempt %d failed, retrying...", attempt)

        logger.error("All %d broadcast attempts failed", self._max_attempts)
        return BroadcastOutcome(accepted=False, signature=last_signature, attempts=self._max_attempts)

    def pick_tip_account(self) -> Pubkey:
        return random.choice(self._tip_accounts)

    @staticmethod
    def _compile(
        payer: Keypair,
        instructions: Sequence[Instruction],
        lookup_tables: Sequence[AddressLookupTableAccount],
        blockhash: Hash,
    ) -> VersionedTransaction:
        try:
            message = MessageV0.try_compile(payer.pubkey(), list(instructions), list(lookup_tables), blockhash)
            return VersionedTransaction(message, [payer])
        except Exception as exc:
            raise BuildFailureError(f"Could not compile transaction: {exc}") from exc

    def _build_tip_transaction(self, payer: Keypair, blockhash: Hash) -> VersionedTransaction:
        tip = transfer(
            TransferParams(
                from_pubkey=payer.pubkey(),
                to_pubkey=self.pick_tip_account(),
                lamports=self._tip_lamports,
            )
        )
        return self._compile(payer, [tip], [], blockhash)

    async def _submit_bundle(self, payer: Keypair, transaction: VersionedTransaction, blockhash: Hash) -> bool:
        tip_transaction = self._build_tip_transaction(payer, blockhash)
        bundle = [
            base64.b64encode(bytes(tip_transaction)).decode("ascii"),
            base64.b64encode(bytes(transaction)).decode("ascii"),
        ]
        results = await self.submit_to_endpoints(bundle)
        accepted = [result for result in results if result.accepted]
        if accepted:
            logger.info("Relay accepted the bundle (%d/%d endpoints)", len(accepted), len(results))
            return True
        logger.warning(
            "No relay endpoint accepted the bundle: %s",
            "; ".join(f"{result.endpoint}: {result.error}" for result in results),
        )
        return False

    async def submit_to_endpoints(self, bundle: List[str]) -> List[EndpointResult]:
        """Fans the bundle out to every endpoint and waits for all of them."""
        return list(await asyncio.gather(*(self._post_bundle(endpoint, bundle) for endpoint in self._endpoints)))

    async def _post_bundle(self, endpoint: str, bundle: List[str]) -> EndpointResult:
        payload = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "sendBundle",
            "params": [bundle, {"encoding": "base64"}],
        }
        async with self._semaphore:
            try:
                async with self._session.post(endpoint, json=payload, timeout=self._timeout) as response:
                    response.raise_for_status()
                    data = await response.json(content_type=None)
            except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
                return EndpointResult(endpoint=endpoint, accepted=False, error=str(exc) or type(exc).__name__)

        if not isinstance(data, dict) or data.get("error"):
            error = data.get("error") if isinstance(data, dict) else data
            return EndpointResult(endpoint=endpoint, accepted=False, error=str(error))
        return EndpointResult(endpoint=endpoint, accepted=True, bundle_id=data.get("result"))

    async def _submit_direct(self, transaction: VersionedTransaction) -> bool:
        try:
            await self._rpc.send_transaction(bytes(transaction))
        except (aiohttp.ClientError, asyncio.TimeoutError, RpcError) as exc:
            logger.warning("Direct submission failed: %s", exc)
            return False
        return True
