#!/usr/bin/env python3
"""Turns raw swap-instruction payloads into solders instructions."""
from __future__ import annotations

import asyncio
import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from solders.address_lookup_table_account import AddressLookupTable, AddressLookupTableAccount
from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from services.errors import BuildFailureError
from services.jupiter_client import RawInstructionSet
from services.solana_rpc import SolanaRpcClient

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CompiledInstructionSet:
    instructions: List[Instruction]
    lookup_tables: List[AddressLookupTableAccount]


def decode_instruction(payload: Dict[str, Any]) -> Instruction:
    """Decodes one ``{programId, accounts, data}`` payload; raises BuildFailureError."""
    try:
        accounts = [
            AccountMeta(
                pubkey=Pubkey.from_string(account["pubkey"]),
                is_signer=bool(account["isSigner"]),
                is_writable=bool(account["isWritable"]),
            )
            for account in payload["accounts"]
        ]
        return Instruction(
            program_id=Pubkey.from_string(payload["programId"]),
            data=base64.b64decode(payload["data"], validate=True),
            accounts=accounts,
        )
    except (KeyError, TypeError, ValueError, binascii.Error) as exc:
        raise BuildFailureError(f"Invalid instruction payload: {exc}") from exc


class InstructionBuilder:
    def __init__(self, rpc: SolanaRpcClient) -> None:
        self._rpc = rpc

    async def build(self, raw: RawInstructionSet) -> CompiledInstructionSet:
        instructions = [decode_instruction(payload) for payload in raw.ordered()]
        resolved = await asyncio.gather(
            *(self._resolve_lookup_table(address) for address in raw.address_lookup_table_addresses)
        )
        lookup_tables = [table for table in resolved if table is not None]
        if len(lookup_tables) < len(raw.address_lookup_table_addresses):
            logger.warning(
                "Resolved %d of %d address lookup tables; building without the rest",
                len(lookup_tables),
                len(raw.address_lookup_table_addresses),
            )
        return CompiledInstructionSet(instructions=instructions, lookup_tables=lookup_tables)

    async def _resolve_lookup_table(self, address: str) -> Optional[AddressLookupTableAccount]:
        # Unresolvable tables are dropped; the transaction compiles without them.
        try:
            data = await self._rpc.get_account_data(address)
            if data is None:
                return None
            table = AddressLookupTable.deserialize(data)
            return AddressLookupTableAccount(key=Pubkey.from_string(address), addresses=list(table.addresses))
        except Exception as exc:
            logger.warning("Dropping lookup table %s: %s", address, exc)
            return None
