import base64
from unittest.mock import AsyncMock

import pytest
from solders.pubkey import Pubkey

from services.errors import BuildFailureError, RpcError
from services.instruction_builder import InstructionBuilder, decode_instruction
from services.jupiter_client import RawInstructionSet


def _payload(data: bytes):
    return {
        "programId": str(Pubkey.new_unique()),
        "accounts": [{"pubkey": str(Pubkey.new_unique()), "isSigner": False, "isWritable": True}],
        "data": base64.b64encode(data).decode(),
    }


def test_decode_instruction():
    payload = _payload(b"\x01\x02")

    instruction = decode_instruction(payload)

    assert str(instruction.program_id) == payload["programId"]
    assert instruction.data == b"\x01\x02"
    assert instruction.accounts[0].is_writable is True
    assert instruction.accounts[0].is_signer is False


def test_decode_instruction_rejects_bad_payload():
    with pytest.raises(BuildFailureError):
        decode_instruction({"programId": "not-a-key", "accounts": [], "data": ""})


@pytest.mark.asyncio
async def test_build_keeps_order_and_drops_unresolvable_tables():
    rpc = AsyncMock()
    rpc.get_account_data.side_effect = [None, RpcError("timeout"), b"\x00\x01"]
    raw = RawInstructionSet(
        compute_budget_instructions=[_payload(b"\x01")],
        setup_instructions=[_payload(b"\x02")],
        swap_instruction=_payload(b"\x03"),
        cleanup_instruction=_payload(b"\x04"),
        address_lookup_table_addresses=[str(Pubkey.new_unique()) for _ in range(3)],
    )

    compiled = await InstructionBuilder(rpc).build(raw)

    assert [ix.data for ix in compiled.instructions] == [b"\x01", b"\x02", b"\x03", b"\x04"]
    assert compiled.lookup_tables == []
    assert rpc.get_account_data.await_count == 3
