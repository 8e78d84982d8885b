import base64

import pytest

from services.errors import RpcError
from services.solana_rpc import SolanaRpcClient


class FakeResponse:
    def __init__(self, payload):
        self._payload = payload
        self.status = 200

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    def raise_for_status(self):
        return None

    async def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class FakeSession:
    def __init__(self, responses):
        self._responses = list(responses)
        self.requests = []

    def post(self, url, json, timeout):
        self.requests.append(json)
        if not self._responses:
            raise AssertionError("No more fake responses configured")
        return FakeResponse(self._responses.pop(0))


@pytest.mark.asyncio
async def test_get_latest_blockhash_and_request_ids():
    session = FakeSession([
        {"jsonrpc": "2.0", "id": 1, "result": {"value": {"blockhash": "HASH1", "lastValidBlockHeight": 10}}},
        {"jsonrpc": "2.0", "id": 2, "result": {"value": {"blockhash": "HASH2", "lastValidBlockHeight": 11}}},
    ])
    rpc = SolanaRpcClient(session, rpc_url="http://mock-rpc")

    first = await rpc.get_latest_blockhash()
    second = await rpc.get_latest_blockhash()

    assert (first.blockhash, second.blockhash) == ("HASH1", "HASH2")
    assert [r["id"] for r in session.requests] == [1, 2]
    assert session.requests[0]["method"] == "getLatestBlockhash"


@pytest.mark.asyncio
async def test_rpc_error_payload_raises():
    session = FakeSession([{"jsonrpc": "2.0", "id": 1, "error": {"code": -32005, "message": "busy"}}])
    rpc = SolanaRpcClient(session, rpc_url="http://mock-rpc")

    with pytest.raises(RpcError):
        await rpc.get_latest_blockhash()


@pytest.mark.asyncio
async def test_get_account_data_decodes_base64_and_handles_missing():
    session = FakeSession([
        {"jsonrpc": "2.0", "id": 1, "result": {"value": {"data": [base64.b64encode(b"abc").decode(), "base64"]}}},
        {"jsonrpc": "2.0", "id": 2, "result": {"value": None}},
    ])
    rpc = SolanaRpcClient(session, rpc_url="http://mock-rpc")

    assert await rpc.get_account_data("ALT") == b"abc"
    assert await rpc.get_account_data("MISSING") is None


@pytest.mark.asyncio
async def test_send_transaction_uses_base64_and_skips_preflight():
    session = FakeSession([{"jsonrpc": "2.0", "id": 1, "result": "SIG"}])
    rpc = SolanaRpcClient(session, rpc_url="http://mock-rpc")

    assert await rpc.send_transaction(b"\x01\x02") == "SIG"
    params = session.requests[0]["params"]
    assert params[0] == base64.b64encode(b"\x01\x02").decode()
    assert params[1] == {"encoding": "base64", "skipPreflight": True, "maxRetries": 3}

def _token_account(mint, raw_amount, ui_amount, decimals):
    return {
        "account": {
            "data": {
                "parsed": {
                    "info": {
                        "mint": mint,
                        "tokenAmount": {"amount": raw_amount, "uiAmount": ui_amount, "decimals": decimals},
                    }
                }
            }
        }
    }


@pytest.mark.asyncio
async def test_get_token_holdings_skips_empty_accounts():
    session = FakeSession([
        {
            "jsonrpc": "2.0",
            "id": 1,
            "result": {
                "value": [
                    _token_account("MINT_A", "12500000", 12.5, 6),
                    _token_account("MINT_B", "0", 0, 9),
                ]
            },
        },
    ])
    rpc = SolanaRpcClient(session, rpc_url="http://mock-rpc")

    holdings = await rpc.get_token_holdings("OWNER")

    assert [(h.asset_address, h.ui_balance, h.decimals, h.raw_amount) for h in holdings] == [
        ("MINT_A", 12.5, 6, 12_500_000)
    ]


@pytest.mark.asyncio
async def test_get_token_holdings_keeps_exact_raw_balance():
    session = FakeSession([
        {
            "jsonrpc": "2.0",
            "id": 1,
            "result": {"value": [_token_account("MINT_A", "123456789123456789", 123456789.12345679, 9)]},
        },
    ])
    rpc = SolanaRpcClient(session, rpc_url="http://mock-rpc")

    holdings = await rpc.get_token_holdings("OWNER")

    assert holdings[0].raw_amount == 123456789123456789


@pytest.mark.asyncio
async def test_non_json_body_raises_rpc_error():
    session = FakeSession([ValueError("Expecting value: line 1 column 1 (char 0)")])
    rpc = SolanaRpcClient(session, rpc_url="http://mock-rpc")

    with pytest.raises(RpcError):
        await rpc.get_latest_blockhash()
