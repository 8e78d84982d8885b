import json

import aiohttp
import pytest

from analysis.models import SwapMode
from services.errors import BuildFailureError, NoRouteError, QuoteUnavailableError
from services.jupiter_client import JupiterClient, SwapRoute


class FakeResponse:
    def __init__(self, payload, status=200):
        self._payload = payload
        self.status = status

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def json(self, content_type=None):
        return self._payload


class HtmlResponse(FakeResponse):
    """Gateway error page served instead of JSON."""

    def __init__(self, status=502):
        super().__init__("<html>Bad Gateway</html>", status=status)

    async def json(self, content_type=None):
        return json.loads(self._payload)


class FakeSession:
    def __init__(self, responses):
        self._responses = list(responses)
        self.calls = []

    def _next(self, method, url, kwargs):
        self.calls.append((method, url, kwargs))
        if not self._responses:
            raise AssertionError("No more fake responses configured")
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def get(self, url, params=None, headers=None, timeout=None):
        return self._next("GET", url, {"params": params, "headers": headers})

    def post(self, url, json=None, headers=None, timeout=None):
        return self._next("POST", url, {"json": json, "headers": headers})


@pytest.mark.asyncio
async def test_quote_parses_route_and_sends_params():
    payload = {"inAmount": "100000000", "outAmount": "4200000", "routePlan": []}
    session = FakeSession([FakeResponse(payload)])
    client = JupiterClient(session, base_url="https://quote.test/v1/", api_key="secret")

    route = await client.quote("IN", "OUT", 100_000_000, SwapMode.EXACT_IN, 300)

    assert route.in_amount == 100_000_000
    assert route.out_amount == 4_200_000
    method, url, kwargs = session.calls[0]
    assert (method, url) == ("GET", "https://quote.test/v1/quote")
    assert kwargs["params"] == {
        "inputMint": "IN",
        "outputMint": "OUT",
        "amount": "100000000",
        "slippageBps": "300",
        "swapMode": "ExactIn",
    }
    assert kwargs["headers"] == {"x-api-key": "secret"}


@pytest.mark.asyncio
async def test_quote_without_route_raises_no_route():
    payload = {"error": "Could not find any route", "errorCode": "COULD_NOT_FIND_ANY_ROUTE"}
    client = JupiterClient(FakeSession([FakeResponse(payload, status=400)]))

    with pytest.raises(NoRouteError):
        await client.quote("IN", "OUT", 1)


@pytest.mark.asyncio
async def test_quote_server_error_is_unavailable():
    client = JupiterClient(FakeSession([FakeResponse({"error": "internal"}, status=500)]))

    with pytest.raises(QuoteUnavailableError):
        await client.quote("IN", "OUT", 1)


@pytest.mark.asyncio
async def test_quote_transport_error_is_unavailable():
    client = JupiterClient(FakeSession([aiohttp.ClientConnectionError("refused")]))

    with pytest.raises(QuoteUnavailableError):
        await client.quote("IN", "OUT", 1)


@pytest.mark.asyncio
async def test_swap_instructions_keeps_payload_order():
    payload = {
        "computeBudgetInstructions": [{"id": "cb1"}, {"id": "cb2"}],
        "setupInstructions": [{"id": "setup"}],
        "swapInstruction": {"id": "swap"},
        "cleanupInstruction": {"id": "cleanup"},
        "addressLookupTableAddresses": ["ALT1"],
    }
    session = FakeSession([FakeResponse(payload)])
    client = JupiterClient(session)
    route = SwapRoute(in_amount=1, out_amount=2, raw={"inAmount": "1"})

    raw = await client.swap_instructions(route, "PAYER")

    assert [p["id"] for p in raw.ordered()] == ["cb1", "cb2", "setup", "swap", "cleanup"]
    assert raw.address_lookup_table_addresses == ["ALT1"]
    body = session.calls[0][2]["json"]
    assert body["quoteResponse"] == {"inAmount": "1"}
    assert body["userPublicKey"] == "PAYER"
    assert body["wrapAndUnwrapSol"] is True
    assert body["prioritizationFeeLamports"]["priorityLevelWithMaxLamports"]["priorityLevel"] == "veryHigh"


@pytest.mark.asyncio
async def test_swap_instructions_without_swap_instruction_fails():
    client = JupiterClient(FakeSession([FakeResponse({"setupInstructions": []})]))

    with pytest.raises(BuildFailureError):
        await client.swap_instructions(SwapRoute(1, 2, {}), "PAYER")


@pytest.mark.asyncio
async def test_quote_with_non_json_body_is_unavailable():
    client = JupiterClient(FakeSession([HtmlResponse(status=502)]))

    with pytest.raises(QuoteUnavailableError):
        await client.quote("IN", "OUT", 1)


@pytest.mark.asyncio
async def test_swap_instructions_with_non_json_body_fails_build():
    client = JupiterClient(FakeSession([HtmlResponse(status=429)]))

    with pytest.raises(BuildFailureError):
        await client.swap_instructions(SwapRoute(1, 2, {}), "PAYER")
