"""
Scanner provider tests against an httpx.MockTransport explorer.
"""

import httpx
import pytest

from pulsefolio.errors import FetchError
from pulsefolio.providers.scanner import ScannerProvider, token_from_scanner_item
from pulsefolio.services.tokens import NATIVE_TOKEN_ADDRESS

BASE_URL = "https://scan.test/api/v2"
WALLET = "0x1111111111111111111111111111111111111111"
HEX = "0x2b591e99afe9f32eaa6214f7b7629768c40eeb39"
LP = "0x1b45b9148791d3a104184cd5dfe5ce57193a3ee9"


def token_item(address, symbol, name, value, decimals="18", icon=None):
    return {
        "token": {
            "address": address,
            "symbol": symbol,
            "name": name,
            "decimals": decimals,
            "type": "ERC-20",
            "icon_url": icon,
        },
        "value": value,
    }


def make_provider(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ScannerProvider(client=client, base_url=BASE_URL)


@pytest.mark.asyncio
async def test_wallet_tokens_include_native_and_follow_pagination():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.url.path.endswith(f"/addresses/{WALLET}"):
            return httpx.Response(200, json={"coin_balance": "2500000000000000000"})
        if request.url.params.get("page") == "2":
            return httpx.Response(
                200,
                json={"items": [token_item(LP, "PLP", "PulseX LP", "1000000000000000000")], "next_page_params": None},
            )
        return httpx.Response(
            200,
            json={
                "items": [token_item(HEX.upper().replace("0X", "0x"), "HEX", "HEX", "123456789", decimals="8")],
                "next_page_params": {"page": 2},
            },
        )

    tokens = await make_provider(handler).get_wallet_tokens(WALLET)

    assert [t.address for t in tokens] == [NATIVE_TOKEN_ADDRESS, HEX, LP]
    assert tokens[0].is_native
    assert tokens[0].balance_formatted == pytest.approx(2.5)
    assert tokens[1].balance_formatted == pytest.approx(1.23456789)
    assert tokens[2].is_lp
    token_requests = [r for r in requests if r.url.path.endswith("/tokens")]
    assert all(r.url.params["type"] == "ERC-20" for r in token_requests)
    assert len(token_requests) == 2


@pytest.mark.asyncio
async def test_unknown_address_yields_zero_native_balance():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"message": "Not found"})

    tokens = await make_provider(handler).get_wallet_tokens(WALLET)

    assert len(tokens) == 1
    assert tokens[0].balance == "0"


@pytest.mark.asyncio
async def test_server_error_is_fatal():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503)

    with pytest.raises(FetchError) as exc_info:
        await make_provider(handler).get_wallet_tokens(WALLET)

    assert exc_info.value.status_code == 503


@pytest.mark.asyncio
async def test_single_token_balance_lookup():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path.endswith("/token-balances")
        return httpx.Response(200, json=[token_item(HEX, "HEX", "HEX", "500000000", decimals="8")])

    provider = make_provider(handler)

    token = await provider.get_token_balance(WALLET, HEX.upper().replace("0X", "0x"))
    missing = await provider.get_token_balance(WALLET, LP)

    assert token.balance_formatted == pytest.approx(5.0)
    assert missing is None


@pytest.mark.asyncio
async def test_health_check_reports_errors():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500)

    health = await make_provider(handler).health_check()

    assert health["status"] == "error"


def test_item_without_address_is_dropped():
    assert token_from_scanner_item({"token": {"symbol": "X"}, "value": "1"}) is None


def test_bad_decimals_fall_back_to_18():
    token = token_from_scanner_item(token_item(HEX, "HEX", "HEX", "1000000000000000000", decimals=None))

    assert token.decimals == 18
    assert token.balance_formatted == pytest.approx(1.0)
