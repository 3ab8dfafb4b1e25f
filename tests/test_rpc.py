import json

import httpx
import pytest

from marketsync.clients.rpc import RPC, is_rate_limit_message
from marketsync.core.errors import ProviderError, ProviderTimeoutError, RateLimitedError, TransientProviderError

URL = "https://rpc.test"


def _rpc(handler) -> RPC:
    return RPC(URL, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


def _result(request: httpx.Request, result) -> httpx.Response:
    body = json.loads(request.content)
    return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})


@pytest.mark.asyncio
async def test_latest_block_parses_hex():
    rpc = _rpc(lambda request: _result(request, "0x1da5"))
    assert await rpc.latest_block() == 7589
    await rpc.aclose()


@pytest.mark.asyncio
async def test_get_logs_sends_filter_and_parses_logs():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(json.loads(request.content))
        return _result(
            request,
            [
                {
                    "address": "0xABCDEF0000000000000000000000000000000001",
                    "topics": ["0xAA" + "00" * 31],
                    "data": "0x",
                    "blockNumber": "0x64",
                    "transactionHash": "0xFF" + "00" * 31,
                    "logIndex": "0x2",
                }
            ],
        )

    rpc = _rpc(handler)
    logs = await rpc.get_logs(address="0xABCDEF0000000000000000000000000000000001", from_block=100, to_block=109)

    assert seen["method"] == "eth_getLogs"
    assert seen["params"] == [
        {"address": "0xabcdef0000000000000000000000000000000001", "fromBlock": "0x64", "toBlock": "0x6d"}
    ]
    (log,) = logs
    assert log.address == "0xabcdef0000000000000000000000000000000001"
    assert log.block_number == 100
    assert log.log_index == 2
    assert log.tx_hash == "0xff" + "00" * 31
    await rpc.aclose()


@pytest.mark.asyncio
async def test_http_429_is_rate_limited():
    rpc = _rpc(lambda request: httpx.Response(429, text="slow down"))
    with pytest.raises(RateLimitedError):
        await rpc.latest_block()


@pytest.mark.asyncio
async def test_jsonrpc_limit_code_is_rate_limited():
    rpc = _rpc(
        lambda request: httpx.Response(
            200, json={"jsonrpc": "2.0", "id": 1, "error": {"code": -32005, "message": "limit"}}
        )
    )
    with pytest.raises(RateLimitedError):
        await rpc.get_logs(address="0x" + "11" * 20, from_block=1, to_block=2)


@pytest.mark.asyncio
async def test_other_jsonrpc_errors_are_provider_errors():
    rpc = _rpc(
        lambda request: httpx.Response(
            200, json={"jsonrpc": "2.0", "id": 1, "error": {"code": -32000, "message": "header not found"}}
        )
    )
    with pytest.raises(ProviderError) as exc:
        await rpc.latest_block()
    assert not isinstance(exc.value, RateLimitedError)


@pytest.mark.asyncio
async def test_transport_errors_are_provider_errors():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(ProviderError) as exc:
        await _rpc(handler).latest_block()
    assert not isinstance(exc.value, TransientProviderError)


@pytest.mark.asyncio
async def test_timeouts_are_transient():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("read timed out", request=request)

    with pytest.raises(ProviderTimeoutError) as exc:
        await _rpc(handler).get_logs(address="0xabc", from_block=1, to_block=2)
    assert isinstance(exc.value, TransientProviderError)


@pytest.mark.asyncio
async def test_call_posts_eth_call_at_latest():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(json.loads(request.content))
        return _result(request, "0xdeadbeef")

    assert await _rpc(handler).call("0x" + "AB" * 20, "0x06fdde03") == "0xdeadbeef"
    assert seen["params"] == [{"to": "0x" + "ab" * 20, "data": "0x06fdde03"}, "latest"]


def test_rate_limit_markers():
    assert is_rate_limit_message("Too Many Requests")
    assert is_rate_limit_message("request throttled")
    assert not is_rate_limit_message("query returned more than 10000 results")
