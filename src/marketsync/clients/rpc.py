"""Lightweight JSON-RPC client for Ethereum-compatible nodes.

This module provides:
- `RPC`: an async client with sane timeouts/connection limits
- Rate-limit detection that maps provider back-off signals to `RateLimitedError`
  and request timeouts to `ProviderTimeoutError`

It returns `EventLog` records ready for downstream decoding.
"""

from __future__ import annotations

from typing import Any

import httpx

from marketsync.core.errors import ProviderError, ProviderTimeoutError, RateLimitedError
from marketsync.core.models import EventLog, event_log_from_json

RATE_LIMIT_CODES = frozenset({-32005, 429})
RATE_LIMIT_MARKERS = ("rate limit", "too many", "throttl")


def to_hex_block(x: int) -> str:
    """Return a 0x-prefixed hex block number."""
    return hex(x)


def is_rate_limit_message(message: str) -> bool:
    m = message.lower()
    return any(marker in m for marker in RATE_LIMIT_MARKERS)


class RPC:
    """Minimal async RPC client.

    Parameters
    ----------
    url : str
        RPC endpoint URL.
    timeout_s : int
        Per-operation timeout in seconds (connect/read/write).
    max_connections : int
        Maximum concurrent connections to keep in the pool.
    client : httpx.AsyncClient | None
        Pre-built client (tests inject one backed by `httpx.MockTransport`).
    """

    def __init__(
        self,
        url: str,
        *,
        timeout_s: int = 20,
        max_connections: int = 16,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.url = url
        self._next_id = 0
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(
                connect=timeout_s,
                read=timeout_s,
                write=timeout_s,
                pool=max(30, timeout_s * 3),
            ),
            limits=httpx.Limits(
                max_connections=max_connections,
                max_keepalive_connections=max(1, max_connections // 2),
            ),
            http2=True,
        )

    async def _request(self, method: str, params: list[Any]) -> Any:
        self._next_id += 1
        payload = {"jsonrpc": "2.0", "id": self._next_id, "method": method, "params": params}
        try:
            r = await self.client.post(self.url, json=payload)
        except httpx.TimeoutException as e:
            raise ProviderTimeoutError(f"{method}: {type(e).__name__}: {e}") from e
        except httpx.HTTPError as e:
            raise ProviderError(f"{method}: {type(e).__name__}: {e}") from e

        if r.status_code == 429:
            raise RateLimitedError(f"{method}: HTTP 429")
        if r.status_code >= 400:
            if is_rate_limit_message(r.text):
                raise RateLimitedError(f"{method}: HTTP {r.status_code} {r.text[:200]}")
            raise ProviderError(f"{method}: HTTP {r.status_code} {r.text[:200]}")

        data = r.json()
        if "error" in data:
            e = data["error"]
            code = e.get("code") if isinstance(e, dict) else None
            message = str(e.get("message") if isinstance(e, dict) else e)
            if code in RATE_LIMIT_CODES or is_rate_limit_message(message):
                raise RateLimitedError(f"{method}: RPC error {code} {message}")
            raise ProviderError(f"{method}: RPC error {code} {message}")
        return data.get("result")

    async def latest_block(self) -> int:
        """Return the latest block number as an int."""
        return int(await self._request("eth_blockNumber", []), 16)

    async def get_logs(
        self,
        *,
        address: str,
        from_block: int,
        to_block: int,
    ) -> list[EventLog]:
        """Fetch every log of an address within an inclusive block range."""
        params = [
            {
                "address": address.lower(),
                "fromBlock": to_hex_block(from_block),
                "toBlock": to_hex_block(to_block),
            }
        ]
        result = await self._request("eth_getLogs", params)
        return [event_log_from_json(rl) for rl in result or []]

    async def call(self, to: str, data: str) -> str:
        """Execute a read-only `eth_call` at the latest block; returns 0x-hex output."""
        result = await self._request("eth_call", [{"to": to.lower(), "data": data}, "latest"])
        return str(result or "0x")

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self.client.aclose()
