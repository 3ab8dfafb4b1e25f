"""NFT metadata fetcher: on-chain `tokenURI`/`name` plus off-chain JSON.

`fetch()` never raises: every failure ends up in `Metadata.error` with
`success=False`, keeping whatever was learned before the failure (for
example the collection name).
"""

from __future__ import annotations

import base64
import json
import logging
from collections.abc import Sequence
from typing import Any, Protocol
from urllib.parse import unquote

import httpx
from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from eth_utils import keccak

from marketsync.constants import IPFS_GATEWAYS
from marketsync.core.models import Metadata

logger = logging.getLogger(__name__)

UNKNOWN_COLLECTION = "Unknown Collection"
USER_AGENT = "Mozilla/5.0 (compatible; NFTMetadataFetcher/1.0)"


def selector(signature: str) -> str:
    """4-byte function selector as 0x-hex."""
    return "0x" + keccak(text=signature)[:4].hex()


TOKEN_URI_SELECTOR = selector("tokenURI(uint256)")
NAME_SELECTOR = selector("name()")


class IContractCaller(Protocol):
    async def call(self, to: str, data: str) -> str: ...


def ipfs_to_http(url: str, gateway: str = IPFS_GATEWAYS[0]) -> str:
    """Rewrite `ipfs://` URIs and bare CIDv0 hashes onto an HTTP gateway."""
    if not url:
        return url
    if url.startswith("ipfs://"):
        path = url[len("ipfs://"):]
        if path.startswith("ipfs/"):
            path = path[len("ipfs/"):]
        return gateway + path
    if url.startswith("Qm") and len(url) == 46:
        return gateway + url
    return url


def decode_data_uri(uri: str) -> dict[str, Any]:
    """Parse a `data:application/json[;base64],...` URI."""
    header, _, payload = uri.partition(",")
    if header.endswith(";base64"):
        return json.loads(base64.b64decode(payload))
    return json.loads(unquote(payload))


def normalize_metadata(raw: dict[str, Any], token_id: str) -> dict[str, Any]:
    return {
        "name": raw.get("name") or f"Token #{token_id}",
        "description": raw.get("description") or "",
        "image_url": ipfs_to_http(raw.get("image") or raw.get("image_url") or ""),
        "attributes": raw.get("attributes") or raw.get("traits") or [],
    }


class NFTMetadataFetcher:
    """Fetch and normalize metadata for one token.

    Parameters
    ----------
    caller : IContractCaller
        Executes `eth_call` (the `RPC` client satisfies this).
    gateways : Sequence[str]
        IPFS gateways tried in order for `ipfs://` URIs.
    client : httpx.AsyncClient | None
        HTTP client for metadata documents.
    """

    def __init__(
        self,
        caller: IContractCaller,
        *,
        gateways: Sequence[str] = IPFS_GATEWAYS,
        timeout_s: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.caller = caller
        self.gateways = tuple(gateways) or IPFS_GATEWAYS
        self.client = client or httpx.AsyncClient(
            timeout=timeout_s,
            headers={"User-Agent": USER_AGENT},
            follow_redirects=True,
        )

    async def _call_string(self, contract: str, data: str) -> str | None:
        try:
            out = await self.caller.call(contract, data)
            (value,) = abi_decode(["string"], bytes.fromhex(out[2:]))
        except Exception as e:
            logger.debug("eth_call %s on %s failed: %s", data[:10], contract, e)
            return None
        return value or None

    async def collection_name(self, contract: str) -> str | None:
        return await self._call_string(contract, NAME_SELECTOR)

    async def token_uri(self, contract: str, token_id: str) -> str | None:
        data = TOKEN_URI_SELECTOR + abi_encode(["uint256"], [int(token_id)]).hex()
        return await self._call_string(contract, data)

    async def _get_json(self, uri: str) -> dict[str, Any] | None:
        if uri.startswith("data:"):
            try:
                return decode_data_uri(uri)
            except ValueError as e:
                logger.warning("Malformed data URI metadata: %s", e)
                return None

        candidates = [ipfs_to_http(uri, gw) for gw in self.gateways]
        for url in dict.fromkeys(candidates):
            try:
                r = await self.client.get(url)
                r.raise_for_status()
                doc = r.json()
            except (httpx.HTTPError, ValueError) as e:
                logger.warning("Failed to fetch metadata from %s: %s", url, e)
                continue
            if isinstance(doc, dict):
                return doc
            logger.warning("Metadata at %s is not a JSON object", url)
        return None

    async def fetch(self, contract: str, token_id: str, uri_hint: str | None = None) -> Metadata:
        result = Metadata(contract_address=contract.lower(), token_id=str(token_id))
        result.metadata_uri = uri_hint or ""
        result.collection_name = await self.collection_name(contract) or UNKNOWN_COLLECTION

        uri = uri_hint or await self.token_uri(contract, token_id)
        if not uri:
            result.error = "No tokenURI found on contract"
            return result
        result.metadata_uri = uri

        raw = await self._get_json(uri)
        if raw is None:
            result.error = "Failed to fetch metadata from URI"
            return result

        normalized = normalize_metadata(raw, result.token_id)
        result.name = normalized["name"]
        result.description = normalized["description"]
        result.image_url = normalized["image_url"]
        result.attributes = list(normalized["attributes"])
        result.success = True
        return result

    async def aclose(self) -> None:
        await self.client.aclose()

