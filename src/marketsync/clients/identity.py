"""Neynar directory client: Farcaster profiles by verified address."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from marketsync.constants import NEYNAR_BASE_URL
from marketsync.core.models import Identity

logger = logging.getLogger(__name__)


def _identity_from_user(user: dict[str, Any], address: str) -> Identity:
    return Identity(
        fid=int(user["fid"]),
        username=user.get("username") or None,
        display_name=user.get("display_name") or None,
        pfp_url=user.get("pfp_url") or None,
        wallet_address=address,
    )


class NeynarIdentityResolver:
    """Resolve addresses to Farcaster users.

    Unknown addresses come back as an empty list (Neynar answers 404 for
    them). Other non-2xx responses and transport errors are logged and also
    yield an empty list, so a directory outage never blocks the pipeline.
    """

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = NEYNAR_BASE_URL,
        timeout_s: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.client = client or httpx.AsyncClient(timeout=timeout_s)
        self.headers = {"x-api-key": api_key, "Content-Type": "application/json"}

    async def resolve(self, address: str) -> list[Identity]:
        addr = address.lower()
        try:
            r = await self.client.get(
                f"{self.base_url}/farcaster/user/bulk-by-address",
                params={"addresses": addr, "address_types": "verified_address"},
                headers=self.headers,
            )
        except httpx.HTTPError as e:
            logger.warning("Neynar request failed for %s: %s", addr, e)
            return []

        if r.status_code == 404:
            return []
        if r.status_code >= 400:
            logger.warning("Neynar API error %d for %s", r.status_code, addr)
            return []

        users = r.json().get(addr) or []
        return [_identity_from_user(u, addr) for u in users]

    async def aclose(self) -> None:
        await self.client.aclose()


class NullIdentityResolver:
    """Resolver used when no directory is configured: nobody has a fid."""

    async def resolve(self, address: str) -> list[Identity]:
        return []
