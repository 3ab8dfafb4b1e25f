"""Shared handler plumbing: context object, background work, identity lookup."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Coroutine
from dataclasses import dataclass, field
from typing import Any

from marketsync.core.config import ContractsConfig
from marketsync.core.interfaces import IIdentityResolver, IMetadataFetcher
from marketsync.core.models import CanonicalEvent, Identity
from marketsync.storage.repository import MarketRepository

logger = logging.getLogger(__name__)


class BackgroundTasks:
    """Fire-and-forget tasks tied to one pipeline invocation.

    Failures never reach the caller; `drain()` awaits whatever is still
    pending and logs each failure.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()

    def __len__(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: str | None = None) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        return task

    async def drain(self) -> int:
        """Wait for all pending tasks; return the number that failed."""
        failed = 0
        while self._tasks:
            pending = list(self._tasks)
            results = await asyncio.gather(*pending, return_exceptions=True)
            for task, result in zip(pending, results):
                if isinstance(result, BaseException):
                    failed += 1
                    logger.error(
                        "Background task %s failed: %r",
                        task.get_name(),
                        result,
                        exc_info=result,
                    )
            self._tasks.difference_update(pending)
        return failed


@dataclass
class HandlerContext:
    """Collaborators every event handler may use."""

    repo: MarketRepository
    resolver: IIdentityResolver
    fetcher: IMetadataFetcher
    contracts: ContractsConfig = field(default_factory=ContractsConfig)
    tasks: BackgroundTasks = field(default_factory=BackgroundTasks)

    def to_price(self, raw: int) -> float:
        return to_price(raw, self.contracts.payment_decimals)


Handler = Callable[[CanonicalEvent, HandlerContext], Awaitable[None]]


def to_price(raw: int, decimals: int) -> float:
    """Convert a raw payment-token amount into token units."""
    return int(raw) / 10**decimals


async def _store_user(repo: MarketRepository, identity: Identity) -> None:
    repo.upsert_user(identity)


async def resolve_identity(ctx: HandlerContext, address: str) -> int | None:
    """Best-effort fid lookup for `address`.

    The first linked profile wins. Its user row is refreshed in the
    background; lookup errors degrade to None.
    """
    try:
        identities = await ctx.resolver.resolve(address)
    except Exception as e:
        logger.warning("Identity lookup failed for %s: %s", address, e)
        return None

    if not identities:
        return None

    identity = identities[0]
    if identity.wallet_address is None:
        identity = Identity(
            fid=identity.fid,
            username=identity.username,
            display_name=identity.display_name,
            pfp_url=identity.pfp_url,
            wallet_address=address.lower(),
        )
    ctx.tasks.spawn(_store_user(ctx.repo, identity), name=f"upsert-user-{identity.fid}")
    return identity.fid
