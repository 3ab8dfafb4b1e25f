"""Wiring of concrete collaborators for CLI and HTTP entry points.

`open_pipeline(config)` instantiates the database, RPC client, identity
resolver and metadata fetcher, assembles dispatcher, coordinator and webhook
ingestor around them, and closes everything on exit. Library code depends on
the interfaces only; this module is the single place that picks
implementations.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

import duckdb

from marketsync.clients.identity import NeynarIdentityResolver, NullIdentityResolver
from marketsync.clients.metadata import NFTMetadataFetcher
from marketsync.clients.rpc import RPC
from marketsync.core.config import AppConfig
from marketsync.core.interfaces import IIdentityResolver, ILogsProvider, IMetadataFetcher
from marketsync.dispatch.dispatcher import ContractTable, ProtocolDispatcher
from marketsync.handlers import HandlerContext, default_handlers
from marketsync.storage.database import connect
from marketsync.storage.repository import CursorRepository, MarketRepository
from marketsync.sync.coordinator import SyncCoordinator
from marketsync.sync.webhook import WebhookIngestor

logger = logging.getLogger(__name__)


@dataclass
class Pipeline:
    """Fully assembled pipeline for one process."""

    config: AppConfig
    con: duckdb.DuckDBPyConnection
    repo: MarketRepository
    cursors: CursorRepository
    ctx: HandlerContext
    dispatcher: ProtocolDispatcher
    coordinator: SyncCoordinator
    ingestor: WebhookIngestor

    async def refresh_missing_metadata(self, limit: int = 10) -> dict[str, int]:
        """Retry metadata for active listings that still lack an image."""
        listings = self.repo.listings_missing_images(limit)
        updated = 0
        for listing in listings:
            meta = await self.ctx.fetcher.fetch(
                listing.nft_contract, listing.token_id, listing.metadata_uri or None
            )
            if not meta.success or not meta.image_url:
                logger.warning(
                    "Still no image for listing %d (%s #%s): %s",
                    listing.id,
                    listing.nft_contract,
                    listing.token_id,
                    meta.error,
                )
                continue
            self.repo.update_listing_metadata(
                listing.id,
                name=meta.name or listing.name,
                description=meta.description,
                image_url=meta.image_url,
                metadata_uri=meta.metadata_uri,
            )
            updated += 1
        return {"checked": len(listings), "updated": updated}

    def status(self) -> dict[str, object]:
        return {
            "cursor": self.cursors.get(),
            "deployment_block": self.config.sync.deployment_block,
            "contracts": self.dispatcher.contracts.addresses(),
            **self.repo.stats(),
        }


def build_pipeline(
    config: AppConfig,
    *,
    con: duckdb.DuckDBPyConnection,
    provider: ILogsProvider,
    resolver: IIdentityResolver,
    fetcher: IMetadataFetcher,
) -> Pipeline:
    """Assemble a pipeline around already-created collaborators."""
    repo = MarketRepository(con)
    cursors = CursorRepository(con)
    ctx = HandlerContext(repo=repo, resolver=resolver, fetcher=fetcher, contracts=config.contracts)
    dispatcher = ProtocolDispatcher(ContractTable.from_config(config.contracts), default_handlers(), ctx)
    return Pipeline(
        config=config,
        con=con,
        repo=repo,
        cursors=cursors,
        ctx=ctx,
        dispatcher=dispatcher,
        coordinator=SyncCoordinator(provider, dispatcher, cursors, config.sync),
        ingestor=WebhookIngestor(dispatcher),
    )


@asynccontextmanager
async def open_pipeline(config: AppConfig) -> AsyncIterator[Pipeline]:
    """Create concrete clients from `config`, yield the pipeline, then close them."""
    con = connect(config.db_path)
    rpc = RPC(config.rpc_url, timeout_s=config.rpc_timeout_s)
    fetcher = NFTMetadataFetcher(rpc, gateways=config.ipfs_gateways)
    resolver: IIdentityResolver
    if config.neynar_api_key:
        resolver = NeynarIdentityResolver(config.neynar_api_key)
    else:
        logger.warning("No Neynar API key configured; fids will not be resolved")
        resolver = NullIdentityResolver()

    try:
        yield build_pipeline(config, con=con, provider=rpc, resolver=resolver, fetcher=fetcher)
    finally:
        if isinstance(resolver, NeynarIdentityResolver):
            await resolver.aclose()
        await fetcher.aclose()
        await rpc.aclose()
        con.close()
