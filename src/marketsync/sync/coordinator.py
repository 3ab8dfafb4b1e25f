"""Periodic block-range scanner: resolve range → scan chunks → apply → advance cursor.

One pass processes chunks strictly in order. Within a chunk the logs of all
monitored contracts are merged and sorted by (block_number, log_index) before
dispatch, and the cursor only moves after the whole chunk was dispatched.

A pass stops early without error when
- the elapsed time exceeds `SyncConfig.max_runtime_s` (checked between chunks),
- the provider signals rate limiting or times out (`TransientProviderError`),
  including while looking up the chain tip.
Any other provider error propagates. Either way the cursor stays at the last
completed chunk, so the next pass resumes there.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from marketsync.core.config import SyncConfig
from marketsync.core.errors import RateLimitedError, TransientProviderError
from marketsync.core.interfaces import ILogsProvider
from marketsync.core.models import EventLog
from marketsync.dispatch.dispatcher import ProtocolDispatcher
from marketsync.storage.repository import CursorRepository
from marketsync.sync.utils import iter_chunks, resolve_scan_range

logger = logging.getLogger(__name__)

STOP_TIME_BUDGET = "time_budget"
STOP_RATE_LIMITED = "rate_limited"
STOP_TIMEOUT = "timeout"


def stop_reason_for(error: TransientProviderError) -> str:
    return STOP_RATE_LIMITED if isinstance(error, RateLimitedError) else STOP_TIMEOUT


@dataclass(kw_only=True)
class SyncResult:
    """Summary of one scanner pass."""

    from_block: int
    to_block: int
    last_processed_block: int | None = None
    cursor: int | None = None
    chunks: int = 0
    logs: int = 0
    handled: int = 0
    failed: int = 0
    stopped_reason: str | None = None

    @property
    def noop(self) -> bool:
        return self.from_block > self.to_block

    @property
    def completed(self) -> bool:
        return self.stopped_reason is None

    def as_dict(self) -> dict[str, object]:
        return {
            "from_block": self.from_block,
            "to_block": self.to_block,
            "last_processed_block": self.last_processed_block,
            "cursor": self.cursor,
            "chunks": self.chunks,
            "logs": self.logs,
            "handled": self.handled,
            "failed": self.failed,
            "stopped_reason": self.stopped_reason,
        }


class SyncCoordinator:
    """Drive the dispatcher over block ranges and persist progress.

    Parameters
    ----------
    provider : ILogsProvider
        Source of chain head and logs.
    dispatcher : ProtocolDispatcher
        Decodes and applies logs; its contract table decides which addresses
        are scanned.
    cursors : CursorRepository
        Persisted last-fully-processed block.
    config : SyncConfig
        Chunking, budget and confirmation settings.
    """

    def __init__(
        self,
        provider: ILogsProvider,
        dispatcher: ProtocolDispatcher,
        cursors: CursorRepository,
        config: SyncConfig,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.provider = provider
        self.dispatcher = dispatcher
        self.cursors = cursors
        self.config = config
        self.clock = clock
        self.sleep = sleep

    def effective_cursor(self) -> int:
        """Stored cursor, or the deployment block before the first pass."""
        cursor = self.cursors.get()
        return self.config.deployment_block if cursor is None else cursor

    def reset_cursor(self, block_number: int) -> None:
        self.cursors.reset(block_number)

    async def _resolve_range(self, from_block: int | None, to_block: int | None) -> tuple[int, int]:
        if from_block is not None and to_block is not None:
            return from_block, to_block

        tip = await self.provider.latest_block()
        start, end = resolve_scan_range(
            cursor=self.cursors.get(),
            deployment_block=self.config.deployment_block,
            tip=tip,
            confirmations=self.config.confirmations,
            max_blocks=self.config.max_blocks_per_run,
        )
        if from_block is not None:
            start = from_block
            end = min(tip - self.config.confirmations, start + self.config.max_blocks_per_run - 1)
        if to_block is not None:
            end = to_block
        return start, end

    async def fetch_chunk(self, from_block: int, to_block: int) -> list[EventLog]:
        """All monitored-contract logs of a chunk in chain order."""
        logs: list[EventLog] = []
        for address in self.dispatcher.contracts.addresses():
            logs.extend(
                await self.provider.get_logs(address=address, from_block=from_block, to_block=to_block)
            )
        logs.sort(key=lambda log: log.sort_key)
        return logs

    async def run(self, from_block: int | None = None, to_block: int | None = None) -> SyncResult:
        """Run one pass; explicit bounds override automatic range resolution."""
        started = self.clock()
        try:
            start, end = await self._resolve_range(from_block, to_block)
        except TransientProviderError as e:
            logger.warning("Could not resolve scan range, skipping pass: %s", e)
            cursor = self.effective_cursor()
            return SyncResult(
                from_block=cursor + 1,
                to_block=cursor,
                cursor=self.cursors.get(),
                stopped_reason=stop_reason_for(e),
            )
        result = SyncResult(from_block=start, to_block=end, cursor=self.cursors.get())

        if result.noop:
            logger.info("Nothing to sync (from=%d > to=%d)", start, end)
            return result

        logger.info("Syncing blocks %d-%d", start, end)
        cursor = self.effective_cursor()
        try:
            for i, (a, b) in enumerate(iter_chunks(start, end, self.config.chunk_size)):
                if i > 0:
                    if self.clock() - started > self.config.max_runtime_s:
                        logger.info("Time budget exhausted after block %s", result.last_processed_block)
                        result.stopped_reason = STOP_TIME_BUDGET
                        break
                    if self.config.chunk_delay_s > 0:
                        await self.sleep(self.config.chunk_delay_s)

                try:
                    logs = await self.fetch_chunk(a, b)
                except TransientProviderError as e:
                    result.stopped_reason = stop_reason_for(e)
                    logger.warning(
                        "Provider %s at blocks %d-%d, stopping pass: %s", result.stopped_reason, a, b, e
                    )
                    break

                stats = await self.dispatcher.dispatch_many(logs)

                # Only a contiguous prefix may move the cursor
                if a <= cursor + 1:
                    cursor = self.cursors.advance(b)
                result.cursor = self.cursors.get()
                result.last_processed_block = b
                result.chunks += 1
                result.logs += stats.logs
                result.handled += stats.handled
                result.failed += stats.failed
                logger.debug(
                    "Chunk %d-%d: %d logs, %d handled, %d failed",
                    a, b, stats.logs, stats.handled, stats.failed,
                )
        finally:
            await self.dispatcher.ctx.tasks.drain()

        logger.info(
            "Sync pass done: %d chunks, %d logs, %d handled, %d failed, cursor=%s%s",
            result.chunks,
            result.logs,
            result.handled,
            result.failed,
            result.cursor,
            f" (stopped: {result.stopped_reason})" if result.stopped_reason else "",
        )
        return result
