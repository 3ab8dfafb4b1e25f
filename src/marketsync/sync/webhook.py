"""Push ingestion: apply the logs of a single transaction delivered by a webhook.

The webhook path shares the dispatcher (and therefore handlers and
idempotency guarantees) with the scanner, but never reads or moves the sync
cursor. Re-delivered payloads are harmless.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from typing import Any

from pydantic import BaseModel

from marketsync.core.models import EventLog, event_log_from_json
from marketsync.dispatch.dispatcher import ProtocolDispatcher

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Alchemy payload models
# ---------------------------------------------------------------------------


class AlchemyLog(BaseModel):
    address: str
    topics: list[str]
    data: str = "0x"
    blockNumber: int | str
    logIndex: int | str
    transactionHash: str | None = None
    removed: bool = False

    def to_event_log(self, tx_hash: str | None = None) -> EventLog:
        log = event_log_from_json(self.model_dump())
        if not log.tx_hash and tx_hash:
            log = replace(log, tx_hash=tx_hash.lower())
        return log


class MinedTransaction(BaseModel):
    hash: str


class MinedTransactionEvent(BaseModel):
    transaction: MinedTransaction | None = None
    logs: list[AlchemyLog] = []


class AddressActivity(BaseModel):
    hash: str
    fromAddress: str | None = None
    toAddress: str | None = None
    log: AlchemyLog | None = None


class AddressActivityEvent(BaseModel):
    activity: list[AddressActivity] = []


class AlchemyWebhook(BaseModel):
    type: str
    webhookId: str | None = None
    id: str | None = None
    event: dict[str, Any] = {}


# ---------------------------------------------------------------------------
# Ingestion
# ---------------------------------------------------------------------------


@dataclass(kw_only=True)
class IngestResult:
    """Counters for one ingested transaction (or payload)."""

    transactions: int = 0
    received: int = 0
    monitored: int = 0
    handled: int = 0
    failed: int = 0

    def merge(self, other: IngestResult) -> None:
        self.transactions += other.transactions
        self.received += other.received
        self.monitored += other.monitored
        self.handled += other.handled
        self.failed += other.failed

    def as_dict(self) -> dict[str, int]:
        return {
            "transactions": self.transactions,
            "received": self.received,
            "monitored": self.monitored,
            "handled": self.handled,
            "failed": self.failed,
        }


class WebhookIngestor:
    """Apply webhook-delivered logs through the shared dispatcher."""

    def __init__(self, dispatcher: ProtocolDispatcher) -> None:
        self.dispatcher = dispatcher

    async def _dispatch(self, tx_hash: str, logs: Iterable[EventLog]) -> IngestResult:
        received = list(logs)
        monitored = sorted(
            (log for log in received if log.address in self.dispatcher.contracts),
            key=lambda log: log.sort_key,
        )
        stats = await self.dispatcher.dispatch_many(monitored)
        logger.info(
            "Webhook tx %s: %d logs, %d monitored, %d handled, %d failed",
            tx_hash,
            len(received),
            len(monitored),
            stats.handled,
            stats.failed,
        )
        return IngestResult(
            transactions=1,
            received=len(received),
            monitored=len(monitored),
            handled=stats.handled,
            failed=stats.failed,
        )

    async def ingest(self, tx_hash: str, logs: Iterable[EventLog | Mapping[str, Any]]) -> IngestResult:
        """Dispatch the logs of transaction `tx_hash` that come from monitored contracts."""
        parsed: list[EventLog] = []
        for raw in logs:
            log = raw if isinstance(raw, EventLog) else AlchemyLog.model_validate(raw).to_event_log(tx_hash)
            parsed.append(log)
        try:
            return await self._dispatch(tx_hash, parsed)
        finally:
            await self.dispatcher.ctx.tasks.drain()

    async def ingest_payload(self, payload: Mapping[str, Any]) -> IngestResult:
        """Parse an Alchemy webhook body and ingest every transaction it carries.

        Raises `pydantic.ValidationError` for malformed bodies; unknown
        webhook types are ignored.
        """
        body = AlchemyWebhook.model_validate(payload)
        by_tx: dict[str, list[EventLog]] = {}

        if body.type == "MINED_TRANSACTION":
            event = MinedTransactionEvent.model_validate(body.event)
            if event.transaction is not None:
                tx_hash = event.transaction.hash.lower()
                by_tx[tx_hash] = [
                    log.to_event_log(tx_hash) for log in event.logs if not log.removed
                ]
        elif body.type == "ADDRESS_ACTIVITY":
            event = AddressActivityEvent.model_validate(body.event)
            for activity in event.activity:
                if activity.log is None or activity.log.removed:
                    continue
                tx_hash = activity.hash.lower()
                by_tx.setdefault(tx_hash, []).append(activity.log.to_event_log(tx_hash))
        else:
            logger.info("Ignoring webhook of type %s", body.type)

        result = IngestResult()
        try:
            for tx_hash, logs in by_tx.items():
                result.merge(await self._dispatch(tx_hash, logs))
        finally:
            await self.dispatcher.ctx.tasks.drain()
        return result
