"""Route raw logs to the decoder of their emitting contract, then to a handler.

The dispatcher is the isolation boundary of the pipeline: a log that fails to
decode or whose handler raises is logged and reported in its
`DispatchOutcome`, and processing of the remaining logs continues.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from marketsync.core.config import ContractsConfig
from marketsync.core.errors import LogDecodeError
from marketsync.core.models import CanonicalEvent, EventLog, EventType
from marketsync.decoding.protocols import ExchangeDecoder, ProtocolDecoder, SeaportDecoder
from marketsync.handlers.common import Handler, HandlerContext

logger = logging.getLogger(__name__)


class ContractTable:
    """Exact mapping from contract address to the decoder of its protocol."""

    def __init__(self, decoders: Mapping[str, ProtocolDecoder]) -> None:
        self._decoders = {addr.lower(): dec for addr, dec in decoders.items()}

    @classmethod
    def from_config(cls, contracts: ContractsConfig) -> ContractTable:
        decoders: dict[str, ProtocolDecoder] = {}
        if contracts.exchange_address:
            decoders[contracts.exchange_address] = ExchangeDecoder()
        if contracts.seaport_address:
            decoders[contracts.seaport_address] = SeaportDecoder(contracts.payment_token)
        return cls(decoders)

    def decoder_for(self, address: str) -> ProtocolDecoder | None:
        return self._decoders.get(address.lower())

    def addresses(self) -> list[str]:
        return list(self._decoders)

    def __contains__(self, address: object) -> bool:
        return isinstance(address, str) and address.lower() in self._decoders


@dataclass(slots=True)
class DispatchOutcome:
    """What happened to one log."""

    log: EventLog
    event: CanonicalEvent | None = None
    handled: bool = False
    error: BaseException | None = None

    @property
    def decoded(self) -> bool:
        return self.event is not None


@dataclass(kw_only=True)
class DispatchStats:
    """Counters over a batch of dispatched logs."""

    logs: int = 0
    decoded: int = 0
    handled: int = 0
    failed: int = 0
    outcomes: list[DispatchOutcome] = field(default_factory=list)

    def add(self, outcome: DispatchOutcome) -> None:
        self.logs += 1
        self.decoded += int(outcome.decoded)
        self.handled += int(outcome.handled)
        self.failed += int(outcome.error is not None)
        self.outcomes.append(outcome)


class ProtocolDispatcher:
    """Decode logs by emitting address and apply them through the handler table.

    Parameters
    ----------
    contracts : ContractTable
        Address → decoder mapping; logs from other addresses are ignored.
    handlers : Mapping[EventType, Handler]
        Handler per canonical event type. Types without an entry are
        decoded, logged at debug level and discarded.
    ctx : HandlerContext
        Collaborators passed to every handler.
    """

    def __init__(
        self,
        contracts: ContractTable,
        handlers: Mapping[EventType, Handler],
        ctx: HandlerContext,
    ) -> None:
        for event_type, handler in handlers.items():
            if not isinstance(event_type, EventType):
                raise TypeError(f"handler key {event_type!r} is not an EventType")
            if not callable(handler):
                raise TypeError(f"handler for {event_type.name} is not callable")
        self.contracts = contracts
        self.handlers = dict(handlers)
        self.ctx = ctx

    def decode(self, log: EventLog) -> CanonicalEvent | None:
        """Decode with the emitting contract's decoder; None for foreign or unknown logs."""
        decoder = self.contracts.decoder_for(log.address)
        if decoder is None:
            return None
        return decoder.decode(log)

    async def dispatch(self, log: EventLog) -> DispatchOutcome:
        outcome = DispatchOutcome(log=log)
        try:
            event = self.decode(log)
        except LogDecodeError as e:
            logger.error(
                "Failed to decode log tx=%s log_index=%d address=%s: %s",
                log.tx_hash,
                log.log_index,
                log.address,
                e,
            )
            outcome.error = e
            return outcome

        if event is None:
            return outcome
        outcome.event = event

        handler = self.handlers.get(event.event_type)
        if handler is None:
            logger.debug("No handler for %s, discarding", event.describe())
            return outcome

        try:
            await handler(event, self.ctx)
        except Exception as e:
            logger.exception(
                "Handler failed for %s tx=%s log_index=%d",
                event.name,
                event.tx_hash,
                event.log_index,
            )
            outcome.error = e
            return outcome

        outcome.handled = True
        return outcome

    async def dispatch_many(self, logs: Iterable[EventLog]) -> DispatchStats:
        """Dispatch logs sequentially in the given order."""
        stats = DispatchStats()
        for log in logs:
            stats.add(await self.dispatch(log))
        return stats
