"""Per-protocol decoders producing `CanonicalEvent` objects.

Each decoder owns exactly one registry. Which decoder a log is offered to is
decided by the dispatcher from the log's emitting address, never by trying
several registries in turn.
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Any

from marketsync.core.models import CanonicalEvent, ContractType, EventLog, EventType
from marketsync.decoding.decoder import decode_event
from marketsync.decoding.registries import make_exchange_registry, make_seaport_registry
from marketsync.decoding.seaport import extract_sale
from marketsync.decoding.specs import EventRegistry

logger = logging.getLogger(__name__)


class ProtocolDecoder:
    """Decode logs of one protocol into canonical events."""

    contract_type: ContractType

    def __init__(self, registry: EventRegistry) -> None:
        self.registry = registry

    def normalize(self, event_type: EventType, values: dict[str, Any]) -> dict[str, Any] | None:
        """Turn decoded field values into handler arguments; None means not applicable."""
        return values

    def decode(self, log: EventLog) -> CanonicalEvent | None:
        parsed = decode_event(log, self.registry)
        if parsed is None:
            return None

        event_type = EventType.from_event_name(parsed.name)
        if event_type is None:
            logger.debug("Registry event %s has no canonical type, skipping", parsed.name)
            return None

        args = self.normalize(event_type, parsed.values)
        if args is None:
            return None

        return CanonicalEvent(
            event_type=event_type,
            args=args,
            block_number=log.block_number,
            tx_hash=log.tx_hash,
            log_index=log.log_index,
            address=log.address,
            protocol=self.contract_type,
        )


class ExchangeDecoder(ProtocolDecoder):
    """Native exchange: integer listing/offer ids, prices in payment-token units."""

    contract_type: ContractType = "nft_exchange"

    def __init__(self) -> None:
        super().__init__(make_exchange_registry())


class SeaportDecoder(ProtocolDecoder):
    """Seaport: orders identified by hash; fulfilments reduced to NFT sales."""

    contract_type: ContractType = "seaport"

    def __init__(self, payment_token: str) -> None:
        super().__init__(make_seaport_registry())
        self.payment_token = payment_token.lower()

    def normalize(self, event_type: EventType, values: dict[str, Any]) -> dict[str, Any] | None:
        if event_type is not EventType.ORDER_FULFILLED:
            return values

        sale = extract_sale(values, payment_token=self.payment_token)
        if sale is None:
            # No ERC-721/1155 leg: not a marketplace sale
            return None
        return {**asdict(sale), "zone": values["zone"]}
