"""Event decoding.

This package provides:
- Event specification system (EventSpec, TopicFieldSpec, DataFieldSpec)
- Generic decoder that translates raw logs into ParsedEvent objects
- Per-protocol decoders producing CanonicalEvent objects
- Pre-built registries for the native exchange and Seaport
"""

from marketsync.decoding.decoder import ParsedEvent, decode_event
from marketsync.decoding.protocols import ExchangeDecoder, ProtocolDecoder, SeaportDecoder
from marketsync.decoding.registries import make_exchange_registry, make_seaport_registry
from marketsync.decoding.registry_builder import event_spec_from_signature, make_registry
from marketsync.decoding.specs import (
    AbiParam,
    DataFieldSpec,
    EventRegistry,
    EventSpec,
    TopicFieldSpec,
)

__all__ = [
    "ParsedEvent",
    "decode_event",
    "ExchangeDecoder",
    "ProtocolDecoder",
    "SeaportDecoder",
    "make_exchange_registry",
    "make_seaport_registry",
    "event_spec_from_signature",
    "make_registry",
    "AbiParam",
    "DataFieldSpec",
    "EventRegistry",
    "EventSpec",
    "TopicFieldSpec",
]
