"""Generic event decoder driven by an `EventRegistry`.

This module translates a raw `EventLog` into a `ParsedEvent` (event name +
field values). A log whose topic0 is not in the registry is simply not
applicable and yields None; a log whose topic0 matches but whose topics or
data do not parse raises `LogDecodeError`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from eth_abi import decode as abi_decode
from eth_abi.exceptions import DecodingError

from marketsync.core.errors import LogDecodeError
from marketsync.core.models import EventLog
from marketsync.decoding.specs import EventRegistry, EventSpec
from marketsync.decoding.utils import normalize_value, parse_topic_field

# ---------- parsed event ----------


@dataclass(slots=True)
class ParsedEvent:
    """Decoded event with its raw log for provenance."""

    name: str
    log: EventLog
    values: dict[str, Any]


# ---------- helper functions ----------


def _get_spec(log: EventLog, registry: EventRegistry) -> EventSpec | None:
    """Return the spec matching the log's topic0, or None."""
    if not log.topics:
        return None
    return registry.get(log.topics[0].lower())


def _decode_topics(spec: EventSpec, log: EventLog) -> dict[str, Any]:
    expected = len(spec.topic_fields) + 1
    if len(log.topics) != expected:
        raise LogDecodeError(
            f"{spec.name}: expected {expected} topics, got {len(log.topics)} "
            f"(tx={log.tx_hash} log_index={log.log_index})"
        )
    try:
        return {tf.name: parse_topic_field(log.topics[tf.index], tf) for tf in spec.topic_fields}
    except ValueError as e:
        raise LogDecodeError(f"{spec.name}: {e} (tx={log.tx_hash} log_index={log.log_index})") from e


def _decode_data(spec: EventSpec, log: EventLog) -> dict[str, Any]:
    if not spec.data_fields:
        return {}
    try:
        raw = abi_decode(spec.data_types, log.data_bytes())
    except (DecodingError, ValueError, OverflowError) as e:
        raise LogDecodeError(
            f"{spec.name}: malformed data section (tx={log.tx_hash} log_index={log.log_index}): {e}"
        ) from e
    return {df.name: normalize_value(df.param, value) for df, value in zip(spec.data_fields, raw)}


# ---------- main generic decoder ----------


def decode_event(log: EventLog, registry: EventRegistry) -> ParsedEvent | None:
    """Decode a raw log into a `ParsedEvent`, or return None when not applicable."""
    spec = _get_spec(log, registry)
    if spec is None:
        return None

    values = _decode_topics(spec, log)
    values.update(_decode_data(spec, log))

    return ParsedEvent(name=spec.name, log=log, values=values)
