"""Decoding utilities: typed topic parsers and eth_abi value normalization."""

from __future__ import annotations

from typing import Any

from .specs import AbiParam, TopicFieldSpec


def parse_topic_field(topic_hex: str, spec: TopicFieldSpec) -> Any:
    """Parse one indexed topic according to the declared type."""
    t = spec.type
    h = topic_hex.lower()
    if len(h) != 66 or not h.startswith("0x"):
        raise ValueError(f"topic for {spec.name} is not a 32-byte word: {topic_hex!r}")
    if t == "address":
        return "0x" + h[-40:]
    if t.startswith("uint"):
        return int(h, 16)
    if t.startswith("int"):
        v = int(h, 16)
        bits = int(t[3:]) if t != "int" else 256
        # Convert to signed if value exceeds positive range
        if v >= 2 ** (bits - 1):
            v -= 2**bits
        return v
    if t == "bool":
        return int(h, 16) != 0
    # bytes32 and hashed dynamic types: return raw hex string
    return h


def normalize_value(param: AbiParam, value: Any) -> Any:
    """Convert an eth_abi decoded value into plain Python data.

    - addresses → lowercased 0x-hex
    - bytes → 0x-hex
    - tuples with named components → dict
    - arrays → list (recursively normalized)
    """
    if param.type.endswith("]"):
        element = AbiParam(param.name, param.type[: param.type.rfind("[")], param.components)
        return [normalize_value(element, v) for v in value]
    if param.components is not None:
        return {c.name: normalize_value(c, v) for c, v in zip(param.components, value)}
    if param.type == "address":
        return str(value).lower()
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    return value
