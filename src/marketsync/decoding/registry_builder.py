"""Registry builder utilities for creating event registries from signatures.

This module provides the core tools for building EventRegistry instances:
- Generic `make_registry()` function for single or multiple signatures
- Signature parsing helpers for converting Solidity event signatures to EventSpec,
  including named tuple (struct) parameters such as Seaport's item arrays
"""

from __future__ import annotations

from eth_utils import keccak

from .specs import AbiParam, DataFieldSpec, EventRegistry, EventSpec, TopicFieldSpec


# ---- Helpers: build specs from event signature ----
def _split_params(params_str: str) -> list[str]:
    """Split the parameter list by commas while respecting nested tuple types."""
    items: list[str] = []
    depth = 0
    buf: list[str] = []
    for ch in params_str:
        if ch == '(':
            depth += 1
            buf.append(ch)
        elif ch == ')':
            depth -= 1
            buf.append(ch)
        elif ch == ',' and depth == 0:
            items.append(''.join(buf).strip())
            buf = []
        else:
            buf.append(ch)
    if buf:
        items.append(''.join(buf).strip())
    # Handle empty list for no params
    return [i for i in items if i]


def _matching_paren(s: str, open_idx: int) -> int:
    depth = 0
    for i in range(open_idx, len(s)):
        if s[i] == '(':
            depth += 1
        elif s[i] == ')':
            depth -= 1
            if depth == 0:
                return i
    raise ValueError(f"Unbalanced parentheses in parameter: {s}")


def _parse_param(p: str, fallback_name: str) -> tuple[AbiParam, bool]:
    """Parse one parameter fragment into (AbiParam, indexed)."""
    s = ' '.join(p.strip().split())  # normalize spaces
    if s.startswith('tuple('):
        s = s[len('tuple'):]

    components: tuple[AbiParam, ...] | None = None
    if s.startswith('('):
        close = _matching_paren(s, 0)
        inner = s[1:close]
        rest = s[close + 1:]
        suffix = rest.split(' ', 1)[0] if rest.startswith('[') else ''
        components = tuple(
            _parse_param(part, fallback_name=f"field{k}")[0]
            for k, part in enumerate(_split_params(inner))
        )
        abi_type = 'tuple' + suffix
        tokens = rest[len(suffix):].split()
    else:
        tokens = s.split()
        if not tokens:
            # Should not happen, synthesize
            return AbiParam(fallback_name, 'bytes32'), False
        abi_type = tokens[0]
        tokens = tokens[1:]

    indexed = 'indexed' in tokens
    names = [t for t in tokens if t != 'indexed']
    name = names[-1] if names else fallback_name
    return AbiParam(name, abi_type, components), indexed


def event_spec_from_signature(signature: str) -> EventSpec:
    """Build an EventSpec from a Solidity event signature string.

    Example input:
      "OrderCancelled(bytes32 orderHash, address indexed offerer, address indexed zone)"
    """
    sig = signature.strip()
    if sig.startswith('event '):
        sig = sig[len('event '):].strip()
    # Extract name and parameters content
    open_paren = sig.find('(')
    close_paren = sig.rfind(')')
    if open_paren == -1 or close_paren == -1 or close_paren < open_paren:
        raise ValueError(f"Invalid event signature: {signature}")
    name = sig[:open_paren].strip()
    params_str = sig[open_paren + 1 : close_paren].strip()

    parsed: list[tuple[AbiParam, bool]] = [
        _parse_param(part, fallback_name=f"arg{i}")
        for i, part in enumerate(_split_params(params_str))
    ]

    # Compute topic0 hash from canonical type list (exclude names and 'indexed')
    canonical_types = ','.join(param.canonical_type for param, _ in parsed)
    canonical_signature = f"{name}({canonical_types})"
    topic0 = '0x' + keccak(text=canonical_signature).hex()

    indexed_params = [param for param, is_indexed in parsed if is_indexed]
    data_params = [param for param, is_indexed in parsed if not is_indexed]

    topic_fields = [
        TopicFieldSpec(param.name, idx + 1, param.canonical_type)
        for idx, param in enumerate(indexed_params)
    ]
    data_fields = [
        DataFieldSpec(param.name, idx, param) for idx, param in enumerate(data_params)
    ]

    return EventSpec(
        topic0=topic0,
        name=name,
        topic_fields=topic_fields,
        data_fields=data_fields,
    )


def make_registry(signatures: str | list[str]) -> EventRegistry:
    """Create a registry from one or multiple event signatures.

    Args:
        signatures: Single signature string or list of signature strings

    Returns:
        EventRegistry with entries for each signature
    """
    reg: EventRegistry = {}

    # Normalize to list
    sig_list = [signatures] if isinstance(signatures, str) else signatures

    for signature in sig_list:
        spec = event_spec_from_signature(signature)
        reg[spec.topic0.lower()] = spec

    return reg
