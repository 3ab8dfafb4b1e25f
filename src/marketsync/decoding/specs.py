"""Event specification primitives and registry typing.

Defines lightweight dataclasses to describe how to decode events:
- `AbiParam`: one (possibly tuple-typed) ABI parameter with its components
- `TopicFieldSpec` / `DataFieldSpec`: typed sources for indexed topics / data
- `EventSpec`: one event rule (topic0, name, fields)
- `EventRegistry`: mapping from topic0 → EventSpec
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class AbiParam:
    """One ABI parameter; `components` is set for tuple (struct) types."""

    name: str
    type: str  # e.g. "uint256", "tuple[]", "bytes32[]"
    components: tuple[AbiParam, ...] | None = None

    @property
    def is_tuple(self) -> bool:
        return self.components is not None

    @property
    def array_suffix(self) -> str:
        """Trailing array dimensions, e.g. "[]" for "tuple[]"."""
        idx = self.type.find("[")
        return self.type[idx:] if idx != -1 else ""

    @property
    def canonical_type(self) -> str:
        """Type as it appears in the canonical signature and in eth_abi type strings."""
        if self.components is None:
            return self.type
        inner = ",".join(c.canonical_type for c in self.components)
        return f"({inner}){self.array_suffix}"


@dataclass(frozen=True)
class TopicFieldSpec:
    """Describe one indexed topic field (by 0-based topic index and ABI type)."""

    name: str
    index: int
    type: str  # e.g., "address", "uint256", "bytes32"


@dataclass(frozen=True)
class DataFieldSpec:
    """Describe one parameter of the ABI-encoded data section (0-based position)."""

    name: str
    position: int
    param: AbiParam


@dataclass(frozen=True)
class EventSpec:
    """One event decoding rule."""

    topic0: str
    name: str
    topic_fields: list[TopicFieldSpec]
    data_fields: list[DataFieldSpec]

    def __post_init__(self):
        names = [f.name for f in self.topic_fields] + [f.name for f in self.data_fields]
        dupes = {n for n in names if names.count(n) > 1}
        if dupes:
            raise ValueError(f"{self.name} declares duplicate field names: {sorted(dupes)}")

    @property
    def data_types(self) -> list[str]:
        """eth_abi type strings of the data section, in order."""
        return [df.param.canonical_type for df in self.data_fields]


# The full registry keyed by topic0 (lowercased 0x-hex).
EventRegistry = dict[str, EventSpec]
