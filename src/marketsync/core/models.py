"""Core data models shared by the decoding, dispatch and storage layers.

This module defines:
- `EventLog`: raw log as fetched from RPC or delivered by a webhook.
- `EventType` / `CanonicalEvent`: protocol-agnostic decoded event.
- `Identity` / `Metadata`: results of the external identity and metadata lookups.
- `Listing`, `Offer`, `Activity`: rows of the mirrored marketplace tables.

Design notes
------------
- Addresses and hashes are stored lowercased and 0x-prefixed.
- Token ids and native ids are kept as decimal strings (uint256 safety).
- Prices are floats in payment-token units (raw amount / 10**decimals).
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

ContractType = Literal["nft_exchange", "seaport"]

ActivityType = Literal[
    "listing_created",
    "sale",
    "listing_cancelled",
    "offer_made",
    "offer_accepted",
    "offer_cancelled",
]


# === Raw log ===


@dataclass(slots=True, frozen=True)
class EventLog:
    """Raw log, minimally normalized."""

    address: str  # lowercased 0x...
    topics: tuple[str, ...]  # lowercased 0x...
    data_hex: str  # "0x..."
    block_number: int
    tx_hash: str  # lowercased 0x...
    log_index: int
    block_timestamp: int | None = None

    @property
    def sort_key(self) -> tuple[int, int]:
        """Chronological position of the log on chain."""
        return (self.block_number, self.log_index)

    def data_bytes(self) -> bytes:
        """Return the raw data section as bytes."""
        data_hex = self.data_hex[2:] if self.data_hex.lower().startswith("0x") else self.data_hex
        return bytes.fromhex(data_hex) if data_hex else b""


def _parse_quantity(value: Any) -> int:
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.lower().startswith("0x"):
        return int(value, 16)
    return int(value)


def event_log_from_json(raw: dict[str, Any]) -> EventLog:
    """Build an `EventLog` from a JSON-RPC style log object.

    Block numbers and log indexes may be hex quantities or plain integers
    (webhook providers are not consistent about this).
    """
    topics = tuple(str(t).lower() for t in raw.get("topics") or [])
    ts = raw.get("blockTimestamp")
    return EventLog(
        address=str(raw["address"]).lower(),
        topics=topics,
        data_hex=str(raw.get("data") or "0x"),
        block_number=_parse_quantity(raw["blockNumber"]),
        tx_hash=str(raw.get("transactionHash") or raw.get("transaction_hash") or "").lower(),
        log_index=_parse_quantity(raw["logIndex"]),
        block_timestamp=_parse_quantity(ts) if ts is not None else None,
    )


# === Canonical event ===


class EventType(enum.Enum):
    """Closed set of marketplace events understood by the pipeline."""

    LISTING_CREATED = "ListingCreated"
    LISTING_SOLD = "ListingSold"
    LISTING_CANCELLED = "ListingCancelled"
    OFFER_MADE = "OfferMade"
    OFFER_ACCEPTED = "OfferAccepted"
    OFFER_CANCELLED = "OfferCancelled"
    MARKETPLACE_FEE_UPDATED = "MarketplaceFeeUpdated"
    FEE_RECIPIENT_UPDATED = "FeeRecipientUpdated"
    ORDER_FULFILLED = "OrderFulfilled"
    ORDER_CANCELLED = "OrderCancelled"
    ORDERS_MATCHED = "OrdersMatched"

    @classmethod
    def from_event_name(cls, name: str) -> EventType | None:
        try:
            return cls(name)
        except ValueError:
            return None


@dataclass(slots=True, frozen=True)
class CanonicalEvent:
    """Decoded on-chain event, independent of the emitting protocol."""

    event_type: EventType
    args: dict[str, Any]
    block_number: int
    tx_hash: str
    log_index: int
    address: str
    protocol: ContractType

    @property
    def name(self) -> str:
        return self.event_type.value

    def describe(self) -> str:
        """Short provenance string for log lines."""
        return f"{self.name} tx={self.tx_hash} log_index={self.log_index} block={self.block_number}"


# === External lookups ===


@dataclass(slots=True, frozen=True)
class Identity:
    """Off-chain social profile linked to an address."""

    fid: int
    username: str | None = None
    display_name: str | None = None
    pfp_url: str | None = None
    wallet_address: str | None = None


@dataclass(slots=True)
class Metadata:
    """Normalized NFT metadata; `success` is False when any lookup failed."""

    contract_address: str
    token_id: str
    metadata_uri: str = ""
    name: str = ""
    description: str = ""
    image_url: str = ""
    collection_name: str = ""
    attributes: list[Any] = field(default_factory=list)
    success: bool = False
    error: str | None = None


# === Persisted rows ===


@dataclass(slots=True)
class Listing:
    """One sell-side offer for one NFT on one protocol."""

    id: int
    contract_type: ContractType
    blockchain_listing_id: str | None
    order_hash: str | None
    seller_address: str
    seller_fid: int | None
    nft_contract: str
    token_id: str
    price: float
    expiry: datetime | None
    metadata_uri: str
    image_url: str
    name: str
    description: str
    tx_hash: str | None
    created_at: datetime | None = None
    sold_at: datetime | None = None
    cancelled_at: datetime | None = None
    buyer_address: str | None = None
    buyer_fid: int | None = None
    sale_tx_hash: str | None = None
    cancel_tx_hash: str | None = None

    @property
    def is_active(self) -> bool:
        return self.sold_at is None and self.cancelled_at is None


@dataclass(slots=True)
class Offer:
    """Buy-side proposal for one NFT."""

    id: int
    blockchain_offer_id: str
    buyer_address: str
    buyer_fid: int | None
    nft_contract: str
    token_id: str
    amount: float
    expiry: datetime | None
    tx_hash: str | None
    created_at: datetime | None = None
    accepted_at: datetime | None = None
    cancelled_at: datetime | None = None
    seller_address: str | None = None
    seller_fid: int | None = None
    accept_tx_hash: str | None = None
    cancel_tx_hash: str | None = None


@dataclass(slots=True)
class Activity:
    """Append-only marketplace feed entry."""

    id: int
    type: ActivityType
    actor_address: str
    actor_fid: int | None
    nft_contract: str
    token_id: str
    price: float | None
    metadata: dict[str, Any]
    tx_hash: str | None
    contract_type: ContractType
    created_at: datetime | None = None


@dataclass(slots=True, frozen=True)
class NewListing:
    """Insert payload for a listing (natural key + initial fields)."""

    contract_type: ContractType
    seller_address: str
    nft_contract: str
    token_id: str
    price: float
    expiry: datetime | None
    blockchain_listing_id: str | None = None
    order_hash: str | None = None
    seller_fid: int | None = None
    metadata_uri: str = ""
    image_url: str = ""
    name: str = ""
    description: str = ""
    tx_hash: str | None = None


@dataclass(slots=True, frozen=True)
class NewOffer:
    """Insert payload for an offer."""

    blockchain_offer_id: str
    buyer_address: str
    nft_contract: str
    token_id: str
    amount: float
    expiry: datetime | None
    buyer_fid: int | None = None
    tx_hash: str | None = None


@dataclass(slots=True, frozen=True)
class NewActivity:
    """Insert payload for an activity row."""

    type: ActivityType
    actor_address: str
    nft_contract: str
    token_id: str
    price: float | None
    tx_hash: str | None
    actor_fid: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    contract_type: ContractType = "nft_exchange"
