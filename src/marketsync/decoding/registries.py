"""Event registries for the two monitored marketplace protocols.

Available registries:
- Native exchange events: make_exchange_registry()
- Seaport order protocol events: make_seaport_registry()

Registries are keyed by topic0; a log must only ever be decoded against the
registry of the contract that emitted it.
"""

from __future__ import annotations

from .registry_builder import make_registry
from .specs import EventRegistry

EXCHANGE_EVENT_SIGNATURES = [
    "ListingCreated(uint256 indexed listingId, address indexed seller, address indexed nftContract, uint256 tokenId, uint256 price, string metadataURI)",
    "ListingSold(uint256 indexed listingId, address indexed buyer, uint256 price)",
    "ListingCancelled(uint256 indexed listingId)",
    "OfferMade(uint256 indexed offerId, address indexed buyer, address indexed nftContract, uint256 tokenId, uint256 amount)",
    "OfferAccepted(uint256 indexed offerId, address indexed seller)",
    "OfferCancelled(uint256 indexed offerId)",
    "MarketplaceFeeUpdated(uint256 oldFee, uint256 newFee)",
    "FeeRecipientUpdated(address oldRecipient, address newRecipient)",
]

SEAPORT_EVENT_SIGNATURES = [
    "OrderFulfilled(bytes32 orderHash, address indexed offerer, address indexed zone, address recipient, (uint8 itemType, address token, uint256 identifier, uint256 amount)[] offer, (uint8 itemType, address token, uint256 identifier, uint256 amount, address recipient)[] consideration)",
    "OrderCancelled(bytes32 orderHash, address indexed offerer, address indexed zone)",
    "OrdersMatched(bytes32[] orderHashes)",
]


# -------------------------
# Native NFT exchange registry
# -------------------------

def make_exchange_registry() -> EventRegistry:
    """Return registry for the native listing/offer exchange contract."""
    return make_registry(EXCHANGE_EVENT_SIGNATURES)


# -------------------------
# Seaport registry
# -------------------------

def make_seaport_registry() -> EventRegistry:
    """Return registry for Seaport order events (fulfilled/cancelled/matched)."""
    return make_registry(SEAPORT_EVENT_SIGNATURES)
