"""Normalization of Seaport `OrderFulfilled` events into marketplace sales.

A single fulfilment can move several kinds of assets. For the marketplace view
we only care about orders where the offerer sold an NFT:

- the NFT leg is the first offer item whose item type is ERC-721 or ERC-1155;
- the realized price is the sum of ERC-20 consideration items in the payment
  token paid to the offerer;
- orders without an NFT leg are out of scope (None).

Buyer attribution uses the heuristic `BUYER_IS_FULFILLMENT_RECIPIENT`: the
event's `recipient` field is taken as the buyer. In multi-party fills (match
orders, fulfilments on behalf of others) this can name an intermediary.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from marketsync.constants import ITEM_ERC20, NFT_ITEM_TYPES

BUYER_IS_FULFILLMENT_RECIPIENT = "fulfillment_recipient"


@dataclass(frozen=True)
class SeaportSale:
    """NFT sale extracted from one `OrderFulfilled` event."""

    order_hash: str
    offerer: str
    buyer: str
    nft_contract: str
    token_id: str
    item_type: int
    price_raw: int
    buyer_rule: str = BUYER_IS_FULFILLMENT_RECIPIENT


def find_nft_leg(offer: list[dict[str, Any]]) -> dict[str, Any] | None:
    """Return the first ERC-721/ERC-1155 item of an offer array."""
    for item in offer:
        if int(item["itemType"]) in NFT_ITEM_TYPES:
            return item
    return None


def sum_payment_to_offerer(
    consideration: list[dict[str, Any]],
    *,
    offerer: str,
    payment_token: str,
) -> int:
    """Sum raw ERC-20 payment-token amounts paid to the offerer."""
    token = payment_token.lower()
    seller = offerer.lower()
    total = 0
    for item in consideration:
        if (
            int(item["itemType"]) == ITEM_ERC20
            and item["token"].lower() == token
            and item["recipient"].lower() == seller
        ):
            total += int(item["amount"])
    return total


def extract_sale(values: dict[str, Any], *, payment_token: str) -> SeaportSale | None:
    """Build a `SeaportSale` from decoded `OrderFulfilled` values, or None without an NFT leg."""
    nft = find_nft_leg(values["offer"])
    if nft is None:
        return None

    offerer = values["offerer"]
    return SeaportSale(
        order_hash=values["orderHash"],
        offerer=offerer,
        buyer=values["recipient"],
        nft_contract=nft["token"],
        token_id=str(nft["identifier"]),
        item_type=int(nft["itemType"]),
        price_raw=sum_payment_to_offerer(
            values["consideration"],
            offerer=offerer,
            payment_token=payment_token,
        ),
    )
