"""Handlers for Seaport order events (listings keyed by order hash)."""

from __future__ import annotations

import logging

from marketsync.core.errors import HandlerError
from marketsync.core.models import CanonicalEvent, NewActivity
from marketsync.handlers.common import HandlerContext, resolve_identity

logger = logging.getLogger(__name__)


async def on_order_fulfilled(event: CanonicalEvent, ctx: HandlerContext) -> None:
    """Mark the listing behind `orderHash` sold and record the sale.

    A fulfilment of an order we never stored still gets its sale activity,
    since the sale happened on chain; no listing row is fabricated for it.
    """
    args = event.args
    order_hash = args["order_hash"]
    buyer = args["buyer"]
    price = ctx.to_price(args["price_raw"])

    listing = ctx.repo.get_listing_by_order_hash(order_hash)
    buyer_fid = await resolve_identity(ctx, buyer)

    if listing is None:
        logger.info("No listing for Seaport order %s, recording sale only", order_hash)
    else:
        applied = ctx.repo.mark_listing_sold(
            listing.id,
            buyer_address=buyer,
            buyer_fid=buyer_fid,
            sale_tx_hash=event.tx_hash,
        )
        if not applied and listing.sale_tx_hash != event.tx_hash:
            logger.warning(
                "Seaport listing %s already finalized, ignoring fulfilment in tx=%s",
                order_hash,
                event.tx_hash,
            )
            return
        if applied:
            logger.info("Seaport order %s sold to %s for %s", order_hash, buyer, price)

    ctx.repo.record_activity_if_absent(
        NewActivity(
            type="sale",
            actor_address=buyer,
            actor_fid=buyer_fid,
            nft_contract=args["nft_contract"],
            token_id=args["token_id"],
            price=price,
            tx_hash=event.tx_hash,
            contract_type="seaport",
            metadata={
                "order_hash": order_hash,
                "seller_address": args["offerer"],
                "contract_type": "seaport",
                "buyer_rule": args["buyer_rule"],
            },
        )
    )


async def on_order_cancelled(event: CanonicalEvent, ctx: HandlerContext) -> None:
    args = event.args
    order_hash = args["orderHash"]
    offerer = args["offerer"].lower()

    listing = ctx.repo.get_listing_by_order_hash(order_hash)
    if listing is None:
        logger.warning("OrderCancelled for unknown order %s (tx=%s)", order_hash, event.tx_hash)
        return

    if listing.seller_address != offerer:
        raise HandlerError(
            f"order {order_hash} cancelled by {offerer}, but listed by {listing.seller_address}"
        )

    applied = ctx.repo.mark_listing_cancelled(listing.id, cancel_tx_hash=event.tx_hash)
    if not applied and listing.cancel_tx_hash != event.tx_hash:
        logger.warning(
            "Seaport listing %s already finalized, ignoring cancellation in tx=%s",
            order_hash,
            event.tx_hash,
        )
        return
    if applied:
        logger.info("Seaport order %s cancelled", order_hash)

    ctx.repo.record_activity_if_absent(
        NewActivity(
            type="listing_cancelled",
            actor_address=offerer,
            actor_fid=listing.seller_fid,
            nft_contract=listing.nft_contract,
            token_id=listing.token_id,
            price=listing.price,
            tx_hash=event.tx_hash,
            contract_type="seaport",
            metadata={"order_hash": order_hash, "contract_type": "seaport"},
        )
    )


async def on_orders_matched(event: CanonicalEvent, ctx: HandlerContext) -> None:
    # Informational: each matched order also emits its own OrderFulfilled.
    for order_hash in event.args["orderHashes"]:
        logger.info("Seaport order %s matched (tx=%s)", order_hash, event.tx_hash)
