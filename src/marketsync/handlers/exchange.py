"""Handlers for the native exchange contract (integer listing and offer ids).

Every handler may be re-applied to the same event: row creation goes through
the repository's `*_if_absent` primitives and lifecycle updates apply once.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from marketsync.constants import DEFAULT_LISTING_TTL_DAYS
from marketsync.core.models import CanonicalEvent, NewActivity, NewListing, NewOffer
from marketsync.handlers.common import HandlerContext, resolve_identity

logger = logging.getLogger(__name__)


def _default_expiry(ctx: HandlerContext):
    return ctx.repo.clock() + timedelta(days=DEFAULT_LISTING_TTL_DAYS)


# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------


async def on_listing_created(event: CanonicalEvent, ctx: HandlerContext) -> None:
    args = event.args
    listing_id = str(args["listingId"])
    nft_contract = args["nftContract"]
    token_id = str(args["tokenId"])

    listing = ctx.repo.get_listing_by_native_id(listing_id)
    if listing is None:
        seller_fid = await resolve_identity(ctx, args["seller"])
        metadata_uri = args.get("metadataURI") or ""
        meta = await ctx.fetcher.fetch(nft_contract, token_id, metadata_uri or None)
        if not meta.success:
            logger.warning(
                "Metadata unavailable for %s #%s: %s", nft_contract, token_id, meta.error
            )

        listing, created = ctx.repo.upsert_listing_if_absent(
            NewListing(
                contract_type="nft_exchange",
                blockchain_listing_id=listing_id,
                seller_address=args["seller"],
                seller_fid=seller_fid,
                nft_contract=nft_contract,
                token_id=token_id,
                price=ctx.to_price(args["price"]),
                expiry=_default_expiry(ctx),
                metadata_uri=meta.metadata_uri or metadata_uri,
                image_url=meta.image_url,
                name=meta.name or f"NFT #{token_id}",
                description=meta.description,
                tx_hash=event.tx_hash,
            )
        )
        if created:
            logger.info("Listing %s created (price=%s)", listing_id, listing.price)
    else:
        logger.debug("Listing %s already stored as id=%d", listing_id, listing.id)

    ctx.repo.record_activity_if_absent(
        NewActivity(
            type="listing_created",
            actor_address=listing.seller_address,
            actor_fid=listing.seller_fid,
            nft_contract=listing.nft_contract,
            token_id=listing.token_id,
            price=listing.price,
            tx_hash=event.tx_hash,
            metadata={"listing_id": listing_id},
        )
    )


async def on_listing_sold(event: CanonicalEvent, ctx: HandlerContext) -> None:
    args = event.args
    listing_id = str(args["listingId"])
    buyer = args["buyer"]

    listing = ctx.repo.get_listing_by_native_id(listing_id)
    if listing is None:
        logger.warning("ListingSold for unknown listing %s (tx=%s)", listing_id, event.tx_hash)
        return

    buyer_fid = await resolve_identity(ctx, buyer)
    applied = ctx.repo.mark_listing_sold(
        listing.id,
        buyer_address=buyer,
        buyer_fid=buyer_fid,
        sale_tx_hash=event.tx_hash,
    )
    if not applied and listing.sale_tx_hash != event.tx_hash:
        logger.warning(
            "Listing %s already finalized, ignoring sale in tx=%s", listing_id, event.tx_hash
        )
        return
    if applied:
        logger.info("Listing %s sold to %s", listing_id, buyer)

    ctx.repo.record_activity_if_absent(
        NewActivity(
            type="sale",
            actor_address=buyer,
            actor_fid=buyer_fid,
            nft_contract=listing.nft_contract,
            token_id=listing.token_id,
            price=ctx.to_price(args["price"]),
            tx_hash=event.tx_hash,
            metadata={"listing_id": listing_id, "seller": listing.seller_address},
        )
    )


async def on_listing_cancelled(event: CanonicalEvent, ctx: HandlerContext) -> None:
    listing_id = str(event.args["listingId"])

    listing = ctx.repo.get_listing_by_native_id(listing_id)
    if listing is None:
        logger.warning("ListingCancelled for unknown listing %s (tx=%s)", listing_id, event.tx_hash)
        return

    applied = ctx.repo.mark_listing_cancelled(listing.id, cancel_tx_hash=event.tx_hash)
    if not applied and listing.cancel_tx_hash != event.tx_hash:
        logger.warning(
            "Listing %s already finalized, ignoring cancellation in tx=%s",
            listing_id,
            event.tx_hash,
        )
        return
    if applied:
        logger.info("Listing %s cancelled", listing_id)

    ctx.repo.record_activity_if_absent(
        NewActivity(
            type="listing_cancelled",
            actor_address=listing.seller_address,
            actor_fid=listing.seller_fid,
            nft_contract=listing.nft_contract,
            token_id=listing.token_id,
            price=listing.price,
            tx_hash=event.tx_hash,
            metadata={"listing_id": listing_id},
        )
    )


# ---------------------------------------------------------------------------
# Offers
# ---------------------------------------------------------------------------


async def on_offer_made(event: CanonicalEvent, ctx: HandlerContext) -> None:
    args = event.args
    offer_id = str(args["offerId"])

    offer = ctx.repo.get_offer_by_native_id(offer_id)
    if offer is None:
        buyer_fid = await resolve_identity(ctx, args["buyer"])
        offer, created = ctx.repo.upsert_offer_if_absent(
            NewOffer(
                blockchain_offer_id=offer_id,
                buyer_address=args["buyer"],
                buyer_fid=buyer_fid,
                nft_contract=args["nftContract"],
                token_id=str(args["tokenId"]),
                amount=ctx.to_price(args["amount"]),
                expiry=_default_expiry(ctx),
                tx_hash=event.tx_hash,
            )
        )
        if created:
            logger.info("Offer %s made (amount=%s)", offer_id, offer.amount)

    ctx.repo.record_activity_if_absent(
        NewActivity(
            type="offer_made",
            actor_address=offer.buyer_address,
            actor_fid=offer.buyer_fid,
            nft_contract=offer.nft_contract,
            token_id=offer.token_id,
            price=offer.amount,
            tx_hash=event.tx_hash,
            metadata={"offer_id": offer_id},
        )
    )


async def on_offer_accepted(event: CanonicalEvent, ctx: HandlerContext) -> None:
    args = event.args
    offer_id = str(args["offerId"])
    seller = args["seller"]

    offer = ctx.repo.get_offer_by_native_id(offer_id)
    if offer is None:
        logger.warning("OfferAccepted for unknown offer %s (tx=%s)", offer_id, event.tx_hash)
        return

    seller_fid = await resolve_identity(ctx, seller)
    applied = ctx.repo.mark_offer_accepted(
        offer.id,
        seller_address=seller,
        seller_fid=seller_fid,
        accept_tx_hash=event.tx_hash,
    )
    if not applied and offer.accept_tx_hash != event.tx_hash:
        logger.warning(
            "Offer %s already finalized, ignoring acceptance in tx=%s", offer_id, event.tx_hash
        )
        return
    if applied:
        logger.info("Offer %s accepted by %s", offer_id, seller)

    ctx.repo.record_activity_if_absent(
        NewActivity(
            type="offer_accepted",
            actor_address=seller,
            actor_fid=seller_fid,
            nft_contract=offer.nft_contract,
            token_id=offer.token_id,
            price=offer.amount,
            tx_hash=event.tx_hash,
            metadata={
                "offer_id": offer_id,
                "buyer": offer.buyer_address,
                "buyer_fid": offer.buyer_fid,
            },
        )
    )


async def on_offer_cancelled(event: CanonicalEvent, ctx: HandlerContext) -> None:
    offer_id = str(event.args["offerId"])

    offer = ctx.repo.get_offer_by_native_id(offer_id)
    if offer is None:
        logger.warning("OfferCancelled for unknown offer %s (tx=%s)", offer_id, event.tx_hash)
        return

    applied = ctx.repo.mark_offer_cancelled(offer.id, cancel_tx_hash=event.tx_hash)
    if not applied and offer.cancel_tx_hash != event.tx_hash:
        logger.warning(
            "Offer %s already finalized, ignoring cancellation in tx=%s", offer_id, event.tx_hash
        )
        return
    if applied:
        logger.info("Offer %s cancelled", offer_id)

    ctx.repo.record_activity_if_absent(
        NewActivity(
            type="offer_cancelled",
            actor_address=offer.buyer_address,
            actor_fid=offer.buyer_fid,
            nft_contract=offer.nft_contract,
            token_id=offer.token_id,
            price=offer.amount,
            tx_hash=event.tx_hash,
            metadata={"offer_id": offer_id},
        )
    )
