from datetime import timedelta

import pytest

from helpers import (
    BUYER,
    BUYER_FID,
    BUYER_MIXED_CASE,
    NFT,
    NOW,
    ORDER_HASH,
    SELLER,
    SELLER_FID,
    FakeFetcher,
    LogBuilder,
    tx,
)
from marketsync.constants import USDC_ADDRESS
from marketsync.core.errors import HandlerError
from marketsync.core.models import Identity, NewListing
from marketsync.dispatch.dispatcher import ProtocolDispatcher
from marketsync.handlers import HandlerContext, resolve_identity, to_price
from marketsync.storage.repository import MarketRepository


def _seaport_listing(repo: MarketRepository, seller: str = SELLER):
    listing, _ = repo.upsert_listing_if_absent(
        NewListing(
            contract_type="seaport",
            order_hash=ORDER_HASH,
            seller_address=seller,
            nft_contract=NFT,
            token_id="7",
            price=95.0,
            expiry=NOW + timedelta(days=7),
        )
    )
    return listing


def test_to_price_uses_payment_decimals() -> None:
    assert to_price(100_000_000, 6) == 100.0
    assert to_price(1, 6) == 0.000001


# ---------------------------------------------------------------------------
# Native listings
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_fresh_listing(
    dispatcher: ProtocolDispatcher, repo: MarketRepository, logs: LogBuilder, ctx: HandlerContext
) -> None:
    outcome = await dispatcher.dispatch(logs.listing_created(listing_id=42, price=100_000_000))
    await ctx.tasks.drain()

    assert outcome.handled and outcome.error is None
    listing = repo.get_listing_by_native_id("42")
    assert listing is not None
    assert listing.blockchain_listing_id == "42"
    assert listing.contract_type == "nft_exchange"
    assert listing.price == 100.0
    assert listing.seller_address == SELLER
    assert listing.seller_fid == SELLER_FID
    assert listing.expiry == NOW + timedelta(days=7)
    assert listing.name == "Cool NFT #7"
    assert listing.image_url == "https://img.example/7.png"
    assert listing.metadata_uri == "ipfs://QmListingMeta"
    assert listing.is_active

    created = repo.list_activity(activity_type="listing_created")
    assert len(created) == 1
    assert created[0].price == 100.0
    assert created[0].metadata == {"listing_id": "42"}

    user = repo.get_user(SELLER_FID)
    assert user is not None
    assert user.wallet_address == SELLER


@pytest.mark.asyncio
async def test_listing_created_is_idempotent(
    dispatcher: ProtocolDispatcher, repo: MarketRepository, logs: LogBuilder, fetcher: FakeFetcher
) -> None:
    log = logs.listing_created()
    await dispatcher.dispatch(log)
    await dispatcher.dispatch(log)

    assert repo.stats()["total_listings"] == 1
    assert len(repo.list_activity(activity_type="listing_created")) == 1
    assert len(fetcher.calls) == 1


@pytest.mark.asyncio
async def test_listing_created_with_failed_metadata_falls_back_to_token_name(
    repo: MarketRepository, logs: LogBuilder, ctx: HandlerContext, dispatcher: ProtocolDispatcher
) -> None:
    ctx.fetcher = FakeFetcher(success=False)
    await dispatcher.dispatch(logs.listing_created(token_id=9))

    listing = repo.get_listing_by_native_id("42")
    assert listing.name == "NFT #9"
    assert listing.image_url == ""
    assert listing.metadata_uri == "ipfs://QmListingMeta"


@pytest.mark.asyncio
async def test_sale_after_creation(
    dispatcher: ProtocolDispatcher, repo: MarketRepository, logs: LogBuilder, ctx: HandlerContext
) -> None:
    ctx.resolver.identities[BUYER_MIXED_CASE.lower()] = [Identity(fid=3003)]
    await dispatcher.dispatch(logs.listing_created(tx_hash=tx(1)))
    sale = logs.listing_sold(buyer=BUYER_MIXED_CASE, price=100_000_000, tx_hash=tx(2), block=101)

    await dispatcher.dispatch(sale)
    await dispatcher.dispatch(sale)

    listing = repo.get_listing_by_native_id("42")
    assert listing.sold_at == NOW
    assert listing.buyer_address == BUYER_MIXED_CASE.lower()
    assert listing.buyer_fid == 3003
    assert listing.sale_tx_hash == tx(2)

    sales = repo.list_activity(activity_type="sale")
    assert len(sales) == 1
    assert sales[0].price == 100.0
    assert sales[0].actor_address == BUYER_MIXED_CASE.lower()
    assert sales[0].metadata == {"listing_id": "42", "seller": SELLER}


@pytest.mark.asyncio
async def test_sale_of_unknown_listing_is_skipped(
    dispatcher: ProtocolDispatcher, repo: MarketRepository, logs: LogBuilder
) -> None:
    outcome = await dispatcher.dispatch(logs.listing_sold(listing_id=999))

    assert outcome.handled and outcome.error is None
    assert repo.stats()["total_listings"] == 0
    assert repo.list_activity() == []


@pytest.mark.asyncio
async def test_cancel_after_sale_is_ignored(
    dispatcher: ProtocolDispatcher, repo: MarketRepository, logs: LogBuilder
) -> None:
    await dispatcher.dispatch(logs.listing_created(tx_hash=tx(1)))
    await dispatcher.dispatch(logs.listing_sold(tx_hash=tx(2)))
    await dispatcher.dispatch(logs.listing_cancelled(tx_hash=tx(3)))

    listing = repo.get_listing_by_native_id("42")
    assert listing.sold_at is not None
    assert listing.cancelled_at is None
    assert repo.list_activity(activity_type="listing_cancelled") == []


@pytest.mark.asyncio
async def test_listing_cancelled(
    dispatcher: ProtocolDispatcher, repo: MarketRepository, logs: LogBuilder
) -> None:
    await dispatcher.dispatch(logs.listing_created(tx_hash=tx(1)))
    await dispatcher.dispatch(logs.listing_cancelled(tx_hash=tx(3)))
    await dispatcher.dispatch(logs.listing_cancelled(tx_hash=tx(3)))

    listing = repo.get_listing_by_native_id("42")
    assert listing.cancelled_at == NOW
    assert listing.cancel_tx_hash == tx(3)
    cancelled = repo.list_activity(activity_type="listing_cancelled")
    assert len(cancelled) == 1
    assert cancelled[0].actor_address == SELLER


# ---------------------------------------------------------------------------
# Offers
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_offer_made_then_accepted(
    dispatcher: ProtocolDispatcher, repo: MarketRepository, logs: LogBuilder
) -> None:
    await dispatcher.dispatch(logs.offer_made(offer_id=5, amount=50_000_000, tx_hash=tx(5)))
    await dispatcher.dispatch(logs.offer_accepted(offer_id=5, seller=SELLER, tx_hash=tx(6)))

    offer = repo.get_offer_by_native_id("5")
    assert offer.amount == 50.0
    assert offer.buyer_fid == BUYER_FID
    assert offer.accepted_at == NOW
    assert offer.seller_address == SELLER
    assert offer.seller_fid == SELLER_FID

    (accepted,) = repo.list_activity(activity_type="offer_accepted")
    assert accepted.nft_contract == NFT
    assert accepted.token_id == "7"
    assert accepted.price == 50.0
    assert accepted.metadata == {"offer_id": "5", "buyer": BUYER, "buyer_fid": BUYER_FID}
    assert len(repo.list_activity(activity_type="offer_made")) == 1


@pytest.mark.asyncio
async def test_offer_cancelled_then_accept_is_ignored(
    dispatcher: ProtocolDispatcher, repo: MarketRepository, logs: LogBuilder
) -> None:
    await dispatcher.dispatch(logs.offer_made(tx_hash=tx(5)))
    await dispatcher.dispatch(logs.offer_cancelled(tx_hash=tx(6)))
    await dispatcher.dispatch(logs.offer_accepted(tx_hash=tx(7)))

    offer = repo.get_offer_by_native_id("5")
    assert offer.cancelled_at is not None
    assert offer.accepted_at is None
    assert len(repo.list_activity(activity_type="offer_cancelled")) == 1
    assert repo.list_activity(activity_type="offer_accepted") == []


# ---------------------------------------------------------------------------
# Seaport
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_order_fulfilled_marks_listing_sold(
    dispatcher: ProtocolDispatcher, repo: MarketRepository, logs: LogBuilder
) -> None:
    listing = _seaport_listing(repo)
    await dispatcher.dispatch(logs.order_fulfilled(tx_hash=tx(8)))

    stored = repo.get_listing(listing.id)
    assert stored.sold_at == NOW
    assert stored.buyer_address == BUYER
    assert stored.buyer_fid == BUYER_FID

    (sale,) = repo.list_activity(activity_type="sale")
    assert sale.contract_type == "seaport"
    assert sale.price == 95.0
    assert sale.metadata["order_hash"] == ORDER_HASH
    assert sale.metadata["seller_address"] == SELLER


@pytest.mark.asyncio
async def test_order_fulfilled_without_listing_records_sale_only(
    dispatcher: ProtocolDispatcher, repo: MarketRepository, logs: LogBuilder
) -> None:
    outcome = await dispatcher.dispatch(logs.order_fulfilled(tx_hash=tx(8)))

    assert outcome.handled
    assert repo.stats()["total_listings"] == 0
    assert len(repo.list_activity(activity_type="sale")) == 1


@pytest.mark.asyncio
async def test_order_fulfilled_without_nft_leg_is_not_applicable(
    dispatcher: ProtocolDispatcher, repo: MarketRepository, logs: LogBuilder
) -> None:
    _seaport_listing(repo)
    log = logs.order_fulfilled(
        offer=[(1, USDC_ADDRESS, 0, 100)],
        consideration=[(2, NFT, 7, 1, SELLER)],
    )
    outcome = await dispatcher.dispatch(log)

    assert not outcome.decoded
    assert outcome.error is None
    assert repo.get_listing_by_order_hash(ORDER_HASH).is_active
    assert repo.list_activity() == []


@pytest.mark.asyncio
async def test_order_cancelled_by_seller(
    dispatcher: ProtocolDispatcher, repo: MarketRepository, logs: LogBuilder
) -> None:
    listing = _seaport_listing(repo)
    outcome = await dispatcher.dispatch(logs.order_cancelled(tx_hash=tx(9)))

    assert outcome.handled
    assert repo.get_listing(listing.id).cancelled_at == NOW
    (cancelled,) = repo.list_activity(activity_type="listing_cancelled")
    assert cancelled.contract_type == "seaport"
    assert cancelled.price == 95.0


@pytest.mark.asyncio
async def test_order_cancelled_by_other_address_fails(
    dispatcher: ProtocolDispatcher, repo: MarketRepository, logs: LogBuilder
) -> None:
    listing = _seaport_listing(repo)
    outcome = await dispatcher.dispatch(logs.order_cancelled(offerer=BUYER, tx_hash=tx(9)))

    assert isinstance(outcome.error, HandlerError)
    assert repo.get_listing(listing.id).is_active
    assert repo.list_activity() == []


@pytest.mark.asyncio
async def test_orders_matched_changes_nothing(
    dispatcher: ProtocolDispatcher, repo: MarketRepository, logs: LogBuilder
) -> None:
    _seaport_listing(repo)
    outcome = await dispatcher.dispatch(logs.orders_matched())

    assert outcome.handled
    assert repo.get_listing_by_order_hash(ORDER_HASH).is_active
    assert repo.list_activity() == []


# ---------------------------------------------------------------------------
# Identity resolution
# ---------------------------------------------------------------------------


class _BrokenResolver:
    async def resolve(self, address: str) -> list[Identity]:
        raise RuntimeError("directory down")


@pytest.mark.asyncio
async def test_resolver_failure_degrades_to_no_fid(
    dispatcher: ProtocolDispatcher, repo: MarketRepository, logs: LogBuilder, ctx: HandlerContext
) -> None:
    ctx.resolver = _BrokenResolver()
    outcome = await dispatcher.dispatch(logs.listing_created())

    assert outcome.handled
    assert repo.get_listing_by_native_id("42").seller_fid is None


@pytest.mark.asyncio
async def test_user_upsert_failure_is_isolated(ctx: HandlerContext, repo: MarketRepository) -> None:
    def boom(identity: Identity) -> None:
        raise RuntimeError("db locked")

    repo.upsert_user = boom  # type: ignore[method-assign]
    fid = await resolve_identity(ctx, SELLER)

    assert fid == SELLER_FID
    assert await ctx.tasks.drain() == 1
    assert len(ctx.tasks) == 0
