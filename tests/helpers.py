"""Shared builders and fakes for the test-suite (imported by conftest and tests)."""

from collections.abc import Sequence
from datetime import datetime
from typing import Any

from eth_abi import encode

from marketsync.constants import EXCHANGE_ADDRESS, SEAPORT_ADDRESS, USDC_ADDRESS
from marketsync.core.errors import ProviderError
from marketsync.core.models import EventLog, Identity, Metadata
from marketsync.decoding.registries import make_exchange_registry, make_seaport_registry
from marketsync.decoding.specs import EventRegistry

NOW = datetime(2025, 1, 1, 12, 0, 0)

SELLER = "0x1111111111111111111111111111111111111111"
BUYER = "0x2222222222222222222222222222222222222222"
BUYER_MIXED_CASE = "0xAbCdEf2222222222222222222222222222222222"
NFT = "0x3333333333333333333333333333333333333333"
FEE_RECIPIENT = "0x4444444444444444444444444444444444444444"
OTHER_CONTRACT = "0x5555555555555555555555555555555555555555"
ZERO = "0x" + "00" * 20
ORDER_HASH = "0x" + "ab" * 32

SELLER_FID = 1001
BUYER_FID = 2002


def tx(n: int) -> str:
    return "0x" + f"{n:064x}"


def topic_address(addr: str) -> str:
    return "0x" + "0" * 24 + addr[2:]


def topic_uint(value: int) -> str:
    return "0x" + value.to_bytes(32, "big").hex()


class LogBuilder:
    """Build real, ABI-encoded marketplace logs."""

    def __init__(self) -> None:
        self.exchange = make_exchange_registry()
        self.seaport = make_seaport_registry()

    @staticmethod
    def topic0(registry: EventRegistry, name: str) -> str:
        return next(t for t, spec in registry.items() if spec.name == name)

    def log(
        self,
        address: str,
        registry: EventRegistry,
        name: str,
        indexed: Sequence[str],
        data_types: Sequence[str],
        data_values: Sequence[Any],
        *,
        block: int = 100,
        log_index: int = 0,
        tx_hash: str = tx(1),
    ) -> EventLog:
        data = encode(list(data_types), list(data_values)) if data_types else b""
        return EventLog(
            address=address.lower(),
            topics=(self.topic0(registry, name), *indexed),
            data_hex="0x" + data.hex(),
            block_number=block,
            tx_hash=tx_hash,
            log_index=log_index,
        )

    # --- native exchange ---

    def listing_created(self, listing_id=42, seller=SELLER, nft=NFT, token_id=7,
                        price=100_000_000, uri="ipfs://QmListingMeta", **kw) -> EventLog:
        return self.log(
            EXCHANGE_ADDRESS, self.exchange, "ListingCreated",
            [topic_uint(listing_id), topic_address(seller), topic_address(nft)],
            ["uint256", "uint256", "string"], [token_id, price, uri], **kw,
        )

    def listing_sold(self, listing_id=42, buyer=BUYER, price=100_000_000, **kw) -> EventLog:
        return self.log(
            EXCHANGE_ADDRESS, self.exchange, "ListingSold",
            [topic_uint(listing_id), topic_address(buyer)],
            ["uint256"], [price], **kw,
        )

    def listing_cancelled(self, listing_id=42, **kw) -> EventLog:
        return self.log(
            EXCHANGE_ADDRESS, self.exchange, "ListingCancelled",
            [topic_uint(listing_id)], [], [], **kw,
        )

    def offer_made(self, offer_id=5, buyer=BUYER, nft=NFT, token_id=7, amount=50_000_000, **kw) -> EventLog:
        return self.log(
            EXCHANGE_ADDRESS, self.exchange, "OfferMade",
            [topic_uint(offer_id), topic_address(buyer), topic_address(nft)],
            ["uint256", "uint256"], [token_id, amount], **kw,
        )

    def offer_accepted(self, offer_id=5, seller=SELLER, **kw) -> EventLog:
        return self.log(
            EXCHANGE_ADDRESS, self.exchange, "OfferAccepted",
            [topic_uint(offer_id), topic_address(seller)], [], [], **kw,
        )

    def offer_cancelled(self, offer_id=5, **kw) -> EventLog:
        return self.log(
            EXCHANGE_ADDRESS, self.exchange, "OfferCancelled",
            [topic_uint(offer_id)], [], [], **kw,
        )

    def fee_updated(self, old=250, new=300, **kw) -> EventLog:
        return self.log(
            EXCHANGE_ADDRESS, self.exchange, "MarketplaceFeeUpdated",
            [], ["uint256", "uint256"], [old, new], **kw,
        )

    # --- seaport ---

    def order_fulfilled(
        self,
        order_hash=ORDER_HASH,
        offerer=SELLER,
        zone=ZERO,
        recipient=BUYER,
        offer=None,
        consideration=None,
        **kw,
    ) -> EventLog:
        if offer is None:
            offer = [(2, NFT, 7, 1)]
        if consideration is None:
            consideration = [
                (1, USDC_ADDRESS, 0, 95_000_000, offerer),
                (1, USDC_ADDRESS, 0, 5_000_000, FEE_RECIPIENT),
            ]
        return self.log(
            SEAPORT_ADDRESS, self.seaport, "OrderFulfilled",
            [topic_address(offerer), topic_address(zone)],
            [
                "bytes32",
                "address",
                "(uint8,address,uint256,uint256)[]",
                "(uint8,address,uint256,uint256,address)[]",
            ],
            [bytes.fromhex(order_hash[2:]), recipient, offer, consideration],
            **kw,
        )

    def order_cancelled(self, order_hash=ORDER_HASH, offerer=SELLER, zone=ZERO, **kw) -> EventLog:
        return self.log(
            SEAPORT_ADDRESS, self.seaport, "OrderCancelled",
            [topic_address(offerer), topic_address(zone)],
            ["bytes32"], [bytes.fromhex(order_hash[2:])], **kw,
        )

    def orders_matched(self, hashes=(ORDER_HASH,), **kw) -> EventLog:
        return self.log(
            SEAPORT_ADDRESS, self.seaport, "OrdersMatched",
            [], ["bytes32[]"], [[bytes.fromhex(h[2:]) for h in hashes]], **kw,
        )


class FakeResolver:
    def __init__(self, identities: dict[str, list[Identity]] | None = None) -> None:
        self.identities = identities or {}
        self.calls: list[str] = []

    async def resolve(self, address: str) -> list[Identity]:
        self.calls.append(address.lower())
        return list(self.identities.get(address.lower(), []))


class FakeFetcher:
    def __init__(self, *, success: bool = True) -> None:
        self.success = success
        self.calls: list[tuple[str, str, str | None]] = []

    async def fetch(self, contract: str, token_id: str, uri_hint: str | None = None) -> Metadata:
        self.calls.append((contract, token_id, uri_hint))
        if not self.success:
            return Metadata(contract_address=contract, token_id=token_id, error="gateway timeout")
        return Metadata(
            contract_address=contract,
            token_id=token_id,
            metadata_uri=uri_hint or "ipfs://QmFromChain",
            name=f"Cool NFT #{token_id}",
            description="a cool nft",
            image_url=f"https://img.example/{token_id}.png",
            collection_name="Cool NFTs",
            success=True,
        )


class FakeProvider:
    """In-memory logs provider keyed by emitting address."""

    def __init__(self, tip: int, logs: Sequence[EventLog] = ()) -> None:
        self.tip = tip
        self.logs = list(logs)
        self.calls: list[tuple[str, int, int]] = []
        self.fail_at: dict[int, ProviderError] = {}

    async def latest_block(self) -> int:
        return self.tip

    async def get_logs(self, *, address: str, from_block: int, to_block: int) -> list[EventLog]:
        self.calls.append((address, from_block, to_block))
        if from_block in self.fail_at:
            raise self.fail_at[from_block]
        return [
            log
            for log in self.logs
            if log.address == address.lower() and from_block <= log.block_number <= to_block
        ]