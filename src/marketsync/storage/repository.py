"""Idempotent persistence operations for listings, offers, activity and users.

Every write that creates an identity-bearing row goes through an
`*_if_absent` primitive keyed on its natural key and returns
`(row, created)`; a conflict hands back the existing row instead of raising.
Lifecycle updates (sold / cancelled / accepted) are guarded in SQL so they
apply at most once and never to a row that already reached another terminal
state.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import fields
from datetime import datetime, timezone
from typing import Any, TypeVar

import duckdb

from marketsync.core.models import (
    Activity,
    ActivityType,
    Identity,
    Listing,
    NewActivity,
    NewListing,
    NewOffer,
    Offer,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

CURSOR_ROW_ID = 1


def utcnow() -> datetime:
    """Naive UTC timestamp (DuckDB TIMESTAMP columns carry no zone)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class MarketRepository:
    """Read/write access to the mirrored marketplace tables.

    Parameters
    ----------
    con : duckdb.DuckDBPyConnection
        Connection with the schema from `marketsync.storage.database` applied.
    clock : Callable[[], datetime]
        Source of lifecycle timestamps; injectable for tests.
    """

    def __init__(self, con: duckdb.DuckDBPyConnection, *, clock: Callable[[], datetime] = utcnow) -> None:
        self.con = con
        self.clock = clock

    # ------------------------------------------------------------------
    # Row helpers
    # ------------------------------------------------------------------

    def _fetch_one(self, cls: type[T], sql: str, params: list[Any]) -> T | None:
        cur = self.con.execute(sql, params)
        row = cur.fetchone()
        if row is None:
            return None
        cols = [d[0] for d in cur.description]
        return self._to_model(cls, dict(zip(cols, row)))

    def _fetch_all(self, cls: type[T], sql: str, params: list[Any]) -> list[T]:
        cur = self.con.execute(sql, params)
        rows = cur.fetchall()
        cols = [d[0] for d in cur.description]
        return [self._to_model(cls, dict(zip(cols, row))) for row in rows]

    @staticmethod
    def _to_model(cls: type[T], record: dict[str, Any]) -> T:
        names = {f.name for f in fields(cls)}  # type: ignore[arg-type]
        kwargs = {k: v for k, v in record.items() if k in names}
        if "metadata" in kwargs and isinstance(kwargs["metadata"], str):
            kwargs["metadata"] = json.loads(kwargs["metadata"] or "{}")
        return cls(**kwargs)

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------

    def get_listing(self, listing_id: int) -> Listing | None:
        return self._fetch_one(Listing, "SELECT * FROM listings WHERE id = ?", [listing_id])

    def get_listing_by_native_id(self, blockchain_listing_id: str) -> Listing | None:
        return self._fetch_one(
            Listing,
            "SELECT * FROM listings WHERE blockchain_listing_id = ?",
            [str(blockchain_listing_id)],
        )

    def get_listing_by_order_hash(self, order_hash: str) -> Listing | None:
        return self._fetch_one(
            Listing,
            "SELECT * FROM listings WHERE order_hash = ?",
            [order_hash.lower()],
        )

    def _get_listing_by_natural_key(self, new: NewListing) -> Listing | None:
        if new.blockchain_listing_id is not None:
            return self.get_listing_by_native_id(new.blockchain_listing_id)
        return self.get_listing_by_order_hash(new.order_hash or "")

    def upsert_listing_if_absent(self, new: NewListing) -> tuple[Listing, bool]:
        """Insert a listing unless one with the same natural key exists.

        Returns (listing, created).
        """
        if (new.blockchain_listing_id is None) == (new.order_hash is None):
            raise ValueError("a listing needs exactly one of blockchain_listing_id / order_hash")

        existing = self._get_listing_by_natural_key(new)
        if existing is not None:
            return existing, False

        conflict_col = "blockchain_listing_id" if new.blockchain_listing_id is not None else "order_hash"
        row = self.con.execute(
            f"""
            INSERT INTO listings (
                contract_type, blockchain_listing_id, order_hash, seller_address, seller_fid,
                nft_contract, token_id, price, expiry, metadata_uri, image_url, name,
                description, tx_hash, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT ({conflict_col}) DO NOTHING
            RETURNING id
            """,
            [
                new.contract_type,
                new.blockchain_listing_id,
                new.order_hash.lower() if new.order_hash else None,
                new.seller_address.lower(),
                new.seller_fid,
                new.nft_contract.lower(),
                new.token_id,
                new.price,
                new.expiry,
                new.metadata_uri,
                new.image_url,
                new.name,
                new.description,
                new.tx_hash.lower() if new.tx_hash else None,
                self.clock(),
            ],
        ).fetchone()

        if row is None:
            # Lost a race with a concurrent writer; return their row.
            existing = self._get_listing_by_natural_key(new)
            assert existing is not None
            return existing, False

        listing = self.get_listing(row[0])
        assert listing is not None
        return listing, True

    def mark_listing_sold(
        self,
        listing_id: int,
        *,
        buyer_address: str,
        buyer_fid: int | None,
        sale_tx_hash: str,
    ) -> bool:
        """Set the sale fields once. Returns False if already sold or cancelled."""
        row = self.con.execute(
            """
            UPDATE listings
            SET sold_at = ?, buyer_address = ?, buyer_fid = ?, sale_tx_hash = ?
            WHERE id = ? AND sold_at IS NULL AND cancelled_at IS NULL
            RETURNING id
            """,
            [self.clock(), buyer_address.lower(), buyer_fid, sale_tx_hash.lower(), listing_id],
        ).fetchone()
        return row is not None

    def mark_listing_cancelled(self, listing_id: int, *, cancel_tx_hash: str) -> bool:
        """Set the cancellation fields once. Returns False if already sold or cancelled."""
        row = self.con.execute(
            """
            UPDATE listings
            SET cancelled_at = ?, cancel_tx_hash = ?
            WHERE id = ? AND sold_at IS NULL AND cancelled_at IS NULL
            RETURNING id
            """,
            [self.clock(), cancel_tx_hash.lower(), listing_id],
        ).fetchone()
        return row is not None

    def update_listing_metadata(
        self,
        listing_id: int,
        *,
        name: str,
        description: str,
        image_url: str,
        metadata_uri: str,
    ) -> None:
        self.con.execute(
            """
            UPDATE listings SET name = ?, description = ?, image_url = ?, metadata_uri = ?
            WHERE id = ?
            """,
            [name, description, image_url, metadata_uri, listing_id],
        )

    def listings_missing_images(self, limit: int = 10) -> list[Listing]:
        """Active listings whose image could not be resolved at creation time."""
        return self._fetch_all(
            Listing,
            """
            SELECT * FROM listings
            WHERE (image_url IS NULL OR image_url = '')
              AND sold_at IS NULL AND cancelled_at IS NULL
            ORDER BY created_at DESC
            LIMIT ?
            """,
            [limit],
        )

    # ------------------------------------------------------------------
    # Offers
    # ------------------------------------------------------------------

    def get_offer_by_native_id(self, blockchain_offer_id: str) -> Offer | None:
        return self._fetch_one(
            Offer,
            "SELECT * FROM offers WHERE blockchain_offer_id = ?",
            [str(blockchain_offer_id)],
        )

    def upsert_offer_if_absent(self, new: NewOffer) -> tuple[Offer, bool]:
        """Insert an offer unless one with the same native id exists."""
        existing = self.get_offer_by_native_id(new.blockchain_offer_id)
        if existing is not None:
            return existing, False

        row = self.con.execute(
            """
            INSERT INTO offers (
                blockchain_offer_id, buyer_address, buyer_fid, nft_contract, token_id,
                amount, expiry, tx_hash, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT (blockchain_offer_id) DO NOTHING
            RETURNING id
            """,
            [
                new.blockchain_offer_id,
                new.buyer_address.lower(),
                new.buyer_fid,
                new.nft_contract.lower(),
                new.token_id,
                new.amount,
                new.expiry,
                new.tx_hash.lower() if new.tx_hash else None,
                self.clock(),
            ],
        ).fetchone()
        offer = self.get_offer_by_native_id(new.blockchain_offer_id)
        assert offer is not None
        return offer, row is not None

    def mark_offer_accepted(
        self,
        offer_id: int,
        *,
        seller_address: str,
        seller_fid: int | None,
        accept_tx_hash: str,
    ) -> bool:
        row = self.con.execute(
            """
            UPDATE offers
            SET accepted_at = ?, seller_address = ?, seller_fid = ?, accept_tx_hash = ?
            WHERE id = ? AND accepted_at IS NULL AND cancelled_at IS NULL
            RETURNING id
            """,
            [self.clock(), seller_address.lower(), seller_fid, accept_tx_hash.lower(), offer_id],
        ).fetchone()
        return row is not None

    def mark_offer_cancelled(self, offer_id: int, *, cancel_tx_hash: str) -> bool:
        row = self.con.execute(
            """
            UPDATE offers
            SET cancelled_at = ?, cancel_tx_hash = ?
            WHERE id = ? AND accepted_at IS NULL AND cancelled_at IS NULL
            RETURNING id
            """,
            [self.clock(), cancel_tx_hash.lower(), offer_id],
        ).fetchone()
        return row is not None

    # ------------------------------------------------------------------
    # Activity
    # ------------------------------------------------------------------

    def get_activity(self, tx_hash: str, activity_type: ActivityType) -> Activity | None:
        return self._fetch_one(
            Activity,
            "SELECT * FROM activity WHERE tx_hash = ? AND type = ?",
            [tx_hash.lower(), activity_type],
        )

    def record_activity_if_absent(self, new: NewActivity) -> tuple[Activity, bool]:
        """Append an activity row unless (tx_hash, type) was already recorded.

        Rows without a tx hash cannot be deduplicated and are always inserted.
        """
        tx_hash = new.tx_hash.lower() if new.tx_hash else None
        if tx_hash is not None:
            existing = self.get_activity(tx_hash, new.type)
            if existing is not None:
                return existing, False

        row = self.con.execute(
            """
            INSERT INTO activity (
                type, actor_address, actor_fid, nft_contract, token_id, price,
                metadata, tx_hash, contract_type, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT (tx_hash, type) DO NOTHING
            RETURNING id
            """,
            [
                new.type,
                new.actor_address.lower(),
                new.actor_fid,
                new.nft_contract.lower(),
                new.token_id,
                new.price,
                json.dumps(new.metadata, separators=(",", ":"), sort_keys=True),
                tx_hash,
                new.contract_type,
                self.clock(),
            ],
        ).fetchone()

        if row is None:
            existing = self.get_activity(tx_hash or "", new.type)
            assert existing is not None
            return existing, False

        activity = self._fetch_one(Activity, "SELECT * FROM activity WHERE id = ?", [row[0]])
        assert activity is not None
        return activity, True

    def list_activity(
        self,
        *,
        activity_type: ActivityType | None = None,
        nft_contract: str | None = None,
        token_id: str | None = None,
        limit: int = 100,
    ) -> list[Activity]:
        conditions: list[str] = []
        params: list[Any] = []
        if activity_type:
            conditions.append("type = ?")
            params.append(activity_type)
        if nft_contract:
            conditions.append("nft_contract = ?")
            params.append(nft_contract.lower())
        if token_id:
            conditions.append("token_id = ?")
            params.append(token_id)
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        params.append(limit)
        return self._fetch_all(
            Activity,
            f"SELECT * FROM activity {where} ORDER BY id DESC LIMIT ?",
            params,
        )

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def upsert_user(self, identity: Identity) -> None:
        """Insert or refresh the profile of a resolved identity."""
        self.con.execute(
            """
            INSERT INTO users (fid, username, display_name, pfp_url, wallet_address)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT (fid) DO UPDATE SET
                username = excluded.username,
                display_name = excluded.display_name,
                pfp_url = excluded.pfp_url,
                wallet_address = excluded.wallet_address,
                updated_at = current_timestamp
            """,
            [
                identity.fid,
                identity.username,
                identity.display_name,
                identity.pfp_url,
                identity.wallet_address.lower() if identity.wallet_address else None,
            ],
        )

    def get_user(self, fid: int) -> Identity | None:
        return self._fetch_one(
            Identity,
            "SELECT fid, username, display_name, pfp_url, wallet_address FROM users WHERE fid = ?",
            [fid],
        )

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def stats(self) -> dict[str, int]:
        """Listing and activity counters for status endpoints."""
        row = self.con.execute(
            """
            SELECT
                COUNT(*),
                COUNT(*) FILTER (WHERE sold_at IS NOT NULL),
                COUNT(*) FILTER (WHERE cancelled_at IS NOT NULL),
                COUNT(*) FILTER (WHERE sold_at IS NULL AND cancelled_at IS NULL),
                COUNT(*) FILTER (WHERE image_url IS NULL OR image_url = '')
            FROM listings
            """
        ).fetchone()
        offers = self.con.execute("SELECT COUNT(*) FROM offers").fetchone()
        activity = self.con.execute("SELECT COUNT(*) FROM activity").fetchone()
        assert row is not None and offers is not None and activity is not None
        return {
            "total_listings": int(row[0]),
            "sold_listings": int(row[1]),
            "cancelled_listings": int(row[2]),
            "active_listings": int(row[3]),
            "missing_images": int(row[4]),
            "total_offers": int(offers[0]),
            "total_activity": int(activity[0]),
        }


class CursorRepository:
    """Persisted last-fully-processed block number (single row)."""

    def __init__(self, con: duckdb.DuckDBPyConnection) -> None:
        self.con = con

    def get(self) -> int | None:
        row = self.con.execute(
            "SELECT block_number FROM indexed_blocks WHERE id = ?", [CURSOR_ROW_ID]
        ).fetchone()
        return int(row[0]) if row else None

    def advance(self, block_number: int) -> int:
        """Move the cursor forward to `block_number`; never moves it backward."""
        self.con.execute(
            "INSERT INTO indexed_blocks (id, block_number) VALUES (?, ?) ON CONFLICT (id) DO NOTHING",
            [CURSOR_ROW_ID, block_number],
        )
        self.con.execute(
            "UPDATE indexed_blocks SET block_number = ? WHERE id = ? AND block_number < ?",
            [block_number, CURSOR_ROW_ID, block_number],
        )
        current = self.get()
        assert current is not None
        return current

    def reset(self, block_number: int) -> None:
        """Force the cursor to `block_number` (operator-initiated reindex only)."""
        logger.warning("Resetting sync cursor to block %d", block_number)
        self.con.execute(
            "INSERT INTO indexed_blocks (id, block_number) VALUES (?, ?) ON CONFLICT (id) DO NOTHING",
            [CURSOR_ROW_ID, block_number],
        )
        self.con.execute(
            "UPDATE indexed_blocks SET block_number = ? WHERE id = ?",
            [block_number, CURSOR_ROW_ID],
        )
