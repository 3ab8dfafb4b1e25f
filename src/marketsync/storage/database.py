"""DuckDB connection setup and marketplace schema.

The schema mirrors the relational tables the frontend reads. Natural keys
carry UNIQUE constraints so that re-applying an event can be detected by the
database itself:

- listings: `blockchain_listing_id` (native) / `order_hash` (Seaport)
- offers: `blockchain_offer_id`
- activity: (`tx_hash`, `type`)

NULLs never collide under UNIQUE, which keeps the two listing keys mutually
exclusive by `contract_type`.
"""

from __future__ import annotations

from pathlib import Path

import duckdb

SCHEMA_STATEMENTS = [
    "CREATE SEQUENCE IF NOT EXISTS listings_id_seq START 1",
    "CREATE SEQUENCE IF NOT EXISTS offers_id_seq START 1",
    "CREATE SEQUENCE IF NOT EXISTS activity_id_seq START 1",
    """
    CREATE TABLE IF NOT EXISTS users (
        fid BIGINT PRIMARY KEY,
        username VARCHAR,
        display_name VARCHAR,
        pfp_url VARCHAR,
        wallet_address VARCHAR,
        created_at TIMESTAMP DEFAULT current_timestamp,
        updated_at TIMESTAMP DEFAULT current_timestamp
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS listings (
        id BIGINT PRIMARY KEY DEFAULT nextval('listings_id_seq'),
        contract_type VARCHAR NOT NULL DEFAULT 'nft_exchange',
        blockchain_listing_id VARCHAR UNIQUE,
        order_hash VARCHAR UNIQUE,
        seller_address VARCHAR NOT NULL,
        seller_fid BIGINT,
        nft_contract VARCHAR NOT NULL,
        token_id VARCHAR NOT NULL,
        price DOUBLE NOT NULL,
        expiry TIMESTAMP,
        metadata_uri VARCHAR DEFAULT '',
        image_url VARCHAR DEFAULT '',
        name VARCHAR DEFAULT '',
        description VARCHAR DEFAULT '',
        tx_hash VARCHAR,
        created_at TIMESTAMP DEFAULT current_timestamp,
        sold_at TIMESTAMP,
        cancelled_at TIMESTAMP,
        buyer_address VARCHAR,
        buyer_fid BIGINT,
        sale_tx_hash VARCHAR,
        cancel_tx_hash VARCHAR,
        CHECK (contract_type IN ('nft_exchange', 'seaport'))
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS offers (
        id BIGINT PRIMARY KEY DEFAULT nextval('offers_id_seq'),
        blockchain_offer_id VARCHAR NOT NULL UNIQUE,
        buyer_address VARCHAR NOT NULL,
        buyer_fid BIGINT,
        nft_contract VARCHAR NOT NULL,
        token_id VARCHAR NOT NULL,
        amount DOUBLE NOT NULL,
        expiry TIMESTAMP,
        tx_hash VARCHAR,
        created_at TIMESTAMP DEFAULT current_timestamp,
        accepted_at TIMESTAMP,
        cancelled_at TIMESTAMP,
        seller_address VARCHAR,
        seller_fid BIGINT,
        accept_tx_hash VARCHAR,
        cancel_tx_hash VARCHAR
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS activity (
        id BIGINT PRIMARY KEY DEFAULT nextval('activity_id_seq'),
        type VARCHAR NOT NULL,
        actor_address VARCHAR NOT NULL,
        actor_fid BIGINT,
        nft_contract VARCHAR NOT NULL,
        token_id VARCHAR NOT NULL,
        price DOUBLE,
        metadata VARCHAR NOT NULL DEFAULT '{}',
        tx_hash VARCHAR,
        contract_type VARCHAR NOT NULL DEFAULT 'nft_exchange',
        created_at TIMESTAMP DEFAULT current_timestamp,
        UNIQUE (tx_hash, type),
        CHECK (type IN ('listing_created', 'offer_made', 'sale', 'offer_accepted',
                        'listing_cancelled', 'offer_cancelled'))
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS indexed_blocks (
        id INTEGER PRIMARY KEY,
        block_number BIGINT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_listings_nft ON listings (nft_contract, token_id)",
    "CREATE INDEX IF NOT EXISTS idx_listings_seller ON listings (seller_address)",
    "CREATE INDEX IF NOT EXISTS idx_offers_nft ON offers (nft_contract, token_id)",
    "CREATE INDEX IF NOT EXISTS idx_activity_nft ON activity (nft_contract, token_id)",
    "CREATE INDEX IF NOT EXISTS idx_activity_actor ON activity (actor_address)",
]


def init_schema(con: duckdb.DuckDBPyConnection) -> None:
    """Create all tables, sequences and indexes if they do not exist."""
    for stmt in SCHEMA_STATEMENTS:
        con.execute(stmt)


def connect(path: str | Path = ":memory:") -> duckdb.DuckDBPyConnection:
    """Open a DuckDB database (creating parent directories) and ensure the schema."""
    if str(path) != ":memory:":
        Path(path).parent.mkdir(parents=True, exist_ok=True)
    con = duckdb.connect(str(path))
    init_schema(con)
    return con

