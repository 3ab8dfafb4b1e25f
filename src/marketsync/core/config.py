from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from marketsync.constants import (
    DEFAULT_RPC_URL,
    DEPLOYMENT_BLOCK,
    EXCHANGE_ADDRESS,
    IPFS_GATEWAYS,
    SEAPORT_ADDRESS,
    USDC_ADDRESS,
    USDC_DECIMALS,
)

ENV_PREFIX = "MARKETSYNC_"


@dataclass(frozen=True)
class ContractsConfig:
    """Monitored contracts and the payment token prices are quoted in."""

    exchange_address: str | None = EXCHANGE_ADDRESS
    seaport_address: str | None = SEAPORT_ADDRESS
    payment_token: str = USDC_ADDRESS
    payment_decimals: int = USDC_DECIMALS

    def monitored_addresses(self) -> list[str]:
        """Lowercased addresses of every configured contract."""
        return [a.lower() for a in (self.exchange_address, self.seaport_address) if a]


@dataclass(frozen=True)
class SyncConfig:
    """Configuration for the block-range backfill scanner."""

    deployment_block: int = DEPLOYMENT_BLOCK
    chunk_size: int = 100
    max_blocks_per_run: int = 100_000
    max_runtime_s: float = 50.0
    # Only scan up to tip - confirmations on automatic passes
    confirmations: int = 3
    chunk_delay_s: float = 0.1


@dataclass(frozen=True)
class AppConfig:
    """Top-level configuration wiring the pipeline to its collaborators."""

    rpc_url: str = DEFAULT_RPC_URL
    db_path: Path = Path("./data/marketsync.duckdb")
    neynar_api_key: str | None = None
    admin_token: str | None = None
    rpc_timeout_s: int = 20
    ipfs_gateways: tuple[str, ...] = IPFS_GATEWAYS
    contracts: ContractsConfig = field(default_factory=ContractsConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> AppConfig:
        """Build a config from `MARKETSYNC_*` environment variables.

        Unset variables keep their defaults. `MARKETSYNC_ALCHEMY_API_KEY`
        takes precedence over `MARKETSYNC_RPC_URL`.
        """
        env = os.environ if environ is None else environ

        def get(name: str) -> str | None:
            value = env.get(ENV_PREFIX + name)
            return value if value else None

        contracts = ContractsConfig(
            exchange_address=get("EXCHANGE_ADDRESS") or EXCHANGE_ADDRESS,
            seaport_address=get("SEAPORT_ADDRESS") or SEAPORT_ADDRESS,
            payment_token=get("PAYMENT_TOKEN") or USDC_ADDRESS,
            payment_decimals=int(get("PAYMENT_DECIMALS") or USDC_DECIMALS),
        )
        defaults = SyncConfig()
        sync = SyncConfig(
            deployment_block=int(get("DEPLOYMENT_BLOCK") or defaults.deployment_block),
            chunk_size=int(get("CHUNK_SIZE") or defaults.chunk_size),
            max_blocks_per_run=int(get("MAX_BLOCKS_PER_RUN") or defaults.max_blocks_per_run),
            max_runtime_s=float(get("MAX_RUNTIME_S") or defaults.max_runtime_s),
            confirmations=int(get("CONFIRMATIONS") or defaults.confirmations),
            chunk_delay_s=float(get("CHUNK_DELAY_S") or defaults.chunk_delay_s),
        )

        rpc_url = get("RPC_URL") or DEFAULT_RPC_URL
        alchemy_key = get("ALCHEMY_API_KEY")
        if alchemy_key:
            rpc_url = f"https://base-mainnet.g.alchemy.com/v2/{alchemy_key}"

        return cls(
            rpc_url=rpc_url,
            db_path=Path(get("DB_PATH") or cls.db_path),
            neynar_api_key=get("NEYNAR_API_KEY"),
            admin_token=get("ADMIN_TOKEN"),
            rpc_timeout_s=int(get("RPC_TIMEOUT_S") or cls.rpc_timeout_s),
            contracts=contracts,
            sync=sync,
        )
