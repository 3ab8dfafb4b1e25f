from unittest.mock import AsyncMock

import pytest

from helpers import BUYER, BUYER_FID, NOW, SELLER, SELLER_FID, FakeFetcher, FakeResolver, LogBuilder
from marketsync.core.config import AppConfig, ContractsConfig, SyncConfig
from marketsync.core.models import Identity
from marketsync.dispatch.dispatcher import ContractTable, ProtocolDispatcher
from marketsync.handlers import HandlerContext, default_handlers
from marketsync.storage.database import connect
from marketsync.storage.repository import CursorRepository, MarketRepository


@pytest.fixture
def logs() -> LogBuilder:
    return LogBuilder()


@pytest.fixture
def con():
    connection = connect(":memory:")
    yield connection
    connection.close()


@pytest.fixture
def repo(con) -> MarketRepository:
    return MarketRepository(con, clock=lambda: NOW)


@pytest.fixture
def cursors(con) -> CursorRepository:
    return CursorRepository(con)


@pytest.fixture
def resolver() -> FakeResolver:
    return FakeResolver(
        {
            SELLER: [Identity(fid=SELLER_FID, username="seller", display_name="Seller")],
            BUYER: [Identity(fid=BUYER_FID, username="buyer", display_name="Buyer")],
        }
    )


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def contracts() -> ContractsConfig:
    return ContractsConfig()


@pytest.fixture
def ctx(repo, resolver, fetcher, contracts) -> HandlerContext:
    return HandlerContext(repo=repo, resolver=resolver, fetcher=fetcher, contracts=contracts)


@pytest.fixture
def dispatcher(ctx, contracts) -> ProtocolDispatcher:
    return ProtocolDispatcher(ContractTable.from_config(contracts), default_handlers(), ctx)


@pytest.fixture
def sync_config() -> SyncConfig:
    return SyncConfig(
        deployment_block=99,
        chunk_size=10,
        max_blocks_per_run=1_000,
        max_runtime_s=50.0,
        confirmations=0,
        chunk_delay_s=0.0,
    )


@pytest.fixture
def app_config(sync_config) -> AppConfig:
    return AppConfig(admin_token="s3cret", sync=sync_config)


@pytest.fixture
def mock_rpc():
    rpc = AsyncMock()
    rpc.get_logs = AsyncMock(return_value=[])
    rpc.latest_block = AsyncMock(return_value=100)
    rpc.aclose = AsyncMock()
    return rpc
