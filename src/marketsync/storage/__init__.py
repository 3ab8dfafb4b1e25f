from marketsync.storage.database import connect, init_schema
from marketsync.storage.repository import CursorRepository, MarketRepository

__all__ = [
    "connect",
    "init_schema",
    "CursorRepository",
    "MarketRepository",
]
