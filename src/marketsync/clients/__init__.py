from marketsync.clients.identity import NeynarIdentityResolver, NullIdentityResolver
from marketsync.clients.metadata import NFTMetadataFetcher
from marketsync.clients.rpc import RPC

__all__ = ["NeynarIdentityResolver", "NullIdentityResolver", "NFTMetadataFetcher", "RPC"]
