"""marketsync: chain-to-database synchronization for an NFT marketplace."""

__version__ = "0.1.0"
