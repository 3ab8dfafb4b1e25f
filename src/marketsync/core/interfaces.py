from __future__ import annotations

from typing import List, Protocol, runtime_checkable

from marketsync.core.models import EventLog, Identity, Metadata


# ---------------------------------------------------------------------------
# ILogsProvider
# ---------------------------------------------------------------------------

@runtime_checkable
class ILogsProvider(Protocol):
    """
    Abstract provider for fetching EVM logs.

    Domain expectations:
    - It returns EventLog objects already mapped into internal domain models.
    - It raises RateLimitedError when the upstream asks us to back off and
      ProviderTimeoutError when a request times out.
    """

    async def latest_block(self) -> int:
        """Return the current chain head height."""
        ...

    async def get_logs(
        self,
        *,
        address: str,
        from_block: int,
        to_block: int,
    ) -> List[EventLog]:
        """
        Return every log emitted by `address` over the inclusive block range.

        Implementations:
        - RPC-based (`marketsync.clients.rpc.RPC`)
        - In-memory provider for testing
        """
        ...


# ---------------------------------------------------------------------------
# IIdentityResolver
# ---------------------------------------------------------------------------

@runtime_checkable
class IIdentityResolver(Protocol):
    """
    Maps an on-chain address to zero or more off-chain social identities.

    Domain expectations:
    - An address with no linked profile yields an empty list.
    - Transport errors may raise; callers treat resolution as best-effort.
    """

    async def resolve(self, address: str) -> List[Identity]:
        ...


# ---------------------------------------------------------------------------
# IMetadataFetcher
# ---------------------------------------------------------------------------

@runtime_checkable
class IMetadataFetcher(Protocol):
    """
    Fetches and normalizes NFT metadata.

    Domain expectations:
    - It never raises for unreachable metadata; it returns a `Metadata` with
      `success=False` and an `error` string instead.
    """

    async def fetch(self, contract: str, token_id: str, uri_hint: str | None = None) -> Metadata:
        ...
