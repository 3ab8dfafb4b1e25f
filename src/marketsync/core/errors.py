from __future__ import annotations


class MarketSyncError(Exception):
    """Base class for pipeline errors."""


class LogDecodeError(MarketSyncError):
    """A log matched a known event signature but could not be parsed."""


class HandlerError(MarketSyncError):
    """A decoded event could not be applied (inconsistent precondition)."""


class ProviderError(MarketSyncError):
    """The upstream log provider returned an error."""


class TransientProviderError(ProviderError):
    """A provider failure that ends the current pass; the next pass retries."""


class RateLimitedError(TransientProviderError):
    """The upstream log provider asked us to slow down."""


class ProviderTimeoutError(TransientProviderError):
    """The upstream log provider did not answer in time."""
