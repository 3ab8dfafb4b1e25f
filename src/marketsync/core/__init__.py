"""Core data models, configurations, errors and interfaces.

This package provides:
- Data models (EventLog, CanonicalEvent, Listing, Offer, Activity)
- Configuration classes (AppConfig, ContractsConfig, SyncConfig)
- The pipeline's exception hierarchy
"""

from marketsync.core.config import AppConfig, ContractsConfig, SyncConfig
from marketsync.core.errors import (
    HandlerError,
    LogDecodeError,
    MarketSyncError,
    ProviderError,
    ProviderTimeoutError,
    RateLimitedError,
    TransientProviderError,
)
from marketsync.core.models import (
    Activity,
    CanonicalEvent,
    EventLog,
    EventType,
    Identity,
    Listing,
    Metadata,
    Offer,
)

__all__ = [
    "AppConfig",
    "ContractsConfig",
    "SyncConfig",
    "HandlerError",
    "LogDecodeError",
    "MarketSyncError",
    "ProviderError",
    "ProviderTimeoutError",
    "RateLimitedError",
    "TransientProviderError",
    "Activity",
    "CanonicalEvent",
    "EventLog",
    "EventType",
    "Identity",
    "Listing",
    "Metadata",
    "Offer",
]
