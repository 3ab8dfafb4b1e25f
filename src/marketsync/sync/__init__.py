from marketsync.sync.coordinator import SyncCoordinator, SyncResult
from marketsync.sync.utils import iter_chunks, resolve_scan_range
from marketsync.sync.webhook import IngestResult, WebhookIngestor

__all__ = [
    "SyncCoordinator",
    "SyncResult",
    "iter_chunks",
    "resolve_scan_range",
    "IngestResult",
    "WebhookIngestor",
]
