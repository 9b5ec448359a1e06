"""Scanning engine services: scheduler, dedup, broadcast, config, history."""

from trendscan.services.scan_config import (
    ConfigurationError,
    ScanConfig,
    ScanSettings,
    normalize_symbols,
)
from trendscan.services.scan_history import ScanHistory
from trendscan.services.dedup import AlertDeduplicator, DedupEntry
from trendscan.services.broadcaster import EventBroadcaster, Subscription, SubscriptionClosed
from trendscan.services.scheduler import (
    ALERT_TTL_MS,
    ScanScheduler,
    SchedulerState,
    TickOutcome,
)

__all__ = [
    "ConfigurationError",
    "ScanConfig",
    "ScanSettings",
    "normalize_symbols",
    "ScanHistory",
    "AlertDeduplicator",
    "DedupEntry",
    "EventBroadcaster",
    "Subscription",
    "SubscriptionClosed",
    "ALERT_TTL_MS",
    "ScanScheduler",
    "SchedulerState",
    "TickOutcome",
]
