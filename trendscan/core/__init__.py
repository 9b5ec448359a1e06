"""Core modules: scan events and process configuration."""

from trendscan.core.events import (
    EventKind,
    ScanEvent,
    create_event,
    scan_event,
    alert_event,
    error_event,
    hello_event,
)
from trendscan.core.config import (
    TrendscanConfig,
    MexcConfig,
    RuntimeConfig,
    ServerConfig,
    get_config,
    reset_config,
)

__all__ = [
    "EventKind",
    "ScanEvent",
    "create_event",
    "scan_event",
    "alert_event",
    "error_event",
    "hello_event",
    # Config
    "TrendscanConfig",
    "MexcConfig",
    "RuntimeConfig",
    "ServerConfig",
    "get_config",
    "reset_config",
]
