"""
Centralized configuration for trendscan.
Loads from environment variables with sensible defaults.
"""

import os
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class MexcConfig:
    """MEXC futures market-data proxy configuration."""
    proxy_base: str = "https://mexc-proxy-pch1211.workers.dev"
    http_timeout_sec: float = 10.0


@dataclass(frozen=True)
class RuntimeConfig:
    """Runtime cadence and environment settings."""
    env: str = "development"
    log_level: str = "INFO"
    tick_interval_sec: float = 0.45
    idle_interval_sec: float = 1.5
    initial_symbols: tuple[str, ...] = ()
    autostart: bool = False


@dataclass(frozen=True)
class ServerConfig:
    """HTTP surface bind settings."""
    host: str = "0.0.0.0"
    port: int = 10000


@dataclass
class TrendscanConfig:
    """Top-level configuration container."""
    mexc: MexcConfig
    runtime: RuntimeConfig
    server: ServerConfig

    @classmethod
    def from_env(cls) -> "TrendscanConfig":
        """Load configuration from environment variables."""
        raw_symbols = os.getenv("TRENDSCAN_SYMBOLS", "")
        return cls(
            mexc=MexcConfig(
                proxy_base=os.getenv(
                    "TRENDSCAN_MEXC_PROXY", "https://mexc-proxy-pch1211.workers.dev"
                ).rstrip("/"),
                http_timeout_sec=float(os.getenv("TRENDSCAN_HTTP_TIMEOUT", "10.0")),
            ),
            runtime=RuntimeConfig(
                env=os.getenv("TRENDSCAN_ENV", "development"),
                log_level=os.getenv("TRENDSCAN_LOG_LEVEL", "INFO"),
                tick_interval_sec=float(os.getenv("TRENDSCAN_TICK_INTERVAL", "0.45")),
                idle_interval_sec=float(os.getenv("TRENDSCAN_IDLE_INTERVAL", "1.5")),
                initial_symbols=tuple(s.strip() for s in raw_symbols.split(",") if s.strip()),
                autostart=os.getenv("TRENDSCAN_AUTOSTART", "false").lower() == "true",
            ),
            server=ServerConfig(
                host=os.getenv("HOST", "0.0.0.0"),
                port=int(os.getenv("PORT", "10000")),
            ),
        )


# Global config instance (lazy-loaded)
_config: Optional[TrendscanConfig] = None


def get_config() -> TrendscanConfig:
    """Get or create the global configuration."""
    global _config
    if _config is None:
        _config = TrendscanConfig.from_env()
    return _config


def reset_config() -> None:
    """Reset configuration (useful for testing)."""
    global _config
    _config = None
