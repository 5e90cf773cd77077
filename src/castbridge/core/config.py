"""
CastBridge Configuration — single source of truth for all settings.

Reads from environment variables with sensible defaults.
No config files, no YAML. Just env vars (and an optional .env).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class DiscoveryConfig:
    """Peer discovery settings."""

    port_start: int = 49400
    port_end: int = 49410
    host: str = "localhost"
    service_name: str = "thaumic-cast-desktop"
    probe_timeout: float = 0.5  # seconds, per candidate during a full scan
    liveness_timeout: float = 0.2  # seconds, cached-peer check
    cache_ttl: float = 300.0  # seconds
    default_max_sessions: int = 5
    # Pinned address: only used when auto_discover is off
    server_url: str = ""
    auto_discover: bool = True

    @classmethod
    def from_env(cls) -> DiscoveryConfig:
        return cls(
            port_start=int(os.getenv("CASTBRIDGE_PORT_START", "49400")),
            port_end=int(os.getenv("CASTBRIDGE_PORT_END", "49410")),
            host=os.getenv("CASTBRIDGE_DISCOVERY_HOST", "localhost"),
            service_name=os.getenv("CASTBRIDGE_SERVICE_NAME", "thaumic-cast-desktop"),
            probe_timeout=float(os.getenv("CASTBRIDGE_PROBE_TIMEOUT", "0.5")),
            liveness_timeout=float(os.getenv("CASTBRIDGE_LIVENESS_TIMEOUT", "0.2")),
            cache_ttl=float(os.getenv("CASTBRIDGE_CACHE_TTL", "300")),
            default_max_sessions=int(
                os.getenv("CASTBRIDGE_DEFAULT_MAX_SESSIONS", "5")
            ),
            server_url=os.getenv("CASTBRIDGE_SERVER_URL", ""),
            auto_discover=_env_bool("CASTBRIDGE_AUTO_DISCOVER", True),
        )

    def candidates(self) -> list[str]:
        """Candidate base URLs in ascending port order."""
        return [
            f"http://{self.host}:{port}"
            for port in range(self.port_start, self.port_end + 1)
        ]


@dataclass(frozen=True)
class PersistenceConfig:
    """Storage settings."""

    db_path: str = "castbridge_state.db"
    connection_debounce_ms: int = 300
    media_debounce_ms: int = 500
    peer_state_debounce_ms: int = 500

    @classmethod
    def from_env(cls) -> PersistenceConfig:
        return cls(
            db_path=os.getenv("CASTBRIDGE_DB_PATH", "castbridge_state.db"),
            connection_debounce_ms=int(
                os.getenv("CASTBRIDGE_CONNECTION_DEBOUNCE_MS", "300")
            ),
            media_debounce_ms=int(os.getenv("CASTBRIDGE_MEDIA_DEBOUNCE_MS", "500")),
            peer_state_debounce_ms=int(
                os.getenv("CASTBRIDGE_PEER_STATE_DEBOUNCE_MS", "500")
            ),
        )


@dataclass(frozen=True)
class RecoveryConfig:
    """Restart recovery and privileged-context timeouts."""

    status_timeout: float = 3.0  # seconds to wait for GetStatus
    ready_timeout: float = 5.0  # seconds to wait for the readiness signal
    context_url: str = ""  # privileged context endpoint; empty = none

    @classmethod
    def from_env(cls) -> RecoveryConfig:
        return cls(
            status_timeout=float(os.getenv("CASTBRIDGE_STATUS_TIMEOUT", "3.0")),
            ready_timeout=float(os.getenv("CASTBRIDGE_READY_TIMEOUT", "5.0")),
            context_url=os.getenv("CASTBRIDGE_CONTEXT_URL", ""),
        )


@dataclass(frozen=True)
class ServerConfig:
    """HTTP bus adapter settings."""

    host: str = "127.0.0.1"
    port: int = 8765

    @classmethod
    def from_env(cls) -> ServerConfig:
        return cls(
            host=os.getenv("CASTBRIDGE_HOST", "127.0.0.1"),
            port=int(os.getenv("CASTBRIDGE_PORT", "8765")),
        )


@dataclass(frozen=True)
class CastBridgeConfig:
    """Root configuration."""

    discovery: DiscoveryConfig = field(default_factory=DiscoveryConfig)
    persistence: PersistenceConfig = field(default_factory=PersistenceConfig)
    recovery: RecoveryConfig = field(default_factory=RecoveryConfig)
    server: ServerConfig = field(default_factory=ServerConfig)

    @classmethod
    def from_env(cls) -> CastBridgeConfig:
        return cls(
            discovery=DiscoveryConfig.from_env(),
            persistence=PersistenceConfig.from_env(),
            recovery=RecoveryConfig.from_env(),
            server=ServerConfig.from_env(),
        )


# Singleton: import this wherever you need config
config = CastBridgeConfig.from_env()


def reload_config() -> CastBridgeConfig:
    """Re-read the environment and replace the module-level config."""
    global config
    config = CastBridgeConfig.from_env()
    return config
