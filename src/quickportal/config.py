"""
Client configuration.

A global Config instance that can be modified at runtime (the CLI overrides
fields from its options and environment variables).
"""

from dataclasses import dataclass

from quickportal.models.enums import CertReloadPolicy, LogLevel


@dataclass
class ClientConfig:
    """Tunnel client configuration."""

    # Broker Configuration
    HOST: str = "https://localtunnel.me"
    ASSIGNMENT_TIMEOUT_SECONDS: float = 30.0

    # Local Target Configuration
    LOCAL_ALIAS: str = "localhost"

    # Timing Configuration
    LOCAL_RETRY_DELAY_SECONDS: float = 1.0  # Fixed delay, retried without limit
    REMOTE_CONNECT_TIMEOUT_SECONDS: float = 15.0
    CLOSE_TIMEOUT_SECONDS: float = 1.0

    # Relay Configuration
    READ_CHUNK_SIZE: int = 65536
    CERT_RELOAD: CertReloadPolicy = CertReloadPolicy.EACH_ATTEMPT

    # Logging Configuration
    LOG_LEVEL: LogLevel = LogLevel.INFO

    def get_host_url(self) -> str:
        """Get the broker base URL without a trailing slash."""
        return self.HOST.rstrip("/")


config = ClientConfig()
