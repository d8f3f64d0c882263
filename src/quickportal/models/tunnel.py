"""
Data models for tunnel setup and relay configuration.

Model Categories:
    - Broker Responses: the assignment handed out by the broker
    - Tunnel Requests: caller options validated before contacting the broker
    - Relay Configuration: the immutable per-pool ClusterConfig
    - Observability: request info parsed from inbound traffic
"""

from dataclasses import dataclass
from urllib.parse import urlparse

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from quickportal.config import config
from quickportal.models.enums import CertReloadPolicy, LocalTransport


# =============================================================================
# Broker Response Models
# =============================================================================


class TunnelAssignment(BaseModel):
    """
    Tunnel parameters handed out by the broker.

    The broker answers ``{id, url, cached_url?, port, max_conn_count, ip?}``;
    ``remote_host`` is filled in by the client from the broker URL.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(..., description="Tunnel identifier (usually the subdomain)")
    url: str = Field(..., description="Public URL of the tunnel")
    cached_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("cached_url", "cachedUrl"),
        description="URL that stays resolvable after the tunnel closes",
    )
    remote_host: str = Field(..., description="Hostname of the broker")
    ip: str | None = Field(default=None, description="Direct IP of the relay server")
    port: int = Field(..., gt=0, le=65535, description="Relay port on the broker")
    max_conn_count: int = Field(
        default=1,
        ge=1,
        description="Number of relay connections the broker accepts",
    )
    message: str | None = Field(default=None, description="Broker message")

    @field_validator("max_conn_count", mode="before")
    @classmethod
    def _default_conn_count(cls, value):
        # Brokers that omit the field (or send 0/null) expect a single connection
        return value or 1

    @property
    def remote_address(self) -> str:
        """Address to dial for relay sockets, the direct IP when given."""
        return self.ip or self.remote_host


# =============================================================================
# Tunnel Request Models
# =============================================================================


class TunnelOptions(BaseModel):
    """
    Caller options for opening a tunnel.

    Certificate rules:
        - ``allow_invalid_cert`` disables verification and wins over cert files
        - ``local_cert`` and ``local_key`` must be given together
        - certificate options only make sense with ``local_https``
    """

    port: int = Field(..., strict=True, gt=0, le=65535, description="Local port")
    subdomain: str | None = Field(default=None, description="Requested subdomain")
    host: str = Field(
        default_factory=lambda: config.HOST,
        description="Broker base URL",
    )
    local_alias: str | None = Field(
        default=None,
        description="Host to connect to locally; also rewrites the Host header",
    )
    local_https: bool = Field(default=False, description="Local target speaks TLS")
    local_cert: str | None = Field(default=None, description="Client cert PEM path")
    local_key: str | None = Field(default=None, description="Client key PEM path")
    local_ca: str | None = Field(default=None, description="CA bundle path")
    allow_invalid_cert: bool = Field(
        default=False,
        description="Skip certificate verification for the local target",
    )
    cert_reload: CertReloadPolicy = Field(
        default_factory=lambda: config.CERT_RELOAD,
        description="When certificate files are read",
    )
    local_retry_delay: float = Field(
        default_factory=lambda: config.LOCAL_RETRY_DELAY_SECONDS,
        gt=0,
        description="Fixed delay between local connect retries",
    )
    remote_connect_timeout: float = Field(
        default_factory=lambda: config.REMOTE_CONNECT_TIMEOUT_SECONDS,
        gt=0,
        description="Timeout for opening a relay socket",
    )

    @model_validator(mode="after")
    def _check_certificate_options(self) -> "TunnelOptions":
        has_cert_files = any((self.local_cert, self.local_key, self.local_ca))
        if (has_cert_files or self.allow_invalid_cert) and not self.local_https:
            raise ValueError("certificate options require local_https")
        if bool(self.local_cert) != bool(self.local_key):
            raise ValueError("local_cert and local_key must be given together")
        return self

    @property
    def local_transport(self) -> LocalTransport:
        """Transport mode derived from the TLS flags."""
        if not self.local_https:
            return LocalTransport.PLAIN
        if self.allow_invalid_cert:
            return LocalTransport.TLS_NO_VERIFY
        if self.local_cert or self.local_ca:
            return LocalTransport.TLS_CERT
        return LocalTransport.TLS_VERIFY


# =============================================================================
# Relay Configuration
# =============================================================================


@dataclass(frozen=True)
class ClusterConfig:
    """
    Immutable configuration shared by every connection of a pool.

    ``local_alias`` doubles as the Host header rewrite target; without it the
    local target is ``localhost`` and headers pass through untouched.
    """

    remote_host: str
    remote_port: int
    local_port: int
    remote_ip: str | None = None
    local_alias: str | None = None
    local_transport: LocalTransport = LocalTransport.PLAIN
    local_cert: str | None = None
    local_key: str | None = None
    local_ca: str | None = None
    cert_reload: CertReloadPolicy = CertReloadPolicy.EACH_ATTEMPT
    local_retry_delay: float = 1.0
    remote_connect_timeout: float = 15.0
    read_chunk_size: int = 65536

    @classmethod
    def from_assignment(
        cls, assignment: TunnelAssignment, options: TunnelOptions
    ) -> "ClusterConfig":
        """Combine the broker's assignment with caller overrides."""
        return cls(
            remote_host=assignment.remote_host,
            remote_ip=assignment.ip,
            remote_port=assignment.port,
            local_port=options.port,
            local_alias=options.local_alias,
            local_transport=options.local_transport,
            local_cert=options.local_cert,
            local_key=options.local_key,
            local_ca=options.local_ca,
            cert_reload=options.cert_reload,
            local_retry_delay=options.local_retry_delay,
            remote_connect_timeout=options.remote_connect_timeout,
            read_chunk_size=config.READ_CHUNK_SIZE,
        )

    @property
    def remote_address(self) -> str:
        """Address to dial for relay sockets, the direct IP when given."""
        return self.remote_ip or self.remote_host

    @property
    def local_host(self) -> str:
        return self.local_alias or config.LOCAL_ALIAS

    @property
    def rewrite_host(self) -> str | None:
        return self.local_alias

    @property
    def is_secured(self) -> bool:
        return self.local_transport != LocalTransport.PLAIN

    @property
    def local_scheme(self) -> str:
        return "https" if self.is_secured else "http"


# =============================================================================
# Observability
# =============================================================================


@dataclass(frozen=True)
class RequestInfo:
    """Method and path parsed from inbound traffic, for display only."""

    method: str
    path: str


def broker_hostname(host: str) -> str:
    """Extract the hostname from a broker base URL."""
    return urlparse(host).hostname or host
