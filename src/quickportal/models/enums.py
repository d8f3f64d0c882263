"""
Enumeration types for quickportal.

This module defines the enumeration types used across the tunnel client for
connection state tracking, event names, and configuration options.
"""

from enum import Enum


# =============================================================================
# Connection-Related Enums
# =============================================================================


class ConnectionState(str, Enum):
    """
    Lifecycle state of a single relay connection.

    State transitions:
        CONNECTING_REMOTE -> REMOTE_OPEN -> CONNECTING_LOCAL -> PIPING -> DEAD
        CONNECTING_LOCAL -> CONNECTING_LOCAL (local refused/reset, after delay)
        CONNECTING_LOCAL -> DEAD (other local error, remote closed)
        CONNECTING_REMOTE -> DEAD (remote connect failed or refused)
    """

    CONNECTING_REMOTE = "connecting_remote"
    REMOTE_OPEN = "remote_open"
    CONNECTING_LOCAL = "connecting_local"
    PIPING = "piping"
    DEAD = "dead"


class EventType(str, Enum):
    """
    Names of the events emitted by pools and tunnels.

    - OPEN: a remote relay socket connected (payload: slot id)
    - DEAD: a relay connection ended without a refusal (payload: slot id)
    - REQUEST: best-effort request line seen on inbound traffic (payload: RequestInfo)
    - ERROR: the broker refused a relay socket (payload: RemoteRefusedError)
    - URL: first connection opened on a tunnel (payload: public URL)
    - CLOSE: tunnel closed by its owner (payload: None)
    """

    OPEN = "open"
    DEAD = "dead"
    REQUEST = "request"
    ERROR = "error"
    URL = "url"
    CLOSE = "close"


# =============================================================================
# Local Target Enums
# =============================================================================


class LocalTransport(str, Enum):
    """
    How the relay talks to the local target.

    - PLAIN: raw TCP
    - TLS_VERIFY: TLS, certificate checked against the system trust store
    - TLS_NO_VERIFY: TLS, certificate checks disabled
    - TLS_CERT: TLS with explicit client cert/key and optional CA file
    """

    PLAIN = "plain"
    TLS_VERIFY = "tls_verify"
    TLS_NO_VERIFY = "tls_no_verify"
    TLS_CERT = "tls_cert"


class CertReloadPolicy(str, Enum):
    """
    When certificate files for a TLS local target are read.

    - EACH_ATTEMPT: read on every local connect attempt (picks up renewed certs)
    - ONCE: read on the first attempt and reuse for the pool's lifetime
    """

    EACH_ATTEMPT = "each_attempt"
    ONCE = "once"


# =============================================================================
# Logging Enums
# =============================================================================


class LogLevel(str, Enum):
    """
    Logging verbosity levels.

    Levels (from most to least verbose):
        - FULL: Complete trace with detailed stack information
        - DEBUG: Debug messages and above
        - INFO: Informational messages and above
        - WARNING: Only warnings and errors
    """

    FULL = "full"
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
