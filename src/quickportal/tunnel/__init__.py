"""
Tunnel system for exposing a local port through a remote broker.

This module provides the relay connection lifecycle (pool, connections,
Host header rewriting) and the orchestration that keeps a tunnel at its
assigned capacity.
"""

from quickportal.tunnel.connection import TunnelConnection, parse_request_line
from quickportal.tunnel.events import EventEmitter, TunnelEvent
from quickportal.tunnel.header_rewriter import HeaderHostRewriter
from quickportal.tunnel.orchestrator import Tunnel, create_tunnel
from quickportal.tunnel.pool import ConnectionPool

__all__ = [
    "ConnectionPool",
    "EventEmitter",
    "HeaderHostRewriter",
    "Tunnel",
    "TunnelConnection",
    "TunnelEvent",
    "create_tunnel",
    "parse_request_line",
]
