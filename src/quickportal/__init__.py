"""
quickportal - expose a local server to the internet through a tunnel broker.

Example:
    tunnel = await create_tunnel(port=8000, subdomain="foo")
    print(tunnel.url)
    await tunnel.close()
"""

from quickportal.exceptions import (
    AssignmentError,
    RemoteConnectError,
    RemoteRefusedError,
    TunnelClosedError,
    TunnelError,
)
from quickportal.models.enums import EventType
from quickportal.models.tunnel import RequestInfo, TunnelOptions
from quickportal.tunnel import Tunnel, create_tunnel

__version__ = "0.1.0"

__all__ = [
    "AssignmentError",
    "EventType",
    "RemoteConnectError",
    "RemoteRefusedError",
    "RequestInfo",
    "Tunnel",
    "TunnelClosedError",
    "TunnelError",
    "TunnelOptions",
    "create_tunnel",
]
