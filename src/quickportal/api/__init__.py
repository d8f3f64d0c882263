"""Clients for the tunnel broker API."""

from quickportal.api.assignment import AssignmentClient

__all__ = ["AssignmentClient"]
