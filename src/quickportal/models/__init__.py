"""Data models and enumerations shared across quickportal."""
