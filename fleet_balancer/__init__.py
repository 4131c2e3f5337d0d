"""Autoscaling and session rebalancing for a fleet of WebSocket session servers."""

__version__ = "1.0.0"
