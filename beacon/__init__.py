"""Beacon: host health, metrics and heartbeat agent (data-plane + control-plane HTTP listeners)."""

__version__ = "0.1.0"
