"""Switchboard — bounded-time health aggregation for a VoIP backend."""

__version__ = "1.0.0"
