"""Timed trade-off decision study: timeline, execution engine, scoring and data egress."""

__version__ = "0.1.0"
