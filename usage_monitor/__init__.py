"""Polling aggregator for per-key API usage."""

__version__ = "1.0.0"
