"""Skin arbitrage trading service."""

__version__ = "1.0.0"
